"""Signed-message authentication for the admin endpoints."""

from typing import Any

from solders.pubkey import Pubkey
from solders.signature import Signature

from sol_flywheel.core.utils import parse_pubkey


class AdminAuthError(Exception):
    """Rejected admin request; carries the HTTP status to answer with."""

    def __init__(self, status_code: int, error: str):
        super().__init__(error)
        self.status_code = status_code
        self.error = error


def verify_admin_request(payload: Any, allowed_pubkey: Pubkey) -> Pubkey:
    """
    Check that ``payload`` is a message signed by the authorized wallet.

    The payload carries ``pubkey`` (base58), ``message`` (UTF-8 text) and
    ``signature`` (base58 ed25519 signature of the message bytes).

    Returns:
        The verified public key

    Raises:
        AdminAuthError: 400 for missing or malformed fields and bad signatures,
            403 for a well-formed request from any other wallet
    """
    if not isinstance(payload, dict):
        raise AdminAuthError(400, "Missing fields")

    pubkey_b58 = payload.get("pubkey")
    message = payload.get("message")
    signature_b58 = payload.get("signature")
    if not all(isinstance(v, str) and v for v in (pubkey_b58, message, signature_b58)):
        raise AdminAuthError(400, "Missing fields")

    try:
        pubkey = parse_pubkey(pubkey_b58)
    except ValueError:
        raise AdminAuthError(400, "Malformed pubkey") from None

    if pubkey != allowed_pubkey:
        raise AdminAuthError(403, "Not allowed")

    try:
        signature = Signature.from_string(signature_b58)
    except ValueError:
        raise AdminAuthError(400, "Bad signature") from None

    if not signature.verify(pubkey, message.encode("utf-8")):
        raise AdminAuthError(400, "Bad signature")

    return pubkey
