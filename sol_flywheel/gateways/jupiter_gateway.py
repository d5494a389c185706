"""
Jupiter Gateway module for the SOL Flywheel.

This module provides the swap venue implementation for the Jupiter aggregator
HTTP API: ``GET /quote`` for a route and ``POST /swap`` for a serialized,
unsigned transaction executing that route. Calls are never retried; a failed
request fails the tick and the next tick starts over with a fresh quote.
"""

import base64
import binascii
from typing import Any

import httpx
from solders.pubkey import Pubkey

from sol_flywheel.core.logger import logger
from sol_flywheel.core.models import SwapQuote
from sol_flywheel.gateways import SwapVenueGateway, VenueError


class JupiterGateway(SwapVenueGateway):
    """Gateway implementation for the Jupiter swap API."""

    def __init__(
        self,
        base_url: str,
        prioritization_fee_lamports: int = 0,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the Jupiter gateway.

        Args:
            base_url: API root, e.g. https://quote-api.jup.ag/v6
            prioritization_fee_lamports: Priority fee attached to swap transactions
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used to stub the API in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.prioritization_fee_lamports = prioritization_fee_lamports
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self.client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Jupiter request rejected",
                url=url,
                status_code=e.response.status_code,
                body=e.response.text[:500],
            )
            raise VenueError(
                f"Jupiter {url} returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("Jupiter request failed", url=url, error=str(e))
            raise VenueError(f"Jupiter {url} request failed: {str(e)}") from e
        except ValueError as e:
            raise VenueError(f"Jupiter {url} returned invalid JSON") from e

    async def get_quote(
        self, input_mint: str, output_mint: str, amount: int, slippage_bps: int
    ) -> SwapQuote:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
        }
        payload = await self._request("GET", "/quote", params=params)

        if not isinstance(payload, dict) or not payload.get("routePlan"):
            raise VenueError(f"Jupiter returned no route for {amount} {input_mint} -> {output_mint}")

        try:
            quote = SwapQuote.from_venue(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise VenueError(f"Malformed Jupiter quote: {str(e)}") from e

        logger.info(
            "Jupiter quote received",
            in_amount=quote.in_amount,
            out_amount=quote.out_amount,
            slippage_bps=quote.slippage_bps,
            hops=len(quote.route_plan),
        )
        return quote

    async def build_swap_transaction(self, quote: SwapQuote, user_pubkey: Pubkey) -> bytes:
        body = {
            "quoteResponse": quote.raw,
            "userPublicKey": str(user_pubkey),
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": self.prioritization_fee_lamports,
        }
        payload = await self._request("POST", "/swap", json=body)

        swap_transaction = payload.get("swapTransaction") if isinstance(payload, dict) else None
        if not swap_transaction:
            raise VenueError("Jupiter returned no swapTransaction")

        try:
            return base64.b64decode(swap_transaction, validate=True)
        except (binascii.Error, ValueError) as e:
            raise VenueError("Jupiter swapTransaction is not valid base64") from e

    async def close(self) -> None:
        await self.client.aclose()
