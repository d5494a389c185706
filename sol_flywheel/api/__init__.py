"""
Control API for the SOL Flywheel.

Public endpoints expose the persisted state; admin endpoints flip the running
flag and require a message signed by the authorized wallet. Admin failures
answer with a 4xx ``{"error": ...}`` body and never touch the state.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from solders.pubkey import Pubkey

from sol_flywheel import monitoring
from sol_flywheel.accounting import StateManager
from sol_flywheel.api.auth import AdminAuthError, verify_admin_request
from sol_flywheel.core.logger import logger


def create_app(
    state_manager: StateManager,
    allowed_pubkey: Pubkey,
    frontend_origins: list[str] | None = None,
) -> FastAPI:
    """
    Build the control API.

    Args:
        state_manager: Owner of the flywheel state
        allowed_pubkey: The only wallet allowed to start and stop the flywheel
        frontend_origins: Origins allowed by CORS

    Returns:
        FastAPI application
    """
    app = FastAPI(title="SOL Flywheel")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=frontend_origins or [],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(AdminAuthError)
    async def admin_auth_error_handler(request: Request, exc: AdminAuthError) -> JSONResponse:
        logger.warning("Admin request rejected", path=request.url.path, error=exc.error)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.error})

    @app.get("/api/public/metrics")
    async def public_metrics() -> dict:
        return state_manager.snapshot().model_dump(mode="json", by_alias=True)

    @app.get("/api/public/status")
    async def public_status() -> dict:
        return state_manager.state.status()

    @app.get("/healthz", response_class=PlainTextResponse)
    async def healthz() -> str:
        return "ok"

    async def set_running(request: Request, running: bool) -> dict:
        try:
            payload = await request.json()
        except ValueError:
            raise AdminAuthError(400, "Malformed request") from None

        pubkey = verify_admin_request(payload, allowed_pubkey)
        state = state_manager.set_running(running)
        monitoring.set_running(state.running)
        logger.info("Flywheel toggled by admin", running=state.running, pubkey=str(pubkey))
        return {"ok": True, "running": state.running}

    @app.post("/api/admin/start")
    async def admin_start(request: Request) -> dict:
        return await set_running(request, True)

    @app.post("/api/admin/stop")
    async def admin_stop(request: Request) -> dict:
        return await set_running(request, False)

    return app
