from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from msp_portal.api.admin import router as admin_router
from msp_portal.api.auth import router as auth_router
from msp_portal.api.chats import router as chats_router
from msp_portal.api.notifications import router as notifications_router
from msp_portal.api.technician import router as technician_router
from msp_portal.api.tickets import router as tickets_router
from msp_portal.core.config import settings
from msp_portal.core.logging import setup_logging
from msp_portal.services.rest_client import GatewayError, RestClient
from msp_portal.services.tickets import TicketBoardError
from msp_portal.services.workspace import WorkspaceRegistry

logger = structlog.get_logger(__name__)

app = FastAPI(title="MSP Portal")
app.state.rest = RestClient()
app.state.workspaces = WorkspaceRegistry()


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    logger.error("errors", stage="gateway", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=502,
        content={"error": "Remote store request failed", "detail": str(exc)},
    )


@app.exception_handler(TicketBoardError)
async def ticket_board_error_handler(
    request: Request, exc: TicketBoardError
) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


origins = [origin.strip() for origin in settings.ADMIN_UI_ORIGINS.split(",") if origin]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
async def on_startup() -> None:
    setup_logging()
    if settings.APP_ENV.lower() != "development" and settings.SUPABASE_JWT_SECRET == "change-me":
        raise RuntimeError("SUPABASE_JWT_SECRET must be set in non-development environments")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await app.state.workspaces.close_all()


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "sessions": len(app.state.workspaces)}


app.include_router(auth_router)
app.include_router(tickets_router)
app.include_router(chats_router)
app.include_router(notifications_router)
app.include_router(technician_router)
app.include_router(admin_router)
