import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from comms.api.common.exceptions import handle_service_error
from comms.api.routes import admin_conversations, communications, templates
from comms.api.routes.conversations import (
    customer_conversations_router,
    team_conversations_router,
)
from comms.api.routes.realtime import realtime_router
from comms.auth_config import auth_backend, fastapi_users
from comms.core.config import settings
from comms.db import async_session_maker, check_database_health
from comms.services.channels import ResendEmailSender, TwilioSmsSender
from comms.services.dependencies import install_components
from comms.services.exceptions import ServiceError
from comms.services.migration_service import run_migrations

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting application...")
    try:
        if settings.RUN_MIGRATIONS:
            await run_migrations()
        await check_database_health(app.state.session_factory)
        logger.info("Database health check passed - application ready")
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        logger.error("Application startup aborted due to database issues")
        raise

    loops: list[asyncio.Task] = []
    if settings.BACKGROUND_JOBS_ENABLED:
        loops.append(asyncio.create_task(app.state.heartbeat.run(), name="heartbeat"))
        loops.append(asyncio.create_task(app.state.sweeper.run(), name="sweeper"))

    yield

    logger.info("Application shutting down...")
    for task in loops:
        task.cancel()
    await asyncio.gather(*loops, return_exceptions=True)
    await app.state.tasks.drain()


app = FastAPI(title=f"{settings.APP_NAME} messaging", lifespan=lifespan)
install_components(
    app,
    async_session_maker,
    email_sender=ResendEmailSender(),
    sms_sender=TwilioSmsSender(),
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and parameters are client errors like any other: 400."""
    logger.info(f"Rejected malformed request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request", "errors": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
        for error in exc.errors()
    ]


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    """Backstop for service errors raised outside a decorated route."""
    try:
        handle_service_error(exc)
    except HTTPException as http_exc:
        return JSONResponse(
            status_code=http_exc.status_code, content={"detail": http_exc.detail}
        )


app.include_router(
    fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"]
)
app.include_router(customer_conversations_router)
app.include_router(team_conversations_router)
app.include_router(admin_conversations.admin_conversations_router_instance)
app.include_router(templates.templates_router_instance)
app.include_router(communications.communications_router_instance)
app.include_router(realtime_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


def serve(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Runs the app under uvicorn with protocol-level websocket keepalive.

    uvicorn pings every socket each heartbeat interval and drops the transport
    when the client's pong does not arrive in time; the heartbeat then reaps
    the registry entry.
    """
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ws_ping_interval=settings.HEARTBEAT_INTERVAL_SECONDS,
        ws_ping_timeout=settings.HEARTBEAT_INTERVAL_SECONDS,
    )


if __name__ == "__main__":
    serve()
