"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from tableside.api.routes import api_router
from tableside.core.config import settings
from tableside.core.rate_limit import limiter
from tableside.core.rbac import RequireManager
from tableside.db.base import Base
from tableside.db.session import SessionLocal, engine
from tableside.models.table_session import TableSession
from tableside.services.realtime_service import cart_channel, ws_manager
from tableside.services.scheduler_service import scheduler
from tableside.services.session_cleanup_service import run_session_cleanup

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:
    import json as _json
    import sys

    class JSONFormatter(logging.Formatter):
        def format(self, record):
            return _json.dumps({
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            })

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")

SESSION_CLEANUP_TASK = "session_cleanup"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        csp_origins = " ".join(settings.cors_origins_list)
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            f"connect-src 'self' ws: wss: {csp_origins}; "
            "img-src 'self' data:;"
        )
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with its status and timing."""

    # Heartbeats arrive every few seconds per device
    QUIET_SUFFIXES = ("/activity",)

    async def dispatch(self, request: Request, call_next):
        import time

        path = request.url.path
        if path in ["/health", "/", "/docs", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        quiet = path.endswith(self.QUIET_SUFFIXES)

        if not quiet:
            request_logger.info(f"Request: {request.method} {path} - Client: {client_ip}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {path} - "
                f"Exception: {str(e)} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            raise

        process_time = time.time() - start_time
        if response.status_code >= 400:
            log_level = logging.WARNING
        elif quiet:
            log_level = logging.DEBUG
        else:
            log_level = logging.INFO
        request_logger.log(
            log_level,
            f"Response: {request.method} {path} - "
            f"Status: {response.status_code} - Time: {process_time:.3f}s - Client: {client_ip}"
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Tableside API")

    # SQLite dev databases are created on the fly
    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created (SQLite mode)")

    scheduler.add_task(
        SESSION_CLEANUP_TASK,
        run_session_cleanup,
        interval_seconds=settings.cleanup_interval_seconds,
        initial_delay_seconds=settings.cleanup_interval_seconds,
    )
    scheduler_task = asyncio.create_task(scheduler.start())
    logger.info(
        f"Inactive session cleanup scheduled every {settings.cleanup_interval_seconds}s "
        f"(timeout {settings.session_timeout_minutes} min)"
    )

    yield

    scheduler.stop()
    scheduler_task.cancel()
    try:
        await scheduler_task
    except asyncio.CancelledError:
        pass
    scheduler.remove_task(SESSION_CLEANUP_TASK)

    logger.info("Shutting down Tableside API")


app = FastAPI(
    title="Tableside API",
    description="Table sessions, shared carts and subscription gating for QR ordering",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - added last so it runs first (Starlette LIFO order)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
        "X-Requested-With",
    ],
    max_age=600,
)

app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Basic liveness check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


@app.get("/health/ready")
def readiness_check():
    """Readiness probe with database, scheduler and WebSocket checks."""
    checks = {
        "database": "unknown",
        "scheduler": "unknown",
        "websocket_manager": "unknown",
    }

    db = None
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"
    finally:
        if db:
            db.close()

    checks["scheduler"] = "healthy" if scheduler.is_running else "stopped"
    checks["websocket_manager"] = f"healthy ({ws_manager.get_connection_count()} connections)"

    all_healthy = all(c.startswith("healthy") for c in checks.values())
    return {
        "status": "ready" if all_healthy else "degraded",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Tableside API",
        "docs": "/docs",
        "health": "/health",
    }


@app.get(f"{settings.api_v1_prefix}/scheduler/status")
def scheduler_status(current_user: RequireManager):
    """Get background task scheduler status."""
    return {"running": scheduler.is_running, "tasks": scheduler.get_status()}


def _session_cart(session_id: str):
    """Cart of an active session, or None if the session can't be joined."""
    db = SessionLocal()
    try:
        session = db.get(TableSession, session_id)
        if session is None or not session.is_active:
            return None
        return list(session.cart_items or [])
    finally:
        db.close()


@app.websocket("/ws/table-sessions/{session_id}")
async def websocket_table_session(websocket: WebSocket, session_id: str):
    """Shared cart updates for every device at a table.

    Guests have no account; knowing the session id is the credential.
    """
    cart_items = await asyncio.to_thread(_session_cart, session_id)
    if cart_items is None:
        logger.warning(f"WebSocket rejected: session {session_id} not active")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    channel = cart_channel(session_id)
    if not await ws_manager.connect(websocket, channel):
        return

    try:
        await websocket.send_json({
            "event": "connected",
            "session_id": session_id,
            "cart_items": cart_items,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        while True:
            data = await websocket.receive_text()
            if len(data) > ws_manager.MAX_MESSAGE_SIZE:
                logger.warning(f"WebSocket message too large on {channel}")
                continue
            if data == "ping":
                ws_manager.update_ping(websocket)
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        ws_manager.disconnect(websocket, channel)
    except Exception as e:
        logger.error(f"WebSocket error in {channel}: {e}", exc_info=True)
        ws_manager.disconnect(websocket, channel)
