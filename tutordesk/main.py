"""
FastAPI application factory
"""
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from tutordesk.config import get_settings
from tutordesk.domain.errors import (
    SubscriptionValidationError, ScheduleConflictError, StaleSubscriptionError, BackendError,
)
from tutordesk.infrastructure.db.session import check_db_connection
from tutordesk.api.v1 import auth, subscriptions

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches everything the exception handlers did not, including sync routes"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SubscriptionValidationError)
    async def _validation(request: Request, exc: SubscriptionValidationError):
        return JSONResponse(status_code=422, content={"success": False, "message": str(exc)})

    @app.exception_handler(ScheduleConflictError)
    async def _conflict(request: Request, exc: ScheduleConflictError):
        return JSONResponse(status_code=409, content={
            "success": False,
            "message": exc.message,
            "conflictingSessions": exc.conflicting_sessions,
        })

    @app.exception_handler(StaleSubscriptionError)
    async def _stale(request: Request, exc: StaleSubscriptionError):
        return JSONResponse(status_code=404, content={"success": False, "message": str(exc)})

    @app.exception_handler(BackendError)
    async def _backend(request: Request, exc: BackendError):
        logger.error("Backend error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=502, content={"success": False, "message": str(exc)})


def create_app() -> FastAPI:
    """
    Application factory - builds and wires the FastAPI app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="TutorDesk",
        debug=settings.DEBUG,
    )

    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )
    _register_error_handlers(app)

    app.include_router(auth.router)
    app.include_router(subscriptions.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (database reachable)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tutordesk.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
