import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException as StarletteHTTPException

from talenthub.api.routes import auth, channels, conversations, dms, files, friends, messages, portfolios, servers, users
from talenthub.api.routes import realtime as pusher_auth
from talenthub.core.config import Settings, get_settings
from talenthub.core.errors import AppError
from talenthub.core.log import configure_logging
from talenthub.db.session import build_engine, build_sessionmaker, create_schema
from talenthub.integrations.mailer import ResendEmail
from talenthub.integrations.realtime import PusherRealtime
from talenthub.integrations.storage import SupabaseStorage

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", "Invalid request")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app(
    settings: Settings | None = None,
    *,
    engine: AsyncEngine | None = None,
    realtime: PusherRealtime | None = None,
    storage: SupabaseStorage | None = None,
    mailer: ResendEmail | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    engine = engine or build_engine(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        http = httpx.AsyncClient(timeout=10.0)
        if app.state.realtime is None:
            app.state.realtime = PusherRealtime(
                settings.pusher_app_id, settings.pusher_key, settings.pusher_secret, settings.pusher_cluster
            )
        if app.state.storage is None:
            app.state.storage = SupabaseStorage(settings.supabase_url, settings.supabase_service_role_key, http)
        if app.state.mailer is None:
            app.state.mailer = ResendEmail(settings.resend_api_url, settings.resend_api_key, settings.from_email, http)
        if settings.create_schema:
            await create_schema(engine)
        logger.info("%s started (%s)", settings.app_name, settings.app_env)
        try:
            yield
        finally:
            await http.aclose()
            await engine.dispose()
            logger.info("%s stopped", settings.app_name)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    app.state.realtime = realtime
    app.state.storage = storage
    app.state.mailer = mailer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "env": settings.app_env}

    for module in (auth, users, servers, channels, conversations, dms, messages, friends, portfolios, pusher_auth, files):
        app.include_router(module.router, prefix=settings.api_prefix)

    return app
