import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables as early as possible
load_dotenv()

from .application.ports.messaging_provider import MessagingProvider
from .application.services.auth_service import AuthService
from .application.services.otp_service import OTPService
from .application.services.session_registry import SessionRegistry
from .application.services.token_service import TokenService
from .core.config import Settings, settings
from .database import build_engine, build_session_factory, create_db_and_tables
from .dependencies import Container
from .exceptions import AuthError, auth_error_handler, validation_error_handler
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.cache.memory_cache import InMemoryCacheStore
from .infrastructure.cache.redis_cache import RedisCacheStore
from .infrastructure.identity.firebase_app import init_firebase_app
from .infrastructure.identity.firebase_provider import FirebaseIdentityProvider
from .infrastructure.messaging.twilio_provider import TwilioMessagingProvider
from .infrastructure.messaging.zalo_provider import ZaloMessagingProvider
from .infrastructure.persistence.sqlalchemy.repositories.account_repository_sql import SqlAccountRepository
from .infrastructure.profile.http_profile_client import HttpProfileService
from .middleware import ErrorHandlingMiddleware, LoggingMiddleware, SecurityMiddleware
from .routers import auth_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


async def build_container(settings: Settings) -> Container:
    engine = build_engine(settings)
    try:
        await create_db_and_tables(engine)
    except Exception:
        # Do not crash the app; report via health endpoint
        logger.exception("Database initialization failed")

    if settings.REDIS_URL:
        cache = RedisCacheStore(settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT)
    else:
        logger.warning("REDIS_URL is not set; using the in-process cache (single instance only)")
        cache = InMemoryCacheStore()

    http_client = httpx.AsyncClient(timeout=settings.PROVIDER_TIMEOUT_SECONDS)
    firebase_app = init_firebase_app(settings)

    messaging: MessagingProvider
    if settings.OTP_DELIVERY_CHANNEL == "twilio":
        messaging = TwilioMessagingProvider(settings)
    else:
        messaging = ZaloMessagingProvider(settings, http_client, cache)

    audit = StdAuditLogger()
    auth_service = AuthService(
        accounts=SqlAccountRepository(build_session_factory(engine)),
        identity=FirebaseIdentityProvider(settings, http_client, app=firebase_app),
        profiles=HttpProfileService(settings.PROFILE_SERVICE_URL, http_client, timeout=settings.PROVIDER_TIMEOUT_SECONDS),
        tokens=TokenService.from_settings(settings),
        sessions=SessionRegistry(cache, ttl_seconds=settings.ACCESS_TOKEN_EXPIRE_SECONDS),
        otp=OTPService.from_settings(settings, cache, messaging, audit=audit),
        audit=audit,
    )
    logger.info(f"OTP delivery channel: {settings.OTP_DELIVERY_CHANNEL}")
    return Container(
        settings=settings,
        engine=engine,
        cache=cache,
        http_client=http_client,
        auth_service=auth_service,
    )


async def close_container(container: Container) -> None:
    await container.http_client.aclose()
    await container.cache.close()
    await container.engine.dispose()


def create_app(app_settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    """Application factory. A prebuilt ``container`` is used as is and not closed on shutdown."""
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {app_settings.APP_NAME}...")
        owned = container is None
        app.state.container = container or await build_container(app_settings)
        yield
        # Shutdown
        logger.info(f"Shutting down {app_settings.APP_NAME}...")
        if owned:
            await close_container(app.state.container)

    app = FastAPI(
        title=app_settings.APP_NAME,
        version=app_settings.APP_VERSION,
        debug=app_settings.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if app_settings.DOCS_ENABLED else None),
        redoc_url=("/redoc" if app_settings.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if app_settings.DOCS_ENABLED else None)
    )
    if container is not None:
        app.state.container = container

    # Add custom exception handlers
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Add middleware
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(SecurityMiddleware)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("ticket_auth.main:app", host=settings.HOST, port=settings.PORT)
