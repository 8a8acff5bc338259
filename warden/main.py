"""
Warden — Application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `api/`, `services/`, `db/`, and `core/` packages.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from warden.api.v1.api import api_router
from warden.core.config import Settings, settings
from warden.core.exceptions import register_exception_handlers
from warden.core.limiter import build_limiter, parse_login_limit
from warden.core.roles import Role
from warden.core.security import PasswordVault
from warden.core.tokens import CredentialIssuer, CredentialVerifier
from warden.db.base import Base
from warden.db.directory import SqlUserDirectory
from warden.db.session import build_engine, build_session_factory
from warden.models.user import User

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


async def seed_first_admin(app: FastAPI, app_settings: Settings) -> None:
    """Create the initial ADMIN account when configured and absent."""
    if not app_settings.FIRST_ADMIN_PASSWORD:
        return
    async with app.state.session_factory() as session:
        directory = SqlUserDirectory(session)
        if await directory.find_by_username(app_settings.FIRST_ADMIN_USERNAME) is not None:
            return
        admin = User(
            username=app_settings.FIRST_ADMIN_USERNAME,
            display_name="System Administrator",
            password_hash=await app.state.vault.hash_async(app_settings.FIRST_ADMIN_PASSWORD),
            role=Role.ADMIN.value,
        )
        await directory.create(admin)
        logger.info(
            "Default admin created: %s (password: <redacted>)",
            app_settings.FIRST_ADMIN_USERNAME,
        )


# ── App factory ─────────────────────────────────────────────────────
def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or settings
    app_settings.warn_if_insecure()

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        async with application.state.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables initialised")

        await seed_first_admin(application, app_settings)

        logger.info("Warden v%s started", app_settings.VERSION)
        yield
        await application.state.engine.dispose()
        logger.info("Shutdown complete")

    application = FastAPI(
        title=app_settings.PROJECT_NAME,
        description="Identity and access-control service",
        version=app_settings.VERSION,
        openapi_url=f"{app_settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Components built once from one immutable config
    security = app_settings.security_config()
    application.state.settings = app_settings
    application.state.security_config = security
    application.state.vault = PasswordVault(security)
    application.state.issuer = CredentialIssuer(security)
    application.state.verifier = CredentialVerifier(security)
    application.state.engine = build_engine(app_settings.DATABASE_URL)
    application.state.session_factory = build_session_factory(application.state.engine)

    # Rate limiting
    application.state.limiter = build_limiter(app_settings)
    application.state.login_rate_limit = parse_login_limit(app_settings)

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application, expose_detail=app_settings.EXPOSE_ERROR_DETAIL)

    # Mount API v1
    application.include_router(api_router, prefix=app_settings.API_V1_PREFIX)

    return application


app = create_app()
