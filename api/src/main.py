"""FastAPI application factory for the Scaffold API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth.middleware import AuthenticationMiddleware
from .config import Settings, get_settings
from .db.connection import db_manager, get_db_pool
from .errors import register_exception_handlers
from .routes import api_keys_router, health_router, users_router
from .routes.health import SERVICE_NAME, SERVICE_VERSION


logging.basicConfig(level=logging.INFO, format=get_settings().log_format)
logger = logging.getLogger(__name__)

API_PREFIX = "/v1"

# Reachable without an API key
PUBLIC_PATHS = ["/", "/live", "/health", "/ready", "/docs", "/redoc", "/openapi.json"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool on startup and close it on shutdown.

    Startup fails if the database does not answer ``SELECT 1``.
    """
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level_number)
    logger.info(f"Starting {SERVICE_NAME} {SERVICE_VERSION}")

    try:
        await db_manager.initialize()
        pool = await get_db_pool()
        async with pool.acquire() as conn:
            await conn.execute("SELECT 1")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise
    logger.info("Database connectivity verified")

    if not settings.api_key_enabled:
        logger.warning("API key authentication is disabled")

    yield

    logger.info(f"Shutting down {SERVICE_NAME}")
    try:
        await db_manager.close()
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")
    else:
        logger.info("Database connections closed")


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    # Added last runs first: CORS answers preflights before authentication
    app.add_middleware(
        AuthenticationMiddleware,
        skip_paths=PUBLIC_PATHS,
        enabled=settings.api_key_enabled,
        prefix=settings.api_key_prefix
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        expose_headers=["Link"],
    )


def create_app() -> FastAPI:
    """Build the application: middleware, problem handlers and routers."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Users and API keys over PostgreSQL. List endpoints use keyset pagination "
            "with `page[size]`, `page[after]`, `page[before]`, `sort` and `filter[...]` "
            "query parameters and return an RFC 8288 `Link` header."
        ),
        version=SERVICE_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        servers=[{"url": settings.api_url}],
        lifespan=lifespan
    )

    _add_middleware(app, settings)
    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(users_router, prefix=API_PREFIX)
    app.include_router(api_keys_router, prefix=API_PREFIX)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    current = get_settings()
    uvicorn.run(
        "src.main:app",
        host=current.host,
        port=current.port,
        reload=current.debug,
        log_level=current.log_level.lower()
    )
