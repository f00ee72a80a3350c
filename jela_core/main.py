"""
Application factory.

Builds a FastAPI app with correlation ids, request validation folded into the
validation host, and a lifespan that registers the row filters of every model
on `Base`, checks the database schema and installs the filtering session
factory used by get_db().

Usage:
    from jela_core.main import create_app
    from myapp.routers import notes_router

    app = create_app(routers=[notes_router])
"""

from collections.abc import Iterable
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from jela_core.data.context import make_session_factory
from jela_core.data.row_filter import RowFilterPolicy, row_filter_policy
from jela_core.models.base import Base
from jela_core.routers._base import register_validation_handlers
from jela_shared.config.logging import jela_logger as logger, setup_logging
from jela_shared.config.settings import settings
from jela_shared.infrastructure.correlation import CorrelationIdMiddleware
from jela_shared.infrastructure.db import configure_session_factory, get_engine


def create_lifespan(
    engine: AsyncEngine | None = None,
    policy: RowFilterPolicy | None = None,
    base: type[Base] = Base,
):
    policy = policy if policy is not None else row_filter_policy

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.
        Runs on startup and shutdown.
        """
        # Initialize logging
        setup_logging()

        # Validate production settings before startup
        config_errors = settings.validate_production_settings()
        if config_errors:
            for error in config_errors:
                logger.error(f"Configuration error: {error}")
            if settings.environment == "production":
                raise RuntimeError(
                    f"Production configuration errors: {'; '.join(config_errors)}. "
                    "Server will not start with insecure configuration."
                )
            logger.warning("Running with insecure defaults (acceptable for development only)")

        db_engine = engine if engine is not None else get_engine()

        # Hidden columns must be on the tables before create_all()
        registered = policy.register_all(base)
        logger.info("Row filters registered", models=[model.__name__ for model in registered])

        async with db_engine.begin() as conn:
            if settings.auto_create_schema:
                await conn.run_sync(base.metadata.create_all)
                logger.info("Database tables created/verified")
            await conn.run_sync(policy.verify_schema)

        configure_session_factory(make_session_factory(db_engine, policy))
        app.state.row_filter_policy = policy

        yield

        # Shutdown
        logger.info("Shutting down")
        await db_engine.dispose()

    return lifespan


def create_app(
    routers: Iterable[APIRouter] = (),
    engine: AsyncEngine | None = None,
    policy: RowFilterPolicy | None = None,
    base: type[Base] = Base,
    title: str = "Jela API",
) -> FastAPI:
    app = FastAPI(
        title=title,
        version="0.3.0",
        lifespan=create_lifespan(engine, policy, base),
    )
    app.add_middleware(CorrelationIdMiddleware)
    register_validation_handlers(app)

    for router in routers:
        app.include_router(router)

    return app
