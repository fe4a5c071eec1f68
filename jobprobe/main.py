"""
jobprobe/main.py

FastAPI entrypoint for the scan service.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.
    """

    from db.config import DATABASE_URL_VARS, load_env_files

    load_env_files()

    errors: list[str] = []

    if not any(os.getenv(name, "").strip() for name in DATABASE_URL_VARS):
        errors.append("No database URL configured. Set DATABASE_URL or LOCAL_DATABASE_URL.")

    parser_url = os.getenv("PARSER_API_BASE_URL")
    if parser_url is not None and not parser_url.strip().startswith(("http://", "https://")):
        errors.append("PARSER_API_BASE_URL must be an http(s) URL.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_schema() -> None:
    """
    Abort startup when ORM tables are missing from the database.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    missing = set(Base.metadata.tables.keys()) - set(inspector.get_table_names())
    if missing:
        logging.getLogger(__name__).critical(
            "Schema mismatch, table(s) absent from the database: %s. "
            "Run 'alembic upgrade head' and restart.",
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate the schema, start browsers and the scan schedule; drain them on exit."""
    _check_schema()
    logging.getLogger(__name__).info("Database schema validated")

    from jobprobe.services.crawl_service import build_crawl_service

    service = build_crawl_service()
    await service.start()
    application.state.crawl_service = service
    try:
        yield
    finally:
        application.state.crawl_service = None
        await service.close()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="jobprobe API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from jobprobe.api.routers import scans_router

    application.include_router(scans_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        service = getattr(application.state, "crawl_service", None)
        return {"status": "ok" if service is not None else "starting"}

    return application


app = create_app()
