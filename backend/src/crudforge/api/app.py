"""FastAPI application."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from crudforge.actions.activity import ActivityLogger, LoggingActivityLogger
from crudforge.api.router import create_crud_router
from crudforge.auth.access import Authorizer, PermissionSetAuthorizer
from crudforge.config import Settings
from crudforge.persistence import DatabaseConfig, create_db_engine, register_builtin_soft_delete
from crudforge.schema.service import SchemaService

logger = logging.getLogger(__name__)


def _base_path() -> Path:
    # Relative to cwd, which is usually /backend
    cwd = Path.cwd()
    return cwd.parent if cwd.name == "backend" else cwd


def create_app(
    settings: Settings | None = None,
    engine: Engine | None = None,
    authorizer: Authorizer | None = None,
    activity: ActivityLogger | None = None,
    **router_options: Any,
) -> FastAPI:
    """Build the API application.

    Args:
        settings: Engine settings (default: from environment)
        engine: SQLAlchemy engine (default: from DATABASE_URL / CRUDFORGE_DB_PATH)
        authorizer: Authorization collaborator (default: permission-set check)
        activity: Activity logger (default: log to ``crudforge.activity``)
        router_options: Extra keyword arguments for create_crud_router (e.g. get_user)
    """
    register_builtin_soft_delete()

    base_path = _base_path()
    settings = settings or Settings.from_env(base_path)
    engine = engine or create_db_engine(DatabaseConfig.from_env(base_path))
    schema_service = SchemaService(settings)
    authorizer = authorizer or PermissionSetAuthorizer()
    activity = activity or LoggingActivityLogger()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Validate schemas on startup (warn, don't block); dispose engine on shutdown."""
        for model, issues in schema_service.validate_all().items():
            for issue in issues:
                logger.error("Schema error in '%s': %s", model, issue)
        logger.info(
            "crudforge ready: %d schema(s) on %s",
            len(schema_service.list_models()),
            [str(p) for p in settings.schema_paths],
        )
        yield
        engine.dispose()

    app = FastAPI(title="crudforge API", lifespan=lifespan)

    # CORS for frontend dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        create_crud_router(
            get_schema_service=lambda: schema_service,
            get_engine=lambda: engine,
            get_authorizer=lambda: authorizer,
            get_activity=lambda: activity,
            **router_options,
        )
    )

    @app.get("/api/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
