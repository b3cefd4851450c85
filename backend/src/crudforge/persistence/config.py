"""Database URL resolution and SQLAlchemy engine factory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

DEFAULT_DB_NAME = "crudforge.db"

# Bare postgres URLs are routed to the psycopg 3 dialect
_POSTGRES_PREFIXES = ("postgresql://", "postgres://")


@dataclass
class DatabaseConfig:
    """Where crudforge stores records: a sqlite file or a PostgreSQL server."""

    url: str

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """DATABASE_URL, then CRUDFORGE_DB_PATH, then a sqlite file under ``base_path/data``."""
        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url)

        db_path = os.environ.get("CRUDFORGE_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}")

        path = base_path / "data" / DEFAULT_DB_NAME if base_path else Path(DEFAULT_DB_NAME)
        return cls(url=f"sqlite:///{path}")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_postgresql(self) -> bool:
        return self.url.startswith(("postgresql", "postgres://"))

    @property
    def sqlite_path(self) -> Path | None:
        """Database file for sqlite URLs (None for in-memory or other backends)."""
        if not self.is_sqlite or ":///" not in self.url:
            return None
        path = self.url.split(":///", 1)[1]
        if not path or path == ":memory:":
            return None
        return Path(path)

    @property
    def sqlalchemy_url(self) -> str:
        for prefix in _POSTGRES_PREFIXES:
            if self.url.startswith(prefix):
                return "postgresql+psycopg://" + self.url[len(prefix):]
        return self.url


def create_db_engine(config: DatabaseConfig) -> Engine:
    """Build the engine every model and listing shares.

    Raises:
        ValueError: For URL schemes other than sqlite and postgresql
    """
    if config.is_sqlite:
        if config.sqlite_path is not None:
            config.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        # Request handlers run in a threadpool
        return create_engine(config.sqlalchemy_url, connect_args={"check_same_thread": False})

    if config.is_postgresql:
        return create_engine(config.sqlalchemy_url, pool_pre_ping=True)

    raise ValueError(f"Unsupported database URL scheme: {config.url}")
