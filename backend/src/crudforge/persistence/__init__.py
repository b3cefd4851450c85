"""Persistence layer - database configuration and schema-driven models."""

from crudforge.persistence.config import DatabaseConfig, create_db_engine
from crudforge.persistence.soft_delete import SoftDeleteRegistry, register_builtin_soft_delete
from crudforge.persistence.model import DynamicModel

__all__ = [
    "DatabaseConfig",
    "create_db_engine",
    "SoftDeleteRegistry",
    "register_builtin_soft_delete",
    "DynamicModel",
]
