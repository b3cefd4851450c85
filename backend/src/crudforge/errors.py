"""Exception taxonomy for crudforge.

Configuration errors (missing or malformed schemas, unresolvable through
entities) fail fast at load/configure time. Authorization errors carry a
generic user-facing message plus a context dict meant for logs only.
"""

from typing import Any


class CrudForgeError(Exception):
    """Base class for all crudforge errors."""


class ConfigurationError(CrudForgeError):
    """A schema or relationship configuration cannot be used."""


class SchemaNotFoundError(ConfigurationError):
    """No schema document resolved through the layered lookup."""

    def __init__(self, model: str, searched: list[str] | None = None):
        self.model = model
        self.searched = searched or []
        super().__init__(f"Schema file not found for model: {model}")


class SchemaValidationError(ConfigurationError):
    """A schema document failed structural or semantic validation.

    Attributes:
        model: The model whose schema was validated
        issues: Every problem found, in discovery order
    """

    def __init__(self, model: str, issues: list[str]):
        self.model = model
        self.issues = list(issues)
        summary = "; ".join(self.issues)
        super().__init__(f"Schema for model '{model}' is invalid: {summary}")


class ForbiddenError(CrudForgeError):
    """Access denied.

    ``str(exc)`` and ``user_message`` are deliberately generic; ``context``
    holds the action, entity and permission for internal logging.
    """

    user_message = "Access denied"

    def __init__(self, context: dict[str, Any] | None = None):
        self.context = context or {}
        super().__init__(self.user_message)


class RecordNotFoundError(CrudForgeError):
    """The record does not exist or has already been soft-deleted."""

    def __init__(self, model: str, record_id: Any):
        self.model = model
        self.record_id = record_id
        super().__init__(f"Record '{record_id}' not found for model: {model}")


class DataConflictError(CrudForgeError):
    """A uniqueness, type or referential-integrity violation rolled back a transaction."""

    def __init__(self, model: str, message: str):
        self.model = model
        super().__init__(f"Data conflict on model '{model}': {message}")
