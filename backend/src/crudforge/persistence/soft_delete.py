"""Soft-delete mechanism registry.

A schema flag alone does not enable soft deletion: the mechanism must also be
registered, typically at application startup via register_builtin_soft_delete().
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

DEFAULT_MECHANISM = "timestamp"


def utc_now() -> str:
    """Current UTC time as ISO 8601 text (the storage format for dates)."""
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class SoftDeleteMechanism:
    """How a row is marked deleted.

    Attributes:
        name: Registry key
        column: Column holding the deletion marker (NULL = live row)
        marker: Produces the value written on soft delete
    """

    name: str
    column: str
    marker: Callable[[], Any]

    def is_deleted(self, row: dict[str, Any]) -> bool:
        return row.get(self.column) is not None


class SoftDeleteRegistry:
    """Registry of soft-delete mechanisms.

    Example:
        SoftDeleteRegistry.register(SoftDeleteMechanism("timestamp", "deleted_at", utc_now))
    """

    _mechanisms: dict[str, SoftDeleteMechanism] = {}

    @classmethod
    def register(cls, mechanism: SoftDeleteMechanism) -> None:
        """Register a mechanism. Re-registering a name is a no-op."""
        if mechanism.name in cls._mechanisms:
            return
        cls._mechanisms[mechanism.name] = mechanism

    @classmethod
    def get(cls, name: str) -> SoftDeleteMechanism:
        """Get a registered mechanism.

        Raises:
            ValueError: If the mechanism is not registered
        """
        if name not in cls._mechanisms:
            raise ValueError(f"Soft-delete mechanism '{name}' is not registered.")
        return cls._mechanisms[name]

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._mechanisms

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._mechanisms.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations. Primarily for testing."""
        cls._mechanisms.clear()


def register_builtin_soft_delete() -> None:
    """Register the built-in deleted_at timestamp mechanism."""
    SoftDeleteRegistry.register(
        SoftDeleteMechanism(name=DEFAULT_MECHANISM, column="deleted_at", marker=utc_now)
    )
