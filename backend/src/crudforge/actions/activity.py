"""Activity (audit) logging collaborator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from crudforge.auth.types import UserContext


@dataclass
class ActivityEntry:
    """One audited operation.

    Attributes:
        action: Operation name ("delete", ...)
        entity: Model name
        record_id: Affected record
        user_id: Acting user (None when anonymous)
        details: Operation-specific data (cascade counts, soft flag, ...)
        occurred_at: UTC timestamp
    """

    action: str
    entity: str
    record_id: Any
    user_id: Any = None
    details: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ActivityLogger(Protocol):
    def record(self, entry: ActivityEntry) -> None: ...


class LoggingActivityLogger:
    """Writes activity entries to the ``crudforge.activity`` logger."""

    def __init__(self, activity_logger: logging.Logger | None = None):
        self._logger = activity_logger or logging.getLogger("crudforge.activity")

    def record(self, entry: ActivityEntry) -> None:
        self._logger.info(
            "%s %s %s by user %s %s",
            entry.action,
            entry.entity,
            entry.record_id,
            entry.user_id,
            entry.details,
        )


def make_entry(
    action: str,
    entity: str,
    record_id: Any,
    user: UserContext | None,
    **details: Any,
) -> ActivityEntry:
    return ActivityEntry(
        action=action,
        entity=entity,
        record_id=record_id,
        user_id=user.user_id if user else None,
        details=details,
    )
