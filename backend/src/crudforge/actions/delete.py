"""Cascading delete orchestration.

A delete runs in one transaction: cascade to declared detail children, detach
pivot relationships, then delete the parent. Any failure rolls back every
step, so a partial cascade is never visible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DataError, IntegrityError

from crudforge.actions.activity import ActivityLogger, make_entry
from crudforge.actions.relationships import process_relationship_actions
from crudforge.auth.access import Authorizer, validate_access
from crudforge.auth.types import UserContext
from crudforge.config import Settings
from crudforge.errors import DataConflictError, ForbiddenError, RecordNotFoundError
from crudforge.schema.service import SchemaService
from crudforge.schema.types import CascadeMode, SchemaDocument

logger = logging.getLogger(__name__)


@dataclass
class DeleteResult:
    """Outcome of a committed delete.

    Attributes:
        model: Deleted record's model
        record_id: Deleted record's primary key
        soft: True when the parent was soft-deleted
        cascaded: Child model name to number of child rows deleted
    """

    model: str
    record_id: Any
    soft: bool
    cascaded: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "id": self.record_id,
            "soft_delete": self.soft,
            "cascaded": dict(self.cascaded),
        }


class DeleteAction:
    """Deletes a record and its cascade-enabled children atomically.

    Example:
        action = DeleteAction(schemas, engine, authorizer)
        result = action.delete("groups", 5, user)
    """

    def __init__(
        self,
        schemas: SchemaService,
        engine: Engine,
        authorizer: Authorizer,
        activity: ActivityLogger | None = None,
        settings: Settings | None = None,
    ):
        self.schemas = schemas
        self.engine = engine
        self.authorizer = authorizer
        self.activity = activity
        self.settings = settings or schemas.settings

    def is_identity_entity(self, schema: SchemaDocument) -> bool:
        """``identity: true`` marks the entity; the configured name applies only when none does."""
        if schema.identity:
            return True
        if schema.model != self.settings.identity_model:
            return False
        return not self.schemas.declared_identity_models()

    def delete(
        self,
        entity: str,
        record_id: Any,
        user: UserContext | None,
        soft: bool | None = None,
    ) -> DeleteResult:
        """Delete a record, cascading to its detail children.

        Args:
            entity: Model name
            record_id: Primary key of the record
            user: Acting user
            soft: Force hard delete with False; None/True soft-deletes when supported

        Raises:
            ForbiddenError: Access denied, or the actor deleting their own identity
            RecordNotFoundError: Missing or already soft-deleted record
            DataConflictError: Integrity/data violation (transaction rolled back)
        """
        schema = self.schemas.load_schema(entity)
        validate_access(schema, "delete", user, self.authorizer)

        model = self.schemas.get_model_instance(entity)
        try:
            record_id = model.coerce_id(record_id)
        except (TypeError, ValueError) as exc:
            raise RecordNotFoundError(entity, record_id) from exc

        if (
            self.is_identity_entity(schema)
            and user is not None
            and user.user_id is not None
            and str(user.user_id) == str(record_id)
        ):
            logger.warning("Rejected self-deletion of %s %s by user %s", entity, record_id, user.user_id)
            raise ForbiddenError(
                {"action": "delete", "entity": entity, "record_id": record_id, "reason": "self_delete"}
            )

        parent_soft = model.supports_soft_delete and soft is not False

        try:
            with self.engine.begin() as conn:
                record = model.find(conn, record_id)
                if record is None:
                    raise RecordNotFoundError(entity, record_id)

                cascaded = self.cascade_delete_children(conn, schema, record_id, parent_soft)
                process_relationship_actions(conn, model, record_id, {}, "on_delete", user)

                if parent_soft:
                    model.soft_delete(conn, record_id)
                else:
                    model.hard_delete(conn, record_id)
        except (IntegrityError, DataError) as exc:
            logger.error("Delete of %s %s rolled back: %s", entity, record_id, exc.orig)
            raise DataConflictError(entity, str(exc.orig)) from exc

        logger.info(
            "Deleted %s %s (%s), cascaded=%s",
            entity,
            record_id,
            "soft" if parent_soft else "hard",
            cascaded,
        )
        result = DeleteResult(model=entity, record_id=record_id, soft=parent_soft, cascaded=cascaded)
        if self.activity is not None:
            self.activity.record(
                make_entry("delete", entity, record_id, user, soft=parent_soft, cascaded=cascaded)
            )
        return result

    def cascade_delete_children(
        self, conn: Connection, schema: SchemaDocument, parent_id: Any, parent_soft: bool
    ) -> dict[str, int]:
        """Delete every cascade-enabled child row of the parent.

        A child row is soft-deleted only when the parent delete is soft, the
        child supports soft delete, and the detail's mode is not ``hard``.

        Returns:
            Child model name to number of rows deleted
        """
        counts: dict[str, int] = {}
        for detail in schema.details:
            if not detail.cascade_delete:
                logger.debug("Cascade disabled for %s -> %s", schema.model, detail.model)
                continue

            child = self.schemas.get_model_instance(detail.model)
            try:
                rows = child.rows_where(conn, detail.foreign_key, parent_id)
                soft = (
                    parent_soft
                    and child.supports_soft_delete
                    and detail.cascade_delete_mode is not CascadeMode.HARD
                )
                for row in rows:
                    child_id = row[child.primary_key]
                    if soft:
                        child.soft_delete(conn, child_id)
                    else:
                        child.hard_delete(conn, child_id)
                    logger.debug(
                        "%s deleted %s %s", "Soft" if soft else "Hard", detail.model, child_id
                    )
            except Exception:
                logger.error(
                    "Cascade delete failed: parent=%s %s child=%s foreign_key=%s",
                    schema.model,
                    parent_id,
                    detail.model,
                    detail.foreign_key,
                )
                raise
            counts[detail.model] = len(rows)
        return counts
