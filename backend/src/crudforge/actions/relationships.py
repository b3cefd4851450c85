"""Pivot-table relationship actions: attach, sync and detach.

Schemas declare actions per lifecycle event on belongs_to_many relationships:

    relationships:
      - name: roles
        type: belongs_to_many
        pivot_table: role_users
        foreign_key: user_id
        related_key: role_id
        actions:
          on_create:
            attach:
              - related_id: 1
                pivot_data: {created_at: now, assigned_by: current_user}
          on_update:
            sync: role_ids
          on_delete:
            detach: all

All operations run on the caller's connection, inside the caller's transaction.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import column, delete, insert, select, table
from sqlalchemy.engine import Connection

from crudforge.auth.types import UserContext
from crudforge.errors import ConfigurationError
from crudforge.persistence.model import DynamicModel
from crudforge.persistence.relationships import Relation
from crudforge.schema.types import RelationshipKind

logger = logging.getLogger(__name__)

EVENTS = ("on_create", "on_update", "on_delete")


def process_pivot_data(pivot_data: dict[str, Any], user: UserContext | None) -> dict[str, Any]:
    """Resolve the special values ``now``, ``current_user`` and ``current_date``."""
    now = datetime.now(UTC)
    processed: dict[str, Any] = {}
    for key, value in pivot_data.items():
        if value == "now":
            processed[key] = now.isoformat()
        elif value == "current_user":
            processed[key] = user.user_id if user else None
        elif value == "current_date":
            processed[key] = now.date().isoformat()
        else:
            processed[key] = value
    return processed


def _pivot_relation(relation: Relation) -> Relation:
    if relation.kind is not RelationshipKind.BELONGS_TO_MANY or relation.pivot is None:
        raise ConfigurationError(
            f"Relationship '{relation.name}' ({relation.kind.value}) has no pivot table to modify"
        )
    return relation


def _coerce_related_ids(relation: Relation, ids: list[Any]) -> list[Any]:
    target = relation.target
    result = []
    for value in ids:
        if value is None or value == "":
            continue
        result.append(target.coerce_id(value))
    return result


def attach(
    conn: Connection,
    relation: Relation,
    parent_id: Any,
    related_id: Any,
    pivot_data: dict[str, Any] | None = None,
) -> None:
    """Insert one pivot row linking parent and related record."""
    spec = _pivot_relation(relation).spec
    values = {spec.foreign_key: parent_id, spec.related_key: related_id, **(pivot_data or {})}
    pivot = table(spec.pivot_table, *(column(k) for k in values))
    conn.execute(insert(pivot).values(values))


def detach(
    conn: Connection, relation: Relation, parent_id: Any, related_ids: list[Any] | None = None
) -> int:
    """Remove pivot rows for the parent (all of them when ``related_ids`` is None)."""
    pivot = _pivot_relation(relation).pivot
    spec = relation.spec
    query = delete(pivot).where(pivot.c[spec.foreign_key] == parent_id)
    if related_ids is not None:
        query = query.where(pivot.c[spec.related_key].in_(related_ids))
    return conn.execute(query).rowcount


def related_ids(conn: Connection, relation: Relation, parent_id: Any) -> list[Any]:
    pivot = _pivot_relation(relation).pivot
    spec = relation.spec
    query = select(pivot.c[spec.related_key]).where(pivot.c[spec.foreign_key] == parent_id)
    return list(conn.execute(query).scalars())


def sync(conn: Connection, relation: Relation, parent_id: Any, ids: list[Any]) -> dict[str, list[Any]]:
    """Make the parent's pivot rows match ``ids`` exactly.

    Returns:
        Dict with the ``attached`` and ``detached`` ids
    """
    wanted = _coerce_related_ids(relation, ids)
    current = related_ids(conn, relation, parent_id)

    to_detach = [i for i in current if i not in wanted]
    to_attach = [i for i in wanted if i not in current]
    if to_detach:
        detach(conn, relation, parent_id, to_detach)
    for related_id in to_attach:
        attach(conn, relation, parent_id, related_id)
    return {"attached": to_attach, "detached": to_detach}


def process_relationship_actions(
    conn: Connection,
    model: DynamicModel,
    record_id: Any,
    data: dict[str, Any],
    event: str,
    user: UserContext | None = None,
) -> None:
    """Run every action the schema declares for ``event`` on the record.

    Args:
        conn: Connection inside the caller's transaction
        model: The record's model
        record_id: The record's primary key value
        data: Request data (sync reads related ids from it)
        event: "on_create", "on_update" or "on_delete"
        user: Acting user (for ``current_user`` pivot values)
    """
    for spec in model.schema.relationships:
        action = spec.actions.get(event)
        if not isinstance(action, dict):
            continue

        relation = model.relation(spec.name)
        try:
            if isinstance(action.get("attach"), list):
                for item in action["attach"]:
                    if not isinstance(item, dict) or "related_id" not in item:
                        logger.warning(
                            "Invalid attach configuration on %s.%s (%s)", model.name, spec.name, event
                        )
                        continue
                    pivot_data = process_pivot_data(item.get("pivot_data") or {}, user)
                    attach(conn, relation, record_id, item["related_id"], pivot_data)
                    logger.debug("Attached %s.%s -> %s", model.name, spec.name, item["related_id"])

            if event == "on_update" and "sync" in action:
                field = action["sync"] if isinstance(action["sync"], str) else f"{spec.name}_ids"
                if field not in data:
                    logger.debug("Sync field '%s' absent for %s.%s", field, model.name, spec.name)
                else:
                    raw = data[field] if isinstance(data[field], list) else [data[field]]
                    result = sync(conn, relation, record_id, raw)
                    logger.debug("Synced %s.%s: %s", model.name, spec.name, result)

            if "detach" in action:
                config = action["detach"]
                if config == "all":
                    detach(conn, relation, record_id)
                elif isinstance(config, list):
                    detach(conn, relation, record_id, _coerce_related_ids(relation, config))
                else:
                    logger.warning(
                        "Invalid detach configuration on %s.%s: %r", model.name, spec.name, config
                    )
                    continue
                logger.debug("Detached %s.%s (%s)", model.name, spec.name, config)
        except Exception:
            logger.error(
                "Relationship action failed: event=%s model=%s relationship=%s",
                event,
                model.name,
                spec.name,
            )
            raise
