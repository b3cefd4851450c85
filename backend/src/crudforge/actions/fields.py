"""Field classification helpers shared by every CRUD operation.

Each helper answers one question about a schema ("which fields may be
listed?", "which may be written?") from explicit flags only. Nothing falls
back to "all fields".
"""

from __future__ import annotations

import json
import logging
from typing import Any

from crudforge.core.types import get_field_type, is_sensitive_type
from crudforge.schema.types import FieldSpec, SchemaDocument

logger = logging.getLogger(__name__)

TIMESTAMP_FIELDS = frozenset(
    {"created_at", "updated_at", "deleted_at", "createdAt", "updatedAt", "deletedAt"}
)

VALIDATION_KEYS = ("required", "length", "email", "pattern", "integer", "numeric", "unique")

_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})


def is_timestamp_field(name: str) -> bool:
    return name in TIMESTAMP_FIELDS


def is_listable(field: FieldSpec) -> bool:
    """Explicit ``listable`` wins; otherwise the field must opt in via show_in.

    Readonly, timestamp and sensitive fields are never listed by default.
    """
    if field.listable is not None:
        return field.listable
    if field.show_in is None or "list" not in field.show_in:
        return False
    if field.readonly or is_timestamp_field(field.name):
        return False
    return not is_sensitive_type(field.type)


def is_editable(field: FieldSpec) -> bool:
    if field.editable is False:
        return False
    if field.readonly or field.auto_increment or field.computed:
        return False
    if is_timestamp_field(field.name):
        return field.editable is True
    return True


def listable_fields(schema: SchemaDocument) -> list[str]:
    return [name for name, f in schema.fields.items() if is_listable(f)]


def restrict_list_fields(schema: SchemaDocument, names: list[str]) -> list[str]:
    """Narrow a configured column list (e.g. a detail's ``list_fields``).

    An explicit ``listable`` flag still wins; sensitive types are dropped
    unless marked ``listable: true``.
    """
    allowed = []
    for name in names:
        field = schema.fields.get(name)
        if field is not None:
            if field.listable is False:
                continue
            if field.listable is None and is_sensitive_type(field.type):
                logger.debug("Dropping sensitive field '%s' from %s list", name, schema.model)
                continue
        allowed.append(name)
    return allowed


def editable_fields(schema: SchemaDocument) -> list[str]:
    return [name for name, f in schema.fields.items() if is_editable(f)]


def sortable_fields(schema: SchemaDocument) -> list[str]:
    return [name for name, f in schema.fields.items() if f.sortable]


def filterable_fields(schema: SchemaDocument) -> list[str]:
    return [name for name, f in schema.fields.items() if f.filterable]


def searchable_fields(schema: SchemaDocument) -> list[str]:
    return [name for name, f in schema.fields.items() if f.searchable]


def validation_rules(schema: SchemaDocument) -> dict[str, dict[str, Any]]:
    """Collect per-field validation rules.

    Returns:
        Dict of field name to its rules; fields without rules are omitted
    """
    rules: dict[str, dict[str, Any]] = {}
    for name, field in schema.fields.items():
        field_rules: dict[str, Any] = {}
        for key, value in field.validation.items():
            if key in VALIDATION_KEYS:
                field_rules[key] = value
            else:
                logger.debug("Ignoring unknown validation rule '%s' on %s.%s", key, schema.model, name)
        if field.required:
            field_rules.setdefault("required", True)
        if field_rules:
            rules[name] = field_rules
    return rules


def transform_field_value(field: FieldSpec, value: Any) -> Any:
    """Coerce a raw input value to the field's storage representation.

    Raises:
        ValueError: If the value cannot be coerced (e.g. "abc" for an integer)
    """
    if value is None:
        return None
    if field.type in ("date", "datetime"):
        return value

    cast = get_field_type(field.type).cast
    if cast == "int":
        if isinstance(value, bool):
            return int(value)
        return int(str(value).strip()) if isinstance(value, str) else int(value)
    if cast == "float":
        return float(value)
    if cast == "bool":
        if isinstance(value, str):
            return value.strip().lower() not in _FALSE_STRINGS
        return bool(value)
    if cast == "json":
        return value if isinstance(value, str) else json.dumps(value)
    return str(value)
