"""Context projections of a schema document.

A projection trims a full schema down to what one UI context needs:

    None / "full"       -> the SchemaDocument itself
    "list"              -> FieldView with list fields, default_sort, actions
    "list,form,detail"  -> NamedContexts with shared metadata + one map per context

Projections are computed from the document alone and never mutate it.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any

from crudforge.core.types import is_sensitive_type
from crudforge.schema.cache import FULL_CONTEXT
from crudforge.schema.types import FieldSpec, FieldView, NamedContexts, Projection, SchemaDocument

logger = logging.getLogger(__name__)

LabelTranslator = Callable[[str], str]

KNOWN_CONTEXTS = ("meta", "list", "create", "edit", "form", "detail")

_FORM_EXTRAS = ("placeholder", "description", "default", "icon", "rows")
_SMARTLOOKUP_KEYS = ("lookup_model", "lookup_id", "lookup_desc", "model", "id", "desc")


def filter_for_context(
    schema: SchemaDocument,
    context_spec: str | None,
    translate: LabelTranslator | None = None,
) -> Projection:
    """Project a schema for one or more comma-separated contexts.

    Args:
        schema: Validated schema document
        context_spec: ``None``/``"full"``, a context name, or a comma list
        translate: Optional label translator applied to field labels

    Returns:
        The document unchanged, a FieldView or a NamedContexts
    """
    if context_spec is None or context_spec.strip() in ("", FULL_CONTEXT):
        return schema

    names = [n.strip() for n in context_spec.split(",") if n.strip()]

    if len(names) > 1:
        contexts: dict[str, dict[str, Any]] = {}
        for name in names:
            data = context_data(schema, name, translate)
            if data is None:
                logger.debug("Omitting unknown context '%s' for '%s'", name, schema.model)
                continue
            contexts.setdefault(name, data)
        return NamedContexts(meta=_multi_meta(schema), contexts=contexts)

    data = context_data(schema, names[0], translate)
    if data is None:
        logger.debug("Unknown context '%s' for '%s'; returning full schema", names[0], schema.model)
        return schema
    return FieldView(context=names[0], meta=_base_meta(schema), data=data)


def context_data(
    schema: SchemaDocument, context: str, translate: LabelTranslator | None = None
) -> dict[str, Any] | None:
    """Context-specific payload, or None for an unknown context."""
    if context == "meta":
        return {}
    if context == "list":
        data = _list_data(schema, translate)
    elif context in ("create", "edit"):
        data = {"fields": _form_fields(schema, context, translate)}
    elif context == "form":
        fields = _form_fields(schema, "create", translate)
        for name, entry in _form_fields(schema, "edit", translate).items():
            fields.setdefault(name, entry)
        data = {"fields": fields}
    elif context == "detail":
        data = _detail_data(schema, translate)
    else:
        return None
    return copy.deepcopy(data)


def _base_meta(schema: SchemaDocument) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "model": schema.model,
        "title": schema.title,
        "singular_title": schema.singular_title,
        "primary_key": schema.primary_key,
    }
    if schema.description is not None:
        meta["description"] = schema.description
    if schema.permissions:
        meta["permissions"] = dict(schema.permissions)
    return meta


def _multi_meta(schema: SchemaDocument) -> dict[str, Any]:
    meta = _base_meta(schema)
    if schema.title_field is not None:
        meta["title_field"] = schema.title_field
    if schema.actions:
        meta["actions"] = copy.deepcopy(schema.actions)
    return meta


def _label(field: FieldSpec, translate: LabelTranslator | None) -> str:
    return translate(field.label) if translate else field.label


def _shows_in_list(field: FieldSpec) -> bool:
    if is_sensitive_type(field.type):
        return False
    if field.show_in is not None:
        return "list" in field.show_in
    return field.listable is True


def _list_data(schema: SchemaDocument, translate: LabelTranslator | None) -> dict[str, Any]:
    fields: dict[str, dict[str, Any]] = {}
    for name, field in schema.fields.items():
        if not _shows_in_list(field):
            continue
        entry: dict[str, Any] = {
            "type": field.type,
            "label": _label(field, translate),
            "sortable": field.sortable,
            "filterable": field.filterable,
        }
        if field.width is not None:
            entry["width"] = field.width
        if field.field_template is not None:
            entry["field_template"] = field.field_template
        if field.filter_type is not None and field.filterable:
            entry["filter_type"] = field.filter_type
        fields[name] = entry

    data: dict[str, Any] = {"fields": fields, "default_sort": dict(schema.default_sort)}
    if schema.actions:
        data["actions"] = schema.actions
    return data


def _form_fields(
    schema: SchemaDocument, context: str, translate: LabelTranslator | None
) -> dict[str, dict[str, Any]]:
    fields: dict[str, dict[str, Any]] = {}
    for name, field in schema.fields.items():
        if field.show_in is not None:
            visible = context in field.show_in or "form" in field.show_in
        else:
            visible = field.editable is not False and not (field.readonly or field.auto_increment)
        if not visible:
            continue

        entry: dict[str, Any] = {
            "type": field.type,
            "label": _label(field, translate),
            "required": field.required,
            "editable": field.editable if field.editable is not None else True,
        }
        if field.validation:
            entry["validation"] = field.validation
        for key in _FORM_EXTRAS:
            if field.raw.get(key) is not None:
                entry[key] = field.raw[key]
        if field.show_in is not None:
            entry["show_in"] = list(field.show_in)
        if field.type == "smartlookup":
            for key in _SMARTLOOKUP_KEYS:
                if key in field.raw:
                    entry[key] = field.raw[key]
        fields[name] = entry
    return fields


def _detail_data(schema: SchemaDocument, translate: LabelTranslator | None) -> dict[str, Any]:
    fields: dict[str, dict[str, Any]] = {}
    for name, field in schema.fields.items():
        if field.show_in is not None:
            visible = "detail" in field.show_in
        else:
            visible = field.raw.get("viewable", True) is not False
        if not visible:
            continue

        # Password fields stay readonly in detail views unless declared otherwise
        readonly = field.raw.get("readonly", field.type == "password")
        entry: dict[str, Any] = {
            "type": field.type,
            "label": _label(field, translate),
            "editable": field.editable if field.editable is not None else not readonly,
            "readonly": readonly,
        }
        for key in ("description", "field_template", "default"):
            if field.raw.get(key) is not None:
                entry[key] = field.raw[key]
        fields[name] = entry

    data: dict[str, Any] = {"fields": fields}
    raw = schema.raw
    for key in ("detail", "details"):
        if key in raw:
            data[key] = raw[key]
    if schema.actions:
        data["actions"] = schema.actions
    if "relationships" in raw:
        data["relationships"] = raw["relationships"]
    for key in ("detail_editable", "render_mode", "title_field"):
        if raw.get(key) is not None:
            data[key] = raw[key]
    return data
