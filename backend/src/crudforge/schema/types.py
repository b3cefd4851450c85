"""Typed representation of schema documents and their context projections."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RelationshipKind(Enum):
    """Supported relationship kinds.

    ``many_to_many`` is accepted as an alias of ``belongs_to_many``.
    """

    HAS_MANY = "has_many"
    BELONGS_TO_MANY = "belongs_to_many"
    BELONGS_TO_MANY_THROUGH = "belongs_to_many_through"

    @classmethod
    def parse(cls, value: str | None) -> RelationshipKind:
        """Resolve a schema ``type`` string to a kind.

        Raises:
            ValueError: If the string names no known kind
        """
        if value == "many_to_many":
            return cls.BELONGS_TO_MANY
        return cls(value or "")


class CascadeMode(Enum):
    AUTO = "auto"
    HARD = "hard"
    SOFT = "soft"


@dataclass
class FieldSpec:
    name: str
    type: str = "string"
    label: str = ""
    required: bool = False
    readonly: bool = False
    auto_increment: bool = False
    computed: bool = False
    sortable: bool = False
    filterable: bool = False
    searchable: bool = False
    listable: bool | None = None  # None = not declared
    editable: bool | None = None  # None = not declared
    filter_type: str | None = None
    validation: dict[str, Any] = field(default_factory=dict)
    default: Any = None
    show_in: list[str] | None = None  # None = not declared
    description: str | None = None
    placeholder: str | None = None
    width: str | int | None = None
    field_template: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def in_context(self, context: str) -> bool:
        return self.show_in is not None and context in self.show_in


@dataclass
class RelationshipSpec:
    name: str
    kind: RelationshipKind
    target: str
    foreign_key: str | None = None
    local_key: str | None = None
    pivot_table: str | None = None
    related_key: str | None = None
    through: str | None = None
    first_pivot_table: str | None = None
    first_foreign_key: str | None = None
    first_related_key: str | None = None
    second_pivot_table: str | None = None
    second_foreign_key: str | None = None
    second_related_key: str | None = None
    actions: dict[str, dict[str, Any]] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class DetailSpec:
    """A child entity listed under (and cascaded from) a parent record."""

    model: str
    foreign_key: str
    cascade_delete: bool = True
    cascade_delete_mode: CascadeMode = CascadeMode.AUTO
    list_fields: list[str] | None = None
    title: str | None = None


@dataclass
class SchemaDocument:
    model: str
    table: str
    fields: dict[str, FieldSpec]
    primary_key: str = "id"
    timestamps: bool = True
    soft_delete: bool = False
    title: str = ""
    singular_title: str = ""
    description: str | None = None
    title_field: str | None = None
    identity: bool = False
    connection: str | None = None
    relationships: list[RelationshipSpec] = field(default_factory=list)
    permissions: dict[str, str] = field(default_factory=dict)
    default_sort: dict[str, str] = field(default_factory=dict)
    details: list[DetailSpec] = field(default_factory=list)
    actions: list[dict[str, Any]] = field(default_factory=list)
    raw: dict[str, Any] = field(default_factory=dict)

    def get_field(self, name: str) -> FieldSpec | None:
        return self.fields.get(name)

    def get_relationship(self, name: str) -> RelationshipSpec | None:
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None

    def get_detail(self, model: str) -> DetailSpec | None:
        for detail in self.details:
            if detail.model == model:
                return detail
        return None


# ---------------------------------------------------------------------------
# Context projections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldView:
    """Projection of a schema for a single context.

    ``meta`` holds the identification metadata every context shares;
    ``data`` holds the context-specific payload (``fields`` and extras).
    """

    context: str
    meta: dict[str, Any]
    data: dict[str, Any]

    @property
    def fields(self) -> dict[str, dict[str, Any]]:
        return self.data.get("fields", {})

    def to_dict(self) -> dict[str, Any]:
        return {**self.meta, **self.data}


@dataclass(frozen=True)
class NamedContexts:
    """Projection of a schema for several contexts in one round trip."""

    meta: dict[str, Any]
    contexts: dict[str, dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {**self.meta, "contexts": self.contexts}


Projection = SchemaDocument | FieldView | NamedContexts
