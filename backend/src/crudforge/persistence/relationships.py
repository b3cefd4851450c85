"""Relationship builders keyed by RelationshipKind.

Each builder turns a RelationshipSpec plus resolved participant models into a
Relation whose ``select(parent_id)`` yields the related target rows. Pivot
tables are not schema entities; they are addressed as lightweight
``table()``/``column()`` clauses.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, column, select, table
from sqlalchemy.sql.expression import TableClause

from crudforge.errors import ConfigurationError
from crudforge.persistence.model import DynamicModel
from crudforge.schema.types import RelationshipKind, RelationshipSpec


@dataclass
class Relation:
    """A resolved relationship from one parent model to a target model.

    Attributes:
        spec: The declaring RelationshipSpec
        parent: Model that declares the relationship
        target: Model whose rows the relationship yields
        query: Builds the target SELECT for a parent id
        pivot: Pivot table for belongs_to_many (None otherwise)
    """

    spec: RelationshipSpec
    parent: DynamicModel
    target: DynamicModel
    query: Callable[[Any], Select]
    pivot: TableClause | None = None

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def kind(self) -> RelationshipKind:
        return self.spec.kind

    def select(self, parent_id: Any) -> Select:
        return self.query(parent_id)


def _pivot(name: str, *keys: str) -> TableClause:
    return table(name, *(column(k) for k in keys))


def _require(spec: RelationshipSpec, *keys: str) -> None:
    missing = [k for k in keys if not getattr(spec, k)]
    if missing:
        raise ConfigurationError(
            f"Relationship '{spec.name}' ({spec.kind.value}) is missing: {', '.join(missing)}"
        )


def build_has_many(
    parent: DynamicModel,
    spec: RelationshipSpec,
    target: DynamicModel,
    through: DynamicModel | None = None,
) -> Relation:
    """target.foreign_key = parent.local_key"""
    _require(spec, "foreign_key")
    foreign = target.column(spec.foreign_key)

    if spec.local_key and spec.local_key != parent.primary_key:
        local = parent.column(spec.local_key)

        def query(parent_id: Any) -> Select:
            keys = (
                select(local)
                .where(parent.pk_column == parent_id)
                .correlate(None)
                .scalar_subquery()
            )
            return target.select().where(foreign.in_(keys))

        return Relation(spec=spec, parent=parent, target=target, query=query)

    def query(parent_id: Any) -> Select:
        return target.select().where(foreign == parent_id)

    return Relation(spec=spec, parent=parent, target=target, query=query)


def build_belongs_to_many(
    parent: DynamicModel,
    spec: RelationshipSpec,
    target: DynamicModel,
    through: DynamicModel | None = None,
) -> Relation:
    """parent -> pivot -> target"""
    _require(spec, "pivot_table", "foreign_key", "related_key")
    pivot = _pivot(spec.pivot_table, spec.foreign_key, spec.related_key)

    def query(parent_id: Any) -> Select:
        return (
            target.select()
            .join(pivot, pivot.c[spec.related_key] == target.pk_column)
            .where(pivot.c[spec.foreign_key] == parent_id)
        )

    return Relation(spec=spec, parent=parent, target=target, query=query, pivot=pivot)


def build_belongs_to_many_through(
    parent: DynamicModel,
    spec: RelationshipSpec,
    target: DynamicModel,
    through: DynamicModel | None = None,
) -> Relation:
    """parent -> first pivot -> through -> second pivot -> target (DISTINCT)

    Raises:
        ConfigurationError: If ``through`` is not a resolved DynamicModel
    """
    if not isinstance(through, DynamicModel):
        raise ConfigurationError(
            f"Relationship '{spec.name}' needs a resolved through model, got {type(through).__name__}"
        )
    _require(
        spec,
        "first_pivot_table",
        "first_foreign_key",
        "first_related_key",
        "second_pivot_table",
        "second_foreign_key",
        "second_related_key",
    )
    first = _pivot(spec.first_pivot_table, spec.first_foreign_key, spec.first_related_key)
    second = _pivot(spec.second_pivot_table, spec.second_foreign_key, spec.second_related_key)

    def query(parent_id: Any) -> Select:
        q = (
            target.select()
            .distinct()
            .join(second, second.c[spec.second_related_key] == target.pk_column)
            .join(through.table, through.pk_column == second.c[spec.second_foreign_key])
            .join(first, first.c[spec.first_related_key] == through.pk_column)
            .where(first.c[spec.first_foreign_key] == parent_id)
        )
        live = through.live_clause()
        if live is not None:
            q = q.where(live)
        return q

    return Relation(spec=spec, parent=parent, target=target, query=query)


RelationshipBuilder = Callable[
    [DynamicModel, RelationshipSpec, DynamicModel, DynamicModel | None], Relation
]

RELATIONSHIP_BUILDERS: dict[RelationshipKind, RelationshipBuilder] = {
    RelationshipKind.HAS_MANY: build_has_many,
    RelationshipKind.BELONGS_TO_MANY: build_belongs_to_many,
    RelationshipKind.BELONGS_TO_MANY_THROUGH: build_belongs_to_many_through,
}
