"""Dynamic model configured from a schema document.

A DynamicModel maps one schema onto a SQLAlchemy Core table. Instances (and
their MetaData) are built per request and never shared, so configuring one
model can never leak into another.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import Column, Integer, MetaData, Select, Table, Text, delete, insert, select, update
from sqlalchemy.engine import Connection

from crudforge.actions.fields import editable_fields, transform_field_value
from crudforge.core.types import get_column_type
from crudforge.errors import ConfigurationError
from crudforge.persistence.soft_delete import (
    DEFAULT_MECHANISM,
    SoftDeleteMechanism,
    SoftDeleteRegistry,
    utc_now,
)
from crudforge.schema.types import RelationshipKind, SchemaDocument

if TYPE_CHECKING:
    from crudforge.persistence.relationships import Relation

logger = logging.getLogger(__name__)

CREATED_AT = "created_at"
UPDATED_AT = "updated_at"


class ModelProvider(Protocol):
    """Anything that can build a DynamicModel by entity name."""

    def get_model_instance(self, entity: str, connection: str | None = None) -> DynamicModel: ...


class DynamicModel:
    """Schema-configured data access for one entity.

    Every operation takes an explicit Connection; callers own the transaction.

    Example:
        model = service.get_model_instance("groups")
        with engine.begin() as conn:
            group = model.create(conn, {"name": "Admins"})
            users = model.related_rows(conn, "users", group["id"])
    """

    def __init__(
        self,
        schema: SchemaDocument,
        models: ModelProvider | None = None,
        soft_delete_mechanism: str = DEFAULT_MECHANISM,
    ):
        self.schema = schema
        self.models = models
        self.metadata = MetaData()
        self.soft_delete_mechanism = self._resolve_soft_delete(soft_delete_mechanism)
        self.table = self._build_table()
        self.fillable = editable_fields(schema)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def _resolve_soft_delete(self, name: str) -> SoftDeleteMechanism | None:
        if not self.schema.soft_delete:
            return None
        if not SoftDeleteRegistry.is_registered(name):
            logger.debug(
                "Soft delete requested by '%s' but mechanism '%s' is not registered",
                self.schema.model,
                name,
            )
            return None
        return SoftDeleteRegistry.get(name)

    def _build_table(self) -> Table:
        schema = self.schema
        columns: list[Column] = []
        for name, field in schema.fields.items():
            if name == schema.primary_key:
                columns.append(
                    Column(name, get_column_type(field.type), primary_key=True, autoincrement=True)
                )
            else:
                columns.append(Column(name, get_column_type(field.type)))

        declared = set(schema.fields)
        if schema.primary_key not in declared:
            columns.insert(0, Column(schema.primary_key, Integer, primary_key=True, autoincrement=True))
        if schema.timestamps:
            for name in (CREATED_AT, UPDATED_AT):
                if name not in declared:
                    columns.append(Column(name, Text))
        if self.soft_delete_mechanism and self.soft_delete_mechanism.column not in declared:
            columns.append(Column(self.soft_delete_mechanism.column, Text))

        return Table(schema.table, self.metadata, *columns)

    @property
    def name(self) -> str:
        return self.schema.model

    @property
    def primary_key(self) -> str:
        return self.schema.primary_key

    @property
    def pk_column(self) -> Column:
        return self.table.c[self.primary_key]

    @property
    def supports_soft_delete(self) -> bool:
        return self.soft_delete_mechanism is not None

    def coerce_id(self, value: Any) -> Any:
        """Convert an external id (e.g. a URL segment) to the primary key's type.

        Raises:
            ValueError: If the value does not fit the key type
        """
        pk_field = self.schema.get_field(self.primary_key)
        if pk_field is not None:
            return transform_field_value(pk_field, value)
        if isinstance(self.pk_column.type, Integer) and not isinstance(value, int):
            return int(value)
        return value

    def has_column(self, name: str) -> bool:
        return name in self.table.c

    def column(self, name: str) -> Column:
        """Get a column by name.

        Raises:
            ConfigurationError: If the table has no such column
        """
        if name not in self.table.c:
            raise ConfigurationError(f"Model '{self.name}' has no column '{name}'")
        return self.table.c[name]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def live_clause(self):
        """WHERE clause matching rows that are not soft-deleted (None if n/a)."""
        if not self.soft_delete_mechanism:
            return None
        return self.table.c[self.soft_delete_mechanism.column].is_(None)

    def select(self, with_trashed: bool = False) -> Select:
        query = select(self.table)
        clause = self.live_clause()
        if clause is not None and not with_trashed:
            query = query.where(clause)
        return query

    def find(self, conn: Connection, record_id: Any, with_trashed: bool = False) -> dict[str, Any] | None:
        query = self.select(with_trashed).where(self.pk_column == record_id)
        row = conn.execute(query).mappings().first()
        return dict(row) if row else None

    def rows_where(
        self, conn: Connection, column: str, value: Any, with_trashed: bool = False
    ) -> list[dict[str, Any]]:
        query = self.select(with_trashed).where(self.column(column) == value)
        return [dict(r) for r in conn.execute(query).mappings()]

    def is_soft_deleted(self, row: dict[str, Any]) -> bool:
        if not self.soft_delete_mechanism:
            return False
        return self.soft_delete_mechanism.is_deleted(row)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def fill(self, data: dict[str, Any]) -> dict[str, Any]:
        """Keep only fillable keys, coerced to their storage types."""
        return {
            name: transform_field_value(self.schema.fields[name], data[name])
            for name in self.fillable
            if name in data
        }

    def create(self, conn: Connection, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return it as stored.

        Declared defaults fill missing fillable keys; a caller-supplied
        primary key is kept when the key is not auto-incremented.
        """
        values = self.fill(data)
        for name in self.fillable:
            default = self.schema.fields[name].default
            if name not in values and default is not None:
                values[name] = default

        pk = self.primary_key
        pk_field = self.schema.get_field(pk)
        if data.get(pk) is not None and (pk_field is None or not pk_field.auto_increment):
            values[pk] = data[pk]

        if self.schema.timestamps:
            now = utc_now()
            values.setdefault(CREATED_AT, now)
            values.setdefault(UPDATED_AT, now)

        result = conn.execute(insert(self.table).values(**values))
        record_id = values.get(pk)
        if record_id is None:
            record_id = result.inserted_primary_key[0]
        logger.debug("Created %s record %s", self.name, record_id)
        return self.find(conn, record_id, with_trashed=True) or {}

    def update(self, conn: Connection, record_id: Any, data: dict[str, Any]) -> dict[str, Any] | None:
        """Update fillable fields; returns the updated row or None if missing."""
        values = self.fill(data)
        if self.schema.timestamps:
            values[UPDATED_AT] = utc_now()
        if not values:
            return self.find(conn, record_id)

        result = conn.execute(
            update(self.table).where(self.pk_column == record_id).values(**values)
        )
        if result.rowcount == 0:
            return None
        return self.find(conn, record_id, with_trashed=True)

    def hard_delete(self, conn: Connection, record_id: Any) -> int:
        result = conn.execute(delete(self.table).where(self.pk_column == record_id))
        return result.rowcount

    def soft_delete(self, conn: Connection, record_id: Any) -> int:
        """Mark a row deleted. A no-op when soft delete is not active."""
        mechanism = self.soft_delete_mechanism
        if mechanism is None:
            logger.debug("Soft delete not active for '%s'; skipping", self.name)
            return 0
        result = conn.execute(
            update(self.table)
            .where(self.pk_column == record_id)
            .values({mechanism.column: mechanism.marker()})
        )
        return result.rowcount

    def restore(self, conn: Connection, record_id: Any) -> int:
        mechanism = self.soft_delete_mechanism
        if mechanism is None:
            logger.debug("Soft delete not active for '%s'; nothing to restore", self.name)
            return 0
        result = conn.execute(
            update(self.table).where(self.pk_column == record_id).values({mechanism.column: None})
        )
        return result.rowcount

    def initialize(self, conn: Connection) -> None:
        """Create the table if it does not exist (development and tests)."""
        self.metadata.create_all(conn)

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def relation(self, name: str) -> Relation:
        """Resolve a named relationship into a queryable Relation.

        Raises:
            ConfigurationError: Unknown relationship, missing model provider,
                or an unset/unloadable through entity
        """
        from crudforge.persistence.relationships import RELATIONSHIP_BUILDERS

        spec = self.schema.get_relationship(name)
        if spec is None:
            raise ConfigurationError(f"Model '{self.name}' has no relationship '{name}'")
        if self.models is None:
            raise ConfigurationError(f"Model '{self.name}' cannot resolve related models")

        through = None
        if spec.kind is RelationshipKind.BELONGS_TO_MANY_THROUGH:
            if not spec.through:
                raise ConfigurationError(
                    f"Relationship '{name}' on '{self.name}' requires a 'through' entity"
                )
            through = self.models.get_model_instance(spec.through)

        target = self.models.get_model_instance(spec.target)
        return RELATIONSHIP_BUILDERS[spec.kind](self, spec, target, through)

    def related_rows(self, conn: Connection, name: str, parent_id: Any) -> list[dict[str, Any]]:
        query = self.relation(name).select(parent_id)
        return [dict(r) for r in conn.execute(query).mappings()]
