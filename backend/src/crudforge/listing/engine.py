"""Generic listing engine: whitelisted filter, search, sort and paginate.

Every column the engine touches comes from one of four explicit whitelists
configured by setup_listing(). Request parameters naming anything else are
dropped (and logged at DEBUG), so they have no observable effect.

Usage:
    engine = ListingEngine(settings)
    engine.setup_listing(model, sortable, filterable, list_fields, searchable)
    engine.set_options(parse_query_params(request.query_params.multi_items()))
    with db.connect() as conn:
        result = engine.get_results(conn)   # {"rows": [...], "count": N}
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy import Select, Text, and_, asc, cast, desc, func, or_, select
from sqlalchemy.engine import Connection
from sqlalchemy.sql.elements import ColumnElement

from crudforge.actions.fields import transform_field_value
from crudforge.config import Settings
from crudforge.core.types import (
    FILTER_CONTAINS,
    FILTER_ENDS_WITH,
    FILTER_EQUALS,
    FILTER_OPERATORS,
    FILTER_RANGE,
    FILTER_STARTS_WITH,
    get_field_type,
)
from crudforge.errors import ConfigurationError
from crudforge.persistence.model import DynamicModel
from crudforge.schema.types import FieldSpec

logger = logging.getLogger(__name__)

SORT_DIRECTIONS = {"asc": asc, "desc": desc}

# Largest OFFSET a 64-bit SQL integer can carry
MAX_OFFSET = 2**63 - 1

Constraint = ColumnElement[bool] | Callable[[DynamicModel], ColumnElement[bool]]


def _as_text(col):
    """LIKE operands must be text; cast numeric columns."""
    return col if isinstance(col.type, Text) else cast(col, Text)


class ListingEngine:
    """Builds and runs one paginated listing query for a DynamicModel."""

    def __init__(self, settings: Settings | None = None):
        settings = settings or Settings()
        self.max_page_size = settings.max_page_size
        self.default_page_size = settings.default_page_size
        self.model: DynamicModel | None = None
        self.sortable: list[str] = []
        self.filterable: list[str] = []
        self.list_fields: list[str] = []
        self.searchable: list[str] = []
        self._constraints: list[ColumnElement[bool]] = []
        self._reset_options()

    def _reset_options(self) -> None:
        self._filters: list[ColumnElement[bool]] = []
        self._search: ColumnElement[bool] | None = None
        self._order: list[Any] = []
        self.page = 1
        self.size = self.default_page_size

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    @staticmethod
    def _whitelist(model: DynamicModel, kind: str, names: Iterable[str]) -> list[str]:
        kept = []
        for name in names:
            if model.has_column(name):
                kept.append(name)
            else:
                logger.debug("Dropping unknown %s field '%s' on %s", kind, name, model.name)
        return kept

    def setup_listing(
        self,
        model: DynamicModel,
        sortable: Iterable[str],
        filterable: Iterable[str],
        list_fields: Iterable[str],
        searchable: Iterable[str],
    ) -> ListingEngine:
        """Bind the engine to a model and its four field whitelists."""
        self.model = model
        self.sortable = self._whitelist(model, "sortable", sortable)
        self.filterable = self._whitelist(model, "filterable", filterable)
        self.list_fields = self._whitelist(model, "list", list_fields)
        self.searchable = self._whitelist(model, "searchable", searchable)
        self._constraints = []
        self._reset_options()
        logger.debug(
            "Listing configured for %s: sortable=%s filterable=%s list=%s searchable=%s",
            model.name,
            self.sortable,
            self.filterable,
            self.list_fields,
            self.searchable,
        )
        return self

    def _require_model(self) -> DynamicModel:
        if self.model is None:
            raise ConfigurationError("Listing engine used before setup_listing()")
        return self.model

    def _field(self, name: str) -> FieldSpec:
        model = self._require_model()
        return model.schema.get_field(name) or FieldSpec(name=name)

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    def apply_filters(self, filters: dict[str, Any] | None) -> ListingEngine:
        """Add one WHERE clause per whitelisted, coercible filter value."""
        model = self._require_model()
        for name, value in (filters or {}).items():
            if name not in self.filterable:
                logger.debug("Dropping filter on non-filterable field '%s'", name)
                continue
            clause = self._filter_clause(self._field(name), model.column(name), value)
            if clause is not None:
                self._filters.append(clause)
        return self

    def _filter_clause(self, field: FieldSpec, col, value: Any) -> ColumnElement[bool] | None:
        operator = field.filter_type
        if operator not in FILTER_OPERATORS:
            operator = get_field_type(field.type).filter_operator

        if operator == FILTER_RANGE:
            return self._range_clause(field, col, value)

        if isinstance(value, dict):
            logger.debug("Dropping structured value for %s filter '%s'", operator, field.name)
            return None
        if isinstance(value, list):
            coerced = [v for v in (self._coerce(field, item) for item in value) if v is not None]
            if not coerced:
                return None
            if operator == FILTER_EQUALS:
                return col.in_(coerced)
            return or_(*(self._text_match(operator, col, v) for v in coerced))

        coerced = self._coerce(field, value)
        if coerced is None:
            return None
        if operator == FILTER_EQUALS:
            return col == coerced
        return self._text_match(operator, col, coerced)

    @staticmethod
    def _text_match(operator: str, col, value: Any) -> ColumnElement[bool]:
        text = str(value)
        target = _as_text(col)
        if operator == FILTER_CONTAINS:
            return target.contains(text, autoescape=True)
        if operator == FILTER_STARTS_WITH:
            return target.startswith(text, autoescape=True)
        if operator == FILTER_ENDS_WITH:
            return target.endswith(text, autoescape=True)
        return col == value

    def _range_clause(self, field: FieldSpec, col, value: Any) -> ColumnElement[bool] | None:
        if isinstance(value, dict):
            low = value.get("min", value.get("from"))
            high = value.get("max", value.get("to"))
        elif isinstance(value, (list, tuple)):
            low = value[0] if len(value) > 0 else None
            high = value[1] if len(value) > 1 else None
        elif isinstance(value, str) and "," in value:
            low, _, high = value.partition(",")
        else:
            # Single value: exact match on a range-typed field
            coerced = self._coerce(field, value)
            return None if coerced is None else col == coerced

        clauses = []
        low = self._coerce(field, low)
        high = self._coerce(field, high)
        if low is not None:
            clauses.append(col >= low)
        if high is not None:
            clauses.append(col <= high)
        if not clauses:
            return None
        return and_(*clauses)

    @staticmethod
    def _coerce(field: FieldSpec, value: Any) -> Any:
        if value is None or (isinstance(value, str) and value.strip() == ""):
            return None
        try:
            return transform_field_value(field, value)
        except (TypeError, ValueError):
            logger.debug("Dropping uncoercible filter value %r for '%s'", value, field.name)
            return None

    def apply_search(self, term: str | None) -> ListingEngine:
        """OR of LIKE %term% over searchable fields; no-op when none are set."""
        if not self.searchable:
            return self
        if term is None or not term.strip():
            return self
        model = self._require_model()
        text = term.strip()
        self._search = or_(
            *(_as_text(model.column(name)).contains(text, autoescape=True) for name in self.searchable)
        )
        return self

    def apply_sort(self, sorts: dict[str, str] | None) -> ListingEngine:
        """Order by whitelisted fields; falls back to default_sort, then primary key."""
        model = self._require_model()
        order = []
        for name, direction in (sorts or {}).items():
            fn = SORT_DIRECTIONS.get(str(direction).lower())
            if name not in self.sortable or fn is None:
                logger.debug("Ignoring sort %s=%r", name, direction)
                continue
            order.append(fn(model.column(name)))

        if not order:
            for name, direction in model.schema.default_sort.items():
                fn = SORT_DIRECTIONS.get(str(direction).lower())
                if fn is not None and model.has_column(name):
                    order.append(fn(model.column(name)))
        if not order:
            order.append(asc(model.pk_column))

        self._order = order
        return self

    def paginate(self, page: int | None, size: int | None) -> ListingEngine:
        """Set page and size; size is capped at max_page_size.

        Pages past the largest representable offset are clamped to it and
        yield no rows.
        """
        if size is None or size < 1:
            size = self.default_page_size
        self.size = min(size, self.max_page_size)
        page = page if page is not None and page >= 1 else 1
        self.page = min(page, MAX_OFFSET // self.size + 1)
        return self

    def extend_query(self, constraint: Constraint) -> ListingEngine:
        """Add a WHERE constraint (clause or callable taking the model)."""
        model = self._require_model()
        if not isinstance(constraint, ColumnElement):
            constraint = constraint(model)
        self._constraints.append(constraint)
        return self

    def set_options(self, params: dict[str, Any]) -> ListingEngine:
        """Apply parsed listing options (see parse_query_params)."""
        self._reset_options()
        self.apply_filters(params.get("filters"))
        self.apply_search(params.get("search"))
        self.apply_sort(params.get("sorts"))
        self.paginate(params.get("page"), params.get("size"))
        return self

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _columns(self) -> list[Any]:
        model = self._require_model()
        names = [model.primary_key] + [n for n in self.list_fields if n != model.primary_key]
        return [model.column(n) for n in names]

    def build_query(self) -> Select:
        """Filtered (but unsorted, unpaginated) SELECT of the listed columns."""
        model = self._require_model()
        query = model.select().with_only_columns(*self._columns())
        for clause in self._constraints + self._filters:
            query = query.where(clause)
        if self._search is not None:
            query = query.where(self._search)
        return query

    def get_results(self, conn: Connection) -> dict[str, Any]:
        """Run the listing.

        Returns:
            ``{"rows": [...], "count": N}`` where count is the total number
            of matching rows before pagination
        """
        if not self._order:
            self.apply_sort(None)

        query = self.build_query()
        count = conn.execute(select(func.count()).select_from(query.subquery())).scalar_one()

        page_query = query.order_by(*self._order).limit(self.size).offset((self.page - 1) * self.size)
        rows = [dict(r) for r in conn.execute(page_query).mappings()]
        return {"rows": rows, "count": count}
