"""Generic CRUD API endpoints for schema-described models."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.engine import Engine

from crudforge.actions.activity import ActivityLogger
from crudforge.actions.delete import DeleteAction
from crudforge.actions.fields import (
    filterable_fields,
    listable_fields,
    restrict_list_fields,
    searchable_fields,
    sortable_fields,
)
from crudforge.auth.access import Authorizer, validate_access
from crudforge.auth.types import UserContext
from crudforge.core.types import is_sensitive_type
from crudforge.errors import (
    ConfigurationError,
    DataConflictError,
    ForbiddenError,
    RecordNotFoundError,
    SchemaNotFoundError,
)
from crudforge.listing.engine import ListingEngine
from crudforge.listing.params import parse_query_params
from crudforge.persistence.model import DynamicModel
from crudforge.schema.projection import context_data
from crudforge.schema.service import SchemaService
from crudforge.schema.types import SchemaDocument

logger = logging.getLogger(__name__)


class ListResponse(BaseModel):
    """Response body for listings."""

    rows: list[dict[str, Any]]
    count: int


class RecordResponse(BaseModel):
    """Response body for a single record."""

    data: dict[str, Any]


class DeleteResponse(BaseModel):
    """Response body for a delete."""

    message: str
    model: str
    id: Any
    soft_delete: bool
    cascaded: dict[str, int]


def _get_user_context(request: Request) -> UserContext | None:
    """Extract user context from request state (set by upstream auth middleware)."""
    return getattr(request.state, "user_context", None)


@contextmanager
def _http_errors() -> Iterator[None]:
    """Translate crudforge errors into HTTP responses."""
    try:
        yield
    except (SchemaNotFoundError, RecordNotFoundError) as exc:
        raise HTTPException(404, str(exc)) from exc
    except ForbiddenError as exc:
        raise HTTPException(403, exc.user_message) from exc
    except DataConflictError as exc:
        raise HTTPException(409, str(exc)) from exc
    except ConfigurationError as exc:
        logger.error("Schema configuration error: %s", exc)
        raise HTTPException(500, "Schema configuration error") from exc


def _record_fields(schema: SchemaDocument) -> list[str]:
    """Columns returned for a single record: key, list and detail fields."""
    names = [schema.primary_key] + listable_fields(schema)
    detail = context_data(schema, "detail") or {}
    names.extend(detail.get("fields", {}))

    result = []
    for name in names:
        field = schema.get_field(name)
        if name in result or (field is not None and is_sensitive_type(field.type) and not field.listable):
            continue
        result.append(name)
    return result


def create_crud_router(
    get_schema_service: Callable[[], SchemaService | None],
    get_engine: Callable[[], Engine | None],
    get_authorizer: Callable[[], Authorizer | None],
    get_activity: Callable[[], ActivityLogger | None] = lambda: None,
    get_user: Callable[[Request], UserContext | None] = _get_user_context,
) -> APIRouter:
    """Create the CRUD router with injected dependencies."""
    router = APIRouter(prefix="/api/crud", tags=["crud"])

    def _services() -> tuple[SchemaService, Engine, Authorizer]:
        schemas = get_schema_service()
        engine = get_engine()
        authorizer = get_authorizer()
        if not schemas or not engine or not authorizer:
            raise HTTPException(500, "Service not initialized")
        return schemas, engine, authorizer

    def _listing(schemas: SchemaService, model: DynamicModel, list_fields: list[str] | None = None) -> ListingEngine:
        schema = model.schema
        return ListingEngine(schemas.settings).setup_listing(
            model,
            sortable_fields(schema),
            filterable_fields(schema),
            restrict_list_fields(schema, list_fields) if list_fields else listable_fields(schema),
            searchable_fields(schema),
        )

    @router.get("/{model}/schema")
    def get_schema(model: str, request: Request, context: str | None = None) -> dict[str, Any]:
        """Return the schema projected for one or more comma-separated contexts."""
        schemas, _, authorizer = _services()
        with _http_errors():
            schema = schemas.load_schema(model)
            validate_access(schema, "read", get_user(request), authorizer)
            projection = schemas.get_projection(model, context)

        if isinstance(projection, SchemaDocument):
            return projection.raw
        return projection.to_dict()

    @router.get("/{model}")
    def list_records(model: str, request: Request) -> ListResponse:
        """Paginated, filtered, sorted and searched listing: {rows, count}."""
        schemas, engine, authorizer = _services()
        with _http_errors():
            schema = schemas.load_schema(model)
            validate_access(schema, "read", get_user(request), authorizer)
            listing = _listing(schemas, schemas.get_model_instance(model))
            listing.set_options(parse_query_params(request.query_params.multi_items()))
            with engine.connect() as conn:
                return ListResponse(**listing.get_results(conn))

    @router.get("/{model}/{record_id}")
    def get_record(model: str, record_id: str, request: Request) -> RecordResponse:
        """Fetch one live record."""
        schemas, engine, authorizer = _services()
        with _http_errors():
            schema = schemas.load_schema(model)
            validate_access(schema, "read", get_user(request), authorizer)
            instance = schemas.get_model_instance(model)
            try:
                key = instance.coerce_id(record_id)
            except (TypeError, ValueError) as exc:
                raise RecordNotFoundError(model, record_id) from exc

            with engine.connect() as conn:
                record = instance.find(conn, key)
            if record is None:
                raise RecordNotFoundError(model, record_id)

        fields = [f for f in _record_fields(schema) if f in record]
        return RecordResponse(data={name: record[name] for name in fields})

    @router.get("/{model}/{record_id}/{relation}")
    def list_related(model: str, record_id: str, relation: str, request: Request) -> ListResponse:
        """Nested listing of a detail child or a declared relationship."""
        schemas, engine, authorizer = _services()
        with _http_errors():
            schema = schemas.load_schema(model)
            user = get_user(request)
            validate_access(schema, "read", user, authorizer)
            parent = schemas.get_model_instance(model)
            try:
                parent_id = parent.coerce_id(record_id)
            except (TypeError, ValueError) as exc:
                raise RecordNotFoundError(model, record_id) from exc

            detail = schema.get_detail(relation)
            if detail is not None:
                child = schemas.get_model_instance(detail.model)
                validate_access(child.schema, "read", user, authorizer)
                listing = _listing(schemas, child, detail.list_fields)
                listing.extend_query(child.column(detail.foreign_key) == parent_id)
            elif schema.get_relationship(relation) is not None:
                resolved = parent.relation(relation)
                target = resolved.target
                validate_access(target.schema, "read", user, authorizer)
                listing = _listing(schemas, target)
                related_ids = (
                    resolved.select(parent_id).with_only_columns(target.pk_column).correlate(None)
                )
                listing.extend_query(target.pk_column.in_(related_ids))
            else:
                raise HTTPException(404, f"Relation '{relation}' not found for model: {model}")

            listing.set_options(parse_query_params(request.query_params.multi_items()))
            with engine.connect() as conn:
                if parent.find(conn, parent_id) is None:
                    raise RecordNotFoundError(model, record_id)
                return ListResponse(**listing.get_results(conn))

    @router.delete("/{model}/{record_id}")
    def delete_record(model: str, record_id: str, request: Request) -> DeleteResponse:
        """Delete a record, cascading to its detail children."""
        schemas, engine, authorizer = _services()
        action = DeleteAction(schemas, engine, authorizer, activity=get_activity())
        with _http_errors():
            result = action.delete(model, record_id, get_user(request))
        return DeleteResponse(message=f"Deleted {model} {result.record_id}", **result.to_dict())

    return router
