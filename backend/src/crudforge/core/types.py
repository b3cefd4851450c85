"""Field type registry with storage, cast and filter defaults."""

from dataclasses import dataclass

from sqlalchemy import Float, Integer, Text
from sqlalchemy.types import TypeEngine


# Filter operators understood by the listing engine
FILTER_EQUALS = "equals"
FILTER_CONTAINS = "contains"
FILTER_STARTS_WITH = "starts_with"
FILTER_ENDS_WITH = "ends_with"
FILTER_RANGE = "range"

FILTER_OPERATORS = (
    FILTER_EQUALS,
    FILTER_CONTAINS,
    FILTER_STARTS_WITH,
    FILTER_ENDS_WITH,
    FILTER_RANGE,
)


@dataclass
class FieldType:
    name: str
    storage_type: str
    filter_operator: str = FILTER_EQUALS
    cast: str | None = None  # "int", "float", "bool", "json" or None (string)
    sensitive: bool = False  # never listed unless explicitly flagged


# Built-in field types
FIELD_TYPES: dict[str, FieldType] = {
    "integer": FieldType(name="integer", storage_type="INTEGER", cast="int"),
    "string": FieldType(
        name="string", storage_type="TEXT", filter_operator=FILTER_CONTAINS
    ),
    "text": FieldType(
        name="text", storage_type="TEXT", filter_operator=FILTER_CONTAINS
    ),
    "email": FieldType(
        name="email", storage_type="TEXT", filter_operator=FILTER_CONTAINS
    ),
    "url": FieldType(
        name="url", storage_type="TEXT", filter_operator=FILTER_CONTAINS
    ),
    "phone": FieldType(
        name="phone", storage_type="TEXT", filter_operator=FILTER_CONTAINS
    ),
    "boolean": FieldType(name="boolean", storage_type="INTEGER", cast="bool"),
    "date": FieldType(
        name="date", storage_type="TEXT", filter_operator=FILTER_RANGE
    ),  # ISO format
    "datetime": FieldType(
        name="datetime", storage_type="TEXT", filter_operator=FILTER_RANGE
    ),  # ISO format
    "decimal": FieldType(
        name="decimal", storage_type="REAL", filter_operator=FILTER_RANGE, cast="float"
    ),
    "float": FieldType(
        name="float", storage_type="REAL", filter_operator=FILTER_RANGE, cast="float"
    ),
    "currency": FieldType(
        name="currency", storage_type="REAL", filter_operator=FILTER_RANGE, cast="float"
    ),
    "json": FieldType(name="json", storage_type="TEXT", cast="json"),
    "smartlookup": FieldType(name="smartlookup", storage_type="INTEGER", cast="int"),
    "password": FieldType(name="password", storage_type="TEXT", sensitive=True),
    "secret": FieldType(name="secret", storage_type="TEXT", sensitive=True),
    "token": FieldType(name="token", storage_type="TEXT", sensitive=True),
}

_STORAGE_COLUMN_TYPES: dict[str, type[TypeEngine]] = {
    "INTEGER": Integer,
    "REAL": Float,
    "TEXT": Text,
}


def get_field_type(type_name: str) -> FieldType:
    """Get field type definition, defaulting to string if unknown."""
    return FIELD_TYPES.get(type_name, FIELD_TYPES["string"])


def get_storage_type(type_name: str) -> str:
    """Get the SQL storage type for a field type."""
    return get_field_type(type_name).storage_type


def get_column_type(type_name: str) -> TypeEngine:
    """Get a SQLAlchemy column type instance for a field type."""
    return _STORAGE_COLUMN_TYPES[get_storage_type(type_name)]()


def is_sensitive_type(type_name: str) -> bool:
    """True for types that must never leak into listings by default."""
    return get_field_type(type_name).sensitive
