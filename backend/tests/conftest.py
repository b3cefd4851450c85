"""Shared fixtures: sample schemas, a file-backed SQLite database and seed rows."""

import shutil
from pathlib import Path

import pytest
import yaml
from sqlalchemy import Column, Integer, MetaData, Table, Text, create_engine, insert

from crudforge.auth.types import UserContext
from crudforge.config import Settings
from crudforge.persistence.soft_delete import SoftDeleteRegistry, register_builtin_soft_delete
from crudforge.schema.service import SchemaService

SAMPLE_SCHEMAS = Path(__file__).parent.parent.parent / "schema" / "crud6"


def write_schema(directory: Path, model: str, data: dict) -> Path:
    """Write a schema document as YAML and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{model}.yaml"
    path.write_text(yaml.safe_dump(data, sort_keys=False))
    return path


def read_schema(directory: Path, model: str) -> dict:
    return yaml.safe_load((directory / f"{model}.yaml").read_text())


@pytest.fixture(autouse=True)
def soft_delete_mechanisms():
    """Every test starts with only the built-in mechanism registered."""
    SoftDeleteRegistry.clear()
    register_builtin_soft_delete()
    yield
    SoftDeleteRegistry.clear()


@pytest.fixture
def schema_dir(tmp_path):
    """A writable copy of the sample schemas."""
    target = tmp_path / "schema" / "crud6"
    shutil.copytree(SAMPLE_SCHEMAS, target)
    return target


@pytest.fixture
def settings(schema_dir):
    return Settings(schema_paths=[schema_dir])


@pytest.fixture
def service(settings):
    return SchemaService(settings)


@pytest.fixture
def engine(tmp_path):
    db = create_engine(f"sqlite:///{tmp_path / 'test.db'}")
    yield db
    db.dispose()


@pytest.fixture
def pivots():
    metadata = MetaData()
    role_users = Table(
        "role_users",
        metadata,
        Column("user_id", Integer, nullable=False),
        Column("role_id", Integer, nullable=False),
        Column("created_at", Text),
        Column("assigned_by", Integer),
    )
    permission_roles = Table(
        "permission_roles",
        metadata,
        Column("role_id", Integer, nullable=False),
        Column("permission_id", Integer, nullable=False),
    )
    return metadata, role_users, permission_roles


@pytest.fixture
def db(service, engine, pivots):
    """Create every sample table and seed it.

    Group 5 has users 1-3, group 6 has user 4. User 1 holds roles 1 and 2,
    which grant permissions {1, 2} and {2, 3}.
    """
    metadata, role_users, permission_roles = pivots
    models = {name: service.get_model_instance(name) for name in ("groups", "users", "roles", "permissions")}

    with engine.begin() as conn:
        for model in models.values():
            model.initialize(conn)
        metadata.create_all(conn)

        conn.execute(
            insert(models["groups"].table),
            [
                {"id": 5, "slug": "admins", "name": "Administrators", "description": "Site admins"},
                {"id": 6, "slug": "users", "name": "Users", "description": "Everyone else"},
            ],
        )
        conn.execute(
            insert(models["users"].table),
            [
                {"id": 1, "user_name": "alice", "first_name": "Alice", "last_name": "Adams",
                 "email": "alice@example.com", "group_id": 5, "flag_enabled": 1, "password": "x"},
                {"id": 2, "user_name": "bob", "first_name": "Bob", "last_name": "Brown",
                 "email": "bob@example.com", "group_id": 5, "flag_enabled": 1, "password": "x"},
                {"id": 3, "user_name": "carol", "first_name": "Carol", "last_name": "Clark",
                 "email": "carol@example.com", "group_id": 5, "flag_enabled": 0, "password": "x"},
                {"id": 4, "user_name": "dave", "first_name": "Dave", "last_name": "Davis",
                 "email": "dave@example.org", "group_id": 6, "flag_enabled": 1, "password": "x"},
            ],
        )
        conn.execute(
            insert(models["roles"].table),
            [
                {"id": 1, "slug": "site-admin", "name": "Site Administrator"},
                {"id": 2, "slug": "group-admin", "name": "Group Administrator"},
                {"id": 3, "slug": "user", "name": "User"},
            ],
        )
        conn.execute(
            insert(models["permissions"].table),
            [
                {"id": 1, "slug": "uri_users", "name": "View users"},
                {"id": 2, "slug": "uri_groups", "name": "View groups"},
                {"id": 3, "slug": "delete_group", "name": "Delete groups"},
            ],
        )
        conn.execute(insert(role_users), [{"user_id": 1, "role_id": 1}, {"user_id": 1, "role_id": 2}])
        conn.execute(
            insert(permission_roles),
            [
                {"role_id": 1, "permission_id": 1},
                {"role_id": 1, "permission_id": 2},
                {"role_id": 2, "permission_id": 2},
                {"role_id": 2, "permission_id": 3},
            ],
        )
    return models


@pytest.fixture
def admin():
    return UserContext(user_id=99, permissions={"*"})
