"""Tests for pivot attach, sync and detach actions."""

import copy
from datetime import UTC, datetime

import pytest
from sqlalchemy import select

from crudforge.actions.relationships import (
    attach,
    detach,
    process_pivot_data,
    process_relationship_actions,
    related_ids,
    sync,
)
from crudforge.auth import UserContext
from crudforge.errors import ConfigurationError
from crudforge.persistence.model import DynamicModel


def pivot_rows(conn, pivots, user_id):
    _, role_users, _ = pivots
    query = select(role_users).where(role_users.c.user_id == user_id).order_by(role_users.c.role_id)
    return [dict(r) for r in conn.execute(query).mappings()]


def users_with_actions(service, actions):
    raw = copy.deepcopy(service.load_schema("users").raw)
    raw["relationships"][0]["actions"] = actions
    return DynamicModel(service.loader.parse(raw), models=service)


class TestPivotData:
    def test_special_values(self):
        data = process_pivot_data(
            {"created_at": "now", "assigned_by": "current_user", "on": "current_date", "note": "x"},
            UserContext(user_id=7),
        )

        assert data["assigned_by"] == 7
        assert data["on"] == datetime.now(UTC).date().isoformat()
        assert "T" in data["created_at"]
        assert data["note"] == "x"

    def test_current_user_without_user(self):
        assert process_pivot_data({"assigned_by": "current_user"}, None) == {"assigned_by": None}


class TestPivotOperations:
    def test_attach_and_detach(self, db, engine, service, pivots):
        relation = service.get_model_instance("users").relation("roles")

        with engine.begin() as conn:
            attach(conn, relation, 4, 3, {"assigned_by": 1})
            assert related_ids(conn, relation, 4) == [3]
            assert pivot_rows(conn, pivots, 4)[0]["assigned_by"] == 1

            assert detach(conn, relation, 1, [1]) == 1
            assert related_ids(conn, relation, 1) == [2]
            assert detach(conn, relation, 1) == 1
            assert related_ids(conn, relation, 1) == []

    def test_sync(self, db, engine, service):
        relation = service.get_model_instance("users").relation("roles")

        with engine.begin() as conn:
            result = sync(conn, relation, 1, ["2", "3", ""])
            assert sorted(related_ids(conn, relation, 1)) == [2, 3]

        assert result == {"attached": [3], "detached": [1]}

    def test_sync_to_empty(self, db, engine, service):
        relation = service.get_model_instance("users").relation("roles")

        with engine.begin() as conn:
            result = sync(conn, relation, 1, [])
            assert related_ids(conn, relation, 1) == []
        assert sorted(result["detached"]) == [1, 2]

    def test_through_relationships_have_no_pivot_to_modify(self, db, engine, service):
        relation = service.get_model_instance("users").relation("permissions")

        with engine.begin() as conn:
            with pytest.raises(ConfigurationError):
                attach(conn, relation, 1, 1)


class TestProcessRelationshipActions:
    def test_sync_on_update(self, db, engine, service):
        users = service.get_model_instance("users")

        with engine.begin() as conn:
            process_relationship_actions(conn, users, 1, {"role_ids": [3]}, "on_update")
            assert related_ids(conn, users.relation("roles"), 1) == [3]

    def test_sync_field_absent_leaves_pivot_alone(self, db, engine, service):
        users = service.get_model_instance("users")

        with engine.begin() as conn:
            process_relationship_actions(conn, users, 1, {"first_name": "A"}, "on_update")
            assert sorted(related_ids(conn, users.relation("roles"), 1)) == [1, 2]

    def test_sync_only_runs_on_update(self, db, engine, service):
        users = users_with_actions(service, {"on_create": {"sync": "role_ids"}})

        with engine.begin() as conn:
            process_relationship_actions(conn, users, 4, {"role_ids": [1]}, "on_create")
            assert related_ids(conn, users.relation("roles"), 4) == []

    def test_attach_on_create_with_pivot_data(self, db, engine, service, pivots):
        users = users_with_actions(
            service,
            {
                "on_create": {
                    "attach": [
                        {"related_id": 3, "pivot_data": {"assigned_by": "current_user", "created_at": "now"}},
                        {"pivot_data": {}},
                    ]
                }
            },
        )

        with engine.begin() as conn:
            process_relationship_actions(conn, users, 4, {}, "on_create", UserContext(user_id=9))
            (row,) = pivot_rows(conn, pivots, 4)

        assert row["role_id"] == 3
        assert row["assigned_by"] == 9
        assert row["created_at"] is not None

    def test_detach_listed_ids(self, db, engine, service):
        users = users_with_actions(service, {"on_update": {"detach": ["2"]}})

        with engine.begin() as conn:
            process_relationship_actions(conn, users, 1, {}, "on_update")
            assert related_ids(conn, users.relation("roles"), 1) == [1]

    def test_invalid_detach_config_is_skipped(self, db, engine, service):
        users = users_with_actions(service, {"on_delete": {"detach": "some"}})

        with engine.begin() as conn:
            process_relationship_actions(conn, users, 1, {}, "on_delete")
            assert sorted(related_ids(conn, users.relation("roles"), 1)) == [1, 2]

    def test_detach_all_on_delete(self, db, engine, service):
        users = service.get_model_instance("users")

        with engine.begin() as conn:
            process_relationship_actions(conn, users, 1, {}, "on_delete")
            assert related_ids(conn, users.relation("roles"), 1) == []

    def test_failures_propagate(self, db, engine, service):
        users = users_with_actions(service, {"on_update": {"sync": "role_ids"}})

        with engine.begin() as conn:
            with pytest.raises(ValueError):
                process_relationship_actions(conn, users, 1, {"role_ids": ["admin"]}, "on_update")
