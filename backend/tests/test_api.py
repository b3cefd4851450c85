"""Integration tests for the CRUD API."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import IntegrityError

from crudforge.auth import UserContext
from crudforge.persistence.model import DynamicModel

from conftest import read_schema, write_schema


class CurrentUser:
    """Stands in for upstream auth middleware."""

    def __init__(self):
        self.user = UserContext(user_id=99, permissions={"*"})

    def __call__(self, request):
        return self.user


@pytest.fixture
def current_user():
    return CurrentUser()


@pytest.fixture
def client(db, settings, engine, current_user, tmp_path, monkeypatch):
    """Test client wired to the seeded database."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("CRUDFORGE_DB_PATH", str(tmp_path / "unused.db"))
    from crudforge.api.app import create_app

    app = create_app(settings=settings, engine=engine, get_user=current_user)
    with TestClient(app) as client:
        yield client


class TestHealth:
    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}


class TestListing:
    def test_list(self, client):
        response = client.get("/api/crud/users")

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 4
        assert [r["user_name"] for r in body["rows"]] == ["alice", "bob", "carol", "dave"]
        assert "password" not in body["rows"][0]

    def test_query_parameters(self, client):
        response = client.get(
            "/api/crud/users",
            params={"filters[user_name]": "a", "sorts[user_name]": "desc", "size": "2", "page": "1"},
        )
        body = response.json()

        assert body["count"] == 3
        assert [r["user_name"] for r in body["rows"]] == ["dave", "carol"]

    def test_unknown_parameters_have_no_effect(self, client):
        response = client.get("/api/crud/users", params={"filters[password]": "x", "sorts[password]": "asc"})
        assert response.json()["count"] == 4

    def test_oversized_page_is_capped(self, client):
        assert client.get("/api/crud/users", params={"size": "5000"}).status_code == 200

    def test_huge_page_number(self, client):
        response = client.get("/api/crud/users", params={"page": "10000000000000000000"})

        assert response.status_code == 200
        assert response.json() == {"rows": [], "count": 4}

    def test_search(self, client):
        body = client.get("/api/crud/users", params={"search": "brown"}).json()
        assert [r["user_name"] for r in body["rows"]] == ["bob"]

    def test_unknown_model(self, client):
        response = client.get("/api/crud/ghosts")

        assert response.status_code == 404
        assert "ghosts" in response.json()["detail"]

    def test_forbidden(self, client, current_user):
        current_user.user = UserContext(user_id=1, permissions={"crud6.roles.read"})
        response = client.get("/api/crud/users")

        assert response.status_code == 403
        assert response.json()["detail"] == "Access denied"

    def test_anonymous_is_forbidden(self, client, current_user):
        current_user.user = None
        assert client.get("/api/crud/users").status_code == 403

    def test_invalid_schema_is_a_server_error(self, client, schema_dir):
        write_schema(schema_dir, "broken", {"model": "broken", "table": "broken", "fields": {}})
        response = client.get("/api/crud/broken")

        assert response.status_code == 500
        assert response.json()["detail"] == "Schema configuration error"


class TestRecord:
    def test_get_record(self, client):
        response = client.get("/api/crud/users/1")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == 1
        assert data["user_name"] == "alice"
        assert data["group_id"] == 5
        assert "password" not in data

    @pytest.mark.parametrize("record_id", ["999", "abc"])
    def test_missing_record(self, client, record_id):
        assert client.get(f"/api/crud/users/{record_id}").status_code == 404


class TestNestedListing:
    def test_detail_children(self, client):
        body = client.get("/api/crud/groups/5/users").json()

        assert body["count"] == 3
        assert set(body["rows"][0]) == {"id", "user_name", "first_name", "last_name", "email"}

    def test_detail_list_fields_never_expose_passwords(self, client, schema_dir):
        groups = read_schema(schema_dir, "groups")
        groups["details"][0]["list_fields"] = ["user_name", "password"]
        write_schema(schema_dir, "groups", groups)

        body = client.get("/api/crud/groups/5/users").json()

        assert body["count"] == 3
        assert set(body["rows"][0]) == {"id", "user_name"}

    def test_has_many(self, client):
        body = client.get("/api/crud/groups/6/members").json()
        assert [r["user_name"] for r in body["rows"]] == ["dave"]

    def test_belongs_to_many(self, client):
        body = client.get("/api/crud/users/1/roles").json()
        assert sorted(r["slug"] for r in body["rows"]) == ["group-admin", "site-admin"]

    def test_belongs_to_many_through(self, client):
        body = client.get("/api/crud/users/1/permissions", params={"sorts[slug]": "asc"}).json()

        assert body["count"] == 3
        assert [r["slug"] for r in body["rows"]] == ["delete_group", "uri_groups", "uri_users"]

    def test_nested_filters_apply(self, client):
        body = client.get("/api/crud/groups/5/users", params={"filters[user_name]": "bo"}).json()
        assert [r["user_name"] for r in body["rows"]] == ["bob"]

    def test_unknown_relation(self, client):
        assert client.get("/api/crud/groups/5/bogus").status_code == 404

    def test_missing_parent(self, client):
        assert client.get("/api/crud/groups/999/users").status_code == 404

    def test_child_permission_is_checked(self, client, current_user):
        current_user.user = UserContext(user_id=1, permissions={"uri_groups"})
        assert client.get("/api/crud/groups/5/users").status_code == 403


class TestSchemaEndpoint:
    def test_full(self, client):
        body = client.get("/api/crud/users/schema").json()

        assert body["model"] == "users"
        assert "fields" in body
        assert "relationships" in body

    def test_single_context(self, client):
        body = client.get("/api/crud/groups/schema", params={"context": "list"}).json()

        assert body["model"] == "groups"
        assert list(body["fields"]) == ["slug", "name", "description"]

    def test_multiple_contexts(self, client):
        body = client.get("/api/crud/users/schema", params={"context": "list,detail"}).json()

        assert list(body["contexts"]) == ["list", "detail"]
        assert body["contexts"]["detail"]["fields"]["password"]["readonly"] is True


class TestDelete:
    def test_cascade(self, client):
        response = client.delete("/api/crud/groups/5")

        assert response.status_code == 200
        body = response.json()
        assert body["soft_delete"] is True
        assert body["cascaded"] == {"users": 3}
        assert body["id"] == 5

        assert client.get("/api/crud/groups/5").status_code == 404
        assert client.get("/api/crud/users").json()["count"] == 1

    def test_twice_is_not_found(self, client):
        assert client.delete("/api/crud/users/4").status_code == 200
        assert client.delete("/api/crud/users/4").status_code == 404

    def test_self_delete(self, client, current_user):
        current_user.user = UserContext(user_id=2, permissions={"*"})
        response = client.delete("/api/crud/users/2")

        assert response.status_code == 403
        assert response.json()["detail"] == "Access denied"
        assert client.get("/api/crud/users/2").status_code == 200

    def test_conflict(self, client, monkeypatch):
        def violating_hard_delete(self, conn, record_id):
            raise IntegrityError("DELETE FROM roles", {}, Exception("FOREIGN KEY constraint failed"))

        monkeypatch.setattr(DynamicModel, "hard_delete", violating_hard_delete)

        assert client.delete("/api/crud/roles/1").status_code == 409
        assert client.get("/api/crud/roles/1").status_code == 200
