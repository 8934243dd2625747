from datetime import datetime

import pytest

from todo_api.errors import StorageError, StorageUnavailableError
from todo_api.repositories import InMemoryRepository

BASE = "/api/todos"


def parse_ts(value: str) -> datetime:
    # Python < 3.11 does not accept a trailing 'Z'
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def assert_todo_shape(todo: dict):
    assert set(todo) == {"id", "text", "completed", "createdAt"}
    assert isinstance(todo["id"], str) and todo["id"]
    assert isinstance(todo["text"], str)
    assert isinstance(todo["completed"], bool)
    parse_ts(todo["createdAt"])


class BrokenRepository(InMemoryRepository):
    """Repository whose every task operation fails with the given exception."""

    def __init__(self, exc: Exception) -> None:
        super().__init__()
        self._exc = exc

    def list(self):
        raise self._exc

    def get(self, task_id):
        raise self._exc

    def create(self, data):
        raise self._exc

    def update(self, task_id, data):
        raise self._exc

    def delete(self, task_id):
        raise self._exc


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")

    def test_asgi_entry_point_is_built_on_first_access(self):
        from todo_api import main

        assert "app" not in vars(main)
        assert main.app is main.get_app()
        assert main.app.state.repository is not None


class TestTodosCRUD:
    def test_end_to_end_lifecycle(self, client):
        res_create = client.post(BASE, json={"text": "Buy milk"})
        assert res_create.status_code == 201
        todo = res_create.json()
        assert_todo_shape(todo)
        assert todo["text"] == "Buy milk"
        assert todo["completed"] is False
        tid = todo["id"]

        res_list = client.get(BASE)
        assert res_list.status_code == 200
        assert todo in res_list.json()

        res_patch = client.patch(f"{BASE}/{tid}", json={"completed": True})
        assert res_patch.status_code == 200
        assert res_patch.json()["completed"] is True

        res_del = client.delete(f"{BASE}/{tid}")
        assert res_del.status_code == 204
        assert res_del.text == ""

        res_get = client.get(f"{BASE}/{tid}")
        assert res_get.status_code == 404
        assert res_get.json() == {"message": "Todo not found"}

    def test_create_with_completed_flag(self, client):
        res = client.post(BASE, json={"text": "Already done", "completed": True})
        assert res.status_code == 201
        assert res.json()["completed"] is True

    def test_create_trims_text(self, client):
        res = client.post(BASE, json={"text": "  Walk dog  "})
        assert res.status_code == 201
        assert res.json()["text"] == "Walk dog"

    def test_identical_creates_yield_distinct_tasks(self, client):
        a = client.post(BASE, json={"text": "Same"}).json()
        b = client.post(BASE, json={"text": "Same"}).json()
        assert a["id"] != b["id"]
        assert len(client.get(BASE).json()) == 2

    def test_list_empty(self, client):
        res = client.get(BASE)
        assert res.status_code == 200
        assert res.json() == []

    def test_list_newest_first(self, client):
        ids = [client.post(BASE, json={"text": f"Task {i}"}).json()["id"] for i in range(3)]
        listed = client.get(BASE).json()
        assert [t["id"] for t in listed] == list(reversed(ids))
        created = [parse_ts(t["createdAt"]) for t in listed]
        assert created == sorted(created, reverse=True)

    def test_get_todo(self, client):
        created = client.post(BASE, json={"text": "Read book"}).json()
        res = client.get(f"{BASE}/{created['id']}")
        assert res.status_code == 200
        assert res.json() == created

    def test_patch_partial_update(self, client):
        created = client.post(BASE, json={"text": "Partial"}).json()

        res = client.patch(f"{BASE}/{created['id']}", json={"text": "Partial Updated"})
        assert res.status_code == 200
        patched = res.json()
        assert patched["text"] == "Partial Updated"
        assert patched["completed"] is False
        assert patched["createdAt"] == created["createdAt"]

    def test_patch_empty_body_is_noop(self, client):
        created = client.post(BASE, json={"text": "Unchanged"}).json()
        res = client.patch(f"{BASE}/{created['id']}", json={})
        assert res.status_code == 200
        assert res.json() == created

    def test_patch_ignores_non_whitelisted_fields(self, client):
        created = client.post(BASE, json={"text": "Guarded"}).json()
        res = client.patch(
            f"{BASE}/{created['id']}",
            json={"id": "hijacked", "createdAt": "2000-01-01T00:00:00Z", "completed": True},
        )
        assert res.status_code == 200
        patched = res.json()
        assert patched["id"] == created["id"]
        assert patched["createdAt"] == created["createdAt"]
        assert patched["completed"] is True
        assert client.get(f"{BASE}/hijacked").status_code == 404

    def test_patch_not_found(self, client):
        client.post(BASE, json={"text": "Keep"})
        res = client.patch(f"{BASE}/does-not-exist", json={"completed": True})
        assert res.status_code == 404
        assert res.json() == {"message": "Todo not found"}
        assert len(client.get(BASE).json()) == 1

    def test_delete_twice(self, client):
        tid = client.post(BASE, json={"text": "ToDelete"}).json()["id"]
        assert client.delete(f"{BASE}/{tid}").status_code == 204
        res_again = client.delete(f"{BASE}/{tid}")
        assert res_again.status_code == 404
        assert res_again.json()["message"] == "Todo not found"


class TestValidationErrors:
    def test_create_empty_text(self, client, repo):
        res = client.post(BASE, json={"text": ""})
        assert res.status_code == 400
        body = res.json()
        assert body["message"] == "Invalid todo data"
        assert any(issue["path"] == ["text"] for issue in body["errors"])
        assert repo.list() == []

    def test_create_whitespace_text(self, client):
        res = client.post(BASE, json={"text": "   "})
        assert res.status_code == 400
        assert res.json()["errors"][0]["path"] == ["text"]

    def test_create_missing_text(self, client):
        res = client.post(BASE, json={"completed": True})
        assert res.status_code == 400
        issue = res.json()["errors"][0]
        assert issue["path"] == ["text"]
        assert issue["code"] == "missing"

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"text": 42}, "text"),
            ({"text": "ok", "completed": "true"}, "completed"),
            ({"text": "ok", "completed": 1}, "completed"),
        ],
    )
    def test_create_wrong_types(self, client, payload, field):
        res = client.post(BASE, json=payload)
        assert res.status_code == 400
        assert [field] in [issue["path"] for issue in res.json()["errors"]]

    def test_create_malformed_json(self, client):
        res = client.post(BASE, content=b"{not json", headers={"Content-Type": "application/json"})
        assert res.status_code == 400
        body = res.json()
        assert body["message"] == "Invalid todo data"
        assert isinstance(body["errors"], list)

    @pytest.mark.parametrize(
        "payload,field",
        [
            ({"text": ""}, "text"),
            ({"text": None}, "text"),
            ({"completed": None}, "completed"),
            ({"completed": "yes"}, "completed"),
        ],
    )
    def test_patch_invalid(self, client, payload, field):
        created = client.post(BASE, json={"text": "Valid"}).json()
        res = client.patch(f"{BASE}/{created['id']}", json=payload)
        assert res.status_code == 400
        body = res.json()
        assert body["message"] == "Invalid update data"
        assert [field] in [issue["path"] for issue in body["errors"]]
        # Rejected before reaching the store
        assert client.get(f"{BASE}/{created['id']}").json() == created


class TestStorageFailures:
    @pytest.mark.parametrize(
        "method,path,kwargs,message",
        [
            ("get", BASE, {}, "Failed to fetch todos"),
            ("get", f"{BASE}/abc", {}, "Failed to fetch todo"),
            ("post", BASE, {"json": {"text": "x"}}, "Failed to create todo"),
            ("patch", f"{BASE}/abc", {"json": {"completed": True}}, "Failed to update todo"),
            ("delete", f"{BASE}/abc", {}, "Failed to delete todo"),
        ],
    )
    def test_unexpected_failure_is_500_without_details(self, make_client, caplog, method, path, kwargs, message):
        client = make_client(BrokenRepository(RuntimeError("driver exploded: secret dsn")))
        res = getattr(client, method)(path, **kwargs)
        assert res.status_code == 500
        assert res.json() == {"message": message}
        assert "secret" not in res.text
        assert message in caplog.text

    def test_storage_error_is_500(self, make_client):
        client = make_client(BrokenRepository(StorageError("constraint violated")))
        res = client.get(BASE)
        assert res.status_code == 500
        assert res.json() == {"message": "Failed to fetch todos"}

    @pytest.mark.parametrize(
        "method,path,kwargs",
        [
            ("get", BASE, {}),
            ("get", f"{BASE}/abc", {}),
            ("post", BASE, {"json": {"text": "x"}}),
            ("patch", f"{BASE}/abc", {"json": {"completed": True}}),
            ("delete", f"{BASE}/abc", {}),
        ],
    )
    def test_unavailable_is_503(self, make_client, method, path, kwargs):
        client = make_client(BrokenRepository(StorageUnavailableError("database is locked")))
        res = getattr(client, method)(path, **kwargs)
        assert res.status_code == 503
        assert res.json() == {"message": "Storage unavailable"}

    def test_validation_runs_before_storage(self, make_client):
        client = make_client(BrokenRepository(RuntimeError("should not be called")))
        res = client.post(BASE, json={"text": ""})
        assert res.status_code == 400

    def test_unhandled_error_keeps_json_error_body(self, make_client, caplog):
        class CorruptRepository(InMemoryRepository):
            def get(self, task_id):
                return {"id": task_id}

        client = make_client(CorruptRepository(), raise_server_exceptions=False)
        res = client.get(f"{BASE}/abc")
        assert res.status_code == 500
        assert res.headers["content-type"].startswith("application/json")
        assert res.json() == {"message": "Internal server error"}
        assert "Unhandled error on GET /api/todos/abc" in caplog.text
