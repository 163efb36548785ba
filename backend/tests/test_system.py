import pytest

from clubshop.extensions import store


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json
    assert body["status"] == "healthy"
    assert body["checks"]["store"]["details"] == {"users": 0, "orders": 0, "merch": 0}
    assert body["checks"]["notifications"]["details"]["failed"] == 0


def test_health_counts_sessions(client, member_headers):
    body = client.get("/health").json
    assert body["checks"]["session_service"]["details"]["active_sessions"] == 1
    assert body["checks"]["store"]["details"]["users"] == 1


def test_version(client):
    body = client.get("/version").json
    assert body["api_version"] == "1.0.0"
    assert "python_version" in body


def test_cors_allows_dev_frontend(client):
    resp = client.get("/api/config", headers={"Origin": "http://localhost:5173"})
    assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    resp = client.get("/api/config", headers={"Origin": "https://evil.example"})
    assert "Access-Control-Allow-Origin" not in resp.headers


def test_oversized_body_is_413(app, client, owner_headers):
    app.config["MAX_CONTENT_LENGTH"] = 1024
    resp = client.post(
        "/api/admin/merch",
        data="x" * 4096,
        content_type="application/json",
        headers=owner_headers,
    )
    assert resp.status_code == 413
    assert resp.json["error"] == "Request body is too large"


def test_health_does_not_block_catalog_seed(app, client, member_headers):
    app.config["MERCH_SEED_ENABLED"] = True
    assert client.get("/health").status_code == 200
    assert not store.exists("merch")

    items = client.get("/api/merch", headers=member_headers).json["items"]
    assert [item["id"] for item in items] == ["club-hat"]


class TestUnreadableStore:
    @pytest.fixture
    def strict(self, app):
        store.strict_reads = True
        with open(store.path_for("orders"), "w", encoding="utf-8") as fh:
            fh.write("{oops")
        return app

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/admin/orders"),
        ("GET", "/api/orders"),
        ("POST", "/api/admin/orders/any/fulfill"),
    ])
    def test_owner_routes_answer_json_500(self, strict, client, owner_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=owner_headers)
        assert resp.status_code == 500
        assert resp.is_json
        assert "unreadable" in resp.json["error"]

    def test_order_placement_answers_json_500(self, strict, client, member_headers, hat):
        resp = client.post("/api/orders", json={
            "itemId": hat["id"], "quantity": 1, "venmoAgreed": True,
        }, headers=member_headers)
        assert resp.status_code == 500
        assert "unreadable" in resp.json["error"]

    def test_file_is_left_for_repair(self, strict, client, owner_headers):
        client.get("/api/admin/orders", headers=owner_headers)
        with open(store.path_for("orders"), encoding="utf-8") as fh:
            assert fh.read() == "{oops"

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/merch"),
        ("GET", "/api/admin/merch"),
        ("PATCH", "/api/admin/merch/any"),
        ("DELETE", "/api/admin/merch/any"),
    ])
    def test_catalog_routes_answer_json_500(self, strict, client, owner_headers, method, path):
        with open(store.path_for("merch"), "w", encoding="utf-8") as fh:
            fh.write("[{")
        kwargs = {"json": {"paused": True}} if method == "PATCH" else {}
        resp = getattr(client, method.lower())(path, headers=owner_headers, **kwargs)
        assert resp.status_code == 500
        assert "unreadable" in resp.json["error"]
