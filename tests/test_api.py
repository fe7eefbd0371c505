"""
Test the control API through the FastAPI app with its lifespan running
"""

import pytest
from fastapi.testclient import TestClient

from main import create_app


@pytest.fixture
def client(app_config):
    app = create_app(config_factory=lambda: app_config)
    with TestClient(app) as client:
        yield client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["mappings"] == 0
    assert response.json()["mitm_proxy"] is False


def test_create_pattern(client):
    response = client.post("/mimic/patterns", json={"pattern": "https://api.example.com/users"})

    assert response.status_code == 201
    data = response.json()
    assert data["pattern"] == "https://api.example.com/users"
    assert "regexPattern" not in data
    assert data["id"]


def test_create_requires_exactly_one_source(client):
    assert client.post("/mimic/patterns", json={}).status_code == 400

    both = client.post("/mimic/patterns", json={"pattern": "a", "regexPattern": "b"})
    assert both.status_code == 400
    assert both.json()["error"] == "Either pattern or regexPattern must be provided"


@pytest.mark.parametrize("body, headers", [
    (b'{"pattern": 123}', {"Content-Type": "application/json"}),
    (b'{"regexPattern": ["a"]}', {"Content-Type": "application/json"}),
    (b"not json at all", {"Content-Type": "application/json"}),
    (b"[1, 2]", {"Content-Type": "application/json"}),
    (b"pattern=x", {"Content-Type": "text/plain"}),
])
def test_malformed_create_body_is_bad_request(client, body, headers):
    """Every invalid create answers 400 with error and details"""
    response = client.post("/mimic/patterns", content=body, headers=headers)

    assert response.status_code == 400, f"Expected 400 for {body!r}, got {response.status_code}"
    assert response.json()["error"] == "Invalid request body"
    assert response.json()["details"]
    assert client.get("/mimic/mappings").json() == []


def test_invalid_regex_rejected(client):
    response = client.post("/mimic/patterns", json={"regexPattern": "("})

    assert response.status_code == 400
    assert client.get("/mimic/mappings").json() == [], "Rejected source must not be stored"


def test_same_source_returns_same_id(client):
    first = client.post("/mimic/patterns", json={"pattern": "https://api.example.com/users"}).json()
    second = client.post("/mimic/patterns", json={"regexPattern": "https://api.example.com/users"}).json()

    assert first["id"] == second["id"]
    assert second["regexPattern"] == "https://api.example.com/users"
    assert len(client.get("/mimic/mappings").json()) == 1


def test_content_lifecycle(client):
    """Create, set content, read back, list, delete"""
    mapping_id = client.post("/mimic/patterns", json={"regexPattern": r"cdn\.example\.com"}).json()["id"]

    update = client.post(
        f"/mimic/mappings/{mapping_id}",
        content=b"const a = 1;",
        headers={"Content-Type": "application/javascript"}
    )
    assert update.status_code == 200
    assert update.json() == {"success": True, "id": mapping_id, "contentLength": 12}

    fetched = client.get(f"/mimic/mappings/{mapping_id}").json()
    assert fetched == {
        "id": mapping_id,
        "pattern": None,
        "regexPattern": r"cdn\.example\.com",
        "content": "const a = 1;",
    }

    listing = client.get("/mimic/mappings").json()
    assert listing == [{
        "id": mapping_id,
        "regexPattern": r"cdn\.example\.com",
        "hasContent": True,
        "contentLength": 12,
    }]

    assert client.delete(f"/mimic/mappings/{mapping_id}").json() == {"success": True}
    assert client.delete(f"/mimic/mappings/{mapping_id}").json() == {"success": False}
    assert client.get(f"/mimic/mappings/{mapping_id}").status_code == 404


def test_json_wrapped_content(client):
    mapping_id = client.post("/mimic/patterns", json={"pattern": "https://a.example.com/"}).json()["id"]

    response = client.post(f"/mimic/mappings/{mapping_id}", json={"content": "<html></html>"})

    assert response.status_code == 200
    assert client.get(f"/mimic/mappings/{mapping_id}").json()["content"] == "<html></html>"


def test_content_validation(client):
    mapping_id = client.post("/mimic/patterns", json={"pattern": "https://a.example.com/"}).json()["id"]

    empty = client.post(f"/mimic/mappings/{mapping_id}", content=b"")
    assert empty.status_code == 400

    binary = client.post(f"/mimic/mappings/{mapping_id}", content=b"\xff\xfe\x00")
    assert binary.status_code == 400

    unknown = client.post("/mimic/mappings/missing", content=b"x")
    assert unknown.status_code == 404


def test_mappings_survive_restart(app_config):
    """A second app over the same storage directory sees the same mappings"""
    app = create_app(config_factory=lambda: app_config)
    with TestClient(app) as client:
        mapping_id = client.post("/mimic/patterns", json={"pattern": "https://a.example.com/"}).json()["id"]
        client.post(f"/mimic/mappings/{mapping_id}", content=b"hello")

    app = create_app(config_factory=lambda: app_config)
    with TestClient(app) as client:
        assert client.get("/health").json()["mappings"] == 1
        assert client.get(f"/mimic/mappings/{mapping_id}").json()["content"] == "hello"


def test_proxy_status_and_decisions(client):
    status = client.get("/api/proxy/status").json()
    assert status["mitm"]["running"] is False
    assert status["http"]["running"] is False

    assert client.get("/api/proxy/decisions").json() == {"serve": 0, "forward": 0, "pass_through": 0}

    assert client.post("/api/proxy/stop").status_code == 400
