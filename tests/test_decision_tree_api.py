import asyncio
import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from blueprint.main import app
from blueprint.core.exceptions import BlueprintGenerationError, PersistenceError
from blueprint.models.api import ProjectBlueprint
from blueprint.models.session import WizardSession
from blueprint.services.session_service import WizardSessionService
from blueprint.services.session_store import JsonSessionStore

API = "/api/decision-tree"


@pytest.fixture
def store(tmp_path):
    return JsonSessionStore(str(tmp_path))


@pytest.fixture
def client(store):
    original_service = app.state.session_service
    original_generator = app.state.blueprint_generator
    app.state.session_service = WizardSessionService(app.state.tree_repository, store)
    app.state.blueprint_generator = AsyncMock()
    with TestClient(app) as client:
        yield client
    app.state.session_service = original_service
    app.state.blueprint_generator = original_generator


# -- stateless traversal ----------------------------------------------------

def test_next_asks_root_first(client):
    response = client.post(f"{API}/next", json={"decisions": {}})
    assert response.status_code == 200
    data = response.json()
    assert data["completed"] is False
    assert data["question"]["id"] == "root"
    assert data["progress"] == {"currentStep": 0, "totalSteps": 2, "percentage": 0}


def test_next_accepts_client_field_names(client):
    response = client.post(f"{API}/next", json={
        "currentDecisions": {"root": "ecommerce"},
        "appPurpose": "ecommerce",
    })
    assert response.status_code == 200
    assert response.json()["question"]["id"] == "platform"


def test_next_first_path_node(client):
    response = client.post(f"{API}/next", json={
        "decisions": {"root": "ecommerce", "platform": "web"},
        "purpose": "ecommerce",
        "platform": "web",
    })
    data = response.json()
    assert data["question"]["id"] == "ecom-products"
    assert data["question"]["choices"][0]["value"]
    assert data["progress"] == {"currentStep": 2, "totalSteps": 12, "percentage": 17}


def test_next_without_path_completes(client):
    response = client.post(f"{API}/next", json={"decisions": {"root": "custom", "platform": "web"}})
    data = response.json()
    assert data["completed"] is True
    assert data["question"] is None
    assert data["progress"]["percentage"] == 100


@pytest.mark.parametrize("body", [
    {"decisions": {"root": "spaceship"}},
    {"decisions": {"root": "saas", "platform": "web", "inventory": "yes"}},
    {"decisions": {"root": "saas"}, "purpose": "ecommerce"},
])
def test_next_rejects_invalid_decisions(client, body):
    response = client.post(f"{API}/next", json=body)
    assert response.status_code == 422


def test_next_rejects_malformed_body(client):
    response = client.post(f"{API}/next", json={"decisions": ["root"]})
    assert response.status_code == 422


# -- save -------------------------------------------------------------------

def test_save_session(client, tmp_path):
    response = client.post(f"{API}/save", json={
        "sessionId": "client-42",
        "appPurpose": "saas",
        "appType": "web",
        "decisions": {"root": "saas", "platform": "web"},
        "currentStep": 99,
        "totalSteps": 1,
    })
    assert response.status_code == 200
    assert response.json() == {"success": True}
    session = app.state.session_service.get_session("client-42")
    # Progress comes from the tree, not from the client
    assert (session.current_step, session.total_steps) == (2, 10)
    assert (tmp_path / "client-42.json").exists()


def test_save_reports_persistence_failure(client, store, monkeypatch):
    monkeypatch.setattr(store, "save", AsyncMock(side_effect=PersistenceError("disk full")))
    response = client.post(f"{API}/save", json={"sessionId": "client-42", "decisions": {"root": "saas"}})
    assert response.status_code == 200
    assert response.json() == {"success": False}
    # The session itself is still usable
    assert app.state.session_service.get_session("client-42").decisions == {"root": "saas"}


def test_save_rejects_invalid_decisions(client):
    response = client.post(f"{API}/save", json={"sessionId": "client-42", "decisions": {"root": "nope"}})
    assert response.status_code == 422


# -- generate ---------------------------------------------------------------

def test_generate_blueprint(client, tmp_path):
    decisions = {"root": "custom", "platform": "web"}
    client.post(f"{API}/save", json={"sessionId": "gen-1", "decisions": decisions})
    app.state.blueprint_generator.generate.return_value = ProjectBlueprint(
        project_name="Widget", features=[{"id": "f1", "name": "Dashboard"}]
    )

    response = client.post(f"{API}/generate", json={
        "sessionId": "gen-1", "appPurpose": "custom", "appType": "web", "decisions": decisions,
    })

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["sessionId"] == "gen-1"
    assert data["data"]["projectName"] == "Widget"
    assert "error" not in data

    request = app.state.blueprint_generator.generate.call_args.args[0]
    assert request.purpose == "custom" and request.decisions == decisions
    assert (tmp_path / "archive" / "gen-1.json").exists()
    assert "gen-1" not in app.state.session_service.sessions


def test_generate_requires_purpose_and_platform(client):
    response = client.post(f"{API}/generate", json={
        "sessionId": "gen-2", "appPurpose": "saas", "decisions": {"root": "saas"},
    })
    assert response.status_code == 400
    app.state.blueprint_generator.generate.assert_not_called()


def test_generate_failure_returns_502(client):
    app.state.blueprint_generator.generate.side_effect = BlueprintGenerationError("Invalid mindmap structure received from AI")
    response = client.post(f"{API}/generate", json={
        "sessionId": "gen-3", "purpose": "custom", "platform": "web",
        "decisions": {"root": "custom", "platform": "web"},
    })
    assert response.status_code == 502
    data = response.json()
    assert data["success"] is False
    assert "Invalid mindmap" in data["error"]
    assert "data" not in data


# -- server-side sessions ---------------------------------------------------

def test_session_flow(client):
    assert client.get(f"{API}/session").json() == {"session": None}

    started = client.post(f"{API}/sessions").json()
    session_id = started["session"]["sessionId"]
    assert started["question"]["id"] == "root"

    current = client.get(f"{API}/session").json()["session"]
    assert current["session"]["sessionId"] == session_id

    step = client.post(f"{API}/sessions/{session_id}/decisions", json={"nodeId": "root", "value": "saas"}).json()
    assert step["question"]["id"] == "platform"
    assert step["progress"]["currentStep"] == 1

    step = client.post(f"{API}/sessions/{session_id}/decisions", json={"nodeId": "platform", "value": "web"}).json()
    assert step["question"]["id"] == "saas-purpose"
    assert step["session"]["purpose"] == "saas"
    assert step["progress"] == {"currentStep": 2, "totalSteps": 10, "percentage": 20}

    fetched = client.get(f"{API}/sessions/{session_id}").json()
    assert fetched["session"]["decisions"] == {"root": "saas", "platform": "web"}
    assert fetched["completed"] is False


def test_unknown_session_is_404(client):
    assert client.get(f"{API}/sessions/missing").status_code == 404
    response = client.post(f"{API}/sessions/missing/decisions", json={"nodeId": "root", "value": "saas"})
    assert response.status_code == 404
    assert client.post(f"{API}/sessions/missing/resume").status_code == 404


def test_record_invalid_decision_is_422(client):
    session_id = client.post(f"{API}/sessions").json()["session"]["sessionId"]
    response = client.post(f"{API}/sessions/{session_id}/decisions", json={"nodeId": "root", "value": "spaceship"})
    assert response.status_code == 422


def test_duplicate_submission_is_409(client):
    session_id = client.post(f"{API}/sessions").json()["session"]["sessionId"]
    app.state.session_service.begin_advance(session_id, "root")
    response = client.post(f"{API}/sessions/{session_id}/decisions", json={"nodeId": "root", "value": "saas"})
    assert response.status_code == 409
    app.state.session_service.end_advance(session_id, "root")


def test_resume_session(client, store):
    saved = WizardSession(session_id="resume-me", decisions={"root": "ecommerce", "platform": "web", "payment": "stripe"})
    asyncio.run(store.save(saved))

    response = client.post(f"{API}/sessions/resume-me/resume")
    assert response.status_code == 200
    data = response.json()
    assert data["session"]["decisions"] == saved.decisions
    assert data["question"]["id"] == "ecom-products"
    assert data["progress"]["currentStep"] == 3

    assert client.get(f"{API}/session").json()["session"]["session"]["sessionId"] == "resume-me"


def test_resume_stale_session_is_422(client, store):
    stale = WizardSession(session_id="stale", decisions={"root": "ecommerce", "platform": "web", "retired-node": "x"})
    asyncio.run(store.save(stale))
    assert client.post(f"{API}/sessions/stale/resume").status_code == 422


# -- catalogue --------------------------------------------------------------

def test_list_paths(client):
    paths = client.get(f"{API}/paths").json()
    assert {"purpose": "ecommerce", "platform": "web", "totalSteps": 12} in paths
    assert {"purpose": "saas", "platform": "web", "totalSteps": 10} in paths


def test_list_tooltips(client):
    tooltips = client.get(f"{API}/tooltips").json()
    assert tooltips["backend"]["term"] == "Backend"
    assert tooltips["backend"]["simpleExplanation"]


def test_health_and_security_headers(client):
    response = client.get("/health")
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "frame-ancestors 'none'" in response.headers["Content-Security-Policy"]
