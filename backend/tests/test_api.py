import pytest
from fastapi.testclient import TestClient

from design_intel.api.deps import get_provider_client, get_registry
from design_intel.config import DEFAULT_PROVIDERS, get_settings
from design_intel.main import app
from design_intel.models.base import get_db
from design_intel.services.llm.registry import ProviderRegistry
from design_intel.services.llm.types import LLMProviderError, ProviderResponse


class _ScriptedClient:
    def __init__(self):
        self.responses = []

    def invoke(self, provider, prompt, *, timeout_seconds):
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


@pytest.fixture
def provider_client():
    return _ScriptedClient()


@pytest.fixture
def client(db, monkeypatch, provider_client):
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("EMBEDDING_BACKEND", "hash")
    monkeypatch.setenv("EMBEDDING_DIMENSION", "64")
    monkeypatch.setenv("LLM_PROVIDERS_JSON", "")
    get_settings.cache_clear()

    def _db():
        yield db

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_registry] = lambda: ProviderRegistry.from_catalog(DEFAULT_PROVIDERS)
    app.dependency_overrides[get_provider_client] = lambda: provider_client
    yield TestClient(app)
    app.dependency_overrides.clear()
    get_settings.cache_clear()


def _ingest(client, component_data, **overrides):
    response = client.post("/components", json=component_data(**overrides))
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_component_lifecycle(client, component_data):
    created = _ingest(client, component_data, id="comp_a", aesthetic_score=150)
    assert created["aesthetic_score"] == 100

    fetched = client.get("/components/comp_a")
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Glass Hero"

    assert client.get("/components/missing").status_code == 404
    assert client.post("/components", json={"type": "hero"}).status_code == 422


def test_component_search_and_similarity(client, component_data):
    _ingest(client, component_data, id="comp_a", tags=["glass", "hero"], aesthetic_score=90)
    _ingest(client, component_data, id="comp_b", name="Glass Hero Dark", tags=["glass", "dark"], aesthetic_score=70)
    _ingest(client, component_data, id="comp_c", name="Pricing", type="pricing", category="display", tags=["pricing"])

    tagged = client.get("/components", params={"tags": ["dark"]})
    assert [c["id"] for c in tagged.json()] == ["comp_b"]

    ordered = client.get("/components", params={"type": "hero"})
    assert [c["id"] for c in ordered.json()] == ["comp_a", "comp_b"]

    similar = client.get("/components/comp_a/similar", params={"k": 2, "min_similarity": 0.0})
    assert similar.status_code == 200
    assert "comp_a" not in [hit["component"]["id"] for hit in similar.json()]

    stats = client.get("/components/stats").json()
    assert stats["embeddings"]["total_embeddings"] == 3
    assert client.get("/components/trending", params={"days": 0}).status_code == 422


def test_performance_updates_component_metrics(client, component_data):
    _ingest(client, component_data, id="comp_a")

    for site_id, impact in (("s1", 20), ("s2", 10)):
        response = client.post(
            "/components/performance",
            json={"component_id": "comp_a", "site_id": site_id, "placement": "hero", "conversion_impact": impact},
        )
        assert response.status_code == 200

    assert response.json()["component_conversion_rate"] == pytest.approx(15.0)
    assert response.json()["component_usage_count"] == 2
    missing = client.post(
        "/components/performance",
        json={"component_id": "nope", "site_id": "s1", "placement": "hero", "conversion_impact": 5},
    )
    assert missing.status_code == 404


def test_trend_routes(client, component_data):
    for idx in range(3):
        _ingest(client, component_data, id=f"comp_{idx}", style="gradient")

    trends = client.get("/trends").json()
    assert "style_gradient" in {trend["trend_id"] for trend in trends}

    trajectory = client.get("/trends/style_gradient/trajectory")
    assert trajectory.status_code == 200
    assert trajectory.json()["prediction"]["confidence_score"] == 30.0
    assert client.get("/trends/style_baroque/trajectory").status_code == 404
    assert "summary" in client.get("/trends/report").json()


def test_learning_routes(client):
    site = client.post("/learning/sites", json={"id": "site_1", "domain": "acme.test", "industry": "SaaS"})
    assert site.status_code == 200
    assert site.json()["industry"] == "saas"
    assert client.get("/learning/sites/unknown").status_code == 404

    assert client.post("/learning/candidates", json={"site_id": "site_1", "html": " ", "css": ""}).status_code == 422

    created = client.post(
        "/learning/candidates",
        json={"site_id": "site_1", "html": "<div class='card'>Plan</div>", "css": ".card { color: red !important; }"},
    )
    assert created.status_code == 200
    candidate = created.json()
    assert candidate["promotion_status"] == "candidate"

    rejected = client.post(f"/learning/candidates/{candidate['id']}:reject")
    assert rejected.json()["promotion_status"] == "rejected"
    assert client.post(f"/learning/candidates/{candidate['id']}:promote").status_code == 422

    assert client.post("/learning/insights:generate").status_code == 200
    assert client.patch("/learning/insights/999", json={"status": "validated"}).status_code == 404
    assert client.get("/learning/stats").json()["total_extracted"] == 1


def test_task_routes_map_provider_errors(client, provider_client):
    provider_client.responses = [
        ProviderResponse(payload={"score": 72, "strengths": ["contrast"]}),
        LLMProviderError("upstream 503", retryable=True),
    ]

    ok = client.post("/tasks", json={"task_type": "quality_assessment", "prompt": "Rate this hero"})
    assert ok.status_code == 200, ok.text
    assert ok.json()["success"] is True

    failed = client.post("/tasks", json={"task_type": "quality_assessment", "prompt": "Rate this hero"})
    assert failed.status_code == 502
    assert failed.json()["retryable"] is True

    no_provider = client.post(
        "/tasks",
        json={
            "task_type": "trend_analysis",
            "prompt": "What is trending?",
            "exclude_providers": ["claude-sonnet"],
        },
    )
    assert no_provider.status_code == 409

    stats = client.get("/tasks/stats").json()
    assert stats["total_tasks"] == 2
    assert [p["name"] for p in client.get("/tasks/providers").json()][0] == "claude-sonnet"
