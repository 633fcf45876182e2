"""HTTP surface of the AI router."""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.cleanup import CleanupService
from core.config import Settings
from models.cache import QueryType
from routers import ai
from services.ai import AnthropicCompleter, Completion, TripAIService


class FakeCompleter:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = 0

    async def __call__(self, system_prompt, prompt, max_tokens):
        self.calls += 1
        if self.fail:
            raise RuntimeError("upstream exploded")
        return Completion(text="Go to the Alhambra early.", model="claude-test", tokens_used=42)


@pytest.fixture
def completer():
    return FakeCompleter()


@pytest.fixture
def client(cache, completer):
    app = FastAPI()
    app.include_router(ai.router)
    cleanup = CleanupService(cache, Settings(ai_cache_backend="memory"))
    app.dependency_overrides[ai.get_ai_service] = lambda: TripAIService(cache, completer)
    app.dependency_overrides[ai.get_ai_cache] = lambda: cache
    app.dependency_overrides[ai.get_cleanup_service] = lambda: cleanup
    return TestClient(app)


def test_suggestions_miss_then_hit(client, completer):
    body = {"trip_id": "trip-1", "plan_version_id": "plan-a", "request": "what to do in Granada"}

    first = client.post("/api/ai/suggestions", json=body)
    second = client.post("/api/ai/suggestions", json=body)

    assert first.status_code == 200
    assert first.json() == {"result": "Go to the Alhambra early.", "cached": False}
    assert second.json() == {"result": "Go to the Alhambra early.", "cached": True}
    assert completer.calls == 1


def test_research_without_trip(client):
    response = client.post("/api/ai/research", json={"query": "tapas bars", "type": "restaurant"})
    assert response.status_code == 200
    assert response.json()["result"] == {"text": "Go to the Alhambra early."}


def test_compare_with_one_plan_is_bad_request(client):
    body = {"trip_id": "trip-1", "plans": [{"id": "plan-a", "name": "Only plan"}]}
    response = client.post("/api/ai/compare", json=body)
    assert response.status_code == 400
    assert "At least 2" in response.json()["error"]


def test_missing_fields_rejected(client):
    response = client.post("/api/ai/research", json={"type": "hotel"})
    assert response.status_code == 422


def test_llm_failure_is_500(cache):
    app = FastAPI()
    app.include_router(ai.router)
    app.dependency_overrides[ai.get_ai_service] = lambda: TripAIService(cache, FakeCompleter(fail=True))
    response = TestClient(app).post(
        "/api/ai/optimise",
        json={"trip_id": "trip-1", "plan": {"id": "plan-a", "name": "Road trip"}},
    )
    assert response.status_code == 500
    assert response.json() == {"error": "Cost optimization failed"}


def test_missing_api_key_is_server_error(cache):
    app = FastAPI()
    app.include_router(ai.router)
    completer = AnthropicCompleter(Settings(anthropic_api_key=None))
    app.dependency_overrides[ai.get_ai_service] = lambda: TripAIService(cache, completer)

    response = TestClient(app).post(
        "/api/ai/suggestions",
        json={"trip_id": "trip-1", "plan_version_id": "plan-a", "request": "museums"},
    )
    assert response.status_code == 500
    assert response.json() == {"error": "Suggestions failed"}


def test_internal_value_error_is_server_error(cache):
    class BrokenCompleter:
        async def __call__(self, system_prompt, prompt, max_tokens):
            raise ValueError("bad upstream payload")

    app = FastAPI()
    app.include_router(ai.router)
    app.dependency_overrides[ai.get_ai_service] = lambda: TripAIService(cache, BrokenCompleter())
    response = TestClient(app).post("/api/ai/research", json={"query": "tapas bars", "type": "restaurant"})
    assert response.status_code == 500
    assert response.json() == {"error": "AI research failed"}


def test_cleanup_endpoint(client, cache, clock):
    asyncio.run(cache.store("trip-1", "q", QueryType.COMPARISON, "r"))
    clock.advance(hours=2)

    response = client.post("/api/ai/cache/cleanup")
    assert response.status_code == 200
    assert response.json() == {"deleted": 1}


def test_ttl_endpoint(client):
    response = client.get("/api/ai/cache/ttl")
    assert response.json()["ttl_hours"]["comparison"] == 1
    assert response.json()["ttl_hours"]["optimization"] == 6
