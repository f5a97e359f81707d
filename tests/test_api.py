"""Tests for the concierge HTTP routes."""

from __future__ import annotations

import json
from types import SimpleNamespace
from typing import Any, List

import anyio
import httpx
import pytest
from fastapi.testclient import TestClient

import concierge.main as app_main
from conftest import FakeShop
from concierge.agent import TurnOrchestrator
from concierge.agent.schemas import (
    DoneEvent,
    FinalTextDecision,
    TextEvent,
    ToolCall,
    ToolCallsDecision,
)
from concierge.catalog import CatalogGateway
from concierge.main import app
from concierge.sessions import InMemorySessionStore, SessionStoreError


_INSIGHT = {
    "pros": ["Warm fleece", "Roomy hood", "Durable"],
    "cons": ["Runs large"],
    "whoIsThisFor": "Lifters who want a relaxed fit.",
    "features": [{"name": "Comfort", "score": 8.5}, {"name": "Value", "score": 7}],
}


class _StubOrchestrator:
    """Replay fixed events and record the turn inputs."""

    def __init__(self, events: List[Any]) -> None:
        self._events = events
        self.turns: List[tuple] = []

    async def run_turn(self, history, user_message, deps):
        self.turns.append((list(history), user_message, deps))
        for event in self._events:
            yield event


class _ScriptedPlanner:
    def __init__(self, decisions: List[Any]) -> None:
        self._decisions = list(decisions)

    async def plan(self, messages, tools):
        yield self._decisions.pop(0)


class _StubInsightAgent:
    def __init__(self, reply: str) -> None:
        self._reply = reply
        self.prompts: List[str] = []

    async def run(self, prompt: str):
        self.prompts.append(prompt)
        return SimpleNamespace(output=self._reply)


class _BrokenSessions(InMemorySessionStore):
    async def update_conversation(self, *args, **kwargs):
        raise SessionStoreError("backend down")

    async def list_conversations(self, session_id):
        raise SessionStoreError("backend down")

    async def list_wishlist(self, session_id):
        raise SessionStoreError("backend down")


@pytest.fixture
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, fake_shop: FakeShop, sessions: InMemorySessionStore):
    gateway = CatalogGateway(transport=httpx.MockTransport(fake_shop.handler))
    monkeypatch.setattr(app_main, "get_gateway", lambda: gateway)
    monkeypatch.setattr(app_main, "get_session_store", lambda: sessions)
    monkeypatch.setattr(app_main, "get_turn_logger", lambda: None)
    with TestClient(app) as test_client:
        yield test_client


def _ndjson(response) -> List[dict]:
    return [json.loads(line) for line in response.text.splitlines() if line.strip()]


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_chat_requires_session(client: TestClient) -> None:
    response = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})

    assert response.status_code == 400
    assert response.json()["detail"] == "sessionId required"


def test_chat_requires_trailing_user_message(client: TestClient) -> None:
    response = client.post(
        "/chat?sessionId=s1", json={"messages": [{"role": "assistant", "content": "hi"}]}
    )

    assert response.status_code == 400


def test_chat_streams_events_and_saves_transcript(
    monkeypatch: pytest.MonkeyPatch, client: TestClient, sessions: InMemorySessionStore
) -> None:
    stub = _StubOrchestrator(
        [TextEvent(step=1, text="Here are some hoodies."), DoneEvent(text="Here are some hoodies.", steps=1)]
    )
    monkeypatch.setattr(app_main, "get_orchestrator", lambda: stub)

    response = client.post(
        "/chat?sessionId=s1",
        json={
            "messages": [
                {"role": "user", "content": "hello"},
                {"role": "assistant", "content": "Hi! What are you into?"},
                {"role": "user", "content": "Find me a warm hoodie"},
            ],
            "conversationId": "conv-1",
            "store": "gymshark",
        },
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/x-ndjson")
    assert _ndjson(response) == [
        {"type": "text", "step": 1, "text": "Here are some hoodies."},
        {"type": "done", "text": "Here are some hoodies.", "steps": 1},
    ]

    history, user_message, deps = stub.turns[0]
    assert user_message == "Find me a warm hoodie"
    assert [message.role for message in history] == ["user", "assistant"]
    assert deps.store == "gymshark.com"
    assert deps.session_id == "s1"

    saved = anyio.run(sessions.get_conversation, "s1", "conv-1")
    assert saved.title == "hello"
    assert [message.content for message in saved.messages][-1] == "Here are some hoodies."
    assert len(saved.messages) == 4


def test_chat_runs_tools_against_the_store(monkeypatch: pytest.MonkeyPatch, client: TestClient) -> None:
    planner = _ScriptedPlanner(
        [
            ToolCallsDecision(calls=[ToolCall(id="call-1", name="searchProducts", args={"query": "hoodie"})]),
            FinalTextDecision(text="[1] Crest Hoodie - $45.00"),
        ]
    )
    orchestrator = TurnOrchestrator(planner, system_prompt="sys")
    monkeypatch.setattr(app_main, "get_orchestrator", lambda: orchestrator)

    response = client.post(
        "/chat?sessionId=s1",
        json={"messages": [{"role": "user", "content": "hoodies?"}], "store": "gymshark.com"},
    )

    events = _ndjson(response)
    assert [event["type"] for event in events] == ["tool_call", "tool_result", "text", "done"]
    assert events[0]["callId"] == "call-1"
    assert events[1]["ok"] is True
    assert events[1]["result"]["products"][0]["title"] == "Crest Hoodie"
    assert events[-1]["steps"] == 2


def test_chat_survives_transcript_save_failure(monkeypatch: pytest.MonkeyPatch, client: TestClient) -> None:
    monkeypatch.setattr(app_main, "get_session_store", lambda: _BrokenSessions())
    monkeypatch.setattr(
        app_main, "get_orchestrator", lambda: _StubOrchestrator([DoneEvent(text="ok", steps=1)])
    )

    response = client.post(
        "/chat?sessionId=s1",
        json={"messages": [{"role": "user", "content": "hi"}], "conversationId": "conv-1"},
    )

    assert response.status_code == 200
    assert _ndjson(response)[-1]["type"] == "done"


def test_product_listing_is_clamped_and_tagged_with_store(client: TestClient) -> None:
    response = client.get("/api/products", params={"q": "", "store": "gymshark.com", "limit": 2})

    body = response.json()
    assert response.status_code == 200
    assert len(body["products"]) == 2
    assert body["pagesFetched"] == 1
    assert body["hasMore"] is True
    assert body["store"] == "gymshark.com"


def test_product_listing_reports_upstream_failure(client: TestClient, fake_shop: FakeShop) -> None:
    fake_shop.errors[("gymshark.com", "search_shop_catalog")] = "Internal error"

    response = client.get("/api/products", params={"store": "gymshark.com"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Internal error"


def test_cart_routes(client: TestClient) -> None:
    assert client.get("/api/cart").status_code == 400

    created = client.post(
        "/api/cart",
        json={"items": [{"merchandiseId": "gid://shopify/ProductVariant/1", "quantity": 1}], "store": "gymshark.com"},
    )
    assert created.status_code == 200
    cart_id = created.json()["id"]

    fetched = client.get("/api/cart", params={"cartId": cart_id, "store": "gymshark.com"})
    assert fetched.json()["totalQuantity"] == 1

    foreign = client.get("/api/cart", params={"cartId": cart_id, "store": "ridgewallet.com"})
    assert foreign.status_code == 404
    assert foreign.json()["detail"]["discardCart"] is True

    stale = client.post(
        "/api/cart",
        json={
            "items": [{"merchandiseId": "gid://shopify/ProductVariant/1", "quantity": 1}],
            "cartId": cart_id,
            "store": "ridgewallet.com",
        },
    )
    assert stale.status_code == 404

    assert client.post("/api/cart", json={"items": []}).status_code == 422


def test_product_details_resolve_across_stores(client: TestClient) -> None:
    found = client.get("/api/products/ridge-wallet-aluminum/details")
    missing = client.get("/api/products/not-a-real-product/details")

    assert found.status_code == 200
    assert found.json()["store"] == "ridgewallet.com"
    assert found.json()["product"]["title"] == "Aluminum Wallet"
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Product not found"


def test_analysis_is_generated_then_served_from_cache(
    monkeypatch: pytest.MonkeyPatch, client: TestClient
) -> None:
    agent = _StubInsightAgent("```json\n" + json.dumps(_INSIGHT) + "\n```")
    monkeypatch.setattr(app_main, "get_insight_agent", lambda: agent)
    url = "/api/products/gymshark-crest-hoodie/analysis"

    assert client.get(url, params={"store": "gymshark.com"}).status_code == 404

    generated = client.post(url, params={"store": "gymshark.com"})
    assert generated.status_code == 200
    assert generated.json()["whoIsThisFor"] == _INSIGHT["whoIsThisFor"]
    assert "Crest Hoodie" in agent.prompts[0]

    cached = client.get(url, params={"store": "gymshark.com"})
    assert cached.json()["features"][0] == {"name": "Comfort", "score": 8.5}

    client.post(url, params={"store": "gymshark.com"})
    assert len(agent.prompts) == 1


def test_malformed_analysis_is_not_cached(monkeypatch: pytest.MonkeyPatch, client: TestClient) -> None:
    monkeypatch.setattr(app_main, "get_insight_agent", lambda: _StubInsightAgent("Sure! Here are my thoughts"))
    url = "/api/products/gymshark-crest-hoodie/analysis"

    response = client.post(url, params={"store": "gymshark.com"})

    assert response.status_code == 502
    assert response.json()["detail"] == "Analysis unavailable"
    assert client.get(url, params={"store": "gymshark.com"}).status_code == 404


def test_conversation_routes(client: TestClient) -> None:
    assert client.get("/api/conversations").status_code == 400

    created = client.post("/api/conversations", json={"sessionId": "s1", "title": "Gifts"}).json()
    listed = client.get("/api/conversations", params={"sessionId": "s1"}).json()
    assert [item["id"] for item in listed["conversations"]] == [created["id"]]

    updated = client.put(
        f"/api/conversations/{created['id']}",
        params={"sessionId": "s1"},
        json={"messages": [{"role": "user", "content": "gift ideas"}]},
    )
    assert updated.status_code == 200

    loaded = client.get(f"/api/conversations/{created['id']}", params={"sessionId": "s1"}).json()
    assert loaded["title"] == "Gifts"
    assert loaded["messages"][0]["content"] == "gift ideas"

    assert client.get("/api/conversations/missing", params={"sessionId": "s1"}).status_code == 404


def test_listing_failures_degrade_to_empty(monkeypatch: pytest.MonkeyPatch, client: TestClient) -> None:
    monkeypatch.setattr(app_main, "get_session_store", lambda: _BrokenSessions())

    assert client.get("/api/conversations", params={"sessionId": "s1"}).json() == {"conversations": []}
    assert client.get("/api/wishlist", params={"sessionId": "s1"}).json() == {"wishlist": []}


def test_wishlist_routes(client: TestClient) -> None:
    assert client.post("/api/wishlist", json={"productHandle": "x"}).status_code == 400

    body = {"sessionId": "s1", "productHandle": "gymshark-crest-hoodie", "productTitle": "Crest Hoodie"}
    first = client.post("/api/wishlist", json=body).json()
    second = client.post("/api/wishlist", json=body).json()
    assert first["id"] == second["id"]

    listed = client.get("/api/wishlist", params={"sessionId": "s1"}).json()["wishlist"]
    assert [item["productHandle"] for item in listed] == ["gymshark-crest-hoodie"]

    removed = client.delete(f"/api/wishlist/{first['id']}", params={"sessionId": "s1"})
    assert removed.json() == {"id": first["id"], "removed": True}
    assert client.get("/api/wishlist", params={"sessionId": "s1"}).json() == {"wishlist": []}


def test_chat_turn_keeps_an_explicit_title(monkeypatch: pytest.MonkeyPatch, client: TestClient) -> None:
    monkeypatch.setattr(
        app_main, "get_orchestrator", lambda: _StubOrchestrator([DoneEvent(text="Try these.", steps=1)])
    )
    created = client.post("/api/conversations", json={"sessionId": "s1", "title": "Gifts"}).json()

    client.post(
        "/chat?sessionId=s1",
        json={"messages": [{"role": "user", "content": "find me a hoodie"}], "conversationId": created["id"]},
    )

    loaded = client.get(f"/api/conversations/{created['id']}", params={"sessionId": "s1"}).json()
    assert loaded["title"] == "Gifts"
    assert [message["content"] for message in loaded["messages"]] == ["find me a hoodie", "Try these."]


def test_untitled_conversation_takes_first_user_message(
    monkeypatch: pytest.MonkeyPatch, client: TestClient
) -> None:
    monkeypatch.setattr(app_main, "get_orchestrator", lambda: _StubOrchestrator([DoneEvent(text="ok", steps=1)]))
    created = client.post("/api/conversations", json={"sessionId": "s1"}).json()
    assert created["title"] == "New Chat"

    client.post(
        "/chat?sessionId=s1",
        json={"messages": [{"role": "user", "content": "wallet gifts"}], "conversationId": created["id"]},
    )

    loaded = client.get(f"/api/conversations/{created['id']}", params={"sessionId": "s1"}).json()
    assert loaded["title"] == "wallet gifts"


def test_bad_merchandise_on_live_cart_is_not_a_discard(client: TestClient, fake_shop: FakeShop) -> None:
    created = client.post(
        "/api/cart",
        json={"items": [{"merchandiseId": "gid://shopify/ProductVariant/1", "quantity": 1}], "store": "gymshark.com"},
    ).json()
    fake_shop.errors[("gymshark.com", "update_cart")] = "Merchandise gid://shopify/ProductVariant/zzz not found"

    response = client.post(
        "/api/cart",
        json={
            "items": [{"merchandiseId": "gid://shopify/ProductVariant/zzz", "quantity": 1}],
            "cartId": created["id"],
            "store": "gymshark.com",
        },
    )

    assert response.status_code == 502
    assert "not found" in response.json()["detail"]


def test_lifespan_closes_the_catalog_client(
    monkeypatch: pytest.MonkeyPatch, fake_shop: FakeShop, sessions: InMemorySessionStore
) -> None:
    gateway = CatalogGateway(transport=httpx.MockTransport(fake_shop.handler))
    monkeypatch.setattr(app_main, "get_gateway", lambda: gateway)
    monkeypatch.setattr(app_main, "get_session_store", lambda: sessions)
    monkeypatch.setattr(app_main, "get_turn_logger", lambda: None)

    with TestClient(app) as test_client:
        assert test_client.get("/health").status_code == 200
        assert gateway.closed is False

    assert gateway.closed is True
