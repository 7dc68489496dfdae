from __future__ import annotations

from fastapi.testclient import TestClient

from stockshift.api.shops import get_orchestrator
from stockshift.api.webhooks import normalize_topic
from stockshift.db import get_session
from stockshift.main import app


class _RecordingOrchestrator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    async def evaluate_and_reconcile_one(self, shop_domain: str, inventory_item_id: str) -> None:
        self.calls.append((shop_domain, inventory_item_id))


async def _no_session():
    yield None


def _client(orchestrator: _RecordingOrchestrator) -> TestClient:
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_session] = _no_session
    return TestClient(app)


def test_topic_normalization() -> None:
    assert normalize_topic("inventory_levels/update") == "INVENTORY_LEVELS_UPDATE"
    assert normalize_topic(" APP_UNINSTALLED ") == "APP_UNINSTALLED"


def test_inventory_webhook_schedules_reconciliation() -> None:
    orchestrator = _RecordingOrchestrator()
    client = _client(orchestrator)
    try:
        resp = client.post(
            "/webhooks",
            json={"inventory_item_id": 808950810, "location_id": 1, "available": 0},
            headers={"X-Shopify-Topic": "inventory_levels/update", "X-Shopify-Shop-Domain": "demo.myshopify.com"},
        )
    finally:
        app.dependency_overrides.clear()
    assert resp.status_code == 200
    assert resp.json() == {"status": "accepted"}
    assert orchestrator.calls == [("demo.myshopify.com", "808950810")]


def test_inventory_webhook_without_item_is_ignored() -> None:
    orchestrator = _RecordingOrchestrator()
    client = _client(orchestrator)
    try:
        resp = client.post(
            "/webhooks",
            json={"location_id": 1},
            headers={"X-Shopify-Topic": "INVENTORY_LEVELS_UPDATE", "X-Shopify-Shop-Domain": "demo.myshopify.com"},
        )
    finally:
        app.dependency_overrides.clear()
    assert resp.json() == {"status": "ignored"}
    assert orchestrator.calls == []


def test_compliance_topics_are_acknowledged_and_unknown_rejected() -> None:
    client = _client(_RecordingOrchestrator())
    headers = {"X-Shopify-Shop-Domain": "demo.myshopify.com"}
    try:
        ok = client.post("/webhooks", json={}, headers={**headers, "X-Shopify-Topic": "customers/redact"})
        unknown = client.post("/webhooks", json={}, headers={**headers, "X-Shopify-Topic": "orders/create"})
    finally:
        app.dependency_overrides.clear()
    assert ok.status_code == 200
    assert unknown.status_code == 404


def test_health() -> None:
    resp = TestClient(app).get("/health")
    assert resp.json() == {"status": "ok", "service": "stockshift"}
