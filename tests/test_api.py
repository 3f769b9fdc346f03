"""
HTTP routes through TestClient, with an in-memory store, a fake Polygon
client and no real database connections.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import MARKET_OPEN_UTC, FakePolygon, FixedClock, make_settings
from etf_data_service.ai.manager import AIManagerConfig, AIServiceManager
from etf_data_service.container import ServiceContainer
from etf_data_service.db.store import MemoryRecordStore
from etf_data_service.layers.cache import CacheLayer
from etf_data_service.layers.market_hours import MarketHoursGate
from etf_data_service.models.records import RunStatus, RunSummary
from etf_data_service.services.etf_service import ETFService
from etf_data_service.services.fetch_service import FetchOrchestrator, TierConfig
from etf_data_service.services.run_lock import TierRunLock

AUTH = {"Authorization": "Bearer s3cret"}


async def _no_sleep(seconds):
    return None


def _container(with_fetch=True, with_ai=True) -> ServiceContainer:
    settings = make_settings(CRON_SECRET="s3cret", POLYGON_API_KEY="pk", AI_HEURISTIC_ENABLED=with_ai)
    clock = FixedClock(MARKET_OPEN_UTC)
    store = MemoryRecordStore()
    cache = CacheLayer(store, staleness_window=timedelta(minutes=5), clock=clock)
    gate = MarketHoursGate.from_settings(settings, clock=clock)
    run_lock = TierRunLock()

    ai_manager = None
    if with_ai:
        ai_manager = AIServiceManager(AIManagerConfig.from_settings(settings))
        asyncio.run(ai_manager.initialize())

    polygon = orchestrator = None
    if with_fetch:
        polygon = FakePolygon(prices={"VOO": 500.0, "QQQ": 450.0})
        tiers = {
            "quotes": TierConfig(name="quotes", symbols=["VOO", "QQQ"]),
            "fetch-data": TierConfig(
                name="fetch-data", symbols=["VOO", "QQQ"], fetch_historical=True, refresh_top_picks=True
            ),
        }
        orchestrator = FetchOrchestrator(
            settings, cache, polygon, gate, run_lock=run_lock, ai_manager=ai_manager,
            tiers=tiers, sleep=_no_sleep, clock=clock,
        )

    return ServiceContainer(
        settings=settings,
        store=store,
        cache=cache,
        gate=gate,
        run_lock=run_lock,
        etf_service=ETFService(cache, orchestrator),
        polygon=polygon,
        orchestrator=orchestrator,
        ai_manager=ai_manager,
    )


def _patched_startup(container):
    connections = MagicMock()
    connections.connect = AsyncMock(return_value={"mongodb": False, "redis": False})
    return (
        patch("etf_data_service.main.DatabaseConnections", return_value=connections),
        patch("etf_data_service.main.build_container", new_callable=AsyncMock, return_value=container),
    )


@pytest.fixture
def app_client():
    container = _container()
    p1, p2 = _patched_startup(container)
    with p1, p2:
        from etf_data_service.main import app
        with TestClient(app) as c:
            c.container = container
            yield c


@pytest.fixture
def bare_client():
    container = _container(with_fetch=False, with_ai=False)
    p1, p2 = _patched_startup(container)
    with p1, p2:
        from etf_data_service.main import app
        with TestClient(app) as c:
            yield c


class TestHealthRoutes:
    def test_health_endpoint(self, app_client):
        resp = app_client.get("/health")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "ok"
        assert data["store"] == "memory"
        assert data["fetch_enabled"] is True
        assert data["ai_enabled"] is True
        assert data["market"]["is_open"] is True
        assert data["databases"]["mongodb"]["status"] == "not_configured"
        assert "X-Process-Time" in resp.headers

    def test_health_reports_connection_probes(self, app_client):
        connections = MagicMock()
        connections.health = AsyncMock(return_value={"mongodb": {"status": "healthy"}, "redis": {"status": "disabled"}})
        connections.close = AsyncMock()
        app_client.container.connections = connections

        data = app_client.get("/health").json()["data"]

        assert data["databases"]["mongodb"]["status"] == "healthy"
        assert data["databases"]["redis"]["status"] == "disabled"

    def test_probes(self, app_client):
        assert app_client.get("/healthz").json() == {"status": "ok"}
        assert app_client.get("/readyz").json() == {"ready": True, "store": "memory"}

    def test_root_endpoint(self, app_client):
        assert app_client.get("/").json()["service"] == "ETF DataService"


class TestCronRoutes:
    def test_requires_secret(self, app_client):
        assert app_client.get("/api/cron/quotes").status_code == 401
        assert app_client.get("/api/cron/quotes", headers={"Authorization": "Bearer nope"}).status_code == 401
        assert app_client.get("/api/cron/quotes", headers={"Authorization": "s3cret"}).status_code == 401

    def test_run_tier(self, app_client):
        resp = app_client.get("/api/cron/quotes", headers=AUTH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "success"
        assert body["data"]["fetch_count"] == 2

    def test_unknown_tier(self, app_client):
        assert app_client.get("/api/cron/weekly", headers=AUTH).status_code == 404

    def test_failed_run_is_500(self, app_client):
        failed = RunSummary(tier="quotes", status=RunStatus.FAILED, message="Fetch run failed: boom",
                            timestamp=MARKET_OPEN_UTC)
        app_client.container.orchestrator.run = AsyncMock(return_value=failed)

        resp = app_client.get("/api/cron/quotes", headers=AUTH)

        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "Fetch run failed: boom"
        assert body["data"]["status"] == "failed"

    def test_status_lists_runs(self, app_client):
        app_client.get("/api/cron/quotes", headers=AUTH)
        resp = app_client.get("/api/cron/status", headers=AUTH)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["tiers"] == ["fetch-data", "quotes"]
        assert data["recent_runs"][0]["tier"] == "quotes"
        assert data["market"]["timezone"] == "America/New_York"

    def test_fetch_disabled(self, bare_client):
        assert bare_client.get("/api/cron/quotes", headers=AUTH).status_code == 503


class TestEtfRoutes:
    def test_quote_missing_then_served(self, app_client):
        assert app_client.get("/api/etf/VOO/quote").status_code == 404

        app_client.get("/api/cron/quotes", headers=AUTH)
        resp = app_client.get("/api/etf/voo/quote")

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "fresh"
        assert body["data"]["status"] == "fresh"
        assert body["data"]["data"]["symbol"] == "VOO"
        assert body["data"]["data"]["midpoint"] == pytest.approx(500.0)

    def test_refresh_fetches_missing_quote(self, app_client):
        resp = app_client.get("/api/etf/QQQ/quote", params={"refresh": "true"})
        assert resp.status_code == 200
        assert resp.json()["data"]["data"]["midpoint"] == pytest.approx(450.0)

    def test_history_and_top_picks(self, app_client):
        assert app_client.get("/api/etf/top-picks").status_code == 404

        resp = app_client.get("/api/cron/fetch-data", headers=AUTH)
        assert resp.json()["data"]["is_first_fetch"] is True

        history = app_client.get("/api/etf/VOO/history").json()["data"]
        assert len(history["data"]["bars"]) == 91

        picks = app_client.get("/api/etf/top-picks").json()["data"]["data"]["picks"]
        assert [p["rank"] for p in picks] == [1, 2]
        assert {p["symbol"] for p in picks} == {"VOO", "QQQ"}

    def test_details(self, app_client):
        resp = app_client.get("/api/etf/voo/details")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["symbol"] == "VOO"
        assert data["name"] == "Vanguard S&P 500 ETF"
        assert data["details"]["type"] == "ETF"

    def test_details_absent_and_upstream_error(self, app_client):
        app_client.container.polygon.absent = {"ZZZZ"}
        app_client.container.polygon.failing = {"QQQ"}
        assert app_client.get("/api/etf/ZZZZ/details").status_code == 404
        assert app_client.get("/api/etf/QQQ/details").status_code == 502

    def test_details_without_polygon(self, bare_client):
        assert bare_client.get("/api/etf/VOO/details").status_code == 503

    def test_list(self, app_client):
        app_client.get("/api/cron/quotes", headers=AUTH)
        rows = app_client.get("/api/etf/list", params={"universe": "tracked"}).json()["data"]["etfs"]
        by_symbol = {r["symbol"]: r for r in rows}
        assert by_symbol["VOO"]["status"] == "fresh"
        assert by_symbol["SCHD"]["status"] == "missing"
        assert app_client.get("/api/etf/list", params={"universe": "bogus"}).status_code == 422


class TestAnalysisRoutes:
    def test_providers(self, app_client):
        data = app_client.get("/api/analysis/providers").json()["data"]
        assert data["fallback"] == "heuristic"
        assert set(data["roles"].values()) == {"heuristic"}
        assert any(e["kind"] == "fallback_repointed" for e in data["events"])

    def test_score_from_cache(self, app_client):
        assert app_client.get("/api/analysis/VOO").status_code == 404
        app_client.get("/api/cron/quotes", headers=AUTH)
        result = app_client.get("/api/analysis/VOO").json()["data"]
        assert result["symbol"] == "VOO"
        assert result["provider"] == "heuristic"
        assert 0 <= result["score"] <= 100

    def test_score_supplied_snapshot(self, app_client):
        resp = app_client.post("/api/analysis/qqq/score", json={"symbol": "QQQ", "current_price": 450.0})
        assert resp.status_code == 200
        assert resp.json()["data"]["symbol"] == "QQQ"

    def test_explanation(self, app_client):
        resp = app_client.post("/api/analysis/VOO/explanation", json={"symbol": "VOO", "score": 72, "signal": "buy"})
        assert resp.status_code == 200
        assert "72/100" in resp.json()["data"]["explanation"]

    def test_sentiment_neutral_without_capable_provider(self, app_client):
        resp = app_client.post("/api/analysis/VOO/sentiment", json={"context": "strong inflows"})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["sentiment"] == "neutral"
        assert data["confidence"] == 0.5

    def test_ai_disabled(self, bare_client):
        assert bare_client.get("/api/analysis/providers").status_code == 503


class TestCacheRoutes:
    def test_stats(self, app_client):
        app_client.get("/api/cron/quotes", headers=AUTH)
        data = app_client.get("/api/cache/stats").json()["data"]
        assert data["backend"] == "memory"
        assert data["quotes"] == 2
        assert data["run_logs"] == 1

    def test_cleanup_requires_secret(self, app_client):
        assert app_client.post("/api/cache/cleanup").status_code == 401
        resp = app_client.post("/api/cache/cleanup", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["data"] == {"quotes": 0, "historical": 0, "top_picks": 0, "run_logs": 0}
