from datetime import timedelta

import pytest
from starlette.testclient import TestClient


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    js = r.json()
    assert js["ok"] is True
    assert js["data"]["status"] == "healthy"


def test_openapi_lists_endpoints(client):
    paths = client.get("/openapi.json").json().get("paths", {})
    for p in ("/rates", "/rates/{base}", "/convert", "/api/cron/refresh-rates", "/health"):
        assert p in paths


def test_rate_live(client, fetcher):
    fetcher.tables["USD"] = {"EUR": 0.92}
    r = client.get("/rates", params={"from": "usd", "to": "EUR"})
    assert r.status_code == 200
    js = r.json()
    assert js["ok"] is True
    data = js["data"]
    assert data["pair"] == "USD_EUR"
    assert data["rate"] == 0.92
    assert data["source"] == "live"
    assert data["stale"] is False
    assert "fetched_at" in data


def test_rate_stale(client, fetcher, cache, clock):
    cache.put("USD", "EUR", 0.90, clock.now - timedelta(days=2))
    fetcher.errors["USD"] = "timeout"
    js = client.get("/rates", params={"from": "USD", "to": "EUR"}).json()
    assert js["ok"] is True
    assert js["data"]["source"] == "stale"
    assert js["data"]["stale"] is True
    assert js["data"]["rate"] == 0.90


def test_rate_unavailable(client, fetcher):
    fetcher.errors["USD"] = "http_503"
    r = client.get("/rates", params={"from": "USD", "to": "EUR"})
    assert r.status_code == 404
    js = r.json()
    assert js["ok"] is False
    assert js["error"]["code"] == "NOT_FOUND"
    assert js["error"]["details"]["reason"] == "http_503"


def test_rate_identity(client, fetcher):
    js = client.get("/rates", params={"from": "EUR", "to": "EUR"}).json()
    assert js["data"]["rate"] == 1.0
    assert fetcher.calls == []


def test_rate_bad_input(client):
    r = client.get("/rates", params={"from": "EURO", "to": "USD"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "BAD_INPUT"

    r = client.get("/rates", params={"from": "XX", "to": "XX"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "BAD_INPUT"

    r = client.get("/rates", params={"from": "EUR"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "BAD_INPUT"


def test_all_rates_for_base(client, cache, clock):
    cache.put("USD", "EUR", 0.92, clock.now)
    cache.put("USD", "GBP", 0.79, clock.now - timedelta(hours=25))
    js = client.get("/rates/usd").json()
    assert js["data"] == {"base": "USD", "rates": {"EUR": 0.92}}


def test_convert(client, fetcher):
    fetcher.tables["EUR"] = {"USD": 1.0869565}
    js = client.get("/convert", params={"amount": "100", "from": "EUR", "to": "USD"}).json()
    assert js["ok"] is True
    assert js["data"]["converted"] == "108.70"
    assert js["data"]["rate"] == 1.0869565
    assert js["data"]["stale"] is False


def test_convert_without_rate_shows_no_figure(client, fetcher):
    fetcher.errors["EUR"] = "timeout"
    r = client.get("/convert", params={"amount": "100", "from": "EUR", "to": "USD"})
    assert r.status_code == 404
    js = r.json()
    assert js["ok"] is False
    assert "converted" not in js


def test_convert_bad_amount(client):
    for amount in ("abc", "NaN", "Infinity"):
        r = client.get("/convert", params={"amount": amount, "from": "EUR", "to": "USD"})
        assert r.status_code == 400
        assert r.json()["error"]["code"] == "BAD_INPUT"


def test_unexpected_failure_is_internal_error(client, fetcher):
    async def boom(base):
        raise RuntimeError("resolver bug")

    fetcher.fetch_table = boom
    r = client.get("/rates", params={"from": "USD", "to": "EUR"})
    assert r.status_code == 500
    js = r.json()
    assert js["error"]["code"] == "INTERNAL"
    assert js["error"]["message"] == "resolver bug"

    r = client.get("/convert", params={"amount": "10", "from": "USD", "to": "EUR"})
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "INTERNAL"


def test_routes_refuse_to_run_without_startup(app):
    app.state.resolver = None
    with pytest.raises(RuntimeError, match="not initialised"):
        TestClient(app).get("/rates", params={"from": "USD", "to": "EUR"})
