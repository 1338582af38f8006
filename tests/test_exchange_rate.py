# tests/test_exchange_rate.py
# -----------------------------------------------------------------------
# Tests for intrinsic_engine/exchange_rate.py
#
# These tests never hit the network: the HTTP layer is replaced with a
# fake session and the cache is given a fake fetcher and clock.
# -----------------------------------------------------------------------

import threading
import time
import pandas as pd
import pytest
import requests
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from intrinsic_engine import exchange_rate
from intrinsic_engine.exchange_rate import (
    ExchangeRateCache,
    ExchangeRateError,
    ExchangeRates,
    fetch_exchange_rates,
)


# ── Helpers ────────────────────────────────────────────────────────────

T0 = pd.Timestamp("2024-06-01 00:00", tz="UTC")


class _FakeResponse:
    def __init__(self, status_code=200, payload=None, reason="", text="", json_error=None):
        self.status_code = status_code
        self._payload = {} if payload is None else payload
        self._json_error = json_error
        self.reason = reason
        self.text = text

    def json(self):
        if self._json_error is not None:
            raise self._json_error
        return self._payload


class _FakeSession:
    def __init__(self, responses):
        self._responses = list(responses)
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _payload(rates=None, next_update=T0 + pd.Timedelta(days=1)):
    return {
        "result": "success",
        "base_code": "USD",
        "time_next_update_unix": int(next_update.timestamp()),
        "conversion_rates": rates or {"USD": 1, "EUR": 0.9, "JPY": 150.0},
    }


class _CountingFetcher:
    def __init__(self, tables):
        self._tables = list(tables)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self._tables[min(self.calls, len(self._tables)) - 1]


def _table(next_update, **rates):
    return ExchangeRates(rates=rates or {"USD": 1.0, "EUR": 0.5, "JPY": 150.0}, next_update=next_update)


# ═══════════════════════════════════════════════════════════════════════
# fetch_exchange_rates
# ═══════════════════════════════════════════════════════════════════════

class TestFetchExchangeRates:
    def test_parses_payload(self):
        session = _FakeSession([_FakeResponse(payload=_payload())])
        table = fetch_exchange_rates(api_key="KEY", session=session)
        assert table.rates == {"USD": 1.0, "EUR": 0.9, "JPY": 150.0}
        assert table.next_update == T0 + pd.Timedelta(days=1)
        assert table.base == "USD"
        assert session.urls[0].endswith("/KEY/latest/USD")

    def test_missing_key_raises(self, monkeypatch):
        monkeypatch.setattr(exchange_rate, "EXCHANGE_RATE_API_KEY", "")
        with pytest.raises(ExchangeRateError, match="no API key"):
            fetch_exchange_rates(session=_FakeSession([]))

    def test_key_from_environment_setting(self, monkeypatch):
        monkeypatch.setattr(exchange_rate, "EXCHANGE_RATE_API_KEY", "ENVKEY")
        session = _FakeSession([_FakeResponse(payload=_payload())])
        fetch_exchange_rates(session=session)
        assert "/ENVKEY/" in session.urls[0]

    def test_client_error_not_retried(self):
        session = _FakeSession([_FakeResponse(status_code=403, text="invalid-key")])
        with pytest.raises(ExchangeRateError) as excinfo:
            fetch_exchange_rates(api_key="KEY", session=session)
        assert excinfo.value.status_code == 403
        assert len(session.urls) == 1

    def test_retries_on_503(self, monkeypatch):
        sleeps = []
        monkeypatch.setattr(exchange_rate.time, "sleep", sleeps.append)
        session = _FakeSession([
            _FakeResponse(status_code=503, reason="Service Unavailable"),
            _FakeResponse(payload=_payload()),
        ])
        table = fetch_exchange_rates(api_key="KEY", session=session)
        assert table.rates["EUR"] == pytest.approx(0.9)
        assert len(sleeps) == 1

    def test_gives_up_after_retries(self, monkeypatch):
        monkeypatch.setattr(exchange_rate.time, "sleep", lambda s: None)
        session = _FakeSession([requests.ConnectionError("down")] * 3)
        with pytest.raises(ExchangeRateError, match="after 3 retries"):
            fetch_exchange_rates(api_key="KEY", session=session)

    def test_error_payload_raises(self):
        session = _FakeSession([_FakeResponse(payload={"result": "error", "error-type": "quota-reached"})])
        with pytest.raises(ExchangeRateError, match="quota-reached"):
            fetch_exchange_rates(api_key="KEY", session=session)

    def test_malformed_payload_raises(self):
        session = _FakeSession([_FakeResponse(payload={"result": "success"})])
        with pytest.raises(ExchangeRateError, match="malformed"):
            fetch_exchange_rates(api_key="KEY", session=session)

    def test_non_json_body_raises(self):
        html = _FakeResponse(
            text="<html>maintenance</html>",
            json_error=requests.exceptions.JSONDecodeError("Expecting value", "<html>", 0),
        )
        session = _FakeSession([html])
        with pytest.raises(ExchangeRateError, match="not JSON") as excinfo:
            fetch_exchange_rates(api_key="KEY", session=session)
        assert excinfo.value.status_code == 200

    def test_non_object_payload_raises(self):
        session = _FakeSession([_FakeResponse(payload=["USD", 1.0])])
        with pytest.raises(ExchangeRateError, match="malformed"):
            fetch_exchange_rates(api_key="KEY", session=session)


# ═══════════════════════════════════════════════════════════════════════
# ExchangeRateCache
# ═══════════════════════════════════════════════════════════════════════

class TestExchangeRateCache:
    def test_first_access_fetches(self):
        fetcher = _CountingFetcher([_table(T0 + pd.Timedelta(hours=1))])
        cache = ExchangeRateCache(fetch_rates=fetcher, clock=lambda: T0)
        assert cache.get_rates().rates["EUR"] == 0.5
        assert fetcher.calls == 1

    def test_fresh_table_is_reused(self):
        fetcher = _CountingFetcher([_table(T0 + pd.Timedelta(hours=1))])
        cache = ExchangeRateCache(fetch_rates=fetcher, clock=lambda: T0)
        cache.get_rates()
        cache.get_rates()
        assert fetcher.calls == 1

    def test_stale_table_is_refreshed(self):
        now = {"t": T0}
        fetcher = _CountingFetcher([
            _table(T0 + pd.Timedelta(hours=1), USD=1.0, EUR=0.5),
            _table(T0 + pd.Timedelta(hours=3), USD=1.0, EUR=0.6),
        ])
        cache = ExchangeRateCache(fetch_rates=fetcher, clock=lambda: now["t"])
        assert cache.get_rates().rates["EUR"] == 0.5
        now["t"] = T0 + pd.Timedelta(hours=2)
        assert cache.get_rates().rates["EUR"] == 0.6
        assert fetcher.calls == 2

    def test_invalidate_forces_refresh(self):
        fetcher = _CountingFetcher([_table(T0 + pd.Timedelta(hours=1))])
        cache = ExchangeRateCache(fetch_rates=fetcher, clock=lambda: T0)
        cache.get_rates()
        cache.invalidate()
        cache.get_rates()
        assert fetcher.calls == 2

    def test_concurrent_callers_share_one_refresh(self):
        calls = []

        def slow_fetch():
            calls.append(1)
            time.sleep(0.05)
            return _table(T0 + pd.Timedelta(hours=1))

        cache = ExchangeRateCache(fetch_rates=slow_fetch, clock=lambda: T0)
        threads = [threading.Thread(target=cache.get_rates) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(calls) == 1

    def test_fetch_error_propagates(self):
        def failing():
            raise ExchangeRateError("boom")

        cache = ExchangeRateCache(fetch_rates=failing, clock=lambda: T0)
        with pytest.raises(ExchangeRateError):
            cache.get_rates()


class TestConvert:
    def test_same_currency_skips_fetch(self):
        fetcher = _CountingFetcher([_table(T0 + pd.Timedelta(hours=1))])
        cache = ExchangeRateCache(fetch_rates=fetcher, clock=lambda: T0)
        assert cache.convert(42.0, "EUR", "EUR") == 42.0
        assert fetcher.calls == 0

    def test_cross_rate(self):
        cache = ExchangeRateCache(
            fetch_rates=lambda: _table(T0 + pd.Timedelta(hours=1)), clock=lambda: T0
        )
        # 10 EUR → 20 USD → 3000 JPY
        assert cache.convert(10.0, "EUR", "JPY") == pytest.approx(3000.0)
        assert cache.convert(10.0, "USD", "EUR") == pytest.approx(5.0)

    def test_unknown_code_raises(self):
        cache = ExchangeRateCache(
            fetch_rates=lambda: _table(T0 + pd.Timedelta(hours=1)), clock=lambda: T0
        )
        with pytest.raises(ExchangeRateError, match="XYZ"):
            cache.convert(1.0, "USD", "XYZ")
