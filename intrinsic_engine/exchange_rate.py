# exchange_rate.py
# ------------------------------------------------------------------
# Currency conversion backed by exchangerate-api.com.
#
#   - fetch_exchange_rates() pulls the latest USD-based table. Every
#     request has an explicit timeout and transient failures (429, 503,
#     network errors) are retried with exponential backoff.
#   - ExchangeRateCache holds one table and refreshes it lazily once the
#     provider's advertised next-update time has passed. Callers create
#     and inject the cache; there is no module-level instance.
#   - A lock around get-or-refresh means concurrent callers that find
#     the table stale trigger a single refresh and all see its result.
#   - Failures raise ExchangeRateError, never a bare requests exception,
#     so callers can catch one type.
# ------------------------------------------------------------------

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import pandas as pd
import requests

from intrinsic_engine.constants import (
    EXCHANGE_RATE_API_KEY,
    EXCHANGE_RATE_BASE,
    EXCHANGE_RATE_URL,
    HTTP_TIMEOUT,
)

_logger = logging.getLogger(__name__)

# Retry configuration
_MAX_RETRIES = 3
_RETRY_BACKOFF_BASE = 1.5   # seconds; doubles each retry


class ExchangeRateError(Exception):
    """Raised when exchange rates cannot be fetched or a currency is unknown."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"[{status_code}] {message}"
        super().__init__(f"Exchange rate lookup failed {message}")


@dataclass(frozen=True)
class ExchangeRates:
    """Conversion rates relative to `base` (rates[base] == 1.0)."""
    rates: Dict[str, float]
    next_update: pd.Timestamp
    base: str = EXCHANGE_RATE_BASE


def _get_with_retry(url: str, session=None) -> dict:
    """
    GET a JSON endpoint with timeout and retry.

    Retries on 429 / 503 and on requests.ConnectionError / Timeout.
    Any other non-200 status is raised immediately.
    """
    client = session if session is not None else requests
    last_exc = None

    for attempt in range(_MAX_RETRIES):
        try:
            resp = client.get(url, timeout=HTTP_TIMEOUT)

            if resp.status_code == 200:
                try:
                    return resp.json()
                except ValueError as exc:
                    # requests' JSONDecodeError subclasses ValueError
                    raise ExchangeRateError(f"response is not JSON: {exc}", resp.status_code) from exc

            if resp.status_code in (429, 503):
                wait = _RETRY_BACKOFF_BASE * (2 ** attempt)
                _logger.debug("Exchange rate API busy (%s); retrying in %.1fs", resp.status_code, wait)
                time.sleep(wait)
                last_exc = ExchangeRateError(resp.reason or "service unavailable", resp.status_code)
                continue

            raise ExchangeRateError(resp.text or resp.reason or "request rejected", resp.status_code)

        except ExchangeRateError:
            raise
        except (requests.ConnectionError, requests.Timeout) as exc:
            wait = _RETRY_BACKOFF_BASE * (2 ** attempt)
            time.sleep(wait)
            last_exc = exc
            continue

    raise ExchangeRateError(f"after {_MAX_RETRIES} retries: {last_exc}")


def fetch_exchange_rates(api_key: Optional[str] = None, session=None) -> ExchangeRates:
    """
    Fetch the latest USD-based rate table.

    Args:
        api_key : exchangerate-api.com key (default: EXCHANGE_RATE_API_KEY env var)
        session : optional requests.Session (or any object with .get)

    Raises:
        ExchangeRateError: Missing key, HTTP failure, or an error payload.
    """
    key = api_key or EXCHANGE_RATE_API_KEY
    if not key:
        raise ExchangeRateError("no API key; set EXCHANGE_RATE_API_KEY")

    url = f"{EXCHANGE_RATE_URL}/{key}/latest/{EXCHANGE_RATE_BASE}"
    raw = _get_with_retry(url, session=session)

    if not isinstance(raw, dict):
        raise ExchangeRateError(f"malformed response: expected a JSON object, got {type(raw).__name__}")
    if raw.get("result") == "error":
        raise ExchangeRateError(f"provider error: {raw.get('error-type', 'unknown')}")
    try:
        rates = {code: float(rate) for code, rate in raw["conversion_rates"].items()}
        next_update = pd.Timestamp(int(raw["time_next_update_unix"]), unit="s", tz="UTC")
    except (KeyError, TypeError, ValueError) as exc:
        raise ExchangeRateError(f"malformed response: {exc!r}")

    _logger.info("Fetched %d exchange rates; next update %s", len(rates), next_update)
    return ExchangeRates(rates=rates, next_update=next_update)


def _utc_now() -> pd.Timestamp:
    return pd.Timestamp.now(tz="UTC")


class ExchangeRateCache:
    """
    Get-or-refresh holder for one ExchangeRates table.

    Args:
        fetch_rates : zero-argument callable returning ExchangeRates
        clock       : zero-argument callable returning a tz-aware Timestamp
    """

    def __init__(
        self,
        fetch_rates: Callable[[], ExchangeRates] = fetch_exchange_rates,
        clock: Callable[[], pd.Timestamp] = _utc_now,
    ):
        self._fetch_rates = fetch_rates
        self._clock = clock
        self._lock = threading.Lock()
        self._table: Optional[ExchangeRates] = None

    def get_rates(self) -> ExchangeRates:
        """Return the cached table, refreshing it first if empty or past next_update."""
        with self._lock:
            if self._table is None or self._clock() > self._table.next_update:
                _logger.info("Refreshing exchange rates")
                self._table = self._fetch_rates()
            else:
                _logger.debug("Exchange rates cache hit (valid until %s)", self._table.next_update)
            return self._table

    def invalidate(self) -> None:
        with self._lock:
            self._table = None

    def convert(self, amount: float, from_code: str, to_code: str) -> float:
        """
        Convert `amount` between ISO currency codes.

        Same-currency conversions return `amount` without touching the
        cache (no fetch happens).

        Raises:
            ExchangeRateError: If either code is missing from the table.
        """
        if from_code == to_code:
            return amount
        rates = self.get_rates().rates
        for code in (from_code, to_code):
            if code not in rates:
                raise ExchangeRateError(f"unknown currency code {code!r}")
        return amount / rates[from_code] * rates[to_code]
