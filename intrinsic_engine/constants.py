# constants.py
# ------------------------------------------------------------------
# Shared defaults and environment-driven settings used across
# intrinsic_engine modules.
#
# Valuation defaults are the starting point for EvaluatorSettings.
# A host application that persists user choices merges them on top
# of these values (see parameters.settings_from_dict).
# ------------------------------------------------------------------

import os

# ── Valuation defaults ───────────────────────────────────────────────
DEFAULT_DISCOUNT_RATE: float = 0.15
DEFAULT_GROWING_YEARS: int = 4
DEFAULT_TERMINAL_GROWTH: float = 0.02
DEFAULT_CUSTOM_GROWTH: float = 0.0
DEFAULT_INCLUDE_DIVIDENDS: bool = True

# Terminal value share of intrinsic value (in %) above which run_dcf()
# attaches a sensitivity warning.
TERMINAL_VALUE_WARNING_PCT: float = 80.0


# ------------------------------------------------------------------
# Exchange rates
# ------------------------------------------------------------------
# Rates come from exchangerate-api.com (USD base). The API key is read
# from the environment so that it is never stored in source code, e.g.:
#   export EXCHANGE_RATE_API_KEY="0123456789abcdef"
EXCHANGE_RATE_API_KEY: str = os.environ.get("EXCHANGE_RATE_API_KEY", "")
EXCHANGE_RATE_URL: str = os.environ.get(
    "EXCHANGE_RATE_URL", "https://v6.exchangerate-api.com/v6"
).rstrip("/")
EXCHANGE_RATE_BASE: str = "USD"

# Request timeouts: (connect_timeout_s, read_timeout_s)
HTTP_TIMEOUT = (10, 30)


# ------------------------------------------------------------------
# Provider
# ------------------------------------------------------------------
# Maximum number of equity matches returned by provider.search_quotes().
QUOTE_SEARCH_LIMIT: int = 5

# Raw quotes requested from the search endpoint before filtering down
# to equities with a known industry.
QUOTE_SEARCH_FETCH: int = 10
