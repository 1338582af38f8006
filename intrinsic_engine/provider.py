# provider.py
# ------------------------------------------------------------------
# Company data from Yahoo Finance via yfinance.
#
# Builds a CompanySnapshot:
#   - fiscal years are the annual income-statement periods that report
#     Total Revenue, oldest first
#   - revenues, earnings, dividends and free cash flows are aligned on
#     those years; a line item missing for a year stays NaN
#   - dividends are common dividends: |cash dividends paid| minus
#     |preferred dividends|
#   - balance-sheet figures come from the latest quarterly balance sheet,
#     falling back to the latest annual one
#   - the share price is converted from the quote currency into the
#     financial-statement currency before market cap and enterprise
#     value are derived, so all market figures match the statements
# ------------------------------------------------------------------

import logging
from typing import Callable, List, Optional

import numpy as np
import pandas as pd
import yfinance as yf

from intrinsic_engine.constants import QUOTE_SEARCH_FETCH, QUOTE_SEARCH_LIMIT
from intrinsic_engine.evaluator import CompanySnapshot
from intrinsic_engine.exchange_rate import ExchangeRateCache
from intrinsic_engine.series import series_from_fiscal_year_ends

_logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when company data cannot be fetched or is unusable."""
    def __init__(self, ticker: str, message: str):
        self.ticker = ticker
        super().__init__(f"Company data unavailable for {ticker}: {message}")


def _safe_float(v, default: float = np.nan) -> float:
    """Coerce v to float, returning default on failure."""
    try:
        f = float(v)
        return f if np.isfinite(f) else default
    except (TypeError, ValueError):
        return default


def _statement_row(df: Optional[pd.DataFrame], field_name: str) -> pd.Series:
    """One line item of a yfinance statement as a float Series keyed by period end."""
    if df is None or df.empty or field_name not in df.index:
        return pd.Series(dtype="float64")
    row = df.loc[field_name]
    if isinstance(row, pd.DataFrame):
        # Duplicated line item: keep the first occurrence
        row = row.iloc[0]
    return pd.to_numeric(row, errors="coerce").astype("float64")


def _latest_value(df: Optional[pd.DataFrame], field_name: str) -> float:
    """Value of a line item in the most recent period, NaN if absent."""
    row = _statement_row(df, field_name)
    if row.empty:
        return np.nan
    return _safe_float(row.sort_index().iloc[-1])


def _balance_item(quarterly: pd.DataFrame, annual: pd.DataFrame, field_name: str, default: float = 0.0) -> float:
    value = _latest_value(quarterly, field_name)
    if np.isnan(value):
        value = _latest_value(annual, field_name)
    if np.isnan(value):
        return default
    return value


def _statement(stock, attr: str) -> pd.DataFrame:
    df = getattr(stock, attr, None)
    return df if isinstance(df, pd.DataFrame) else pd.DataFrame()


def _history_row(df: pd.DataFrame, field_name: str, ticker: str) -> pd.Series:
    row = _statement_row(df, field_name)
    if row.empty:
        _logger.warning("No '%s' row for %s; its history is left empty (NaN)", field_name, ticker)
    return row


def _fiscal_series(row: pd.Series, year_ends: pd.DatetimeIndex, name: str) -> pd.Series:
    return series_from_fiscal_year_ends(year_ends, row.reindex(year_ends).to_numpy(), name=name)


def fetch_company_snapshot(
    ticker: str,
    rates: Optional[ExchangeRateCache] = None,
    ticker_factory: Callable = yf.Ticker,
) -> CompanySnapshot:
    """
    Fetch metadata, market figures and annual history for `ticker`.

    Args:
        ticker         : Stock ticker (e.g. "AAPL")
        rates          : Exchange-rate cache; required when the quote
                         currency differs from the financial currency
        ticker_factory : yfinance.Ticker or a compatible stand-in

    Raises:
        ProviderError: Fetch failure, no revenue history, or a currency
                       mismatch with no exchange-rate cache.
    """
    try:
        stock = ticker_factory(ticker)
        info = stock.info or {}
        income_stmt = _statement(stock, "income_stmt")
        cashflow = _statement(stock, "cashflow")
        balance_sheet = _statement(stock, "balance_sheet")
        quarterly_balance = _statement(stock, "quarterly_balance_sheet")
    except Exception as exc:
        raise ProviderError(ticker, f"yfinance request failed: {exc}") from exc

    # ── Fiscal years ─────────────────────────────────────────────────────────
    revenue_row = _statement_row(income_stmt, "Total Revenue")
    year_ends = pd.DatetimeIndex(revenue_row.dropna().index).sort_values()
    if len(year_ends) == 0:
        raise ProviderError(ticker, "no annual revenue history")

    # ── Annual history ───────────────────────────────────────────────────────
    cash_dividends = _history_row(cashflow, "Cash Dividends Paid", ticker).reindex(year_ends)
    preferred_dividends = _statement_row(income_stmt, "Preferred Stock Dividends").reindex(year_ends).fillna(0.0)
    common_dividends = cash_dividends.abs() - preferred_dividends.abs()

    revenues = _fiscal_series(revenue_row, year_ends, "revenues")
    earnings = _fiscal_series(_history_row(income_stmt, "Net Income", ticker), year_ends, "earnings")
    dividends = _fiscal_series(common_dividends, year_ends, "dividends")
    free_cash_flows = _fiscal_series(_history_row(cashflow, "Free Cash Flow", ticker), year_ends, "freeCashFlows")

    # ── Share price in financial currency ────────────────────────────────────
    currency = info.get("currency") or ""
    financial_currency = info.get("financialCurrency") or currency
    share_price = _safe_float(info.get("currentPrice") or info.get("regularMarketPrice"))

    converted_price = share_price
    if currency and financial_currency and currency != financial_currency:
        if rates is None:
            raise ProviderError(
                ticker,
                f"quote currency {currency} differs from financial currency "
                f"{financial_currency} and no exchange-rate cache was given",
            )
        converted_price = rates.convert(share_price, currency, financial_currency)

    # ── Market figures ───────────────────────────────────────────────────────
    shares = _balance_item(quarterly_balance, balance_sheet, "Ordinary Shares Number", default=np.nan)
    if np.isnan(shares):
        _logger.warning("No share count for %s — market cap unavailable", ticker)

    debt = _balance_item(quarterly_balance, balance_sheet, "Total Debt")
    preferred = _balance_item(quarterly_balance, balance_sheet, "Preferred Stock")
    minority = _balance_item(quarterly_balance, balance_sheet, "Minority Interest")
    cash = _balance_item(quarterly_balance, balance_sheet, "Cash And Cash Equivalents")
    short_term_investments = _balance_item(quarterly_balance, balance_sheet, "Other Short Term Investments")
    total_liabilities = _balance_item(quarterly_balance, balance_sheet, "Total Liabilities Net Minority Interest")

    market_cap = converted_price * shares
    enterprise_value = market_cap + debt + preferred + minority - cash
    adjusted_enterprise_value = (
        market_cap + total_liabilities + preferred + minority - cash - short_term_investments
    )

    _logger.debug(
        "Snapshot %s: %d fiscal years, price=%s %s, market cap=%.4g",
        ticker, len(year_ends), converted_price, financial_currency, market_cap,
    )

    return CompanySnapshot(
        ticker=info.get("symbol") or ticker,
        name=info.get("longName") or info.get("shortName") or ticker,
        summary=info.get("longBusinessSummary") or "",
        industry=info.get("industry") or "",
        website=info.get("website") or "",
        currency=currency,
        financial_currency=financial_currency,
        share_price=share_price,
        market_cap=market_cap,
        enterprise_value=enterprise_value,
        adjusted_enterprise_value=adjusted_enterprise_value,
        revenues=revenues,
        earnings=earnings,
        dividends=dividends,
        free_cash_flows=free_cash_flows,
    )


def search_quotes(
    query: str,
    max_results: int = QUOTE_SEARCH_LIMIT,
    search_factory: Callable = yf.Search,
) -> List[dict]:
    """
    Search Yahoo Finance for equities matching `query`.

    Only EQUITY quotes that carry an industry are returned (this drops
    funds, indices and most delisted symbols), at most `max_results`.

    Raises:
        ProviderError: If the search request fails.
    """
    try:
        search = search_factory(query, max_results=QUOTE_SEARCH_FETCH, news_count=0, enable_fuzzy_query=False)
        quotes = search.quotes or []
    except Exception as exc:
        raise ProviderError(query, f"quote search failed: {exc}") from exc

    matches = [
        q for q in quotes
        if q.get("quoteType") == "EQUITY" and q.get("industry") is not None
    ]
    return matches[:max_results]
