# evaluator.py
# ------------------------------------------------------------------
# Valuation pipeline: company snapshot + evaluator settings → result.
#
#   1. growth   : exponential fit of the selected historical indicator
#                 (or the user's custom rate), plus the dividend yield
#                 when include_dividends is set
#   2. base FCF : mean of the reported free cash flows
#   3. DCF      : run_dcf() with the settings' discount rate, growing
#                 years and terminal growth
#   4. rating   : intrinsic value / selected investment base
#
# Every step propagates NaN / inf instead of raising, so a company with
# missing history yields an "unavailable" result rather than an error.
# ------------------------------------------------------------------

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from intrinsic_engine.dcf import (
    calculate_base_cash_flow,
    calculate_dividend_yield,
    calculate_value_rating,
    run_dcf,
)
from intrinsic_engine.growth import growth_curve, growth_rate
from intrinsic_engine.parameters import (
    DEFAULT_SETTINGS,
    EvaluatorSettings,
    GrowthIndicator,
    InvestmentOption,
)
from intrinsic_engine.series import InvalidInputError, empty_fiscal_series

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class CompanySnapshot:
    """
    Company metadata, market figures, and annual history for one ticker.

    Market figures are in the financial-statement currency. The four
    history series share the same fiscal-year index.
    """
    ticker: str
    name: str = ""
    summary: str = ""
    industry: str = ""
    website: str = ""
    currency: str = ""
    financial_currency: str = ""
    share_price: float = np.nan
    market_cap: float = np.nan
    enterprise_value: float = np.nan
    adjusted_enterprise_value: float = np.nan
    revenues: pd.Series = field(default_factory=lambda: empty_fiscal_series("revenues"))
    earnings: pd.Series = field(default_factory=lambda: empty_fiscal_series("earnings"))
    dividends: pd.Series = field(default_factory=lambda: empty_fiscal_series("dividends"))
    free_cash_flows: pd.Series = field(default_factory=lambda: empty_fiscal_series("freeCashFlows"))

    @property
    def fiscal_years(self) -> list:
        return [int(y) for y in self.revenues.index]

    def series_for(self, indicator: GrowthIndicator) -> pd.Series:
        """Historical series behind a growth indicator (CUSTOM has none)."""
        if indicator == GrowthIndicator.REVENUES:
            return self.revenues
        if indicator == GrowthIndicator.EARNINGS:
            return self.earnings
        if indicator == GrowthIndicator.DIVIDENDS:
            return self.dividends
        if indicator == GrowthIndicator.FREE_CASH_FLOWS:
            return self.free_cash_flows
        raise InvalidInputError(f"Growth indicator {indicator!r} has no historical series.")

    def investment_base(self, option: InvestmentOption) -> float:
        if option == InvestmentOption.ENTERPRISE_VALUE:
            return self.enterprise_value
        if option == InvestmentOption.MARKET_CAP:
            return self.market_cap
        if option == InvestmentOption.ADJUSTED_ENTERPRISE_VALUE:
            return self.adjusted_enterprise_value
        raise InvalidInputError(f"Unknown investment option {option!r}.")


@dataclass(frozen=True)
class ValuationResult:
    intrinsic_value: float
    investment_base: float
    value_rating: float
    projected_growth: float = np.nan
    historical_growth: float = np.nan
    dividend_yield: float = np.nan
    base_cash_flow: float = np.nan
    warnings: Tuple[str, ...] = ()

    @property
    def is_available(self) -> bool:
        """True when both the intrinsic value and the rating are finite."""
        return math.isfinite(self.intrinsic_value) and math.isfinite(self.value_rating)


# ---------------------------------------------------------
# Growth
# ---------------------------------------------------------
def indicator_growth(
    snapshot: CompanySnapshot,
    indicator: GrowthIndicator,
    custom_growth: float = 0.0,
) -> float:
    """Fitted growth rate of an indicator, or custom_growth for CUSTOM."""
    if indicator == GrowthIndicator.CUSTOM:
        return custom_growth
    return growth_rate(snapshot.series_for(indicator))


def growth_estimates(snapshot: CompanySnapshot) -> Dict[GrowthIndicator, float]:
    """Fitted growth rate of every historical indicator."""
    return {
        indicator: indicator_growth(snapshot, indicator)
        for indicator in GrowthIndicator
        if indicator != GrowthIndicator.CUSTOM
    }


def dividend_yield(snapshot: CompanySnapshot, option: InvestmentOption) -> float:
    return calculate_dividend_yield(snapshot.dividends, snapshot.investment_base(option))


def projected_growth(snapshot: CompanySnapshot, settings: EvaluatorSettings = DEFAULT_SETTINGS) -> float:
    growth = indicator_growth(snapshot, settings.growth_indicator, settings.custom_growth)
    if settings.include_dividends:
        growth = growth + dividend_yield(snapshot, settings.investment_option)
    return growth


# ---------------------------------------------------------
# Valuation
# ---------------------------------------------------------
def evaluate(snapshot: CompanySnapshot, settings: EvaluatorSettings = DEFAULT_SETTINGS) -> ValuationResult:
    """
    Run the full pipeline for one company.

    Raises:
        InvalidInputError: Only for invalid settings (e.g. negative
                           growing years); numeric gaps yield NaN fields.
    """
    settings.validate()

    historical = indicator_growth(snapshot, settings.growth_indicator, settings.custom_growth)
    div_yield = dividend_yield(snapshot, settings.investment_option)
    growth = projected_growth(snapshot, settings)

    base_cf = calculate_base_cash_flow(snapshot.free_cash_flows)
    dcf = run_dcf(base_cf, settings.to_parameters(growth))

    investment = snapshot.investment_base(settings.investment_option)
    rating = calculate_value_rating(dcf.intrinsic_value, investment)

    result = ValuationResult(
        intrinsic_value=dcf.intrinsic_value,
        investment_base=investment,
        value_rating=rating,
        projected_growth=growth,
        historical_growth=historical,
        dividend_yield=div_yield,
        base_cash_flow=base_cf,
        warnings=tuple(dcf.warnings),
    )
    _logger.debug(
        "evaluate[%s]: indicator=%s growth=%.4g base_cf=%.4g iv=%.4g rating=%.4g",
        snapshot.ticker, settings.growth_indicator.value, growth, base_cf,
        result.intrinsic_value, rating,
    )
    return result


def indicator_curve(
    snapshot: CompanySnapshot,
    settings: EvaluatorSettings = DEFAULT_SETTINGS,
) -> Optional[pd.DataFrame]:
    """
    Actual vs fitted values of the selected indicator, extended by the
    growing years. None for a custom growth rate (nothing to fit).
    """
    if settings.growth_indicator == GrowthIndicator.CUSTOM:
        return None
    series = snapshot.series_for(settings.growth_indicator)
    return growth_curve(series, extra_years=settings.growing_years)
