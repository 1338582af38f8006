# parameters.py
# ------------------------------------------------------------------
# Valuation parameters and the user-facing evaluator settings.
#
# ValuationParameters is what the DCF engine consumes: four numbers.
# EvaluatorSettings is what a user chooses: which historical indicator
# drives growth, which market figure the valuation is compared to, and
# whether dividend yield is added to the fitted growth. The evaluator
# turns settings + company data into ValuationParameters.
# ------------------------------------------------------------------

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Mapping, Optional

import numpy as np

from intrinsic_engine.constants import (
    DEFAULT_CUSTOM_GROWTH,
    DEFAULT_DISCOUNT_RATE,
    DEFAULT_GROWING_YEARS,
    DEFAULT_INCLUDE_DIVIDENDS,
    DEFAULT_TERMINAL_GROWTH,
)
from intrinsic_engine.series import InvalidInputError

_logger = logging.getLogger(__name__)


class GrowthIndicator(str, Enum):
    """Historical series that feeds the growth fit (or a user-typed rate)."""
    REVENUES = "revenues"
    EARNINGS = "earnings"
    DIVIDENDS = "dividends"
    FREE_CASH_FLOWS = "freeCashFlows"
    CUSTOM = "custom"


class InvestmentOption(str, Enum):
    """Market figure the intrinsic value is compared against."""
    ENTERPRISE_VALUE = "enterpriseValue"
    MARKET_CAP = "marketCap"
    ADJUSTED_ENTERPRISE_VALUE = "adjustedEnterpriseValue"


def _check_growing_years(growing_years) -> int:
    try:
        f = float(growing_years)
    except (TypeError, ValueError):
        raise InvalidInputError(f"growing_years {growing_years!r} is not a number.")
    if not np.isfinite(f) or not f.is_integer() or f < 0:
        raise InvalidInputError(
            f"growing_years must be a non-negative integer, got {growing_years!r}."
        )
    return int(f)


@dataclass(frozen=True)
class ValuationParameters:
    """
    Inputs to the two-stage DCF.

    discount_rate must exceed terminal_growth for the terminal value to
    be meaningful. That precondition is documented, not enforced: the
    engine evaluates the formula as written and the result may be
    negative or non-finite.
    """
    discount_rate: float
    growing_years: int
    terminal_growth: float
    projected_growth: float

    def validate(self) -> "ValuationParameters":
        """Return self, or raise InvalidInputError for a bad growing_years."""
        _check_growing_years(self.growing_years)
        return self


@dataclass(frozen=True)
class EvaluatorSettings:
    discount_rate: float = DEFAULT_DISCOUNT_RATE
    growing_years: int = DEFAULT_GROWING_YEARS
    terminal_growth: float = DEFAULT_TERMINAL_GROWTH
    custom_growth: float = DEFAULT_CUSTOM_GROWTH
    growth_indicator: GrowthIndicator = GrowthIndicator.REVENUES
    investment_option: InvestmentOption = InvestmentOption.ENTERPRISE_VALUE
    include_dividends: bool = DEFAULT_INCLUDE_DIVIDENDS

    def validate(self) -> "EvaluatorSettings":
        _check_growing_years(self.growing_years)
        if not isinstance(self.growth_indicator, GrowthIndicator):
            raise InvalidInputError(f"Unknown growth indicator {self.growth_indicator!r}.")
        if not isinstance(self.investment_option, InvestmentOption):
            raise InvalidInputError(f"Unknown investment option {self.investment_option!r}.")
        return self

    def to_parameters(self, projected_growth: float) -> ValuationParameters:
        return ValuationParameters(
            discount_rate=self.discount_rate,
            growing_years=_check_growing_years(self.growing_years),
            terminal_growth=self.terminal_growth,
            projected_growth=projected_growth,
        )

    def to_dict(self) -> dict:
        """camelCase mapping, the shape a host persists between sessions."""
        return {
            "discountRate": self.discount_rate,
            "growingYears": self.growing_years,
            "terminalGrowth": self.terminal_growth,
            "customGrowth": self.custom_growth,
            "growthIndicator": self.growth_indicator.value,
            "investmentOption": self.investment_option.value,
            "includeDividends": self.include_dividends,
        }


DEFAULT_SETTINGS = EvaluatorSettings()

# Persisted settings use camelCase keys; both spellings are accepted.
_KEY_ALIASES = {
    "discountRate": "discount_rate",
    "growingYears": "growing_years",
    "terminalGrowth": "terminal_growth",
    "customGrowth": "custom_growth",
    "growthIndicator": "growth_indicator",
    "investmentOption": "investment_option",
    "includeDividends": "include_dividends",
}


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidInputError(
            f"{value!r} is not a valid {enum_cls.__name__}; "
            f"expected one of {[m.value for m in enum_cls]}."
        )


_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


def _parse_bool(name: str, value) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise InvalidInputError(f"{name} must be a boolean, got {value!r}.")


def settings_from_dict(
    mapping: Optional[Mapping[str, Any]],
    base: EvaluatorSettings = DEFAULT_SETTINGS,
) -> EvaluatorSettings:
    """
    Merge a partial settings mapping over `base` (the defaults).

    Unknown keys are ignored so that settings persisted by an older host
    still load. Enum fields accept their string values.

    Raises:
        InvalidInputError: On an unknown enum value, a bad growing_years, or an
                           include_dividends that is not a boolean
                           ("true"/"false" and 1/0 are accepted).
    """
    if not mapping:
        return base

    known = {f.name for f in fields(EvaluatorSettings)}
    updates = {}
    for key, value in mapping.items():
        name = _KEY_ALIASES.get(key, key)
        if name not in known:
            _logger.debug("settings_from_dict: ignoring unknown key %r", key)
            continue
        updates[name] = value

    if "growth_indicator" in updates:
        updates["growth_indicator"] = _parse_enum(GrowthIndicator, updates["growth_indicator"])
    if "investment_option" in updates:
        updates["investment_option"] = _parse_enum(InvestmentOption, updates["investment_option"])
    if "growing_years" in updates:
        updates["growing_years"] = _check_growing_years(updates["growing_years"])
    if "include_dividends" in updates:
        updates["include_dividends"] = _parse_bool("include_dividends", updates["include_dividends"])

    return replace(base, **updates).validate()
