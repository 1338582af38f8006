# growth.py
# ------------------------------------------------------------------
# Exponential growth fit for annual financial series.
#
# Model
# -----
#   y = C · B^(x − x0)        ⇔        ln y = ln C + ln B · (x − x0)
#
# ln B is the ordinary least-squares slope of ln y on x over the points
# whose value is present. C is normalized so that the curve passes
# through the geometric mean of the observed values at the mean
# observed year, then re-expressed relative to the anchor year x0 (the
# first year of the series as given, whether or not that year has a
# value).
#
# Invalid data is not trapped: fewer than two present points, or any
# value ≤ 0, yields NaN. Callers check finiteness before display.
# ------------------------------------------------------------------

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd

from intrinsic_engine.series import InvalidInputError, validate_fiscal_series, YEAR_INDEX_NAME

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrowthFit:
    """Fitted curve y = constant · base^(year − anchor year)."""
    constant: float = np.nan
    base: float = np.nan

    @property
    def rate(self) -> float:
        """Per-year growth rate (base − 1)."""
        return self.base - 1.0

    def value_at(self, year, anchor_year):
        with np.errstate(all="ignore"):
            return self.constant * np.float64(self.base) ** (np.float64(year) - anchor_year)


def fit_exponential(series: pd.Series) -> GrowthFit:
    """
    Fit y = C · B^(x − x0) to a fiscal series by log-linear least squares.

    Args:
        series : float Series indexed by fiscal year, ascending. NaN
                 entries are excluded from the regression entirely.

    Returns:
        GrowthFit(constant=C, base=B). Both are NaN when fewer than two
        values are present; a value ≤ 0 also yields NaN.
    """
    validate_fiscal_series(series)

    years = np.asarray(series.index, dtype="float64")
    values = np.asarray(series.to_numpy(), dtype="float64")
    present = ~np.isnan(values)

    x = years[present]
    y = values[present]
    n = np.float64(len(x))
    x0 = years[0] if len(years) else np.nan

    with np.errstate(all="ignore"):
        log_y = np.log(y)
        x_sum = np.sum(x)
        log_y_sum = np.sum(log_y)
        x_sqr_sum = np.sum(x * x)
        x_log_y_sum = np.sum(x * log_y)

        slope = (n * x_log_y_sum - x_sum * log_y_sum) / (n * x_sqr_sum - x_sum ** 2)
        base = np.exp(slope)

        x_point = x_sum / n - x0
        y_point = np.exp(log_y_sum / n)
        constant = y_point / base ** x_point

    # NaN ** 0 == 1 would leak y_point when the only point sits at x0
    if np.isnan(base):
        constant = np.nan

    fit = GrowthFit(constant=float(constant), base=float(base))
    _logger.debug(
        "fit_exponential[%s]: n=%d x0=%s base=%.6g constant=%.6g",
        series.name, int(n), x0, fit.base, fit.constant,
    )
    return fit


def growth_rate(series: pd.Series) -> float:
    """Fitted per-year growth rate of a fiscal series (NaN when unavailable)."""
    return fit_exponential(series).rate


def _extend_years(years: Iterable[int], extra_years: int) -> list:
    years = [int(y) for y in years]
    if not years:
        return years
    last = years[-1]
    return years + [last + i for i in range(1, extra_years + 1)]


def growth_curve(series: pd.Series, extra_years: int = 0) -> pd.DataFrame:
    """
    Historical values alongside the fitted curve, optionally projected forward.

    Args:
        series      : Fiscal series to fit.
        extra_years : Number of consecutive years appended after the last
                      fiscal year (typically the DCF growing years).

    Returns:
        DataFrame indexed by year with columns:
          - "actual" : observed value (NaN for absent and projected years)
          - "fitted" : constant · base^(year − first year)
    """
    if extra_years < 0:
        raise InvalidInputError(f"extra_years must be ≥ 0, got {extra_years!r}.")

    fit = fit_exponential(series)
    years = _extend_years(series.index, extra_years)
    index = pd.Index(years, dtype="int64", name=YEAR_INDEX_NAME)
    actual = series.reindex(index)
    anchor = years[0] if years else np.nan
    fitted = [fit.value_at(year, anchor) for year in years]

    return pd.DataFrame(
        {"actual": actual.to_numpy(dtype="float64"), "fitted": np.asarray(fitted, dtype="float64")},
        index=index,
    )
