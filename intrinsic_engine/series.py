# series.py
# ------------------------------------------------------------------
# Fiscal series construction and validation.
#
# A fiscal series is a float64 pandas Series indexed by integer fiscal
# year (one entry per fiscal-year-end, ascending). Missing data points
# are NaN and stay NaN: nothing here back-fills or zero-fills. Each
# consumer decides how absent values are treated (the growth fit and
# the base cash flow drop them, the dividend yield counts them as 0).
# ------------------------------------------------------------------

import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd

_logger = logging.getLogger(__name__)

YEAR_INDEX_NAME = "year"


class InvalidInputError(ValueError):
    """Raised when a caller passes inputs that violate a documented precondition."""


def _coerce_years(years: Iterable) -> list:
    out = []
    for y in years:
        try:
            f = float(y)
        except (TypeError, ValueError):
            raise InvalidInputError(f"Fiscal year {y!r} is not a number.")
        if not np.isfinite(f) or not f.is_integer():
            raise InvalidInputError(f"Fiscal year {y!r} is not an integer.")
        out.append(int(f))
    return out


def validate_fiscal_series(series: pd.Series) -> pd.Series:
    """
    Check the fiscal series invariants and return the series unchanged.

    Raises:
        InvalidInputError: If the index is not strictly increasing
                           (this also rejects duplicate years).
    """
    if not isinstance(series, pd.Series):
        raise InvalidInputError(
            f"Expected a pandas Series indexed by fiscal year, got {type(series).__name__}."
        )
    years = list(series.index)
    for prev, cur in zip(years, years[1:]):
        if not cur > prev:
            _logger.debug("validate_fiscal_series[%s]: rejected year order %r", series.name, years)
            raise InvalidInputError(
                f"Fiscal years must be strictly increasing; {cur!r} follows {prev!r}."
            )
    return series


def make_fiscal_series(years: Iterable, values: Iterable, name: Optional[str] = None) -> pd.Series:
    """
    Build a fiscal series from parallel year / value sequences.

    None and non-numeric values become NaN (absent). Years must be
    integral and strictly increasing.

    Raises:
        InvalidInputError: On mismatched lengths, non-integral years, or
                           years that are not strictly increasing.
    """
    years = _coerce_years(years)
    values = list(values)
    if len(years) != len(values):
        _logger.debug("make_fiscal_series[%s]: %d years vs %d values", name, len(years), len(values))
        raise InvalidInputError(
            f"Got {len(years)} fiscal years but {len(values)} values."
        )
    data = pd.to_numeric(pd.Series(values, dtype=object), errors="coerce").astype("float64")
    series = pd.Series(
        data.to_numpy(),
        index=pd.Index(years, dtype="int64", name=YEAR_INDEX_NAME),
        name=name,
        dtype="float64",
    )
    return validate_fiscal_series(series)


def series_from_fiscal_year_ends(dates: Iterable, values: Iterable, name: Optional[str] = None) -> pd.Series:
    """
    Build a fiscal series keyed by the calendar year of each fiscal-year-end date.

    Dates may be ISO strings ("2023-09-30"), datetimes or Timestamps.
    Two fiscal-year-ends falling in the same calendar year (a changed
    fiscal calendar) are rejected as duplicate years.
    """
    dates = list(dates)
    try:
        years = pd.to_datetime(pd.Series(dates, dtype=object)).dt.year.tolist()
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Unparseable fiscal-year-end date in {dates!r}: {exc}")
    return make_fiscal_series(years, values, name=name)


def present_values(series: pd.Series) -> pd.Series:
    """Return only the entries whose value is present (not NaN)."""
    return series.dropna()


def empty_fiscal_series(name: Optional[str] = None) -> pd.Series:
    return make_fiscal_series([], [], name=name)
