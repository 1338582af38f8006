# intrinsic_engine/dcf.py
# ──────────────────────────────────────────────────────────────────────────────
# Discounted Cash Flow (DCF) Engine
# ──────────────────────────────────────────────────────────────────────────────
#
# Architecture
# ------------
# Pure financial logic — no I/O, no data fetching.
# All functions are deterministic and side-effect-free.
#
# DCF Model
# ---------
#  Base    : mean of the reported free cash flows (absent years skipped)
#  Stage 1 : years 1–n   FCFₜ = FCF₀ × (1 + g_p)ᵗ, discounted at (1 + r)ᵗ
#  Terminal: Gordon Growth Model on the year-n cash flow
#              TV = FCFₙ / (r – g_t),  discounted at (1 + r)ⁿ
#  Intrinsic value = Σ PV(FCFₜ) + PV(TV)
#
#  With n = 0 the explicit stage is empty and the value is FCF₀ / (r – g_t).
#
# Numeric policy
# --------------
#  Nothing here raises for a numeric reason. r == g_t gives ±inf/NaN,
#  r < g_t gives a negative terminal value, an empty series gives NaN.
#  IEEE-754 results are returned as-is and callers check finiteness.
#  Caller precondition violations (negative growing years, unordered
#  years) raise InvalidInputError.
# ──────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List

import numpy as np
import pandas as pd

from intrinsic_engine.constants import TERMINAL_VALUE_WARNING_PCT
from intrinsic_engine.parameters import ValuationParameters
from intrinsic_engine.series import present_values, validate_fiscal_series

_logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Data structures
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class DCFResult:
    """Output of run_dcf(). Contains all intermediate values for display."""
    # ── Projected cash flows (years 1–n) ─────────────────────────────────────
    projected_cash_flows: List[float] = field(default_factory=list)
    discount_factors: List[float] = field(default_factory=list)
    pv_cash_flows: List[float] = field(default_factory=list)

    # ── Valuation ─────────────────────────────────────────────────────────────
    sum_pv_cash_flows: float = np.nan   # PV of explicit-period cash flows
    terminal_cash_flow: float = np.nan  # FCF₀ × (1 + g_p)ⁿ
    terminal_value: float = np.nan      # Gordon Growth TV (undiscounted)
    pv_terminal_value: float = np.nan   # PV of terminal value
    intrinsic_value: float = np.nan     # sum_pv_cash_flows + pv_terminal_value

    # ── Composition ──────────────────────────────────────────────────────────
    pv_cash_flows_pct: float = np.nan   # % of value from explicit period
    pv_tv_pct: float = np.nan           # % of value from terminal value

    # ── Diagnostics ──────────────────────────────────────────────────────────
    warnings: List[str] = field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Projection engine
# ─────────────────────────────────────────────────────────────────────────────

def run_dcf(base_cash_flow: float, params: ValuationParameters) -> DCFResult:
    """
    Execute the two-stage DCF.

    Args:
        base_cash_flow : FCF₀, the starting free cash flow
        params         : discount rate, growing years, projected and
                         terminal growth

    Returns:
        DCFResult with all intermediate values populated. The numbers are
        the formula evaluated as written; warnings only annotate them.

    Raises:
        InvalidInputError: If params.growing_years is negative or not integral.
    """
    params.validate()
    result = DCFResult()
    warns = []

    fcf0 = np.float64(base_cash_flow)
    r = np.float64(params.discount_rate)
    g_p = np.float64(params.projected_growth)
    g_t = np.float64(params.terminal_growth)
    n = int(params.growing_years)

    if not g_t < r:
        warns.append(
            f"Terminal growth rate ({g_t:.1%}) ≥ discount rate ({r:.1%}). "
            "Gordon Growth Model undefined — terminal value is not meaningful."
        )

    cfs, dfs, pvs = [], [], []
    with np.errstate(all="ignore"):
        sum_pv = np.float64(0.0)
        for year in range(1, n + 1):
            cf = fcf0 * (1.0 + g_p) ** year
            discount = (1.0 + r) ** year
            pv = cf / discount
            sum_pv += pv

            cfs.append(float(cf))
            dfs.append(float(1.0 / discount))
            pvs.append(float(pv))

        # ── Terminal value ────────────────────────────────────────────────────
        nth_cf = fcf0 * (1.0 + g_p) ** n
        tv = nth_cf / (r - g_t)
        pv_tv = tv / (1.0 + r) ** n

        total = sum_pv + pv_tv
        pv_cf_pct = sum_pv / total * 100 if total != 0 else np.float64(np.nan)
        pv_tv_pct = pv_tv / total * 100 if total != 0 else np.float64(np.nan)

    # ── Populate result ───────────────────────────────────────────────────────
    result.projected_cash_flows = cfs
    result.discount_factors = dfs
    result.pv_cash_flows = pvs
    result.sum_pv_cash_flows = float(sum_pv)
    result.terminal_cash_flow = float(nth_cf)
    result.terminal_value = float(tv)
    result.pv_terminal_value = float(pv_tv)
    result.intrinsic_value = float(total)
    result.pv_cash_flows_pct = float(pv_cf_pct)
    result.pv_tv_pct = float(pv_tv_pct)

    if np.isfinite(pv_tv_pct) and abs(pv_tv_pct) > TERMINAL_VALUE_WARNING_PCT:
        warns.append(
            f"Terminal value represents {pv_tv_pct:.0f}% of intrinsic value. "
            "Results are highly sensitive to terminal growth and discount rate assumptions."
        )

    for w in warns:
        _logger.debug("run_dcf: %s", w)
    result.warnings = warns
    return result


def calculate_intrinsic_value(base_cash_flow: float, params: ValuationParameters) -> float:
    """Explicit-period PV plus discounted terminal value (see run_dcf)."""
    return run_dcf(base_cash_flow, params).intrinsic_value


# ─────────────────────────────────────────────────────────────────────────────
# Inputs and ratios
# ─────────────────────────────────────────────────────────────────────────────

def calculate_base_cash_flow(series: pd.Series) -> float:
    """
    Mean of the present (non-NaN) values of a fiscal series.

    Divides by the number of present values, not the series length.
    NaN when no value is present.
    """
    validate_fiscal_series(series)
    present = present_values(series).to_numpy(dtype="float64")
    with np.errstate(all="ignore"):
        return float(np.sum(present) / np.float64(len(present)))


def calculate_value_rating(intrinsic_value: float, investment_base: float) -> float:
    """intrinsic value / investment base; > 1 reads as undervalued."""
    with np.errstate(all="ignore"):
        return float(np.float64(intrinsic_value) / np.float64(investment_base))


def calculate_dividend_yield(series: pd.Series, investment_base: float) -> float:
    """
    Mean annual dividend over the investment base.

    Absent years count as zero dividends and stay in the denominator of
    the mean, unlike the growth fit and base cash flow, which skip them.
    """
    validate_fiscal_series(series)
    paid = series.fillna(0.0).to_numpy(dtype="float64")
    with np.errstate(all="ignore"):
        mean = np.sum(paid) / np.float64(len(paid))
        return float(mean / np.float64(investment_base))


# ─────────────────────────────────────────────────────────────────────────────
# Sensitivity analysis
# ─────────────────────────────────────────────────────────────────────────────

def sensitivity_table(
    base_cash_flow: float,
    params: ValuationParameters,
    discount_rates: List[float],
    terminal_growths: List[float],
) -> pd.DataFrame:
    """
    Build a (discount rate × terminal growth) table of intrinsic value.

    Args:
        base_cash_flow   : FCF₀
        params           : Base parameters (copied for each scenario)
        discount_rates   : Discount rates (decimals, e.g. [0.10, 0.12, 0.15])
        terminal_growths : Terminal growth rates (decimals, e.g. [0.01, 0.02, 0.03])

    Returns:
        DataFrame indexed by discount rate (rows) × terminal growth (columns).
        Cells where the discount rate does not exceed terminal growth hold
        whatever the formula yields; they are not blanked out.
    """
    rows = {}
    for dr in discount_rates:
        row = {}
        for tg in terminal_growths:
            scenario = replace(params, discount_rate=dr, terminal_growth=tg)
            row[f"{tg:.1%}"] = calculate_intrinsic_value(base_cash_flow, scenario)
        rows[f"{dr:.1%}"] = row

    df = pd.DataFrame(rows).T
    df.index.name = "Discount Rate"
    df.columns.name = "Terminal Growth"
    return df
