# formatting.py
# ----------------------------
# Display helpers for valuation numbers.
# NaN and None render as "NaN" so that an unavailable figure is visible
# rather than silently shown as 0.
# ----------------------------
import math
import re

import pandas as pd

_SUFFIXES = ["", "k", "M", "B", "T"]


def _is_missing(value):
    return value is None or pd.isna(value)


def _plain(value: float) -> str:
    if math.isfinite(value) and float(value).is_integer():
        return str(int(value))
    return str(value)


def format_num(number, significant_figures: int = 4) -> str:
    """
    Abbreviate a number with a k/M/B/T suffix.

    Values below 1,000 in magnitude are returned as-is. Larger values are
    scaled to their thousands tier and given enough decimals to show
    `significant_figures` digits, e.g. 1234567 → "1.235M".
    """
    if _is_missing(number):
        return "NaN"
    number = float(number)
    if not math.isfinite(number) or number == 0:
        return _plain(number)

    tier = int(math.log10(abs(number)) / 3)
    tier = max(0, min(tier, len(_SUFFIXES) - 1))
    if tier == 0:
        return _plain(number)

    scaled = number / 10 ** (tier * 3)
    decimals = max(0, significant_figures - len(str(int(math.floor(abs(scaled))))))
    return f"{scaled:.{decimals}f}{_SUFFIXES[tier]}"


def format_pct(number, no_sign: bool = False) -> str:
    """0.1234 → "+12.34%"; with no_sign → "12.34%"."""
    if _is_missing(number):
        return "NaN"
    number = float(number)
    if no_sign:
        return f"{number * 100:.2f}%"
    sign = "+" if number >= 0 else "-"
    return f"{sign}{abs(number) * 100:.2f}%"


def format_camel_case(text: str) -> str:
    """Split camelCase into title words, e.g. "freeCashFlows" → "Free Cash Flows"."""
    spaced = re.sub(r"([A-Z]|[0-9]+)", r" \1", text)
    return spaced[:1].upper() + spaced[1:]
