# tests/test_formatting.py
# -----------------------------------------------------------------------
# Unit tests for intrinsic_engine/formatting.py
# -----------------------------------------------------------------------

import math
import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from intrinsic_engine.formatting import format_camel_case, format_num, format_pct


class TestFormatNum:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (999, "999"),
            (12.5, "12.5"),
            (0, "0"),
            (1234, "1.234k"),
            (12345.6, "12.35k"),
            (1_234_567, "1.235M"),
            (-2_500_000_000, "-2.500B"),
            (3.2e12, "3.200T"),
            (123_456_789_000, "123.5B"),
        ],
    )
    def test_values(self, value, expected):
        assert format_num(value) == expected

    def test_significant_figures(self):
        assert format_num(1_234_567, significant_figures=2) == "1.2M"
        assert format_num(987_654_321, significant_figures=2) == "988M"

    def test_beyond_trillions_stays_in_trillions(self):
        assert format_num(5e15) == "5000T"

    def test_missing(self):
        assert format_num(None) == "NaN"
        assert format_num(np.nan) == "NaN"


class TestFormatPct:
    def test_signed(self):
        assert format_pct(0.1234) == "+12.34%"
        assert format_pct(-0.05) == "-5.00%"
        assert format_pct(0.0) == "+0.00%"

    def test_unsigned(self):
        assert format_pct(1.5, no_sign=True) == "150.00%"
        assert format_pct(-0.5, no_sign=True) == "-50.00%"

    def test_missing(self):
        assert format_pct(None) == "NaN"
        assert format_pct(math.nan, no_sign=True) == "NaN"


class TestFormatCamelCase:
    def test_words(self):
        assert format_camel_case("freeCashFlows") == "Free Cash Flows"
        assert format_camel_case("enterpriseValue") == "Enterprise Value"
        assert format_camel_case("revenues") == "Revenues"

    def test_digits_split(self):
        assert format_camel_case("growth5Years") == "Growth 5 Years"

    def test_empty(self):
        assert format_camel_case("") == ""
