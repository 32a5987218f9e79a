# tests/test_utils.py

"""
Numeric Utility Tests - tolerant parsing of provider values
"""

import pytest

from validation_hub.pipeline.utils import clamp, format_compact, to_fraction, to_number


class TestToNumber:
    """Tests for to_number."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (42, 42.0),
            ("12%", 12.0),
            ("+15%", 15.0),
            ("-3.5", -3.5),
            ("$1.2B", 1_200_000_000.0),
            ("7,900", 7900.0),
            ("1,234,567", 1_234_567.0),
            ("1,234.5", 1234.5),
            ({"value": 7.9, "unit": "B"}, 7_900_000_000.0),
        ],
    )
    def test_readable_values(self, raw, expected):
        assert to_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw,expected", [("1,5", 1.5), ("0,75", 0.75), ("12,25%", 12.25)])
    def test_decimal_comma(self, raw, expected):
        assert to_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, True, "n/a", "1.234.567", "12 apples", float("nan"), {"unit": "M"}])
    def test_unreadable_values(self, raw):
        assert to_number(raw) is None


class TestHelpers:
    """Tests for clamp, to_fraction and format_compact."""

    def test_clamp_open_bound(self):
        assert clamp(150.0, 0.0, None) == 150.0
        assert clamp(-1.0) == 0.0

    def test_fraction_accepts_percent(self):
        assert to_fraction(72) == pytest.approx(0.72)
        assert to_fraction("0.8") == pytest.approx(0.8)

    def test_format_compact(self):
        assert format_compact(650_000_000) == "650.0M"
        assert format_compact(12) == "12"
