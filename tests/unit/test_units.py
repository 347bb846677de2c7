"""Tests for duration parsing and formatting."""

from __future__ import annotations

import pytest

from loadcheck._internal.units import format_duration, parse_duration


class TestParseDuration:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("2m", 120.0),
            ("30s", 30.0),
            ("1m30s", 90.0),
            ("500ms", 0.5),
            ("1h", 3600.0),
            ("1.5s", 1.5),
            ("0s", 0.0),
            (" 10S ", 10.0),
        ],
    )
    def test_unit_strings(self, text: str, expected: float) -> None:
        assert parse_duration(text) == pytest.approx(expected)

    def test_bare_number_string_is_seconds(self) -> None:
        assert parse_duration("45") == 45.0

    def test_numbers_are_seconds(self) -> None:
        assert parse_duration(12) == 12.0
        assert parse_duration(0.25) == 0.25

    @pytest.mark.parametrize("text", ["", "abc", "10x", "m", "-5s", "1m 30s", "s10"])
    def test_rejects_invalid_strings(self, text: str) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(text)

    def test_rejects_negative_numbers(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            parse_duration(-1)

    def test_rejects_bool(self) -> None:
        with pytest.raises(ValueError):
            parse_duration(True)


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (120.0, "2m"),
            (90.0, "1m30s"),
            (0.5, "500ms"),
            (0.0, "0s"),
            (3600.0, "1h"),
            (3725.0, "1h2m5s"),
            (1.5, "1.5s"),
        ],
    )
    def test_formats(self, seconds: float, expected: str) -> None:
        assert format_duration(seconds) == expected

    @pytest.mark.parametrize("text", ["2m", "1m30s", "45s", "1h"])
    def test_formatted_value_parses_back(self, text: str) -> None:
        assert format_duration(parse_duration(text)) == text
