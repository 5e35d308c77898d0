"""Tests for spell range normalization."""

from __future__ import annotations

import pytest

from spellbook.filters import convert_range


class TestConvertRange:
    """Tests for converting ranges to feet or meters."""

    @pytest.mark.parametrize(
        ("units", "value", "expected"),
        [
            ("ft", 30, 30.0),
            ("mi", 1, 5280.0),
            ("mi", 0.5, 2640.0),
            ("m", 3, pytest.approx(9.8425, abs=1e-4)),
            ("km", 1, pytest.approx(3280.84, abs=1e-2)),
        ],
    )
    def test_to_feet(self, units: str, value: float, expected: float) -> None:
        assert convert_range(units, value) == expected

    @pytest.mark.parametrize(
        ("units", "value"),
        [("spec", 10), ("self", None), ("touch", 5), ("ft", None), (None, 30), ("", 30)],
    )
    def test_non_distances_are_zero(self, units: str | None, value: float | None) -> None:
        """Test special, personal and missing ranges count as 0."""
        assert convert_range(units, value) == 0
        assert convert_range(units, value, metric=True) == 0

    def test_metric_rounds(self) -> None:
        """Test metric output is whole meters."""
        assert convert_range("ft", 30, metric=True) == 9
        assert convert_range("mi", 1, metric=True) == 1609
        assert convert_range("m", 10, metric=True) == 10
        assert convert_range("km", 2, metric=True) == 2000
