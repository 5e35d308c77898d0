"""Spell range normalization."""

from __future__ import annotations

from spellbook.core.constants import FEET_PER_MILE, METERS_PER_FOOT


_METERS_PER_KILOMETER = 1000


def convert_range(units: str | None, value: float | None, *, metric: bool = False) -> float:
    """Convert a spell range to feet, or to whole meters when ``metric``.

    ``spec`` ranges and ranges without a value count as 0; so do
    ``self``, ``touch`` and any other non-distance unit.
    """
    if not units or value is None or units == "spec":
        return 0
    if units == "ft":
        feet = float(value)
    elif units == "mi":
        feet = float(value) * FEET_PER_MILE
    elif units == "m":
        feet = float(value) / METERS_PER_FOOT
    elif units == "km":
        feet = float(value) * _METERS_PER_KILOMETER / METERS_PER_FOOT
    else:
        return 0
    if metric:
        return round(feet * METERS_PER_FOOT)
    return feet


__all__ = ["convert_range"]
