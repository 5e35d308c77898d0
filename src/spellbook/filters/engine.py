"""Filter engine for spell views.

Filtering is pure: it takes views and a ``FilterState`` and returns the
matching views, sorted. Names starting with the advanced-search prefix
are parsed as field queries instead of name searches.
"""

from __future__ import annotations

import re
from typing import Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field

from spellbook.core.constants import SPELL_LEVEL_NAMES
from spellbook.core.exceptions import SpellbookValidationError
from spellbook.core.logging import get_logger
from spellbook.filters.query import QueryExecutor, QueryParser, normalize_school
from spellbook.filters.ranges import convert_range
from spellbook.models import SpellLevelGroup, SpellView, WorldSettings


logger = get_logger(__name__)

SortKey = Literal["name", "level", "school"]


class FilterState(BaseModel):
    """Values of the filter panel. ``None`` means the filter is off."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(default="")
    level: int | None = Field(default=None, ge=0, le=9)
    school: str | None = None
    casting_time: str | None = Field(default=None, description="type:value, value defaults to 1")
    min_range: float | None = Field(default=None, ge=0)
    max_range: float | None = Field(default=None, ge=0)
    damage_type: str | None = None
    condition: str | None = None
    requires_save: bool | None = None
    concentration: bool | None = None
    material_components: bool | None = Field(default=None, description="True for consumed materials")
    prepared: bool | None = None
    ritual: bool = False
    favorited: bool = False
    sort_by: SortKey = "level"


def _name_matches(query: str, name: str) -> bool:
    query = query.strip().lower()
    name = name.lower()
    if len(query) >= 2 and query[0] == query[-1] == '"':
        return query[1:-1] in name
    if query in name:
        return True
    return any(word in name for word in re.split(r"\s+", query) if word)


def sort_views(views: Iterable[SpellView], sort_by: SortKey = "level") -> list[SpellView]:
    """Sort views by name, by level then name, or by school then level then name."""
    if sort_by == "name":
        key = lambda v: v.name.lower()  # noqa: E731
    elif sort_by == "school":
        key = lambda v: (v.doc.school, v.level, v.name.lower())  # noqa: E731
    else:
        key = lambda v: (v.level, v.name.lower())  # noqa: E731
    return sorted(views, key=key)


def group_by_level(views: Iterable[SpellView], collapsed: Iterable[int] = ()) -> list[SpellLevelGroup]:
    """Group views by level; levels with no spells produce no group."""
    collapsed_levels = set(collapsed)
    by_level: dict[int, list[SpellView]] = {}
    for view in views:
        by_level.setdefault(view.level, []).append(view)
    return [
        SpellLevelGroup(
            level=level,
            name=SPELL_LEVEL_NAMES[level],
            spells=sorted(spells, key=lambda v: v.name.lower()),
            collapsed=level in collapsed_levels,
        )
        for level, spells in sorted(by_level.items())
    ]


class FilterEngine:
    """Applies a filter state to spell views."""

    def __init__(self, settings: WorldSettings | None = None, *, metric: bool = False) -> None:
        self._settings = settings or WorldSettings()
        self._metric = metric
        self._parser = QueryParser(self._settings.filter_configuration)
        self._executor = QueryExecutor(metric=metric)

    def is_advanced(self, name: str) -> bool:
        return name.startswith(self._settings.advanced_search_prefix)

    def filter(self, views: Iterable[SpellView], state: FilterState) -> list[SpellView]:
        """Return the views matching every active filter, sorted.

        An advanced query that does not parse matches nothing.
        """
        candidates = list(views)
        name = state.name.strip()
        if name and self.is_advanced(name):
            try:
                query = self._parser.parse(name[len(self._settings.advanced_search_prefix):])
            except SpellbookValidationError as exc:
                logger.debug("Invalid advanced query", query=name, error=exc.message)
                return []
            candidates = self._executor.execute(query, candidates)
            name = ""

        matched = [view for view in candidates if self._matches(view, state, name)]
        return sort_views(matched, state.sort_by)

    def _matches(self, view: SpellView, state: FilterState, name: str) -> bool:
        doc = view.doc
        if name and not _name_matches(name, doc.name):
            return False
        if state.level is not None and doc.level != state.level:
            return False
        if state.school and doc.school != (normalize_school(state.school) or state.school):
            return False
        if state.casting_time:
            activation, _, amount = state.casting_time.partition(":")
            if doc.activation.type != activation or str(doc.activation.value or 1) != (amount or "1"):
                return False
        if (state.min_range is not None or state.max_range is not None) and doc.range.units:
            distance = convert_range(doc.range.units, doc.range.value, metric=self._metric)
            if state.min_range is not None and distance < state.min_range:
                return False
            if state.max_range is not None and distance > state.max_range:
                return False
        if state.damage_type and state.damage_type.lower() not in {d.lower() for d in doc.damage_types}:
            return False
        if state.condition and state.condition.lower() not in {c.lower() for c in doc.conditions}:
            return False
        if state.requires_save is not None and doc.requires_save != state.requires_save:
            return False
        if state.concentration is not None and doc.is_concentration != state.concentration:
            return False
        if state.material_components is not None and doc.materials.consumed != state.material_components:
            return False
        if state.prepared is not None and view.is_prepared != state.prepared:
            return False
        if state.ritual and not doc.is_ritual:
            return False
        if state.favorited and not view.favorited:
            return False
        return True


__all__ = ["FilterEngine", "FilterState", "SortKey", "group_by_level", "sort_views"]
