"""Spell filtering and advanced search."""

from spellbook.filters.engine import FilterEngine, FilterState, group_by_level, sort_views
from spellbook.filters.query import FieldCondition, ParsedQuery, QueryExecutor, QueryParser
from spellbook.filters.ranges import convert_range

__all__ = [
    "FieldCondition",
    "FilterEngine",
    "FilterState",
    "ParsedQuery",
    "QueryExecutor",
    "QueryParser",
    "convert_range",
    "group_by_level",
    "sort_views",
]
