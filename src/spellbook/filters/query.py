"""Advanced search queries.

A query starts with the advanced-search prefix (``^`` by default) and is a
list of ``FIELD:value`` clauses joined by ``AND``::

    ^LEVEL:3 AND SCHOOL:evocation AND DMG:fire,cold

Field names are the search aliases of the filter configuration. Boolean
fields accept ``true/yes/1`` and ``false/no/0``; damage types and
conditions accept a comma list meaning any of them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from spellbook.core.exceptions import SpellbookValidationError
from spellbook.core.logging import get_logger
from spellbook.filters.ranges import convert_range
from spellbook.models import FilterConfiguration, SpellSchool, SpellView


logger = get_logger(__name__)

BOOLEAN_FIELDS = frozenset({"requiresSave", "concentration", "prepared", "ritual", "favorited"})
LIST_FIELDS = frozenset({"damageType", "condition"})

_TRUE = frozenset({"true", "yes", "1"})
_FALSE = frozenset({"false", "no", "0"})
_AND = re.compile(r"\s+and\s+", re.IGNORECASE)
_RANGE_INTERVAL = re.compile(r"^(\d+(?:\.\d+)?)?\s*-\s*(\d+(?:\.\d+)?)?$")

ACTIVATION_TYPES = frozenset(
    {"action", "bonus", "reaction", "minute", "hour", "day", "special", "legendary", "lair", "crew"}
)


@dataclass(frozen=True)
class FieldCondition:
    """One ``FIELD:value`` clause with its normalized value."""

    field: str
    value: str


@dataclass(frozen=True)
class ParsedQuery:
    """A conjunction of field conditions."""

    conditions: tuple[FieldCondition, ...]

    def __bool__(self) -> bool:
        return bool(self.conditions)


def parse_boolean(value: str) -> bool:
    """Parse a boolean query value.

    Raises:
        SpellbookValidationError: If the value is not a recognized boolean.
    """
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise SpellbookValidationError("Expected a boolean", field_name="value", invalid_value=value)


def normalize_school(value: str) -> str | None:
    """Map a school key or full name (``evo``, ``Evocation``) to its key."""
    lowered = value.strip().lower()
    for school in SpellSchool:
        if lowered in (school.value, school.full_name.lower()):
            return school.value
    return None


class QueryParser:
    """Parses advanced search queries against the filter configuration's aliases."""

    def __init__(self, config: FilterConfiguration | None = None) -> None:
        self._aliases = (config or FilterConfiguration.default()).alias_map()

    def parse(self, query: str) -> ParsedQuery:
        """Parse a query without its prefix.

        Raises:
            SpellbookValidationError: If a clause has no colon, an unknown
                field, an empty value or a value the field does not accept.
        """
        conditions: list[FieldCondition] = []
        for part in _AND.split(query.strip()):
            part = part.strip()
            if not part:
                continue
            conditions.append(self._parse_expression(part))
        if not conditions:
            raise SpellbookValidationError("Empty advanced query", field_name="query", invalid_value=query)
        return ParsedQuery(tuple(conditions))

    def _parse_expression(self, expression: str) -> FieldCondition:
        alias, colon, value = expression.partition(":")
        if not colon:
            raise SpellbookValidationError(
                "Query clause must be FIELD:value", field_name="query", invalid_value=expression
            )
        field = self._aliases.get(alias.strip().upper())
        if field is None:
            raise SpellbookValidationError("Unknown search field", field_name="query", invalid_value=alias)
        value = value.strip()
        if not value:
            raise SpellbookValidationError("Missing search value", field_name=field, invalid_value=expression)
        return FieldCondition(field=field, value=self._normalize(field, value))

    @staticmethod
    def _normalize(field: str, value: str) -> str:
        if field in BOOLEAN_FIELDS:
            return "true" if parse_boolean(value) else "false"
        if field == "level":
            if not value.isdigit() or not 0 <= int(value) <= 9:
                raise SpellbookValidationError("Spell level must be 0-9", field_name=field, invalid_value=value)
            return value
        if field == "school":
            school = normalize_school(value)
            if school is None:
                raise SpellbookValidationError("Unknown spell school", field_name=field, invalid_value=value)
            return school
        if field == "castingTime":
            activation, _, amount = value.partition(":")
            activation = activation.strip().lower()
            if activation not in ACTIVATION_TYPES:
                raise SpellbookValidationError("Unknown casting time", field_name=field, invalid_value=value)
            return f"{activation}:{amount.strip() or '1'}"
        if field == "materialComponents":
            lowered = value.lower()
            if lowered not in ("consumed", "notconsumed"):
                raise SpellbookValidationError(
                    "Materials must be consumed or notconsumed", field_name=field, invalid_value=value
                )
            return lowered
        if field in LIST_FIELDS:
            return ",".join(v.strip().lower() for v in value.split(",") if v.strip())
        return value.lower()


class QueryExecutor:
    """Evaluates parsed queries against spell views."""

    def __init__(self, *, metric: bool = False) -> None:
        self._metric = metric

    def execute(self, query: ParsedQuery, views: list[SpellView]) -> list[SpellView]:
        return [view for view in views if self.matches(query, view)]

    def matches(self, query: ParsedQuery, view: SpellView) -> bool:
        return all(self._check(condition, view) for condition in query.conditions)

    def _check(self, condition: FieldCondition, view: SpellView) -> bool:
        doc = view.doc
        field, value = condition.field, condition.value
        if field == "name":
            return value in doc.name.lower()
        if field == "level":
            return doc.level == int(value)
        if field == "school":
            return doc.school == value
        if field == "damageType":
            return bool(set(value.split(",")) & {d.lower() for d in doc.damage_types})
        if field == "condition":
            return bool(set(value.split(",")) & {c.lower() for c in doc.conditions})
        if field == "castingTime":
            activation, _, amount = value.partition(":")
            return doc.activation.type == activation and str(doc.activation.value or 1) == amount
        if field == "range":
            return self._check_range(value, view)
        if field == "materialComponents":
            return doc.materials.consumed == (value == "consumed")
        if field in BOOLEAN_FIELDS:
            expected = value == "true"
            actual = {
                "requiresSave": doc.requires_save,
                "concentration": doc.is_concentration,
                "prepared": view.is_prepared,
                "ritual": doc.is_ritual,
                "favorited": view.favorited,
            }[field]
            return actual == expected
        logger.debug("Ignoring unsupported query field", field=field)
        return True

    def _check_range(self, value: str, view: SpellView) -> bool:
        spell_range = view.doc.range
        if value.replace(".", "", 1).isdigit():
            return spell_range.value is not None and float(spell_range.value) == float(value)
        interval = _RANGE_INTERVAL.match(value)
        if interval:
            low, high = interval.groups()
            distance = convert_range(spell_range.units, spell_range.value, metric=self._metric)
            return (low is None or distance >= float(low)) and (high is None or distance <= float(high))
        return value in (spell_range.units or "").lower()


__all__ = [
    "FieldCondition",
    "ParsedQuery",
    "QueryExecutor",
    "QueryParser",
    "normalize_school",
    "parse_boolean",
]
