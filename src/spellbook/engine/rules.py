"""Rule-set registry.

Resolves the effective rules of each spellcasting class on an actor:

    rule-set defaults  <-  actor rule-set override  <-  stored class overrides

Stored class rules live in the ``classRules`` flag keyed by class id and
carry a ``_version``; records from another version are merged onto the
current defaults and rewritten the next time the actor's classes are
initialized.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from spellbook.core.config import get_settings
from spellbook.core.constants import (
    CANTRIPLESS_CLASSES,
    CLASS_RULES_VERSION,
    CLASS_SCOPED_FLAGS,
    CLASS_WIZARD,
    FLAG_CLASS_RULES,
    FLAG_ENFORCEMENT_BEHAVIOR,
    FLAG_RULE_SET_OVERRIDE,
    MODULE_ID,
)
from spellbook.core.exceptions import RulesIntegrityError, SpellbookValidationError
from spellbook.core.logging import get_logger
from spellbook.host.environment import SPELL_KIND, Environment
from spellbook.models import (
    Actor,
    ClassRules,
    ClassState,
    EnforcementBehavior,
    RitualMode,
    RuleSet,
    SpellListPage,
    SwapMode,
)


logger = get_logger(__name__)


# Fields a rule-set change resets; everything else is a user override.
RULE_SET_FIELDS = frozenset(
    {"show_cantrips", "cantrip_swapping", "spell_swapping", "ritual_casting"}
)

_RULE_SET_DEFAULTS: dict[RuleSet, dict[str, Any]] = {
    RuleSet.LEGACY: {
        "cantrip_swapping": SwapMode.LEVEL_UP,
        "spell_swapping": SwapMode.LONG_REST,
        "ritual_casting": RitualMode.PREPARED,
    },
    RuleSet.MODERN: {
        "cantrip_swapping": SwapMode.LONG_REST,
        "spell_swapping": SwapMode.LONG_REST,
        "ritual_casting": RitualMode.ALWAYS,
    },
}


def parse_rule_set(value: str | RuleSet) -> RuleSet:
    """Parse a rule-set name.

    Raises:
        SpellbookValidationError: If the name is not a known rule set.
    """
    try:
        return RuleSet(value)
    except ValueError as exc:
        raise SpellbookValidationError(
            f"Unknown rule set {value!r}",
            field_name="rule_set",
            invalid_value=value,
        ) from exc


def class_defaults(class_id: str, rule_set: RuleSet) -> ClassRules:
    """Default rules for a class under a rule set.

    Both rule sets default to ``notifyGM`` enforcement (an actor-level
    setting, not a class rule). Paladins and rangers never show cantrips.
    """
    wizard = get_settings().wizard
    values: dict[str, Any] = {
        **_RULE_SET_DEFAULTS[rule_set],
        "spell_learning_cost_multiplier": wizard.cost_per_level,
        "spell_learning_time_multiplier": wizard.hours_per_level,
    }
    if class_id in CANTRIPLESS_CLASSES:
        values["show_cantrips"] = False
        values["cantrip_swapping"] = SwapMode.NONE
    return ClassRules(**values)


def has_cantrip_track(class_state: ClassState, scale_keys: list[str]) -> bool:
    """Check if the class defines any of the configured cantrip scale values."""
    return any(key in class_state.scale_values for key in scale_keys)


class RuleSetRegistry:
    """Resolves and persists per-class rules for actors."""

    def __init__(self, env: Environment) -> None:
        self._env = env
        self._migration_warned: set[tuple[str, str]] = set()

    # =========================================================================
    # Actor-level policy
    # =========================================================================

    def effective_rule_set(self, actor: Actor) -> RuleSet:
        """The actor's rule-set override, else the world rule set."""
        override = actor.get_flag(FLAG_RULE_SET_OVERRIDE)
        if override:
            try:
                return RuleSet(override)
            except ValueError:
                logger.warning("Ignoring unknown rule set override", actor_id=actor.id, value=override)
        return self._env.world_settings().spellcasting_rule_set

    def enforcement_behavior(self, actor: Actor) -> EnforcementBehavior:
        """The actor's enforcement behavior, else the world default."""
        stored = actor.get_flag(FLAG_ENFORCEMENT_BEHAVIOR)
        if stored:
            try:
                return EnforcementBehavior(stored)
            except ValueError:
                logger.warning("Ignoring unknown enforcement behavior", actor_id=actor.id, value=stored)
        return self._env.world_settings().default_enforcement_behavior

    async def set_enforcement_behavior(self, actor_id: str, behavior: EnforcementBehavior | None) -> None:
        """Set or clear (None) the actor's enforcement behavior."""
        if behavior is None:
            await self._env.unset_flag(actor_id, MODULE_ID, FLAG_ENFORCEMENT_BEHAVIOR)
        else:
            await self._env.set_flag(actor_id, MODULE_ID, FLAG_ENFORCEMENT_BEHAVIOR, str(behavior))

    # =========================================================================
    # Class rules
    # =========================================================================

    def get_class_rules(self, actor: Actor, class_id: str) -> ClassRules:
        """Resolve the effective rules of one class.

        Args:
            actor: Actor snapshot.
            class_id: Class identifier.

        Returns:
            The merged rules; ``no_scale_value`` is set when the class has
            no cantrip scale value, which hides cantrips.
        """
        defaults = class_defaults(class_id, self.effective_rule_set(actor))
        stored = (actor.get_flag(FLAG_CLASS_RULES) or {}).get(class_id)
        rules = defaults
        if stored:
            try:
                self._check_version(class_id, stored)
                rules = self._merge(defaults, stored)
            except RulesIntegrityError as exc:
                key = (actor.id, class_id)
                if key not in self._migration_warned:
                    self._migration_warned.add(key)
                    logger.warning("Migrating outdated class rules", actor_id=actor.id, **exc.details)
                rules = self._merge(defaults, stored)

        class_state = actor.classes.get(class_id)
        if class_state is not None:
            scale_keys = self._env.world_settings().cantrip_scale_keys
            rules = rules.model_copy(
                update={"no_scale_value": not has_cantrip_track(class_state, scale_keys)}
            )
        return rules

    def all_class_rules(self, actor: Actor) -> dict[str, ClassRules]:
        return {cid: self.get_class_rules(actor, cid) for cid in actor.spellcasting_classes}

    def is_wizard_enabled(self, actor: Actor, class_id: str) -> bool:
        """Wizards and classes with ``forceWizardMode`` keep a spellbook."""
        if class_id == CLASS_WIZARD:
            return True
        return self.get_class_rules(actor, class_id).force_wizard_mode

    def wizard_classes(self, actor: Actor) -> list[str]:
        return [cid for cid in actor.spellcasting_classes if self.is_wizard_enabled(actor, cid)]

    @staticmethod
    def _check_version(class_id: str, stored: dict[str, Any]) -> None:
        version = stored.get("_version")
        if version != CLASS_RULES_VERSION:
            raise RulesIntegrityError(
                "Stored class rules version mismatch",
                class_id=class_id,
                stored_version=version,
            )

    @staticmethod
    def _merge(defaults: ClassRules, stored: dict[str, Any]) -> ClassRules:
        data = defaults.to_flag()
        data.update({k: v for k, v in stored.items() if v is not None or k == "customSpellList"})
        data["_version"] = CLASS_RULES_VERSION
        try:
            return ClassRules.model_validate(data)
        except ValidationError:
            logger.warning("Discarding invalid stored class rules", stored=stored)
            return defaults

    async def initialize_new_classes(self, actor: Actor) -> list[str]:
        """Write defaults for classes without stored rules and migrate old records.

        Also prunes class-scoped flags of classes the actor no longer has.

        Returns:
            The class ids whose rules were written.
        """
        if await self.prune_stale_classes(actor):
            actor = await self._env.get_actor(actor.id)
        stored: dict[str, Any] = dict(actor.get_flag(FLAG_CLASS_RULES) or {})
        written: list[str] = []
        for class_id in actor.spellcasting_classes:
            record = stored.get(class_id)
            if record and record.get("_version") == CLASS_RULES_VERSION:
                continue
            rules = self.get_class_rules(actor, class_id)
            stored[class_id] = rules.model_copy(update={"no_scale_value": False}).to_flag()
            written.append(class_id)

        if written:
            await self._env.set_flag(actor.id, MODULE_ID, FLAG_CLASS_RULES, stored)
            logger.info("Initialized class rules", actor_id=actor.id, classes=written)
        return written

    async def prune_stale_classes(self, actor: Actor) -> list[str]:
        """Remove class-scoped flag entries for classes no longer on the actor."""
        present = set(actor.spellcasting_classes)
        pruned: set[str] = set()
        for flag in CLASS_SCOPED_FLAGS:
            value = actor.get_flag(flag)
            if not isinstance(value, dict):
                continue
            stale = [cid for cid in value if cid not in present]
            if stale:
                kept = {cid: v for cid, v in value.items() if cid in present}
                await self._env.set_flag(actor.id, MODULE_ID, flag, kept)
                pruned.update(stale)
        if pruned:
            logger.info("Pruned flags of removed classes", actor_id=actor.id, classes=sorted(pruned))
        return sorted(pruned)

    async def apply_rule_set(self, actor: Actor, rule_set: str | RuleSet) -> dict[str, ClassRules]:
        """Switch the actor to a rule set.

        Rule-set controlled fields are reset to the new defaults; custom
        lists, bonuses, wizard mode and learning multipliers are kept.

        Raises:
            SpellbookValidationError: If the rule set is unknown.
        """
        target = parse_rule_set(rule_set)
        stored: dict[str, Any] = actor.get_flag(FLAG_CLASS_RULES) or {}
        result: dict[str, ClassRules] = {}
        flag: dict[str, Any] = {}
        for class_id in actor.spellcasting_classes:
            defaults = class_defaults(class_id, target)
            previous = stored.get(class_id)
            if previous:
                kept = {
                    name: value
                    for name, value in self._merge(defaults, previous)
                    if name not in RULE_SET_FIELDS
                }
                rules = defaults.model_copy(update=kept)
            else:
                rules = defaults
            result[class_id] = rules
            flag[class_id] = rules.model_copy(update={"no_scale_value": False}).to_flag()

        await self._env.set_flag(actor.id, MODULE_ID, FLAG_CLASS_RULES, flag)
        await self._env.set_flag(actor.id, MODULE_ID, FLAG_RULE_SET_OVERRIDE, str(target))
        logger.info("Applied rule set", actor_id=actor.id, rule_set=str(target), classes=list(flag))
        return result

    async def update_class_rules(self, actor: Actor, class_id: str, changes: dict[str, Any]) -> list[str]:
        """Apply user overrides to one class's rules.

        When the custom spell list changes, prepared spells of the class that
        are not on the new list are removed.

        Args:
            actor: Actor snapshot.
            class_id: Class identifier.
            changes: Rule fields to change (snake_case or camelCase keys).

        Returns:
            Names of the spells removed because of a custom list change.

        Raises:
            SpellbookValidationError: If the changes do not validate.
        """
        current = self.get_class_rules(actor, class_id)
        try:
            updated = ClassRules.model_validate({**current.to_flag(), **self._normalize(changes)})
        except ValidationError as exc:
            raise SpellbookValidationError(
                f"Invalid class rules for {class_id}",
                field_name="classRules",
                invalid_value=changes,
            ) from exc

        stored: dict[str, Any] = dict(actor.get_flag(FLAG_CLASS_RULES) or {})
        stored[class_id] = updated.model_copy(update={"no_scale_value": False}).to_flag()
        await self._env.set_flag(actor.id, MODULE_ID, FLAG_CLASS_RULES, stored)
        logger.info("Updated class rules", actor_id=actor.id, class_id=class_id, changes=list(changes))

        removed: list[str] = []
        if updated.custom_spell_list != current.custom_spell_list and updated.custom_spell_list:
            removed = await self._remove_off_list_spells(actor, class_id, updated.custom_spell_list)
        return removed

    @staticmethod
    def _normalize(changes: dict[str, Any]) -> dict[str, Any]:
        aliases = {name: field.alias for name, field in ClassRules.model_fields.items()}
        return {aliases.get(key, key): value for key, value in changes.items()}

    async def _remove_off_list_spells(self, actor: Actor, class_id: str, list_uuids: list[str]) -> list[str]:
        allowed: set[str] = set()
        for uuid in list_uuids:
            page = await self._env.resolve_uuid(uuid)
            if isinstance(page, SpellListPage):
                allowed.update(page.spells)
            else:
                logger.warning("Custom spell list not found", class_id=class_id, uuid=uuid)

        doomed = [
            spell
            for spell in actor.spells
            if spell.source_class == class_id
            and spell.mode.is_user_prepared
            and spell.prepared
            and spell.uuid not in allowed
        ]
        if doomed:
            await self._env.delete_embedded(actor.id, SPELL_KIND, [s.id for s in doomed])
            logger.info(
                "Removed spells not on the new custom list",
                class_id=class_id,
                spells=[s.name for s in doomed],
            )
        return [s.name for s in doomed]


__all__ = [
    "RuleSetRegistry",
    "RULE_SET_FIELDS",
    "class_defaults",
    "has_cantrip_track",
    "parse_rule_set",
]
