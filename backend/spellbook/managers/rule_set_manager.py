"""
Rule-Set Manager - per-class preparation, swap and ritual rules
Computes class rule records from the edition (legacy/modern) plus stored overrides
"""

from typing import Any, Dict, List, Optional

from loguru import logger

from ..constants import (
    FLAGS, EnforcementMode, RitualCastingMode, RuleSet, SwapMode,
)
from ..events import ClassRulesEvent, EventType
from ..models import ClassRules, ClassSettings

S = SwapMode
R = RitualCastingMode

# class -> (cantripSwapping, spellSwapping, ritualCasting) per edition
LEGACY_DEFAULTS = {
    'wizard': (S.NONE, S.LONG_REST, R.ALWAYS),
    'cleric': (S.NONE, S.LONG_REST, R.PREPARED),
    'druid': (S.NONE, S.LONG_REST, R.PREPARED),
    'paladin': (S.NONE, S.LONG_REST, R.NONE),
    'ranger': (S.NONE, S.LEVEL_UP, R.NONE),
    'bard': (S.NONE, S.LEVEL_UP, R.PREPARED),
    'sorcerer': (S.NONE, S.LEVEL_UP, R.NONE),
    'warlock': (S.NONE, S.LEVEL_UP, R.NONE),
    'artificer': (S.NONE, S.LONG_REST, R.NONE),
}
LEGACY_FALLBACK = (S.NONE, S.LEVEL_UP, R.NONE)

MODERN_DEFAULTS = {
    'wizard': (S.LONG_REST, S.LONG_REST, R.ALWAYS),
    'cleric': (S.LEVEL_UP, S.LONG_REST, R.NONE),
    'druid': (S.LEVEL_UP, S.LONG_REST, R.NONE),
    'paladin': (S.NONE, S.LONG_REST, R.NONE),
    'ranger': (S.NONE, S.LONG_REST, R.NONE),
    'bard': (S.LEVEL_UP, S.LEVEL_UP, R.NONE),
    'sorcerer': (S.LEVEL_UP, S.LEVEL_UP, R.NONE),
    'warlock': (S.LEVEL_UP, S.LEVEL_UP, R.NONE),
    'artificer': (S.LEVEL_UP, S.LONG_REST, R.NONE),
}
MODERN_FALLBACK = (S.LEVEL_UP, S.LEVEL_UP, R.NONE)

NO_CANTRIP_CLASSES = frozenset({'paladin', 'ranger'})

_FIELD_ALIASES = {name: field.alias or name for name, field in ClassRules.model_fields.items()}


def default_class_rules(class_id: str, rule_set: RuleSet) -> ClassRules:
    """Edition defaults for a class; unknown identifiers use the generic row"""
    if rule_set == RuleSet.MODERN:
        cantrips, spells, ritual = MODERN_DEFAULTS.get(class_id, MODERN_FALLBACK)
    else:
        cantrips, spells, ritual = LEGACY_DEFAULTS.get(class_id, LEGACY_FALLBACK)
    return ClassRules(
        cantrip_swapping=cantrips,
        spell_swapping=spells,
        ritual_casting=ritual,
        show_cantrips=class_id not in NO_CANTRIP_CLASSES,
    )


def to_flag_keys(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Accept snake_case or camelCase patch keys; emit camelCase"""
    return {_FIELD_ALIASES.get(key, key): value for key, value in patch.items()}


class RuleSetManager:
    """
    Rule-Set Manager
    Reads and writes the classRules flag for one actor through the hub
    """

    def __init__(self, spellbook):
        """
        Initialize the RuleSetManager

        Args:
            spellbook: Parent ActorSpellbook hub
        """
        self.spellbook = spellbook
        self.context = spellbook.context
        self.host = spellbook.context.host
        self.actor_id = spellbook.actor_id

    @property
    def actor(self):
        return self.spellbook.actor

    def _stored_rules(self) -> Dict[str, Dict[str, Any]]:
        stored = self.host.get_actor_flag(self.actor_id, FLAGS.CLASS_RULES)
        return stored if isinstance(stored, dict) else {}

    def get_effective_rule_set(self) -> RuleSet:
        override = RuleSet.parse(self.host.get_actor_flag(self.actor_id, FLAGS.RULE_SET_OVERRIDE))
        if override:
            return override
        return self.context.settings.rule_set or RuleSet.LEGACY

    def get_enforcement_mode(self) -> EnforcementMode:
        """Actor flag wins over the world setting; notify_gm when neither parses"""
        override = EnforcementMode.parse(self.host.get_actor_flag(self.actor_id, FLAGS.ENFORCEMENT_BEHAVIOR))
        if override:
            return override
        return self.context.settings.enforcement or EnforcementMode.NOTIFY_GM

    def detect_spellcasting_classes(self) -> Dict[str, Any]:
        actor = self.actor
        return actor.spellcasting_classes if actor else {}

    def get_class_rules(self, class_id: str) -> ClassRules:
        """
        Rules for a class on this actor.

        Stored values are merged over edition defaults. A stored record for a
        class the actor no longer has is ignored.
        """
        cached = self.context.rule_cache.get(self.actor_id, class_id)
        if cached is not None:
            return cached.model_copy(deep=True)

        defaults = default_class_rules(class_id, self.get_effective_rule_set())
        stored = self._stored_rules().get(class_id)
        if stored and class_id in self.detect_spellcasting_classes():
            merged = {**defaults.to_flag(), **{k: v for k, v in stored.items() if v is not None}}
            if 'customSpellList' in stored:
                merged['customSpellList'] = stored['customSpellList']
            try:
                rules = ClassRules.model_validate(merged)
            except ValueError as e:
                logger.warning(f"Stored rules for {class_id} on actor {self.actor_id} are invalid ({e}); using defaults")
                rules = defaults
        else:
            if stored:
                logger.debug(f"Ignoring stored rules for {class_id}: class not present on actor {self.actor_id}")
            rules = defaults

        self.context.rule_cache.put(self.actor_id, class_id, rules)
        return rules.model_copy(deep=True)

    def get_class_settings(self, class_id: Optional[str]) -> ClassSettings:
        behavior = self.get_enforcement_mode().value
        if not class_id:
            return ClassSettings(
                cantrip_swapping=SwapMode.NONE,
                spell_swapping=SwapMode.NONE,
                ritual_casting=RitualCastingMode.NONE,
                show_cantrips=True,
                behavior=behavior,
            )
        rules = self.get_class_rules(class_id)
        return ClassSettings(
            cantrip_swapping=rules.cantrip_swapping,
            spell_swapping=rules.spell_swapping,
            ritual_casting=rules.ritual_casting,
            show_cantrips=rules.show_cantrips,
            behavior=behavior,
        )

    async def _write_rules(self, rules: Dict[str, Dict[str, Any]]):
        # Readers must miss the cache before the host write resolves
        self.context.rule_cache.invalidate(self.actor_id)
        await self.host.set_actor_flag(self.actor_id, FLAGS.CLASS_RULES, rules)

    async def apply_rule_set(self, rule_set: RuleSet) -> Dict[str, ClassRules]:
        """
        Populate missing fields of every class record with the edition's
        defaults, keep stored fields, and stamp the actor's rule-set override.
        """
        rule_set = RuleSet(rule_set)
        stored = self._stored_rules()
        updated = dict(stored)
        classes = list(self.detect_spellcasting_classes())
        for class_id in classes:
            existing = {k: v for k, v in (stored.get(class_id) or {}).items() if v is not None}
            merged = {**default_class_rules(class_id, rule_set).to_flag(), **existing}
            updated[class_id] = ClassRules.model_validate(merged).to_flag()

        await self._write_rules(updated)
        await self.host.set_actor_flag(self.actor_id, FLAGS.RULE_SET_OVERRIDE, rule_set.value)
        logger.info(f"Applied {rule_set.value} rule set to actor {self.actor_id} ({len(classes)} classes)")
        self.context.bus.emit(ClassRulesEvent(
            event_type=EventType.RULE_SET_APPLIED,
            source_manager=type(self).__name__,
            timestamp=self.context.now() / 1000,
            actor_id=self.actor_id,
            class_ids=classes,
        ))
        return {class_id: ClassRules.model_validate(updated[class_id]) for class_id in classes}

    async def update_class_rules(self, class_id: str, patch: Dict[str, Any]) -> bool:
        """
        Merge a patch over the class's rules.

        A change to customSpellList that would leave prepared spells outside
        the new pool asks for confirmation first and unprepares them on
        confirm. Returns False, writing nothing, if the user cancels.
        """
        current = self.get_class_rules(class_id)
        merged = {**current.to_flag(), **to_flag_keys(patch)}
        new_rules = ClassRules.model_validate(merged)

        affected = []
        list_changed = sorted(current.custom_spell_list) != sorted(new_rules.custom_spell_list)
        if list_changed:
            resolver = self.spellbook.resolver
            affected = await resolver.get_affected_spells(self.actor_id, class_id, new_rules)
            if affected:
                confirmed = await self.context.ask(
                    'spellListChange',
                    actor_id=self.actor_id,
                    class_id=class_id,
                    affected=[spell.name for spell in affected],
                )
                if not confirmed:
                    logger.info(f"Spell list change for {class_id} on actor {self.actor_id} cancelled")
                    return False

        stored = self._stored_rules()
        stored[class_id] = new_rules.to_flag()
        await self._write_rules(stored)

        if affected:
            await self.spellbook.resolver.unprepare_affected(self.actor_id, class_id, affected)

        logger.info(f"Updated rules for {class_id} on actor {self.actor_id}: {sorted(to_flag_keys(patch))}")
        self.context.bus.emit(ClassRulesEvent(
            event_type=EventType.CLASS_RULES_UPDATED,
            source_manager=type(self).__name__,
            timestamp=self.context.now() / 1000,
            actor_id=self.actor_id,
            class_ids=[class_id],
        ))
        return True

    async def initialize_new_classes(self) -> List[str]:
        """Create default records for spellcasting classes that have none yet"""
        stored = self._stored_rules()
        rule_set = self.get_effective_rule_set()
        new_classes = [cid for cid in self.detect_spellcasting_classes() if cid not in stored]
        if not new_classes:
            return []
        for class_id in new_classes:
            stored[class_id] = default_class_rules(class_id, rule_set).to_flag()
        await self._write_rules(stored)
        logger.info(f"Initialized rules for new classes on actor {self.actor_id}: {new_classes}")
        self.context.bus.emit(ClassRulesEvent(
            event_type=EventType.CLASSES_INITIALIZED,
            source_manager=type(self).__name__,
            timestamp=self.context.now() / 1000,
            actor_id=self.actor_id,
            class_ids=new_classes,
        ))
        return new_classes

    async def cleanup_stale_class_rules(self) -> List[str]:
        """
        Drop records for classes the actor no longer has. The whole flag is
        removed once no spellcasting class remains.
        """
        stored = self._stored_rules()
        current = set(self.detect_spellcasting_classes())
        stale = [class_id for class_id in stored if class_id not in current]
        if not current and stored:
            self.context.rule_cache.invalidate(self.actor_id)
            await self.host.unset_actor_flag(self.actor_id, FLAGS.CLASS_RULES)
            logger.info(f"Actor {self.actor_id} has no spellcasting classes; removed class rules")
            return stale
        if stale:
            for class_id in stale:
                del stored[class_id]
            await self._write_rules(stored)
            logger.info(f"Removed stale class rules on actor {self.actor_id}: {stale}")
        return stale
