"""
Spell Manager - leveled-spell preparation: limits, swap checks and the commit path
Every commit is collected into one ActorUpdate so the host sees a single state change
"""

from typing import Dict, Iterable, List, Optional

from loguru import logger

from ..constants import (
    FLAGS, MODULE_ID, CastingMethod, ChangeReason, EnforcementMode, PreparedState,
    RitualCastingMode, SwapMode, SPECIAL_CAST_MODES,
)
from ..events import EventType, SpellsPreparedEvent
from ..exceptions import HostError
from ..host.batching import ActorUpdate, apply_actor_update
from ..host.records import ItemRecord
from ..identity import canonicalize, class_spell_key, parse_class_spell_key
from ..models import (
    ChangeDecision, ChangeSummary, ClassChangeSummary, CommitResult, LimitStatus,
    SpellChangeSet, SpellCheckInput, SpellPreparationStatus,
)
from ..preparation import flatten_prepared, validate_prepared_by_class
from ..services.spell_list_resolver import is_removable_item


class SpellManager:
    """
    Spell Manager
    Mirrors CantripManager for leveled spells and owns the preparation commit
    """

    def __init__(self, spellbook):
        """
        Initialize the SpellManager

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

    @property
    def rules(self):
        return self.spellbook.get_manager('rules')

    @property
    def cantrips(self):
        return self.spellbook.get_manager('cantrips')

    def get_settings(self, class_id: Optional[str]):
        return self.rules.get_class_settings(class_id)

    def _prepared_by_class(self) -> Dict[str, List[str]]:
        raw = self.host.get_actor_flag(self.actor_id, FLAGS.PREPARED_SPELLS_BY_CLASS)
        if isinstance(raw, list):
            # Pre-class-split data had a flat list here
            logger.warning(f"Actor {self.actor_id} has a list-shaped preparedSpellsByClass; treating as empty")
            return {}
        return raw or {}

    def _canonical(self, spell) -> Optional[str]:
        return canonicalize(spell, self.host.resolve_uuid)

    # Limits

    def get_class_preparation_mode(self, class_id: str) -> str:
        actor = self.actor
        class_info = actor.classes.get(class_id) if actor else None
        if class_info is not None and class_info.is_pact:
            return CastingMethod.PACT
        return CastingMethod.SPELL

    def get_max_prepared(self, class_id: str) -> int:
        actor = self.actor
        class_info = actor.classes.get(class_id) if actor else None
        if class_info is None:
            return 0
        return max(0, class_info.preparation_max + self.rules.get_class_rules(class_id).spell_preparation_bonus)

    def get_current_prepared_count(self, class_id: str) -> int:
        actor = self.actor
        if actor is None:
            return 0
        return sum(
            1 for item in actor.spells
            if item.level > 0
            and item.prepared == PreparedState.PREPARED
            and item.method != CastingMethod.RITUAL
            and item.source_class == class_id
        )

    # Status

    def _owned_status(self, item: ItemRecord) -> SpellPreparationStatus:
        always = item.prepared == PreparedState.ALWAYS
        granted = bool(item.cached_for)
        special = item.method if item.method in SPECIAL_CAST_MODES else None
        reason = None
        if always:
            reason = ChangeReason.ALWAYS_PREPARED
        elif granted:
            reason = ChangeReason.GRANTED
        elif special:
            reason = ChangeReason.SPECIAL_MODE
        return SpellPreparationStatus(
            prepared=item.prepared in (PreparedState.PREPARED, PreparedState.ALWAYS) and item.method != CastingMethod.RITUAL,
            is_owned=True,
            always_prepared=always,
            is_granted=granted,
            special_mode=special,
            disabled=reason is not None,
            reason=reason,
            source_item_id=item.id,
        )

    def get_spell_preparation_status(self, spell, class_id: Optional[str] = None) -> SpellPreparationStatus:
        """How a spell row renders for a class: owned, locked, or prepared elsewhere"""
        class_id = class_id or getattr(spell, 'source_class', None)
        uuid = self._canonical(spell)
        actor = self.actor
        items = [item for item in actor.spells if canonicalize(item) == uuid] if actor else []

        class_items = [item for item in items if item.source_class == class_id]
        owned = next((item for item in class_items
                      if item.prepared == PreparedState.PREPARED and item.method != CastingMethod.RITUAL), None)
        owned = owned or (class_items[0] if class_items else None)
        if owned is None:
            owned = next((item for item in items if not item.source_class), None)
        if owned is not None:
            return self._owned_status(owned)

        prepared_by_class = self._prepared_by_class()
        for other_class, keys in prepared_by_class.items():
            if other_class != class_id and class_spell_key(other_class, uuid) in keys:
                return SpellPreparationStatus(
                    prepared_by_other_class=other_class,
                    reason=ChangeReason.PREPARED_BY_OTHER_CLASS,
                )

        status = SpellPreparationStatus(
            prepared=bool(class_id) and class_spell_key(class_id, uuid) in prepared_by_class.get(class_id, []),
        )
        if getattr(spell, 'level', None) == 0 and class_id and not status.prepared:
            at_max = self.cantrips.get_current_count(class_id) >= self.cantrips.get_max_allowed(class_id)
            if at_max and self.rules.get_enforcement_mode() == EnforcementMode.STRICT:
                status.is_cantrip_locked = True
                status.reason = ChangeReason.MAXIMUM_REACHED
        return status

    # Checks

    def can_change_spell_status(self, spell, is_checked: bool, was_prepared: bool, is_level_up: bool,
                                is_long_rest: bool, class_id: Optional[str] = None,
                                current_prepared: Optional[int] = None,
                                max_prepared: Optional[int] = None) -> ChangeDecision:
        """Decide whether a leveled spell checkbox may flip; refusals raise a warning toast"""
        decision = self._spell_decision(spell, is_checked, was_prepared, is_level_up, is_long_rest,
                                        class_id, current_prepared, max_prepared)
        if not decision.allowed:
            self.context.warn_user(decision.message)
        return decision

    def _spell_decision(self, spell, is_checked: bool, was_prepared: bool, is_level_up: bool,
                        is_long_rest: bool, class_id: Optional[str], current_prepared: Optional[int],
                        max_prepared: Optional[int]) -> ChangeDecision:
        if getattr(spell, 'level', 0) == 0:
            return ChangeDecision.allow()
        class_id = class_id or getattr(spell, 'source_class', None)
        if not class_id:
            logger.debug(f"No class identifier for {getattr(spell, 'name', '?')}; allowing change")
            return ChangeDecision.allow()

        settings = self.get_settings(class_id)
        behavior = EnforcementMode.parse(settings.behavior, EnforcementMode.NOTIFY_GM)
        current = current_prepared if current_prepared is not None else self.get_current_prepared_count(class_id)
        maximum = max_prepared if max_prepared is not None else self.get_max_prepared(class_id)

        if behavior in (EnforcementMode.UNENFORCED, EnforcementMode.NOTIFY_GM):
            if behavior == EnforcementMode.NOTIFY_GM and is_checked and current >= maximum:
                self.host.notify('info', 'SPELLBOOK.Notifications.OverLimitWarning')
                return ChangeDecision.allow('SPELLBOOK.Notifications.OverLimitWarning')
            return ChangeDecision.allow()

        if is_checked and current >= maximum:
            logger.debug(f"{class_id} at maximum prepared spells: {current}/{maximum}")
            return ChangeDecision.deny(ChangeReason.CLASS_AT_MAXIMUM)

        if not is_checked and was_prepared:
            mode = settings.spell_swapping
            if mode == SwapMode.NONE:
                return ChangeDecision.deny(ChangeReason.LOCKED_NO_SWAPPING)
            if mode == SwapMode.LEVEL_UP and not is_level_up:
                return ChangeDecision.deny(ChangeReason.LOCKED_OUTSIDE_LEVEL_UP)
            if mode == SwapMode.LONG_REST and not is_long_rest:
                return ChangeDecision.deny(ChangeReason.LOCKED_OUTSIDE_LONG_REST)
        return ChangeDecision.allow()

    # Commit

    async def _source_copy(self, uuid: str) -> Optional[ItemRecord]:
        try:
            source = await self.host.resolve_uuid_async(uuid)
        except HostError as e:
            logger.error(f"Could not load source spell {uuid}: {e}")
            raise
        if not isinstance(source, ItemRecord):
            logger.warning(f"Source spell {uuid} not found; skipping")
            return None
        return source.copy(id='', uuid='', source_uuid=uuid)

    async def _ensure_spell_on_actor(self, uuid: str, class_id: str, mode: str, update: ActorUpdate,
                                     pending: Dict[str, ItemRecord], ritual_mode: RitualCastingMode):
        items = [item for item in self.actor.spells if canonicalize(item) == uuid]
        for item in items:
            if item.source_class and item.source_class != class_id:
                continue
            if not is_removable_item(item):
                logger.debug(f"{item.name} is granted, always prepared or special mode; leaving as is")
                return

        class_items = [item for item in items if item.source_class == class_id]
        existing_prepared = next((item for item in class_items
                                  if item.method != CastingMethod.RITUAL and item.prepared == PreparedState.PREPARED), None)
        existing_ritual = next((item for item in class_items if item.method == CastingMethod.RITUAL), None)

        if existing_prepared is not None:
            if existing_prepared.method != mode:
                update.update_item(existing_prepared.id, method=mode, prepared=int(PreparedState.PREPARED))
            return

        if existing_ritual is not None and ritual_mode == RitualCastingMode.ALWAYS and mode == CastingMethod.SPELL:
            # The ritual copy stays; preparing adds a separate spell-mode copy
            existing = None
        else:
            unassigned = next((item for item in items if not item.source_class), None)
            existing = unassigned or (class_items[0] if class_items else None)

        if existing is not None:
            changes = {'method': mode, 'prepared': int(PreparedState.PREPARED)}
            if existing.source_class != class_id:
                changes['source_class'] = class_id
            update.update_item(existing.id, **changes)
            return

        key = f'{mode}:{uuid}'
        if key in pending:
            return
        copy = await self._source_copy(uuid)
        if copy is None:
            return
        copy.method = mode
        copy.prepared = int(PreparedState.PREPARED)
        copy.source_class = class_id
        pending[key] = copy
        update.create_item(copy)

    async def _ensure_ritual_copy(self, uuid: str, class_id: str, update: ActorUpdate,
                                  pending: Dict[str, ItemRecord]):
        key = f'{CastingMethod.RITUAL}:{uuid}'
        if key in pending:
            return
        for item in self.actor.spells:
            if (item.method == CastingMethod.RITUAL and item.source_class == class_id
                    and canonicalize(item) == uuid):
                return
        copy = await self._source_copy(uuid)
        if copy is None:
            return
        copy.method = CastingMethod.RITUAL
        copy.prepared = int(PreparedState.UNPREPARED)
        copy.source_class = class_id
        copy.flags.setdefault(MODULE_ID, {})[FLAGS.IS_MODULE_RITUAL] = True
        pending[key] = copy
        update.create_item(copy)

    def _handle_unpreparing(self, uuid: str, class_id: str, update: ActorUpdate) -> Optional[str]:
        class_items = [item for item in self.actor.spells
                       if item.source_class == class_id and canonicalize(item) == uuid]
        target = next((item for item in class_items
                       if item.prepared == PreparedState.PREPARED and item.method != CastingMethod.RITUAL), None)
        if target is None:
            return None
        if not is_removable_item(target):
            logger.debug(f"{target.name} has special status; not unpreparing")
            return None
        update.delete_item(target.id)
        return target.id

    def _remove_module_ritual_copy(self, uuid: str, class_id: str, update: ActorUpdate):
        for item in self.actor.spells:
            if (item.method == CastingMethod.RITUAL and item.source_class == class_id
                    and item.get_flag(FLAGS.IS_MODULE_RITUAL) and canonicalize(item) == uuid):
                update.delete_item(item.id)

    def _auto_delete_unprepared(self, update: ActorUpdate):
        if not self.context.settings.auto_delete_unprepared:
            return
        touched = {change['id'] for change in update.item_updates}
        for item in self.actor.spells:
            if (item.method == CastingMethod.SPELL and item.prepared == PreparedState.UNPREPARED
                    and item.id not in touched and is_removable_item(item)):
                update.delete_item(item.id)

    async def save_class_prepared_spells(self, class_id: str, spells: Iterable[SpellCheckInput]) -> CommitResult:
        """
        Commit one class's preparation form.

        Spells named in the submission replace their entries in
        preparedSpellsByClass[class_id]; entries for spells not submitted are
        kept. Items are created, updated and deleted to match, sparing granted,
        always-prepared and special-mode items.

        Raises:
            InvariantViolationError: stored preparation data is inconsistent; nothing is written
            HostError: the host write failed
        """
        prepared_by_class = validate_prepared_by_class(self._prepared_by_class())
        rules = self.rules.get_class_rules(class_id)
        default_mode = self.get_class_preparation_mode(class_id)

        update = ActorUpdate()
        pending: Dict[str, ItemRecord] = {}
        result = CommitResult(class_id=class_id)
        submitted = set()
        prepared_uuids: List[str] = []

        for spell in spells:
            uuid = self._canonical(spell)
            if not uuid:
                continue
            submitted.add(uuid)
            changes = result.cantrip_changes if spell.level == 0 else result.spell_changes
            if spell.prepared and not spell.was_prepared:
                changes.added.append(spell.name)
            elif not spell.prepared and spell.was_prepared:
                changes.removed.append(spell.name)

            mode = default_mode if spell.level > 0 else CastingMethod.SPELL
            if spell.prepared:
                prepared_uuids.append(uuid)
                await self._ensure_spell_on_actor(uuid, class_id, mode, update, pending, rules.ritual_casting)
                if spell.is_ritual and rules.ritual_casting in (RitualCastingMode.ALWAYS, RitualCastingMode.PREPARED):
                    await self._ensure_ritual_copy(uuid, class_id, update, pending)
            else:
                if spell.was_prepared:
                    deleted = self._handle_unpreparing(uuid, class_id, update)
                    if deleted:
                        result.deleted_item_ids.append(deleted)
                if spell.is_ritual and rules.ritual_casting == RitualCastingMode.ALWAYS:
                    await self._ensure_ritual_copy(uuid, class_id, update, pending)
                elif spell.is_ritual and spell.was_prepared and rules.ritual_casting == RitualCastingMode.PREPARED:
                    self._remove_module_ritual_copy(uuid, class_id, update)

        kept = [key for key in prepared_by_class.get(class_id, [])
                if parse_class_spell_key(key)[1] not in submitted]
        new_keys = kept + [class_spell_key(class_id, uuid) for uuid in dict.fromkeys(prepared_uuids)]
        prepared_by_class[class_id] = new_keys
        update.set_flag(FLAGS.PREPARED_SPELLS_BY_CLASS, prepared_by_class)
        update.set_flag(FLAGS.PREPARED_SPELLS, flatten_prepared(prepared_by_class))
        self._auto_delete_unprepared(update)
        result.deleted_item_ids = list(update.item_deletes)

        created = await apply_actor_update(self.host, self.actor_id, update)
        result.created_item_ids = [item.id for item in created]

        result.cantrips_over_limit = self._limit_if_over(
            self.cantrips.get_current_count(class_id), self.cantrips.get_max_allowed(class_id))
        result.spells_over_limit = self._limit_if_over(
            self.get_current_prepared_count(class_id), self.get_max_prepared(class_id))

        logger.info(
            f"Saved {class_id} preparation on actor {self.actor_id}: "
            f"{len(new_keys)} prepared, {len(result.created_item_ids)} created, {len(result.deleted_item_ids)} deleted"
        )
        self.context.bus.emit(SpellsPreparedEvent(
            event_type=EventType.SPELLS_PREPARED,
            source_manager=type(self).__name__,
            timestamp=self.context.now() / 1000,
            actor_id=self.actor_id,
            class_id=class_id,
            added=result.cantrip_changes.added + result.spell_changes.added,
            removed=result.cantrip_changes.removed + result.spell_changes.removed,
        ))
        return result

    @staticmethod
    def _limit_if_over(current: int, maximum: int) -> Optional[LimitStatus]:
        if current > maximum:
            return LimitStatus(current=current, max=maximum)
        return None

    async def commit_preparation(self, class_spells: Dict[str, List[SpellCheckInput]],
                                 is_level_up: bool = False, is_long_rest: bool = False) -> ChangeSummary:
        """
        Commit a whole spell book form: every class, then swap-window
        completion, favorites reconciliation and the GM digest.
        """
        actor = self.actor
        summary = ChangeSummary(actor_id=self.actor_id, actor_name=actor.name if actor else '')
        for class_id, spells in class_spells.items():
            result = await self.save_class_prepared_spells(class_id, spells)
            class_info = actor.classes.get(class_id) if actor else None
            summary.class_changes[class_id] = ClassChangeSummary(
                class_name=class_info.name if class_info else class_id,
                cantrip_changes=result.cantrip_changes,
                spell_changes=result.spell_changes,
                cantrips_over_limit=result.cantrips_over_limit,
                spells_over_limit=result.spells_over_limit,
            )

        cantrips_changed = any(c.cantrip_changes.has_changes for c in summary.class_changes.values())
        if is_level_up and cantrips_changed:
            await self.cantrips.complete_cantrip_swap(True)
        elif is_long_rest:
            await self.cantrips.complete_cantrip_swap(False)

        await self.spellbook.get_manager('favorites').process_favorites_from_form()

        if self.rules.get_enforcement_mode() == EnforcementMode.NOTIFY_GM:
            await self.spellbook.reporter.send_update_report(summary)
        return summary

    # Maintenance

    async def cleanup_stale_preparation_flags(self) -> int:
        """Drop preparation entries whose spell item no longer exists for that class"""
        prepared_by_class = self._prepared_by_class()
        actor = self.actor
        removed = 0
        for class_id, keys in prepared_by_class.items():
            owned = {canonicalize(item) for item in actor.spells if item.source_class == class_id}
            cleaned = [key for key in keys if parse_class_spell_key(key)[1] in owned]
            removed += len(keys) - len(cleaned)
            prepared_by_class[class_id] = cleaned
        if removed:
            update = ActorUpdate()
            update.set_flag(FLAGS.PREPARED_SPELLS_BY_CLASS, prepared_by_class)
            update.set_flag(FLAGS.PREPARED_SPELLS, flatten_prepared(prepared_by_class))
            await apply_actor_update(self.host, self.actor_id, update)
            logger.info(f"Removed {removed} stale preparation entries on actor {self.actor_id}")
        return removed

    async def cleanup_cantrips_for_class(self, class_id: str) -> int:
        """Remove cantrip entries from a class's preparation (classes that do not show cantrips)"""
        prepared_by_class = self._prepared_by_class()
        keys = prepared_by_class.get(class_id)
        if not keys:
            return 0
        cleaned = []
        for key in keys:
            spell = await self.host.resolve_uuid_async(parse_class_spell_key(key)[1])
            if spell is not None and getattr(spell, 'level', None) != 0:
                cleaned.append(key)
        removed = len(keys) - len(cleaned)
        if removed:
            prepared_by_class[class_id] = cleaned
            update = ActorUpdate()
            update.set_flag(FLAGS.PREPARED_SPELLS_BY_CLASS, prepared_by_class)
            update.set_flag(FLAGS.PREPARED_SPELLS, flatten_prepared(prepared_by_class))
            await apply_actor_update(self.host, self.actor_id, update)
            logger.info(f"Removed {removed} cantrip entries from {class_id} on actor {self.actor_id}")
        return removed
