"""
Cantrip Manager - cantrip limits, level-up detection and swap-window tracking
All checks return ChangeDecision data; nothing here raises for invalid input
"""

from typing import Dict, List, Optional

from loguru import logger

from ..constants import (
    FLAGS, WIZARD_CLASS, ChangeReason, EnforcementMode, PreparedState, SwapMode,
)
from ..events import EventType, SwapCompletedEvent
from ..identity import canonicalize
from ..models import ChangeDecision, ClassSwapTracking, SwapState

LEVEL_UP = 'levelUp'
LONG_REST = 'longRest'


class CantripManager:
    """
    Cantrip Manager
    Caches per-class maxima; the cache is dropped whenever rules change
    """

    def __init__(self, spellbook):
        """
        Initialize the CantripManager

        Args:
            spellbook: Parent ActorSpellbook hub
        """
        self.spellbook = spellbook
        self.context = spellbook.context
        self.host = spellbook.context.host
        self.actor_id = spellbook.actor_id
        self._max_by_class: Dict[str, int] = {}
        self._total_max: Optional[int] = None

        self.context.bus.on(EventType.RULE_SET_APPLIED, self._on_rules_changed)
        self.context.bus.on(EventType.CLASS_RULES_UPDATED, self._on_rules_changed)

    @property
    def actor(self):
        return self.spellbook.actor

    @property
    def rules(self):
        return self.spellbook.get_manager('rules')

    def _on_rules_changed(self, event):
        if getattr(event, 'actor_id', None) == self.actor_id:
            self.clear_cache()

    def clear_cache(self):
        self._max_by_class.clear()
        self._total_max = None

    # Limits

    def _calculate_max_for_class(self, class_id: str) -> int:
        actor = self.actor
        class_info = actor.classes.get(class_id) if actor else None
        if class_info is None:
            return 0

        base = 0
        for key in self.context.settings.cantrip_scale_keys:
            if key in class_info.scale_values:
                base = class_info.scale_values[key] or 0
                break
        if base == 0:
            return 0

        rules = self.rules.get_class_rules(class_id)
        if not rules.show_cantrips:
            return 0
        total = max(0, base + rules.cantrip_preparation_bonus)
        logger.debug(f"Max cantrips for {class_id}: {base} base + {rules.cantrip_preparation_bonus} bonus = {total}")
        return total

    def get_max_allowed(self, class_id: str) -> int:
        if class_id not in self._max_by_class:
            self._max_by_class[class_id] = self._calculate_max_for_class(class_id)
        return self._max_by_class[class_id]

    def get_total_max(self) -> int:
        if self._total_max is None:
            actor = self.actor
            classes = actor.spellcasting_classes if actor else {}
            self._total_max = sum(self.get_max_allowed(class_id) for class_id in classes)
        return self._total_max

    def get_current_count(self, class_id: Optional[str] = None) -> int:
        """Prepared cantrip items, optionally limited to one class"""
        actor = self.actor
        if actor is None:
            return 0
        return sum(
            1 for item in actor.spells
            if item.is_cantrip
            and item.prepared == PreparedState.PREPARED
            and (class_id is None or item.source_class == class_id)
        )

    # Level-up window

    def check_for_level_up(self) -> bool:
        """True when the level or the cantrip maximum grew since the last stamped baseline"""
        actor = self.actor
        if actor is None:
            return False
        previous_level = self.host.get_actor_flag(self.actor_id, FLAGS.PREVIOUS_LEVEL) or 0
        previous_max = self.host.get_actor_flag(self.actor_id, FLAGS.PREVIOUS_CANTRIP_MAX) or 0
        current_level = actor.level
        current_max = self.get_total_max()
        if previous_level == 0 and current_level > 0:
            return True
        return (current_level > previous_level or current_max > previous_max) and previous_level > 0

    # Swap windows

    @staticmethod
    def _window_key(mode: SwapMode, class_id: str, is_level_up: bool, is_long_rest: bool) -> Optional[str]:
        """Tracking subtree open for this class right now, if any"""
        if mode == SwapMode.LEVEL_UP and is_level_up:
            return LEVEL_UP
        if mode == SwapMode.LONG_REST and is_long_rest and class_id == WIZARD_CLASS:
            return LONG_REST
        return None

    def _all_tracking(self) -> Dict[str, ClassSwapTracking]:
        raw = self.host.get_actor_flag(self.actor_id, FLAGS.CANTRIP_SWAP_TRACKING) or {}
        tracking = {}
        for class_id, data in raw.items():
            try:
                tracking[class_id] = ClassSwapTracking.model_validate(data or {})
            except ValueError as e:
                logger.warning(f"Discarding malformed swap tracking for {class_id} on actor {self.actor_id}: {e}")
        return tracking

    async def _save_tracking(self, tracking: Dict[str, ClassSwapTracking]):
        remaining = {cid: t.to_flag(exclude_none=True) for cid, t in tracking.items() if not t.is_empty}
        if remaining:
            await self.host.set_actor_flag(self.actor_id, FLAGS.CANTRIP_SWAP_TRACKING, remaining)
        else:
            await self.host.unset_actor_flag(self.actor_id, FLAGS.CANTRIP_SWAP_TRACKING)

    def get_swap_tracking(self, class_id: str, is_level_up: bool, is_long_rest: bool) -> SwapState:
        if not is_level_up and not is_long_rest:
            return SwapState()
        class_tracking = self._all_tracking().get(class_id)
        if class_tracking is None:
            return SwapState()
        state = class_tracking.window(is_level_up)
        return state or SwapState()

    def _prepared_cantrip_uuids(self, class_id: str) -> List[str]:
        actor = self.actor
        if actor is None:
            return []
        return [
            canonicalize(item) for item in actor.spells
            if item.is_cantrip and item.prepared == PreparedState.PREPARED and item.source_class == class_id
        ]

    def can_change_cantrip_status(self, spell, is_checked: bool, is_level_up: bool, is_long_rest: bool,
                                  class_id: Optional[str] = None, current_count: Optional[int] = None,
                                  was_prepared: bool = True) -> ChangeDecision:
        """
        Decide whether a cantrip checkbox may flip.

        Args:
            spell: item-like object with level, name and uuid/source_uuid
            is_checked: the box is being checked (prepare) rather than unchecked
            current_count: count shown in the form; the actor's items are counted when None
            was_prepared: False for a cantrip picked in this form and not yet saved

        A refusal is also shown to the user as a warning toast.
        """
        decision = self._cantrip_decision(spell, is_checked, is_level_up, is_long_rest,
                                          class_id, current_count, was_prepared)
        if not decision.allowed:
            self.context.warn_user(decision.message)
        return decision

    def _cantrip_decision(self, spell, is_checked: bool, is_level_up: bool, is_long_rest: bool,
                          class_id: Optional[str], current_count: Optional[int],
                          was_prepared: bool) -> ChangeDecision:
        if getattr(spell, 'level', 0) != 0:
            return ChangeDecision.allow()
        class_id = class_id or getattr(spell, 'source_class', None)
        if not class_id:
            logger.warning(f"No class identifier for cantrip {getattr(spell, 'name', '?')}; allowing change")
            return ChangeDecision.allow()

        settings = self.rules.get_class_settings(class_id)
        behavior = EnforcementMode.parse(settings.behavior, EnforcementMode.NOTIFY_GM)
        count = current_count if current_count is not None else self.get_current_count(class_id)
        max_cantrips = self.get_max_allowed(class_id)

        if behavior in (EnforcementMode.UNENFORCED, EnforcementMode.NOTIFY_GM):
            if behavior == EnforcementMode.NOTIFY_GM and is_checked and count >= max_cantrips:
                self.host.notify('info', 'SPELLBOOK.Notifications.OverLimitWarning')
                logger.debug(f"Cantrip over limit for {class_id}: {count + 1}/{max_cantrips} (notify only)")
                return ChangeDecision.allow('SPELLBOOK.Notifications.OverLimitWarning')
            return ChangeDecision.allow()

        uuid = canonicalize(spell)
        mode = settings.cantrip_swapping
        window = self._window_key(mode, class_id, is_level_up, is_long_rest)

        if is_checked:
            if count < max_cantrips:
                return ChangeDecision.allow()
            if window is not None:
                tracking = self.get_swap_tracking(class_id, window == LEVEL_UP, window == LONG_REST)
                if uuid in tracking.original_checked:
                    # re-checking the unlearned cantrip undoes the swap
                    if tracking.unlearned == uuid:
                        return ChangeDecision.allow()
                else:
                    if not tracking.has_unlearned:
                        return ChangeDecision.deny(ChangeReason.MUST_UNLEARN_FIRST)
                    if tracking.has_learned and tracking.learned != uuid:
                        return ChangeDecision.deny(ChangeReason.ONLY_ONE_SWAP)
                    # the unlearned cantrip is still on the actor until the commit
                    return ChangeDecision.allow()
            logger.debug(f"Cantrip maximum reached for {class_id}: {count}/{max_cantrips}")
            return ChangeDecision.deny(ChangeReason.MAXIMUM_REACHED)

        if not was_prepared:
            return ChangeDecision.allow()

        if mode == SwapMode.NONE:
            return ChangeDecision.deny(ChangeReason.LOCKED_LEGACY)
        if mode == SwapMode.LEVEL_UP and not is_level_up:
            return ChangeDecision.deny(ChangeReason.LOCKED_OUTSIDE_LEVEL_UP)
        if mode == SwapMode.LONG_REST:
            if class_id != WIZARD_CLASS:
                return ChangeDecision.deny(ChangeReason.WIZARD_RULE_ONLY)
            if not is_long_rest:
                return ChangeDecision.deny(ChangeReason.LOCKED_OUTSIDE_LONG_REST)

        tracking = self.get_swap_tracking(class_id, window == LEVEL_UP, window == LONG_REST)
        if tracking.has_unlearned and tracking.unlearned != uuid and uuid in tracking.original_checked:
            return ChangeDecision.deny(ChangeReason.ONLY_ONE_SWAP)
        return ChangeDecision.allow()

    async def track_cantrip_change(self, spell, is_checked: bool, is_level_up: bool, is_long_rest: bool,
                                   class_id: Optional[str] = None) -> Optional[SwapState]:
        """
        Record a cantrip flip inside an open swap window.

        The window's originalChecked snapshot is taken on the first recorded
        change and never modified afterwards. Flipping a spell back clears its
        slot.
        """
        if getattr(spell, 'level', 0) != 0:
            return None
        class_id = class_id or getattr(spell, 'source_class', None)
        if not class_id:
            logger.warning(f"No class identifier for cantrip {getattr(spell, 'name', '?')}; not tracking")
            return None

        mode = self.rules.get_class_rules(class_id).cantrip_swapping
        window = self._window_key(mode, class_id, is_level_up, is_long_rest)
        if window is None:
            return None

        uuid = canonicalize(spell)
        all_tracking = self._all_tracking()
        class_tracking = all_tracking.setdefault(class_id, ClassSwapTracking())
        state = class_tracking.window(window == LEVEL_UP)
        if state is None:
            state = SwapState(original_checked=self._prepared_cantrip_uuids(class_id))

        original = state.original_checked
        if not is_checked and uuid in original:
            if state.unlearned == uuid:
                state.has_unlearned, state.unlearned = False, None
            else:
                state.has_unlearned, state.unlearned = True, uuid
        elif is_checked and uuid not in original:
            if state.learned == uuid:
                state.has_learned, state.learned = False, None
            else:
                state.has_learned, state.learned = True, uuid
        elif not is_checked and state.learned == uuid:
            state.has_learned, state.learned = False, None
        elif is_checked and state.unlearned == uuid:
            state.has_unlearned, state.unlearned = False, None

        if window == LEVEL_UP:
            class_tracking.level_up = state
        else:
            class_tracking.long_rest = state
        # A window with both slots clear keeps its snapshot until completion
        await self.host.set_actor_flag(
            self.actor_id, FLAGS.CANTRIP_SWAP_TRACKING,
            {cid: t.to_flag(exclude_none=True) for cid, t in all_tracking.items() if not t.is_empty},
        )
        self.context.bus.emit(EventType.CANTRIP_TRACKED, actor_id=self.actor_id, class_id=class_id)
        return state

    async def complete_cantrip_swap(self, is_level_up: bool) -> bool:
        """Close the level-up or long-rest window for every class; a level-up completion stamps the new baseline"""
        all_tracking = self._all_tracking()
        for tracking in all_tracking.values():
            if is_level_up:
                tracking.level_up = None
            else:
                tracking.long_rest = None
        await self._save_tracking(all_tracking)

        if is_level_up:
            await self._stamp_baseline()
        logger.info(f"Completed {'level-up' if is_level_up else 'long-rest'} cantrip swap for actor {self.actor_id}")
        self.context.bus.emit(SwapCompletedEvent(
            event_type=EventType.SWAP_COMPLETED,
            source_manager=type(self).__name__,
            timestamp=self.context.now() / 1000,
            actor_id=self.actor_id,
            is_level_up=is_level_up,
        ))
        return True

    async def _stamp_baseline(self):
        actor = self.actor
        self.clear_cache()
        await self.host.set_actor_flag(self.actor_id, FLAGS.PREVIOUS_LEVEL, actor.level if actor else 0)
        await self.host.set_actor_flag(self.actor_id, FLAGS.PREVIOUS_CANTRIP_MAX, self.get_total_max())

    async def complete_cantrips_level_up(self) -> bool:
        return await self.complete_cantrip_swap(True)

    async def reset_swap_tracking(self):
        """Clear long-rest tracking only"""
        all_tracking = self._all_tracking()
        for tracking in all_tracking.values():
            tracking.long_rest = None
        await self._save_tracking(all_tracking)
