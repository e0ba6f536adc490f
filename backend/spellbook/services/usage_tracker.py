"""
Spell usage tracker - counts casts per spell from the host's activity-consumption hook
One tracker per process; initialize() is idempotent and shutdown() releases it
"""

import asyncio
from typing import Dict, Optional

from loguru import logger

from ..constants import USAGE_DEDUP_WINDOW_MS, HookNames
from ..events import EventType, UsageRecordedEvent
from ..exceptions import HostError
from ..host.records import ActivityEvent
from ..identity import canonicalize
from ..models import ContextUsage, UsageStats

COMBAT = 'combat'
EXPLORATION = 'exploration'


class SpellUsageTracker:
    """Spell usage tracker"""

    _instance: Optional['SpellUsageTracker'] = None

    def __init__(self, context):
        self.context = context
        self.host = context.host
        self._lock = asyncio.Lock()
        self._last_seen: Dict[str, int] = {}
        self._hook_handle: Optional[int] = None

    @classmethod
    def get_instance(cls) -> Optional['SpellUsageTracker']:
        return cls._instance

    @classmethod
    def initialize(cls, context) -> 'SpellUsageTracker':
        """Create the process tracker and subscribe it; later calls return the same tracker"""
        if cls._instance is not None:
            return cls._instance
        tracker = cls(context)
        tracker._hook_handle = context.host.on_event(HookNames.ACTIVITY_CONSUMPTION, tracker.handle_activity_consumption)
        cls._instance = tracker
        logger.info("Spell usage tracker initialized")
        return tracker

    @classmethod
    def shutdown(cls):
        tracker = cls._instance
        if tracker is None:
            return
        if tracker._hook_handle is not None:
            tracker.host.off_event(HookNames.ACTIVITY_CONSUMPTION, tracker._hook_handle)
        cls._instance = None
        logger.info("Spell usage tracker shut down")

    async def handle_activity_consumption(self, event: ActivityEvent) -> bool:
        """Hook handler: returns True when a cast was recorded; never raises"""
        try:
            if not self.context.settings.usage_tracking_enabled:
                return False
            item = event.item
            if item is None or not item.is_spell or not event.actor_id:
                return False
            actor = self.host.get_actor(event.actor_id)
            if actor is None or actor.type != 'character':
                return False

            uuid = canonicalize(item, self.host.resolve_uuid)
            async with self._lock:
                now = self.context.now()
                self._prune_seen(now)
                last = self._last_seen.get(uuid)
                if last is not None and now - last < USAGE_DEDUP_WINDOW_MS:
                    logger.debug(f"Ignoring repeated cast event for {uuid} within {now - last}ms")
                    return False
                self._last_seen[uuid] = now
                usage_context = self.detect_usage_context(actor.id)
                recorded = await self.record_spell_usage(uuid, usage_context, actor.id, event.user_id)
            if recorded:
                logger.info(f"Tracked spell usage for {actor.name}: {item.name} ({usage_context})")
            return recorded
        except Exception:
            logger.exception("Error tracking spell usage")
            return False

    def _prune_seen(self, now: int):
        expired = [uuid for uuid, seen in self._last_seen.items() if now - seen >= USAGE_DEDUP_WINDOW_MS]
        for uuid in expired:
            del self._last_seen[uuid]

    def detect_usage_context(self, actor_id: str) -> str:
        combat = self.host.get_active_combat()
        if combat is not None and combat.has_actor(actor_id):
            return COMBAT
        return EXPLORATION

    async def record_spell_usage(self, uuid: str, usage_context: str, actor_id: str,
                                 acting_user_id: Optional[str] = None) -> bool:
        store = self.context.store
        if store is None:
            logger.warning("No user data store; spell usage not recorded")
            return False
        user_id = store.primary_user_id(actor_id) or acting_user_id
        current = store.get_user_data_for_spell(uuid, user_id, actor_id)
        stats = current.usage_stats if current else UsageStats()
        now = self.context.now()
        new_stats = UsageStats(
            count=stats.count + 1,
            last_used=now,
            context_usage=ContextUsage(
                combat=stats.context_usage.combat + (1 if usage_context == COMBAT else 0),
                exploration=stats.context_usage.exploration + (1 if usage_context == EXPLORATION else 0),
            ),
        )
        try:
            result = await store.set_user_data_for_spell(uuid, {'usage_stats': new_stats}, user_id, actor_id)
        except HostError as e:
            logger.error(f"Could not record usage of {uuid} for actor {actor_id}: {e}")
            return False
        if not result.ok:
            return False
        self.context.bus.emit(UsageRecordedEvent(
            event_type=EventType.USAGE_RECORDED,
            source_manager=type(self).__name__,
            timestamp=now / 1000,
            actor_id=actor_id,
            spell_uuid=uuid,
            context=usage_context,
        ))
        return True
