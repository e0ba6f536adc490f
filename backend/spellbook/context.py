"""
Shared engine context.
Managers take this plain context instead of referencing each other: it holds
the host adapter, typed settings, the event bus, the per-actor rule cache and
the injected confirmation capability.
"""

import asyncio
import time
from typing import Any, Callable, Dict, Optional

from loguru import logger

from .config.settings import SpellbookSettings
from .events import EventBus, EventType


def _epoch_ms() -> int:
    return int(time.time() * 1000)


async def _decline(question: str, **details) -> bool:
    logger.debug(f"No confirmation handler registered; declining '{question}'")
    return False


class RuleCache:
    """Resolved class rule records keyed by actor id"""

    def __init__(self):
        self._entries: Dict[str, Dict[str, Any]] = {}

    def get(self, actor_id: str, class_id: str):
        return self._entries.get(actor_id, {}).get(class_id)

    def put(self, actor_id: str, class_id: str, rules):
        self._entries.setdefault(actor_id, {})[class_id] = rules

    def invalidate(self, actor_id: Optional[str] = None):
        if actor_id is None:
            self._entries.clear()
        else:
            self._entries.pop(actor_id, None)

    def __contains__(self, actor_id: str) -> bool:
        return actor_id in self._entries


class SpellbookContext:
    """
    Session-scoped services.

    Args:
        host: HostAdapter implementation
        confirm: callable(question, **details) returning bool or awaitable bool;
            declines by default
        clock: callable returning epoch milliseconds
    """

    def __init__(self, host, confirm: Optional[Callable] = None,
                 clock: Optional[Callable[[], int]] = None,
                 settings: Optional[SpellbookSettings] = None,
                 bus: Optional[EventBus] = None):
        self.host = host
        self.settings = settings or SpellbookSettings(host)
        self.bus = bus or EventBus()
        self.clock = clock or _epoch_ms
        self.rule_cache = RuleCache()
        self._confirm = confirm or _decline
        self.store = None
        self.bus.on(EventType.RULE_SET_APPLIED, self._on_rules_changed)
        self.bus.on(EventType.CLASS_RULES_UPDATED, self._on_rules_changed)

    def _on_rules_changed(self, event):
        actor_id = getattr(event, 'actor_id', None)
        if actor_id:
            self.rule_cache.invalidate(actor_id)

    async def ask(self, question: str, **details) -> bool:
        """Run the injected confirmation; a falsy or failed answer counts as cancel"""
        try:
            answer = self._confirm(question, **details)
            if asyncio.iscoroutine(answer) or isinstance(answer, asyncio.Future):
                answer = await answer
        except Exception as e:
            logger.error(f"Confirmation '{question}' failed: {e}")
            return False
        return bool(answer)

    def now(self) -> int:
        return self.clock()

    def warn_user(self, message_key: str):
        """Validation toast for a refused change"""
        self.host.notify('warn', message_key)

    def report_failure(self, operation: str, error: Exception):
        """Generic operation-failed toast for transient host errors"""
        logger.error(f"{operation} failed: {error}")
        self.host.notify('error', 'SPELLBOOK.Errors.OperationFailed')
