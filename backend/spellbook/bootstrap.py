"""
Session bootstrap - wires the engine into a host once per session.

initialize() runs, in order:
1. pending migrations (GM only)
2. user data folder, journal, intro page and per-user pages (GM only)
3. the usage tracker's activity hook
4. actor and item hooks that keep class rule records in step with the
   actor's spellcasting classes
5. the chat action hook behind the migration report's suppress button

Host hook payloads:
    updateActor(actor_id, changes)
    createItem(item, actor_id) / deleteItem(item, actor_id)
    renderChatMessage(message_flags, action)
"""

from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from loguru import logger

from .actor_spellbook import ActorSpellbook
from .constants import FLAGS, MODULE_ID, SETTINGS, HookNames, MessageType
from .context import SpellbookContext
from .exceptions import HostError
from .migrations import MigrationRunner
from .models import MigrationReport
from .services.change_reporter import SUPPRESS_ACTION, ChangeReporter
from .services.usage_tracker import SpellUsageTracker
from .services.user_data_store import UserDataStore

CLASS_ITEM_TYPES = ('class', 'subclass')


class SpellbookBootstrap:
    """Owns the session's hook registrations and process-scoped services"""

    def __init__(self, context: SpellbookContext):
        self.context = context
        self.host = context.host
        self.reporter = ChangeReporter(context)
        self.migration_report: Optional[MigrationReport] = None
        self.initialized = False
        self._hooks: List[Tuple[str, int]] = []
        self._class_sets: Dict[str, FrozenSet[str]] = {}

    @property
    def is_gm(self) -> bool:
        user = self.host.get_current_user()
        return bool(user and user.is_gm)

    def _on(self, name: str, handler):
        self._hooks.append((name, self.host.on_event(name, handler)))

    async def initialize(self) -> 'SpellbookBootstrap':
        if self.initialized:
            return self
        if self.context.store is None:
            self.context.store = UserDataStore(self.context)

        if self.is_gm:
            self.migration_report = await MigrationRunner(self.context, self.reporter).run()
            try:
                await self.context.store.ensure_infrastructure()
            except HostError as e:
                logger.error(f"Could not create user spell data journal: {e}")
        else:
            logger.debug("Not a GM session; skipping migrations and user data setup")

        SpellUsageTracker.initialize(self.context)

        for actor in self.host.get_actors():
            self._class_sets[actor.id] = frozenset(actor.spellcasting_classes)
        self._on(HookNames.UPDATE_ACTOR, self.on_actor_updated)
        self._on(HookNames.CREATE_ITEM, self.on_item_changed)
        self._on(HookNames.DELETE_ITEM, self.on_item_changed)
        self._on(HookNames.RENDER_CHAT_MESSAGE, self.on_chat_action)

        self.initialized = True
        logger.info(f"Spell book initialized ({len(self._hooks)} hooks registered)")
        return self

    def shutdown(self):
        for name, handle in self._hooks:
            self.host.off_event(name, handle)
        self._hooks = []
        self._class_sets = {}
        SpellUsageTracker.shutdown()
        self.initialized = False
        logger.info("Spell book shut down")

    async def sync_class_rules(self, actor_id: str) -> bool:
        """Create rules for new spellcasting classes and drop stale ones when the class set changed"""
        actor = self.host.get_actor(actor_id)
        if actor is None or actor.type != 'character':
            return False
        classes = frozenset(actor.spellcasting_classes)
        if self._class_sets.get(actor_id) == classes:
            return False
        self._class_sets[actor_id] = classes
        spellbook = ActorSpellbook(self.context, actor_id)
        added = await spellbook.rules.initialize_new_classes()
        removed = await spellbook.rules.cleanup_stale_class_rules()
        if added or removed:
            logger.info(f"Class rules synced for {actor.name}: +{added} -{removed}")
        return True

    async def on_actor_updated(self, actor_id: str, changes: Optional[Dict[str, Any]] = None):
        try:
            await self.sync_class_rules(actor_id)
        except Exception:
            logger.exception(f"Error syncing class rules for actor {actor_id}")

    async def on_item_changed(self, item, actor_id: str):
        if getattr(item, 'type', None) not in CLASS_ITEM_TYPES:
            return
        try:
            await self.sync_class_rules(actor_id)
        except Exception:
            logger.exception(f"Error syncing class rules for actor {actor_id}")

    async def on_chat_action(self, message_flags: Optional[Dict[str, Any]], action: str) -> bool:
        """Suppress-warnings button of a migration report; returns True when the setting was changed"""
        try:
            message_type = (message_flags or {}).get(MODULE_ID, {}).get(FLAGS.MESSAGE_TYPE)
            if message_type != MessageType.MIGRATION_REPORT.value or action != SUPPRESS_ACTION:
                return False
            if not self.is_gm:
                return False
            if not await self.context.ask('suppressMigrationWarnings'):
                return False
            await self.context.settings.set(SETTINGS.SUPPRESS_MIGRATION_WARNINGS, True)
            logger.info("Migration reports suppressed")
            return True
        except Exception:
            logger.exception("Error handling migration report action")
            return False


async def initialize_spellbook(host, confirm=None, clock=None) -> SpellbookBootstrap:
    """Build a context for the host and run the session bootstrap"""
    context = SpellbookContext(host, confirm=confirm, clock=clock)
    return await SpellbookBootstrap(context).initialize()
