"""
ActorSpellbook - per-actor hub that owns the spell book managers
Managers are created lazily on first access and share one SpellbookContext
"""

from typing import Any, Dict, Optional, Type

from loguru import logger

from .context import SpellbookContext
from .manager_registry import get_all_manager_specs
from .services.change_reporter import ChangeReporter
from .services.spell_list_resolver import SpellListResolver


class LazyManagerProxy:
    """
    Proxy for lazy-loaded managers.
    Defers actual manager instantiation until first access.
    """

    def __init__(self, name: str, manager_class: Type, spellbook: 'ActorSpellbook'):
        self._name = name
        self._manager_class = manager_class
        self._spellbook = spellbook
        self._initialized = False
        self._instance = None

    def _initialize(self):
        """Initialize the actual manager instance"""
        if not self._initialized:
            logger.debug(f"Lazy-initializing {self._name} manager")
            self._instance = self._manager_class(self._spellbook)
            self._initialized = True

            # Replace proxy with real instance in parent's registry
            self._spellbook._managers[self._name] = self._instance

    def __getattr__(self, name):
        """Delegate attribute access to the real manager, initializing if needed"""
        self._initialize()
        return getattr(self._instance, name)

    def __setattr__(self, name, value):
        if name.startswith('_'):
            object.__setattr__(self, name, value)
        else:
            self._initialize()
            setattr(self._instance, name, value)


class ActorSpellbook:
    """
    Spell book for one actor.

    Holds no actor state of its own: `actor` always reads the current record
    through the host so managers see writes made by other components.
    """

    def __init__(self, context: SpellbookContext, actor_id: str, lazy: bool = True):
        self.context = context
        self.actor_id = actor_id
        self.resolver = SpellListResolver(context)
        self.reporter = ChangeReporter(context)
        self._managers: Dict[str, Any] = {}

        for name, manager_class in get_all_manager_specs():
            self.register_manager(name, manager_class, lazy=lazy)
        logger.debug(f"ActorSpellbook ready for actor {actor_id}")

    @property
    def actor(self):
        return self.context.host.get_actor(self.actor_id)

    @property
    def store(self):
        return self.context.store

    def register_manager(self, name: str, manager_class: Type, lazy: bool = True):
        if not callable(manager_class):
            raise ValueError(f"Manager class {name} is not callable")
        if lazy:
            self._managers[name] = LazyManagerProxy(name, manager_class, self)
        else:
            self._managers[name] = manager_class(self)

    def get_manager(self, name: str):
        """
        Get a registered manager by name, initializing a lazy proxy.

        Returns:
            Manager instance or None if not registered
        """
        manager = self._managers.get(name)
        if isinstance(manager, LazyManagerProxy):
            manager._initialize()
            return self._managers.get(name)
        return manager

    def get_all_managers(self) -> Dict[str, Any]:
        return self._managers.copy()

    @property
    def rules(self):
        return self.get_manager('rules')

    @property
    def cantrips(self):
        return self.get_manager('cantrips')

    @property
    def spells(self):
        return self.get_manager('spells')

    @property
    def loadouts(self):
        return self.get_manager('loadouts')

    @property
    def favorites(self):
        return self.get_manager('favorites')


def open_spellbook(context: SpellbookContext, actor_id: str) -> Optional[ActorSpellbook]:
    """ActorSpellbook for an existing actor, None when the host does not know it"""
    if context.host.get_actor(actor_id) is None:
        logger.warning(f"Actor {actor_id} not found; no spell book opened")
        return None
    return ActorSpellbook(context, actor_id)
