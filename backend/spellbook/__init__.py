from .actor_spellbook import ActorSpellbook, open_spellbook
from .bootstrap import SpellbookBootstrap, initialize_spellbook
from .context import SpellbookContext
from .events import EventBus, EventData, EventType
from .exceptions import HostError, InvariantViolationError, SpellbookError, ValidationFailure
from .manager_registry import get_all_manager_specs, get_manager_class, get_manager_names

__version__ = '0.1.0'

__all__ = [
    'ActorSpellbook',
    'open_spellbook',
    'SpellbookBootstrap',
    'initialize_spellbook',
    'SpellbookContext',
    'EventBus',
    'EventData',
    'EventType',
    'HostError',
    'InvariantViolationError',
    'SpellbookError',
    'ValidationFailure',
    'get_all_manager_specs',
    'get_manager_class',
    'get_manager_names',
]
