"""Host adapter surface and typed host records"""

from .adapter import HostAdapter
from .batching import ActorUpdate, apply_actor_update
from .memory import InMemoryHost
from .records import (
    ActivityEvent, ActorRecord, CombatRecord, FavoriteEntry, FolderRecord,
    ItemRecord, JournalEntryRecord, JournalPageRecord, ParsedUuid,
    SpellcastingClassInfo, SubclassInfo, UserRecord,
)

__all__ = [
    'HostAdapter', 'ActorUpdate', 'apply_actor_update', 'InMemoryHost',
    'ActivityEvent', 'ActorRecord', 'CombatRecord', 'FavoriteEntry', 'FolderRecord',
    'ItemRecord', 'JournalEntryRecord', 'JournalPageRecord', 'ParsedUuid',
    'SpellcastingClassInfo', 'SubclassInfo', 'UserRecord',
]
