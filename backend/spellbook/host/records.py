"""
Typed projections of host documents.
Adapters translate their native objects into these records; the engine never
navigates host objects directly.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Tuple

from ..constants import MODULE_ID, PreparedState


@dataclass
class ParsedUuid:
    """Structured view of a host document uuid"""
    uuid: str
    collection: Optional[str]
    document_type: str
    document_id: str
    primary_type: str
    primary_id: str
    embedded: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def is_compendium(self) -> bool:
        return self.collection is not None

    @property
    def is_embedded(self) -> bool:
        return bool(self.embedded)


@dataclass
class ItemRecord:
    """An item owned by an actor, or a library entry resolved by uuid"""
    id: str
    name: str
    type: str = 'spell'
    level: int = 0
    uuid: str = ''
    source_uuid: Optional[str] = None
    prepared: int = PreparedState.UNPREPARED
    method: str = 'spell'
    source_class: Optional[str] = None
    cached_for: Optional[str] = None
    school: str = ''
    properties: Set[str] = field(default_factory=set)
    flags: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def is_spell(self) -> bool:
        return self.type == 'spell'

    @property
    def is_cantrip(self) -> bool:
        return self.is_spell and self.level == 0

    @property
    def is_ritual(self) -> bool:
        return 'ritual' in self.properties

    def get_flag(self, key: str, default=None):
        return self.flags.get(MODULE_ID, {}).get(key, default)

    def copy(self, **changes) -> 'ItemRecord':
        clone = replace(self, **changes)
        clone.properties = set(clone.properties)
        clone.flags = {scope: dict(values) for scope, values in clone.flags.items()}
        return clone


@dataclass
class SubclassInfo:
    identifier: str
    name: str
    spellcasting_progression: str = 'none'
    uuid: Optional[str] = None
    source_uuid: Optional[str] = None


@dataclass
class SpellcastingClassInfo:
    """
    Class entry on an actor.
    preparation_max is the host-computed base number of leveled spells the
    class may prepare; the engine adds spellPreparationBonus on top.
    """
    identifier: str
    name: str
    level: int = 1
    spellcasting_progression: str = 'full'
    spellcasting_type: str = 'prepared'
    scale_values: Dict[str, int] = field(default_factory=dict)
    subclass: Optional[SubclassInfo] = None
    uuid: Optional[str] = None
    source_uuid: Optional[str] = None
    preparation_max: int = 0

    @property
    def is_spellcaster(self) -> bool:
        if self.spellcasting_progression and self.spellcasting_progression != 'none':
            return True
        return bool(self.subclass and self.subclass.spellcasting_progression not in (None, '', 'none'))

    @property
    def is_pact(self) -> bool:
        return self.spellcasting_type == 'pact'


@dataclass
class FavoriteEntry:
    """Host actor-level favorite; id is relative ('.Item.<itemId>')"""
    id: str
    type: str = 'item'
    sort: int = 0


@dataclass
class ActorRecord:
    id: str
    name: str
    type: str = 'character'
    level: int = 1
    classes: Dict[str, SpellcastingClassInfo] = field(default_factory=dict)
    items: List[ItemRecord] = field(default_factory=list)
    flags: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    ownership: Dict[str, int] = field(default_factory=dict)
    favorites: List[FavoriteEntry] = field(default_factory=list)

    @property
    def uuid(self) -> str:
        return f'Actor.{self.id}'

    @property
    def spells(self) -> List[ItemRecord]:
        return [item for item in self.items if item.is_spell]

    @property
    def spellcasting_classes(self) -> Dict[str, SpellcastingClassInfo]:
        return {cid: info for cid, info in self.classes.items() if info.is_spellcaster}

    def get_flag(self, key: str, default=None):
        return self.flags.get(MODULE_ID, {}).get(key, default)

    def get_item(self, item_id: str) -> Optional[ItemRecord]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None


@dataclass
class UserRecord:
    id: str
    name: str
    is_gm: bool = False
    character_id: Optional[str] = None
    active: bool = True
    flags: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class FolderRecord:
    id: str
    name: str
    type: str = 'JournalEntry'
    pack: Optional[str] = None
    parent_id: Optional[str] = None
    sort: int = 0
    flags: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def get_flag(self, key: str, default=None):
        return self.flags.get(MODULE_ID, {}).get(key, default)


@dataclass
class JournalPageRecord:
    """
    A journal page. Spell list pages (type 'spells') carry their spell uuid
    set in `spells`; user-data pages carry HTML in `content`.
    """
    id: str
    name: str
    entry_id: str = ''
    type: str = 'text'
    content: str = ''
    spells: List[str] = field(default_factory=list)
    identifier: Optional[str] = None
    list_type: str = 'class'
    pack: Optional[str] = None
    sort: int = 0
    ownership: Dict[str, int] = field(default_factory=dict)
    flags: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @property
    def uuid(self) -> str:
        prefix = f'Compendium.{self.pack}.' if self.pack else ''
        return f'{prefix}JournalEntry.{self.entry_id}.JournalEntryPage.{self.id}'

    @property
    def is_spell_list(self) -> bool:
        return self.type == 'spells'

    def get_flag(self, key: str, default=None):
        return self.flags.get(MODULE_ID, {}).get(key, default)


@dataclass
class JournalEntryRecord:
    id: str
    name: str
    folder_id: Optional[str] = None
    pack: Optional[str] = None
    ownership: Dict[str, int] = field(default_factory=dict)
    flags: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    pages: List[JournalPageRecord] = field(default_factory=list)

    @property
    def uuid(self) -> str:
        prefix = f'Compendium.{self.pack}.' if self.pack else ''
        return f'{prefix}JournalEntry.{self.id}'

    def get_flag(self, key: str, default=None):
        return self.flags.get(MODULE_ID, {}).get(key, default)


@dataclass
class CombatRecord:
    id: str
    active: bool = True
    started: bool = True
    combatant_actor_ids: List[str] = field(default_factory=list)

    def has_actor(self, actor_id: str) -> bool:
        return actor_id in self.combatant_actor_ids


@dataclass
class ActivityEvent:
    """Payload of the host's activity-consumption hook"""
    actor_id: Optional[str]
    item: Optional[ItemRecord]
    user_id: Optional[str] = None
    activity_type: str = 'cast'
