"""
Builders for in-memory hosts populated with casters, library spells, users and spell lists
"""
from typing import Dict, Iterable, List, Optional

from spellbook.constants import FLAGS, MODULE_ID, PACKS, PreparedState
from spellbook.host.memory import InMemoryHost
from spellbook.host.records import (
    ActorRecord, ItemRecord, JournalEntryRecord, JournalPageRecord,
    SpellcastingClassInfo, SubclassInfo, UserRecord,
)

LIBRARY = 'Compendium.dnd5e.spells'

# slug -> (name, level, school, properties)
SPELLS = {
    'fire-bolt': ('Fire Bolt', 0, 'evocation', set()),
    'mage-hand': ('Mage Hand', 0, 'conjuration', set()),
    'light': ('Light', 0, 'evocation', set()),
    'prestidigitation': ('Prestidigitation', 0, 'transmutation', set()),
    'guidance': ('Guidance', 0, 'divination', set()),
    'sacred-flame': ('Sacred Flame', 0, 'evocation', set()),
    'magic-missile': ('Magic Missile', 1, 'evocation', set()),
    'shield': ('Shield', 1, 'abjuration', set()),
    'sleep': ('Sleep', 1, 'enchantment', set()),
    'detect-magic': ('Detect Magic', 1, 'divination', {'ritual'}),
    'find-familiar': ('Find Familiar', 1, 'conjuration', {'ritual'}),
    'bless': ('Bless', 1, 'enchantment', set()),
    'cure-wounds': ('Cure Wounds', 1, 'evocation', set()),
    'shield-of-faith': ('Shield of Faith', 1, 'abjuration', set()),
    'misty-step': ('Misty Step', 2, 'conjuration', set()),
}

GM_ID = 'gm0001'
PLAYER_ID = 'player0001'


def spell_uuid(slug: str) -> str:
    return f'{LIBRARY}.Item.{slug}'


def library_spell(slug: str) -> ItemRecord:
    name, level, school, properties = SPELLS[slug]
    return ItemRecord(id=slug, name=name, level=level, uuid=spell_uuid(slug),
                      school=school, properties=set(properties))


def owned_spell(slug: str, source_class: Optional[str] = None, prepared=PreparedState.PREPARED,
                method: str = 'spell', cached_for: Optional[str] = None,
                item_id: Optional[str] = None) -> ItemRecord:
    """Embedded copy of a library spell"""
    return library_spell(slug).copy(
        id=item_id or f'item-{slug}',
        uuid='',
        source_uuid=spell_uuid(slug),
        prepared=int(prepared),
        method=method,
        source_class=source_class,
        cached_for=cached_for,
    )


def wizard_class(level: int = 1, cantrips: int = 3, prepared_max: int = 4) -> SpellcastingClassInfo:
    return SpellcastingClassInfo(
        identifier='wizard', name='Wizard', level=level,
        scale_values={'cantrips-known': cantrips}, preparation_max=prepared_max,
        uuid='Compendium.dnd5e.classes.Item.wizard',
    )


def cleric_class(level: int = 1, cantrips: int = 3, prepared_max: int = 4,
                 subclass: Optional[str] = None) -> SpellcastingClassInfo:
    return SpellcastingClassInfo(
        identifier='cleric', name='Cleric', level=level,
        scale_values={'cantrips-known': cantrips}, preparation_max=prepared_max,
        uuid='Compendium.dnd5e.classes.Item.cleric',
        subclass=SubclassInfo(identifier=subclass, name=subclass.title()) if subclass else None,
    )


def warlock_class(level: int = 1) -> SpellcastingClassInfo:
    return SpellcastingClassInfo(
        identifier='warlock', name='Warlock', level=level, spellcasting_type='pact',
        scale_values={'cantrips-known': 2}, preparation_max=2,
    )


def fighter_class(level: int = 1) -> SpellcastingClassInfo:
    return SpellcastingClassInfo(identifier='fighter', name='Fighter', level=level,
                                 spellcasting_progression='none')


def prepared_flags(prepared_by_class: Dict[str, Iterable[str]]) -> Dict[str, object]:
    """preparedSpellsByClass and its flat projection for class -> slugs"""
    by_class = {class_id: [f'{class_id}:{spell_uuid(slug)}' for slug in slugs]
                for class_id, slugs in prepared_by_class.items()}
    flat = [key.split(':', 1)[1] for keys in by_class.values() for key in keys]
    return {FLAGS.PREPARED_SPELLS_BY_CLASS: by_class, FLAGS.PREPARED_SPELLS: flat}


def make_actor(actor_id: str = 'actor0001', name: str = 'Elminster',
               classes: Optional[List[SpellcastingClassInfo]] = None,
               items: Optional[List[ItemRecord]] = None,
               flags: Optional[Dict[str, object]] = None,
               owner_id: Optional[str] = PLAYER_ID, level: Optional[int] = None) -> ActorRecord:
    classes = classes if classes is not None else [wizard_class()]
    ownership = {'default': 0}
    if owner_id:
        ownership[owner_id] = 3
    return ActorRecord(
        id=actor_id,
        name=name,
        level=level if level is not None else sum(info.level for info in classes) or 1,
        classes={info.identifier: info for info in classes},
        items=list(items or []),
        flags={MODULE_ID: dict(flags or {})},
        ownership=ownership,
    )


def make_host(current_user: str = GM_ID, character_id: Optional[str] = 'actor0001') -> InMemoryHost:
    """Host with a GM, one player and the spell library"""
    host = InMemoryHost(current_user_id=current_user)
    host.add_user(UserRecord(id=GM_ID, name='Game Master', is_gm=True))
    host.add_user(UserRecord(id=PLAYER_ID, name='Alice', character_id=character_id))
    for slug in SPELLS:
        host.add_library_document(spell_uuid(slug), library_spell(slug))
    return host


def spell_list_entry(entry_id: str, name: str, slugs: Iterable[str], identifier: Optional[str] = None,
                     list_type: str = 'class', pack: Optional[str] = PACKS.SPELL_LISTS,
                     folder_id: Optional[str] = None, page_flags: Optional[Dict[str, object]] = None,
                     ownership: Optional[Dict[str, int]] = None) -> JournalEntryRecord:
    page = JournalPageRecord(
        id=f'{entry_id}p', name=name, type='spells',
        spells=[spell_uuid(slug) for slug in slugs],
        identifier=identifier, list_type=list_type,
        flags={MODULE_ID: dict(page_flags or {})},
    )
    return JournalEntryRecord(id=entry_id, name=name, folder_id=folder_id, pack=pack,
                              ownership=dict(ownership or {}), pages=[page])


def page_uuid(entry: JournalEntryRecord) -> str:
    return entry.pages[0].uuid


class FixedClock:
    """Injectable epoch-millisecond clock"""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms
