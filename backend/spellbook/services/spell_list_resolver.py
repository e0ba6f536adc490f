"""
Spell list resolution.
Derives the available-spell pool for a class from custom lists, built-in class
and subclass lists, merged composites and modified-list overlays, and
reconciles preparation when a class's custom list changes.
"""

from typing import Iterable, List, Optional, Set, Tuple

from loguru import logger

from ..constants import (
    FLAGS, PreparedState, SpellListType, SPECIAL_CAST_MODES,
)
from ..host.batching import ActorUpdate, apply_actor_update
from ..host.records import ItemRecord, JournalPageRecord, SpellcastingClassInfo
from ..identity import canonicalize, parse_class_spell_key, parse_uuid
from ..models import AffectedSpell, ClassRules, ListDiff
from ..preparation import flatten_prepared, validate_prepared_by_class

UNKNOWN_SPELL_NAME = 'Unknown Spell'


def get_spell_list_type(page: JournalPageRecord) -> SpellListType:
    if page.get_flag(FLAGS.IS_MERGED):
        return SpellListType.MERGED
    if page.get_flag(FLAGS.IS_DUPLICATE):
        return SpellListType.MODIFIED
    if page.get_flag(FLAGS.IS_CUSTOM) or page.get_flag(FLAGS.IS_NEW_LIST):
        return SpellListType.CUSTOM
    return SpellListType.STANDARD


def is_removable_item(item: ItemRecord) -> bool:
    """Granted, always-prepared and special-mode items are never removed by preparation changes"""
    if item.cached_for:
        return False
    if item.prepared == PreparedState.ALWAYS:
        return False
    return item.method not in SPECIAL_CAST_MODES


class SpellListResolver:
    """Spell pool resolution against the host's spell list pages"""

    def __init__(self, context):
        self.context = context
        self.host = context.host

    def _canonical(self, uuid: str) -> str:
        return canonicalize(uuid, self.host.resolve_uuid)

    async def _load_page(self, uuid: str) -> Optional[JournalPageRecord]:
        page = self.host.read_journal_page(uuid)
        if page is None:
            page = await self.host.resolve_uuid_async(uuid)
        if not isinstance(page, JournalPageRecord):
            return None
        return page

    async def get_list_spells(self, uuid: str, _seen: Optional[Set[str]] = None) -> Optional[Set[str]]:
        """
        Canonical spell uuids of one list, or None when it cannot be found.
        Merged lists with no stored spells are expanded from their sources.
        """
        seen = _seen if _seen is not None else set()
        if uuid in seen:
            logger.warning(f"Spell list {uuid} references itself through its sources")
            return set()
        seen.add(uuid)

        page = await self._load_page(uuid)
        if page is None:
            logger.warning(f"Spell list {uuid} could not be resolved")
            return None

        spells = {self._canonical(spell) for spell in page.spells}
        if not spells and get_spell_list_type(page) == SpellListType.MERGED:
            for source_uuid in page.get_flag(FLAGS.SOURCE_LIST_UUIDS) or []:
                source_spells = await self.get_list_spells(source_uuid, seen)
                if source_spells:
                    spells |= source_spells
        return spells

    def _class_source_pack(self, class_info: SpellcastingClassInfo) -> Optional[str]:
        source = class_info.source_uuid or class_info.uuid
        if not source:
            return None
        try:
            return parse_uuid(source).collection
        except ValueError:
            return None

    def find_builtin_list(self, class_info: SpellcastingClassInfo, list_type: str = 'class',
                          identifier: Optional[str] = None) -> Optional[JournalPageRecord]:
        """
        Pick the built-in list for a class (or subclass).
        A list from the class item's own pack wins, then any standard list
        with the identifier, then a user-created list carrying it.
        """
        identifier = identifier or class_info.identifier
        candidates = [
            page for page in self.host.get_spell_list_pages()
            if page.identifier == identifier and page.list_type == list_type
        ]
        if not candidates:
            return None

        standard = [page for page in candidates if get_spell_list_type(page) == SpellListType.STANDARD]
        source_pack = self._class_source_pack(class_info)
        if source_pack:
            for page in standard:
                if page.pack == source_pack:
                    return page
        if standard:
            return standard[0]
        custom = [page for page in candidates if get_spell_list_type(page) == SpellListType.CUSTOM]
        return custom[0] if custom else None

    async def _apply_overlay(self, original: JournalPageRecord, spells: Set[str]) -> Set[str]:
        mappings = self.context.settings.custom_spell_list_mappings
        modified_uuid = mappings.get(original.uuid)
        if not modified_uuid:
            return spells
        modified = await self._load_page(modified_uuid)
        if modified is None:
            logger.warning(f"Modified list {modified_uuid} for {original.uuid} is missing; using original")
            return spells

        added = modified.get_flag(FLAGS.ADDED_SPELLS)
        removed = modified.get_flag(FLAGS.REMOVED_SPELLS)
        if added is None and removed is None:
            return {self._canonical(spell) for spell in modified.spells}
        result = set(spells)
        result -= {self._canonical(spell) for spell in removed or []}
        result |= {self._canonical(spell) for spell in added or []}
        return result

    async def get_class_spell_list(self, actor_id: str, class_id: str,
                                   rules: Optional[ClassRules] = None) -> Set[str]:
        """Available-spell pool for a class, as canonical uuids"""
        actor = self.host.get_actor(actor_id)
        class_info = actor.classes.get(class_id) if actor else None

        custom_lists = rules.custom_spell_list if rules else []
        if custom_lists:
            pool: Set[str] = set()
            found = False
            for list_uuid in custom_lists:
                spells = await self.get_list_spells(list_uuid)
                if spells is not None:
                    found = True
                    pool |= spells
            if found:
                logger.debug(f"Resolved {len(pool)} spells for {class_id} from {len(custom_lists)} custom list(s)")
                return pool
            logger.warning(f"No custom list for {class_id} resolved; falling back to the built-in list")

        if class_info is None:
            logger.debug(f"Class {class_id} not found on actor {actor_id}")
            return set()

        pool = set()
        builtin = self.find_builtin_list(class_info)
        if builtin is not None:
            spells = await self.get_list_spells(builtin.uuid) or set()
            pool |= await self._apply_overlay(builtin, spells)
        else:
            logger.debug(f"No built-in spell list for class {class_id}")

        if class_info.subclass:
            sub_page = self.find_builtin_list(class_info, 'subclass', class_info.subclass.identifier)
            if sub_page is not None:
                spells = await self.get_list_spells(sub_page.uuid) or set()
                pool |= await self._apply_overlay(sub_page, spells)
        return pool

    async def compare_list_versions(self, original_uuid: str, modified_uuid: str) -> ListDiff:
        original = await self.get_list_spells(original_uuid) or set()
        modified = await self.get_list_spells(modified_uuid) or set()
        return ListDiff(
            added=sorted(modified - original),
            removed=sorted(original - modified),
            unchanged_count=len(original & modified),
        )

    def _spell_name(self, uuid: str, actor_items: Iterable[ItemRecord]) -> Tuple[str, Optional[int]]:
        document = self.host.resolve_uuid(uuid)
        if document is not None and getattr(document, 'name', None):
            return document.name, getattr(document, 'level', None)
        for item in actor_items:
            if canonicalize(item) == uuid:
                return item.name, item.level
        return UNKNOWN_SPELL_NAME, None

    async def get_affected_spells(self, actor_id: str, class_id: str, new_rules: ClassRules) -> List[AffectedSpell]:
        """Prepared spells of the class that fall outside the pool new_rules would produce"""
        prepared_by_class = self.host.get_actor_flag(actor_id, FLAGS.PREPARED_SPELLS_BY_CLASS) or {}
        keys = prepared_by_class.get(class_id) or []
        if not keys:
            return []

        pool = await self.get_class_spell_list(actor_id, class_id, new_rules)
        actor = self.host.get_actor(actor_id)
        items = actor.items if actor else []
        affected = []
        for key in keys:
            _, uuid = parse_class_spell_key(key)
            if uuid in pool:
                continue
            name, level = self._spell_name(uuid, items)
            affected.append(AffectedSpell(name=name, uuid=uuid, level=level, class_spell_key=key))
        logger.debug(f"{len(affected)} prepared spell(s) of {class_id} fall outside the new list")
        return affected

    async def unprepare_affected(self, actor_id: str, class_id: str, affected: List[AffectedSpell]) -> List[str]:
        """
        Remove affected spells from the class's preparation and delete their
        embedded items, sparing granted, always-prepared and special-mode items.

        Returns:
            Deleted item ids
        """
        if not affected:
            return []
        prepared_by_class = validate_prepared_by_class(
            self.host.get_actor_flag(actor_id, FLAGS.PREPARED_SPELLS_BY_CLASS) or {})
        doomed_keys = {spell.class_spell_key for spell in affected}
        doomed_uuids = {spell.uuid for spell in affected}
        prepared_by_class[class_id] = [key for key in prepared_by_class.get(class_id, []) if key not in doomed_keys]

        update = ActorUpdate()
        update.set_flag(FLAGS.PREPARED_SPELLS_BY_CLASS, prepared_by_class)
        update.set_flag(FLAGS.PREPARED_SPELLS, flatten_prepared(prepared_by_class))

        actor = self.host.get_actor(actor_id)
        deleted = []
        for item in actor.spells if actor else []:
            if item.source_class != class_id or canonicalize(item) not in doomed_uuids:
                continue
            if not is_removable_item(item):
                logger.debug(f"Keeping {item.name} on actor {actor_id}: granted, always prepared or special mode")
                continue
            update.delete_item(item.id)
            deleted.append(item.id)

        await apply_actor_update(self.host, actor_id, update)
        logger.info(f"Unprepared {len(doomed_keys)} spell(s) of {class_id} on actor {actor_id}; deleted {len(deleted)} item(s)")
        return deleted
