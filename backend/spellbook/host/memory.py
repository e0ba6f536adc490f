"""
In-memory host adapter.
Reference implementation of HostAdapter used by tests and for dry runs of
migrations and preparation commits outside a live host.
"""

import asyncio
import copy
import itertools
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from loguru import logger

from ..constants import MODULE_ID
from ..exceptions import HostError
from .adapter import HostAdapter
from .batching import ActorUpdate
from .records import (
    ActorRecord, CombatRecord, FolderRecord, ItemRecord, JournalEntryRecord,
    JournalPageRecord, UserRecord,
)


def _apply_patch(record, patch: Dict[str, Any]):
    for key, value in patch.items():
        if key == 'flags':
            record.flags.setdefault(MODULE_ID, {}).update(copy.deepcopy(value))
        elif hasattr(record, key):
            setattr(record, key, copy.deepcopy(value))
        else:
            raise HostError(f"Unknown field '{key}' for {type(record).__name__}", operation='patch')


class InMemoryHost(HostAdapter):
    """
    Host adapter backed by plain dicts.

    Set `failing_operations` to a set of method names to make those calls raise
    HostError, and `supports_batch_update` to exercise the single-write path.
    """

    def __init__(self, current_user_id: Optional[str] = None):
        self.actors: Dict[str, ActorRecord] = {}
        self.users: Dict[str, UserRecord] = {}
        self.settings: Dict[str, Any] = {}
        self.folders: List[FolderRecord] = []
        self.journal_entries: List[JournalEntryRecord] = []
        self.library: Dict[str, Any] = {}
        self.combat: Optional[CombatRecord] = None
        self.current_user_id = current_user_id
        self.chat_log: List[Dict[str, Any]] = []
        self.notifications: List[Tuple[str, str]] = []
        self.write_log: List[str] = []
        self.failing_operations: Set[str] = set()
        self.supports_batch_update = False
        self._hooks: Dict[str, Dict[int, Callable]] = {}
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f'{prefix}{next(self._ids):06d}'

    def _check(self, operation: str):
        self.write_log.append(operation)
        if operation in self.failing_operations:
            raise HostError(f"Simulated host failure in {operation}", operation=operation)

    # Seeding helpers
    def add_actor(self, actor: ActorRecord) -> ActorRecord:
        for item in actor.items:
            if not item.uuid:
                item.uuid = f'Actor.{actor.id}.Item.{item.id}'
        self.actors[actor.id] = actor
        return actor

    def add_user(self, user: UserRecord) -> UserRecord:
        self.users[user.id] = user
        if self.current_user_id is None:
            self.current_user_id = user.id
        return user

    def add_library_document(self, uuid: str, document: Any) -> Any:
        if isinstance(document, ItemRecord) and not document.uuid:
            document.uuid = uuid
        self.library[uuid] = document
        return document

    def add_journal_entry(self, entry: JournalEntryRecord) -> JournalEntryRecord:
        for page in entry.pages:
            page.entry_id = entry.id
            page.pack = entry.pack
        self.journal_entries.append(entry)
        return entry

    # Actors
    def get_actor(self, actor_id: str) -> Optional[ActorRecord]:
        return self.actors.get(actor_id)

    def get_actors(self) -> List[ActorRecord]:
        return list(self.actors.values())

    def _require_actor(self, actor_id: str) -> ActorRecord:
        actor = self.actors.get(actor_id)
        if actor is None:
            raise HostError(f"Actor {actor_id} not found", operation='get_actor')
        return actor

    async def update_actor(self, actor_id: str, patch: Dict[str, Any]) -> None:
        self._check('update_actor')
        _apply_patch(self._require_actor(actor_id), patch)

    async def create_actor_items(self, actor_id: str, items: List[ItemRecord]) -> List[ItemRecord]:
        self._check('create_actor_items')
        actor = self._require_actor(actor_id)
        created = []
        for item in items:
            stored = item.copy()
            if not stored.id or actor.get_item(stored.id):
                stored.id = self._next_id('item')
            stored.uuid = f'Actor.{actor_id}.Item.{stored.id}'
            actor.items.append(stored)
            created.append(stored)
        return created

    async def update_actor_items(self, actor_id: str, updates: List[Dict[str, Any]]) -> None:
        self._check('update_actor_items')
        actor = self._require_actor(actor_id)
        for update in updates:
            changes = dict(update)
            item = actor.get_item(changes.pop('id'))
            if item is not None:
                _apply_patch(item, changes)

    async def delete_actor_items(self, actor_id: str, item_ids: List[str]) -> None:
        self._check('delete_actor_items')
        actor = self._require_actor(actor_id)
        doomed = set(item_ids)
        actor.items = [item for item in actor.items if item.id not in doomed]

    async def apply_actor_update(self, actor_id: str, update: ActorUpdate) -> List[ItemRecord]:
        self._check('apply_actor_update')
        actor = self._require_actor(actor_id)
        scoped = actor.flags.setdefault(MODULE_ID, {})
        for key, value in update.flag_sets.items():
            scoped[key] = copy.deepcopy(value)
        for key in update.flag_unsets:
            scoped.pop(key, None)
        doomed = set(update.item_deletes)
        actor.items = [item for item in actor.items if item.id not in doomed]
        created = []
        for item in update.item_creates:
            stored = item.copy()
            if not stored.id or actor.get_item(stored.id):
                stored.id = self._next_id('item')
            stored.uuid = f'Actor.{actor_id}.Item.{stored.id}'
            actor.items.append(stored)
            created.append(stored)
        for change in update.item_updates:
            changes = dict(change)
            item = actor.get_item(changes.pop('id'))
            if item is not None:
                _apply_patch(item, changes)
        if update.favorites is not None:
            actor.favorites = list(update.favorites)
        return created

    # Flags
    def get_actor_flag(self, actor_id: str, key: str, scope: str = MODULE_ID) -> Any:
        actor = self.actors.get(actor_id)
        if actor is None:
            return None
        return copy.deepcopy(actor.flags.get(scope, {}).get(key))

    async def set_actor_flag(self, actor_id: str, key: str, value: Any, scope: str = MODULE_ID) -> None:
        self._check('set_actor_flag')
        self._require_actor(actor_id).flags.setdefault(scope, {})[key] = copy.deepcopy(value)

    async def unset_actor_flag(self, actor_id: str, key: str, scope: str = MODULE_ID) -> None:
        self._check('unset_actor_flag')
        self._require_actor(actor_id).flags.get(scope, {}).pop(key, None)

    def get_user_flag(self, user_id: str, key: str, scope: str = MODULE_ID) -> Any:
        user = self.users.get(user_id)
        if user is None:
            return None
        return copy.deepcopy(user.flags.get(scope, {}).get(key))

    async def set_user_flag(self, user_id: str, key: str, value: Any, scope: str = MODULE_ID) -> None:
        self._check('set_user_flag')
        self.users[user_id].flags.setdefault(scope, {})[key] = copy.deepcopy(value)

    async def unset_user_flag(self, user_id: str, key: str, scope: str = MODULE_ID) -> None:
        self._check('unset_user_flag')
        self.users[user_id].flags.get(scope, {}).pop(key, None)

    # Journals and folders
    def get_folders(self, pack: Optional[str] = None) -> List[FolderRecord]:
        return [folder for folder in self.folders if folder.pack == pack]

    async def create_folder(self, folder: FolderRecord) -> FolderRecord:
        self._check('create_folder')
        stored = copy.deepcopy(folder)
        if not stored.id:
            stored.id = self._next_id('folder')
        self.folders.append(stored)
        return stored

    async def update_folder(self, folder_id: str, patch: Dict[str, Any], pack: Optional[str] = None) -> None:
        self._check('update_folder')
        for folder in self.folders:
            if folder.id == folder_id and folder.pack == pack:
                _apply_patch(folder, patch)
                return
        raise HostError(f"Folder {folder_id} not found", operation='update_folder')

    def get_journal_entries(self, pack: Optional[str] = None) -> List[JournalEntryRecord]:
        return [entry for entry in self.journal_entries if entry.pack == pack]

    async def create_journal_entry(self, entry: JournalEntryRecord) -> JournalEntryRecord:
        self._check('create_journal_entry')
        stored = copy.deepcopy(entry)
        if not stored.id:
            stored.id = self._next_id('journal')
        return self.add_journal_entry(stored)

    async def update_journal_entry(self, entry_id: str, patch: Dict[str, Any], pack: Optional[str] = None) -> None:
        self._check('update_journal_entry')
        entry = self.get_journal_entry(entry_id, pack)
        if entry is None:
            raise HostError(f"Journal entry {entry_id} not found", operation='update_journal_entry')
        _apply_patch(entry, patch)

    def _all_pages(self):
        for entry in self.journal_entries:
            for page in entry.pages:
                yield page

    def read_journal_page(self, ref: str) -> Optional[JournalPageRecord]:
        for page in self._all_pages():
            if page.uuid == ref:
                return page
        return None

    async def update_journal_page(self, ref: str, patch: Dict[str, Any]) -> None:
        self._check('update_journal_page')
        page = self.read_journal_page(ref)
        if page is None:
            raise HostError(f"Journal page {ref} not found", operation='update_journal_page')
        _apply_patch(page, patch)

    async def create_journal_page(self, entry_id: str, page: JournalPageRecord,
                                  pack: Optional[str] = None) -> JournalPageRecord:
        self._check('create_journal_page')
        entry = self.get_journal_entry(entry_id, pack)
        if entry is None:
            raise HostError(f"Journal entry {entry_id} not found", operation='create_journal_page')
        stored = copy.deepcopy(page)
        if not stored.id:
            stored.id = self._next_id('page')
        stored.entry_id = entry.id
        stored.pack = entry.pack
        entry.pages.append(stored)
        return stored

    def get_spell_list_pages(self) -> List[JournalPageRecord]:
        return [page for page in self._all_pages() if page.is_spell_list]

    # Settings
    def get_setting(self, key: str) -> Any:
        return copy.deepcopy(self.settings.get(key))

    async def set_setting(self, key: str, value: Any) -> None:
        self._check('set_setting')
        self.settings[key] = copy.deepcopy(value)

    # Hooks
    def on_event(self, name: str, handler: Callable) -> int:
        handle = next(self._ids)
        self._hooks.setdefault(name, {})[handle] = handler
        return handle

    def off_event(self, name: str, handle: int) -> None:
        self._hooks.get(name, {}).pop(handle, None)

    def hook_count(self, name: str) -> int:
        return len(self._hooks.get(name, {}))

    async def fire(self, name: str, *args) -> None:
        """Dispatch a host event to registered handlers, awaiting coroutine handlers"""
        for handler in list(self._hooks.get(name, {}).values()):
            result = handler(*args)
            if asyncio.iscoroutine(result):
                await result

    # Messaging
    async def emit_chat(self, recipients: List[str], content: str, flags: Optional[Dict[str, Any]] = None) -> None:
        self._check('emit_chat')
        self.chat_log.append({
            'whisper': list(recipients),
            'content': content,
            'flags': copy.deepcopy(flags or {}),
        })

    def notify(self, level: str, message: str) -> None:
        logger.debug(f"Host notification [{level}]: {message}")
        self.notifications.append((level, message))

    # Uuids
    def resolve_uuid(self, uuid: str) -> Optional[Any]:
        if uuid in self.library:
            return self.library[uuid]
        try:
            parsed = self.parse_uuid(uuid)
        except ValueError:
            return None
        if parsed.primary_type == 'Actor' and not parsed.is_compendium:
            actor = self.actors.get(parsed.primary_id)
            if actor is None:
                return None
            if parsed.document_type == 'Item':
                return actor.get_item(parsed.document_id)
            return actor
        if parsed.document_type == 'JournalEntryPage':
            return self.read_journal_page(uuid)
        if parsed.document_type == 'JournalEntry':
            pack = parsed.collection
            return self.get_journal_entry(parsed.document_id, pack)
        return None

    # Users and combat
    def get_users(self) -> List[UserRecord]:
        return list(self.users.values())

    def get_current_user(self) -> Optional[UserRecord]:
        return self.users.get(self.current_user_id) if self.current_user_id else None

    def get_active_combat(self) -> Optional[CombatRecord]:
        if self.combat and self.combat.active:
            return self.combat
        return None
