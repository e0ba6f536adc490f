"""
Host adapter interface.
This is the only surface through which the engine touches the host platform.
Reads are synchronous views of already-loaded documents; anything that writes
to the host's document layer or reads a compendium is a coroutine.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..constants import MODULE_ID
from .records import (
    ActorRecord, CombatRecord, FolderRecord, ItemRecord, JournalEntryRecord,
    JournalPageRecord, ParsedUuid, UserRecord,
)


class HostAdapter(ABC):
    """
    Abstract host surface.

    Patches passed to update_* methods are dicts keyed by record field names.
    A 'flags' entry is merged into the document's MODULE_ID flag scope rather
    than replacing it. Implementations raise HostError on I/O failure.
    """

    # Hosts that can apply flags and item changes as one document update
    supports_batch_update: bool = False

    # Actors
    @abstractmethod
    def get_actor(self, actor_id: str) -> Optional[ActorRecord]:
        ...

    @abstractmethod
    def get_actors(self) -> List[ActorRecord]:
        ...

    def get_items_of_actor(self, actor_id: str) -> List[ItemRecord]:
        actor = self.get_actor(actor_id)
        return list(actor.items) if actor else []

    @abstractmethod
    async def update_actor(self, actor_id: str, patch: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def create_actor_items(self, actor_id: str, items: List[ItemRecord]) -> List[ItemRecord]:
        ...

    @abstractmethod
    async def update_actor_items(self, actor_id: str, updates: List[Dict[str, Any]]) -> None:
        ...

    @abstractmethod
    async def delete_actor_items(self, actor_id: str, item_ids: List[str]) -> None:
        ...

    async def apply_actor_update(self, actor_id: str, update) -> List[ItemRecord]:
        """Apply an ActorUpdate as one host write; only called when supports_batch_update"""
        raise NotImplementedError(f"{type(self).__name__} does not support batched actor updates")

    # Flags
    @abstractmethod
    def get_actor_flag(self, actor_id: str, key: str, scope: str = MODULE_ID) -> Any:
        ...

    @abstractmethod
    async def set_actor_flag(self, actor_id: str, key: str, value: Any, scope: str = MODULE_ID) -> None:
        ...

    @abstractmethod
    async def unset_actor_flag(self, actor_id: str, key: str, scope: str = MODULE_ID) -> None:
        ...

    @abstractmethod
    def get_user_flag(self, user_id: str, key: str, scope: str = MODULE_ID) -> Any:
        ...

    @abstractmethod
    async def set_user_flag(self, user_id: str, key: str, value: Any, scope: str = MODULE_ID) -> None:
        ...

    @abstractmethod
    async def unset_user_flag(self, user_id: str, key: str, scope: str = MODULE_ID) -> None:
        ...

    # Journals and folders
    @abstractmethod
    def get_folders(self, pack: Optional[str] = None) -> List[FolderRecord]:
        ...

    @abstractmethod
    async def create_folder(self, folder: FolderRecord) -> FolderRecord:
        ...

    @abstractmethod
    async def update_folder(self, folder_id: str, patch: Dict[str, Any], pack: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def get_journal_entries(self, pack: Optional[str] = None) -> List[JournalEntryRecord]:
        ...

    def get_journal_entry(self, entry_id: str, pack: Optional[str] = None) -> Optional[JournalEntryRecord]:
        for entry in self.get_journal_entries(pack):
            if entry.id == entry_id:
                return entry
        return None

    def list_folder(self, pack: Optional[str], folder_id: str) -> List[JournalEntryRecord]:
        return [entry for entry in self.get_journal_entries(pack) if entry.folder_id == folder_id]

    @abstractmethod
    async def create_journal_entry(self, entry: JournalEntryRecord) -> JournalEntryRecord:
        ...

    @abstractmethod
    async def update_journal_entry(self, entry_id: str, patch: Dict[str, Any], pack: Optional[str] = None) -> None:
        ...

    @abstractmethod
    def read_journal_page(self, ref: str) -> Optional[JournalPageRecord]:
        """Look up a page by uuid"""

    @abstractmethod
    async def update_journal_page(self, ref: str, patch: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def create_journal_page(self, entry_id: str, page: JournalPageRecord,
                                  pack: Optional[str] = None) -> JournalPageRecord:
        ...

    @abstractmethod
    def get_spell_list_pages(self) -> List[JournalPageRecord]:
        """Every spell list page in the world and in enabled packs"""

    # Settings
    @abstractmethod
    def get_setting(self, key: str) -> Any:
        ...

    @abstractmethod
    async def set_setting(self, key: str, value: Any) -> None:
        ...

    # Hooks
    @abstractmethod
    def on_event(self, name: str, handler: Callable) -> int:
        ...

    @abstractmethod
    def off_event(self, name: str, handle: int) -> None:
        ...

    # Messaging
    @abstractmethod
    async def emit_chat(self, recipients: List[str], content: str, flags: Optional[Dict[str, Any]] = None) -> None:
        ...

    @abstractmethod
    def notify(self, level: str, message: str) -> None:
        ...

    # Uuids
    @abstractmethod
    def resolve_uuid(self, uuid: str) -> Optional[Any]:
        """Resolve from loaded documents and compendium indexes only"""

    async def resolve_uuid_async(self, uuid: str) -> Optional[Any]:
        return self.resolve_uuid(uuid)

    def parse_uuid(self, uuid: str) -> ParsedUuid:
        from ..identity import parse_uuid
        return parse_uuid(uuid)

    # Users and combat
    @abstractmethod
    def get_users(self) -> List[UserRecord]:
        ...

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        for user in self.get_users():
            if user.id == user_id:
                return user
        return None

    @abstractmethod
    def get_current_user(self) -> Optional[UserRecord]:
        ...

    @abstractmethod
    def get_active_combat(self) -> Optional[CombatRecord]:
        ...

    def get_gm_ids(self) -> List[str]:
        return [user.id for user in self.get_users() if user.is_gm]
