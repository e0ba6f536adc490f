"""
User Data Store - per-user spell notes, favorites and usage kept in journal pages
One page per non-GM user inside a flagged journal of the user-data pack
"""

import json
from typing import Any, Dict, List, Optional, Union

from loguru import logger
from pydantic import ValidationError

from ..constants import (
    EXPORT_FORMAT_VERSION, FLAGS, MODULE_ID, PACKS, USER_DATA_SCHEMA_VERSION, ErrorKind, Ownership,
)
from ..exceptions import HostError, ValidationFailure
from ..host.records import FolderRecord, JournalEntryRecord, JournalPageRecord, UserRecord
from ..identity import canonicalize
from ..models import (
    OperationResult, SpellDataRow, UsageStats, UserDataDocument, UserDataExport, UserSpellData,
)
from .user_data_codec import emit_user_data, empty_user_page, parse_user_data

USER_DATA_NAME = 'User Spell Data'
INTRO_PAGE_NAME = 'Introduction'
INTRO_CONTENT = (
    '<p>Each page of this journal holds one player\'s spell notes, favorites and usage '
    'statistics, grouped by character. The spell book keeps these tables up to date.</p>'
)
LEGACY_ACTOR = ''


class UserDataStore:
    """
    User Data Store

    Decoded pages are cached per user; every write replaces the cached
    document and bumps `version` so readers holding derived data can refresh.
    """

    def __init__(self, context):
        self.context = context
        self.host = context.host
        self._cache: Dict[str, UserDataDocument] = {}
        self.version = 0

    def invalidate(self, user_id: Optional[str] = None):
        if user_id is None:
            self._cache.clear()
        else:
            self._cache.pop(user_id, None)
        self.version += 1

    # Users and documents

    def _user(self, user_id: Optional[str]) -> Optional[UserRecord]:
        if user_id:
            return self.host.get_user(user_id)
        return self.host.get_current_user()

    def user_actors(self, user: UserRecord) -> Dict[str, str]:
        """Characters the user owns or plays, id -> name"""
        actors = {}
        for actor in self.host.get_actors():
            if actor.type != 'character':
                continue
            if actor.ownership.get(user.id) == Ownership.OWNER or user.character_id == actor.id:
                actors[actor.id] = actor.name
        return actors

    def primary_user_id(self, actor_id: str) -> Optional[str]:
        """The player whose data an actor's usage and favorites belong to"""
        users = [user for user in self.host.get_users() if not user.is_gm]
        for user in users:
            if user.character_id == actor_id:
                return user.id
        actor = self.host.get_actor(actor_id)
        if actor is not None:
            for user in users:
                if actor.ownership.get(user.id) == Ownership.OWNER:
                    return user.id
        current = self.host.get_current_user()
        return current.id if current else None

    def get_folder(self) -> Optional[FolderRecord]:
        for folder in self.host.get_folders(PACKS.USER_DATA):
            if folder.get_flag(FLAGS.IS_USER_SPELL_DATA_FOLDER):
                return folder
        return None

    def get_journal(self) -> Optional[JournalEntryRecord]:
        for entry in self.host.get_journal_entries(PACKS.USER_DATA):
            if entry.get_flag(FLAGS.IS_USER_SPELL_DATA_JOURNAL):
                return entry
        return None

    def get_user_page(self, user_id: str) -> Optional[JournalPageRecord]:
        journal = self.get_journal()
        if journal is None:
            return None
        for page in journal.pages:
            if page.get_flag(FLAGS.IS_USER_SPELL_DATA) and page.get_flag(FLAGS.USER_ID) == user_id:
                return page
        return None

    def load_document(self, user_id: str) -> Optional[UserDataDocument]:
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached
        page = self.get_user_page(user_id)
        if page is None:
            return None
        document = parse_user_data(page.content, user_id, page.get_flag(FLAGS.USER_NAME) or page.name)
        self._cache[user_id] = document
        return document

    async def save_document(self, document: UserDataDocument) -> None:
        """
        Write a document to its user's page, creating the page if needed.

        Raises:
            HostError: the page could not be written
        """
        page = self.get_user_page(document.user_id) or await self.ensure_user_page(document.user_id)
        if page is None:
            raise HostError(f"No user data page for {document.user_id}", operation='save_document')
        document.schema_version = USER_DATA_SCHEMA_VERSION
        await self.host.update_journal_page(page.uuid, {
            'content': emit_user_data(document),
            'flags': {FLAGS.DATA_VERSION: USER_DATA_SCHEMA_VERSION, 'lastUpdated': self.context.now()},
        })
        self._cache[document.user_id] = document
        self.version += 1

    # Reads

    def get_user_data_for_spell(self, spell_or_uuid: Union[str, Any], user_id: Optional[str] = None,
                                actor_id: Optional[str] = None) -> Optional[UserSpellData]:
        """
        Data for one spell. Without actor_id the user's characters are
        aggregated: favorited if any is, usage summed with the latest
        lastUsed, and notes from the last non-empty section in actor id
        order. None when the user has no page or no row for the spell.
        """
        uuid = canonicalize(spell_or_uuid, self.host.resolve_uuid)
        user = self._user(user_id)
        if not uuid or user is None:
            return None
        document = self.load_document(user.id)
        if document is None:
            return None

        if actor_id is not None:
            section = document.actors.get(actor_id)
            row = section.spells.get(uuid) if section else None
            legacy = document.actors.get(LEGACY_ACTOR)
            legacy_row = legacy.spells.get(uuid) if legacy and actor_id != LEGACY_ACTOR else None
            if row is None and legacy_row is None:
                return None
            data = row.to_user_data() if row else UserSpellData()
            if not data.notes and legacy_row is not None:
                data.notes = legacy_row.notes
            return data

        rows = [document.actors[aid].spells[uuid] for aid in sorted(document.actors)
                if uuid in document.actors[aid].spells]
        if not rows:
            return None
        result = UserSpellData()
        for row in rows:
            result.favorited = result.favorited or row.favorited
            if row.notes:
                result.notes = row.notes
            result.usage_stats = result.usage_stats.merged_with(row.usage_stats)
        return result

    def enhance_spell_with_user_data(self, spell: Dict[str, Any], user_id: Optional[str] = None,
                                     actor_id: Optional[str] = None) -> Dict[str, Any]:
        """Copy of a rendered spell dict with favorite, notes and usage fields added"""
        uuid = spell.get('source_uuid') or spell.get('uuid')
        if not uuid:
            return spell
        data = self.get_user_data_for_spell(uuid, user_id, actor_id)
        stats = data.usage_stats if data else UsageStats()
        return {
            **spell,
            'user_data': data,
            'favorited': bool(data and data.favorited),
            'has_notes': bool(data and data.notes.strip()),
            'usage_count': stats.count,
            'last_used': stats.last_used,
        }

    # Writes

    def _clip_notes(self, notes: Optional[str]) -> str:
        return (notes or '').strip()[:self.context.settings.notes_max_length]

    async def set_user_data_for_spell(self, spell_or_uuid: Union[str, Any], data: Union[UserSpellData, Dict[str, Any]],
                                      user_id: Optional[str] = None,
                                      actor_id: Optional[str] = None) -> OperationResult:
        """
        Update one spell's row for (user, actor). Only the fields present in a
        dict are changed. Without actor_id the user's assigned character is used.
        """
        uuid = canonicalize(spell_or_uuid, self.host.resolve_uuid)
        user = self._user(user_id)
        if not uuid:
            return OperationResult.failure(ErrorKind.VALIDATION, 'SPELLBOOK.UserData.NoSpell')
        if user is None or user.is_gm:
            return OperationResult.failure(ErrorKind.MISSING, 'SPELLBOOK.UserData.NoUser')
        actor_id = actor_id if actor_id is not None else user.character_id
        if actor_id is None:
            logger.warning(f"No actor to scope spell data for user {user.id}; nothing written")
            return OperationResult.failure(ErrorKind.VALIDATION, 'SPELLBOOK.UserData.NoActor')

        if isinstance(data, UserSpellData):
            changes = data.model_dump()
        else:
            changes = {_snake(k): v for k, v in data.items()}

        document = self.load_document(user.id) or UserDataDocument(user_id=user.id, user_name=user.name)
        document = document.model_copy(deep=True)
        actor = self.host.get_actor(actor_id)
        section = document.actor(actor_id, actor.name if actor else '')
        row = section.spells.get(uuid)
        if row is None:
            row = SpellDataRow()
            section.spells[uuid] = row
        if not row.spell_name:
            spell = self.host.resolve_uuid(uuid)
            row.spell_name = getattr(spell, 'name', '') or ''

        if 'notes' in changes:
            row.notes = self._clip_notes(changes['notes'])
        if 'favorited' in changes:
            row.favorited = bool(changes['favorited'])
        if 'usage_stats' in changes and changes['usage_stats'] is not None:
            row.usage_stats = UsageStats.model_validate(changes['usage_stats'])

        try:
            await self.save_document(document)
        except HostError as e:
            self.context.report_failure(f"Saving spell data for {uuid}", e)
            return OperationResult.failure(ErrorKind.TRANSIENT, 'SPELLBOOK.Errors.OperationFailed')
        logger.debug(f"Updated spell data for {uuid} (user {user.id}, actor {actor_id}): {sorted(changes)}")
        return OperationResult.success()

    async def clear_user_data(self, user_id: str, actor_id: Optional[str] = None) -> OperationResult:
        """Empty a user's tables, or one character's; refused for GM users"""
        user = self.host.get_user(user_id)
        if user is None:
            return OperationResult.failure(ErrorKind.MISSING, 'SPELLBOOK.UserData.NoUser')
        if user.is_gm:
            logger.warning(f"Refusing to clear spell data of GM user {user_id}")
            return OperationResult.failure(ErrorKind.VALIDATION, 'SPELLBOOK.UserData.CannotClearGM')
        confirmed = await self.context.ask('clearUserData', user_id=user_id, actor_id=actor_id)
        if not confirmed:
            return OperationResult.failure(ErrorKind.VALIDATION, 'SPELLBOOK.UserData.ClearCancelled')

        document = (self.load_document(user_id) or UserDataDocument(user_id=user_id, user_name=user.name))
        document = document.model_copy(deep=True)
        for section_id, section in document.actors.items():
            if actor_id is None or section_id == actor_id:
                section.spells = {}
        try:
            await self.save_document(document)
        except HostError as e:
            self.context.report_failure(f"Clearing spell data for {user_id}", e)
            return OperationResult.failure(ErrorKind.TRANSIENT, 'SPELLBOOK.Errors.OperationFailed')
        logger.info(f"Cleared spell data for user {user_id}{f' actor {actor_id}' if actor_id else ''}")
        return OperationResult.success()

    # Export / import

    def export_user(self, user_id: str) -> Optional[str]:
        """JSON export carrying the page HTML exactly as stored"""
        page = self.get_user_page(user_id)
        if page is None:
            return None
        user = self.host.get_user(user_id)
        export = UserDataExport(
            version=EXPORT_FORMAT_VERSION,
            exported_at=self.context.now(),
            user_id=user_id,
            user_name=user.name if user else page.name,
            schema_version=parse_user_data(page.content).schema_version,
            content=page.content,
        )
        return json.dumps(export.to_flag(), indent=2)

    async def import_user(self, user_id: str, blob: Union[str, Dict[str, Any]]) -> OperationResult:
        """
        Replace a user's page with an export. The content is normalized
        through the codec so the stored page is in current-schema form.

        Raises:
            ValidationFailure: unreadable blob, wrong version or no content
        """
        try:
            data = json.loads(blob) if isinstance(blob, str) else blob
        except json.JSONDecodeError as e:
            raise ValidationFailure(f"User data export is not valid JSON: {e}")
        if not isinstance(data, dict) or 'content' not in data:
            raise ValidationFailure("User data export has no 'content' key")
        if data.get('version') != EXPORT_FORMAT_VERSION:
            raise ValidationFailure(f"Unsupported user data export version: {data.get('version')!r}")
        try:
            export = UserDataExport.model_validate(data)
        except ValidationError as e:
            raise ValidationFailure(f"Invalid user data export: {e}")

        user = self.host.get_user(user_id)
        if user is None:
            return OperationResult.failure(ErrorKind.MISSING, 'SPELLBOOK.UserData.NoUser')
        document = parse_user_data(export.content, user_id, user.name)
        document.user_id = user_id
        try:
            await self.save_document(document)
        except HostError as e:
            self.context.report_failure(f"Importing spell data for {user_id}", e)
            return OperationResult.failure(ErrorKind.TRANSIENT, 'SPELLBOOK.Errors.OperationFailed')
        logger.info(f"Imported spell data for user {user_id} ({len(document.actors)} character section(s))")
        return OperationResult.success()

    # Infrastructure

    def _gm_ownership(self) -> Dict[str, int]:
        ownership = {'default': int(Ownership.NONE)}
        for user in self.host.get_users():
            if user.is_gm:
                ownership[user.id] = int(Ownership.OWNER)
        return ownership

    async def _ensure_folder(self) -> FolderRecord:
        folder = self.get_folder()
        if folder is None:
            folder = await self.host.create_folder(FolderRecord(
                id='', name=USER_DATA_NAME, type='JournalEntry', pack=PACKS.USER_DATA,
                flags={MODULE_ID: {FLAGS.IS_USER_SPELL_DATA_FOLDER: True}},
            ))
            logger.info(f"Created user data folder {folder.id}")
        return folder

    async def _ensure_journal(self, folder: FolderRecord) -> JournalEntryRecord:
        journal = self.get_journal()
        if journal is None:
            journal = await self.host.create_journal_entry(JournalEntryRecord(
                id='', name=USER_DATA_NAME, folder_id=folder.id, pack=PACKS.USER_DATA,
                ownership=self._gm_ownership(),
                flags={MODULE_ID: {FLAGS.IS_USER_SPELL_DATA_JOURNAL: True}},
            ))
            logger.info(f"Created user data journal {journal.id}")
        if not any(page.get_flag(FLAGS.IS_INTRO_PAGE) for page in journal.pages):
            await self.host.create_journal_page(journal.id, JournalPageRecord(
                id='', name=INTRO_PAGE_NAME, content=INTRO_CONTENT, sort=10,
                ownership=self._gm_ownership(),
                flags={MODULE_ID: {FLAGS.IS_INTRO_PAGE: True}},
            ), PACKS.USER_DATA)
        return journal

    async def ensure_user_page(self, user_id: str) -> Optional[JournalPageRecord]:
        """Create a non-GM user's page if missing; GMs get none"""
        user = self.host.get_user(user_id)
        if user is None or user.is_gm:
            return None
        existing = self.get_user_page(user_id)
        if existing is not None:
            return existing
        journal = self.get_journal() or await self._ensure_journal(await self._ensure_folder())
        ownership = self._gm_ownership()
        ownership[user_id] = int(Ownership.OWNER)
        page = await self.host.create_journal_page(journal.id, JournalPageRecord(
            id='', name=user.name, sort=99999,
            content=empty_user_page(user_id, user.name, self.user_actors(user)),
            ownership=ownership,
            flags={MODULE_ID: {
                FLAGS.IS_USER_SPELL_DATA: True,
                FLAGS.USER_ID: user_id,
                FLAGS.USER_NAME: user.name,
                FLAGS.DATA_VERSION: USER_DATA_SCHEMA_VERSION,
            }},
        ), PACKS.USER_DATA)
        logger.info(f"Created spell data page for user {user.name}")
        return page

    async def ensure_infrastructure(self) -> List[str]:
        """Folder, journal, intro page and one page per non-GM user; returns user ids that got a new page"""
        folder = await self._ensure_folder()
        await self._ensure_journal(folder)
        created = []
        for user in self.host.get_users():
            if user.is_gm or self.get_user_page(user.id) is not None:
                continue
            await self.ensure_user_page(user.id)
            created.append(user.id)
        if created:
            logger.info(f"Created spell data pages for {len(created)} user(s)")
        return created


def _snake(key: str) -> str:
    return ''.join(f'_{ch.lower()}' if ch.isupper() else ch for ch in key)
