"""Route top-level spell list journals into custom / merged / modified folders"""

import re
from typing import Dict, Optional

from loguru import logger

from ..constants import FLAGS, MODULE_ID, PACKS, SpellListType
from ..exceptions import HostError
from ..host.records import FolderRecord
from ..models import MigrationResult
from ..services.spell_list_resolver import get_spell_list_type
from .base import Migration, first_page

FOLDER_NAMES = {
    SpellListType.CUSTOM: 'Custom Spell Lists',
    SpellListType.MERGED: 'Merged Spell Lists',
    SpellListType.MODIFIED: 'Modified Spell Lists',
}

_TYPE_PREFIX = re.compile(r'^(Custom|Merged|Modified)\s*-\s*')


def strip_type_prefix(name: str) -> str:
    return _TYPE_PREFIX.sub('', name)


class SpellListFoldersMigration(Migration):
    key = 'spellListFolders'
    name = 'Spell list folders'

    def __init__(self):
        self._folders: Dict[SpellListType, FolderRecord] = {}

    async def _folder(self, host, list_type: SpellListType) -> FolderRecord:
        folder = self._folders.get(list_type)
        if folder is not None:
            return folder
        for existing in host.get_folders(PACKS.SPELL_LISTS):
            if existing.get_flag(FLAGS.FOLDER_TYPE) == list_type.value:
                folder = existing
                break
        if folder is None:
            folder = await host.create_folder(FolderRecord(
                id='', name=FOLDER_NAMES[list_type], type='JournalEntry', pack=PACKS.SPELL_LISTS,
                flags={MODULE_ID: {FLAGS.FOLDER_TYPE: list_type.value}},
            ))
            logger.info(f"Created {list_type.value} spell list folder {folder.id}")
        self._folders[list_type] = folder
        return folder

    async def migrate(self, context) -> MigrationResult:
        result = self.new_result()
        host = context.host
        self._folders = {}
        for journal in host.get_journal_entries(PACKS.SPELL_LISTS):
            if journal.folder_id:
                continue
            page = first_page(journal)
            if page is None or not page.is_spell_list or page.get_flag(FLAGS.IS_ACTOR_SPELLBOOK):
                continue
            result.processed += 1
            list_type = get_spell_list_type(page)
            if list_type not in FOLDER_NAMES:
                logger.debug(f"Spell list journal {journal.name} has no list type; left in place")
                continue
            try:
                target = await self._folder(host, list_type)
                new_name = strip_type_prefix(journal.name)
                patch: Dict[str, Optional[str]] = {'folder_id': target.id}
                if new_name != journal.name:
                    patch['name'] = new_name
                await host.update_journal_entry(journal.id, patch, PACKS.SPELL_LISTS)
                if new_name != page.name:
                    await host.update_journal_page(page.uuid, {'name': new_name})
            except HostError as e:
                logger.error(f"Failed to move spell list {journal.name}: {e}")
                result.errors.append(f"{journal.name}: {e}")
                continue
            result.updated += 1
            result.details.append(f"Moved {list_type.value} list '{new_name}' to '{target.name}'")
        return result
