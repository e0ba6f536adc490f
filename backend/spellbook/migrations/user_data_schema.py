"""
Advance user data pages to the current schema.

Schema 2 kept notes once per user. Those notes are copied onto every
character the user owns that has no note of its own for the spell; the
user-level section is kept only when the user owns no character.
"""

from typing import Dict

from loguru import logger

from ..constants import FLAGS, USER_DATA_SCHEMA_VERSION
from ..exceptions import HostError
from ..models import MigrationResult, SpellDataRow, UserDataDocument
from ..services.user_data_codec import detect_schema_version
from ..services.user_data_store import LEGACY_ACTOR, UserDataStore
from .base import Migration


def distribute_legacy_notes(document: UserDataDocument, actors: Dict[str, str]) -> int:
    """Copy user-level notes onto each character's rows; returns the number of rows written"""
    legacy = document.actors.get(LEGACY_ACTOR)
    if legacy is None or not actors:
        return 0
    written = 0
    for actor_id in sorted(actors):
        section = document.actor(actor_id, actors[actor_id])
        for uuid, legacy_row in legacy.spells.items():
            if not legacy_row.notes:
                continue
            row = section.spells.get(uuid)
            if row is None:
                row = SpellDataRow(spell_name=legacy_row.spell_name)
                section.spells[uuid] = row
            if row.notes:
                continue
            row.notes = legacy_row.notes
            row.spell_name = row.spell_name or legacy_row.spell_name
            written += 1
    del document.actors[LEGACY_ACTOR]
    return written


class UserDataSchemaMigration(Migration):
    key = 'userDataSchema'
    name = 'User data schema'
    version = USER_DATA_SCHEMA_VERSION

    async def migrate(self, context) -> MigrationResult:
        result = self.new_result()
        store = context.store or UserDataStore(context)
        journal = store.get_journal()
        if journal is None:
            return result
        host = context.host
        for page in journal.pages:
            user_id = page.get_flag(FLAGS.USER_ID)
            if not page.get_flag(FLAGS.IS_USER_SPELL_DATA) or not user_id:
                continue
            result.processed += 1
            schema = detect_schema_version(page.content)
            if schema == 0 or schema >= USER_DATA_SCHEMA_VERSION:
                continue
            user = host.get_user(user_id)
            if user is None:
                logger.warning(f"User data page {page.name} belongs to unknown user {user_id}; left as is")
                continue

            store.invalidate(user_id)
            document = store.load_document(user_id).model_copy(deep=True)
            written = distribute_legacy_notes(document, store.user_actors(user))
            try:
                await store.save_document(document)
            except HostError as e:
                logger.error(f"Failed to upgrade spell data page of {user.name}: {e}")
                result.errors.append(f"{user.name}: {e}")
                continue
            result.updated += 1
            result.details.append(f"{user.name}: schema {schema} -> {USER_DATA_SCHEMA_VERSION}, {written} note(s) moved")
        return result
