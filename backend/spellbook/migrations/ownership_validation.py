"""
Enforce ownership matrices on the engine's journals.

- user data journal: default none, GMs owner
- user data pages: default none, the page's user and GMs owner
- custom, merged and modified spell lists: default limited, GMs owner
- actor spell book pages and their journals: default none, the actor's
  owners and GMs owner
"""

from typing import Dict, List, Set

from loguru import logger

from ..constants import FLAGS, PACKS, Ownership, SpellListType
from ..exceptions import HostError
from ..models import MigrationResult
from ..services.spell_list_resolver import get_spell_list_type
from .base import Migration, first_page, gm_ids, ownership_equal, with_owners


def actor_owner_ids(actor) -> List[str]:
    return sorted(user_id for user_id, level in actor.ownership.items()
                  if user_id != 'default' and level == Ownership.OWNER)


class OwnershipValidationMigration(Migration):
    key = 'ownershipValidation'
    name = 'Ownership validation'

    async def _fix_journal(self, host, journal, expected: Dict[str, int], result: MigrationResult, label: str):
        result.processed += 1
        if ownership_equal(journal.ownership, expected):
            return
        try:
            await host.update_journal_entry(journal.id, {'ownership': expected}, journal.pack)
        except HostError as e:
            result.errors.append(f"{label} {journal.name}: {e}")
            return
        result.updated += 1
        result.details.append(f"Fixed {label}: {journal.name}")

    async def _fix_page(self, host, page, expected: Dict[str, int], result: MigrationResult, label: str):
        result.processed += 1
        if ownership_equal(page.ownership, expected):
            return
        try:
            await host.update_journal_page(page.uuid, {'ownership': expected})
        except HostError as e:
            result.errors.append(f"{label} {page.name}: {e}")
            return
        result.updated += 1
        result.details.append(f"Fixed {label}: {page.name}")

    async def _user_data(self, context, gms: List[str], result: MigrationResult):
        store = context.store
        journal = store.get_journal() if store is not None else None
        if journal is None:
            logger.debug("No user data journal; skipping its ownership check")
            return
        host = context.host
        await self._fix_journal(host, journal, with_owners(journal.ownership, Ownership.NONE, gms),
                                result, 'user data journal')
        for page in journal.pages:
            user_id = page.get_flag(FLAGS.USER_ID)
            if not page.get_flag(FLAGS.IS_USER_SPELL_DATA) or not user_id:
                continue
            if host.get_user(user_id) is None:
                continue
            expected = with_owners(page.ownership, Ownership.NONE, [user_id, *gms])
            await self._fix_page(host, page, expected, result, 'user page')

    async def _spell_lists(self, host, gms: List[str], result: MigrationResult):
        for journal in host.get_journal_entries(PACKS.SPELL_LISTS):
            page = first_page(journal)
            if page is None or not page.is_spell_list or page.get_flag(FLAGS.IS_ACTOR_SPELLBOOK):
                continue
            if get_spell_list_type(page) == SpellListType.STANDARD:
                continue
            await self._fix_journal(host, journal, with_owners(journal.ownership, Ownership.LIMITED, gms),
                                    result, 'spell list')

    async def _actor_spellbooks(self, host, gms: List[str], result: MigrationResult):
        for journal in host.get_journal_entries(PACKS.SPELL_LISTS):
            journal_owners: Set[str] = set()
            for page in journal.pages:
                actor_id = page.get_flag(FLAGS.ACTOR_ID)
                if not page.get_flag(FLAGS.IS_ACTOR_SPELLBOOK) or not actor_id:
                    continue
                actor = host.get_actor(actor_id)
                if actor is None:
                    continue
                owners = actor_owner_ids(actor)
                if not owners:
                    continue
                journal_owners.update(owners)
                await self._fix_page(host, page, with_owners({}, Ownership.NONE, [*gms, *owners]),
                                     result, f'spell book page of {actor.name}')
            if journal_owners:
                expected = with_owners({}, Ownership.NONE, [*gms, *sorted(journal_owners)])
                await self._fix_journal(host, journal, expected, result, 'actor spell book journal')

    async def migrate(self, context) -> MigrationResult:
        result = self.new_result()
        host = context.host
        gms = gm_ids(host)
        await self._user_data(context, gms, result)
        await self._spell_lists(host, gms, result)
        await self._actor_spellbooks(host, gms, result)
        if result.updated:
            logger.info(f"Ownership validation fixed {result.updated} document(s)")
        return result
