"""
Tests for SpellListResolver - list expansion, built-in list selection and overlays
"""

import pytest

from spellbook.constants import FLAGS, MODULE_ID, PreparedState, SpellListType
from spellbook.models import ClassRules
from spellbook.services.spell_list_resolver import (
    SpellListResolver, get_spell_list_type, is_removable_item,
)
from tests.fixtures.host_factory import (
    cleric_class, make_actor, owned_spell, page_uuid, prepared_flags, spell_list_entry,
    spell_uuid, wizard_class,
)


def uuids(*slugs):
    return {spell_uuid(slug) for slug in slugs}


@pytest.fixture
def resolver(context):
    return SpellListResolver(context)


@pytest.fixture
def wizard_list(host):
    return host.add_journal_entry(spell_list_entry(
        'wizlist', 'Wizard', ['fire-bolt', 'shield', 'sleep'], identifier='wizard'))


class TestListTypes:
    @pytest.mark.parametrize('flags,expected', [
        ({}, SpellListType.STANDARD),
        ({FLAGS.IS_CUSTOM: True}, SpellListType.CUSTOM),
        ({FLAGS.IS_DUPLICATE: True}, SpellListType.MODIFIED),
        ({FLAGS.IS_MERGED: True, FLAGS.IS_CUSTOM: True}, SpellListType.MERGED),
    ])
    def test_type_from_flags(self, flags, expected):
        page = spell_list_entry('l', 'List', [], page_flags=flags).pages[0]
        assert get_spell_list_type(page) == expected

    @pytest.mark.parametrize('changes,removable', [
        ({}, True),
        ({'prepared': PreparedState.ALWAYS}, False),
        ({'cached_for': 'Actor.a.Item.feat'}, False),
        ({'method': 'atwill'}, False),
        ({'method': 'pact'}, True),
    ])
    def test_removable_items(self, changes, removable):
        assert is_removable_item(owned_spell('shield', 'wizard').copy(**changes)) is removable


class TestListSpells:
    async def test_plain_list(self, resolver, wizard_list):
        assert await resolver.get_list_spells(page_uuid(wizard_list)) == uuids('fire-bolt', 'shield', 'sleep')

    async def test_missing_list(self, resolver):
        assert await resolver.get_list_spells('JournalEntry.nope.JournalEntryPage.nope') is None

    async def test_empty_merged_list_expands_sources(self, resolver, host, wizard_list):
        other = host.add_journal_entry(spell_list_entry('clr', 'Cleric', ['bless', 'shield'], identifier='cleric'))
        merged = host.add_journal_entry(spell_list_entry('merged', 'Merged', [], page_flags={
            FLAGS.IS_MERGED: True, FLAGS.SOURCE_LIST_UUIDS: [page_uuid(wizard_list), page_uuid(other)]}))
        assert await resolver.get_list_spells(page_uuid(merged)) == uuids('fire-bolt', 'shield', 'sleep', 'bless')

    async def test_self_referencing_merged_list(self, resolver, host):
        entry = host.add_journal_entry(spell_list_entry('loop', 'Loop', [], page_flags={FLAGS.IS_MERGED: True}))
        entry.pages[0].flags[MODULE_ID][FLAGS.SOURCE_LIST_UUIDS] = [page_uuid(entry)]
        assert await resolver.get_list_spells(page_uuid(entry)) == set()

    async def test_embedded_spell_uuids_are_canonicalized(self, resolver, host, wizard):
        entry = host.add_journal_entry(spell_list_entry('mine', 'Mine', []))
        entry.pages[0].spells = [f'Actor.{wizard.id}.Item.item-shield']
        assert await resolver.get_list_spells(page_uuid(entry)) == uuids('shield')


class TestBuiltinSelection:
    def test_class_pack_wins(self, resolver, host):
        host.add_journal_entry(spell_list_entry('a', 'Wizard (world)', ['sleep'], identifier='wizard'))
        own = host.add_journal_entry(spell_list_entry('b', 'Wizard', ['shield'], identifier='wizard',
                                                      pack='dnd5e.classes'))
        assert resolver.find_builtin_list(wizard_class()).uuid == page_uuid(own)

    def test_standard_before_custom(self, resolver, host):
        host.add_journal_entry(spell_list_entry('c', 'Mine', ['sleep'], identifier='wizard',
                                                page_flags={FLAGS.IS_CUSTOM: True}))
        standard = host.add_journal_entry(spell_list_entry('s', 'Wizard', ['shield'], identifier='wizard'))
        assert resolver.find_builtin_list(wizard_class()).uuid == page_uuid(standard)

    def test_custom_fallback(self, resolver, host):
        custom = host.add_journal_entry(spell_list_entry('c', 'Mine', ['sleep'], identifier='wizard',
                                                         page_flags={FLAGS.IS_CUSTOM: True}))
        assert resolver.find_builtin_list(wizard_class()).uuid == page_uuid(custom)

    def test_no_list(self, resolver):
        assert resolver.find_builtin_list(wizard_class()) is None


class TestClassSpellList:
    async def test_builtin_plus_subclass(self, resolver, host):
        host.add_actor(make_actor(actor_id='c1', classes=[cleric_class(subclass='life')]))
        host.add_journal_entry(spell_list_entry('cl', 'Cleric', ['bless', 'guidance'], identifier='cleric'))
        host.add_journal_entry(spell_list_entry('life', 'Life Domain', ['cure-wounds'], identifier='life',
                                                list_type='subclass'))
        assert await resolver.get_class_spell_list('c1', 'cleric') == uuids('bless', 'guidance', 'cure-wounds')

    async def test_custom_lists_replace_builtin(self, resolver, wizard, wizard_list, host):
        mine = host.add_journal_entry(spell_list_entry('mine', 'Mine', ['misty-step']))
        rules = ClassRules(custom_spell_list=[page_uuid(mine), 'JournalEntry.gone.JournalEntryPage.gone'])
        assert await resolver.get_class_spell_list(wizard.id, 'wizard', rules) == uuids('misty-step')

    async def test_unresolvable_custom_lists_fall_back(self, resolver, wizard, wizard_list):
        rules = ClassRules(custom_spell_list=['JournalEntry.gone.JournalEntryPage.gone'])
        assert await resolver.get_class_spell_list(wizard.id, 'wizard', rules) == uuids('fire-bolt', 'shield', 'sleep')

    async def test_unknown_class(self, resolver, wizard, wizard_list):
        assert await resolver.get_class_spell_list(wizard.id, 'druid') == set()

    async def test_overlay_with_deltas(self, resolver, host, wizard, wizard_list):
        modified = host.add_journal_entry(spell_list_entry('mod', 'Wizard (Modified)', [], page_flags={
            FLAGS.IS_DUPLICATE: True,
            FLAGS.ADDED_SPELLS: [spell_uuid('misty-step')],
            FLAGS.REMOVED_SPELLS: [spell_uuid('sleep')],
        }))
        host.settings['customSpellListMappings'] = {page_uuid(wizard_list): page_uuid(modified)}
        assert await resolver.get_class_spell_list(wizard.id, 'wizard') == uuids('fire-bolt', 'shield', 'misty-step')

    async def test_overlay_without_deltas_replaces(self, resolver, host, wizard, wizard_list):
        modified = host.add_journal_entry(spell_list_entry('mod', 'Wizard (Modified)', ['light'],
                                                           page_flags={FLAGS.IS_DUPLICATE: True}))
        host.settings['customSpellListMappings'] = {page_uuid(wizard_list): page_uuid(modified)}
        assert await resolver.get_class_spell_list(wizard.id, 'wizard') == uuids('light')

    async def test_missing_overlay_keeps_original(self, resolver, host, wizard, wizard_list):
        host.settings['customSpellListMappings'] = {page_uuid(wizard_list): 'JournalEntry.x.JournalEntryPage.y'}
        assert await resolver.get_class_spell_list(wizard.id, 'wizard') == uuids('fire-bolt', 'shield', 'sleep')


class TestCompareAndAffected:
    async def test_compare_list_versions(self, resolver, host, wizard_list):
        other = host.add_journal_entry(spell_list_entry('v2', 'Wizard v2', ['shield', 'sleep', 'light']))
        diff = await resolver.compare_list_versions(page_uuid(wizard_list), page_uuid(other))
        assert diff.added == [spell_uuid('light')]
        assert diff.removed == [spell_uuid('fire-bolt')]
        assert diff.unchanged_count == 2

    async def test_affected_spells(self, resolver, host, wizard_list):
        actor = host.add_actor(make_actor(
            actor_id='w2', items=[owned_spell('shield', 'wizard'), owned_spell('magic-missile', 'wizard')],
            flags=prepared_flags({'wizard': ['shield', 'magic-missile']})))
        affected = await resolver.get_affected_spells(actor.id, 'wizard', ClassRules())
        assert [(spell.name, spell.level) for spell in affected] == [('Magic Missile', 1)]
        assert affected[0].class_spell_key == f"wizard:{spell_uuid('magic-missile')}"

    async def test_unprepare_affected_spares_locked_items(self, resolver, host, wizard_list):
        actor = host.add_actor(make_actor(
            actor_id='w2',
            items=[owned_spell('magic-missile', 'wizard'),
                   owned_spell('misty-step', 'wizard', prepared=PreparedState.ALWAYS)],
            flags=prepared_flags({'wizard': ['magic-missile', 'misty-step']})))
        affected = await resolver.get_affected_spells(actor.id, 'wizard', ClassRules())
        assert await resolver.unprepare_affected(actor.id, 'wizard', affected) == ['item-magic-missile']
        stored = host.get_actor(actor.id)
        assert stored.get_flag(FLAGS.PREPARED_SPELLS_BY_CLASS) == {'wizard': []}
        assert [item.id for item in stored.items] == ['item-misty-step']
