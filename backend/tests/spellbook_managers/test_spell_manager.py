"""
Tests for SpellManager - prepared limits, status, checks and the preparation commit
"""

import pytest

from spellbook.actor_spellbook import ActorSpellbook
from spellbook.constants import FLAGS, MODULE_ID, ChangeReason, PreparedState
from spellbook.exceptions import HostError, InvariantViolationError
from spellbook.models import SpellCheckInput
from spellbook.preparation import projection_matches
from tests.fixtures.host_factory import (
    GM_ID, SPELLS, cleric_class, library_spell, make_actor, owned_spell, prepared_flags,
    spell_uuid, warlock_class, wizard_class,
)


def row(slug, prepared, was_prepared=False):
    name, level, _, properties = SPELLS[slug]
    return SpellCheckInput(uuid=spell_uuid(slug), name=name, level=level, prepared=prepared,
                           was_prepared=was_prepared, is_ritual='ritual' in properties)


def flags_of(host, actor_id):
    return host.get_actor(actor_id).flags[MODULE_ID]


def prepared_keys(host, actor_id, class_id):
    return flags_of(host, actor_id)[FLAGS.PREPARED_SPELLS_BY_CLASS][class_id]


def strict(actor):
    actor.flags[MODULE_ID][FLAGS.ENFORCEMENT_BEHAVIOR] = 'strict'


class TestLimits:
    def test_max_prepared_includes_bonus(self, spellbook, context, wizard):
        assert spellbook.spells.get_max_prepared('wizard') == 4
        context.rule_cache.invalidate(wizard.id)
        wizard.flags[MODULE_ID][FLAGS.CLASS_RULES] = {'wizard': {'spellPreparationBonus': 1}}
        assert spellbook.spells.get_max_prepared('wizard') == 5

    def test_prepared_count_skips_cantrips_and_rituals(self, spellbook, wizard):
        ritual = owned_spell('detect-magic', 'wizard', method='ritual', item_id='ritual-detect-magic')
        wizard.items.append(ritual)
        assert spellbook.spells.get_current_prepared_count('wizard') == 2

    def test_pact_class_mode(self, context, host):
        actor = host.add_actor(make_actor(actor_id='warlock', classes=[warlock_class()]))
        spells = ActorSpellbook(context, actor.id).spells
        assert spells.get_class_preparation_mode('warlock') == 'pact'
        assert spells.get_class_preparation_mode('unknown') == 'spell'


class TestSpellStatusChecks:
    def test_cantrips_pass_through(self, spellbook, wizard):
        strict(wizard)
        assert spellbook.spells.can_change_spell_status(library_spell('light'), False, True, False, False, 'wizard').allowed

    def test_strict_class_at_maximum(self, spellbook, host, wizard):
        strict(wizard)
        decision = spellbook.spells.can_change_spell_status(
            library_spell('sleep'), True, False, False, False, 'wizard', current_prepared=4, max_prepared=4)
        assert decision.reason == ChangeReason.CLASS_AT_MAXIMUM
        assert host.notifications == [('warn', ChangeReason.CLASS_AT_MAXIMUM.message_key)]

    def test_strict_below_maximum(self, spellbook, wizard):
        strict(wizard)
        assert spellbook.spells.can_change_spell_status(library_spell('sleep'), True, False, False, False, 'wizard').allowed

    def test_notify_gm_over_maximum(self, spellbook, host):
        decision = spellbook.spells.can_change_spell_status(
            library_spell('sleep'), True, False, False, False, 'wizard', current_prepared=4)
        assert decision.allowed
        assert decision.message == 'SPELLBOOK.Notifications.OverLimitWarning'
        assert host.notifications == [('info', 'SPELLBOOK.Notifications.OverLimitWarning')]

    @pytest.mark.parametrize('mode,level_up,long_rest,reason', [
        ('none', True, True, ChangeReason.LOCKED_NO_SWAPPING),
        ('levelUp', False, True, ChangeReason.LOCKED_OUTSIDE_LEVEL_UP),
        ('longRest', True, False, ChangeReason.LOCKED_OUTSIDE_LONG_REST),
    ])
    def test_swap_mode_locks(self, spellbook, wizard, mode, level_up, long_rest, reason):
        strict(wizard)
        wizard.flags[MODULE_ID][FLAGS.CLASS_RULES] = {'wizard': {'spellSwapping': mode}}
        shield = wizard.get_item('item-shield')
        decision = spellbook.spells.can_change_spell_status(shield, False, True, level_up, long_rest, 'wizard')
        assert decision.reason == reason

    def test_unprepare_inside_window(self, spellbook, wizard):
        strict(wizard)
        shield = wizard.get_item('item-shield')
        assert spellbook.spells.can_change_spell_status(shield, False, True, False, True, 'wizard').allowed

    def test_unsaved_pick_can_be_unchecked(self, spellbook, wizard):
        strict(wizard)
        wizard.flags[MODULE_ID][FLAGS.CLASS_RULES] = {'wizard': {'spellSwapping': 'none'}}
        assert spellbook.spells.can_change_spell_status(library_spell('sleep'), False, False, False, False, 'wizard').allowed


class TestPreparationStatus:
    def test_owned_prepared_spell(self, spellbook, wizard):
        status = spellbook.spells.get_spell_preparation_status(library_spell('shield'), 'wizard')
        assert status.prepared
        assert status.is_owned
        assert not status.disabled
        assert status.source_item_id == 'item-shield'

    @pytest.mark.parametrize('changes,reason', [
        ({'prepared': PreparedState.ALWAYS}, ChangeReason.ALWAYS_PREPARED),
        ({'cached_for': 'Actor.actor0001.Item.feat1'}, ChangeReason.GRANTED),
        ({'method': 'innate'}, ChangeReason.SPECIAL_MODE),
        ({'method': 'atwill'}, ChangeReason.SPECIAL_MODE),
    ])
    def test_locked_items(self, spellbook, wizard, changes, reason):
        wizard.items.append(library_spell('sleep').copy(
            id='item-sleep', uuid='Actor.actor0001.Item.item-sleep', source_uuid=spell_uuid('sleep'),
            source_class='wizard', **changes))
        status = spellbook.spells.get_spell_preparation_status(library_spell('sleep'), 'wizard')
        assert status.disabled
        assert status.reason == reason

    def test_prepared_by_other_class(self, context, host):
        actor = host.add_actor(make_actor(
            actor_id='multi', classes=[wizard_class(), cleric_class()],
            flags=prepared_flags({'wizard': [], 'cleric': ['bless']})))
        status = ActorSpellbook(context, actor.id).spells.get_spell_preparation_status(library_spell('bless'), 'wizard')
        assert status.prepared_by_other_class == 'cleric'
        assert status.reason == ChangeReason.PREPARED_BY_OTHER_CLASS

    def test_cantrip_locked_at_strict_maximum(self, spellbook, wizard):
        strict(wizard)
        status = spellbook.spells.get_spell_preparation_status(library_spell('prestidigitation'), 'wizard')
        assert status.is_cantrip_locked
        assert status.reason == ChangeReason.MAXIMUM_REACHED


class TestSaveClassPreparedSpells:
    async def test_prepare_and_unprepare(self, spellbook, host, wizard):
        result = await spellbook.spells.save_class_prepared_spells('wizard', [
            row('sleep', True),
            row('shield', False, was_prepared=True),
        ])
        actor = host.get_actor(wizard.id)
        assert actor.get_item('item-shield') is None
        created = [item for item in actor.items if item.id in result.created_item_ids]
        assert [(item.name, item.source_class, item.prepared) for item in created] == [('Sleep', 'wizard', 1)]
        assert result.spell_changes.added == ['Sleep']
        assert result.spell_changes.removed == ['Shield']
        assert result.deleted_item_ids == ['item-shield']

    async def test_unsubmitted_entries_are_kept(self, spellbook, host, wizard):
        await spellbook.spells.save_class_prepared_spells('wizard', [row('sleep', True)])
        keys = prepared_keys(host, wizard.id, 'wizard')
        assert f"wizard:{spell_uuid('magic-missile')}" in keys
        assert f"wizard:{spell_uuid('fire-bolt')}" in keys
        assert f"wizard:{spell_uuid('sleep')}" in keys
        flags = flags_of(host, wizard.id)
        assert projection_matches(flags[FLAGS.PREPARED_SPELLS], flags[FLAGS.PREPARED_SPELLS_BY_CLASS])

    async def test_same_spell_in_two_classes(self, context, host):
        actor = host.add_actor(make_actor(actor_id='multi', classes=[wizard_class(), cleric_class()]))
        spells = ActorSpellbook(context, actor.id).spells
        await spells.save_class_prepared_spells('wizard', [row('shield', True)])
        await spells.save_class_prepared_spells('cleric', [row('shield', True)])
        flags = flags_of(host, actor.id)
        assert flags[FLAGS.PREPARED_SPELLS] == [spell_uuid('shield'), spell_uuid('shield')]
        assert sorted(item.source_class for item in host.get_actor(actor.id).items) == ['cleric', 'wizard']

    async def test_unassigned_item_is_claimed(self, spellbook, host, wizard):
        wizard.items.append(owned_spell('sleep', None, prepared=PreparedState.UNPREPARED))
        result = await spellbook.spells.save_class_prepared_spells('wizard', [row('sleep', True)])
        sleep = host.get_actor(wizard.id).get_item('item-sleep')
        assert result.created_item_ids == []
        assert (sleep.source_class, sleep.prepared, sleep.method) == ('wizard', 1, 'spell')

    async def test_ritual_always_keeps_a_ritual_copy(self, spellbook, host, wizard):
        await spellbook.spells.save_class_prepared_spells('wizard', [row('detect-magic', True)])
        copies = [item for item in host.get_actor(wizard.id).items if item.name == 'Detect Magic']
        assert sorted(item.method for item in copies) == ['ritual', 'spell']
        ritual = next(item for item in copies if item.method == 'ritual')
        assert ritual.prepared == 0
        assert ritual.get_flag(FLAGS.IS_MODULE_RITUAL)

        await spellbook.spells.save_class_prepared_spells('wizard', [row('detect-magic', False, was_prepared=True)])
        copies = [item for item in host.get_actor(wizard.id).items if item.name == 'Detect Magic']
        assert [item.method for item in copies] == ['ritual']

    async def test_ritual_prepared_mode_drops_module_copy(self, context, host):
        ritual = owned_spell('detect-magic', 'cleric', prepared=PreparedState.UNPREPARED,
                             method='ritual', item_id='ritual-detect-magic')
        ritual.flags = {MODULE_ID: {FLAGS.IS_MODULE_RITUAL: True}}
        actor = host.add_actor(make_actor(
            actor_id='cleric', classes=[cleric_class()],
            items=[owned_spell('detect-magic', 'cleric'), ritual],
            flags=prepared_flags({'cleric': ['detect-magic']})))
        spells = ActorSpellbook(context, actor.id).spells
        await spells.save_class_prepared_spells('cleric', [row('detect-magic', False, was_prepared=True)])
        assert host.get_actor(actor.id).items == []

    async def test_locked_items_are_never_removed(self, spellbook, host, wizard):
        wizard.get_item('item-shield').prepared = PreparedState.ALWAYS
        wizard.get_item('item-magic-missile').method = 'innate'
        await spellbook.spells.save_class_prepared_spells('wizard', [
            row('shield', False, was_prepared=True),
            row('magic-missile', False, was_prepared=True),
        ])
        actor = host.get_actor(wizard.id)
        assert actor.get_item('item-shield') is not None
        assert actor.get_item('item-magic-missile') is not None

    async def test_pact_caster_items(self, context, host):
        actor = host.add_actor(make_actor(actor_id='warlock', classes=[warlock_class()]))
        spells = ActorSpellbook(context, actor.id).spells
        await spells.save_class_prepared_spells('warlock', [row('shield', True), row('mage-hand', True)])
        methods = {item.name: item.method for item in host.get_actor(actor.id).items}
        assert methods == {'Shield': 'pact', 'Mage Hand': 'spell'}

    async def test_over_limit_is_reported(self, spellbook, wizard):
        result = await spellbook.spells.save_class_prepared_spells('wizard', [
            row('sleep', True), row('misty-step', True), row('find-familiar', True),
        ])
        assert result.spells_over_limit.current == 5
        assert result.spells_over_limit.max == 4
        assert result.cantrips_over_limit is None

    async def test_list_shaped_flag_is_replaced(self, spellbook, host, wizard):
        wizard.flags[MODULE_ID][FLAGS.PREPARED_SPELLS_BY_CLASS] = [spell_uuid('shield')]
        await spellbook.spells.save_class_prepared_spells('wizard', [row('shield', True, was_prepared=True)])
        assert flags_of(host, wizard.id)[FLAGS.PREPARED_SPELLS_BY_CLASS] == {
            'wizard': [f"wizard:{spell_uuid('shield')}"]}

    async def test_inconsistent_flags_abort_without_writes(self, spellbook, host, wizard):
        wizard.flags[MODULE_ID][FLAGS.PREPARED_SPELLS_BY_CLASS] = {'wizard': [f"cleric:{spell_uuid('bless')}"]}
        with pytest.raises(InvariantViolationError):
            await spellbook.spells.save_class_prepared_spells('wizard', [row('sleep', True)])
        assert host.write_log == []

    async def test_host_failure_propagates(self, spellbook, host):
        host.failing_operations = {'set_actor_flag'}
        with pytest.raises(HostError):
            await spellbook.spells.save_class_prepared_spells('wizard', [row('sleep', True)])

    async def test_auto_delete_unprepared(self, spellbook, host, wizard):
        host.settings['autoDeleteUnpreparedSpells'] = True
        wizard.items.append(owned_spell('sleep', 'wizard', prepared=PreparedState.UNPREPARED))
        await spellbook.spells.save_class_prepared_spells('wizard', [row('shield', True, was_prepared=True)])
        assert host.get_actor(wizard.id).get_item('item-sleep') is None


class TestCommitPreparation:
    async def test_gm_digest_in_notify_mode(self, spellbook, host):
        summary = await spellbook.spells.commit_preparation({'wizard': [row('sleep', True)]})
        assert summary.class_changes['wizard'].spell_changes.added == ['Sleep']
        assert len(host.chat_log) == 1
        message = host.chat_log[0]
        assert message['whisper'] == [GM_ID]
        assert message['flags'][MODULE_ID][FLAGS.MESSAGE_TYPE] == 'update-report'
        assert 'Sleep' in message['content']

    async def test_no_digest_in_strict_mode(self, spellbook, host, wizard):
        strict(wizard)
        await spellbook.spells.commit_preparation({'wizard': [row('sleep', True)]})
        assert host.chat_log == []

    async def test_no_digest_without_changes(self, spellbook, host):
        await spellbook.spells.commit_preparation({'wizard': [row('shield', True, was_prepared=True)]})
        assert host.chat_log == []


class TestMaintenance:
    async def test_stale_entries_are_dropped(self, spellbook, host, wizard):
        wizard.get_item('item-shield').source_class = 'cleric'
        assert await spellbook.spells.cleanup_stale_preparation_flags() == 1
        assert f"wizard:{spell_uuid('shield')}" not in prepared_keys(host, wizard.id, 'wizard')

    async def test_cantrip_entries_removed_for_class(self, spellbook, host, wizard):
        assert await spellbook.spells.cleanup_cantrips_for_class('wizard') == 3
        assert prepared_keys(host, wizard.id, 'wizard') == [
            f"wizard:{spell_uuid('magic-missile')}", f"wizard:{spell_uuid('shield')}"]
