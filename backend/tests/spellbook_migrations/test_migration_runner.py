"""
Tests for MigrationRunner - completion markers, error boundaries and reporting
"""

import pytest

from spellbook.constants import FLAGS, MODULE_ID, PACKS
from spellbook.events import EventType
from spellbook.migrations.base import Migration
from spellbook.migrations.registry import get_migration, get_migrations
from spellbook.migrations.runner import MigrationRunner
from spellbook.services.change_reporter import ChangeReporter
from tests.fixtures.host_factory import GM_ID, PLAYER_ID, spell_list_entry


class Counting(Migration):
    key = 'counting'
    name = 'Counting'
    version = 2

    def __init__(self, updated=1):
        self.calls = 0
        self.updated = updated

    async def migrate(self, context):
        self.calls += 1
        result = self.new_result()
        result.processed = 1
        result.updated = self.updated
        return result


class Boom(Migration):
    key = 'boom'
    name = 'Boom'

    async def migrate(self, context):
        raise RuntimeError('kaput')


@pytest.fixture
def counting():
    return Counting()


class TestRegistry:
    def test_order_and_lookup(self):
        assert [m.key for m in get_migrations()] == [
            'deprecatedFlags', 'spellListFolders', 'ownershipValidation',
            'customSpellListFormat', 'customSpellListNullToArray', 'userDataSchema',
        ]
        assert get_migration('userDataSchema').version == 3
        assert get_migration('packSorting') is None


class TestCompletion:
    async def test_players_do_not_run_migrations(self, context, host, counting):
        host.current_user_id = PLAYER_ID
        report = await MigrationRunner(context, migrations=[counting]).run()
        assert report.results == []
        assert counting.calls == 0
        assert 'completedMigrations' not in host.settings

    async def test_completed_version_recorded(self, context, host, counting):
        runner = MigrationRunner(context, migrations=[counting])
        assert runner.pending() == [counting]
        await runner.run()
        assert host.settings['completedMigrations'] == {'counting': 2}
        assert runner.pending() == []

    async def test_completed_migrations_skipped(self, context, host, counting):
        runner = MigrationRunner(context, migrations=[counting])
        await runner.run()
        report = await runner.run()
        assert counting.calls == 1
        assert report.results[0].skipped
        assert not report.has_changes

    async def test_older_version_runs_again(self, context, host, counting):
        host.settings['completedMigrations'] = {'counting': 1}
        await MigrationRunner(context, migrations=[counting]).run()
        assert counting.calls == 1
        assert host.settings['completedMigrations'] == {'counting': 2}

    async def test_force(self, context, counting):
        runner = MigrationRunner(context, migrations=[counting])
        await runner.run()
        await runner.run(force=True)
        assert counting.calls == 2

    async def test_failure_is_contained_and_retried(self, context, host, counting):
        runner = MigrationRunner(context, migrations=[Boom(), counting])
        report = await runner.run()
        assert report.results[0].errors == ['RuntimeError: kaput']
        assert counting.calls == 1
        assert host.settings['completedMigrations'] == {'counting': 2}
        assert [m.key for m in runner.pending()] == ['boom']


class TestReporting:
    async def test_changes_notify_and_whisper_the_gm(self, context, host, counting):
        await MigrationRunner(context, reporter=ChangeReporter(context), migrations=[counting]).run()
        assert host.notifications == [('info', 'SPELLBOOK.Migrations.CompleteNotification')]
        message, = host.chat_log
        assert message['whisper'] == [GM_ID]
        assert message['flags'][MODULE_ID][FLAGS.MESSAGE_TYPE] == 'migration-report'

    async def test_quiet_run_sends_nothing(self, context, host):
        await MigrationRunner(context, reporter=ChangeReporter(context), migrations=[Counting(updated=0)]).run()
        assert host.notifications == []
        assert host.chat_log == []

    async def test_completion_event(self, context, counting):
        runner = MigrationRunner(context, migrations=[Boom(), counting])
        await runner.run()
        await runner.run()
        first, second = context.bus.get_event_history(EventType.MIGRATIONS_COMPLETED)
        assert (first.updated, first.errors, first.keys) == (1, 1, ['boom', 'counting'])
        assert second.keys == ['boom']


class TestRegisteredMigrations:
    @pytest.fixture
    async def world(self, context, host, wizard):
        wizard.flags[MODULE_ID].update({
            'sidebarCollapsed': True,
            FLAGS.CLASS_RULES: {'wizard': {'customSpellList': 'JournalEntry.x.JournalEntryPage.y'},
                                'cleric': {'customSpellList': None}},
        })
        host.add_journal_entry(spell_list_entry('c', 'Custom - Mine', ['sleep'], page_flags={FLAGS.IS_CUSTOM: True}))
        await context.store.ensure_infrastructure()
        return host

    async def test_first_run_updates_world(self, context, world, wizard):
        report = await MigrationRunner(context).run()
        assert report.total_errors == 0
        flags = world.get_actor(wizard.id).flags[MODULE_ID]
        assert 'sidebarCollapsed' not in flags
        assert flags[FLAGS.CLASS_RULES] == {'wizard': {'customSpellList': ['JournalEntry.x.JournalEntryPage.y']},
                                            'cleric': {'customSpellList': []}}
        entry, = world.get_journal_entries(PACKS.SPELL_LISTS)
        assert entry.name == 'Mine'
        assert entry.folder_id is not None
        assert set(world.settings['completedMigrations']) == {m.key for m in get_migrations()}

    async def test_forced_rerun_changes_nothing(self, context, world):
        runner = MigrationRunner(context)
        await runner.run()
        writes = len(world.write_log)
        report = await runner.run(force=True)
        assert report.total_updated == 0
        assert not report.has_changes
        assert len(world.write_log) == writes
