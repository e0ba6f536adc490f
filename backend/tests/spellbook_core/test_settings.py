"""
Tests for typed setting access - host values, environment overrides and defaults
"""

import pytest

from spellbook.config.settings import SpellbookSettings
from spellbook.constants import SETTINGS, EnforcementMode, RuleSet
from tests.fixtures.host_factory import make_host


@pytest.fixture
def settings():
    return SpellbookSettings(make_host())


class TestDefaults:
    def test_defaults_without_host_values(self, settings, monkeypatch):
        monkeypatch.delenv('SPELLBOOK_RULE_SET', raising=False)
        monkeypatch.delenv('SPELLBOOK_ENFORCEMENT', raising=False)
        assert settings.rule_set == RuleSet.LEGACY
        assert settings.enforcement == EnforcementMode.NOTIFY_GM
        assert settings.cantrip_scale_keys == ['cantrips-known', 'cantrips']
        assert settings.notes_max_length == 240
        assert settings.completed_migrations == {}
        assert settings.auto_delete_unprepared is False

    def test_mutable_defaults_are_copies(self, settings):
        settings.completed_migrations['x'] = 1
        assert settings.completed_migrations == {}


class TestHostValues:
    def test_host_value_is_parsed(self, settings):
        settings.host.settings[SETTINGS.SPELLCASTING_RULE_SET] = 'modern'
        settings.host.settings[SETTINGS.CANTRIP_SCALE_VALUES] = 'cantrips, known-cantrips'
        assert settings.rule_set == RuleSet.MODERN
        assert settings.cantrip_scale_keys == ['cantrips', 'known-cantrips']

    @pytest.mark.parametrize('token,expected', [
        ('strict', EnforcementMode.STRICT),
        ('enforced', EnforcementMode.STRICT),
        ('notifyGM', EnforcementMode.NOTIFY_GM),
        ('unenforced', EnforcementMode.UNENFORCED),
    ])
    def test_enforcement_tokens(self, settings, token, expected):
        settings.host.settings[SETTINGS.OVER_LIMIT_ENFORCEMENT] = token
        assert settings.enforcement == expected

    def test_invalid_value_falls_back_to_default(self, settings, monkeypatch):
        monkeypatch.delenv('SPELLBOOK_ENFORCEMENT', raising=False)
        settings.host.settings[SETTINGS.OVER_LIMIT_ENFORCEMENT] = 'whatever'
        settings.host.settings[SETTINGS.SPELL_NOTES_MAX_LENGTH] = 5
        assert settings.enforcement == EnforcementMode.NOTIFY_GM
        assert settings.notes_max_length == 240

    def test_focus_options_accept_legacy_object_shape(self, settings):
        settings.host.settings[SETTINGS.AVAILABLE_FOCUS_OPTIONS] = {
            'focuses': [{'name': 'Offensive'}, {'name': 'Healing'}]}
        assert settings.focus_options == ['Offensive', 'Healing']

    async def test_set_writes_through_host(self, settings):
        await settings.set(SETTINGS.SUPPRESS_MIGRATION_WARNINGS, True)
        assert settings.host.settings[SETTINGS.SUPPRESS_MIGRATION_WARNINGS] is True
        assert settings.suppress_migration_warnings is True


class TestEnvironmentOverrides:
    def test_environment_used_when_host_has_no_value(self, settings, monkeypatch):
        monkeypatch.setenv('SPELLBOOK_RULE_SET', 'modern')
        monkeypatch.setenv('SPELLBOOK_USAGE_TRACKING', 'off')
        assert settings.rule_set == RuleSet.MODERN
        assert settings.usage_tracking_enabled is False

    def test_host_value_wins_over_environment(self, settings, monkeypatch):
        monkeypatch.setenv('SPELLBOOK_RULE_SET', 'modern')
        settings.host.settings[SETTINGS.SPELLCASTING_RULE_SET] = 'legacy'
        assert settings.rule_set == RuleSet.LEGACY
