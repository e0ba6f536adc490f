"""
Tests for the favorites and notes facade
"""

import pytest

from spellbook.services.user_data_api import SpellUserDataAPI
from tests.fixtures.host_factory import GM_ID, PLAYER_ID, spell_uuid


@pytest.fixture
def api(context):
    return SpellUserDataAPI(context.store)


class TestSpellUserDataAPI:
    async def test_favorite(self, api, wizard):
        assert not api.get_favorite(spell_uuid('sleep'), PLAYER_ID, wizard.id)
        assert (await api.set_favorite(spell_uuid('sleep'), True, PLAYER_ID, wizard.id)).ok
        assert api.get_favorite(spell_uuid('sleep'), PLAYER_ID, wizard.id)
        await api.set_favorite(spell_uuid('sleep'), False, PLAYER_ID, wizard.id)
        assert not api.get_favorite(spell_uuid('sleep'), PLAYER_ID, wizard.id)

    async def test_notes(self, api, wizard):
        assert api.get_notes(spell_uuid('sleep'), PLAYER_ID, wizard.id) == ''
        await api.set_notes(spell_uuid('sleep'), 'Not on undead', PLAYER_ID, wizard.id)
        assert api.get_notes(spell_uuid('sleep'), PLAYER_ID, wizard.id) == 'Not on undead'
        # favorites are untouched by a notes write
        assert not api.get_favorite(spell_uuid('sleep'), PLAYER_ID, wizard.id)

    async def test_gm_writes_fail(self, api, wizard):
        result = await api.set_notes(spell_uuid('sleep'), 'x', GM_ID, wizard.id)
        assert not result.ok
