"""
Shared fixtures: an in-memory host with a GM, one player and the spell library,
a controllable clock and a context whose confirmations are a Mock.
"""
from unittest.mock import Mock

import pytest

from spellbook.actor_spellbook import ActorSpellbook
from spellbook.context import SpellbookContext
from spellbook.services.usage_tracker import SpellUsageTracker
from spellbook.services.user_data_store import UserDataStore
from tests.fixtures.host_factory import (
    FixedClock, make_actor, make_host, owned_spell, prepared_flags, wizard_class,
)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def confirm():
    """Answers yes to every question unless a test says otherwise"""
    return Mock(return_value=True)


@pytest.fixture
def host():
    return make_host()


@pytest.fixture
def context(host, confirm, clock):
    ctx = SpellbookContext(host, confirm=confirm, clock=clock)
    ctx.store = UserDataStore(ctx)
    return ctx


@pytest.fixture
def wizard(host):
    """Level 1 wizard with three prepared cantrips and two prepared spells"""
    return host.add_actor(make_actor(
        classes=[wizard_class(level=1, cantrips=3, prepared_max=4)],
        items=[
            owned_spell('fire-bolt', 'wizard'),
            owned_spell('mage-hand', 'wizard'),
            owned_spell('light', 'wizard'),
            owned_spell('magic-missile', 'wizard'),
            owned_spell('shield', 'wizard'),
        ],
        flags=prepared_flags({'wizard': ['fire-bolt', 'mage-hand', 'light', 'magic-missile', 'shield']}),
    ))


@pytest.fixture
def spellbook(context, wizard):
    return ActorSpellbook(context, wizard.id)


@pytest.fixture(autouse=True)
def reset_usage_tracker():
    yield
    SpellUsageTracker.shutdown()
