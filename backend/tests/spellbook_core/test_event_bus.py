"""
Tests for the event bus and the per-actor spell book hub
"""

from unittest.mock import Mock

import pytest

from spellbook.actor_spellbook import ActorSpellbook, LazyManagerProxy, open_spellbook
from spellbook.events import (
    ClassRulesEvent, EventBus, EventType, MigrationsCompletedEvent, UsageRecordedEvent,
)
from spellbook.manager_registry import get_manager_class, get_manager_names
from spellbook.managers import CantripManager, RuleSetManager


class TestEventBus:
    def test_typed_event_reaches_listeners(self):
        bus = EventBus()
        callback = Mock()
        bus.on(EventType.CLASS_RULES_UPDATED, callback)
        event = ClassRulesEvent(event_type=EventType.CLASS_RULES_UPDATED, source_manager='test',
                                timestamp=0.0, actor_id='a1', class_ids=['wizard'])
        bus.emit(event)
        callback.assert_called_once_with(event)
        assert bus.get_event_history(EventType.CLASS_RULES_UPDATED) == [event]

    def test_bare_event_type_carries_payload(self):
        bus = EventBus()
        received = []
        bus.on(EventType.LOADOUT_SAVED, received.append)
        bus.emit(EventType.LOADOUT_SAVED, actor_id='a1', loadout_id='l1')
        assert received[0].actor_id == 'a1'
        assert received[0].loadout_id == 'l1'

    def test_invalid_event_is_dropped(self):
        bus = EventBus()
        callback = Mock()
        bus.on(EventType.USAGE_RECORDED, callback)
        bus.emit(UsageRecordedEvent(event_type=EventType.USAGE_RECORDED, source_manager='test',
                                    timestamp=0.0, context='downtime'))
        callback.assert_not_called()

    def test_failing_listener_does_not_stop_others(self):
        bus = EventBus()
        second = Mock()
        bus.on(EventType.MIGRATIONS_COMPLETED, Mock(side_effect=RuntimeError('boom')))
        bus.on(EventType.MIGRATIONS_COMPLETED, second)
        bus.emit(MigrationsCompletedEvent(event_type=None, source_manager='test', timestamp=0.0))
        second.assert_called_once()

    def test_off_unregisters(self):
        bus = EventBus()
        callback = Mock()
        bus.on(EventType.SWAP_COMPLETED, callback)
        bus.off(EventType.SWAP_COMPLETED, callback)
        bus.emit(EventType.SWAP_COMPLETED)
        callback.assert_not_called()


class TestManagerRegistry:
    def test_registration_order(self):
        assert get_manager_names() == ['rules', 'cantrips', 'spells', 'loadouts', 'favorites']
        assert get_manager_class('rules') is RuleSetManager
        assert get_manager_class('nope') is None


class TestActorSpellbook:
    def test_managers_are_lazy(self, context, wizard):
        spellbook = ActorSpellbook(context, wizard.id)
        assert isinstance(spellbook.get_all_managers()['cantrips'], LazyManagerProxy)
        assert isinstance(spellbook.cantrips, CantripManager)
        assert spellbook.get_all_managers()['cantrips'] is spellbook.cantrips

    def test_eager_registration(self, context, wizard):
        spellbook = ActorSpellbook(context, wizard.id, lazy=False)
        assert isinstance(spellbook.get_all_managers()['rules'], RuleSetManager)

    def test_actor_is_read_through_host(self, context, wizard):
        spellbook = ActorSpellbook(context, wizard.id)
        assert spellbook.actor is context.host.get_actor(wizard.id)

    def test_open_unknown_actor(self, context):
        assert open_spellbook(context, 'missing') is None

    def test_register_rejects_non_callable(self, context, wizard):
        spellbook = ActorSpellbook(context, wizard.id)
        with pytest.raises(ValueError):
            spellbook.register_manager('broken', None)
