"""
Event system for the spell book engine
Provides pub/sub between managers without them referencing each other
"""

import time
from typing import Dict, List, Callable, Optional
from dataclasses import dataclass, field
from enum import Enum
from loguru import logger


class EventType(Enum):
    """Standard event types for spell book management"""
    RULE_SET_APPLIED = 'rule_set_applied'
    CLASS_RULES_UPDATED = 'class_rules_updated'
    CLASSES_INITIALIZED = 'classes_initialized'
    SPELL_LIST_RECONCILED = 'spell_list_reconciled'
    CANTRIP_TRACKED = 'cantrip_tracked'
    SWAP_COMPLETED = 'swap_completed'
    SPELLS_PREPARED = 'spells_prepared'
    LOADOUT_SAVED = 'loadout_saved'
    LOADOUT_DELETED = 'loadout_deleted'
    USAGE_RECORDED = 'usage_recorded'
    MIGRATIONS_COMPLETED = 'migrations_completed'


@dataclass
class EventData:
    """Base class for event data"""
    event_type: EventType
    source_manager: str
    timestamp: float

    def validate(self) -> bool:
        return True


@dataclass
class ClassRulesEvent(EventData):
    """Rule record(s) for an actor changed"""
    actor_id: str = ''
    class_ids: List[str] = field(default_factory=list)


@dataclass
class SpellsPreparedEvent(EventData):
    """A preparation commit finished for one class"""
    actor_id: str = ''
    class_id: str = ''
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.event_type = EventType.SPELLS_PREPARED


@dataclass
class SwapCompletedEvent(EventData):
    actor_id: str = ''
    is_level_up: bool = False

    def __post_init__(self):
        self.event_type = EventType.SWAP_COMPLETED

    def validate(self) -> bool:
        return bool(self.actor_id)


@dataclass
class UsageRecordedEvent(EventData):
    actor_id: str = ''
    spell_uuid: str = ''
    context: str = 'exploration'

    def __post_init__(self):
        self.event_type = EventType.USAGE_RECORDED

    def validate(self) -> bool:
        return self.context in ('combat', 'exploration')


@dataclass
class MigrationsCompletedEvent(EventData):
    updated: int = 0
    errors: int = 0
    keys: List[str] = field(default_factory=list)

    def __post_init__(self):
        self.event_type = EventType.MIGRATIONS_COMPLETED


class EventEmitter:
    """Base class for objects that can emit and listen to events"""

    def __init__(self):
        self._observers: Dict[EventType, List[Callable]] = {}
        self._event_history: List[EventData] = []

    def on(self, event_type: EventType, callback: Callable[[EventData], None]):
        """
        Register a callback for an event type

        Args:
            event_type: The type of event to listen for
            callback: Function to call when event is emitted
        """
        self._observers.setdefault(event_type, []).append(callback)
        logger.debug(f"Registered callback for {event_type.value}")

    def off(self, event_type: EventType, callback: Callable[[EventData], None]):
        """Unregister a callback for an event type"""
        callbacks = self._observers.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            logger.debug(f"Unregistered callback for {event_type.value}")

    def emit(self, event_type, **payload):
        """
        Emit an event to all registered observers

        Args:
            event_type: EventType or EventData. A bare EventType is wrapped in EventData
            payload: Extra fields for a bare EventType; ignored for EventData
        """
        if isinstance(event_type, EventData):
            event_data = event_type
            if not event_data.validate():
                logger.error(f"Invalid event data for {event_data.event_type}")
                return
        else:
            event_data = EventData(
                event_type=event_type,
                source_manager=type(self).__name__,
                timestamp=time.time()
            )
            for key, value in payload.items():
                setattr(event_data, key, value)

        self._event_history.append(event_data)

        callbacks = list(self._observers.get(event_data.event_type, []))
        if callbacks:
            logger.debug(f"Emitting {event_data.event_type.value} from {event_data.source_manager}")
        for callback in callbacks:
            try:
                callback(event_data)
            except Exception as e:
                logger.error(f"Error in event callback for {event_data.event_type.value}: {e}")

    def get_event_history(self, event_type: Optional[EventType] = None) -> List[EventData]:
        """
        Get history of emitted events

        Args:
            event_type: Optional filter by event type
        """
        if event_type:
            return [e for e in self._event_history if e.event_type == event_type]
        return self._event_history.copy()


class EventBus(EventEmitter):
    """Session-wide emitter shared by every manager through SpellbookContext"""
