"""
Setting definitions and typed access.

Values come from the host's setting store. When the host has no value, an
environment override (loaded from .env) is used, then the built-in default.
Values outside a setting's domain fall back to the default with a warning.
"""

import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from dotenv import load_dotenv
from loguru import logger

from ..constants import (
    DEFAULT_CANTRIP_SCALE_VALUES, DEFAULT_NOTES_MAX_LENGTH, SETTINGS,
    EnforcementMode, RuleSet,
)

# Load environment variables
load_dotenv()

DEFAULT_FOCUS_OPTIONS = ['Offensive', 'Defensive', 'Healing', 'Utility', 'Control', 'Support']


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', '1', 'yes', 'on'):
        return True
    if isinstance(value, str) and value.strip().lower() in ('false', '0', 'no', 'off'):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_rule_set(value: Any) -> RuleSet:
    return RuleSet(value)


def _parse_enforcement(value: Any) -> EnforcementMode:
    mode = EnforcementMode.parse(value)
    if mode is None:
        raise ValueError(f"unknown enforcement mode: {value!r}")
    return mode


def _parse_scale_keys(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        keys = [str(v).strip() for v in value]
    else:
        keys = [part.strip() for part in str(value).split(',')]
    keys = [key for key in keys if key]
    if not keys:
        raise ValueError("no scale value keys")
    return keys


def _parse_notes_length(value: Any) -> int:
    length = int(value)
    if not 10 <= length <= 1000:
        raise ValueError(f"notes length out of range: {length}")
    return length


def _parse_mapping(value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError("expected a mapping")
    return dict(value)


def _parse_string_list(value: Any) -> List[str]:
    if isinstance(value, dict) and 'focuses' in value:
        value = [focus.get('name') if isinstance(focus, dict) else focus for focus in value['focuses']]
    if not isinstance(value, (list, tuple)):
        raise ValueError("expected a list")
    return [str(v) for v in value if v]


@dataclass(frozen=True)
class SettingDefinition:
    key: str
    default: Any
    parse: Callable[[Any], Any]
    env_var: Optional[str] = None
    scope: str = 'world'


SETTING_DEFINITIONS: Dict[str, SettingDefinition] = {
    definition.key: definition for definition in (
        SettingDefinition(SETTINGS.SPELLCASTING_RULE_SET, RuleSet.LEGACY, _parse_rule_set,
                          env_var='SPELLBOOK_RULE_SET'),
        SettingDefinition(SETTINGS.CANTRIP_SCALE_VALUES, DEFAULT_CANTRIP_SCALE_VALUES, _parse_scale_keys),
        SettingDefinition(SETTINGS.ENABLE_SPELL_USAGE_TRACKING, True, _parse_bool,
                          env_var='SPELLBOOK_USAGE_TRACKING'),
        SettingDefinition(SETTINGS.OVER_LIMIT_ENFORCEMENT, EnforcementMode.NOTIFY_GM, _parse_enforcement,
                          env_var='SPELLBOOK_ENFORCEMENT'),
        SettingDefinition(SETTINGS.SUPPRESS_MIGRATION_WARNINGS, False, _parse_bool),
        SettingDefinition(SETTINGS.AVAILABLE_FOCUS_OPTIONS, DEFAULT_FOCUS_OPTIONS, _parse_string_list),
        SettingDefinition(SETTINGS.SPELL_NOTES_MAX_LENGTH, DEFAULT_NOTES_MAX_LENGTH, _parse_notes_length),
        SettingDefinition(SETTINGS.CUSTOM_SPELL_LIST_MAPPINGS, {}, _parse_mapping),
        SettingDefinition(SETTINGS.AUTO_DELETE_UNPREPARED_SPELLS, False, _parse_bool, scope='client'),
        SettingDefinition(SETTINGS.COMPLETED_MIGRATIONS, {}, _parse_mapping),
    )
}


class SpellbookSettings:
    """Typed reader over the host setting store"""

    def __init__(self, host):
        self.host = host
        self._warned: set = set()

    def get(self, key: str) -> Any:
        definition = SETTING_DEFINITIONS.get(key)
        raw = self.host.get_setting(key)
        if definition is None:
            return raw

        for source, value in self._candidates(definition, raw):
            if value is None:
                continue
            try:
                return definition.parse(value)
            except (TypeError, ValueError) as e:
                if (key, source) not in self._warned:
                    logger.warning(f"Invalid {source} value for setting '{key}': {value!r} ({e}); using default")
                    self._warned.add((key, source))
        return self._default(definition)

    def _candidates(self, definition: SettingDefinition, raw: Any) -> List[Tuple[str, Any]]:
        candidates = [('host', raw)]
        if definition.env_var:
            candidates.append(('environment', os.getenv(definition.env_var)))
        return candidates

    @staticmethod
    def _default(definition: SettingDefinition) -> Any:
        default = definition.default
        if isinstance(default, (list, dict)):
            return type(default)(default)
        if isinstance(default, str) and definition.parse is _parse_scale_keys:
            return _parse_scale_keys(default)
        return default

    async def set(self, key: str, value: Any) -> None:
        await self.host.set_setting(key, value)

    @property
    def rule_set(self) -> RuleSet:
        return self.get(SETTINGS.SPELLCASTING_RULE_SET)

    @property
    def cantrip_scale_keys(self) -> List[str]:
        return self.get(SETTINGS.CANTRIP_SCALE_VALUES)

    @property
    def usage_tracking_enabled(self) -> bool:
        return self.get(SETTINGS.ENABLE_SPELL_USAGE_TRACKING)

    @property
    def enforcement(self) -> EnforcementMode:
        return self.get(SETTINGS.OVER_LIMIT_ENFORCEMENT)

    @property
    def suppress_migration_warnings(self) -> bool:
        return self.get(SETTINGS.SUPPRESS_MIGRATION_WARNINGS)

    @property
    def focus_options(self) -> List[str]:
        return self.get(SETTINGS.AVAILABLE_FOCUS_OPTIONS)

    @property
    def notes_max_length(self) -> int:
        return self.get(SETTINGS.SPELL_NOTES_MAX_LENGTH)

    @property
    def custom_spell_list_mappings(self) -> Dict[str, str]:
        return self.get(SETTINGS.CUSTOM_SPELL_LIST_MAPPINGS)

    @property
    def auto_delete_unprepared(self) -> bool:
        return self.get(SETTINGS.AUTO_DELETE_UNPREPARED_SPELLS)

    @property
    def completed_migrations(self) -> Dict[str, int]:
        return self.get(SETTINGS.COMPLETED_MIGRATIONS)
