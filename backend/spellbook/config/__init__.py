from .logging_config import configure_logging
from .settings import SETTING_DEFINITIONS, SettingDefinition, SpellbookSettings

__all__ = ['configure_logging', 'SETTING_DEFINITIONS', 'SettingDefinition', 'SpellbookSettings']
