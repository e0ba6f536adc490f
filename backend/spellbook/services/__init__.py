from .change_reporter import ChangeReporter
from .spell_list_resolver import SpellListResolver
from .usage_tracker import SpellUsageTracker
from .user_data_api import SpellUserDataAPI
from .user_data_store import UserDataStore

__all__ = [
    'ChangeReporter',
    'SpellListResolver',
    'SpellUsageTracker',
    'SpellUserDataAPI',
    'UserDataStore',
]
