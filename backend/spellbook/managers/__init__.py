from .rule_set_manager import RuleSetManager
from .cantrip_manager import CantripManager
from .spell_manager import SpellManager
from .loadout_manager import LoadoutManager
from .favorites_manager import FavoritesManager
from .form_state import PreparationFormState, SpellCheckbox

__all__ = [
    'RuleSetManager',
    'CantripManager',
    'SpellManager',
    'LoadoutManager',
    'FavoritesManager',
    'PreparationFormState',
    'SpellCheckbox',
]
