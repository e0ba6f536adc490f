"""
Central registry for all spell book managers.
Defines the standard set of managers and their registration order.
"""

from typing import Type, List, Tuple
from .managers import (
    RuleSetManager,
    CantripManager,
    SpellManager,
    LoadoutManager,
    FavoritesManager,
)

# Order matters for event setup - managers that emit rule events come before listeners
MANAGER_REGISTRY: List[Tuple[str, Type]] = [
    ('rules', RuleSetManager),        # Emits RULE_SET_APPLIED, CLASS_RULES_UPDATED
    ('cantrips', CantripManager),     # Listens to rule changes
    ('spells', SpellManager),         # Depends on rules and cantrips
    ('loadouts', LoadoutManager),
    ('favorites', FavoritesManager),  # Reads the user data store
]


def get_all_manager_specs() -> List[Tuple[str, Type]]:
    """
    Get all (name, class) manager entries in registration order.
    """
    return MANAGER_REGISTRY.copy()


def get_manager_names() -> List[str]:
    return [name for name, _ in MANAGER_REGISTRY]


def get_manager_class(name: str) -> Type:
    """
    Get the manager class for a given name.

    Returns:
        Manager class or None if not found
    """
    for mgr_name, mgr_class in MANAGER_REGISTRY:
        if mgr_name == name:
            return mgr_class
    return None
