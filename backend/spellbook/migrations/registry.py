"""
Registered migrations, in run order.
Later migrations may rely on shapes produced by earlier ones.
"""

from typing import List, Optional

from .base import Migration
from .custom_spell_list import CustomSpellListFormatMigration, CustomSpellListNullToArrayMigration
from .deprecated_flags import DeprecatedFlagsMigration
from .ownership_validation import OwnershipValidationMigration
from .spell_list_folders import SpellListFoldersMigration
from .user_data_schema import UserDataSchemaMigration

MIGRATION_REGISTRY = [
    DeprecatedFlagsMigration,
    SpellListFoldersMigration,           # Ownership checks look at the moved journals
    OwnershipValidationMigration,
    CustomSpellListFormatMigration,      # String values first, then nulls
    CustomSpellListNullToArrayMigration,
    UserDataSchemaMigration,
]


def get_migrations() -> List[Migration]:
    """Fresh instances in run order"""
    return [migration_class() for migration_class in MIGRATION_REGISTRY]


def get_migration(key: str) -> Optional[Migration]:
    for migration_class in MIGRATION_REGISTRY:
        if migration_class.key == key:
            return migration_class()
    return None
