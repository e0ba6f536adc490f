"""
Migration base class and shared helpers.
A migration is a one-shot, idempotent transform over persisted data. The
runner records the version it completed under SETTINGS.COMPLETED_MIGRATIONS
and skips it afterwards.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from ..constants import Ownership
from ..host.records import JournalEntryRecord, JournalPageRecord
from ..models import MigrationResult


class Migration(ABC):
    """Base class for data migrations"""

    key: str = ''
    name: str = ''
    version: int = 1

    def new_result(self) -> MigrationResult:
        return MigrationResult(key=self.key, name=self.name, version=self.version)

    @abstractmethod
    async def migrate(self, context) -> MigrationResult:
        """Run the transform; per-document failures go into result.errors"""

    def __repr__(self):
        return f'<{type(self).__name__} {self.key} v{self.version}>'


def gm_ids(host) -> List[str]:
    return [user.id for user in host.get_users() if user.is_gm]


def ownership_equal(current: Optional[Dict[str, int]], expected: Dict[str, int]) -> bool:
    current = current or {}
    keys = set(current) | set(expected)
    return all(current.get(key) == expected.get(key) for key in keys)


def with_owners(current: Optional[Dict[str, int]], default: int, owners: Iterable[str]) -> Dict[str, int]:
    """Current matrix with the default level replaced and each owner set to OWNER"""
    matrix = dict(current or {})
    matrix['default'] = int(default)
    for user_id in owners:
        matrix[user_id] = int(Ownership.OWNER)
    return matrix


def first_page(journal: JournalEntryRecord) -> Optional[JournalPageRecord]:
    return journal.pages[0] if journal.pages else None
