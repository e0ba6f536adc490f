"""GM-facing digests for preparation commits and migration runs"""

from typing import List, Optional

from pydantic import Field

from .base import SpellbookModel


class ClassChangeDigest(SpellbookModel):
    class_id: str
    class_name: str
    cantrips_added: str = ''
    cantrips_removed: str = ''
    spells_added: str = ''
    spells_removed: str = ''
    cantrip_over_count: Optional[int] = None
    spell_over_count: Optional[int] = None


class UpdateReportDigest(SpellbookModel):
    actor_id: str
    actor_name: str
    classes: List[ClassChangeDigest] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.classes


class MigrationResult(SpellbookModel):
    key: str
    name: str = ''
    version: int = 1
    processed: int = 0
    updated: int = 0
    errors: List[str] = Field(default_factory=list)
    details: List[str] = Field(default_factory=list)
    skipped: bool = False

    @property
    def has_changes(self) -> bool:
        return self.updated > 0 or bool(self.errors)


class MigrationReport(SpellbookModel):
    results: List[MigrationResult] = Field(default_factory=list)

    @property
    def total_updated(self) -> int:
        return sum(result.updated for result in self.results)

    @property
    def total_errors(self) -> int:
        return sum(len(result.errors) for result in self.results)

    @property
    def has_changes(self) -> bool:
        return any(result.has_changes for result in self.results)
