"""Validation results, preparation status and commit outcomes"""

from typing import Dict, List, Optional

from pydantic import Field

from ..constants import ChangeReason, ErrorKind
from .base import SpellbookModel


class ChangeDecision(SpellbookModel):
    """Outcome of a can-change check. Rejections are data, never exceptions."""
    allowed: bool
    reason: Optional[ChangeReason] = None
    message: Optional[str] = None

    @classmethod
    def allow(cls, message: Optional[str] = None) -> 'ChangeDecision':
        return cls(allowed=True, message=message)

    @classmethod
    def deny(cls, reason: ChangeReason, message: Optional[str] = None) -> 'ChangeDecision':
        return cls(allowed=False, reason=reason, message=message or reason.message_key)


class OperationResult(SpellbookModel):
    ok: bool
    kind: Optional[ErrorKind] = None
    message: Optional[str] = None

    @classmethod
    def success(cls, message: Optional[str] = None) -> 'OperationResult':
        return cls(ok=True, message=message)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> 'OperationResult':
        return cls(ok=False, kind=kind, message=message)


class SpellPreparationStatus(SpellbookModel):
    """How a spell row should render for one class"""
    prepared: bool = False
    is_owned: bool = False
    always_prepared: bool = False
    is_granted: bool = False
    special_mode: Optional[str] = None
    prepared_by_other_class: Optional[str] = None
    disabled: bool = False
    is_cantrip_locked: bool = False
    reason: Optional[ChangeReason] = None
    source_item_id: Optional[str] = None


class SpellChangeSet(SpellbookModel):
    added: List[str] = Field(default_factory=list, description="Spell names")
    removed: List[str] = Field(default_factory=list, description="Spell names")

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed)


class LimitStatus(SpellbookModel):
    current: int
    max: int

    @property
    def over_count(self) -> int:
        return self.current - self.max


class CommitResult(SpellbookModel):
    class_id: str
    cantrip_changes: SpellChangeSet = Field(default_factory=SpellChangeSet)
    spell_changes: SpellChangeSet = Field(default_factory=SpellChangeSet)
    created_item_ids: List[str] = Field(default_factory=list)
    deleted_item_ids: List[str] = Field(default_factory=list)
    cantrips_over_limit: Optional[LimitStatus] = None
    spells_over_limit: Optional[LimitStatus] = None


class SpellCheckInput(SpellbookModel):
    """One row of a preparation form submission"""
    uuid: str
    name: str = ''
    level: int = 0
    prepared: bool = False
    was_prepared: bool = False
    is_ritual: bool = False


class ListDiff(SpellbookModel):
    added: List[str] = Field(default_factory=list)
    removed: List[str] = Field(default_factory=list)
    unchanged_count: int = 0


class AffectedSpell(SpellbookModel):
    name: str
    uuid: str
    level: Optional[int] = None
    class_spell_key: str


class ClassChangeSummary(SpellbookModel):
    """Raw per-class delta collected during a commit"""
    class_name: str = ''
    cantrip_changes: SpellChangeSet = Field(default_factory=SpellChangeSet)
    spell_changes: SpellChangeSet = Field(default_factory=SpellChangeSet)
    cantrips_over_limit: Optional[LimitStatus] = None
    spells_over_limit: Optional[LimitStatus] = None


class ChangeSummary(SpellbookModel):
    actor_id: str
    actor_name: str
    class_changes: Dict[str, ClassChangeSummary] = Field(default_factory=dict)
