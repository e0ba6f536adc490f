"""Pydantic models for persisted flags, user data, loadouts and reports"""

from .base import SpellbookModel
from .loadouts import Loadout, LoadoutExport
from .reports import ClassChangeDigest, MigrationReport, MigrationResult, UpdateReportDigest
from .results import (
    AffectedSpell, ChangeDecision, ChangeSummary, ClassChangeSummary, CommitResult,
    LimitStatus, ListDiff, OperationResult, SpellChangeSet, SpellCheckInput,
    SpellPreparationStatus,
)
from .rules import ClassRules, ClassSettings
from .swap import ClassSwapTracking, SwapState
from .user_data import (
    ActorSpellData, ContextUsage, SpellDataRow, TagAttributes, UsageStats, UserDataDocument,
    UserDataExport, UserSpellData,
)

__all__ = [
    'SpellbookModel', 'Loadout', 'LoadoutExport',
    'ClassChangeDigest', 'MigrationReport', 'MigrationResult', 'UpdateReportDigest',
    'AffectedSpell', 'ChangeDecision', 'ChangeSummary', 'ClassChangeSummary', 'CommitResult',
    'LimitStatus', 'ListDiff', 'OperationResult', 'SpellChangeSet', 'SpellCheckInput',
    'SpellPreparationStatus', 'ClassRules', 'ClassSettings', 'ClassSwapTracking', 'SwapState',
    'ActorSpellData', 'ContextUsage', 'SpellDataRow', 'TagAttributes', 'UsageStats', 'UserDataDocument',
    'UserDataExport', 'UserSpellData',
]
