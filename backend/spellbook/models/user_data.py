"""
User-scoped spell metadata.
UserSpellData is the per-spell view; UserDataDocument is the decoded form of
one user's journal page.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import Field

from ..constants import USER_DATA_SCHEMA_VERSION
from .base import SpellbookModel


class ContextUsage(SpellbookModel):
    combat: int = 0
    exploration: int = 0


class UsageStats(SpellbookModel):
    count: int = 0
    last_used: Optional[int] = Field(None, description="Epoch milliseconds of the last cast")
    context_usage: ContextUsage = Field(default_factory=ContextUsage)

    def merged_with(self, other: 'UsageStats') -> 'UsageStats':
        """Component-wise sum, latest lastUsed"""
        last_used = max(
            (value for value in (self.last_used, other.last_used) if value is not None),
            default=None,
        )
        return UsageStats(
            count=self.count + other.count,
            last_used=last_used,
            context_usage=ContextUsage(
                combat=self.context_usage.combat + other.context_usage.combat,
                exploration=self.context_usage.exploration + other.context_usage.exploration,
            ),
        )


class UserSpellData(SpellbookModel):
    notes: str = ''
    favorited: bool = False
    usage_stats: UsageStats = Field(default_factory=UsageStats)


class TagAttributes(SpellbookModel):
    """
    Attributes read from one HTML tag that the codec does not own.
    order lists every attribute name as it appeared, owned ones included,
    so re-emission can put them back where the page had them.
    """
    order: List[str] = Field(default_factory=list)
    extra: Dict[str, str] = Field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.extra)


class SpellDataRow(UserSpellData):
    """One spell's data for one actor, plus what the HTML carried alongside it"""
    spell_name: str = ''
    note_attributes: TagAttributes = Field(default_factory=TagAttributes)
    usage_attributes: TagAttributes = Field(default_factory=TagAttributes)
    note_cells: List[TagAttributes] = Field(default_factory=list)
    usage_cells: List[TagAttributes] = Field(default_factory=list)

    def to_user_data(self) -> UserSpellData:
        return UserSpellData(notes=self.notes, favorited=self.favorited,
                             usage_stats=self.usage_stats.model_copy(deep=True))

    @property
    def has_note_row(self) -> bool:
        return bool(self.notes or self.favorited or self.note_attributes or any(self.note_cells))

    @property
    def has_usage_row(self) -> bool:
        return bool(self.usage_stats.count or self.usage_attributes or any(self.usage_cells))


class ActorSpellData(SpellbookModel):
    actor_id: str
    actor_name: str = ''
    spells: Dict[str, SpellDataRow] = Field(default_factory=dict)
    attributes: TagAttributes = Field(default_factory=TagAttributes)
    notes_table_attributes: TagAttributes = Field(default_factory=TagAttributes)
    usage_table_attributes: TagAttributes = Field(default_factory=TagAttributes)
    # (index, html): markup the codec does not own, placed after the index-th
    # of the heading, notes table and usage table
    extra_content: List[Tuple[int, str]] = Field(default_factory=list)


class UserDataDocument(SpellbookModel):
    """
    Decoded user page. Actor id '' holds notes that older pages stored at user
    level, before notes were partitioned by actor.
    """
    user_id: str
    user_name: str = ''
    schema_version: int = USER_DATA_SCHEMA_VERSION
    actors: Dict[str, ActorSpellData] = Field(default_factory=dict)
    attributes: TagAttributes = Field(default_factory=TagAttributes)

    def actor(self, actor_id: str, actor_name: str = '') -> ActorSpellData:
        section = self.actors.get(actor_id)
        if section is None:
            section = ActorSpellData(actor_id=actor_id, actor_name=actor_name)
            self.actors[actor_id] = section
        elif actor_name and not section.actor_name:
            section.actor_name = actor_name
        return section


class UserDataExport(SpellbookModel):
    version: int
    exported_at: int
    user_id: str
    user_name: str = ''
    schema_version: int = USER_DATA_SCHEMA_VERSION
    content: str
