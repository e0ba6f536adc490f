"""Saved preparation loadouts"""

from typing import List, Optional

from pydantic import Field

from .base import SpellbookModel


class Loadout(SpellbookModel):
    id: str
    name: str = Field(..., min_length=1)
    description: str = ''
    class_identifier: Optional[str] = Field(None, description="Class the loadout belongs to; None applies to any class")
    spell_configuration: List[str] = Field(default_factory=list, description="Spell uuids to prepare")
    created_at: int = 0
    updated_at: int = 0


class LoadoutExport(SpellbookModel):
    version: int
    exported_at: int
    actor_id: Optional[str] = None
    loadouts: List[Loadout]
