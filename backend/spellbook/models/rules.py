"""Per-class rule records"""

from typing import List

from pydantic import Field, field_validator

from ..constants import RitualCastingMode, SwapMode
from .base import SpellbookModel


class ClassRules(SpellbookModel):
    """Preparation, swap and ritual configuration for one class on one actor"""
    cantrip_swapping: SwapMode = Field(SwapMode.NONE, description="When cantrips may be exchanged")
    spell_swapping: SwapMode = Field(SwapMode.NONE, description="When prepared spells may be exchanged")
    ritual_casting: RitualCastingMode = Field(RitualCastingMode.NONE, description="Ritual casting access")
    show_cantrips: bool = Field(True, description="Class uses cantrips at all")
    custom_spell_list: List[str] = Field(default_factory=list, description="Spell list uuids replacing the built-in list")
    spell_preparation_bonus: int = Field(0, description="Added to the class's prepared-spell maximum")
    cantrip_preparation_bonus: int = Field(0, description="Added to the class's cantrip maximum")
    force_wizard_mode: bool = False
    spell_learning_cost_multiplier: int = 50
    spell_learning_time_multiplier: int = 2

    @field_validator('custom_spell_list', mode='before')
    @classmethod
    def _normalize_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return [v for v in value if v]

    @field_validator('spell_preparation_bonus', 'cantrip_preparation_bonus',
                     'spell_learning_cost_multiplier', 'spell_learning_time_multiplier', mode='before')
    @classmethod
    def _non_negative(cls, value):
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 0


class ClassSettings(SpellbookModel):
    """Swap modes plus the effective enforcement behavior for a class"""
    cantrip_swapping: SwapMode
    spell_swapping: SwapMode
    ritual_casting: RitualCastingMode
    show_cantrips: bool
    behavior: str
