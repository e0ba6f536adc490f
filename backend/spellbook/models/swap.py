"""Swap-window tracking state"""

from typing import List, Optional

from pydantic import Field

from .base import SpellbookModel


class SwapState(SpellbookModel):
    """The single allowed unlearn/learn pair for one swap window"""
    has_unlearned: bool = False
    unlearned: Optional[str] = None
    has_learned: bool = False
    learned: Optional[str] = None
    original_checked: List[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.has_unlearned and not self.has_learned


class ClassSwapTracking(SpellbookModel):
    level_up: Optional[SwapState] = None
    long_rest: Optional[SwapState] = None

    def window(self, is_level_up: bool) -> Optional[SwapState]:
        return self.level_up if is_level_up else self.long_rest

    @property
    def is_empty(self) -> bool:
        return self.level_up is None and self.long_rest is None
