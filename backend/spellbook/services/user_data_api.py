"""Favorites and notes facade over the user data store"""

from typing import Any, Optional, Union

from ..models import OperationResult


class SpellUserDataAPI:
    """Typed get/set of the favorite bit and notes; caching is the store's"""

    def __init__(self, store):
        self.store = store

    def get_favorite(self, spell: Union[str, Any], user_id: Optional[str] = None,
                     actor_id: Optional[str] = None) -> bool:
        data = self.store.get_user_data_for_spell(spell, user_id, actor_id)
        return bool(data and data.favorited)

    async def set_favorite(self, spell: Union[str, Any], favorited: bool, user_id: Optional[str] = None,
                           actor_id: Optional[str] = None) -> OperationResult:
        return await self.store.set_user_data_for_spell(spell, {'favorited': favorited}, user_id, actor_id)

    def get_notes(self, spell: Union[str, Any], user_id: Optional[str] = None,
                  actor_id: Optional[str] = None) -> str:
        data = self.store.get_user_data_for_spell(spell, user_id, actor_id)
        return data.notes if data else ''

    async def set_notes(self, spell: Union[str, Any], notes: str, user_id: Optional[str] = None,
                        actor_id: Optional[str] = None) -> OperationResult:
        return await self.store.set_user_data_for_spell(spell, {'notes': notes}, user_id, actor_id)
