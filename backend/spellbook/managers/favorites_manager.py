"""
Favorites Manager - mirrors the user-data favorite bit onto the host's actor favorites list
Host favorites reference embedded items by relative id ('.Item.<itemId>')
"""

from typing import Dict, List, Optional

from loguru import logger

from ..constants import FAVORITE_SORT_BASE, PreparedState
from ..host.batching import ActorUpdate, apply_actor_update
from ..host.records import FavoriteEntry, ItemRecord
from ..identity import canonicalize


def favorite_id(item_id: str) -> str:
    return f'.Item.{item_id}'


class FavoritesManager:
    """Favorites Manager"""

    def __init__(self, spellbook):
        self.spellbook = spellbook
        self.context = spellbook.context
        self.host = spellbook.context.host
        self.actor_id = spellbook.actor_id

    @property
    def actor(self):
        return self.spellbook.actor

    def _spell_items_by_uuid(self) -> Dict[str, ItemRecord]:
        """One item per canonical uuid, preferring a prepared copy"""
        items: Dict[str, ItemRecord] = {}
        for item in self.actor.spells:
            uuid = canonicalize(item)
            current = items.get(uuid)
            if current is None or (current.prepared == PreparedState.UNPREPARED
                                   and item.prepared != PreparedState.UNPREPARED):
                items[uuid] = item
        return items

    def _find_spell_item(self, uuid: str) -> Optional[ItemRecord]:
        return self._spell_items_by_uuid().get(canonicalize(uuid, self.host.resolve_uuid))

    async def add_spell_to_actor_favorites(self, uuid: str) -> bool:
        actor = self.actor
        if actor is None:
            return False
        item = self._find_spell_item(uuid)
        if item is None:
            logger.debug(f"No spell item for {uuid} on actor {self.actor_id}; not favoriting")
            return False
        entry_id = favorite_id(item.id)
        if any(favorite.id == entry_id for favorite in actor.favorites):
            return True
        sort = max((favorite.sort for favorite in actor.favorites), default=FAVORITE_SORT_BASE - 1) + 1
        favorites = list(actor.favorites) + [FavoriteEntry(id=entry_id, type='item', sort=sort)]
        await self.host.update_actor(self.actor_id, {'favorites': favorites})
        logger.debug(f"Added {item.name} to favorites of actor {self.actor_id}")
        return True

    async def remove_spell_from_actor_favorites(self, uuid: str) -> bool:
        actor = self.actor
        if actor is None:
            return False
        uuid = canonicalize(uuid, self.host.resolve_uuid)
        doomed = {favorite_id(item.id) for item in actor.spells if canonicalize(item) == uuid}
        favorites = [favorite for favorite in actor.favorites if favorite.id not in doomed]
        if len(favorites) == len(actor.favorites):
            return False
        await self.host.update_actor(self.actor_id, {'favorites': favorites})
        logger.debug(f"Removed {uuid} from favorites of actor {self.actor_id}")
        return True

    async def process_favorites_from_form(self) -> bool:
        """
        Rebuild the actor's spell favorites from the user data store.
        Non-spell favorites are kept as they are. Returns True if anything was written.
        """
        actor = self.actor
        store = self.context.store
        if actor is None or store is None:
            logger.debug(f"Skipping favorites sync for actor {self.actor_id}: no actor or no user data store")
            return False

        user_id = store.primary_user_id(self.actor_id)
        spell_ids = {favorite_id(item.id) for item in actor.spells}
        kept = [favorite for favorite in actor.favorites if favorite.id not in spell_ids]

        spell_favorites: List[FavoriteEntry] = []
        for uuid, item in self._spell_items_by_uuid().items():
            data = store.get_user_data_for_spell(uuid, user_id, self.actor_id)
            if data is not None and data.favorited:
                spell_favorites.append(FavoriteEntry(
                    id=favorite_id(item.id), type='item', sort=FAVORITE_SORT_BASE + len(spell_favorites)))

        favorites = kept + spell_favorites
        current = sorted(favorite.id for favorite in actor.favorites)
        if current == sorted(favorite.id for favorite in favorites):
            return False

        update = ActorUpdate(favorites=favorites)
        await apply_actor_update(self.host, self.actor_id, update)
        logger.info(f"Synced {len(spell_favorites)} spell favorite(s) on actor {self.actor_id}")
        return True
