"""
Batched actor writes.
A preparation commit collects every flag and item change into one ActorUpdate
so observers see a single consistent state.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from ..exceptions import HostError
from .records import FavoriteEntry, ItemRecord


@dataclass
class ActorUpdate:
    flag_sets: Dict[str, Any] = field(default_factory=dict)
    flag_unsets: List[str] = field(default_factory=list)
    item_deletes: List[str] = field(default_factory=list)
    item_creates: List[ItemRecord] = field(default_factory=list)
    item_updates: List[Dict[str, Any]] = field(default_factory=list)
    favorites: Optional[List[FavoriteEntry]] = None

    def set_flag(self, key: str, value: Any):
        if key in self.flag_unsets:
            self.flag_unsets.remove(key)
        self.flag_sets[key] = value

    def unset_flag(self, key: str):
        self.flag_sets.pop(key, None)
        if key not in self.flag_unsets:
            self.flag_unsets.append(key)

    def delete_item(self, item_id: str):
        if item_id not in self.item_deletes:
            self.item_deletes.append(item_id)

    def create_item(self, item: ItemRecord):
        self.item_creates.append(item)

    def update_item(self, item_id: str, **changes):
        for existing in self.item_updates:
            if existing['id'] == item_id:
                existing.update(changes)
                return
        self.item_updates.append({'id': item_id, **changes})

    @property
    def is_empty(self) -> bool:
        return not (self.flag_sets or self.flag_unsets or self.item_deletes
                    or self.item_creates or self.item_updates or self.favorites is not None)

    def summary(self) -> str:
        return (f"flags={len(self.flag_sets)}+{len(self.flag_unsets)} deletes={len(self.item_deletes)} "
                f"creates={len(self.item_creates)} updates={len(self.item_updates)}")


async def apply_actor_update(host, actor_id: str, update: ActorUpdate) -> List[ItemRecord]:
    """
    Write an ActorUpdate through the host.

    Uses a single host update when the adapter supports it, otherwise applies
    flags, then item deletions, then item creations, then item updates.

    Returns:
        The created item records as the host stored them
    """
    if update.is_empty:
        return []

    logger.debug(f"Applying actor update to {actor_id}: {update.summary()}")
    try:
        if host.supports_batch_update:
            return await host.apply_actor_update(actor_id, update)

        for key, value in update.flag_sets.items():
            await host.set_actor_flag(actor_id, key, value)
        for key in update.flag_unsets:
            await host.unset_actor_flag(actor_id, key)
        if update.item_deletes:
            await host.delete_actor_items(actor_id, list(update.item_deletes))
        created = []
        if update.item_creates:
            created = await host.create_actor_items(actor_id, list(update.item_creates))
        if update.item_updates:
            await host.update_actor_items(actor_id, list(update.item_updates))
        if update.favorites is not None:
            await host.update_actor(actor_id, {'favorites': list(update.favorites)})
        return created
    except HostError as e:
        logger.error(f"Actor update failed for {actor_id} ({update.summary()}): {e}")
        raise
