"""Remove deprecated and empty module flags from actors"""

from typing import Any, List, Tuple

from loguru import logger

from ..constants import FLAGS, MODULE_ID
from ..exceptions import HostError
from ..models import MigrationResult
from .base import Migration


def is_invalid_flag(key: str, value: Any) -> bool:
    """None and empty mappings are invalid; the nullable override flags may be None"""
    if isinstance(value, dict) and not value:
        return True
    if value is None:
        return key not in FLAGS.NULLABLE
    return False


def flags_to_remove(flags: dict) -> List[Tuple[str, str]]:
    removals = []
    for key, value in flags.items():
        if key in FLAGS.DEPRECATED:
            removals.append((key, 'deprecated'))
        elif is_invalid_flag(key, value):
            removals.append((key, 'empty value'))
    return removals


class DeprecatedFlagsMigration(Migration):
    key = 'deprecatedFlags'
    name = 'Deprecated flags'

    async def migrate(self, context) -> MigrationResult:
        result = self.new_result()
        host = context.host
        for actor in host.get_actors():
            result.processed += 1
            removals = flags_to_remove(actor.flags.get(MODULE_ID, {}))
            if not removals:
                continue
            try:
                for key, _ in removals:
                    await host.unset_actor_flag(actor.id, key)
            except HostError as e:
                logger.error(f"Failed to remove flags from {actor.name}: {e}")
                result.errors.append(f"{actor.name}: {e}")
                continue
            result.updated += 1
            result.details.append(f"{actor.name}: removed {', '.join(f'{key} ({why})' for key, why in removals)}")
            logger.debug(f"Removed {len(removals)} flag(s) from actor {actor.id}")
        context.rule_cache.invalidate()
        return result
