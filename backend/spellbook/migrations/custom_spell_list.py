"""
customSpellList shape migrations for stored class rules.
Older releases stored a single uuid string, and some stored null; both become lists.
"""

from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..constants import FLAGS
from ..exceptions import HostError
from ..models import MigrationResult
from .base import Migration

CUSTOM_SPELL_LIST = 'customSpellList'


def string_to_list(value: Any) -> Optional[list]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    return None


def null_to_list(value: Any) -> Optional[list]:
    return [] if value is None else None


class _ClassRulesMigration(Migration):
    """Rewrites customSpellList in every class record where convert() returns a new value"""

    convert: Callable[[Any], Optional[list]]

    def rewrite(self, rules: Dict[str, Any]) -> Dict[str, Any]:
        changed = {}
        for class_id, record in rules.items():
            if not isinstance(record, dict) or CUSTOM_SPELL_LIST not in record:
                continue
            new_value = self.convert(record[CUSTOM_SPELL_LIST])
            if new_value is not None:
                changed[class_id] = {**record, CUSTOM_SPELL_LIST: new_value}
        return changed

    async def migrate(self, context) -> MigrationResult:
        result = self.new_result()
        host = context.host
        for actor in host.get_actors():
            result.processed += 1
            rules = host.get_actor_flag(actor.id, FLAGS.CLASS_RULES)
            if not isinstance(rules, dict):
                continue
            changed = self.rewrite(rules)
            if not changed:
                continue
            try:
                await host.set_actor_flag(actor.id, FLAGS.CLASS_RULES, {**rules, **changed})
            except HostError as e:
                logger.error(f"Failed to migrate custom spell lists for {actor.name}: {e}")
                result.errors.append(f"{actor.name}: {e}")
                continue
            context.rule_cache.invalidate(actor.id)
            result.updated += 1
            result.details.append(f"{actor.name}: {', '.join(sorted(changed))}")
        if result.updated:
            logger.info(f"{self.name}: {result.updated}/{result.processed} actors updated")
        return result


class CustomSpellListFormatMigration(_ClassRulesMigration):
    key = 'customSpellListFormat'
    name = 'Custom spell list format'
    convert = staticmethod(string_to_list)


class CustomSpellListNullToArrayMigration(_ClassRulesMigration):
    key = 'customSpellListNullToArray'
    name = 'Custom spell list null values'
    convert = staticmethod(null_to_list)
