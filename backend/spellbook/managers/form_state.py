"""
Preparation form state - the checkbox model a spell book sheet renders for one class
Loadouts read and flip it; a commit turns it back into SpellCheckInput rows
"""

from typing import Dict, Iterable, List, Optional

from loguru import logger
from pydantic import Field

from ..constants import CastingMethod
from ..host.records import ItemRecord
from ..identity import canonicalize
from ..models import SpellCheckInput
from ..models.base import SpellbookModel

TAG_ALWAYS_PREPARED = 'always-prepared'
TAG_GRANTED = 'granted'


class SpellCheckbox(SpellbookModel):
    uuid: str
    name: str = ''
    level: int = 0
    is_ritual: bool = False
    checked: bool = False
    was_prepared: bool = False
    disabled: bool = False
    tags: List[str] = Field(default_factory=list, description="always-prepared, granted, innate, atwill")

    def to_check_input(self) -> SpellCheckInput:
        return SpellCheckInput(
            uuid=self.uuid,
            name=self.name,
            level=self.level,
            prepared=self.checked,
            was_prepared=self.was_prepared,
            is_ritual=self.is_ritual,
        )


class PreparationFormState:
    """Checkbox rows for one class, keyed by canonical uuid"""

    def __init__(self, class_id: str, checkboxes: Optional[Iterable[SpellCheckbox]] = None):
        self.class_id = class_id
        self._boxes: Dict[str, SpellCheckbox] = {}
        for box in checkboxes or []:
            self._boxes[box.uuid] = box

    def __iter__(self):
        return iter(self._boxes.values())

    def __len__(self):
        return len(self._boxes)

    def get(self, uuid: str) -> Optional[SpellCheckbox]:
        return self._boxes.get(uuid)

    def set_checked(self, uuid: str, checked: bool) -> bool:
        """Flip one box; disabled boxes never change"""
        box = self._boxes.get(uuid)
        if box is None or box.disabled:
            return False
        box.checked = checked
        return True

    def checked_uuids(self, include_disabled: bool = False) -> List[str]:
        return [box.uuid for box in self._boxes.values()
                if box.checked and (include_disabled or not box.disabled)]

    def to_check_inputs(self) -> List[SpellCheckInput]:
        return [box.to_check_input() for box in self._boxes.values() if not box.disabled]

    @classmethod
    async def build(cls, spellbook, class_id: str) -> 'PreparationFormState':
        """Rows for the class's spell pool plus every spell item the actor holds for it"""
        host = spellbook.context.host
        spells = spellbook.get_manager('spells')
        rules = spellbook.get_manager('rules').get_class_rules(class_id)
        pool = await spellbook.resolver.get_class_spell_list(spellbook.actor_id, class_id, rules)

        actor = spellbook.actor
        owned: Dict[str, ItemRecord] = {}
        for item in actor.spells if actor else []:
            if item.source_class in (class_id, None):
                owned.setdefault(canonicalize(item), item)

        form = cls(class_id)
        for uuid in sorted(pool | set(owned)):
            spell = owned.get(uuid) or host.resolve_uuid(uuid)
            if spell is None:
                logger.debug(f"Skipping unresolvable spell {uuid} in {class_id} form")
                continue
            status = spells.get_spell_preparation_status(spell, class_id)
            tags = []
            if status.always_prepared:
                tags.append(TAG_ALWAYS_PREPARED)
            if status.is_granted:
                tags.append(TAG_GRANTED)
            if status.special_mode in (CastingMethod.INNATE, CastingMethod.ATWILL):
                tags.append(status.special_mode)
            form._boxes[uuid] = SpellCheckbox(
                uuid=uuid,
                name=getattr(spell, 'name', ''),
                level=getattr(spell, 'level', 0),
                is_ritual=bool(getattr(spell, 'is_ritual', False)),
                checked=status.prepared,
                was_prepared=status.prepared,
                disabled=status.disabled or status.prepared_by_other_class is not None,
                tags=tags,
            )
        return form
