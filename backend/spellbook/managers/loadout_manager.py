"""
Loadout Manager - named, saved preparation sets per actor
Loadouts live in the spellLoadouts actor flag keyed by loadout id
"""

import json
import uuid as uuid_lib
from typing import Any, Dict, List, Optional, Union

from loguru import logger
from pydantic import ValidationError

from ..constants import EXPORT_FORMAT_VERSION, FLAGS, LOADOUT_CACHE_TTL
from ..events import EventType
from ..exceptions import ValidationFailure
from ..models import Loadout, LoadoutExport


class LoadoutManager:
    """
    Loadout Manager
    Keeps a short-lived cache of the parsed flag; every write drops it
    """

    def __init__(self, spellbook):
        self.spellbook = spellbook
        self.context = spellbook.context
        self.host = spellbook.context.host
        self.actor_id = spellbook.actor_id
        self._cache: Optional[Dict[str, Loadout]] = None
        self._cache_time = 0

    def clear_cache(self):
        self._cache = None

    def _all(self) -> Dict[str, Loadout]:
        now = self.context.now()
        if self._cache is not None and now - self._cache_time < LOADOUT_CACHE_TTL * 1000:
            return self._cache

        raw = self.host.get_actor_flag(self.actor_id, FLAGS.SPELL_LOADOUTS) or {}
        loadouts = {}
        for loadout_id, data in raw.items():
            try:
                loadouts[loadout_id] = Loadout.model_validate({**(data or {}), 'id': loadout_id})
            except ValidationError as e:
                logger.warning(f"Skipping malformed loadout {loadout_id} on actor {self.actor_id}: {e}")
        self._cache = loadouts
        self._cache_time = now
        return loadouts

    async def _write(self, loadouts: Dict[str, Loadout]):
        self.clear_cache()
        payload = {lid: loadout.to_flag() for lid, loadout in loadouts.items()}
        await self.host.set_actor_flag(self.actor_id, FLAGS.SPELL_LOADOUTS, payload)

    def get_available_loadouts(self, class_id: Optional[str] = None) -> List[Loadout]:
        """Loadouts for a class plus class-agnostic ones, newest first"""
        loadouts = [
            loadout for loadout in self._all().values()
            if class_id is None or loadout.class_identifier in (None, class_id)
        ]
        return sorted(loadouts, key=lambda loadout: loadout.updated_at, reverse=True)

    def load_loadout(self, loadout_id: str) -> Optional[Loadout]:
        return self._all().get(loadout_id)

    async def save_loadout(self, name: str, description: str, spell_configuration: List[str],
                           class_id: Optional[str] = None) -> Optional[Loadout]:
        if not name or not name.strip():
            logger.warning(f"Refusing to save a loadout without a name on actor {self.actor_id}")
            return None
        now = self.context.now()
        loadout = Loadout(
            id=uuid_lib.uuid4().hex[:16],
            name=name.strip(),
            description=description or '',
            class_identifier=class_id,
            spell_configuration=list(spell_configuration),
            created_at=now,
            updated_at=now,
        )
        loadouts = dict(self._all())
        loadouts[loadout.id] = loadout
        await self._write(loadouts)
        logger.info(f"Saved loadout '{loadout.name}' ({len(loadout.spell_configuration)} spells) on actor {self.actor_id}")
        self.context.bus.emit(EventType.LOADOUT_SAVED, actor_id=self.actor_id, loadout_id=loadout.id)
        return loadout

    async def delete_loadout(self, loadout_id: str) -> bool:
        loadouts = dict(self._all())
        if loadout_id not in loadouts:
            logger.debug(f"Loadout {loadout_id} not found on actor {self.actor_id}")
            return False
        del loadouts[loadout_id]
        await self._write(loadouts)
        logger.info(f"Deleted loadout {loadout_id} on actor {self.actor_id}")
        self.context.bus.emit(EventType.LOADOUT_DELETED, actor_id=self.actor_id, loadout_id=loadout_id)
        return True

    def apply_loadout(self, loadout_id: str, form_state) -> bool:
        """
        Set the form's enabled checkboxes to match the loadout.
        Disabled boxes (always prepared, granted, innate, at-will) are untouched.
        Nothing is written; the caller commits the form.
        """
        loadout = self.load_loadout(loadout_id)
        if loadout is None:
            logger.warning(f"Loadout {loadout_id} not found on actor {self.actor_id}")
            return False
        if loadout.class_identifier and loadout.class_identifier != form_state.class_id:
            logger.warning(f"Loadout '{loadout.name}' belongs to {loadout.class_identifier}, "
                           f"not {form_state.class_id}; not applied")
            return False
        wanted = set(loadout.spell_configuration)
        changed = 0
        for box in form_state:
            if box.disabled:
                continue
            checked = box.uuid in wanted
            if box.checked != checked:
                form_state.set_checked(box.uuid, checked)
                changed += 1
        logger.debug(f"Applied loadout '{loadout.name}' to {form_state.class_id}: {changed} checkbox(es) changed")
        return True

    @staticmethod
    def capture_current_state(form_state) -> List[str]:
        return form_state.checked_uuids()

    def export_loadouts(self) -> str:
        export = LoadoutExport(
            version=EXPORT_FORMAT_VERSION,
            exported_at=self.context.now(),
            actor_id=self.actor_id,
            loadouts=list(self._all().values()),
        )
        return json.dumps(export.to_flag(), indent=2)

    async def import_loadouts(self, blob: Union[str, Dict[str, Any]]) -> int:
        """
        Merge exported loadouts into this actor. Ids that already exist get a
        fresh id so nothing is overwritten.

        Raises:
            ValidationFailure: unreadable blob, wrong version, or no loadouts key
        """
        try:
            data = json.loads(blob) if isinstance(blob, str) else blob
        except json.JSONDecodeError as e:
            raise ValidationFailure(f"Loadout export is not valid JSON: {e}")
        if not isinstance(data, dict) or 'loadouts' not in data:
            raise ValidationFailure("Loadout export has no 'loadouts' key")
        if data.get('version') != EXPORT_FORMAT_VERSION:
            raise ValidationFailure(f"Unsupported loadout export version: {data.get('version')!r}")
        try:
            export = LoadoutExport.model_validate(data)
        except ValidationError as e:
            raise ValidationFailure(f"Invalid loadout export: {e}")

        loadouts = dict(self._all())
        for loadout in export.loadouts:
            if loadout.id in loadouts:
                loadout = loadout.model_copy(update={'id': uuid_lib.uuid4().hex[:16]})
            loadouts[loadout.id] = loadout
        await self._write(loadouts)
        logger.info(f"Imported {len(export.loadouts)} loadout(s) into actor {self.actor_id}")
        return len(export.loadouts)
