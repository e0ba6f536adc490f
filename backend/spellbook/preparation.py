"""Helpers for the per-class preparation flag and its flat projection"""

from collections import Counter
from typing import Dict, Iterable, List

from loguru import logger

from .exceptions import InvariantViolationError
from .identity import class_spell_key, parse_class_spell_key


def validate_prepared_by_class(prepared_by_class: Dict[str, List[str]]) -> Dict[str, List[str]]:
    """
    Check that every entry of prepared_by_class[c] carries the 'c:' prefix.

    Raises:
        InvariantViolationError: on the first mismatched entry
    """
    if not isinstance(prepared_by_class, dict):
        raise InvariantViolationError(
            f"preparedSpellsByClass must be a mapping, got {type(prepared_by_class).__name__}")
    for class_id, keys in prepared_by_class.items():
        for key in keys or []:
            prefix, _ = parse_class_spell_key(key)
            if prefix != class_id:
                logger.error(f"Prepared entry '{key}' stored under class '{class_id}'")
                raise InvariantViolationError(f"Entry '{key}' does not belong to class '{class_id}'")
    return prepared_by_class


def flatten_prepared(prepared_by_class: Dict[str, List[str]]) -> List[str]:
    """Bag-union of canonical uuids across classes, in class order"""
    flat = []
    for keys in prepared_by_class.values():
        flat.extend(parse_class_spell_key(key)[1] for key in keys or [])
    return flat


def projection_matches(flat: Iterable[str], prepared_by_class: Dict[str, List[str]]) -> bool:
    return Counter(flat) == Counter(flatten_prepared(prepared_by_class))


def class_keys(class_id: str, uuids: Iterable[str]) -> List[str]:
    """Keys for uuids in first-seen order, without duplicates"""
    seen = set()
    keys = []
    for uuid in uuids:
        if uuid in seen:
            continue
        seen.add(uuid)
        keys.append(class_spell_key(class_id, uuid))
    return keys
