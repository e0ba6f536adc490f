"""
Spell identity helpers.

Metadata is keyed by the canonical uuid: the library (source) uuid when one is
known, otherwise the uuid itself. Per-class preparation entries use the
"classId:uuid" key form.
"""

from typing import Any, Callable, Optional, Tuple, Union

from loguru import logger

from .host.records import ParsedUuid

UuidResolver = Callable[[str], Optional[object]]


def parse_uuid(uuid: str) -> ParsedUuid:
    """
    Parse a host uuid.

    Accepts 'Compendium.<pkg>.<pack>.<Type>.<id>[.<Type>.<id>...]' and
    '<Type>.<id>[.<Type>.<id>...]'.

    Raises:
        ValueError: if the uuid is empty or has an unpaired segment
    """
    if not uuid or not isinstance(uuid, str):
        raise ValueError(f"Malformed uuid: {uuid!r}")

    parts = uuid.split('.')
    collection = None
    if parts[0] == 'Compendium':
        if len(parts) < 5:
            raise ValueError(f"Malformed compendium uuid: {uuid}")
        collection = f'{parts[1]}.{parts[2]}'
        parts = parts[3:]

    if len(parts) < 2 or len(parts) % 2:
        raise ValueError(f"Malformed uuid: {uuid}")

    pairs = [(parts[i], parts[i + 1]) for i in range(0, len(parts), 2)]
    primary_type, primary_id = pairs[0]
    document_type, document_id = pairs[-1]
    return ParsedUuid(
        uuid=uuid,
        collection=collection,
        document_type=document_type,
        document_id=document_id,
        primary_type=primary_type,
        primary_id=primary_id,
        embedded=pairs[1:],
    )


def is_compendium_uuid(uuid: Optional[str]) -> bool:
    return bool(uuid) and uuid.startswith('Compendium.')


def is_actor_embedded(uuid: Optional[str]) -> bool:
    try:
        parsed = parse_uuid(uuid)
    except ValueError:
        return False
    return parsed.primary_type == 'Actor' and parsed.is_embedded


def canonicalize(spell_or_uuid: Union[str, Any, None],
                 resolve: Optional[UuidResolver] = None) -> Optional[str]:
    """
    Return the canonical uuid for a spell record or uuid.

    Follows source references through `resolve` until a library (compendium)
    entry or a document without a source is reached. Idempotent.
    """
    if spell_or_uuid is None:
        return None
    if isinstance(spell_or_uuid, str):
        current = spell_or_uuid
    else:
        current = getattr(spell_or_uuid, 'source_uuid', None) or getattr(spell_or_uuid, 'uuid', None)
    if not current:
        return None
    if resolve is None:
        return current

    seen = set()
    while current not in seen:
        seen.add(current)
        if is_compendium_uuid(current):
            break
        try:
            document = resolve(current)
        except Exception as e:
            logger.warning(f"Could not resolve {current} while canonicalizing: {e}")
            break
        source = getattr(document, 'source_uuid', None) if document is not None else None
        if not source or source == current:
            break
        current = source
    return current


def class_spell_key(class_id: str, uuid: str) -> str:
    return f'{class_id}:{uuid}'


def parse_class_spell_key(key: str) -> Tuple[Optional[str], str]:
    """Split 'classId:uuid'; keys without a class prefix yield (None, key)"""
    if ':' not in key:
        return None, key
    class_id, uuid = key.split(':', 1)
    return class_id, uuid


def strip_class_prefix(key: str) -> str:
    return parse_class_spell_key(key)[1]
