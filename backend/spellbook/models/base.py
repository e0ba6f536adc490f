"""Common pydantic base for persisted and exchanged shapes"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SpellbookModel(BaseModel):
    """
    Fields are snake_case in Python and camelCase on the wire, matching the
    flag and export shapes older releases wrote.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
    )

    def to_flag(self, exclude_none: bool = False) -> Dict[str, Any]:
        """JSON-safe camelCase dict suitable for a host flag"""
        return self.model_dump(mode='json', by_alias=True, exclude_none=exclude_none)
