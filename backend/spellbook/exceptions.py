"""Exceptions raised by the spell book engine"""

from typing import Optional

from .constants import ErrorKind


class SpellbookError(Exception):
    """Base exception for spell book engine errors"""
    kind = ErrorKind.FATAL


class HostError(SpellbookError):
    """Host I/O failed (document update, compendium read, chat emission)"""
    kind = ErrorKind.TRANSIENT

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


TransientHostError = HostError


class InvariantViolationError(SpellbookError):
    """Persisted state contradicts a structural invariant; the operation aborts"""
    kind = ErrorKind.FATAL


class ValidationFailure(SpellbookError):
    """Malformed import payload or unsupported format version"""
    kind = ErrorKind.VALIDATION
