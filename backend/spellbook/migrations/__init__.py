"""Versioned one-shot migrations over persisted spell book data"""

from .base import Migration
from .registry import MIGRATION_REGISTRY, get_migration, get_migrations
from .runner import MigrationRunner

__all__ = ['Migration', 'MIGRATION_REGISTRY', 'get_migration', 'get_migrations', 'MigrationRunner']
