"""
Migration runner - runs pending migrations once per version, GM only
Each migration runs inside its own error boundary; a failure is reported and
the next migration still runs.
"""

from typing import Dict, List, Optional

from loguru import logger

from ..constants import SETTINGS
from ..events import EventType, MigrationsCompletedEvent
from ..exceptions import HostError
from ..models import MigrationReport, MigrationResult
from .base import Migration
from .registry import get_migrations


class MigrationRunner:
    """
    Runs registered migrations and reports the outcome.

    A migration is marked complete only when it finishes without errors, so
    one that failed part-way is retried on the next run.
    """

    def __init__(self, context, reporter=None, migrations: Optional[List[Migration]] = None):
        self.context = context
        self.host = context.host
        self.reporter = reporter
        self.migrations = migrations if migrations is not None else get_migrations()

    def pending(self) -> List[Migration]:
        completed = self.context.settings.completed_migrations
        return [m for m in self.migrations if completed.get(m.key, 0) < m.version]

    async def _run_one(self, migration: Migration) -> MigrationResult:
        logger.debug(f"Running migration {migration.key} v{migration.version}")
        try:
            result = await migration.migrate(self.context)
        except Exception as e:
            logger.exception(f"Migration {migration.key} failed")
            result = migration.new_result()
            result.errors.append(f"{type(e).__name__}: {e}")
        return result

    async def _mark_completed(self, completed: Dict[str, int]):
        try:
            await self.context.settings.set(SETTINGS.COMPLETED_MIGRATIONS, completed)
        except HostError as e:
            logger.error(f"Could not record completed migrations: {e}")

    async def run(self, force: bool = False) -> MigrationReport:
        """
        Run pending migrations in registration order.

        Args:
            force: run every migration regardless of completion markers

        Returns:
            MigrationReport with one result per migration; skipped ones are
            included with skipped=True. Empty for non-GM users.
        """
        report = MigrationReport()
        user = self.host.get_current_user()
        if user is None or not user.is_gm:
            logger.debug("Migrations run only for GM users")
            return report

        completed = dict(self.context.settings.completed_migrations)
        for migration in self.migrations:
            if not force and completed.get(migration.key, 0) >= migration.version:
                result = migration.new_result()
                result.skipped = True
                report.results.append(result)
                continue
            result = await self._run_one(migration)
            report.results.append(result)
            if result.errors:
                logger.warning(f"Migration {migration.key} finished with {len(result.errors)} error(s)")
            else:
                completed[migration.key] = migration.version
            logger.info(f"Migration {migration.key}: {result.updated}/{result.processed} updated")

        if completed != self.context.settings.completed_migrations:
            await self._mark_completed(completed)

        if report.has_changes:
            logger.info(f"Migrations complete: {report.total_updated} updated, {report.total_errors} error(s)")
            self.host.notify('info', 'SPELLBOOK.Migrations.CompleteNotification')
            if self.reporter is not None:
                await self.reporter.send_migration_report(report, user.id)
        else:
            logger.debug("No migration updates needed")

        self.context.bus.emit(MigrationsCompletedEvent(
            event_type=EventType.MIGRATIONS_COMPLETED,
            source_manager=type(self).__name__,
            timestamp=self.context.now() / 1000,
            updated=report.total_updated,
            errors=report.total_errors,
            keys=[result.key for result in report.results if not result.skipped],
        ))
        return report
