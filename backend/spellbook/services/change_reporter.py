"""
Change reporter - GM-facing chat digests for preparation commits and migration runs
Messages carry a messageType flag so the chat layer can attach actions
"""

from typing import List, Optional

from bs4 import BeautifulSoup
from loguru import logger

from ..constants import MODULE_ID, FLAGS, MessageType
from ..exceptions import HostError
from ..models import ChangeSummary, ClassChangeDigest, MigrationReport, UpdateReportDigest

SUPPRESS_ACTION = 'suppress-warnings'


def _names(names: List[str]) -> str:
    return ', '.join(names)


def build_update_digest(summary: ChangeSummary) -> UpdateReportDigest:
    """Per-class digest; classes with no changes and no over-limit are left out"""
    digest = UpdateReportDigest(actor_id=summary.actor_id, actor_name=summary.actor_name)
    for class_id, change in summary.class_changes.items():
        has_changes = change.cantrip_changes.has_changes or change.spell_changes.has_changes
        cantrip_over = change.cantrips_over_limit.over_count if change.cantrips_over_limit else None
        spell_over = change.spells_over_limit.over_count if change.spells_over_limit else None
        if not has_changes and not cantrip_over and not spell_over:
            continue
        digest.classes.append(ClassChangeDigest(
            class_id=class_id,
            class_name=change.class_name or class_id,
            cantrips_added=_names(change.cantrip_changes.added),
            cantrips_removed=_names(change.cantrip_changes.removed),
            spells_added=_names(change.spell_changes.added),
            spells_removed=_names(change.spell_changes.removed),
            cantrip_over_count=cantrip_over if cantrip_over and cantrip_over > 0 else None,
            spell_over_count=spell_over if spell_over and spell_over > 0 else None,
        ))
    return digest


class _Card:
    """Small builder for chat card markup"""

    def __init__(self, css_class: str):
        self.soup = BeautifulSoup('', 'html.parser')
        self.root = self.soup.new_tag('div')
        self.root['class'] = css_class
        self.soup.append(self.root)

    def add(self, parent, name: str, text: Optional[str] = None, **attrs):
        tag = self.soup.new_tag(name)
        for key, value in attrs.items():
            tag[key.rstrip('_').replace('_', '-')] = value
        if text is not None:
            tag.string = text
        (parent if parent is not None else self.root).append(tag)
        return tag

    def line(self, parent, label: str, value: str):
        p = self.add(parent, 'p')
        self.add(p, 'strong', f'{label}: ')
        p.append(value)

    def __str__(self):
        return str(self.soup)


def render_update_report(digest: UpdateReportDigest) -> str:
    card = _Card('spell-book-update-report')
    card.add(None, 'h3', f'Spell changes: {digest.actor_name}')
    for entry in digest.classes:
        section = card.add(None, 'section', data_class_id=entry.class_id)
        card.add(section, 'h4', entry.class_name)
        if entry.cantrips_added:
            card.line(section, 'Cantrips learned', entry.cantrips_added)
        if entry.cantrips_removed:
            card.line(section, 'Cantrips unlearned', entry.cantrips_removed)
        if entry.spells_added:
            card.line(section, 'Spells prepared', entry.spells_added)
        if entry.spells_removed:
            card.line(section, 'Spells unprepared', entry.spells_removed)
        if entry.cantrip_over_count:
            card.line(section, 'Over cantrip limit by', str(entry.cantrip_over_count))
        if entry.spell_over_count:
            card.line(section, 'Over prepared spell limit by', str(entry.spell_over_count))
    return str(card)


def render_migration_report(report: MigrationReport) -> str:
    card = _Card('spell-book-migration-report')
    card.add(None, 'h3', 'Spell Book data migration')
    items = card.add(None, 'ul')
    for result in report.results:
        if not result.has_changes:
            continue
        item = card.add(items, 'li', data_migration=result.key)
        card.add(item, 'strong', result.name or result.key)
        item.append(f': {result.updated} of {result.processed} updated')
        if result.errors:
            errors = card.add(item, 'ul', class_='errors')
            for error in result.errors:
                card.add(errors, 'li', error)
    card.add(None, 'p', f'{report.total_updated} document(s) updated, {report.total_errors} error(s).')
    card.add(None, 'button', 'Do not show migration reports again',
             class_='suppress-migration-warnings', data_action=SUPPRESS_ACTION)
    return str(card)


class ChangeReporter:
    """Sends digests through the host chat; a failed send is logged, never raised"""

    def __init__(self, context):
        self.context = context
        self.host = context.host

    async def _send(self, recipients: List[str], content: str, message_type: MessageType) -> bool:
        if not recipients:
            logger.debug(f"No recipients for {message_type.value} message")
            return False
        try:
            await self.host.emit_chat(recipients, content, {MODULE_ID: {FLAGS.MESSAGE_TYPE: message_type.value}})
        except HostError as e:
            logger.error(f"Could not send {message_type.value} message: {e}")
            return False
        return True

    async def send_update_report(self, summary: ChangeSummary) -> bool:
        digest = build_update_digest(summary)
        if digest.is_empty:
            return False
        sent = await self._send(self.host.get_gm_ids(), render_update_report(digest), MessageType.UPDATE_REPORT)
        if sent:
            logger.info(f"Sent spell change report for {summary.actor_name} ({len(digest.classes)} class(es))")
        return sent

    async def send_migration_report(self, report: MigrationReport, recipient_id: str) -> bool:
        if not report.has_changes:
            return False
        if self.context.settings.suppress_migration_warnings:
            logger.debug("Migration warnings suppressed; report not sent")
            return False
        return await self._send([recipient_id], render_migration_report(report), MessageType.MIGRATION_REPORT)
