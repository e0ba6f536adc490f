"""
User data HTML codec.

A user page is an HTML fragment: one <section> per actor, each holding a
spell-notes table (Spell / Favorite / Notes) and a spell-usage table
(Spell / Combat / Exploration / Total / Last Used). Rows are keyed by
data-spell-uuid. Attributes the codec does not know, on the wrapper, sections,
tables, rows and cells, are kept and written back where the page had them;
attributes set in code go after the known ones, sorted by name, so emission
is deterministic. Other markup inside a section stays beside the heading and
tables it followed.

Schema 2 pages (one user-level notes table, per-actor spell-favorites and
spell-usage tables) are read into the same document; user-level notes land in
the '' actor section.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag
from loguru import logger

from ..constants import USER_DATA_SCHEMA_VERSION
from ..models import SpellDataRow, TagAttributes, UserDataDocument

WRAPPER_CLASS = 'spell-book-user-data'
NOTES_TABLE = 'spell-notes'
USAGE_TABLE = 'spell-usage'
FAVORITES_TABLE = 'spell-favorites'

NOTES_HEADERS = ('Spell', 'Favorite', 'Notes')
USAGE_HEADERS = ('Spell', 'Combat', 'Exploration', 'Total', 'Last Used')

_WRAPPER_KNOWN = {'class', 'data-user-id', 'data-user-name', 'data-schema-version'}
_SECTION_KNOWN = {'data-actor-id', 'data-actor-name'}
_TABLE_KNOWN = {'data-table-type', 'data-actor-id'}
_ROW_KNOWN = {'data-spell-uuid'}
_USAGE_CELL_KNOWN = {'data-timestamp'}
_LEGACY_DATE_FORMATS = ('%Y-%m-%d', '%m/%d/%Y', '%d/%m/%Y', '%d.%m.%Y')


def _attr_text(value) -> str:
    # bs4 splits multi-valued attributes such as class into lists
    if isinstance(value, list):
        return ' '.join(value)
    return str(value)


def _preserved(tag, known) -> TagAttributes:
    return TagAttributes(
        order=list(tag.attrs),
        extra={name: _attr_text(value) for name, value in tag.attrs.items() if name not in known},
    )


def _cell_text(cells, index: int) -> str:
    if index < len(cells):
        return cells[index].get_text().strip()
    return ''


def _cell_int(cells, index: int) -> int:
    try:
        return int(_cell_text(cells, index))
    except ValueError:
        return 0


def _parse_last_used(cell) -> Optional[int]:
    if cell is None:
        return None
    stamp = cell.get('data-timestamp')
    if stamp:
        try:
            return int(stamp)
        except ValueError:
            logger.warning(f"Ignoring malformed usage timestamp {stamp!r}")
    text = cell.get_text().strip()
    if not text or text == '-':
        return None
    for fmt in _LEGACY_DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
        return int(parsed.timestamp() * 1000)
    logger.debug(f"Unreadable last-used date {text!r}; treating as never used")
    return None


def format_last_used(timestamp: Optional[int]) -> str:
    if timestamp is None:
        return '-'
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime('%Y-%m-%d')


def detect_schema_version(html: str) -> int:
    """3 for pages carrying the versioned wrapper, 2 for older table layouts, 0 for empty"""
    if not html or not html.strip():
        return 0
    soup = BeautifulSoup(html, 'html.parser')
    wrapper = soup.find('div', class_=WRAPPER_CLASS)
    if wrapper is not None:
        try:
            return int(wrapper.get('data-schema-version', USER_DATA_SCHEMA_VERSION))
        except ValueError:
            return USER_DATA_SCHEMA_VERSION
    return 2


def _rows(table):
    if table is None:
        return []
    return table.find_all('tr', attrs={'data-spell-uuid': True})


def _row(section, uuid: str) -> SpellDataRow:
    row = section.spells.get(uuid)
    if row is None:
        row = SpellDataRow()
        section.spells[uuid] = row
    return row


def _is_owned_child(node) -> bool:
    if node.name == 'h3':
        return True
    return node.name == 'table' and node.get('data-table-type') in (NOTES_TABLE, USAGE_TABLE)


def _extra_content(section_tag) -> List[Tuple[int, str]]:
    """Markup in a section other than its heading and tables, with how many of those preceded it"""
    extras = []
    position = 0
    for node in section_tag.children:
        if isinstance(node, Tag):
            if _is_owned_child(node):
                position += 1
            elif node.find('table', attrs={'data-table-type': [NOTES_TABLE, USAGE_TABLE]}) is not None:
                logger.debug(f"Unwrapping spell tables nested in <{node.name}>; the wrapper is not kept")
            else:
                extras.append((position, str(node)))
        elif node.strip():
            extras.append((position, node.output_ready()))
    return extras


def _parse_current(wrapper, document: UserDataDocument):
    document.user_id = wrapper.get('data-user-id') or document.user_id
    document.user_name = wrapper.get('data-user-name') or document.user_name
    document.attributes = _preserved(wrapper, _WRAPPER_KNOWN)

    for section_tag in wrapper.find_all('section', attrs={'data-actor-id': True}):
        section = document.actor(section_tag['data-actor-id'], section_tag.get('data-actor-name', ''))
        section.attributes = _preserved(section_tag, _SECTION_KNOWN)
        section.extra_content = _extra_content(section_tag)

        notes_table = section_tag.find('table', attrs={'data-table-type': NOTES_TABLE})
        if notes_table is not None:
            section.notes_table_attributes = _preserved(notes_table, _TABLE_KNOWN)
        for tr in _rows(notes_table):
            cells = tr.find_all('td')
            row = _row(section, tr['data-spell-uuid'])
            row.spell_name = _cell_text(cells, 0)
            row.favorited = _cell_text(cells, 1).lower() == 'yes'
            row.notes = _cell_text(cells, 2)
            row.note_attributes = _preserved(tr, _ROW_KNOWN)
            row.note_cells = [_preserved(td, ()) for td in cells]

        usage_table = section_tag.find('table', attrs={'data-table-type': USAGE_TABLE})
        if usage_table is not None:
            section.usage_table_attributes = _preserved(usage_table, _TABLE_KNOWN)
        for tr in _rows(usage_table):
            cells = tr.find_all('td')
            row = _row(section, tr['data-spell-uuid'])
            row.spell_name = row.spell_name or _cell_text(cells, 0)
            row.usage_stats.context_usage.combat = _cell_int(cells, 1)
            row.usage_stats.context_usage.exploration = _cell_int(cells, 2)
            row.usage_stats.count = _cell_int(cells, 3)
            row.usage_stats.last_used = _parse_last_used(cells[4] if len(cells) > 4 else None)
            row.usage_attributes = _preserved(tr, _ROW_KNOWN)
            row.usage_cells = [_preserved(td, _USAGE_CELL_KNOWN) for td in cells]


def _parse_legacy(soup, document: UserDataDocument):
    document.schema_version = 2

    notes_table = soup.find('table', attrs={'data-table-type': NOTES_TABLE})
    if notes_table is not None:
        section = document.actor('')
        for tr in _rows(notes_table):
            cells = tr.find_all('td')
            row = _row(section, tr['data-spell-uuid'])
            row.spell_name = _cell_text(cells, 0)
            row.notes = _cell_text(cells, 1)

    for table in soup.find_all('table', attrs={'data-table-type': FAVORITES_TABLE}):
        actor_id = table.get('data-actor-id')
        if not actor_id:
            continue
        section = document.actor(actor_id, table.get('data-actor-name', ''))
        for tr in _rows(table):
            cells = tr.find_all('td')
            row = _row(section, tr['data-spell-uuid'])
            row.spell_name = row.spell_name or _cell_text(cells, 0)
            row.favorited = _cell_text(cells, 1).lower() == 'yes'

    for table in soup.find_all('table', attrs={'data-table-type': USAGE_TABLE}):
        actor_id = table.get('data-actor-id')
        if not actor_id:
            continue
        section = document.actor(actor_id, table.get('data-actor-name', ''))
        for tr in _rows(table):
            cells = tr.find_all('td')
            row = _row(section, tr['data-spell-uuid'])
            row.spell_name = row.spell_name or _cell_text(cells, 0)
            row.usage_stats.context_usage.combat = _cell_int(cells, 1)
            row.usage_stats.context_usage.exploration = _cell_int(cells, 2)
            row.usage_stats.count = _cell_int(cells, 3)
            row.usage_stats.last_used = _parse_last_used(cells[4] if len(cells) > 4 else None)


def parse_user_data(html: str, user_id: str = '', user_name: str = '') -> UserDataDocument:
    """Decode a user page. Empty or unrecognized content yields an empty document."""
    document = UserDataDocument(user_id=user_id, user_name=user_name)
    if not html or not html.strip():
        return document

    soup = BeautifulSoup(html, 'html.parser')
    wrapper = soup.find('div', class_=WRAPPER_CLASS)
    if wrapper is not None:
        try:
            document.schema_version = int(wrapper.get('data-schema-version', USER_DATA_SCHEMA_VERSION))
        except ValueError:
            logger.warning(f"User page for {user_id or '?'} has an unreadable schema version; assuming current")
        _parse_current(wrapper, document)
    else:
        _parse_legacy(soup, document)
    return document


def _set_attributes(tag, known: Dict[str, str], preserved: TagAttributes):
    names = [name for name in preserved.order if name in known or name in preserved.extra]
    names += [name for name in known if name not in names]
    names += [name for name in sorted(preserved.extra) if name not in names]
    for name in names:
        tag[name] = known[name] if name in known else preserved.extra[name]


def _header(soup, table, titles):
    thead = soup.new_tag('thead')
    tr = soup.new_tag('tr')
    for title in titles:
        th = soup.new_tag('th')
        th.string = title
        tr.append(th)
    thead.append(tr)
    table.append(thead)


def _table(soup, table_type: str, actor_id: str, preserved: TagAttributes, titles):
    table = soup.new_tag('table')
    _set_attributes(table, {'data-table-type': table_type, 'data-actor-id': actor_id}, preserved)
    _header(soup, table, titles)
    body = soup.new_tag('tbody')
    table.append(body)
    return table, body


def _cell(soup, text: str, cells: List[TagAttributes], index: int, **attrs):
    td = soup.new_tag('td')
    _set_attributes(td, attrs, cells[index] if index < len(cells) else TagAttributes())
    td.string = text
    return td


def _append_markup(tag, fragments: List[str]):
    for html in fragments:
        for node in list(BeautifulSoup(html, 'html.parser').contents):
            tag.append(node.extract())


def emit_user_data(document: UserDataDocument) -> str:
    """Encode a document as current-schema HTML"""
    soup = BeautifulSoup('', 'html.parser')
    wrapper = soup.new_tag('div')
    _set_attributes(wrapper, {
        'class': WRAPPER_CLASS,
        'data-user-id': document.user_id,
        'data-user-name': document.user_name,
        'data-schema-version': str(USER_DATA_SCHEMA_VERSION),
    }, document.attributes)
    soup.append(wrapper)

    for actor_id in sorted(document.actors):
        section = document.actors[actor_id]
        section_tag = soup.new_tag('section')
        _set_attributes(section_tag, {
            'data-actor-id': actor_id,
            'data-actor-name': section.actor_name,
        }, section.attributes)
        heading = soup.new_tag('h3')
        heading.string = section.actor_name or actor_id

        notes, notes_body = _table(soup, NOTES_TABLE, actor_id, section.notes_table_attributes, NOTES_HEADERS)
        usage, usage_body = _table(soup, USAGE_TABLE, actor_id, section.usage_table_attributes, USAGE_HEADERS)

        for uuid in sorted(section.spells):
            row = section.spells[uuid]
            if row.has_note_row:
                cells = row.note_cells
                tr = soup.new_tag('tr')
                _set_attributes(tr, {'data-spell-uuid': uuid}, row.note_attributes)
                tr.append(_cell(soup, row.spell_name, cells, 0))
                tr.append(_cell(soup, 'Yes' if row.favorited else 'No', cells, 1))
                tr.append(_cell(soup, row.notes, cells, 2))
                notes_body.append(tr)
            if row.has_usage_row:
                stats = row.usage_stats
                cells = row.usage_cells
                tr = soup.new_tag('tr')
                _set_attributes(tr, {'data-spell-uuid': uuid}, row.usage_attributes)
                tr.append(_cell(soup, row.spell_name, cells, 0))
                tr.append(_cell(soup, str(stats.context_usage.combat), cells, 1))
                tr.append(_cell(soup, str(stats.context_usage.exploration), cells, 2))
                tr.append(_cell(soup, str(stats.count), cells, 3))
                if stats.last_used is not None:
                    tr.append(_cell(soup, format_last_used(stats.last_used), cells, 4,
                                    **{'data-timestamp': str(stats.last_used)}))
                else:
                    tr.append(_cell(soup, '-', cells, 4))
                usage_body.append(tr)

        owned = (heading, notes, usage)
        for position, child in enumerate(owned):
            _append_markup(section_tag, [html for index, html in section.extra_content if index == position])
            section_tag.append(child)
        _append_markup(section_tag, [html for index, html in section.extra_content if index >= len(owned)])
        wrapper.append(section_tag)

    return str(soup)


def empty_user_page(user_id: str, user_name: str, actors: Dict[str, str]) -> str:
    """Current-schema page with an empty section for each of the user's characters"""
    document = UserDataDocument(user_id=user_id, user_name=user_name)
    for actor_id, actor_name in actors.items():
        document.actor(actor_id, actor_name)
    return emit_user_data(document)
