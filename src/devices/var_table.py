"""
Variable-table response parsing for chiller controllers
Decodes getvar.csv / vars.htm bodies into name/value rows
"""

import re
import logging
from typing import Dict, List, Optional

from .models import VarRow

logger = logging.getLogger(__name__)

_TABLE_BY_ID_RE = re.compile(r'<table[^>]*id=["\']?varsTable["\']?[^>]*>[\s\S]*?</table>', re.IGNORECASE)
_TABLE_RE = re.compile(r'<table[^>]*>[\s\S]*?</table>', re.IGNORECASE)
_TBODY_RE = re.compile(r'<tbody[^>]*>([\s\S]*?)</tbody>', re.IGNORECASE)
_TR_RE = re.compile(r'<tr[^>]*>([\s\S]*?)</tr>', re.IGNORECASE)
_TD_RE = re.compile(r'<td[^>]*>([\s\S]*?)</td>', re.IGNORECASE)
_TAG_RE = re.compile(r'<[^>]+>')
_VENDOR_HEADER_RE = re.compile(
    r'^\s*name\s*[,;]\s*id\s*[,;]\s*desc\s*[,;]\s*type\s*[,;]\s*access\s*[,;]\s*val',
    re.IGNORECASE
)


def looks_like_html(text: str) -> bool:
    stripped = text.strip()
    return stripped.startswith('<') or re.search(r'<table', stripped, re.IGNORECASE) is not None


def parse_html_table(text: str) -> List[VarRow]:
    """
    Parse the vendor vars.htm page.
    Cell layout is index / name / description / value, so the name is
    taken from cell 1 and the value from cell 3 with shorter-row fallbacks.
    """
    rows: List[VarRow] = []
    try:
        table = _TABLE_BY_ID_RE.search(text) or _TABLE_RE.search(text)
        if not table:
            return rows
        tbody = _TBODY_RE.search(table.group(0))
        body = tbody.group(1) if tbody else table.group(0)

        for tr in _TR_RE.finditer(body):
            cells = []
            for td in _TD_RE.finditer(tr.group(1)):
                cell = _TAG_RE.sub('', td.group(1)).replace('&nbsp;', ' ').strip()
                if cell:
                    cells.append(cell)
            if len(cells) < 2:
                continue
            name = cells[1]
            value = cells[3] if len(cells) > 3 else cells[2] if len(cells) > 2 else cells[1]
            rows.append(VarRow(name=name, value=value))
    except Exception as e:
        logger.debug(f"HTML variable table parse failed: {e}")
        return []
    return rows


def _detect_delimiter(first_line: str) -> str:
    return ';' if first_line.count(';') > first_line.count(',') else ','


def _split_csv_line(line: str, delimiter: str) -> List[str]:
    """Split one CSV line honoring quotes and doubled-quote escapes"""
    result = []
    current = []
    in_quotes = False
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < len(line) and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch == delimiter and not in_quotes:
            result.append(''.join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    result.append(''.join(current))
    return result


def _unquote(value: Optional[str]) -> str:
    if value is None:
        return ''
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def parse_csv(text: str) -> List[VarRow]:
    """Parse getvar.csv output using the header to locate name and val columns"""
    rows: List[VarRow] = []
    try:
        if not text.strip() or looks_like_html(text):
            return rows

        delimiter = _detect_delimiter(text.splitlines()[0] if text.splitlines() else '')
        lines = re.split(r'\r?\n', text.strip())
        if len(lines) <= 1:
            return rows

        columns: Dict[str, int] = {}
        for i, heading in enumerate(lines[0].split(delimiter)):
            columns[heading.strip().lower()] = i

        name_idx = columns.get('name')
        value_idx = columns.get('val', columns.get('value'))
        if name_idx is None:
            return rows

        for line in lines[1:]:
            cols = _split_csv_line(line, delimiter)
            name = _unquote(cols[name_idx] if name_idx < len(cols) else None).strip()
            if not name:
                continue
            value = ''
            if value_idx is not None and value_idx < len(cols):
                value = _unquote(cols[value_idx])
            rows.append(VarRow(name=name, value=value))
    except Exception as e:
        logger.debug(f"CSV variable table parse failed: {e}")
        return []
    return rows


class VarTableStrategy:
    """A response format that may be able to decode a device body.

    `try_parse` returns None when the strategy does not claim the text,
    otherwise the (possibly empty) list of rows as the final answer.
    """
    name = "base"

    def try_parse(self, text: str) -> Optional[List[VarRow]]:
        raise NotImplementedError


class HtmlMarkupStrategy(VarTableStrategy):
    name = "html"

    def try_parse(self, text):
        if not looks_like_html(text):
            return None
        return parse_html_table(text)


class CsvHeaderStrategy(VarTableStrategy):
    name = "csv_header"

    def try_parse(self, text):
        if not _VENDOR_HEADER_RE.match(text):
            return None
        return parse_csv(text)


class CsvStrategy(VarTableStrategy):
    name = "csv"

    def try_parse(self, text):
        rows = parse_csv(text)
        return rows or None


class HtmlTableStrategy(VarTableStrategy):
    name = "html_fallback"

    def try_parse(self, text):
        return parse_html_table(text)


DEFAULT_STRATEGIES = (
    HtmlMarkupStrategy(),
    CsvHeaderStrategy(),
    CsvStrategy(),
    HtmlTableStrategy(),
)


def parse_var_table(text: Optional[str], strategies=DEFAULT_STRATEGIES) -> List[VarRow]:
    """Decode a raw device response into rows. Never raises."""
    text = text or ''
    for strategy in strategies:
        try:
            rows = strategy.try_parse(text)
        except Exception as e:
            logger.debug(f"Parse strategy {strategy.name} failed: {e}")
            continue
        if rows is not None:
            return rows
    return []


def index_rows(rows: List[VarRow]) -> Dict[str, str]:
    """Index rows by trimmed name; later duplicates win"""
    index = {}
    for row in rows:
        name = (row.name or '').strip()
        if name:
            index[name] = row.value if row.value is not None else ''
    return index
