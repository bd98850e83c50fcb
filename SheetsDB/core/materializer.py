"""
Turns raw worksheet values into row records and back.

The first fetched row is the header. Each header cell is canonicalized into a
lower-case, underscore-separated token, which is the only key the query and
table APIs accept. Blank header cells are keyed by position (``column_3``)
and repeated tokens get a numeric suffix, see :func:`column_tokens`. Every
data row becomes a plain ``dict`` keyed by those tokens, plus a synthetic ``_id`` holding the row's 1-based position. Ids are recomputed
on every fetch, so they must not be kept across sessions.

Columns can be given a value kind (``string``, ``int``, ``float`` or ``date``).
Declared columns are cast once, here, so that ordering comparisons downstream
work on real numbers and dates. Undeclared columns stay strings, also for
values written through the table API: an ``int`` inserted into an undeclared
column is stored and written back as its text. Declare the column ``int`` or
``float`` to write numbers.
"""

import dataclasses
import datetime
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from ..settings.lib import VALUE_KINDS
from ..status import status

ROW_ID: str = '_id'
DATE_COLUMN_FORMAT: str = '%Y-%m-%d'

RowRecord = Dict[str, Any]

_NON_ALNUM = re.compile(r'[^A-Za-z0-9]')
_WHITESPACE = re.compile(r'\s+')


def canonicalize(header: Any) -> str:
    """Return the canonical column token for a header cell.

    ``'First Name'`` becomes ``'first_name'`` and ``'  E-mail (work) '`` becomes
    ``'e_mail_work'``. Canonicalizing a token returns it unchanged.
    """
    text = _NON_ALNUM.sub(' ', str(header)).strip()
    return _WHITESPACE.sub('_', text).lower()


def column_tokens(raw_header: Sequence[Any]) -> Tuple[str, ...]:
    """Return one unique column token per header cell.

    Blank cells (and cells with no letters or digits) are keyed by position,
    ``column_<n>`` with ``n`` counted from 1. When two cells share a token, the
    first keeps it and the later ones get ``_2``, ``_3``... suffixes, skipping
    any token already used by another column.
    """
    base = [canonicalize(cell) or f'column_{i + 1}' for i, cell in enumerate(raw_header)]
    reserved = set(base)
    taken = set()
    tokens = []
    for token in base:
        candidate, n = token, 2
        while candidate in taken or (candidate != token and candidate in reserved):
            candidate, n = f'{token}_{n}', n + 1
        taken.add(candidate)
        tokens.append(candidate)
    return tuple(tokens)


def google_serial_date_to_date(serial: float) -> datetime.date:
    """Converts a Google Sheets date serial to a date.

    Raises:
        ValueError: If the serial number is out of a plausible range.
    """
    if serial < -20000 or serial > 2958465:
        raise ValueError(f'Serial date "{serial}" is out of supported range.')
    return (datetime.datetime(1899, 12, 30) + datetime.timedelta(days=int(serial))).date()


def _parse_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return google_serial_date_to_date(float(value))

    text = str(value).strip()
    try:
        return datetime.date.fromisoformat(text)
    except ValueError:
        pass
    if text.replace('.', '', 1).isdigit() and len(text) > 3:
        return google_serial_date_to_date(float(text))
    ts = pd.to_datetime(text)
    if pd.isna(ts):
        raise ValueError(f'"{text}" is not a date')
    return ts.date()


def _parse_int(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value).strip().replace(',', '')
    try:
        return int(text)
    except ValueError:
        number = float(text)
        if not number.is_integer():
            raise
        return int(number)


def _parse_float(value: Any) -> float:
    if isinstance(value, float):
        return value
    return float(str(value).strip().replace(',', ''))


def cast_value(kind: Optional[str], value: Any, column: str = '') -> Any:
    """Cast a cell value to a column's declared kind.

    Blank cells of ``int``, ``float`` and ``date`` columns become ``None``.
    Undeclared columns and ``string`` columns become trimmed strings, so a
    number written to such a column is sent to the sheet as text.

    Raises:
        status.ValidationError: If the kind is unknown or the value can not be parsed.
    """
    if value is None:
        value = ''

    if kind is None or kind == 'string':
        return value.strip() if isinstance(value, str) else str(value)

    if kind not in VALUE_KINDS:
        raise status.ValidationError(f'Unknown value kind "{kind}"; expected one of {VALUE_KINDS}.')

    if isinstance(value, str) and not value.strip():
        return None

    try:
        if kind == 'int':
            return _parse_int(value)
        if kind == 'float':
            return _parse_float(value)
        return _parse_date(value)
    except (ValueError, TypeError, OverflowError) as ex:
        raise status.ValidationError(f'Column "{column}" value "{value}" is not a valid {kind}.') from ex


def serialize_value(value: Any) -> Any:
    """Render a record value for writing back to the sheet."""
    if value is None:
        return ''
    if isinstance(value, datetime.datetime):
        return value.strftime(DATE_COLUMN_FORMAT)
    if isinstance(value, datetime.date):
        return value.isoformat()
    return value


@dataclasses.dataclass(frozen=True)
class TableSnapshot:
    """The in-memory copy of one table at the time of the last fetch or save.

    Attributes:
        name: Worksheet title.
        raw_header: Header cells as they appear in the sheet, written back on save.
        header: Canonical column tokens, in sheet order.
        kinds: Declared value kind per canonical column.
        rows: Data rows as records, in sheet order.
        grid_width: Widest row seen at fetch time, header included. Cells past
            the header are not part of any record but are cleared on rewrite.
    """
    name: str
    raw_header: Tuple[str, ...]
    header: Tuple[str, ...]
    kinds: Mapping[str, str] = dataclasses.field(default_factory=dict)
    rows: List[RowRecord] = dataclasses.field(default_factory=list)
    grid_width: int = 0

    def kind(self, column: str) -> Optional[str]:
        return self.kinds.get(column)

    def require_column(self, column: str) -> str:
        """Return ``column`` if it is a canonical column of this table.

        Raises:
            status.ValidationError: naming the column and the known columns.
        """
        if column not in self.header:
            raise status.ValidationError(
                f'Unknown column "{column}" in table "{self.name}". '
                f'Known columns: {", ".join(self.header)}.'
            )
        return column

    def make_record(self, fields: Mapping[str, Any], row_id: Optional[int] = None) -> RowRecord:
        """Build a full record from partial fields.

        Fields outside the header are dropped, missing columns become empty.
        """
        dropped = [k for k in fields if k not in self.header and k != ROW_ID]
        if dropped:
            logging.debug(f'Dropping fields not in the header of "{self.name}": {dropped}')
        record: RowRecord = {
            column: cast_value(self.kind(column), fields.get(column, ''), column)
            for column in self.header
        }
        if row_id is not None:
            record[ROW_ID] = row_id
        return record

    def serialize_row(self, record: Mapping[str, Any]) -> List[Any]:
        """Values of a record in header order, without the synthetic id."""
        return [serialize_value(record.get(column)) for column in self.header]

    def serialize(self, rows: Optional[Sequence[Mapping[str, Any]]] = None) -> List[List[Any]]:
        """The header row followed by every data row, ready to be written back."""
        rows = self.rows if rows is None else rows
        return [list(self.raw_header)] + [self.serialize_row(r) for r in rows]


def materialize(name: str, values: Sequence[Sequence[Any]],
                kinds: Optional[Mapping[str, str]] = None) -> TableSnapshot:
    """Build a :class:`TableSnapshot` from the raw values of a worksheet.

    Args:
        name: Worksheet title.
        values: Rows of cells as returned by the Sheets API, header first.
        kinds: Optional mapping of canonical column token to value kind.

    Raises:
        status.EmptyTableError: If there is no header row.
        status.ValidationError: If ``kinds`` names an unknown column or kind, or a
            typed cell does not parse.
    """
    if not values:
        raise status.EmptyTableError(f'Table "{name}" has no header row.')

    raw_header = tuple(str(cell).strip() for cell in values[0])
    header = column_tokens(raw_header)
    for raw, token in zip(raw_header, header):
        if token != canonicalize(raw):
            logging.debug(f'Header cell "{raw}" of "{name}" is keyed as "{token}".')

    kinds = dict(kinds or {})
    for column, kind in kinds.items():
        if column not in header:
            raise status.ValidationError(f'Declared column "{column}" is not in the header of table "{name}".')
        if kind not in VALUE_KINDS:
            raise status.ValidationError(f'Column "{column}" kind "{kind}" must be one of {VALUE_KINDS}.')

    rows: List[RowRecord] = []
    width = len(header)
    grid_width = max([width] + [len(row) for row in values[1:]])
    for position, row in enumerate(values[1:], start=1):
        if len(row) > width:
            logging.debug(f'Row {position} of "{name}" has {len(row) - width} cell(s) beyond the header; not kept.')
        record: RowRecord = {
            column: cast_value(kinds.get(column), row[i] if i < len(row) else '', column)
            for i, column in enumerate(header)
        }
        record[ROW_ID] = position
        rows.append(record)

    logging.debug(f'Materialized "{name}": {len(rows)} rows x {width} columns.')
    return TableSnapshot(name=name, raw_header=raw_header, header=header, kinds=kinds, rows=rows,
                         grid_width=grid_width)
