"""
In-memory filtering and sorting over a table snapshot.

A :class:`Query` is an immutable value. ``where``, ``order_by`` and
``sort_with`` never change the query they are called on; they return a new one
whose view is derived from the current view. Filters are therefore cumulative:
chaining two ``where`` calls keeps only rows satisfying both. Use
:meth:`Query.reset` to go back to the unfiltered rows.

Comparison rules:

- ``=`` and ``!=`` compare string forms. ``5`` and ``'5'`` are equal, ``5.0``
  and ``'5'`` are not.
- ``>``, ``<``, ``>=`` and ``<=`` cast the query value to the column's declared
  kind first. Undeclared columns hold strings, so they compare
  lexicographically: ``'10' < '9'``. Declare the column as ``int`` or
  ``float`` in the table schema for numeric ordering.
- ``like`` and ``not like`` are case-sensitive substring tests on string cells.
"""

import functools
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from .materializer import ROW_ID, RowRecord, TableSnapshot, cast_value, serialize_value
from ..status import status

ASCENDING: str = 'asc'
DESCENDING: str = 'desc'

_DIRECTIONS: Dict[str, str] = {
    'asc': ASCENDING,
    'ascending': ASCENDING,
    'desc': DESCENDING,
    'descending': DESCENDING,
}


def string_form(value: Any) -> str:
    return str(serialize_value(value))


def _like(cell: Any, needle: Any) -> bool:
    if not isinstance(cell, str):
        raise TypeError(f'"like" requires a string cell, got {type(cell).__name__} ({cell!r}).')
    return str(needle) in cell


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def _test(cell: Any, value: Any) -> bool:
        if cell is None:
            return False
        return compare(cell, value)
    return _test


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    '=': lambda cell, value: string_form(cell) == string_form(value),
    '!=': lambda cell, value: string_form(cell) != string_form(value),
    '>': _ordered(lambda cell, value: cell > value),
    '<': _ordered(lambda cell, value: cell < value),
    '>=': _ordered(lambda cell, value: cell >= value),
    '<=': _ordered(lambda cell, value: cell <= value),
    'like': _like,
    'not like': lambda cell, value: not _like(cell, value),
}

ORDERING_OPERATORS = ('>', '<', '>=', '<=')


def normalize_operator(operator: str) -> str:
    """Return the canonical spelling of an operator.

    Raises:
        status.UnsupportedOperatorError: If the operator is not supported.
    """
    key = ' '.join(str(operator).split()).lower()
    if key not in OPERATORS:
        raise status.UnsupportedOperatorError(
            f'Operator "{operator}" is not supported. Use one of: {", ".join(OPERATORS)}.'
        )
    return key


def normalize_direction(direction: str) -> str:
    """Return ``'asc'`` or ``'desc'``.

    Raises:
        status.ValidationError: If the direction is not recognised.
    """
    key = str(direction).strip().lower()
    if key not in _DIRECTIONS:
        raise status.ValidationError(f'Sort direction "{direction}" must be "asc" or "desc".')
    return _DIRECTIONS[key]


def sort_key(value: Any) -> Tuple[int, Any]:
    """Natural ordering key: empty first, then numbers, dates, and strings."""
    if value is None:
        return 0, 0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return 1, value
    if isinstance(value, str):
        return 3, value
    return 2, value


class Query:
    """An immutable, filterable and sortable view over a table snapshot.

    Args:
        snapshot: The table the rows belong to. Used for column validation and kinds.
        rows: The base rows. Defaults to the snapshot's rows.
        view: The current view. Defaults to the base rows.
    """

    def __init__(self, snapshot: TableSnapshot,
                 rows: Optional[Sequence[RowRecord]] = None,
                 view: Optional[Sequence[RowRecord]] = None) -> None:
        self._snapshot = snapshot
        base = snapshot.rows if rows is None else rows
        self._base: Tuple[RowRecord, ...] = tuple(dict(r) for r in base)
        self._view: Tuple[RowRecord, ...] = self._base if view is None else tuple(view)

    def _derive(self, view: Sequence[RowRecord]) -> 'Query':
        query = Query.__new__(Query)
        query._snapshot = self._snapshot
        query._base = self._base
        query._view = tuple(view)
        return query

    @property
    def snapshot(self) -> TableSnapshot:
        return self._snapshot

    @property
    def columns(self) -> Tuple[str, ...]:
        return self._snapshot.header

    def where(self, column: str, operator: str = '=', value: Any = None) -> 'Query':
        """Keep the rows of the current view whose ``column`` satisfies ``operator value``.

        Args:
            column: Canonical column token.
            operator: One of ``=``, ``!=``, ``>``, ``<``, ``>=``, ``<=``, ``like``, ``not like``.
            value: The value to compare against.

        Raises:
            status.ValidationError: If the column is unknown, or an ordering operator gets no value.
            status.UnsupportedOperatorError: If the operator is not supported.
            TypeError: If ``like`` meets a cell that is not a string.
        """
        self._snapshot.require_column(column)
        op = normalize_operator(operator)

        if op in ORDERING_OPERATORS:
            value = cast_value(self._snapshot.kind(column), value, column)
            if value is None:
                raise status.ValidationError(f'Operator "{op}" on column "{column}" requires a value.')

        test = OPERATORS[op]
        view = [row for row in self._view if test(row.get(column), value)]
        logging.debug(f'where {column} {op} {value!r}: {len(self._view)} -> {len(view)} rows.')
        return self._derive(view)

    def order_by(self, column: str, direction: str = ASCENDING) -> 'Query':
        """Stable sort of the current view by ``column``.

        Descending order is the exact reverse of the ascending result, so rows
        with empty values come first ascending and last descending.

        Raises:
            status.ValidationError: If the column or direction is invalid.
        """
        self._snapshot.require_column(column)
        direction = normalize_direction(direction)
        view = sorted(self._view, key=lambda row: sort_key(row.get(column)))
        if direction == DESCENDING:
            view.reverse()
        return self._derive(view)

    def sort_with(self, comparator: Callable[[RowRecord, RowRecord], int]) -> 'Query':
        """Sort the current view with an arbitrary ``cmp(a, b) -> int`` over whole records.

        The comparator receives the records themselves and must not modify them.
        """
        return self._derive(sorted(self._view, key=functools.cmp_to_key(comparator)))

    def reset(self) -> 'Query':
        """Return a query whose view is the unfiltered, unsorted base rows."""
        return self._derive(self._base)

    def get(self) -> List[RowRecord]:
        """Copies of the records in the current view."""
        return [dict(r) for r in self._view]

    all = get

    def first(self) -> Optional[RowRecord]:
        """A copy of the first record of the view, or ``None``. The view is left untouched."""
        return dict(self._view[0]) if self._view else None

    def take_first(self) -> Tuple[Optional[RowRecord], 'Query']:
        """Split the view into its first record and a query over the remaining records."""
        if not self._view:
            return None, self
        return dict(self._view[0]), self._derive(self._view[1:])

    def count(self) -> int:
        return len(self._view)

    def pluck(self, column: str) -> List[Any]:
        """The values of one column across the view."""
        self._snapshot.require_column(column)
        return [row.get(column) for row in self._view]

    def ids(self) -> List[int]:
        return [row[ROW_ID] for row in self._view]

    def to_frame(self) -> pd.DataFrame:
        """The current view as a :class:`pandas.DataFrame` indexed by row id."""
        columns = list(self._snapshot.header) + [ROW_ID]
        df = pd.DataFrame.from_records(self.get(), columns=columns)
        return df.set_index(ROW_ID)

    def __len__(self) -> int:
        return len(self._view)

    def __iter__(self) -> Iterator[RowRecord]:
        return iter(self.get())

    def __repr__(self) -> str:
        return f'<Query table={self._snapshot.name!r} rows={len(self._view)}/{len(self._base)}>'
