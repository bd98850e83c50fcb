"""Row mutations and write-back to the remote worksheet.

A :class:`Table` owns the working copy of one worksheet. Reads go through
:class:`~SheetsDB.core.query.Query`. Writes come in two flavours:

- ``insert`` appends one row remotely and locally, straight away.
- ``update`` and ``delete`` only change the working copy. ``save`` then rewrites
  the whole worksheet: the sheet is cleared and the header plus every remaining
  row is written back in one batch. ``upsert`` does the same rewrite of the
  data region immediately.

The rewrite trades remote-call efficiency for simplicity. It is not
transactional: if the write after a clear fails, the worksheet is left cleared
and the error propagates. Write-backs of one session are serialized by the
session's lock.
"""

import dataclasses
import logging
import threading
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .cache import SnapshotCache
from .materializer import ROW_ID, RowRecord, TableSnapshot, cast_value, materialize
from .query import Query, string_form
from .service import SheetsService, a1_range, idx_to_col
from ..status import status

RowRef = Union[int, Mapping[str, Any]]


@dataclasses.dataclass(frozen=True)
class TableContext:
    """Where a table lives. Fixed when the table is opened, unaffected by later mode switches."""
    spreadsheet_id: str
    name: str
    kinds: Mapping[str, str] = dataclasses.field(default_factory=dict)


def fetch_values(service: SheetsService, context: TableContext,
                 cache: Optional[SnapshotCache] = None) -> List[List[Any]]:
    """Read every row of a worksheet, going through the cache when one is given."""
    if cache is not None:
        values = cache.get(context.spreadsheet_id, context.name)
        if values is not None:
            return values

    values = service.get_values(context.spreadsheet_id, a1_range(context.name))
    if cache is not None:
        cache.put(context.spreadsheet_id, context.name, values)
    return values


class Table:
    """Working copy of one worksheet with query, mutation and save operations.

    Tables are opened with :meth:`SheetsDB.core.session.Sheets.table`.

    Args:
        service: The remote service wrapper.
        context: The spreadsheet and worksheet this table belongs to.
        values: The raw values fetched for the worksheet, header first.
        lock: Lock serializing write-backs across the session.
        cache: Optional snapshot cache to invalidate on writes.
    """

    def __init__(self, service: SheetsService, context: TableContext, values: List[List[Any]],
                 lock: Optional[threading.RLock] = None, cache: Optional[SnapshotCache] = None) -> None:
        self.service = service
        self.context = context
        self.cache = cache
        self._lock = lock or threading.RLock()
        self._snapshot: TableSnapshot
        self._rows: List[RowRecord]
        self._dirty = False
        self._load(values)

    def _load(self, values: List[List[Any]]) -> None:
        self._snapshot = materialize(self.context.name, values, self.context.kinds)
        self._rows = [dict(r) for r in self._snapshot.rows]
        self._dirty = False

    @property
    def name(self) -> str:
        return self.context.name

    @property
    def header(self):
        """Canonical column tokens, in sheet order."""
        return self._snapshot.header

    @property
    def snapshot(self) -> TableSnapshot:
        """The table as last fetched or saved."""
        return self._snapshot

    @property
    def dirty(self) -> bool:
        """True when the working copy has unsaved updates or deletions."""
        return self._dirty

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f'<Table {self.name!r} rows={len(self._rows)} dirty={self._dirty}>'

    # Reads

    def query(self) -> Query:
        """A query over the working copy."""
        return Query(self._snapshot, rows=self._rows)

    def where(self, column: str, operator: str = '=', value: Any = None) -> Query:
        return self.query().where(column, operator, value)

    def order_by(self, column: str, direction: str = 'asc') -> Query:
        return self.query().order_by(column, direction)

    def sort_with(self, comparator: Callable[[RowRecord, RowRecord], int]) -> Query:
        return self.query().sort_with(comparator)

    def get(self) -> List[RowRecord]:
        return self.query().get()

    all = get

    def first(self) -> Optional[RowRecord]:
        return self.query().first()

    def find(self, row: RowRef) -> RowRecord:
        """Return a copy of the row with the given synthetic id.

        Raises:
            status.NotFoundError: If no row has that id.
        """
        return dict(self._rows[self._index_of(row)])

    # Local mutations

    def _next_id(self) -> int:
        return max((r[ROW_ID] for r in self._rows), default=0) + 1

    def _row_id(self, row: RowRef) -> int:
        if isinstance(row, Mapping):
            row_id = row.get(ROW_ID)
        else:
            row_id = row
        if not isinstance(row_id, int) or isinstance(row_id, bool):
            raise status.ValidationError(f'Expected a row record or an integer row id, got {row!r}.')
        return row_id

    def _index_of(self, row: RowRef) -> int:
        row_id = self._row_id(row)
        for i, r in enumerate(self._rows):
            if r[ROW_ID] == row_id:
                return i
        raise status.NotFoundError(f'Row {row_id} not found in table "{self.name}".')

    def _merge(self, target: RowRecord, fields: Mapping[str, Any], strict: bool) -> None:
        for column, value in fields.items():
            if column == ROW_ID:
                continue
            if column not in self._snapshot.header:
                if strict:
                    self._snapshot.require_column(column)
                continue
            target[column] = cast_value(self._snapshot.kind(column), value, column)

    def update(self, row: RowRef, fields: Mapping[str, Any]) -> RowRecord:
        """Change fields of one row in the working copy. Nothing is sent until :meth:`save`.

        Args:
            row: A record carrying ``_id``, or the id itself.
            fields: Canonical column token to new value.

        Raises:
            status.NotFoundError: If the row id is unknown.
            status.ValidationError: If a field is not a column of the table.
        """
        with self._lock:
            target = self._rows[self._index_of(row)]
            self._merge(target, fields, strict=True)
            self._dirty = True
            logging.debug(f'Row {target[ROW_ID]} of "{self.name}" updated locally.')
            return dict(target)

    def delete(self, row: RowRef) -> RowRecord:
        """Remove one row from the working copy. Nothing is sent until :meth:`save`.

        Raises:
            status.NotFoundError: If the row id is unknown.
        """
        with self._lock:
            removed = self._rows.pop(self._index_of(row))
            self._dirty = True
            logging.debug(f'Row {removed[ROW_ID]} of "{self.name}" deleted locally.')
            return dict(removed)

    # Remote writes

    def _invalidate(self) -> None:
        if self.cache is not None:
            self.cache.invalidate(self.context.spreadsheet_id, self.name)

    def insert(self, record: Mapping[str, Any]) -> RowRecord:
        """Append one row to the worksheet.

        Values are written in header order. Fields that are not columns are
        dropped and missing columns are written empty.

        Returns:
            A copy of the inserted record, with its new id.
        """
        with self._lock:
            row = self._snapshot.make_record(record, row_id=self._next_id())
            self.service.append(
                self.context.spreadsheet_id,
                a1_range(self.name),
                [self._snapshot.serialize_row(row)],
            )
            self._invalidate()
            self._rows.append(row)
            logging.info(f'Inserted row {row[ROW_ID]} into "{self.name}".')
            return dict(row)

    def upsert(self, record: Mapping[str, Any], key: str) -> RowRecord:
        """Update the row whose ``key`` matches the record's, or add the record, then rewrite the data rows.

        The data region (everything below the header) is cleared and the whole
        working copy, including unsaved updates and deletions, is written from
        ``A2`` in one batch. The clear spans every column seen at fetch time, so
        stray cells right of the header do not survive the rewrite.
        Calling this twice with the same record leaves one row.

        Raises:
            status.ValidationError: If ``key`` is not a column or is absent from the record.
        """
        self._snapshot.require_column(key)
        if key not in record:
            raise status.ValidationError(f'Upsert record has no value for key column "{key}".')

        with self._lock:
            wanted = string_form(cast_value(self._snapshot.kind(key), record[key], key))
            target = next((r for r in self._rows if string_form(r.get(key)) == wanted), None)
            if target is not None:
                self._merge(target, record, strict=False)
                logging.debug(f'Upsert matched row {target[ROW_ID]} of "{self.name}" on "{key}".')
            else:
                target = self._snapshot.make_record(record, row_id=self._next_id())
                self._rows.append(target)
                logging.debug(f'Upsert found no row of "{self.name}" with {key}={wanted!r}; adding one.')

            position = self._rows.index(target)
            values = self._snapshot.serialize(self._rows)
            last_col = idx_to_col(max(self._snapshot.grid_width, len(self._snapshot.header), 1) - 1)

            self.service.clear(self.context.spreadsheet_id, a1_range(self.name, f'A2:{last_col}'))
            self._invalidate()
            if len(values) > 1:
                self.service.batch_update(self.context.spreadsheet_id, {a1_range(self.name, 'A2'): values[1:]})

            self._load(values)
            logging.info(f'Upserted into "{self.name}"; {len(self._rows)} rows written.')
            return dict(self._rows[position])

    def save(self, records: Iterable[Mapping[str, Any]] = ()) -> bool:
        """Write the working copy back to the worksheet.

        Args:
            records: Edited records, typically from a query. Each one carrying a
                known ``_id`` is merged into the working copy first. Records
                without a known id are ignored; use :meth:`insert` or
                :meth:`upsert` for new rows.

        Returns:
            False when there was nothing to write (no data rows before or now),
            True after a write.
        """
        with self._lock:
            ids = {r[ROW_ID]: r for r in self._rows}
            for record in records:
                row_id = record.get(ROW_ID)
                if row_id not in ids:
                    logging.debug(f'Ignoring record without a known row id in "{self.name}": {row_id!r}')
                    continue
                self._merge(ids[row_id], record, strict=False)

            if not self._snapshot.rows and not self._rows:
                logging.info(f'Nothing to save for "{self.name}".')
                return False

            values: List[List[Any]] = self._snapshot.serialize(self._rows)
            target: Dict[str, List[List[Any]]] = {a1_range(self.name, 'A1'): values}

            self.service.clear(self.context.spreadsheet_id, a1_range(self.name))
            self._invalidate()
            self.service.batch_update(self.context.spreadsheet_id, target)

            self._load(values)
            logging.info(f'Saved "{self.name}": {len(values) - 1} data rows written.')
            return True

    def refresh(self) -> 'Table':
        """Re-fetch the worksheet, discarding unsaved local changes."""
        with self._lock:
            if self._dirty:
                logging.warning(f'Discarding unsaved changes to "{self.name}".')
            self._load(fetch_values(self.service, self.context, self.cache))
        return self
