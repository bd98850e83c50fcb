"""Google Sheets API integration.

Wraps the Sheets v4 resource with the five calls the table engine needs: list
the worksheets of a spreadsheet, read a range, clear a range, append rows and
batch-write values. Every failure surfaced by the service is re-raised as
:class:`~SheetsDB.status.status.RemoteServiceError`.
"""

import logging
import socket
import ssl
from typing import Any, Dict, List, Optional, Sequence

import google.auth.exceptions
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..status import status

VALUE_INPUT_OPTION: str = 'RAW'
VALUE_RENDER_OPTION: str = 'FORMATTED_VALUE'


def idx_to_col(idx: int) -> str:
    """Convert zero-based column index to spreadsheet letter(s).

    Args:
        idx: The zero-based column index.

    Returns:
        The spreadsheet column letter(s) (e.g., A, B, AA).
    """
    letters = ''
    while idx >= 0:
        letters = chr((idx % 26) + ord('A')) + letters
        idx = idx // 26 - 1
    return letters


def quote_table(table: str) -> str:
    """Quote a worksheet title for use in an A1 range."""
    return "'" + table.replace("'", "''") + "'"


def a1_range(table: str, cells: Optional[str] = None) -> str:
    """Build an A1 range such as ``'Sheet 1'!A2:C``.

    Args:
        table: The worksheet title.
        cells: Optional cell span. Without it the range addresses the whole sheet.
    """
    quoted = quote_table(table)
    return f'{quoted}!{cells}' if cells else quoted


def build_service(creds: Any) -> Any:
    """
    Builds a Google Sheets v4 API client.

    Raises:
        status.RemoteServiceError: If the client can not be created.
    """
    try:
        service = build('sheets', 'v4', credentials=creds, cache_discovery=False)
    except (HttpError, google.auth.exceptions.GoogleAuthError, OSError) as ex:
        raise status.RemoteServiceError(f'Could not create the Sheets client: {ex}', details=str(ex)) from ex
    logging.debug('Google Sheets service client created successfully.')
    return service


def _execute(request: Any, what: str) -> Dict[str, Any]:
    """Execute an API request, translating transport and HTTP failures.

    Args:
        request: A googleapiclient ``HttpRequest``.
        what: Short description of the call, used in error messages.
    """
    try:
        return request.execute() or {}
    except HttpError as ex:
        stat: Optional[int] = ex.resp.status if ex.resp else None
        reason = getattr(ex, 'reason', None) or str(ex)
        raise status.RemoteServiceError(
            f'Error while trying to {what} (HTTP {stat}): {reason}',
            http_status=stat,
            details=reason,
        ) from ex
    except socket.timeout as ex:
        raise status.RemoteServiceError(f'Timeout while trying to {what}: {ex}', details=str(ex)) from ex
    except ssl.SSLError as ex:
        raise status.RemoteServiceError(f'SSL error while trying to {what}: {ex}', details=str(ex)) from ex
    except google.auth.exceptions.GoogleAuthError as ex:
        raise status.RemoteServiceError(
            f'Authentication error while trying to {what}: {ex}', details=str(ex)) from ex


class SheetsService:
    """Thin wrapper over the Sheets v4 resource.

    Args:
        resource: The object returned by :func:`build_service`.
        value_input_option: How written values are interpreted (``RAW`` or ``USER_ENTERED``).
    """

    def __init__(self, resource: Any, value_input_option: str = VALUE_INPUT_OPTION) -> None:
        self.resource = resource
        self.value_input_option = value_input_option

    def close(self) -> None:
        """Release the underlying HTTP client."""
        close = getattr(self.resource, 'close', None)
        if close:
            close()

    def list_tables(self, spreadsheet_id: str) -> List[str]:
        """Return the worksheet titles of a spreadsheet, in sheet order."""
        logging.debug(f'Listing tables of spreadsheet "{spreadsheet_id}".')
        result = _execute(
            self.resource.spreadsheets().get(
                spreadsheetId=spreadsheet_id,
                fields='sheets.properties.title',
            ),
            f'list the tables of spreadsheet "{spreadsheet_id}"',
        )
        return [s.get('properties', {}).get('title', '') for s in result.get('sheets', [])]

    def get_values(self, spreadsheet_id: str, range_: str) -> List[List[Any]]:
        """Read all cell rows in a range. Trailing empty rows and cells are omitted by the service."""
        logging.debug(f'Fetching values from range "{range_}".')
        result = _execute(
            self.resource.spreadsheets().values().get(
                spreadsheetId=spreadsheet_id,
                range=range_,
                majorDimension='ROWS',
                valueRenderOption=VALUE_RENDER_OPTION,
            ),
            f'read range "{range_}"',
        )
        values: List[List[Any]] = result.get('values', [])
        logging.debug(f'Total rows fetched: {len(values)}.')
        return values

    def clear(self, spreadsheet_id: str, range_: str) -> None:
        """Clear the values of a range."""
        logging.debug(f'Clearing range "{range_}".')
        _execute(
            self.resource.spreadsheets().values().clear(
                spreadsheetId=spreadsheet_id,
                range=range_,
                body={},
            ),
            f'clear range "{range_}"',
        )

    def append(self, spreadsheet_id: str, range_: str, rows: Sequence[Sequence[Any]]) -> Dict[str, Any]:
        """Append rows after the last row of data found in the range."""
        logging.debug(f'Appending {len(rows)} row(s) to range "{range_}".')
        return _execute(
            self.resource.spreadsheets().values().append(
                spreadsheetId=spreadsheet_id,
                range=range_,
                valueInputOption=self.value_input_option,
                insertDataOption='INSERT_ROWS',
                body={'values': [list(r) for r in rows]},
            ),
            f'append to range "{range_}"',
        )

    def batch_update(self, spreadsheet_id: str, data: Dict[str, Sequence[Sequence[Any]]]) -> Dict[str, Any]:
        """Write explicit values into one or more ranges in a single call.

        Args:
            spreadsheet_id: The target spreadsheet.
            data: Mapping of A1 range to the rows to write there.
        """
        payload = {
            'valueInputOption': self.value_input_option,
            'data': [
                {'range': range_, 'values': [list(r) for r in rows]}
                for range_, rows in data.items()
            ],
        }
        logging.debug(f'Batch-writing {len(payload["data"])} range(s).')
        return _execute(
            self.resource.spreadsheets().values().batchUpdate(
                spreadsheetId=spreadsheet_id,
                body=payload,
            ),
            f'write to spreadsheet "{spreadsheet_id}"',
        )
