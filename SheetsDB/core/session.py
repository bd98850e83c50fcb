"""Session and table catalog.

A :class:`Sheets` session holds the service-account identity and two store ids,
one per deployment tier. :meth:`Sheets.set_mode` picks the tier that the next
remote call addresses; it may be called before :meth:`Sheets.connect`.

Tables opened with :meth:`Sheets.table` capture the spreadsheet id at the time
they are opened, so switching mode afterwards never redirects their writes.
"""

import enum
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence

from . import service as service_mod
from .auth import AuthManager, DEFAULT_SCOPES
from .cache import SnapshotCache
from .table import Table, TableContext, fetch_values
from ..log import log
from ..settings.lib import DEFAULT_CACHE_MAX_AGE
from ..status import status


class Mode(enum.StrEnum):
    """Deployment tier selecting the target spreadsheet."""
    Development = 'development'
    Production = 'production'


class Catalog:
    """Known worksheet titles, per spreadsheet."""

    def __init__(self) -> None:
        self._tables: Dict[str, List[str]] = {}

    def populate(self, spreadsheet_id: str, names: Sequence[str]) -> None:
        self._tables[spreadsheet_id] = list(names)
        logging.debug(f'Catalog of "{spreadsheet_id}": [{", ".join(names)}].')

    def is_populated(self, spreadsheet_id: str) -> bool:
        return spreadsheet_id in self._tables

    def names(self, spreadsheet_id: str) -> List[str]:
        return list(self._tables.get(spreadsheet_id, []))

    def require(self, spreadsheet_id: str, name: str) -> str:
        """Return ``name`` if the spreadsheet has a table of that name.

        Raises:
            status.ValidationError: If the catalog has not been populated.
            status.NotFoundError: naming the requested table and the known set.
        """
        if not self.is_populated(spreadsheet_id):
            raise status.ValidationError(f'The table catalog of "{spreadsheet_id}" has not been loaded.')
        known = self._tables[spreadsheet_id]
        if name not in known:
            raise status.NotFoundError(f'Table "{name}" not found. Known tables: {", ".join(known) or "none"}.')
        return name

    def clear(self) -> None:
        self._tables.clear()


class Sheets:
    """A session against a development and a production spreadsheet.

    Args:
        development_id: Spreadsheet id of the development store.
        production_id: Spreadsheet id of the production store.
        service_account: Service-account info, as found in the JSON key file.
        scopes: OAuth scopes requested for the credentials.
        schema: Optional table -> column token -> value kind declarations.
        cache: Optional :class:`~SheetsDB.core.cache.SnapshotCache` for table reads.
        value_input_option: ``RAW`` (default) or ``USER_ENTERED``.

    Raises:
        status.ConfigurationError: If no store id is given, or the service
            account lacks ``client_email`` or ``private_key``.
    """

    def __init__(self, development_id: Optional[str] = None, production_id: Optional[str] = None,
                 service_account: Optional[Mapping[str, Any]] = None,
                 scopes: Sequence[str] = DEFAULT_SCOPES,
                 schema: Optional[Mapping[str, Mapping[str, str]]] = None,
                 cache: Optional[SnapshotCache] = None,
                 value_input_option: str = service_mod.VALUE_INPUT_OPTION) -> None:
        if not development_id and not production_id:
            raise status.ConfigurationError('A development or production spreadsheet id is required.')

        self.auth = AuthManager(service_account, scopes)
        self._stores: Dict[Mode, Optional[str]] = {
            Mode.Development: development_id,
            Mode.Production: production_id,
        }
        self.mode = Mode.Production if production_id else Mode.Development
        self.schema: Dict[str, Dict[str, str]] = {k: dict(v) for k, v in (schema or {}).items()}
        self.cache = cache
        self.value_input_option = value_input_option
        self.catalog = Catalog()

        self._lock = threading.RLock()
        self._service: Optional[service_mod.SheetsService] = None

    @classmethod
    def from_settings(cls, settings) -> 'Sheets':
        """Create a session from a :class:`~SheetsDB.settings.lib.SettingsAPI`.

        A non-empty ``logging`` section is applied with
        :func:`~SheetsDB.log.log.configure_logging` before the session is built.
        """
        logging_cfg = settings.get_section('logging')
        if logging_cfg:
            log.configure_logging(logging_cfg)
        stores = settings.get_section('stores')
        cache_cfg = settings.get_section('cache')
        cache = None
        if cache_cfg.get('enabled'):
            cache = SnapshotCache(max_age=cache_cfg.get('max_age', DEFAULT_CACHE_MAX_AGE))
        return cls(
            development_id=stores.get('development'),
            production_id=stores.get('production'),
            service_account=settings.get_section('service_account'),
            schema={t: settings.table_kinds(t) for t in settings.get_section('schema')},
            cache=cache,
        )

    def __enter__(self) -> 'Sheets':
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def set_mode(self, development: bool = False) -> 'Sheets':
        """Select the development store when ``development`` is true, production otherwise.

        Raises:
            status.ConfigurationError: If the selected store has no spreadsheet id.
        """
        mode = Mode.Development if development else Mode.Production
        if not self._stores[mode]:
            raise status.ConfigurationError(f'No spreadsheet id configured for {mode} mode.')
        if mode != self.mode:
            logging.info(f'Switching to {mode} mode.')
        self.mode = mode
        return self

    @property
    def spreadsheet_id(self) -> str:
        """The spreadsheet addressed by the current mode."""
        return self._stores[self.mode]

    @property
    def connected(self) -> bool:
        return self._service is not None

    @property
    def service(self) -> service_mod.SheetsService:
        """The remote service wrapper.

        Raises:
            status.ValidationError: If :meth:`connect` has not been called.
        """
        if self._service is None:
            raise status.ValidationError('The session is not connected. Call connect() first.')
        return self._service

    def connect(self) -> 'Sheets':
        """Authenticate, build the Sheets client and load the table catalog."""
        creds = self.auth.get_valid_credentials()
        resource = service_mod.build_service(creds)
        self._service = service_mod.SheetsService(resource, value_input_option=self.value_input_option)
        logging.info(f'Connected as "{self.auth.principal}" in {self.mode} mode.')
        self.list_tables()
        return self

    def close(self) -> None:
        """Release the Sheets client. The session can be connected again."""
        if self._service is not None:
            self._service.close()
            self._service = None
        self.catalog.clear()
        logging.debug('Session closed.')

    def list_tables(self) -> List[str]:
        """Fetch the table names of the current store and refresh the catalog."""
        spreadsheet_id = self.spreadsheet_id
        names = self.service.list_tables(spreadsheet_id)
        self.catalog.populate(spreadsheet_id, names)
        return list(names)

    def tables(self) -> List[str]:
        """The table names of the current store, fetching them once if needed."""
        if not self.catalog.is_populated(self.spreadsheet_id):
            return self.list_tables()
        return self.catalog.names(self.spreadsheet_id)

    def table(self, name: str) -> Table:
        """Open a table of the current store.

        Raises:
            status.ValidationError: If ``name`` is empty or the session is not connected.
            status.NotFoundError: If the store has no table of that name.
            status.EmptyTableError: If the table has no header row.
        """
        if not name:
            raise status.ValidationError('No table selected.')

        service = self.service
        spreadsheet_id = self.spreadsheet_id
        if not self.catalog.is_populated(spreadsheet_id):
            self.list_tables()
        self.catalog.require(spreadsheet_id, name)

        context = TableContext(spreadsheet_id=spreadsheet_id, name=name, kinds=self.schema.get(name, {}))
        values = fetch_values(service, context, self.cache)
        logging.debug(f'Opened table "{name}" of "{spreadsheet_id}".')
        return Table(service, context, values, lock=self._lock, cache=self.cache)
