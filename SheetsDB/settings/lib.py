"""Settings library for store and service-account configuration.

Provides:
    - Schema validation for the config.json structure.
    - Loading, saving and section access for settings.
    - Construction of settings from environment variables.
    - Optional logging setup applied by the session.
    - Constants for column value kinds.
"""

import copy
import json
import logging
import os
import pathlib
from typing import Dict, Any, Optional, List

from ..log.log import resolve_level
from ..status import status

app_name: str = 'SheetsDB'

VALUE_KINDS: List[str] = ['string', 'int', 'float', 'date']

REQUIRED_SERVICE_ACCOUNT_KEYS: List[str] = ['client_email', 'private_key']

DEFAULT_CACHE_MAX_AGE: int = 300


class EnvKeys:
    """Environment variables read by :meth:`SettingsAPI.from_env`."""
    Config = 'SHEETSDB_CONFIG'
    DevelopmentId = 'SHEETSDB_DEVELOPMENT_ID'
    ProductionId = 'SHEETSDB_PRODUCTION_ID'
    ServiceAccount = 'SHEETSDB_SERVICE_ACCOUNT'


CONFIG_SCHEMA: Dict[str, Any] = {
    'stores': {
        'type': dict,
        'required': True,
        'item_schema': {
            'development': {'type': str, 'required': False},
            'production': {'type': str, 'required': False},
        }
    },
    'service_account': {
        'type': dict,
        'required': True,
        'required_keys': REQUIRED_SERVICE_ACCOUNT_KEYS,
    },
    'schema': {
        'type': dict,
        'required': False,
        'allowed_values': VALUE_KINDS,
    },
    'cache': {
        'type': dict,
        'required': False,
        'item_schema': {
            'enabled': {'type': bool, 'required': True},
            'max_age': {'type': int, 'required': False},
        }
    },
    'logging': {
        'type': dict,
        'required': False,
        'item_schema': {
            'level': {'type': str, 'required': False},
            'stream': {'type': bool, 'required': False},
            'tank': {'type': bool, 'required': False},
            'capacity': {'type': int, 'required': False},
        }
    },
}


def default_config_path() -> pathlib.Path:
    """Return the config file location, honouring ``SHEETSDB_CONFIG``."""
    if os.environ.get(EnvKeys.Config):
        return pathlib.Path(os.environ[EnvKeys.Config])
    return pathlib.Path.home() / '.config' / app_name / 'config.json'


def _validate_stores(stores: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate the 'stores' section.

    At least one of the development and production spreadsheet ids must be set.

    Raises:
        status.ConfigurationError: If a store id has the wrong type, or none is set.
    """
    logging.debug('Validating "stores" section.')
    for k in stores:
        if k not in item_schema:
            raise status.ConfigurationError(f'Unknown store "{k}"; expected one of {list(item_schema)}.')
    for k, specs in item_schema.items():
        if k in stores and not isinstance(stores[k], specs['type']):
            raise status.ConfigurationError(f'Store "{k}" must be {specs["type"]}, got {type(stores[k])}.')
    if not any(stores.get(k) for k in item_schema):
        raise status.ConfigurationError('At least one of "development" or "production" store ids is required.')


def _validate_service_account(info: Dict[str, Any], required_keys: List[str]) -> None:
    """Validate that the service-account info carries an identity and a signing key.

    Raises:
        status.ConfigurationError: If a required field is absent or empty.
    """
    logging.debug('Validating "service_account" section.')
    missing = [k for k in required_keys if not info.get(k)]
    if missing:
        raise status.ConfigurationError(f'Missing required service account fields: {missing}.')


def _validate_schema(schema: Dict[str, Any], allowed_values: List[str]) -> None:
    """Validate the 'schema' section: a mapping of table -> column token -> value kind.

    Raises:
        status.ConfigurationError: If a table entry is not a dict or a kind is unknown.
    """
    logging.debug('Validating "schema" section.')
    for table, columns in schema.items():
        if not isinstance(columns, dict):
            raise status.ConfigurationError(f'Schema for table "{table}" must be a dict.')
        for column, kind in columns.items():
            if kind not in allowed_values:
                raise status.ConfigurationError(
                    f'Column "{table}.{column}" kind "{kind}" must be one of {allowed_values}.'
                )


def _validate_cache(cache: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate the 'cache' section.

    Raises:
        status.ConfigurationError: If a field is missing, of the wrong type, or max_age is negative.
    """
    logging.debug('Validating "cache" section.')
    for field, specs in item_schema.items():
        if specs['required'] and field not in cache:
            raise status.ConfigurationError(f'Cache setting "{field}" is required.')
        if field not in cache:
            continue
        if isinstance(cache[field], bool) and specs['type'] is not bool:
            raise status.ConfigurationError(f'Cache setting "{field}" must be {specs["type"]}.')
        if not isinstance(cache[field], specs['type']):
            raise status.ConfigurationError(f'Cache setting "{field}" must be {specs["type"]}.')
    if cache.get('max_age', 0) < 0:
        raise status.ConfigurationError('Cache setting "max_age" must not be negative.')


def _validate_logging(section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate the 'logging' section.

    Raises:
        status.ConfigurationError: If a field is unknown or of the wrong type, the
            level is not a standard level name, or the capacity is not positive.
    """
    logging.debug('Validating "logging" section.')
    for field, value in section.items():
        if field not in item_schema:
            raise status.ConfigurationError(f'Unknown logging setting "{field}"; expected one of {list(item_schema)}.')
        expected = item_schema[field]['type']
        if not isinstance(value, expected) or (isinstance(value, bool) and expected is not bool):
            raise status.ConfigurationError(f'Logging setting "{field}" must be {expected}.')
    if 'level' in section:
        try:
            resolve_level(section['level'])
        except ValueError as ex:
            raise status.ConfigurationError(f'Logging setting "level": {ex}') from ex
    if section.get('capacity', 1) < 1:
        raise status.ConfigurationError('Logging setting "capacity" must be at least 1.')


def validate_config(data: Dict[str, Any]) -> None:
    """Validate config data against :data:`CONFIG_SCHEMA`.

    Args:
        data: The settings dictionary.

    Raises:
        status.ConfigurationError: If a required section is missing or validation fails.
    """
    if not data:
        raise status.ConfigurationError('Configuration is empty.')

    logging.debug('Validating configuration against schema.')
    for field, specs in CONFIG_SCHEMA.items():
        if specs.get('required') and field not in data:
            raise status.ConfigurationError(f'Missing required section: {field}')

        if field not in data:
            continue

        if not isinstance(data[field], specs['type']):
            raise status.ConfigurationError(f'Section "{field}" must be {specs["type"]}, got {type(data[field])}.')

        if field == 'stores':
            _validate_stores(data[field], specs['item_schema'])
        elif field == 'service_account':
            _validate_service_account(data[field], specs['required_keys'])
        elif field == 'schema':
            _validate_schema(data[field], specs['allowed_values'])
        elif field == 'cache':
            _validate_cache(data[field], specs['item_schema'])
        elif field == 'logging':
            _validate_logging(data[field], specs['item_schema'])

    logging.debug('Configuration is valid.')


def load_service_account(value: str) -> Dict[str, Any]:
    """Parse service-account info given either as JSON text or as a path to a key file.

    Raises:
        status.ConfigurationError: If the file does not exist or the JSON is malformed.
    """
    text = value.strip()
    if not text.startswith('{'):
        path = pathlib.Path(text).expanduser()
        if not path.exists():
            raise status.ConfigurationError(f'Service account file not found: {path}')
        text = path.read_text(encoding='utf-8')
    try:
        data = json.loads(text)
    except json.JSONDecodeError as ex:
        raise status.ConfigurationError(f'Service account JSON is malformed: {ex}') from ex
    if not isinstance(data, dict):
        raise status.ConfigurationError('Service account JSON must be an object.')
    return data


class SettingsAPI:
    """
    Provides an interface to load, validate, get, set and save config.json sections.
    """

    def __init__(self, config_path: Optional[str] = None, data: Optional[Dict[str, Any]] = None) -> None:
        """Initialize SettingsAPI.

        Args:
            config_path: Optional path to a config.json file. Defaults to :func:`default_config_path`.
            data: Optional settings dict. When given the file is not read.
        """
        self.config_path: pathlib.Path = pathlib.Path(config_path) if config_path else default_config_path()
        self.config_data: Dict[str, Any] = {}

        if data is not None:
            validate_config(data)
            self.config_data = copy.deepcopy(data)
        else:
            self.load_config()

    @classmethod
    def from_env(cls) -> 'SettingsAPI':
        """Build settings from ``SHEETSDB_*`` environment variables.

        Raises:
            status.ConfigurationError: If the service account or both store ids are missing.
        """
        raw_account = os.environ.get(EnvKeys.ServiceAccount, '')
        if not raw_account:
            raise status.ConfigurationError(f'Environment variable {EnvKeys.ServiceAccount} is not set.')

        stores: Dict[str, str] = {}
        if os.environ.get(EnvKeys.DevelopmentId):
            stores['development'] = os.environ[EnvKeys.DevelopmentId]
        if os.environ.get(EnvKeys.ProductionId):
            stores['production'] = os.environ[EnvKeys.ProductionId]

        data = {
            'stores': stores,
            'service_account': load_service_account(raw_account),
        }
        logging.debug('Loaded settings from the environment.')
        return cls(data=data)

    def load_config(self) -> Dict[str, Any]:
        """Load config.json from disk and validate against schema.

        Returns:
            The loaded config data dictionary.

        Raises:
            status.ConfigurationError: If the file is missing, malformed or invalid.
        """
        logging.debug(f'Loading config from "{self.config_path}"')
        if not self.config_path.exists():
            raise status.ConfigurationError(f'Config file not found: {self.config_path}')

        try:
            with self.config_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
        except json.JSONDecodeError as ex:
            raise status.ConfigurationError(f'Config file is malformed: {ex}') from ex

        validate_config(data)
        self.config_data = data
        return self.config_data

    def get_section(self, section_name: str) -> Dict[str, Any]:
        """Retrieve a copy of a config section.

        Optional sections that are absent return an empty dict.

        Raises:
            KeyError: If section_name is not part of the schema.
        """
        if section_name not in CONFIG_SCHEMA:
            raise KeyError(f'Unknown section "{section_name}".')
        return copy.deepcopy(self.config_data.get(section_name, {}))

    def set_section(self, section_name: str, new_data: Dict[str, Any]) -> None:
        """Replace a section in memory, validating the resulting config.

        Raises:
            KeyError: If section_name is not part of the schema.
            status.ConfigurationError: If the new data fails validation; the old data is kept.
        """
        if section_name not in CONFIG_SCHEMA:
            raise KeyError(f'Unknown section "{section_name}".')

        candidate = copy.deepcopy(self.config_data)
        candidate[section_name] = copy.deepcopy(new_data)
        validate_config(candidate)
        self.config_data = candidate
        logging.debug(f'Section "{section_name}" updated.')

    def save_section(self, section_name: str) -> None:
        """Write one section of the in-memory config to disk, keeping the other sections on disk as they are."""
        if section_name not in CONFIG_SCHEMA:
            raise KeyError(f'Unknown section "{section_name}".')

        on_disk: Dict[str, Any] = {}
        if self.config_path.exists():
            with self.config_path.open('r', encoding='utf-8') as f:
                on_disk = json.load(f)
        on_disk[section_name] = self.config_data.get(section_name, {})

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with self.config_path.open('w', encoding='utf-8') as f:
            json.dump(on_disk, f, indent=4)
        logging.debug(f'Section "{section_name}" saved to "{self.config_path}".')

    def save_all(self) -> None:
        """Write the whole in-memory config to disk."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with self.config_path.open('w', encoding='utf-8') as f:
            json.dump(self.config_data, f, indent=4)
        logging.debug(f'Config saved to "{self.config_path}".')

    def table_kinds(self, table: str) -> Dict[str, str]:
        """Return the declared column kinds for a table (empty when undeclared)."""
        return dict(self.config_data.get('schema', {}).get(table, {}))
