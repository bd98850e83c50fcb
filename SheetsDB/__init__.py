"""
SheetsDB: use Google Sheets worksheets as row-oriented tables.

This package provides:

- :mod:`SheetsDB.core` - The session, table catalog, query engine and write-back engine.
- :mod:`SheetsDB.settings` - Configuration loading and validation.
- :mod:`SheetsDB.status` - Error types.
- :mod:`SheetsDB.log` - Optional logging setup.

Example::

    from SheetsDB import Sheets

    db = Sheets(development_id='...', production_id='...', service_account=info)
    db.set_mode(development=True)
    db.connect()
    rows = db.table('Genesis').where('nt_verse', '=', '1:1').get()
"""

import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('SheetsDB requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'SheetsDB: a query-builder over Google Sheets worksheets.'

from .core.cache import SnapshotCache
from .core.query import Query
from .core.session import Mode, Sheets
from .core.table import Table

__all__ = ['Mode', 'Query', 'Sheets', 'SnapshotCache', 'Table']
