"""
Core package for SheetsDB.

This package includes:

- :mod:`SheetsDB.core.auth` - Google service-account credential management.
- :mod:`SheetsDB.core.service` - Google Sheets API wrapper for list, read, clear, append and batch-write calls.
- :mod:`SheetsDB.core.session` - The :class:`~SheetsDB.core.session.Sheets` session, store modes and table catalog.
- :mod:`SheetsDB.core.materializer` - Header canonicalization, typed casting, and row records.
- :mod:`SheetsDB.core.query` - Immutable in-memory filtering and sorting.
- :mod:`SheetsDB.core.table` - Local edits and full-table write-back.
- :mod:`SheetsDB.core.cache` - In-memory cache of fetched tables, invalidated on write.
"""
