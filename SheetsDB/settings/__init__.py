"""
Settings package for SheetsDB configuration.

- :mod:`SheetsDB.settings.lib` - Schema validation, config.json loading and environment-based settings.
"""
