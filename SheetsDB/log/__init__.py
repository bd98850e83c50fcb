"""
Logging subsystem.

Modules:

- :mod:`SheetsDB.log.log` - Root logger setup and an in-memory handler for inspecting recent messages.
"""
