"""
Opt-in logging setup for applications using SheetsDB.

SheetsDB modules log through the root logger. Nothing here runs on import:
call :func:`setup_logging` directly, or add a ``logging`` section to the
settings and create the session with :meth:`SheetsDB.Sheets.from_settings`.

Handlers installed here are named ``SheetsDB.*``. Setting up again replaces
only those, so handlers the application installed itself are left alone.
"""
import collections
import logging
import sys
from typing import Any, List, Mapping, Optional, Union

LOG_LEVEL = logging.INFO
LOG_FORMAT = '[%(asctime)s] <%(module)s> %(levelname)s:  %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'
TANK_CAPACITY = 1000

HANDLER_PREFIX = 'SheetsDB.'
STREAM_HANDLER_NAME = HANDLER_PREFIX + 'stream'
TANK_HANDLER_NAME = HANDLER_PREFIX + 'tank'

LEVELS = (logging.DEBUG, logging.INFO, logging.WARNING, logging.ERROR, logging.CRITICAL)

Level = Union[int, str]


def resolve_level(level: Level) -> int:
    """Return the numeric value of a standard logging level.

    Accepts the number (``logging.DEBUG``) or the name, in any case (``'debug'``).

    Raises:
        ValueError: If the level is not one of the standard levels.
    """
    if isinstance(level, str):
        number = logging.getLevelNamesMapping().get(level.strip().upper())
        if number not in LEVELS:
            raise ValueError(f'Unknown logging level "{level}".')
        return number
    if isinstance(level, bool) or not isinstance(level, int):
        raise ValueError('Logging level must be an integer or a level name.')
    if level not in LEVELS:
        raise ValueError('Invalid logging level. Use one of the standard logging levels, e.g., logging.DEBUG.')
    return level


def _own_handlers(logger: logging.Logger) -> List[logging.Handler]:
    return [h for h in logger.handlers if (h.get_name() or '').startswith(HANDLER_PREFIX)]


def set_logging_level(level: Level) -> int:
    """Set the level of the root logger and of the SheetsDB handlers on it."""
    number = resolve_level(level)
    root_logger = logging.getLogger()
    root_logger.setLevel(number)
    for handler in _own_handlers(root_logger):
        handler.setLevel(number)
    return number


def setup_logging(enable_stream_handler: bool = True, enable_tank_handler: bool = True,
                  log_level: Level = LOG_LEVEL, capacity: int = TANK_CAPACITY) -> Optional['TankHandler']:
    """
    Install SheetsDB's handlers on the root logger.

    Args:
        enable_stream_handler: Write formatted records to stdout.
        enable_tank_handler: Keep the latest formatted records in a :class:`TankHandler`.
        log_level: Level number or name applied to the root logger and the handlers.
        capacity: How many records the tank keeps.

    Returns:
        The installed tank handler, or None.
    """
    number = resolve_level(log_level)
    root_logger = logging.getLogger()
    for handler in _own_handlers(root_logger):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    installed: List[logging.Handler] = []

    if enable_stream_handler:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.set_name(STREAM_HANDLER_NAME)
        installed.append(stream_handler)

    tank_handler = None
    if enable_tank_handler:
        tank_handler = TankHandler(capacity=capacity)
        tank_handler.set_name(TANK_HANDLER_NAME)
        installed.append(tank_handler)

    for handler in installed:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    set_logging_level(number)
    return tank_handler


def configure_logging(section: Mapping[str, Any]) -> Optional['TankHandler']:
    """Apply the ``logging`` settings section (``level``, ``stream``, ``tank``, ``capacity``)."""
    return setup_logging(
        enable_stream_handler=section.get('stream', True),
        enable_tank_handler=section.get('tank', False),
        log_level=section.get('level', LOG_LEVEL),
        capacity=section.get('capacity', TANK_CAPACITY),
    )


def find_tank_handler() -> Optional['TankHandler']:
    """The tank handler installed on the root logger, if any."""
    for handler in _own_handlers(logging.getLogger()):
        if isinstance(handler, TankHandler):
            return handler
    return None


class TankHandler(logging.Handler):
    """
    Keeps the latest formatted records in memory, oldest dropped first.

    Attributes:
        tank (collections.deque[tuple[int, str]]): ``(level, message)`` pairs.
    """

    def __init__(self, capacity: int = TANK_CAPACITY):
        super().__init__()
        if capacity < 1:
            raise ValueError('Tank capacity must be at least 1.')
        self.tank = collections.deque(maxlen=capacity)

    def emit(self, record):
        try:
            self.tank.append((record.levelno, self.format(record)))
        except Exception:
            self.handleError(record)

    def get_logs(self, level: Level = logging.NOTSET) -> List[str]:
        """Messages at or above ``level`` (number or name), oldest first."""
        threshold = logging.NOTSET if level == logging.NOTSET else resolve_level(level)
        return [msg for lvl, msg in self.tank if lvl >= threshold]

    def clear_logs(self):
        self.tank.clear()
