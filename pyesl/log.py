"""Process-wide logging setup for pyesl.

pyesl logs through the standard logging module under the "pyesl" logger and
stays silent until the application configures it, either on its own or with
setupLogging() below.
"""

import enum
import logging
import sys

LOGGER_NAME = "pyesl"

FORMAT = "[%(levelname)s] [%(filename)s:%(lineno)d] %(funcName)s(): %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel(enum.IntEnum):
    FATAL = 0
    ERROR = 1
    INFO = 2
    WARN = 3
    DEBUG = 4


# INFO already lets warnings through, so WARN adds nothing on top of it.
_THRESHOLDS = {
    LogLevel.FATAL: logging.CRITICAL,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}

_handler = None


def setupLogging(level=LogLevel.FATAL, dateTime=False, stream=None, filename=None):
    """Send pyesl logs to stream (stderr by default) or append them to filename.
    Calling it again replaces the previous setup.

    level -- (LogLevel) most verbose level to show
    dateTime -- (bool) prefix every line with a timestamp
    """
    global _handler
    logging.addLevelName(logging.CRITICAL, "FATAL")
    logger = logging.getLogger(LOGGER_NAME)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler.close()

    if filename is not None:
        _handler = logging.FileHandler(filename, mode="a")
    else:
        _handler = logging.StreamHandler(stream or sys.stderr)
    fmt = FORMAT
    if dateTime:
        fmt = "%(asctime)s " + fmt
    _handler.setFormatter(logging.Formatter(fmt, DATE_FORMAT))
    logger.addHandler(_handler)
    logger.setLevel(_THRESHOLDS[LogLevel(level)])
    return logger


def enableDebug():
    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG)
    logging.getLogger(LOGGER_NAME).info("Debug mode enabled")


def enableDateTime():
    if _handler is not None:
        _handler.setFormatter(logging.Formatter("%(asctime)s " + FORMAT, DATE_FORMAT))


def fatal(msg, *args):
    """Log at critical level and exit the process"""
    logging.getLogger(LOGGER_NAME).critical(msg, *args)
    sys.exit(1)
