"""
Logging configuration for ldapsession.

Library code never configures handlers on its own: the package logger carries a
NullHandler so that sessions created without an explicit logger stay silent.
The command line front end calls init() to attach the bullet-point formatter.
"""

import logging as _logging
import sys
from typing import Any, Dict, MutableMapping, Optional, Tuple

_IS_VERBOSE = False  # Flag to control verbosity of error output

PACKAGE_NAME = "ldapsession"


def set_verbose(is_verbose: bool) -> None:
    """
    Set the verbosity level for error reporting.

    Args:
        is_verbose: Boolean indicating whether to print full stack traces
    """
    global _IS_VERBOSE
    _IS_VERBOSE = is_verbose  # type: ignore


def is_verbose() -> bool:
    """Check if verbose error reporting is enabled."""
    return _IS_VERBOSE


# Bullet point mapping for different log levels
BULLET_POINTS: Dict[int, str] = {
    _logging.INFO: "[*]",
    _logging.DEBUG: "[+]",
    _logging.WARNING: "[!]",
    _logging.ERROR: "[-]",
    _logging.CRITICAL: "[-]",
}


class Formatter(_logging.Formatter):
    """
    Formatter that prefixes each message with a bullet based on its level.

    - INFO:    [*]
    - DEBUG:   [+]
    - WARNING: [!]
    - ERROR:   [-]
    """

    def __init__(self) -> None:
        super().__init__("%(bullet)s %(message)s")

    def format(self, record: _logging.LogRecord) -> str:
        record.bullet = BULLET_POINTS.get(record.levelno, "[-]")
        return super().format(record)


class SessionLogAdapter(_logging.LoggerAdapter):  # type: ignore[type-arg]
    """
    Logger adapter attaching the owning package to every record.

    The fields end up as attributes on the log record, so a structured handler
    configured by the caller can pick them up.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs


def get_session_logger(
    logger: Optional[_logging.Logger] = None, **fields: Any
) -> SessionLogAdapter:
    """
    Build the logging handle used by a session.

    Args:
        logger: Caller supplied logger, or None for the package logger
        **fields: Extra fields attached to each record

    Returns:
        Adapter wrapping the chosen logger
    """
    if logger is None:
        logger = _logging.getLogger(f"{PACKAGE_NAME}.session")

    return SessionLogAdapter(logger, {"package": PACKAGE_NAME, **fields})


def init(
    level: int = _logging.INFO,
    logger_name: str = PACKAGE_NAME,
    propagate: bool = False,
) -> None:
    """
    Attach the bullet-point formatter to the ldapsession logger.

    Args:
        level: Log level to set (default: INFO)
        logger_name: Name of the logger to configure
        propagate: Whether to propagate logs to parent loggers

    Example:
        init(level=logging.DEBUG)
    """
    handler = _logging.StreamHandler(sys.stderr)
    handler.setFormatter(Formatter())

    logger = _logging.getLogger(logger_name)

    # Remove existing handlers to avoid duplicates on re-initialization
    if logger.handlers:
        logger.handlers.clear()

    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


# Module logger for code that is not tied to a single session
logging = _logging.getLogger(PACKAGE_NAME)
logging.addHandler(_logging.NullHandler())
