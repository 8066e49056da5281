"""Logging setup for bucketlimit.

Every module logs through ``get_logger(__name__)`` under the
``bucketlimit`` logger. Token decisions go out at DEBUG with the bucket
level before and after the call, so a JSON log stream can replay what a
backend saw. Nothing read from a log record feeds back into a decision.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

from bucketlimit.core.config import settings

ROOT_LOGGER = "bucketlimit"

# Fields attached to token decision records via extra=
DECISION_FIELDS = (
    "resource_name",
    "account_id",
    "backend",
    "allowed",
    "tokens_before",
    "tokens_after",
    "duration_ms",
)

# Attributes set by LogRecord itself, plus keys the formatter writes
_BUILTIN_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "timestamp", "logger", "level", "source"}


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON line.

    Decision fields sit at the top level; any other ``extra=`` values are
    grouped under ``"extra"``.
    """

    CONTEXT_FIELDS = list(DECISION_FIELDS)

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        payload: Dict[str, Any] = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }
        payload.update(self._decision(record))

        extra = self._extra(record)
        if extra:
            payload["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(payload, default=str, ensure_ascii=False)

    def _decision(self, record: logging.LogRecord) -> Dict[str, Any]:
        values = ((name, getattr(record, name, None)) for name in self.CONTEXT_FIELDS)
        return {name: value for name, value in values if value is not None}

    def _extra(self, record: logging.LogRecord) -> Dict[str, Any]:
        return {
            key: value
            for key, value in vars(record).items()
            if key not in _BUILTIN_ATTRS and key not in self.CONTEXT_FIELDS
        }


class ContextFilter(logging.Filter):
    """Give every record the decision fields, defaulting to None.

    The ``structured`` text format names them, so records logged without
    them would otherwise fail to format.
    """

    CONTEXT_DEFAULTS = dict.fromkeys(DECISION_FIELDS)

    def filter(self, record: logging.LogRecord) -> bool:
        for name, default in self.CONTEXT_DEFAULTS.items():
            if not hasattr(record, name):
                setattr(record, name, default)
        return True


def get_logging_config() -> Dict[str, Any]:
    """Build the dictConfig for the current settings.

    ``log_format`` picks the console formatter: ``text`` (plain lines),
    ``structured`` (plain lines plus decision fields) or ``json``.
    """
    level = settings.log_level.upper()
    fmt = settings.log_format.lower()

    base_format = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
    formatters: Dict[str, Any] = {
        "standard": {"format": base_format},
        "structured": {
            "format": base_format
            + " | backend=%(backend)s resource=%(resource_name)s"
            " account=%(account_id)s allowed=%(allowed)s"
        },
        "json": {"()": "bucketlimit.core.logging.JSONFormatter"},
    }
    formatter = {"json": "json", "structured": "structured"}.get(fmt, "standard")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "filters": {"context": {"()": "bucketlimit.core.logging.ContextFilter"}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "level": level,
                "formatter": formatter,
                "filters": ["context"],
            },
        },
        "loggers": {
            ROOT_LOGGER: {"level": level, "handlers": ["console"], "propagate": False},
        },
    }


def setup_logging() -> None:
    """Apply get_logging_config() and quiet SQLAlchemy's engine logger."""
    logging.config.dictConfig(get_logging_config())
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def get_log_context(
    resource_name: Optional[str] = None,
    account_id: Optional[str] = None,
    backend: Optional[str] = None,
    **fields: Any,
) -> Dict[str, Any]:
    """Build an ``extra=`` dict for a decision record, dropping None values.

    Example:
        >>> logger.debug(
        ...     "token granted",
        ...     extra=get_log_context("api", "acct-1", backend="redis", allowed=True),
        ... )
    """
    context = dict(resource_name=resource_name, account_id=account_id, backend=backend, **fields)
    return {key: value for key, value in context.items() if value is not None}
