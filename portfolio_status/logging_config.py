"""
portfolio_status/logging_config.py

Root logging setup for the app, applied once per create_app().

Output:
- DEBUG/TESTING apps: one short line per record (time, level, logger, message)
- otherwise: one JSON document per line, for log shipping

Level comes from the LOG_LEVEL config value; without it DEBUG apps log at DEBUG
and everything else at INFO. Audit entries (portfolio_status.audit) go through
the same handler.
"""

import json
import logging
import logging.config
from datetime import datetime, timezone

QUIET_LOGGERS = ("werkzeug", "urllib3", "redis")


def _timestamp(record: logging.LogRecord) -> datetime:
    """Time the record was created, as an aware UTC datetime."""
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JsonLineFormatter(logging.Formatter):
    """Record -> single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Record -> 'HH:MM:SS LEVEL logger | message' (local time)."""

    def format(self, record: logging.LogRecord) -> str:
        when = _timestamp(record).astimezone().strftime("%H:%M:%S")
        line = f"{when} {record.levelname:<7} {record.name} | {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve_level(app) -> str:
    configured = app.config.get("LOG_LEVEL")
    if configured:
        name = str(configured).upper()
        if isinstance(logging.getLevelName(name), int):
            return name
    return "DEBUG" if app.config.get("DEBUG") else "INFO"


def configure_logging(app) -> None:
    """Replace the root handlers with one stderr handler for `app`."""
    level = _resolve_level(app)
    structured = not (app.config.get("DEBUG") or app.config.get("TESTING"))

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "app": {"()": JsonLineFormatter if structured else ConsoleFormatter},
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "app",
                },
            },
            "root": {"level": level, "handlers": ["stderr"]},
            "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        }
    )
    app.logger.setLevel(level)
    app.logger.debug("Logging ready (level=%s, json=%s)", level, structured)
