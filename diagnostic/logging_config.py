"""Logging setup shared by the CLI and the web service.

``setup_logging()`` runs once per entrypoint; every other module just
calls ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import json
import logging
import os
import sys

# SDK and transport loggers that drown the interview flow at INFO.
_QUIET_LOGGERS = (
    "httpx",
    "httpcore",
    "openai",
    "urllib3",
    "google.auth",
    "google.api_core",
    "grpc",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log collectors."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging() -> None:
    """Configure the root logger from ``LOG_LEVEL`` and ``LOG_FORMAT``.

    ``LOG_FORMAT=json`` switches to ``JsonFormatter``; anything else
    gives the plain text layout used during local interviews.
    """
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if os.getenv("LOG_FORMAT", "text").lower() == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
                datefmt="%Y-%m-%dT%H:%M:%S",
            )
        )

    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if level_name != logging.getLevelName(level):
        logging.getLogger(__name__).warning("Unknown LOG_LEVEL %r, using INFO", level_name)
