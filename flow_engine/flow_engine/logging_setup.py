"""Root logger configuration.

With ``structured_logging`` enabled every record is emitted as one JSON
object per line::

    {
        "timestamp": "2026-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "flow_engine.lineage.builder",
        "message": "Lineage graph rebuilt: 12 nodes, 9 edges",
        "operation": "lineage.build",   // present when passed via extra=
        "exc_info": "Traceback ..."     // present only on exceptions
    }

Otherwise a plain text format is installed with ``logging.basicConfig``.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flow_engine.config import Settings

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        operation = getattr(record, "operation", None)
        if operation:
            payload["operation"] = operation

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    """Install the root handler selected by *settings*.

    Logs go to stderr so command output on stdout stays machine-readable.
    """
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)

    if settings.structured_logging:
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JSONFormatter())
        root_logger.addHandler(handler)
        root_logger.setLevel(level)
        logging.getLogger(__name__).debug("Structured JSON logging enabled")
        return

    logging.basicConfig(level=level, format=TEXT_FORMAT, stream=sys.stderr, force=True)
