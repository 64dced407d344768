"""Logging setup for the service and the CLI.

Every module logs through ``logging.getLogger(__name__)``. This module
only installs the root handler: one stream handler on stderr whose
formatter emits a JSON object per record (``timestamp``, ``level``,
``logger``, ``message`` plus the exception text when present), which is
what container log collectors expect.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

_HANDLER_NAME = "sfautoauth"


class JSONFormatter(logging.Formatter):
    """Render a :class:`logging.LogRecord` as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(level: str = "INFO") -> None:
    """Install the JSON handler on the root logger.

    Calling this more than once replaces the previous handler instead of
    stacking a second one.

    Args:
        level: A :mod:`logging` level name such as ``"INFO"``.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(level)

    # Selenium and urllib3 are chatty at INFO
    for noisy in ("selenium", "urllib3", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(max(logging.WARNING, root.level))
