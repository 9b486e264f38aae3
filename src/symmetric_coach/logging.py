"""JSON structured logging for the coaching core.

Controlled via COACH_LOG_FORMAT env var: "json" (default) or "text".
"""

import json
import logging
import traceback
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
        }

        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Include any coach_* extras (coach_event, coach_payload, coach_duration_ms, ...)
        for key, value in record.__dict__.items():
            if key.startswith("coach_"):
                log_entry[key] = value

        # Event payload fields are queryable at top level; core fields win on collision.
        payload = getattr(record, "coach_payload", None)
        if isinstance(payload, dict):
            for key, value in payload.items():
                log_entry.setdefault(str(key), value)

        return json.dumps(log_entry, default=str)


def setup_logging(log_format: str, level: int = logging.INFO) -> None:
    """Configure root logger with either JSON or plaintext format."""
    import sys

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicate output
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root.addHandler(handler)
