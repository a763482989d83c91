"""Logging utilities for recordcast.

Validation code logs through a ``ValidationLogAdapter`` so every record it
emits carries the schema being validated (and, for batches, the batch
size). ``JSONFormatter`` renders that context for log aggregation, and
``setup_logging`` wires both into the root logger for the CLI.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, MutableMapping, Optional, Tuple

__all__ = [
    "JSONFormatter",
    "ValidationLogAdapter",
    "get_validation_logger",
    "setup_logging",
]

# Attributes every LogRecord has; anything else arrived through ``extra``
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per log line.

    Validation context (schema, record index, error counts, metric fields)
    is collected under ``context``.

    Example output:
        {"timestamp": "2025-01-15T10:30:00.123Z", "level": "INFO",
         "logger": "recordcast.batch", "message": "METRIC records_invalid=3",
         "context": {"schema": "Person", "metric_name": "records_invalid", ...}}
    """

    def __init__(self, exclude_fields: Iterable[str] = ()):
        super().__init__()
        self.exclude_fields = frozenset(exclude_fields)

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, timezone.utc)
        payload: Dict[str, Any] = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = {
            key: value
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and key not in self.exclude_fields
        }
        if context:
            payload["context"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ValidationLogAdapter(logging.LoggerAdapter):
    """Logger adapter that attaches validation context to every record.

    Example:
        log = get_validation_logger("recordcast.batch", schema="Person")
        log.info("Starting batch")          # record.schema == "Person"
        log.record_outcome(3, result)       # record_index, error_count
        log.metric("records_invalid", 12, unit="records")
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        # Call-site extras win over the adapter's context
        extra = dict(self.extra or {})
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        return msg, kwargs

    def record_outcome(self, index: int, result: Any) -> None:
        """Log the outcome of validating one record at DEBUG."""
        if result.valid:
            self.debug("Record %d is valid", index, extra={"record_index": index})
            return
        fields: List[str] = sorted({e.field or "<record>" for e in result.errors})
        self.debug(
            "Record %d is invalid: %d error(s)",
            index,
            result.error_count,
            extra={"record_index": index, "error_count": result.error_count, "fields": fields},
        )

    def metric(self, name: str, value: Any, unit: Optional[str] = None) -> None:
        """Log a named metric value at INFO."""
        extra: Dict[str, Any] = {"metric_name": name, "metric_value": value}
        if unit:
            extra["metric_unit"] = unit
        self.info("METRIC %s=%s", name, value, extra=extra)


def get_validation_logger(name: str, **context: Any) -> ValidationLogAdapter:
    """Adapter over ``logging.getLogger(name)`` carrying ``context``."""
    return ValidationLogAdapter(logging.getLogger(name), context)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
    level: Optional[str] = None,
) -> None:
    """Configure root logging for command-line use.

    Log lines go to stderr so reports printed on stdout stay parseable.

    Args:
        verbose: Enable debug-level logging (overrides level)
        json_format: Use JSONFormatter instead of plain text
        log_file: Optional file that receives the same lines
        level: Level name used when not verbose (defaults to INFO)
    """
    log_level = logging.DEBUG if verbose else logging.getLevelName((level or "INFO").upper())

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(log_level)
