"""
Logging configuration and utilities for QualityPilot.

Records emitted while a run executes carry run context (``run_id``,
``step_id``, the action being resolved and the winning strategy) in their
``extra``. The JSON formatter groups that context under a ``run`` key and
the text formatters prefix it as ``[run step]``, so one run's lines can be
followed through interleaved concurrent output.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler

from qualitypilot.config.settings import get_settings
from qualitypilot.security.sanitizer import DataSanitizer, get_sanitizer

# Attributes every LogRecord has; anything else came in through ``extra``
_RESERVED_RECORD_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName", "run_tag"}

RUN_CONTEXT_FIELDS = ("run_id", "step_id", "event_type", "action", "target", "strategy")

_NOISY_LOGGERS = ("openai", "httpx", "asyncio", "playwright")

TEXT_FORMAT = "%(run_tag)s%(message)s"
FILE_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s %(run_tag)s%(message)s"


def _extras(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_ATTRS
    }


def _json_safe(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def run_tag(record: logging.LogRecord) -> str:
    """``[run-1 step_2] `` for records carrying run context, else ``""``."""
    parts = [
        str(getattr(record, key))
        for key in ("run_id", "step_id")
        if getattr(record, key, None)
    ]
    return f"[{' '.join(parts)}] " if parts else ""


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Run context fields are nested under ``run``; every other ``extra`` field
    lands under ``context``. Non-scalar values are stringified. With
    sanitization on, registered run secrets and credential patterns are
    redacted from the whole document.
    """

    def __init__(self, *args, sanitize: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self.sanitizer = get_sanitizer() if sanitize else None

    def format(self, record: logging.LogRecord) -> str:
        extras = _extras(record)
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        run = {
            key: _json_safe(value)
            for key, value in ((key, extras.pop(key, None)) for key in RUN_CONTEXT_FIELDS)
            if value is not None
        }
        if run:
            log_data["run"] = run
        if extras:
            log_data["context"] = {key: _json_safe(value) for key, value in extras.items()}
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.sanitizer:
            log_data = self.sanitizer.sanitize_dict(log_data)
        return json.dumps(log_data)


class RunContextFormatter(logging.Formatter):
    """Text formatter exposing ``%(run_tag)s`` to its format string."""

    def format(self, record: logging.LogRecord) -> str:
        record.run_tag = run_tag(record)
        return super().format(record)


class SanitizingHandler(logging.Handler):
    """Redacts a record's message and arguments before a wrapped handler sees it."""

    def __init__(self, handler: logging.Handler, sanitizer: Optional[DataSanitizer] = None):
        super().__init__(level=handler.level)
        self.handler = handler
        self.sanitizer = sanitizer or get_sanitizer()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.handler.emit(self.sanitizer.sanitize_log_record(record))
        except Exception:
            self.handleError(record)


class RunLogAdapter(logging.LoggerAdapter):
    """Stamps bound run context onto every record, merged with call-site ``extra``."""

    def process(
        self, msg: str, kwargs: Dict[str, Any]
    ) -> tuple[str, Dict[str, Any]]:
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs


def _console_handler(format_type: str, level: int, sanitize: bool) -> logging.Handler:
    if format_type == "json":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter(sanitize=sanitize))
        handler.setLevel(level)
        return handler

    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
    handler.setFormatter(RunContextFormatter(TEXT_FORMAT))
    handler.setLevel(level)
    return SanitizingHandler(handler) if sanitize else handler


def _file_handler(path: str, format_type: str, level: int, sanitize: bool) -> logging.Handler:
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    if format_type == "json":
        handler.setFormatter(JSONFormatter(sanitize=sanitize))
        return handler

    handler.setFormatter(RunContextFormatter(FILE_TEXT_FORMAT))
    return SanitizingHandler(handler) if sanitize else handler


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    sanitize_logs: bool = True,
) -> logging.Logger:
    """
    Configure the root logger for a QualityPilot process.

    Args:
        log_level: Logging level (defaults to settings)
        log_format: 'json' for one object per line on stdout, 'text' for
            rich output on stderr (defaults to settings)
        log_file: Optional file receiving the same records (defaults to settings)
        sanitize_logs: Redact secrets and credentials from every handler

    Returns:
        Root logger instance
    """
    settings = get_settings()
    level = log_level or settings.log_level
    format_type = log_format or settings.log_format
    file_path = log_file or settings.log_file
    numeric_level = getattr(logging, level.upper())

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(_console_handler(format_type, numeric_level, sanitize_logs))
    if file_path:
        root_logger.addHandler(
            _file_handler(str(file_path), format_type, numeric_level, sanitize_logs)
        )
    root_logger.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("qualitypilot").info(
        "QualityPilot logging initialized",
        extra={"log_level": level, "log_format": format_type, "log_file": file_path},
    )
    return root_logger


def get_logger(name: str, **context: Any) -> logging.Logger:
    """
    Get a logger, bound to run context when any is given.

    ``get_logger("orchestration.runner", run_id=run.id)`` returns a
    RunLogAdapter whose records all carry the run id.
    """
    logger = logging.getLogger(name)
    if context:
        return RunLogAdapter(logger, context)
    return logger


def log_run_event(
    event_type: str,
    run_id: str,
    step_id: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
) -> None:
    """Debug trace of a lifecycle event; ``data`` should hold scalars only."""
    extra: Dict[str, Any] = {**(data or {}), "event_type": event_type, "run_id": run_id}
    if step_id:
        extra["step_id"] = step_id
    logging.getLogger("qualitypilot.run_events").debug(
        "Run event: %s", event_type, extra=extra
    )


def log_performance_metric(
    metric_name: str,
    value: float,
    unit: str = "ms",
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """Debug record of a timing such as browser launch or step generation."""
    extra = {**(context or {}), "metric_name": metric_name, "value": value, "unit": unit}
    logging.getLogger("qualitypilot.performance").debug(
        "Performance metric: %s=%.1f%s", metric_name, value, unit, extra=extra
    )
