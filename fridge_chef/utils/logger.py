"""Logging for Fridge Chef pipeline runs.

Every line logged during a pipeline run carries two extra fields:
- request_id: short run id shared by all stages of one invocation
- stage: fetch, extraction, recipe, illustration or pipeline

Use run_logger(run_id, stage) to get a logger that attaches both, or pass them
through `extra=` directly. Concurrent runs interleave in the output, the run
id is what tells them apart.

Configured via environment variables:
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- LOG_TYPE: text, json (default: text)
"""

import json
import logging
import os
import sys
from typing import Any, MutableMapping, Optional

RUN_FIELDS = ("request_id", "stage")


def _run_context(record: logging.LogRecord) -> dict[str, str]:
    return {name: getattr(record, name) for name in RUN_FIELDS if getattr(record, name, None)}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log collectors.

    Keys: timestamp, level, logger, message, plus request_id / stage inside a
    run and exception when a traceback is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_run_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class RichTextFormatter(logging.Formatter):
    """Coloured console lines: icon, time, level, logger, [run stage], message."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "RESET": "\033[0m",
    }

    ICONS = {
        "DEBUG": "🔍",
        "INFO": "ℹ️",
        "WARNING": "⚠️",
        "ERROR": "❌",
    }

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        color = self.COLORS.get(level, self.COLORS["RESET"])
        icon = self.ICONS.get(level, "")
        reset = self.COLORS["RESET"]

        context = _run_context(record)
        prefix = f"[{' '.join(context.values())}] " if context else ""
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")

        message = f"{color}{icon} {timestamp} {level:<8} {record.name:<20} {prefix}{record.getMessage()}{reset}"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


class RunLoggerAdapter(logging.LoggerAdapter):
    """Attach the run id and stage to every record, keeping any caller `extra`."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str) -> logging.Logger:
    """Return the named logger, attaching a stdout handler on first use.

    LOG_LEVEL and LOG_TYPE are read once, when the handler is attached.
    Unknown levels fall back to INFO.
    """
    logger_instance = logging.getLogger(name)
    if logger_instance.handlers:
        return logger_instance

    log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    log_type = os.getenv("LOG_TYPE", "text").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JSONFormatter() if log_type == "json" else RichTextFormatter())

    logger_instance.setLevel(log_level)
    logger_instance.addHandler(handler)
    return logger_instance


logger = get_logger("fridge_chef")


def run_logger(run_id: str, stage: Optional[str] = None) -> RunLoggerAdapter:
    """Logger bound to one pipeline run (and optionally one stage)."""
    extra = {"request_id": run_id}
    if stage:
        extra["stage"] = stage
    return RunLoggerAdapter(logger, extra)


# Provider SDKs log every request at INFO
logging.getLogger("google.genai").setLevel(logging.WARNING)
logging.getLogger("google.auth").setLevel(logging.WARNING)
logging.getLogger("urllib3").setLevel(logging.WARNING)
