"""Logging configuration."""
import datetime
import json
import logging
import sys
from typing import Any, List

import structlog
from structlog.types import Processor, EventDict

IGNORED_LOGGERS = [
    "mcp.server.session",
    "mcp.server.lowlevel.server",
    "mcp.server.stdio",
    "asyncio",
]
CALLER_KEYS = ("module", "line", "file")


def add_timestamp(_, __, event_dict: EventDict) -> EventDict:
    """Stamp events with UTC ISO-8601 time unless one is already set."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.datetime.now(datetime.timezone.utc).isoformat()
    return event_dict


def rename_caller_info(_, __, event_dict: EventDict) -> EventDict:
    """Shorten callsite keys added by structlog."""
    if "func_name" in event_dict:
        event_dict["module"] = event_dict.pop("func_name")
    if "lineno" in event_dict:
        event_dict["line"] = event_dict.pop("lineno")
    if "filename" in event_dict:
        event_dict["file"] = event_dict.pop("filename")
    return event_dict


class CompactJSONRenderer:
    """One JSON object per line: ts, lvl, msg, caller keys, then data."""
    def __call__(self, _: Any, __: str, event_dict: EventDict) -> str:
        items = {
            "ts": event_dict.pop("timestamp", None),
            "lvl": event_dict.pop("level", "???"),
            "msg": event_dict.pop("event", ""),
            **{k: v for k, v in event_dict.items() if k in CALLER_KEYS}
        }
        if other := {k: v for k, v in event_dict.items() if k not in CALLER_KEYS}:
            items["data"] = other
        return json.dumps(items, separators=(",", ":"), default=str)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through stdlib logging at the given level.

    Everything goes to STDERR since STDOUT carries the MCP stdio transport:
    - no TTY: compact JSON, one event per line
    - TTY: colored console output
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
        force=True,
    )
    for name in IGNORED_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    shared: List[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
    ]

    json_processors: List[Processor] = shared + [
        add_timestamp,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FILENAME,
            }
        ),
        rename_caller_info,
        structlog.processors.format_exc_info,
        CompactJSONRenderer(),
    ]

    console_processors: List[Processor] = shared + [
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.dev.ConsoleRenderer(colors=True),
    ]

    structlog.configure(
        processors=console_processors if sys.stderr.isatty() else json_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a module; use snake_case events with keyword context."""
    return structlog.get_logger(name)
