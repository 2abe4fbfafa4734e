"""Structured and colored logging helpers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal

from colorama import Back, Fore, Style

LogFormat = Literal["json", "color"]

_HANDLER_NAME = "imgcls"


class JsonLogFormatter(logging.Formatter):
    """Minimal JSON formatter with deterministic field ordering."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True)


class ColorLogFormatter(logging.Formatter):
    """Human-readable single-line formatter with level colors."""

    _LEVEL_STYLES: dict[int, str] = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW + Style.BRIGHT,
        logging.ERROR: Fore.RED + Style.BRIGHT,
        logging.CRITICAL: Fore.WHITE + Back.RED + Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        style = self._LEVEL_STYLES.get(record.levelno, "")
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        line = " | ".join(
            (
                timestamp.strftime("%H:%M:%S"),
                f"{record.levelname:<8}",
                record.name,
                record.getMessage(),
            )
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return f"{style}{line}{Style.RESET_ALL}"


def configure_logging(level: str = "INFO", fmt: LogFormat = "color") -> None:
    """Install one stream handler on the root logger, replacing a previous one."""
    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.setLevel(level.upper())
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(ColorLogFormatter())
    root.addHandler(handler)
