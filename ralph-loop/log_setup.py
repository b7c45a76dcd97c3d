"""Logging configuration: console or JSON output with secret redaction."""

from __future__ import annotations

import json
import logging
import re
from typing import Sequence

REDACTED = "[REDACTED]"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _compile(patterns: Sequence[str]) -> list[re.Pattern]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error:
            logging.getLogger(__name__).warning("Ignoring bad redact pattern: %r", pattern)
    return compiled


class RedactingFilter(logging.Filter):
    """Scrubs API keys from log messages and their string arguments."""

    def __init__(self, patterns: Sequence[str], name: str = "") -> None:
        super().__init__(name)
        self._regexes = _compile(patterns)

    def _scrub(self, text: str) -> str:
        for regex in self._regexes:
            text = regex.sub(REDACTED, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._regexes:
            return True
        record.msg = self._scrub(str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(
                self._scrub(a) if isinstance(a, str) else a for a in record.args
            )
        return True


class JsonFormatter(logging.Formatter):
    """Structured JSON log formatter for machine-readable output."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(
    verbose: bool = False,
    json_log: bool = False,
    redact_patterns: Sequence[str] = (),
) -> None:
    """Configure the root logger for the CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    if json_log:
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter(datefmt=DATE_FORMAT))
        logging.root.addHandler(handler)
        logging.root.setLevel(level)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)

    for handler in logging.root.handlers:
        handler.addFilter(RedactingFilter(redact_patterns))
