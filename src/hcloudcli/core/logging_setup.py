"""
Central logging for hcloudcli.

- Console handler on stderr: INFO..CRITICAL (DEBUG when debug is enabled)
- Optional timed rotating file handler: <base_dir>/hcloudcli.log, daily rotation
- Secret redaction: masks bearer tokens, passwords and API keys in msg and % args
- UTC timestamps in ISO-8601

Calling `setup_logging` again reconfigures the base logger without
duplicating handlers.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from pathlib import Path
from typing import Optional

BASE_LOGGER = "hcloudcli"

DEF_CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
DEF_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "[%(filename)s:%(lineno)d %(funcName)s] | %(message)s"
)


class MaskSecretsFilter(logging.Filter):
    """
    Redact common secrets (bearer tokens, API keys, passwords) from log records.
    """

    _patterns = [
        re.compile(r"(Authorization:?\s*Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(api[_-]?key\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(password\"?\s*[=:]\s*\"?)([^,\s\"]+)", re.IGNORECASE),
        re.compile(r"(\btoken\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
    ]

    @staticmethod
    def _mask(text: str) -> str:
        masked = text
        for pat in MaskSecretsFilter._patterns:
            masked = pat.sub(r"\1***REDACTED***", masked)
        return masked

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._mask(str(v)) for k, v in record.args.items()}
            else:
                record.args = tuple(
                    self._mask(a) if isinstance(a, str) else a for a in record.args
                )
        if isinstance(record.msg, str):
            record.msg = self._mask(record.msg)
        return True


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    f.converter = time.gmtime  # type: ignore[attr-defined]
    return f


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default)


def setup_logging(
    *,
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    base_dir: Optional[str] = None,
    debug: bool = False,
    name: str = BASE_LOGGER,
) -> logging.Logger:
    """
    Configure and return the base logger `<name>`.

    Args:
        console_level: Threshold of the stderr handler.
        file_level: Threshold of the rotating file handler.
        base_dir: Directory for `hcloudcli.log`. No file handler when empty.
        debug: Forces the console handler to DEBUG (HTTP request tracing).
    """
    mask = MaskSecretsFilter()
    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)
    base.propagate = False

    # Idempotent reconfiguration: purge our own handlers
    for h in list(base.handlers):
        base.removeHandler(h)
        h.close()

    sh = logging.StreamHandler(stream=sys.stderr)
    sh.setLevel(logging.DEBUG if debug else _level(console_level, logging.INFO))
    sh.setFormatter(_utc_formatter(DEF_CONSOLE_FORMAT))
    sh.addFilter(mask)
    base.addHandler(sh)

    if base_dir:
        os.makedirs(base_dir, exist_ok=True)
        logfile = Path(base_dir) / "hcloudcli.log"
        rh = logging.handlers.TimedRotatingFileHandler(
            str(logfile),
            when="midnight",
            backupCount=14,
            encoding="utf-8",
            utc=True,
        )
        rh.setLevel(_level(file_level, logging.DEBUG))
        rh.setFormatter(_utc_formatter(DEF_FILE_FORMAT))
        rh.addFilter(mask)
        base.addHandler(rh)

    logging.captureWarnings(True)
    return base


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a child logger of the base `hcloudcli` logger."""
    if not name:
        return logging.getLogger(BASE_LOGGER)
    if name == BASE_LOGGER or name.startswith(BASE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{BASE_LOGGER}.{name}")
