"""
Utility functions and centralized logger for the PhotoLab PIN gate.
- Robust log directory detection with fallbacks (kiosk/add-on friendly).
- Rotating file logs + console logs.
- PIN redaction in all outputs.
- UTC timestamps and a monotonic millisecond clock.
"""

from __future__ import annotations

import logging
import os
import re
import time
from logging.handlers import RotatingFileHandler
from typing import Optional


# ---------- Redaction ----------

_PIN_KV_RE = re.compile(r"\b(pin|pending_pin|pin_to_confirm)=(\S+)", re.IGNORECASE)
_PIN_JSON_RE = re.compile(r'("(?:photo_lab_pin|pin|pending_pin)"\s*:\s*")[^"]*(")', re.IGNORECASE)

def _redact(text: str) -> str:
    """Redact PIN values from log lines."""
    if not text:
        return text
    red = _PIN_KV_RE.sub(r"\1=***", text)
    red = _PIN_JSON_RE.sub(r'\1***REDACTED***\2', red)
    return red


class RedactingFormatter(logging.Formatter):
    """Formatter that redacts PINs after standard formatting."""
    def format(self, record: logging.LogRecord) -> str:
        s = super().format(record)
        return _redact(s)


# ---------- Log dir resolution ----------

def _ensure_dir(path: str) -> Optional[str]:
    try:
        os.makedirs(path, exist_ok=True)
        # quick writability check
        test_file = os.path.join(path, ".photolab_touch")
        with open(test_file, "w", encoding="utf-8") as f:
            f.write("ok")
        os.remove(test_file)
        return path
    except OSError:
        return None


def _resolve_log_dir() -> str:
    # Priority: env override → /data/logs → /tmp
    candidates = [
        os.environ.get("PHOTOLAB_LOG_DIR"),
        "/data/logs",
        "/tmp",
    ]
    for c in candidates:
        if c and _ensure_dir(c):
            return c
    return "/tmp"


LOG_DIR = _resolve_log_dir()
LOG_FILE = os.path.join(LOG_DIR, "photolab.log")


# ---------- Logger setup ----------

logging.Formatter.converter = time.gmtime

_LOG_FORMAT = "%(asctime)s [%(levelname)s] [PhotoLab] %(message)s"
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

logger = logging.getLogger("PhotoLab")
logger.setLevel(os.environ.get("PHOTOLAB_LOG_LEVEL", "INFO").upper())

# Avoid duplicate handlers if module is re-imported
if logger.handlers:
    for h in list(logger.handlers):
        logger.removeHandler(h)

_console = logging.StreamHandler()
_console.setLevel(logger.level)
_console.setFormatter(RedactingFormatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
logger.addHandler(_console)

# Rotating file handler (best-effort)
try:
    _file = RotatingFileHandler(LOG_FILE, maxBytes=1_000_000, backupCount=5)
    _file.setLevel(logger.level)
    _file.setFormatter(RedactingFormatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(_file)
    logger.debug("[LOG] File logging to %s", LOG_FILE)
except OSError as e:
    logger.warning("[LOG] File handler unavailable (%s); console-only mode", e)


def set_log_level(level: str = "INFO") -> None:
    """Dynamically change the PhotoLab log level."""
    lvl = getattr(logging, (level or "INFO").upper(), logging.INFO)
    logger.setLevel(lvl)
    for h in logger.handlers:
        h.setLevel(lvl)


# ---------- Time ----------

def now_ms() -> float:
    """Monotonic milliseconds; the default clock for lockout bookkeeping."""
    return time.monotonic() * 1000.0
