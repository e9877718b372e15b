"""
Configuration loader for the PhotoLab PIN gate
- Primary source: /data/options.json (add-on options UI), overridable
  via PHOTOLAB_OPTIONS
- Fallback: configs/config.yaml (for local dev)
- Flat option keys (pin_length, max_attempts, lockout_seconds, ...) are
  merged into the nested pin/store blocks so the app sees one shape.
"""

from __future__ import annotations

import os
import json
import yaml
from typing import Dict, Any
from pydantic import BaseModel, ValidationError, Field

from photolab.pin_session import PinPolicy
from photolab.pin_state import PIN_LENGTH, MAX_ATTEMPTS, LOCKOUT_DURATION_MS
from photolab.secure_store import SECURE_KEY
from photolab.utils import logger


# ----------------------------
# Pydantic models (Pydantic v2)
# ----------------------------
class PinConfig(BaseModel):
    pin_length: int = Field(PIN_LENGTH, ge=1, le=12)
    max_attempts: int = Field(MAX_ATTEMPTS, ge=1)
    lockout_duration_ms: int = Field(LOCKOUT_DURATION_MS, ge=1)
    auto_submit: bool = True          # verify as soon as the last digit lands
    tick_interval_s: float = Field(0.1, gt=0)

    def to_policy(self) -> PinPolicy:
        return PinPolicy(
            pin_length=self.pin_length,
            max_attempts=self.max_attempts,
            lockout_duration_ms=self.lockout_duration_ms,
            auto_submit=self.auto_submit,
            tick_interval_s=self.tick_interval_s,
        )


class StoreConfig(BaseModel):
    backend: str = "file"             # "file" | "memory"
    path: str = "/data/secure_store.json"
    key: str = SECURE_KEY


class AppConfig(BaseModel):
    log_level: str = "INFO"
    pin: PinConfig = Field(default_factory=PinConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)


# ----------------------------
# Normalization helpers
# ----------------------------
_PIN_KEYS = ("pin_length", "max_attempts", "lockout_duration_ms", "auto_submit", "tick_interval_s")
_STORE_KEYS = {"store_backend": "backend", "store_path": "path", "secure_key": "key"}


def _normalize_sources(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize raw dict to AppConfig-compatible keys regardless of source style."""
    norm = dict(raw)
    pin = dict(norm.get("pin") or {})
    store = dict(norm.get("store") or {})

    # Legacy seconds-based lockout
    if "lockout_seconds" in pin and "lockout_duration_ms" not in pin:
        pin["lockout_duration_ms"] = int(float(pin.pop("lockout_seconds")) * 1000)
    if "lockout_seconds" in norm:
        secs = norm.pop("lockout_seconds")
        if secs is not None:
            norm.setdefault("lockout_duration_ms", int(float(secs) * 1000))

    # Promote flat add-on keys into the nested blocks
    for k in _PIN_KEYS:
        if k in norm:
            v = norm.pop(k)
            if v is not None:
                pin.setdefault(k, v)
    for flat, nested in _STORE_KEYS.items():
        if flat in norm:
            v = norm.pop(flat)
            if v is not None:
                store.setdefault(nested, v)

    norm["pin"] = pin
    norm["store"] = store
    return norm


# ----------------------------
# Logging
# ----------------------------
def _log_summary(cfg: AppConfig, source: str) -> None:
    logger.info("[Config] Configuration loaded from %s", source)
    logger.info(
        "[Config] Summary: pin_length=%s, max_attempts=%s, lockout_ms=%s, auto_submit=%s",
        cfg.pin.pin_length, cfg.pin.max_attempts, cfg.pin.lockout_duration_ms, cfg.pin.auto_submit,
    )
    logger.info("[Config] Store: backend=%s, path=%s", cfg.store.backend, cfg.store.path)


# ----------------------------
# Public API
# ----------------------------
def load_config(path: str | None = None) -> AppConfig:
    options_path = os.environ.get("PHOTOLAB_OPTIONS", "/data/options.json")
    if os.path.exists(options_path):
        try:
            with open(options_path, "r", encoding="utf-8") as f:
                raw = json.load(f) or {}
            norm = _normalize_sources(raw)
            cfg = AppConfig(**norm)
            _log_summary(cfg, options_path)
            return cfg
        except (ValueError, TypeError, OSError) as e:
            msg = f"Failed to parse {options_path}: {e}"
            logger.error(msg)
            raise ValueError(msg) from e

    cfg_path = path or os.path.join("configs", "config.yaml")
    if not os.path.exists(cfg_path):
        msg = f"Configuration file not found: {cfg_path}"
        logger.error(msg)
        raise FileNotFoundError(msg)

    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        norm = _normalize_sources(raw)
        cfg = AppConfig(**norm)
        _log_summary(cfg, cfg_path)
        return cfg
    except ValidationError as ve:
        msg = f"Configuration validation failed: {ve}"
        logger.error(msg)
        raise ValueError(msg) from ve
    except (yaml.YAMLError, TypeError, ValueError, OSError) as e:
        msg = f"Failed to read YAML at {cfg_path}: {e}"
        logger.error(msg)
        raise ValueError(msg) from e
