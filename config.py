"""
Scanner configuration.

Sources, lowest priority first:
  1) dataclass defaults below
  2) an optional YAML file (path argument or EXITCHECK_CONFIG)
  3) EXITCHECK_<KEY> environment variables (a .env file is loaded first)

Usage:
    cfg = load_config()                 # .env + environment only
    cfg = load_config("scanner.yaml")   # YAML defaults, env still wins
"""

from __future__ import annotations

import logging
import os
import pathlib
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

ENV_PREFIX = "EXITCHECK_"
DECODERS = ("remote", "local")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
OPTIONAL_KEYS = ("api_token", "frame_width", "frame_height", "station")


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class ScannerConfig:
    api_base_url: str = ""
    api_token: Optional[str] = None
    http_timeout: float = 30.0
    decoder: str = "remote"  # remote | local
    camera_index: int = 0
    frame_width: Optional[int] = 1280
    frame_height: Optional[int] = 720
    camera_acquire_timeout: float = 5.0
    min_buffered_frames: int = 2
    jpeg_quality: int = 90
    capture_interval: float = 1.0
    display_seconds: float = 2.0
    cooldown_seconds: float = 2.0
    station: Optional[str] = None
    log_level: str = "INFO"

    def with_overrides(self, **changes: Any) -> "ScannerConfig":
        """Copy with non-None overrides applied and validated (CLI flags)."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return _validate(replace(self, **changes))


# --------------------------- Coercion ----------------------------

def _coerce(name: str, default: Any, raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = raw.strip()
        if raw == "" or raw.lower() in ("none", "null"):
            return None

    # Defaults tell us the target type; Optional[int] frame sizes default to ints
    try:
        if isinstance(default, bool):
            return str(raw).lower() in ("1", "true", "yes", "on")
        if isinstance(default, int) or name in ("frame_width", "frame_height"):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name}: expected a number, got {raw!r}") from exc
    return str(raw)


def _validate(cfg: ScannerConfig) -> ScannerConfig:
    if cfg.decoder not in DECODERS:
        raise ConfigError(f"decoder must be one of {DECODERS}, got {cfg.decoder!r}")
    if cfg.decoder == "remote" and not cfg.api_base_url:
        raise ConfigError("api_base_url is required for the remote decoder")
    if cfg.http_timeout <= 0:
        raise ConfigError("http_timeout must be positive")
    if cfg.camera_acquire_timeout <= 0:
        raise ConfigError("camera_acquire_timeout must be positive")
    if cfg.capture_interval <= 0:
        raise ConfigError("capture_interval must be positive")
    if cfg.display_seconds < 0 or cfg.cooldown_seconds < 0:
        raise ConfigError("display_seconds and cooldown_seconds cannot be negative")
    if not 1 <= cfg.jpeg_quality <= 100:
        raise ConfigError("jpeg_quality must be within 1..100")
    if cfg.min_buffered_frames < 1:
        raise ConfigError("min_buffered_frames must be at least 1")
    if cfg.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(f"log_level must be one of {LOG_LEVELS}")

    return replace(
        cfg,
        api_base_url=cfg.api_base_url.rstrip("/"),
        station=cfg.station.strip().upper() if cfg.station else None,
        log_level=cfg.log_level.upper(),
    )


def _read_yaml(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    # Support both formats: keys at the top level or nested under "scanner"
    if isinstance(data, dict) and isinstance(data.get("scanner"), dict):
        data = data["scanner"]
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


# --------------------------- Loader ----------------------------

def load_config(path: Optional[str] = None) -> ScannerConfig:
    load_dotenv(override=False)

    values: Dict[str, Any] = {}
    defaults = ScannerConfig()
    known = {f.name: getattr(defaults, f.name) for f in fields(ScannerConfig)}

    yaml_path = path or os.getenv(ENV_PREFIX + "CONFIG")
    if yaml_path:
        for key, raw in _read_yaml(pathlib.Path(yaml_path)).items():
            if key not in known:
                logging.getLogger(__name__).warning("Ignoring unknown config key %r", key)
                continue
            values[key] = _coerce(key, known[key], raw)

    for key, default in known.items():
        raw = os.getenv(ENV_PREFIX + key.upper())
        if raw is not None:
            values[key] = _coerce(key, default, raw)

    # An empty value only clears optional fields; the rest fall back to defaults
    for key in [k for k, v in values.items() if v is None and k not in OPTIONAL_KEYS]:
        values.pop(key)

    return _validate(replace(defaults, **values))


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


__all__ = ["ConfigError", "ScannerConfig", "configure_logging", "load_config"]
