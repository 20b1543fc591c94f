from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = "~/.taskboard.yaml"


@dataclass
class Config:
    base_url: str = "http://localhost:8080"
    timeout_seconds: float = 15.0
    auto_refresh_seconds: float = 30.0
    page_size: int = 10
    weeks: int = 8
    analytics_window_days: int = 90
    store_path: str = "~/.taskboard.db"
    log_path: Optional[str] = None
    log_level: str = "ERROR"

    def resolved_store_path(self) -> str:
        if self.store_path == ":memory:":
            return self.store_path
        return os.path.expanduser(self.store_path)

    def resolved_log_path(self) -> str:
        if self.log_path:
            return os.path.expanduser(self.log_path)
        store = self.resolved_store_path()
        base = os.path.dirname(store) if store != ":memory:" else os.getcwd()
        return os.path.join(base or ".", "taskboard.log")


_CASTS = {
    "timeout_seconds": float,
    "auto_refresh_seconds": float,
    "page_size": int,
    "weeks": int,
    "analytics_window_days": int,
}


def _coerce(raw: Dict[str, object]) -> Dict[str, object]:
    known = {f.name for f in fields(Config)}
    out: Dict[str, object] = {}
    for key, value in raw.items():
        if key not in known or value is None:
            continue
        cast = _CASTS.get(key, str)
        try:
            out[key] = cast(value)
        except (TypeError, ValueError):
            raise ValueError(f"Config: bad value for {key!r}: {value!r}") from None
    return out


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Config:
    """Read the YAML config; a missing file gives the defaults.

    ``TASKBOARD_BASE_URL`` and ``TASKBOARD_TIMEOUT`` override the file.
    """
    env = os.environ if environ is None else environ
    raw: Dict[str, object] = {}
    if path:
        full = os.path.expanduser(path)
        if os.path.isfile(full):
            with open(full, "r", encoding="utf-8") as f:
                doc = yaml.safe_load(f)
            if doc is None:
                doc = {}
            if not isinstance(doc, dict):
                raise ValueError("Config: top level must be a mapping.")
            raw = dict(doc)
    if env.get("TASKBOARD_BASE_URL"):
        raw["base_url"] = env["TASKBOARD_BASE_URL"]
    if env.get("TASKBOARD_TIMEOUT"):
        raw["timeout_seconds"] = env["TASKBOARD_TIMEOUT"]
    cfg = Config(**_coerce(raw))
    cfg.base_url = cfg.base_url.rstrip("/")
    if cfg.page_size < 1:
        raise ValueError("Config: 'page_size' must be at least 1.")
    if cfg.weeks < 1:
        raise ValueError("Config: 'weeks' must be at least 1.")
    return cfg
