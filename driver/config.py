"""Configuration loader for the card automation runtime."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

ENV_PREFIX = "AUTOMATION_"
DELAY_ENV_PREFIX = "AUTOMATION_DELAY_"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULTS: Dict[str, Any] = {
    "headless": True,
    "wait_timeout_ms": 30000,
    "navigation_timeout_ms": 30000,
    "max_retries": 3,
    "base_url": "https://www.paramountplus.com",
    "encryption_key": None,
    "artifact_root": "logs/screenshots",
    "log_root": "logs/runs",
    "database_path": "logs/audit.db",
    "identities_path": None,
    "user_agent": DEFAULT_USER_AGENT,
    "frame_url_markers": ("stripe", "payment"),
    "frame_name_markers": ("card",),
}


@dataclass(slots=True)
class StageDelays:
    """Settle delays (milliseconds) inserted between workflow steps."""

    after_entry: int = 2000
    after_sign_in_click: int = 2000
    after_field: int = 1000
    after_login: int = 3000
    after_account: int = 2000
    after_billing: int = 3000
    after_card_form_open: int = 2000
    after_submit: int = 5000

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "StageDelays":
        known = {f.name for f in fields(cls)}
        unknown = set(mapping) - known
        if unknown:
            raise ValueError(f"Unknown stage delay(s): {', '.join(sorted(unknown))}")
        values = {key: int(value) for key, value in mapping.items()}
        for key, value in values.items():
            if value < 0:
                raise ValueError(f"Stage delay {key} must be >= 0")
        return cls(**values)


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _as_markers(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return tuple(item.strip().lower() for item in items if str(item).strip())


def _optional_path(value: Any) -> Optional[Path]:
    if value is None or value == "":
        return None
    return Path(value)


@dataclass(slots=True)
class RunConfig:
    headless: bool = DEFAULTS["headless"]
    wait_timeout_ms: int = DEFAULTS["wait_timeout_ms"]
    navigation_timeout_ms: int = DEFAULTS["navigation_timeout_ms"]
    max_retries: int = DEFAULTS["max_retries"]
    base_url: str = DEFAULTS["base_url"]
    encryption_key: Optional[str] = DEFAULTS["encryption_key"]
    artifact_root: Path = field(default_factory=lambda: Path(DEFAULTS["artifact_root"]))
    log_root: Path = field(default_factory=lambda: Path(DEFAULTS["log_root"]))
    database_path: Path = field(default_factory=lambda: Path(DEFAULTS["database_path"]))
    identities_path: Optional[Path] = None
    user_agent: str = DEFAULTS["user_agent"]
    frame_url_markers: Tuple[str, ...] = DEFAULTS["frame_url_markers"]
    frame_name_markers: Tuple[str, ...] = DEFAULTS["frame_name_markers"]
    delays: StageDelays = field(default_factory=StageDelays)

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "RunConfig":
        data = dict(DEFAULTS)
        data.update({k: v for k, v in mapping.items() if k != "delays"})
        max_retries = int(data["max_retries"])
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        return cls(
            headless=_as_bool(data["headless"]),
            wait_timeout_ms=int(data["wait_timeout_ms"]),
            navigation_timeout_ms=int(data["navigation_timeout_ms"]),
            max_retries=max_retries,
            base_url=str(data["base_url"]).rstrip("/"),
            encryption_key=data["encryption_key"] or None,
            artifact_root=Path(data["artifact_root"]),
            log_root=Path(data["log_root"]),
            database_path=Path(data["database_path"]),
            identities_path=_optional_path(data["identities_path"]),
            user_agent=str(data["user_agent"]),
            frame_url_markers=_as_markers(data["frame_url_markers"]),
            frame_name_markers=_as_markers(data["frame_name_markers"]),
            delays=StageDelays.from_mapping(dict(mapping.get("delays") or {})),
        )


def _load_toml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as fh:
        return tomllib.load(fh)


def load_config(config_path: Path | None = None) -> RunConfig:
    """Load configuration from environment, optional TOML file, and defaults."""

    env_map: Dict[str, Any] = {}
    env_delays: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if key.startswith(DELAY_ENV_PREFIX):
            env_delays[key[len(DELAY_ENV_PREFIX):].lower()] = value
        elif key.startswith(ENV_PREFIX):
            env_map[key[len(ENV_PREFIX):].lower()] = value

    file_map: Dict[str, Any] = {}
    path = config_path or Path(os.environ.get("AUTOMATION_CONFIG", "config.toml"))
    if path.exists():
        file_map = dict(_load_toml(path).get("automation", {}))

    merged = {**file_map, **env_map}
    merged.pop("config", None)
    merged["delays"] = {**dict(file_map.get("delays") or {}), **env_delays}
    return RunConfig.from_mapping(merged)


def ensure_runtime_directories(config: RunConfig) -> Dict[str, Path]:
    config.artifact_root.mkdir(parents=True, exist_ok=True)
    config.log_root.mkdir(parents=True, exist_ok=True)
    config.database_path.parent.mkdir(parents=True, exist_ok=True)
    return {
        "artifacts": config.artifact_root,
        "logs": config.log_root,
        "database": config.database_path.parent,
    }
