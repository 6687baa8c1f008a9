"""Shared configuration for the run-locations tools.

Defaults live under the project root (``RUN_LOCATIONS_ROOT`` or the working
directory). A YAML file passed with ``--config`` overrides them, environment
variables override the file, and command-line flags override everything.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

PATH_KEYS = ("export_dir", "cache_file", "public_file", "media_out_dir", "env_file")
INT_KEYS = ("max_route_points", "per_page", "max_pages", "rate_limit_window", "rate_limit_daily")
STR_KEYS = ("activity_type", "distance_column", "moving_time_column")

ENV_OVERRIDES = {
    "RUN_LOCATIONS_EXPORT_DIR": "export_dir",
    "RUN_LOCATIONS_CACHE_FILE": "cache_file",
    "RUN_LOCATIONS_PUBLIC_FILE": "public_file",
    "RUN_LOCATIONS_MEDIA_DIR": "media_out_dir",
}


@dataclass(frozen=True)
class Settings:
    root: Path
    export_dir: Path
    cache_file: Path
    public_file: Path
    media_out_dir: Path
    activity_type: str = "Run"
    # The Strava export has two "Distance" headers: kilometers, then meters.
    distance_column: str = "Distance.1"
    moving_time_column: str = "Moving Time"
    max_route_points: int = 200
    per_page: int = 200
    max_pages: int = 50
    # Strava allows 100 requests per 15 minutes and 1000 per day.
    rate_limit_window: int = 100
    rate_limit_daily: int = 1000
    env_file: Path | None = None

    @property
    def cache_candidates(self) -> list[Path]:
        return [self.cache_file, self.public_file]


def default_root() -> Path:
    return Path(os.environ.get("RUN_LOCATIONS_ROOT", str(Path.cwd()))).expanduser()


def default_settings(root: Path | None = None) -> Settings:
    root = root or default_root()
    return Settings(
        root=root,
        export_dir=root / "Strava_Export",
        cache_file=root / ".cache" / "run-locations.json",
        public_file=root / "public" / "data" / "run-locations.json",
        media_out_dir=root / "public" / "strava-media",
    )


def _load_config(path: str | Path) -> dict[str, Any]:
    try:
        with Path(path).expanduser().open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise SystemExit(f"Could not read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SystemExit(f"Config file {path} must contain a mapping")
    return data


def _resolve(root: Path, value: str | Path) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else root / path


def _apply(settings: Settings, values: dict[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    changes: dict[str, Any] = {}
    for key, value in values.items():
        if key not in known or key == "root" or value is None:
            continue
        if key in PATH_KEYS:
            changes[key] = _resolve(settings.root, value)
        elif key in INT_KEYS:
            changes[key] = int(value)
        elif key in STR_KEYS:
            changes[key] = str(value)
    return replace(settings, **changes)


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    file_values = _load_config(config_path) if config_path else {}

    root_value = file_values.get("root")
    root = _resolve(default_root(), root_value) if root_value else default_root()
    settings = _apply(default_settings(root), file_values)

    env_values = {key: os.environ[var] for var, key in ENV_OVERRIDES.items() if os.environ.get(var)}
    settings = _apply(settings, env_values)

    if overrides:
        settings = _apply(settings, overrides)
    if settings.max_route_points < 2:
        raise SystemExit("max_route_points must be at least 2")
    for key in ("per_page", "max_pages", "rate_limit_window", "rate_limit_daily"):
        if getattr(settings, key) < 1:
            raise SystemExit(f"{key} must be at least 1")
    return settings
