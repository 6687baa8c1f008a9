"""Strava API credentials for the updater.

Each of ``STRAVA_CLIENT_ID``, ``STRAVA_CLIENT_SECRET`` and
``STRAVA_REFRESH_TOKEN`` is taken from the first layer that sets it: the
process environment, then the ``.env`` files listed by ``env_file_candidates``.
"""
from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from .config import Settings

REQUIRED_STRAVA_VARS = (
    "STRAVA_CLIENT_ID",
    "STRAVA_CLIENT_SECRET",
    "STRAVA_REFRESH_TOKEN",
)


@dataclass(frozen=True)
class StravaCredentials:
    client_id: str
    client_secret: str
    refresh_token: str


def _dotenv_pair(line: str) -> tuple[str, str] | None:
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    line = line.removeprefix("export ").strip()
    key, sep, value = line.partition("=")
    key = key.strip()
    value = value.strip()
    if not sep or not key:
        return None
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        value = value[1:-1]
    return key, value


def parse_dotenv(path: Path) -> dict[str, str]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    pairs = (_dotenv_pair(line) for line in text.splitlines())
    return dict(pair for pair in pairs if pair is not None)


def env_file_candidates(settings: Settings) -> list[Path]:
    """``env_file`` from settings, ``STRAVA_ENV_FILE``, then ``.env`` in the root and working directory."""
    explicit = os.environ.get("STRAVA_ENV_FILE")
    candidates = [
        settings.env_file,
        Path(explicit).expanduser() if explicit else None,
        settings.root / ".env",
        Path.cwd() / ".env",
    ]
    unique: list[Path] = []
    for path in candidates:
        if path is not None and path not in unique:
            unique.append(path)
    return unique


def resolve_strava_credentials(settings: Settings) -> tuple[dict[str, str], dict[str, str], list[Path]]:
    """Return (values, where each value came from, .env paths searched)."""
    searched = env_file_candidates(settings)
    layers: list[tuple[str, dict[str, str]]] = [("environment", dict(os.environ))]
    layers.extend((f"dotenv:{path}", parse_dotenv(path)) for path in searched if path.is_file())

    values: dict[str, str] = {}
    sources: dict[str, str] = {}
    for var_name in REQUIRED_STRAVA_VARS:
        for source, layer in layers:
            if layer.get(var_name):
                values[var_name] = layer[var_name]
                sources[var_name] = source
                break
    return values, sources, searched


def format_missing_credentials_message(missing_vars: list[str], searched_env_files: list[Path]) -> str:
    env_locations = ", ".join(shlex.quote(str(path)) for path in searched_env_files)
    return (
        f"Missing Strava credentials: {', '.join(missing_vars)}\n"
        "Set them in the environment or in one of these .env files "
        f"(or point `env_file` in the config at one): {env_locations}"
    )


def require_strava_credentials(settings: Settings) -> StravaCredentials:
    values, _sources, searched = resolve_strava_credentials(settings)
    missing = [var_name for var_name in REQUIRED_STRAVA_VARS if var_name not in values]
    if missing:
        raise SystemExit(format_missing_credentials_message(missing, searched))
    return StravaCredentials(
        client_id=values["STRAVA_CLIENT_ID"],
        client_secret=values["STRAVA_CLIENT_SECRET"],
        refresh_token=values["STRAVA_REFRESH_TOKEN"],
    )
