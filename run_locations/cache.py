"""Serve-time reader for the run locations artifact.

Nothing in this module raises on bad data. Every field is coerced on its own,
runs without a usable coordinate are dropped, media paths that could escape
the ``strava-media/`` directory are removed, and stats are recomputed from the
runs that survive.
"""
from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import default_settings
from .models import (
    DEFAULT_ROUTE_NAME,
    DEFAULT_RUN_NAME,
    MEDIA_PREFIX,
    Route,
    RunLocationsCache,
    RunRecord,
    Stats,
)
from .stats import compute_stats, finite_number, parse_instant

MEDIA_PATH_PATTERN = re.compile(rf"^{re.escape(MEDIA_PREFIX)}/[A-Za-z0-9._/-]+$")


@dataclass
class CacheReadResult:
    data: RunLocationsCache
    error: str | None
    source: Path | None


def empty_cache() -> RunLocationsCache:
    return RunLocationsCache()


def safe_number(value: Any, fallback: float = 0.0) -> float:
    if isinstance(value, str) and value.strip():
        try:
            value = float(value.strip())
        except ValueError:
            return fallback
    number = finite_number(value)
    return fallback if number is None else number


def safe_string(value: Any, fallback: str = "") -> str:
    return value if isinstance(value, str) else fallback


def sanitize_media_path(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip().lstrip("/")
    if not normalized or ".." in normalized:
        return None
    if not MEDIA_PATH_PATTERN.match(normalized):
        return None
    return normalized


def parse_raw_run(value: Any) -> RunRecord | None:
    if not isinstance(value, dict):
        return None

    lat = safe_number(value.get("lat"), math.nan)
    lng = safe_number(value.get("lng"), math.nan)
    if not math.isfinite(lat) or not math.isfinite(lng):
        return None
    if lat == 0 and lng == 0:
        return None

    raw_media = value.get("media")
    media: list[str] = []
    if isinstance(raw_media, list):
        media = [path for path in (sanitize_media_path(item) for item in raw_media) if path is not None]

    return RunRecord(
        lat=lat,
        lng=lng,
        name=safe_string(value.get("name"), DEFAULT_RUN_NAME).strip() or DEFAULT_RUN_NAME,
        date=safe_string(value.get("date")),
        distance=max(0.0, safe_number(value.get("distance"))),
        moving_time=max(0.0, safe_number(value.get("moving_time"))),
        media=media,
        gear=safe_string(value.get("gear")).strip(),
    )


def _parse_pair(value: Any) -> list[float] | None:
    if not isinstance(value, (list, tuple)) or len(value) < 2:
        return None
    lat = safe_number(value[0], math.nan)
    lng = safe_number(value[1], math.nan)
    if not math.isfinite(lat) or not math.isfinite(lng):
        return None
    return [lat, lng]


def parse_raw_route(value: Any) -> Route | None:
    if not isinstance(value, dict):
        return None
    raw_coordinates = value.get("coordinates")
    if not isinstance(raw_coordinates, list):
        return None

    coordinates = [pair for pair in (_parse_pair(item) for item in raw_coordinates) if pair is not None]
    if len(coordinates) < 2:
        return None

    return Route(
        name=safe_string(value.get("name"), DEFAULT_ROUTE_NAME).strip() or DEFAULT_ROUTE_NAME,
        coordinates=coordinates,
    )


def _trusted_date_range(raw_stats: Any) -> list[str] | None:
    if not isinstance(raw_stats, dict):
        return None
    raw_range = raw_stats.get("dateRange")
    if not isinstance(raw_range, list) or len(raw_range) != 2:
        return None
    if not all(isinstance(item, str) and parse_instant(item) is not None for item in raw_range):
        return None
    return list(raw_range)


def normalize_stats(raw_stats: Any, runs: list[RunRecord]) -> Stats:
    run_dicts = [run.to_dict() for run in runs]
    computed = compute_stats(run_dicts)
    trusted_range = _trusted_date_range(raw_stats)
    return Stats(
        total_runs=computed.total_runs,
        total_distance=computed.total_distance,
        unique_locations=computed.unique_locations,
        date_range=trusted_range if trusted_range is not None else computed.date_range,
    )


def _parse_runs(raw_runs: Any) -> list[RunRecord]:
    if not isinstance(raw_runs, list):
        return []
    return [run for run in (parse_raw_run(item) for item in raw_runs) if run is not None]


def normalize_cache(raw: Any) -> RunLocationsCache:
    # Legacy artifacts are a bare list of runs.
    if isinstance(raw, list):
        runs = _parse_runs(raw)
        return RunLocationsCache(runs=runs, routes=[], stats=normalize_stats(None, runs))

    if not isinstance(raw, dict):
        return empty_cache()

    runs = _parse_runs(raw.get("runs"))
    raw_routes = raw.get("routes")
    routes: list[Route] = []
    if isinstance(raw_routes, list):
        routes = [route for route in (parse_raw_route(item) for item in raw_routes) if route is not None]

    return RunLocationsCache(runs=runs, routes=routes, stats=normalize_stats(raw.get("stats"), runs))


def default_paths() -> list[Path]:
    return default_settings().cache_candidates


def read_run_locations_cache(paths: list[Path] | None = None) -> CacheReadResult:
    """Load the first readable artifact among ``paths`` and normalize it."""
    candidates = default_paths() if paths is None else [Path(p) for p in paths]
    errors: list[str] = []

    for path in candidates:
        try:
            with path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except (OSError, ValueError, RecursionError) as exc:
            errors.append(f"{path}: {exc}")
            continue
        return CacheReadResult(data=normalize_cache(raw), error=None, source=path)

    return CacheReadResult(
        data=empty_cache(),
        error=" | ".join(errors) or "No run locations data file found",
        source=None,
    )
