"""Append runs recorded since the newest cached run, via the Strava API.

Usage: run-locations-update [--config run-locations.yaml]
"""
from __future__ import annotations

import argparse
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import requests

from .artifact import load_first_artifact, write_artifact
from .config import Settings, load_settings
from .credentials import require_strava_credentials
from .models import DEFAULT_RUN_NAME, RunRecord
from .stats import compute_stats, finite_number, format_instant, latest_instant, parse_instant
from .strava import StravaClient, StravaError, StravaRateLimiter


@dataclass
class UpdateResult:
    loaded_from: Path
    fetched: int = 0
    candidates: int = 0
    added: int = 0
    duplicates: int = 0
    total_runs: int = 0
    written: tuple[Path, ...] = ()


def start_coordinate(activity: dict[str, Any]) -> tuple[float, float] | None:
    latlng = activity.get("start_latlng")
    if not isinstance(latlng, list) or len(latlng) != 2:
        return None
    lat = finite_number(latlng[0])
    lng = finite_number(latlng[1])
    if lat is None or lng is None or (lat == 0 and lng == 0):
        return None
    return lat, lng


def activity_date(activity: dict[str, Any]) -> str:
    raw = activity.get("start_date_local") or activity.get("start_date") or ""
    if not isinstance(raw, str):
        return ""
    parsed = parse_instant(raw)
    return format_instant(parsed) if parsed else raw


def activity_to_run(activity: dict[str, Any]) -> RunRecord | None:
    coord = start_coordinate(activity)
    if coord is None:
        return None
    gear = activity.get("gear")
    gear_name = gear.get("name") if isinstance(gear, dict) else None
    name = activity.get("name")
    return RunRecord(
        lat=coord[0],
        lng=coord[1],
        name=name.strip() if isinstance(name, str) and name.strip() else DEFAULT_RUN_NAME,
        date=activity_date(activity),
        distance=max(0.0, finite_number(activity.get("distance")) or 0.0),
        moving_time=max(0.0, finite_number(activity.get("moving_time")) or 0.0),
        media=[],
        gear=gear_name.strip() if isinstance(gear_name, str) else "",
    )


def select_new_runs(
    activities: list[dict[str, Any]],
    existing_runs: list[Any],
    activity_type: str = "Run",
) -> tuple[list[RunRecord], int, int]:
    """Return (runs to add, GPS-bearing candidates, duplicates skipped).

    Duplicates are detected by exact ``date`` string equality against the
    cache and against runs already accepted from this batch.
    """
    seen_dates = {run.get("date") for run in existing_runs if isinstance(run, dict)}
    candidates = [
        run
        for run in (activity_to_run(a) for a in activities if a.get("type") == activity_type)
        if run is not None
    ]

    to_add: list[RunRecord] = []
    for run in candidates:
        if run.date in seen_dates:
            continue
        seen_dates.add(run.date)
        to_add.append(run)
    return to_add, len(candidates), len(candidates) - len(to_add)


def latest_run_instant(runs: list[Any]) -> datetime | None:
    return latest_instant([run for run in runs if isinstance(run, dict)])


def cutoff_timestamp(runs: list[Any]) -> int | None:
    latest = latest_run_instant(runs)
    return math.floor(latest.timestamp()) if latest else None


def run_update(settings: Settings, client_factory: Callable[[], StravaClient]) -> UpdateResult:
    cache, loaded_from = load_first_artifact(settings.cache_candidates)
    if cache is None or loaded_from is None:
        checked = ", ".join(str(path) for path in settings.cache_candidates)
        raise SystemExit(
            "No valid run locations cache found.\n"
            f"Checked: {checked}\n"
            "Run `run-locations-export` first to process the Strava export."
        )
    print(f"Loaded cache from {loaded_from}")

    runs: list[Any] = cache["runs"]
    result = UpdateResult(loaded_from=loaded_from)
    latest = latest_run_instant(runs)
    after = cutoff_timestamp(runs)
    if latest is None:
        print(f"Cache has {len(runs)} runs with no parseable dates; fetching all activities.\n")
    else:
        latest_day = format_instant(latest)[:10]
        print(f"Cache has {len(runs)} runs, latest: {latest_day}")
        print(f"Fetching activities after {latest_day}...\n")

    client = client_factory()
    client.get_valid_token()
    activities = client.fetch_activities_after(after, per_page=settings.per_page, max_pages=settings.max_pages)
    result.fetched = len(activities)
    print(f"Fetched {len(activities)} new activities from Strava API")

    to_add, result.candidates, result.duplicates = select_new_runs(activities, runs, settings.activity_type)
    print(f"Found {result.candidates} new runs with GPS data")

    if not to_add:
        result.total_runs = len(runs)
        print("\nNo new runs to add. Cache is up to date.")
        return result

    print(f"Adding {len(to_add)} new runs ({result.duplicates} duplicates skipped)")
    runs.extend(run.to_dict() for run in to_add)
    stats = compute_stats([run for run in runs if isinstance(run, dict)])
    cache["stats"] = stats.to_dict()
    if not isinstance(cache.get("routes"), list):
        cache["routes"] = []

    for path in (settings.cache_file, settings.public_file):
        write_artifact(path, cache)
    result.added = len(to_add)
    result.total_runs = len(runs)
    result.written = (settings.cache_file, settings.public_file)

    print(f"\nUpdated cache: {len(runs)} total runs, {stats.total_distance / 1000:.0f} km")
    print(f"Wrote {settings.cache_file} and {settings.public_file}")
    return result


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Add new Strava runs to the run locations cache")
    parser.add_argument("--config", default=None, help="YAML settings file")
    parser.add_argument("--cache-file", default=None, help="Primary cache JSON path")
    parser.add_argument("--public-file", default=None, help="Public copy of the cache")
    parser.add_argument("--max-pages", type=int, default=None, help="Safety cap on activity pages")
    parser.add_argument("--env-file", default=None, help=".env file holding the Strava credentials")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = load_settings(
        args.config,
        {
            "cache_file": args.cache_file,
            "public_file": args.public_file,
            "max_pages": args.max_pages,
            "env_file": args.env_file,
        },
    )

    def build_client() -> StravaClient:
        credentials = require_strava_credentials(settings)
        return StravaClient(
            credentials.client_id,
            credentials.client_secret,
            credentials.refresh_token,
            rate_limiter=StravaRateLimiter.from_settings(settings),
        )

    try:
        run_update(settings, build_client)
    except (requests.RequestException, StravaError) as exc:
        raise SystemExit(f"\nError: {exc}") from exc
    print("Done!")


if __name__ == "__main__":
    main()
