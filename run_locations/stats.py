from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from .models import Stats


def parse_instant(value: Any) -> datetime | None:
    """Parse an ISO-8601 instant; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    normalized = value.strip().replace("Z", "+00:00").replace("z", "+00:00")
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    """Render as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def finite_number(value: Any) -> float | None:
    """Return ``value`` as a float if it is a finite JSON number, else ``None``.

    Booleans are not numbers here, and integers too large for a float count
    as not finite.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _round_tenth(value: float) -> float:
    # Half-up, and -0.0 prints as 0.0.
    return math.floor(value * 10 + 0.5) / 10 + 0.0


def location_bucket(lat: float, lng: float) -> str:
    return f"{_round_tenth(lat):.1f},{_round_tenth(lng):.1f}"


def unique_locations(runs: Iterable[Mapping[str, Any]]) -> int:
    buckets: set[str] = set()
    for run in runs:
        lat = finite_number(run.get("lat"))
        lng = finite_number(run.get("lng"))
        if lat is None or lng is None:
            continue
        buckets.add(location_bucket(lat, lng))
    return len(buckets)


def date_range(runs: Iterable[Mapping[str, Any]]) -> list[str]:
    instants = [parsed for parsed in (parse_instant(run.get("date")) for run in runs) if parsed is not None]
    if not instants:
        return []
    return [format_instant(min(instants)), format_instant(max(instants))]


def latest_instant(runs: Iterable[Mapping[str, Any]]) -> datetime | None:
    instants = [parsed for parsed in (parse_instant(run.get("date")) for run in runs) if parsed is not None]
    return max(instants) if instants else None


def compute_stats(runs: list[Mapping[str, Any]]) -> Stats:
    """Derive stats from run dicts; non-numeric distances count as zero."""
    total_distance = 0.0
    for run in runs:
        distance = finite_number(run.get("distance"))
        if distance is not None:
            total_distance += distance
    return Stats(
        total_runs=len(runs),
        total_distance=total_distance,
        unique_locations=unique_locations(runs),
        date_range=date_range(runs),
    )
