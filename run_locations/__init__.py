"""Run location pipeline: Strava export ingestion, incremental updates and a safe cache reader."""

from .cache import CacheReadResult, normalize_cache, read_run_locations_cache
from .models import Route, RunLocationsCache, RunRecord, Stats

__all__ = [
    "CacheReadResult",
    "Route",
    "RunLocationsCache",
    "RunRecord",
    "Stats",
    "normalize_cache",
    "read_run_locations_cache",
]
