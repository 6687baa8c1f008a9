from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

MEDIA_PREFIX = "strava-media"
DEFAULT_RUN_NAME = "Run"
DEFAULT_ROUTE_NAME = "Route"


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lng: float


@dataclass
class RunRecord:
    lat: float
    lng: float
    name: str = DEFAULT_RUN_NAME
    date: str = ""
    distance: float = 0.0
    moving_time: float = 0.0
    media: list[str] = field(default_factory=list)
    gear: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "name": self.name,
            "date": self.date,
            "distance": self.distance,
            "moving_time": self.moving_time,
            "media": list(self.media),
            "gear": self.gear,
        }


@dataclass
class Route:
    name: str
    coordinates: list[list[float]]

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "coordinates": [list(pair) for pair in self.coordinates]}


@dataclass
class Stats:
    total_runs: int = 0
    total_distance: float = 0.0
    unique_locations: int = 0
    date_range: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalRuns": self.total_runs,
            "totalDistance": self.total_distance,
            "uniqueLocations": self.unique_locations,
            "dateRange": list(self.date_range),
        }


@dataclass
class RunLocationsCache:
    runs: list[RunRecord] = field(default_factory=list)
    routes: list[Route] = field(default_factory=list)
    stats: Stats = field(default_factory=Stats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "runs": [run.to_dict() for run in self.runs],
            "routes": [route.to_dict() for route in self.routes],
            "stats": self.stats.to_dict(),
        }
