"""Coordinate extraction from Strava export activity files.

GPX and TCX files are scanned with regular expressions rather than parsed as
XML. Strava writes both formats with a fixed layout: a ``<trkpt`` element
carries ``lat`` before ``lon``, both double quoted, and a TCX ``<Position>``
holds ``<LatitudeDegrees>`` followed by ``<LongitudeDegrees>``. Files that do
not follow that layout simply yield no coordinates.

Every extractor returns ``None`` (or an empty list) instead of raising, so a
single corrupt file never stops an export run.
"""
from __future__ import annotations

import gzip
import io
import math
import re
import zlib
from pathlib import Path

from fitparse import FitFile

from .models import Coordinate

SEMICIRCLES_TO_DEGREES = 180.0 / 2**31

TRKPT_PATTERN = re.compile(r'<trkpt\s+lat="([^"]+)"\s+lon="([^"]+)"')
TCX_POSITION_PATTERN = re.compile(
    r"<Position>\s*<LatitudeDegrees>([^<]+)</LatitudeDegrees>\s*"
    r"<LongitudeDegrees>([^<]+)</LongitudeDegrees>"
)


def _valid_coordinate(raw_lat: str, raw_lng: str) -> Coordinate | None:
    try:
        lat = float(raw_lat)
        lng = float(raw_lng)
    except ValueError:
        return None
    if not math.isfinite(lat) or not math.isfinite(lng):
        return None
    if lat == 0 and lng == 0:
        return None
    return Coordinate(lat=lat, lng=lng)


def first_gpx_coordinate(text: str) -> Coordinate | None:
    for match in TRKPT_PATTERN.finditer(text):
        coord = _valid_coordinate(match.group(1), match.group(2))
        if coord is not None:
            return coord
    return None


def gpx_coordinates(text: str) -> list[Coordinate]:
    coords: list[Coordinate] = []
    for match in TRKPT_PATTERN.finditer(text):
        coord = _valid_coordinate(match.group(1), match.group(2))
        if coord is not None:
            coords.append(coord)
    return coords


def first_tcx_coordinate(text: str) -> Coordinate | None:
    for match in TCX_POSITION_PATTERN.finditer(text):
        coord = _valid_coordinate(match.group(1).strip(), match.group(2).strip())
        if coord is not None:
            return coord
    return None


def semicircles_to_degrees(value: int | float | None) -> float | None:
    if value is None:
        return None
    return float(value) * SEMICIRCLES_TO_DEGREES


def first_fit_coordinate(data: bytes) -> Coordinate | None:
    """Return the first record message with a position fix, in degrees."""
    try:
        fit = FitFile(io.BytesIO(data), check_crc=False)
        for record in fit.get_messages("record"):
            fields = {f.name: f.value for f in record}
            raw_lat = fields.get("position_lat")
            raw_lng = fields.get("position_long")
            if raw_lat is None or raw_lng is None or raw_lat == 0 or raw_lng == 0:
                continue
            lat = semicircles_to_degrees(raw_lat)
            lng = semicircles_to_degrees(raw_lng)
            if lat is None or lng is None or not math.isfinite(lat) or not math.isfinite(lng):
                continue
            return Coordinate(lat=lat, lng=lng)
    except Exception:
        # fitparse raises a range of errors on truncated or foreign files.
        return None
    return None


def _read_bytes(path: Path) -> bytes | None:
    try:
        raw = path.read_bytes()
        if path.name.lower().endswith(".gz"):
            return gzip.decompress(raw)
        return raw
    except (OSError, EOFError, zlib.error):
        return None


def _read_text(path: Path) -> str | None:
    data = _read_bytes(path)
    if data is None:
        return None
    return data.decode("utf-8", errors="replace")


def _base_suffix(path: Path) -> str:
    name = path.name.lower()
    if name.endswith(".gz"):
        name = name[: -len(".gz")]
    return Path(name).suffix


def extract_start_coordinate(path: Path) -> Coordinate | None:
    """Dispatch on file extension: .gpx, .tcx and .fit, each optionally gzipped."""
    suffix = _base_suffix(path)
    if suffix not in {".gpx", ".tcx", ".fit"} or not path.is_file():
        return None

    if suffix == ".fit":
        data = _read_bytes(path)
        return first_fit_coordinate(data) if data is not None else None

    text = _read_text(path)
    if text is None:
        return None
    if suffix == ".gpx":
        return first_gpx_coordinate(text)
    return first_tcx_coordinate(text)


def extract_route_coordinates(path: Path) -> list[Coordinate]:
    if _base_suffix(path) != ".gpx" or not path.is_file():
        return []
    text = _read_text(path)
    if text is None:
        return []
    return gpx_coordinates(text)


def simplify_route(coords: list, max_points: int = 200) -> list:
    """Downsample by a constant stride, keeping the final point.

    The stride is chosen so that the sampled prefix plus the last point never
    exceeds ``max_points``.
    """
    if max_points < 2:
        raise ValueError("max_points must be at least 2")
    if len(coords) <= max_points:
        return list(coords)
    step = math.ceil((len(coords) - 1) / (max_points - 1))
    return list(coords[: len(coords) - 1 : step]) + [coords[-1]]
