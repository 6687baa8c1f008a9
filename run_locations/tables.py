from __future__ import annotations

import csv
import io
import math
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from .models import MEDIA_PREFIX
from .stats import format_instant, parse_instant

EXPORT_DATE_FORMATS = (
    "%b %d, %Y, %I:%M:%S %p",
    "%b %d, %Y %I:%M:%S %p",
    "%Y-%m-%d %H:%M:%S",
)


def _dedupe_headers(headers: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    result: list[str] = []
    for header in headers:
        count = seen.get(header, 0)
        result.append(header if count == 0 else f"{header}.{count}")
        seen[header] = count + 1
    return result


def parse_table(text: str) -> list[dict[str, str]]:
    """Parse CSV text into row dicts keyed by header.

    Repeated headers become ``Name``, ``Name.1``, ... so no column is
    silently shadowed. Blank lines are skipped and short rows pad with "".
    """
    reader = csv.reader(io.StringIO(text))
    rows = [row for row in reader if any(value.strip() for value in row)]
    if not rows:
        return []

    headers = _dedupe_headers(rows[0])
    table: list[dict[str, str]] = []
    for values in rows[1:]:
        table.append({header: values[i] if i < len(values) else "" for i, header in enumerate(headers)})
    return table


def read_table(path: Path) -> list[dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as handle:
        return parse_table(handle.read())


def table_headers(rows: list[dict[str, str]]) -> set[str]:
    return set(rows[0]) if rows else set()


def parse_media_field(value: str | None) -> list[str]:
    """Turn the export's ``"media/a.jpg|media/b.jpg"`` field into public paths."""
    if not value:
        return []
    cleaned = value.strip().strip('"')
    if not cleaned:
        return []

    media: list[str] = []
    for entry in cleaned.split("|"):
        entry = entry.strip()
        if not entry.startswith("media/"):
            continue
        filename = PurePosixPath(entry).name
        if filename:
            media.append(f"{MEDIA_PREFIX}/{filename}")
    return media


def parse_export_date(value: str | None) -> str | None:
    """Best-effort conversion of an export date to a canonical UTC instant.

    Strava writes dates like ``Jan 28, 2015, 12:28:25 AM`` without a zone;
    they are read as UTC.
    """
    if not value or not value.strip():
        return None
    raw = value.strip()
    for fmt in EXPORT_DATE_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt)
        except ValueError:
            continue
        return format_instant(parsed.replace(tzinfo=timezone.utc))

    parsed_iso = parse_instant(raw)
    if parsed_iso is None:
        return None
    return format_instant(parsed_iso)


def parse_number(value: str | None, fallback: float = 0.0) -> float:
    if value is None:
        return fallback
    try:
        number = float(value.strip().replace(",", ""))
    except ValueError:
        return fallback
    return number if math.isfinite(number) else fallback
