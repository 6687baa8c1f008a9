"""Convert a Strava bulk export into the run locations cache.

Reads ``activities.csv``, pulls the start coordinate of every run out of its
GPX/TCX/FIT file, parses the route GPX files listed in ``routes.csv``, copies
referenced photos into the public media directory and writes the artifact to
the primary cache path.

Usage: run-locations-export [--config run-locations.yaml] [--export-dir DIR]
"""
from __future__ import annotations

import argparse
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path

from .artifact import write_artifact
from .config import Settings, load_settings
from .geo import extract_route_coordinates, extract_start_coordinate, simplify_route
from .models import DEFAULT_ROUTE_NAME, DEFAULT_RUN_NAME, Route, RunLocationsCache, RunRecord
from .stats import compute_stats, parse_instant
from .tables import parse_export_date, parse_media_field, parse_number, read_table, table_headers

PROGRESS_EVERY = 200


@dataclass
class ExportSummary:
    activities: int = 0
    runs: int = 0
    with_gps: int = 0
    without_gps: int = 0
    with_media: int = 0
    errors: int = 0
    routes: int = 0
    skipped_routes: int = 0
    media_referenced: int = 0
    media_copied: int = 0
    bytes_written: int = 0


def build_run_record(row: dict[str, str], lat: float, lng: float, settings: Settings) -> RunRecord:
    raw_date = row.get("Activity Date", "")
    return RunRecord(
        lat=lat,
        lng=lng,
        name=row.get("Activity Name", "").strip() or DEFAULT_RUN_NAME,
        date=parse_export_date(raw_date) or raw_date,
        distance=max(0.0, parse_number(row.get(settings.distance_column))),
        moving_time=max(0.0, parse_number(row.get(settings.moving_time_column))),
        media=parse_media_field(row.get("Media")),
        gear=row.get("Activity Gear", "").strip(),
    )


def extract_runs(rows: list[dict[str, str]], settings: Settings, summary: ExportSummary) -> list[RunRecord]:
    runs = [row for row in rows if row.get("Activity Type") == settings.activity_type]
    summary.runs = len(runs)
    print(f"2. Filtered to {len(runs)} runs\n")

    headers = table_headers(rows)
    for column in (settings.distance_column, settings.moving_time_column):
        if headers and column not in headers:
            print(f"   Warning: column '{column}' not found in activities.csv; using 0", file=sys.stderr)

    print("3. Extracting GPS coordinates from activity files...")
    records: list[RunRecord] = []
    for processed, row in enumerate(runs, start=1):
        if processed % PROGRESS_EVERY == 0 or processed == len(runs):
            print(f"   Progress: {processed}/{len(runs)} ({summary.with_gps} with GPS, {summary.errors} errors)")

        filename = row.get("Filename", "").strip()
        if not filename:
            summary.errors += 1
            continue
        file_path = settings.export_dir / filename
        if not file_path.is_file():
            summary.errors += 1
            continue

        coord = extract_start_coordinate(file_path)
        if coord is None:
            summary.without_gps += 1
            continue

        record = build_run_record(row, coord.lat, coord.lng, settings)
        summary.with_gps += 1
        if record.media:
            summary.with_media += 1
        records.append(record)

    print(
        f"   Done: {summary.with_gps} runs with GPS, {summary.with_media} with photos, "
        f"{summary.errors} errors\n"
    )
    return records


def extract_routes(settings: Settings, summary: ExportSummary) -> list[Route]:
    print("4. Parsing route GPX files...")
    routes_csv = settings.export_dir / "routes.csv"
    if not routes_csv.is_file():
        print(f"   No routes.csv in {settings.export_dir}; skipping routes\n")
        return []

    routes: list[Route] = []
    for row in read_table(routes_csv):
        route_file = row.get("Route Filename", "").strip()
        if not route_file:
            continue
        file_path = settings.export_dir / route_file
        if not file_path.is_file():
            print(f"   Skipping missing route: {route_file}")
            summary.skipped_routes += 1
            continue

        coords = [[c.lat, c.lng] for c in extract_route_coordinates(file_path)]
        if len(coords) < 2:
            summary.skipped_routes += 1
            continue
        routes.append(
            Route(
                name=row.get("Route Name", "").strip() or DEFAULT_ROUTE_NAME,
                coordinates=simplify_route(coords, settings.max_route_points),
            )
        )

    summary.routes = len(routes)
    print(f"   Parsed {len(routes)} routes\n")
    return routes


def copy_media(records: list[RunRecord], settings: Settings, summary: ExportSummary) -> None:
    print("5. Copying media files...")
    settings.media_out_dir.mkdir(parents=True, exist_ok=True)

    media_refs: dict[str, None] = {}
    for record in records:
        for media_path in record.media:
            media_refs.setdefault(media_path, None)
    summary.media_referenced = len(media_refs)

    for media_path in media_refs:
        filename = Path(media_path).name
        src = settings.export_dir / "media" / filename
        dest = settings.media_out_dir / filename
        if dest.exists() or not src.is_file():
            continue
        shutil.copyfile(src, dest)
        summary.media_copied += 1

    print(f"   Copied {summary.media_copied} media files to {settings.media_out_dir}\n")


def _year(value: str) -> str:
    parsed = parse_instant(value)
    return str(parsed.year) if parsed else value


def print_summary(cache: RunLocationsCache, summary: ExportSummary) -> None:
    stats = cache.stats
    print("=== Summary ===")
    print(f"   Runs on map:      {stats.total_runs}")
    print(f"   Total distance:   {stats.total_distance / 1000:.0f} km")
    print(f"   Unique locations: {stats.unique_locations}")
    print(f"   Routes:           {len(cache.routes)}")
    print(f"   Photos:           {summary.media_referenced}")
    if len(stats.date_range) == 2:
        print(f"   Date range:       {_year(stats.date_range[0])} - {_year(stats.date_range[1])}")


def run_export(settings: Settings) -> tuple[RunLocationsCache, ExportSummary]:
    activities_csv = settings.export_dir / "activities.csv"
    if not activities_csv.is_file():
        raise SystemExit(
            f"Missing {activities_csv}. Unpack the Strava bulk export into {settings.export_dir} first."
        )

    summary = ExportSummary()
    print("=== Processing Strava Export ===\n")
    print("1. Reading activities.csv...")
    rows = read_table(activities_csv)
    summary.activities = len(rows)
    print(f"   Found {len(rows)} total activities\n")

    records = extract_runs(rows, settings, summary)
    routes = extract_routes(settings, summary)
    copy_media(records, settings, summary)

    cache = RunLocationsCache(
        runs=records,
        routes=routes,
        stats=compute_stats([record.to_dict() for record in records]),
    )

    print("6. Writing cache...")
    summary.bytes_written = write_artifact(settings.cache_file, cache.to_dict())
    print(f"   Saved to {settings.cache_file} ({summary.bytes_written / 1024:.0f} KB)\n")
    return cache, summary


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the run locations cache from a Strava bulk export")
    parser.add_argument("--config", default=None, help="YAML settings file")
    parser.add_argument("--export-dir", default=None, help="Unpacked Strava export directory")
    parser.add_argument("--cache-file", default=None, help="Primary cache JSON path")
    parser.add_argument("--media-dir", default=None, help="Public directory that receives copied photos")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = load_settings(
        args.config,
        {
            "export_dir": args.export_dir,
            "cache_file": args.cache_file,
            "media_out_dir": args.media_dir,
        },
    )
    cache, summary = run_export(settings)
    print_summary(cache, summary)
    print("\nDone!")


if __name__ == "__main__":
    main()
