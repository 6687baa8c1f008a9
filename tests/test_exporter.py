from __future__ import annotations

import gzip
import json
from pathlib import Path

import pytest

from conftest import ACTIVITIES_HEADER, gpx_document
from run_locations.config import Settings
from run_locations.exporter import ExportSummary, copy_media, main, run_export
from run_locations.models import RunRecord


def _write_activities(export_dir: Path, lines: list[str]) -> None:
    (export_dir / "activities.csv").write_text(ACTIVITIES_HEADER + "\n".join(lines) + "\n", encoding="utf-8")


def _write_gpx(path: Path, points: list[tuple[float, float]]) -> None:
    path.write_text(gpx_document(points), encoding="utf-8")


@pytest.fixture
def populated_export(export_dir: Path) -> Path:
    _write_gpx(export_dir / "activities" / "1.gpx", [(51.5, -0.12), (51.51, -0.13)])
    (export_dir / "activities" / "2.gpx.gz").write_bytes(
        gzip.compress(gpx_document([(48.85, 2.35)]).encode("utf-8"))
    )
    _write_gpx(export_dir / "activities" / "3.gpx", [(0.0, 0.0)])
    _write_gpx(export_dir / "activities" / "5.gpx", [(40.0, -3.7)])
    (export_dir / "media" / "photo1.jpg").write_bytes(b"jpeg")

    _write_activities(
        export_dir,
        [
            '1,"Jan 28, 2015, 12:28:25 AM","Thames ""tempo"" loop",Run,5.01,activities/1.gpx,1500,"5,012.3",Pegasus,'
            '"media/photo1.jpg|media/missing.jpg"',
            '2,"Feb 1, 2015, 7:00:00 AM",,Run,10.0,activities/2.gpx.gz,3000,10000,,',
            "3,\"Feb 2, 2015, 7:00:00 AM\",Treadmill,Run,3.0,activities/3.gpx,900,3000,,",
            "4,\"Feb 3, 2015, 7:00:00 AM\",Lost file,Run,3.0,activities/4.gpx,900,3000,,",
            "5,\"Feb 4, 2015, 7:00:00 AM\",Commute,Ride,20.0,activities/5.gpx,2400,20000,,",
            "6,\"Feb 5, 2015, 7:00:00 AM\",No file,Run,3.0,,900,3000,,",
        ],
    )

    route_points = [(45.0 + i * 0.0001, 7.0 + i * 0.0001) for i in range(450)]
    _write_gpx(export_dir / "routes" / "long.gpx", route_points)
    _write_gpx(export_dir / "routes" / "tiny.gpx", [(45.0, 7.0)])
    (export_dir / "routes.csv").write_text(
        "Route ID,Route Name,Route Filename\n"
        "1,Long Loop,routes/long.gpx\n"
        "2,Tiny,routes/tiny.gpx\n"
        "3,Gone,routes/gone.gpx\n"
        "4,,routes/long.gpx\n",
        encoding="utf-8",
    )
    return export_dir


def test_run_export_builds_cache(settings: Settings, populated_export: Path) -> None:
    cache, summary = run_export(settings)

    assert summary.activities == 6
    assert summary.runs == 5
    assert summary.with_gps == 2
    assert summary.without_gps == 1
    assert summary.errors == 2
    assert summary.with_media == 1

    first, second = cache.runs
    assert first.name == 'Thames "tempo" loop'
    assert first.date == "2015-01-28T00:28:25.000Z"
    assert (first.lat, first.lng) == (51.5, -0.12)
    assert first.distance == 5012.3
    assert first.moving_time == 1500.0
    assert first.gear == "Pegasus"
    assert first.media == ["strava-media/photo1.jpg", "strava-media/missing.jpg"]
    assert second.name == "Run"
    assert second.gear == ""
    assert (second.lat, second.lng) == (48.85, 2.35)

    assert cache.stats.total_runs == 2
    assert cache.stats.total_distance == pytest.approx(15012.3)
    assert cache.stats.unique_locations == 2
    assert cache.stats.date_range == ["2015-01-28T00:28:25.000Z", "2015-02-01T07:00:00.000Z"]


def test_run_export_parses_and_simplifies_routes(settings: Settings, populated_export: Path) -> None:
    cache, summary = run_export(settings)

    assert [route.name for route in cache.routes] == ["Long Loop", "Route"]
    assert summary.skipped_routes == 2
    long_loop = cache.routes[0]
    assert len(long_loop.coordinates) <= settings.max_route_points
    assert long_loop.coordinates[0] == [45.0, 7.0]
    assert long_loop.coordinates[-1] == [45.0 + 449 * 0.0001, 7.0 + 449 * 0.0001]


def test_run_export_writes_only_primary_cache(settings: Settings, populated_export: Path) -> None:
    cache, summary = run_export(settings)

    payload = json.loads(settings.cache_file.read_text(encoding="utf-8"))
    assert payload == cache.to_dict()
    assert summary.bytes_written == settings.cache_file.stat().st_size
    assert set(payload["runs"][0]) == {"lat", "lng", "name", "date", "distance", "moving_time", "media", "gear"}
    assert set(payload["stats"]) == {"totalRuns", "totalDistance", "uniqueLocations", "dateRange"}
    assert not settings.public_file.exists()


def test_run_export_copies_existing_media_only(settings: Settings, populated_export: Path) -> None:
    _, summary = run_export(settings)

    assert (settings.media_out_dir / "photo1.jpg").read_bytes() == b"jpeg"
    assert not (settings.media_out_dir / "missing.jpg").exists()
    assert summary.media_referenced == 2
    assert summary.media_copied == 1


def test_copy_media_is_idempotent(settings: Settings, export_dir: Path) -> None:
    (export_dir / "media" / "a.jpg").write_bytes(b"new")
    settings.media_out_dir.mkdir(parents=True)
    (settings.media_out_dir / "a.jpg").write_bytes(b"old")
    records = [
        RunRecord(lat=1.0, lng=1.0, media=["strava-media/a.jpg"]),
        RunRecord(lat=2.0, lng=2.0, media=["strava-media/a.jpg"]),
    ]

    summary = ExportSummary()
    copy_media(records, settings, summary)

    assert summary.media_referenced == 1
    assert summary.media_copied == 0
    assert (settings.media_out_dir / "a.jpg").read_bytes() == b"old"


def test_run_export_without_routes_csv(settings: Settings, export_dir: Path) -> None:
    _write_gpx(export_dir / "activities" / "1.gpx", [(51.5, -0.12)])
    _write_activities(export_dir, ['1,"Jan 28, 2015, 12:28:25 AM",Easy,Run,5.0,activities/1.gpx,1500,5000,,'])

    cache, _ = run_export(settings)

    assert cache.routes == []
    assert len(cache.runs) == 1


def test_run_export_requires_activities_csv(settings: Settings, export_dir: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_export(settings)
    assert "activities.csv" in str(excinfo.value)


def test_run_export_warns_about_missing_distance_column(settings: Settings, export_dir: Path, capsys) -> None:
    _write_gpx(export_dir / "activities" / "1.gpx", [(51.5, -0.12)])
    (export_dir / "activities.csv").write_text(
        "Activity ID,Activity Date,Activity Name,Activity Type,Filename\n"
        '1,"Jan 28, 2015, 12:28:25 AM",Easy,Run,activities/1.gpx\n',
        encoding="utf-8",
    )

    cache, _ = run_export(settings)

    assert cache.runs[0].distance == 0.0
    assert "Distance.1" in capsys.readouterr().err


def test_main_uses_command_line_paths(tmp_path: Path, settings: Settings, export_dir: Path, monkeypatch) -> None:
    monkeypatch.setenv("RUN_LOCATIONS_ROOT", str(tmp_path))
    _write_gpx(export_dir / "activities" / "1.gpx", [(51.5, -0.12)])
    _write_activities(export_dir, ['1,"Jan 28, 2015, 12:28:25 AM",Easy,Run,5.0,activities/1.gpx,1500,5000,,'])
    out_file = tmp_path / "elsewhere" / "runs.json"

    main(["--export-dir", str(export_dir), "--cache-file", str(out_file)])

    payload = json.loads(out_file.read_text(encoding="utf-8"))
    assert payload["stats"]["totalRuns"] == 1
