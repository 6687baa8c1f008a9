from __future__ import annotations

from pathlib import Path

import pytest

from run_locations.config import Settings, default_settings

ACTIVITIES_HEADER = (
    "Activity ID,Activity Date,Activity Name,Activity Type,Distance,Filename,"
    "Moving Time,Distance,Activity Gear,Media\n"
)


def gpx_document(points: list[tuple[float, float]]) -> str:
    trkpts = "\n".join(f'      <trkpt lat="{lat}" lon="{lng}"><ele>10</ele></trkpt>' for lat, lng in points)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<gpx creator="StravaGPX" version="1.1">\n'
        "  <trk>\n    <trkseg>\n"
        f"{trkpts}\n"
        "    </trkseg>\n  </trk>\n</gpx>\n"
    )


@pytest.fixture
def settings(tmp_path: Path, monkeypatch) -> Settings:
    for var in (
        "RUN_LOCATIONS_ROOT",
        "RUN_LOCATIONS_EXPORT_DIR",
        "RUN_LOCATIONS_CACHE_FILE",
        "RUN_LOCATIONS_PUBLIC_FILE",
        "RUN_LOCATIONS_MEDIA_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    return default_settings(tmp_path)


@pytest.fixture
def export_dir(settings: Settings) -> Path:
    root = settings.export_dir
    (root / "activities").mkdir(parents=True)
    (root / "routes").mkdir()
    (root / "media").mkdir()
    return root
