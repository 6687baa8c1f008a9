"""Validate the public run locations artifact before a build.

Stricter than the serve-time reader: the first shape violation fails the
build.

Usage: run-locations-validate [--config run-locations.yaml] [--file PATH]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any, NoReturn

from .artifact import load_json
from .config import load_settings
from .stats import finite_number


class ValidationError(ValueError):
    pass


def is_finite_number(value: Any) -> bool:
    return finite_number(value) is not None


def validate_run(run: Any, index: int) -> None:
    if not isinstance(run, dict):
        raise ValidationError(f"runs[{index}] is not an object")
    if not is_finite_number(run.get("lat")) or not is_finite_number(run.get("lng")):
        raise ValidationError(f"runs[{index}] has invalid lat/lng")
    if not isinstance(run.get("name"), str):
        raise ValidationError(f"runs[{index}] missing string name")
    if not is_finite_number(run.get("distance")) or not is_finite_number(run.get("moving_time")):
        raise ValidationError(f"runs[{index}] has invalid distance/moving_time")
    if not isinstance(run.get("media"), list):
        raise ValidationError(f"runs[{index}] media must be an array")


def validate_route(route: Any, index: int) -> None:
    if not isinstance(route, dict):
        raise ValidationError(f"routes[{index}] is not an object")
    if not isinstance(route.get("name"), str):
        raise ValidationError(f"routes[{index}] missing string name")
    if not isinstance(route.get("coordinates"), list):
        raise ValidationError(f"routes[{index}] coordinates must be an array")


def validate_artifact(payload: Any) -> tuple[int, int]:
    """Raise ``ValidationError`` on the first violation; return (runs, routes)."""
    if not isinstance(payload, dict):
        raise ValidationError("root must be an object")
    runs = payload.get("runs")
    routes = payload.get("routes")
    stats = payload.get("stats")
    if not isinstance(runs, list):
        raise ValidationError("runs must be an array")
    if not isinstance(routes, list):
        raise ValidationError("routes must be an array")
    if not isinstance(stats, dict):
        raise ValidationError("stats must be an object")

    for index, run in enumerate(runs):
        validate_run(run, index)
    for index, route in enumerate(routes):
        validate_route(route, index)

    for key in ("totalRuns", "totalDistance", "uniqueLocations"):
        if not is_finite_number(stats.get(key)):
            raise ValidationError(f"stats.{key} must be a finite number")
    if not isinstance(stats.get("dateRange"), list):
        raise ValidationError("stats.dateRange must be an array")

    return len(runs), len(routes)


def validate_file(path: Path) -> tuple[int, int]:
    try:
        payload = load_json(path)
    except (OSError, ValueError, RecursionError) as exc:
        raise ValidationError(f"could not read {path}: {exc}") from exc
    return validate_artifact(payload)


def fail(message: str) -> NoReturn:
    print(f"Validation failed: {message}", file=sys.stderr)
    raise SystemExit(1)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate the public run locations JSON")
    parser.add_argument("--config", default=None, help="YAML settings file")
    parser.add_argument("--file", default=None, help="Artifact to check (default: the public copy)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    settings = load_settings(args.config, {"public_file": args.file})
    data_file = settings.public_file

    try:
        run_count, route_count = validate_file(data_file)
    except ValidationError as exc:
        fail(str(exc))

    print(f"Validation passed: {run_count} runs, {route_count} routes ({data_file})")


if __name__ == "__main__":
    main()
