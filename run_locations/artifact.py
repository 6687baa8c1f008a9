from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def load_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_first_artifact(candidates: list[Path]) -> tuple[dict[str, Any] | None, Path | None]:
    """Return the first candidate that parses to an object with a ``runs`` list."""
    for candidate in candidates:
        try:
            payload = load_json(candidate)
        except (OSError, ValueError, RecursionError):
            continue
        if isinstance(payload, dict) and isinstance(payload.get("runs"), list):
            return payload, candidate
    return None, None


def write_artifact(path: Path, payload: dict[str, Any]) -> int:
    """Write compact JSON through a temp file and ``os.replace``; return bytes written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    serialized = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(serialized)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return len(serialized)
