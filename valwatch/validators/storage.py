"""JSON file helpers shared by the registry and subscription store."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from valwatch.validators.exceptions import PersistenceError


def read_json(path: Path) -> Any:
    """Load a JSON document. Raises OSError / json.JSONDecodeError."""
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write *payload* to a temp file beside *path*, then swap it in.

    Raises:
        PersistenceError: the file could not be written.
    """
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2, sort_keys=True)
        tmp_path.replace(path)
    except (OSError, TypeError, ValueError) as exc:
        raise PersistenceError(f"failed to write {path}: {exc}") from exc
