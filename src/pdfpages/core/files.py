from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pdfpages.core.ids import new_uuid


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_bytes_atomic(dst: Path, data: bytes) -> None:
    ensure_directory(dst.parent)
    # Unique temp name so concurrent writers never share a staging file.
    temp_path = dst.parent / f".{dst.name}.{new_uuid()[:8]}.tmp"
    try:
        temp_path.write_bytes(data)
        os.replace(temp_path, dst)
    finally:
        if temp_path.exists():
            temp_path.unlink(missing_ok=True)


def write_json_atomic(dst: Path, payload: dict[str, Any]) -> None:
    write_bytes_atomic(dst, json.dumps(payload, ensure_ascii=True, indent=2).encode("utf-8"))


def read_json_object(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        return None
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return raw if isinstance(raw, dict) else None
