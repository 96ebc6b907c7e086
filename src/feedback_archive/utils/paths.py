"""Path and filesystem helper functions."""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator
from uuid import uuid4


def ensure_directories(paths: Iterable[Path]) -> list[Path]:
    """Create all directories in the iterable if they do not exist."""

    created_or_existing: list[Path] = []
    for directory in paths:
        directory.mkdir(parents=True, exist_ok=True)
        created_or_existing.append(directory)
    return created_or_existing


def atomic_temp_path(target_path: Path) -> Path:
    """Create a temp path in the target directory for atomic replacement."""

    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def write_bytes_atomically(data: bytes, output_path: Path) -> Path:
    """Write raw bytes via a sibling temp file and `os.replace`."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = atomic_temp_path(output_path)
    try:
        temp_path.write_bytes(data)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path


def write_json_atomically(payload: Any, output_path: Path) -> Path:
    """Write JSON payload atomically to output path."""

    encoded = json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n"
    return write_bytes_atomically(encoded.encode("utf-8"), output_path)


def is_within(root: Path, candidate: Path) -> bool:
    """Return True when `candidate` resolves strictly below `root`."""

    resolved_root = root.resolve()
    resolved = candidate.resolve(strict=False)
    if resolved == resolved_root:
        return False
    return resolved.is_relative_to(resolved_root)


@contextmanager
def scoped_work_dir(prefix: str, work_root: Path | None = None) -> Iterator[Path]:
    """Yield a private working directory that is removed on every exit path."""

    if work_root is not None:
        work_root.mkdir(parents=True, exist_ok=True)
    with tempfile.TemporaryDirectory(prefix=prefix, dir=work_root) as temp_dir:
        yield Path(temp_dir)
