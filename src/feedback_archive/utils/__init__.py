"""Shared utility helpers."""

from feedback_archive.utils.paths import (
    atomic_temp_path,
    ensure_directories,
    is_within,
    scoped_work_dir,
    write_bytes_atomically,
    write_json_atomically,
)
from feedback_archive.utils.time_utils import as_utc, now_utc, run_stamp

__all__ = [
    "atomic_temp_path",
    "ensure_directories",
    "is_within",
    "scoped_work_dir",
    "write_bytes_atomically",
    "write_json_atomically",
    "as_utc",
    "now_utc",
    "run_stamp",
]
