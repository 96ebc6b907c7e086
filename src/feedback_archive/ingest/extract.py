"""Safe extraction of uploaded feedback archives."""

from __future__ import annotations

import io
import logging
import re
import shutil
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from feedback_archive.config import AppSettings
from feedback_archive.errors import ArchiveSecurityError, ArchiveValidationError
from feedback_archive.models import ArchiveEntry
from feedback_archive.utils.paths import is_within

LOGGER = logging.getLogger(__name__)

_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    """Files materialized under `root`, plus everything that was refused or skipped."""

    root: Path
    entries: tuple[ArchiveEntry, ...]
    rejected: tuple[ArchiveSecurityError, ...]
    warnings: tuple[str, ...]
    directories: tuple[str, ...] = ()


def sanitize_entry_name(name: str) -> str | None:
    """Normalize an archive member name to a relative posix path, or None if it is unsafe."""

    if "\x00" in name:
        return None
    candidate = name.replace("\\", "/")
    candidate = _DRIVE_PREFIX.sub("", candidate)
    segments: list[str] = []
    for segment in candidate.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            return None
        segments.append(segment)
    if not segments:
        return None
    return "/".join(segments)


def read_archive_source(source: Any) -> bytes:
    """Return archive bytes from raw bytes, a filesystem path, or an upload handle.

    Upload handles are objects exposing `get_path()`, `getPath()` or a `path` attribute.
    """

    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
    else:
        path: Any = source
        if not isinstance(source, (str, Path)):
            for accessor in ("get_path", "getPath"):
                getter = getattr(source, accessor, None)
                if callable(getter):
                    path = getter()
                    break
            else:
                path = getattr(source, "path", None)
        if not path:
            raise ArchiveValidationError("No archive content was supplied.")
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise ArchiveValidationError(f"Archive could not be read: {exc}") from exc
    if not data:
        raise ArchiveValidationError("Uploaded archive is empty.")
    return data


class ArchiveImporter:
    """Extracts an archive entry by entry, keeping every file inside the extraction root."""

    def __init__(self, settings: AppSettings, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self.settings = settings
        self.logger = logger or LOGGER

    def _open(self, data: bytes) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(io.BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as exc:
            raise ArchiveValidationError(f"Uploaded file is not a readable ZIP archive: {exc}") from exc

    def _check_limits(self, infos: list[zipfile.ZipInfo]) -> None:
        archive_cfg = self.settings.archive
        if not infos or all(info.is_dir() for info in infos):
            raise ArchiveValidationError("Uploaded archive contains no files.")
        if len(infos) > archive_cfg.max_entries:
            raise ArchiveValidationError(
                f"Uploaded archive has {len(infos)} entries; the limit is {archive_cfg.max_entries}."
            )
        total = sum(info.file_size for info in infos)
        limit = archive_cfg.max_total_uncompressed_mb * 1024 * 1024
        if total > limit:
            raise ArchiveValidationError(
                f"Uploaded archive expands to {total} bytes; the limit is {archive_cfg.max_total_uncompressed_mb} MB."
            )

    def extract(self, data: bytes, extract_root: Path) -> ExtractionResult:
        extract_root.mkdir(parents=True, exist_ok=True)
        root = extract_root.resolve()
        entries: list[ArchiveEntry] = []
        rejected: list[ArchiveSecurityError] = []
        warnings: list[str] = []
        directories: list[str] = []
        seen: set[str] = set()

        with self._open(data) as archive:
            infos = archive.infolist()
            self._check_limits(infos)

            for info in infos:
                # ZipInfo.filename is cut at the first NUL; orig_filename keeps the stored name.
                raw_name = info.orig_filename
                if info.is_dir():
                    dir_name = sanitize_entry_name(raw_name)
                    if dir_name is not None:
                        directories.append(dir_name)
                    continue
                safe_name = sanitize_entry_name(raw_name)
                if safe_name is None:
                    self._reject(rejected, raw_name, "unsafe entry name")
                    continue
                if safe_name != raw_name:
                    warnings.append(f"Entry {raw_name!r} was normalized to {safe_name!r}.")
                    self.logger.warning("extract.entry_normalized entry=%r safe_name=%s", raw_name, safe_name)
                if safe_name in seen:
                    warnings.append(f"Duplicate entry {safe_name!r} skipped.")
                    self.logger.warning("extract.duplicate_skipped entry=%s", safe_name)
                    continue

                target = root / safe_name
                if not is_within(root, target):
                    self._reject(rejected, raw_name, "entry resolves outside the extraction root")
                    continue

                try:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with archive.open(info) as source, target.open("wb") as sink:
                        shutil.copyfileobj(source, sink)
                except (zipfile.BadZipFile, zlib.error, OSError, RuntimeError) as exc:
                    if target.is_file():
                        target.unlink()
                    warnings.append(f"Entry {safe_name!r} could not be extracted: {exc}")
                    self.logger.warning("extract.entry_failed entry=%s error=%s", safe_name, exc)
                    continue

                if not is_within(root, target):
                    target.unlink(missing_ok=True)
                    self._reject(rejected, raw_name, "extracted file escaped the extraction root")
                    continue

                seen.add(safe_name)
                entries.append(ArchiveEntry(archive_path=safe_name, local_path=target.resolve(), size=target.stat().st_size))

        self.logger.info(
            "extract.done root=%s entries=%s rejected=%s warnings=%s",
            root,
            len(entries),
            len(rejected),
            len(warnings),
        )
        return ExtractionResult(
            root=root,
            entries=tuple(entries),
            rejected=tuple(rejected),
            warnings=tuple(warnings),
            directories=tuple(directories),
        )

    def _reject(self, rejected: list[ArchiveSecurityError], entry_name: str, reason: str) -> None:
        error = ArchiveSecurityError(entry_name, reason)
        rejected.append(error)
        self.logger.warning("extract.entry_rejected entry=%r reason=%s", entry_name, reason)
