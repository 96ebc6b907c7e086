"""Build, serialize, and load the `checksums.json` integrity manifest."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable

from feedback_archive.errors import ManifestFormatError
from feedback_archive.models import ARTIFACT_KINDS, ArtifactKind

LOGGER = logging.getLogger(__name__)

# Strongest first; comparisons use the first algorithm both sides carry.
COMPARABLE_ALGORITHMS: tuple[str, ...] = ("sha256", "sha1", "md5")
DEFAULT_ALGORITHMS: tuple[str, ...] = ("sha256", "md5")
_RESERVED_FIELDS = frozenset({"size", "type"})
_CHUNK_SIZE = 1024 * 1024


def compute_digests(data: bytes, algorithms: Iterable[str] = DEFAULT_ALGORITHMS) -> dict[str, str]:
    """Return `{algorithm: hexdigest}` for an in-memory payload."""

    return {name: hashlib.new(name, data).hexdigest() for name in algorithms}


def digest_file(path: Path, algorithms: Iterable[str] = DEFAULT_ALGORITHMS) -> dict[str, str]:
    """Hash a file in chunks with every requested algorithm in one pass."""

    hashers = {name: hashlib.new(name) for name in algorithms}
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            for hasher in hashers.values():
                hasher.update(chunk)
    return {name: hasher.hexdigest() for name, hasher in hashers.items()}


@dataclass(frozen=True, slots=True)
class ManifestRecord:
    """Export-time snapshot of one archive member."""

    path: str
    size: int
    kind: ArtifactKind
    digests: Mapping[str, str] = field(default_factory=dict)

    @property
    def strongest_algorithm(self) -> str | None:
        for name in COMPARABLE_ALGORITHMS:
            if self.digests.get(name):
                return name
        return None

    def compare(self, digests: Mapping[str, str]) -> bool | None:
        """True if content matches, False if it differs, None when no algorithm is shared."""

        for name in COMPARABLE_ALGORITHMS:
            recorded = self.digests.get(name)
            current = digests.get(name)
            if recorded and current:
                return recorded.lower() == current.lower()
        return None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(sorted(self.digests.items()))
        payload["size"] = self.size
        payload["type"] = self.kind
        return payload

    @classmethod
    def from_dict(cls, path: str, payload: Mapping[str, Any]) -> "ManifestRecord":
        """Decode one manifest value; raises ValueError when the entry is unusable."""

        kind = payload.get("type")
        if kind not in ARTIFACT_KINDS:
            raise ValueError(f"invalid type {kind!r}")

        digests: dict[str, str] = {}
        for key, value in payload.items():
            if key in _RESERVED_FIELDS or not isinstance(value, str):
                continue
            if key.lower() in hashlib.algorithms_available:
                digests[key.lower()] = value.strip()
        if not any(digests.get(name) for name in COMPARABLE_ALGORITHMS):
            raise ValueError("no usable digest")

        raw_size = payload.get("size", -1)
        try:
            size = int(raw_size)
        except (TypeError, ValueError):
            size = -1
        return cls(path=path, size=size, kind=kind, digests=MappingProxyType(digests))


class ChecksumManifest(Mapping[str, ManifestRecord]):
    """Immutable mapping of archive-relative path to its export-time record."""

    def __init__(self, records: Mapping[str, ManifestRecord] | None = None) -> None:
        self._records = MappingProxyType(dict(records or {}))

    def __getitem__(self, path: str) -> ManifestRecord:
        return self._records[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"ChecksumManifest(records={len(self._records)})"

    def of_kind(self, kind: ArtifactKind) -> list[ManifestRecord]:
        return [record for record in self._records.values() if record.kind == kind]

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {path: self._records[path].to_dict() for path in sorted(self._records)}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"

    @classmethod
    def from_json(cls, text: str | bytes, logger: logging.Logger | None = None) -> "ChecksumManifest":
        """Parse manifest JSON; individual bad records are skipped with a warning."""

        effective_logger = logger or LOGGER
        try:
            payload = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ManifestFormatError(f"manifest is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ManifestFormatError("manifest root must be a JSON object")

        records: dict[str, ManifestRecord] = {}
        for path, value in payload.items():
            if not isinstance(value, Mapping):
                effective_logger.warning("manifest.record_skipped path=%s reason=not_an_object", path)
                continue
            try:
                records[path] = ManifestRecord.from_dict(path, value)
            except ValueError as exc:
                effective_logger.warning("manifest.record_skipped path=%s reason=%s", path, exc)
        return cls(records)


class ManifestBuilder:
    """Accumulates records while an export archive is being written."""

    def __init__(self, algorithms: Iterable[str] = DEFAULT_ALGORITHMS) -> None:
        self.algorithms = tuple(algorithms)
        self._records: dict[str, ManifestRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def add(self, path: str, data: bytes, kind: ArtifactKind) -> ManifestRecord:
        record = ManifestRecord(
            path=path,
            size=len(data),
            kind=kind,
            digests=MappingProxyType(compute_digests(data, self.algorithms)),
        )
        self._records[path] = record
        return record

    def build(self) -> ChecksumManifest:
        return ChecksumManifest(self._records)


def load_manifest(path: Path, logger: logging.Logger | None = None) -> ChecksumManifest | None:
    """Load a manifest file, returning None when it is absent or unreadable."""

    effective_logger = logger or LOGGER
    if not path.is_file():
        effective_logger.warning("manifest.missing path=%s; change classification disabled", path)
        return None
    try:
        manifest = ChecksumManifest.from_json(path.read_bytes(), logger=effective_logger)
    except ManifestFormatError as exc:
        effective_logger.warning("manifest.malformed path=%s error=%s; change classification disabled", path, exc)
        return None
    effective_logger.info("manifest.loaded path=%s records=%s", path, len(manifest))
    return manifest
