"""Filename helpers shared by export layout and import classification."""

from __future__ import annotations

import re
import unicodedata
from functools import lru_cache
from pathlib import PurePosixPath
from typing import Container

DEFAULT_TIMESTAMP_PREFIX = r"^\d{14}_"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def to_ascii(value: str) -> str:
    """Transliterate to a portable ASCII filename segment.

    Accents are decomposed (NFKD) and combining marks dropped; any character outside
    ``[A-Za-z0-9._-]`` becomes ``_``.
    """

    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _UNSAFE_CHARS.sub("_", stripped)


@lru_cache(maxsize=8)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def strip_timestamp_prefix(name: str, pattern: str = DEFAULT_TIMESTAMP_PREFIX) -> str:
    """Drop a storage timestamp prefix such as ``20251009061955_``.

    A name that consists of the prefix alone is returned unchanged.
    """

    match = _compile(pattern).match(name)
    if match is None or match.end() >= len(name):
        return name
    return name[match.end() :]


def archive_filename(name: str, pattern: str = DEFAULT_TIMESTAMP_PREFIX) -> str:
    """Name a stored submission gets inside the export archive."""

    return to_ascii(strip_timestamp_prefix(name, pattern))


def match_keys(name: str, pattern: str = DEFAULT_TIMESTAMP_PREFIX) -> frozenset[str]:
    """All spellings under which a file name may reappear in an edited archive."""

    normalized = strip_timestamp_prefix(name, pattern)
    return frozenset({name, normalized, to_ascii(normalized)})


def is_hidden_name(name: str) -> bool:
    """OS metadata such as ``.DS_Store`` or ``__MACOSX``."""

    return name.startswith(".") or name.startswith("__")


def marked_filename(name: str, marker: str, taken: Container[str] = ()) -> str:
    """Return ``<stem>_<marker><ext>``, numbering it when the name is already taken."""

    path = PurePosixPath(name)
    stem, suffix = path.stem, path.suffix
    if not stem:
        stem, suffix = name, ""
    candidate = f"{stem}_{marker}{suffix}"
    counter = 2
    while candidate in taken:
        candidate = f"{stem}_{marker}_{counter}{suffix}"
        counter += 1
    return candidate
