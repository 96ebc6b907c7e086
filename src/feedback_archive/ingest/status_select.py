"""Pick the bulk status file to apply when an archive carries both formats."""

from __future__ import annotations

import logging
import warnings as warnings_module
from dataclasses import dataclass
from typing import Mapping

from feedback_archive.errors import ConflictWarning
from feedback_archive.manifest import COMPARABLE_ALGORITHMS, ChecksumManifest, digest_file
from feedback_archive.models import ArchiveEntry

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StatusSelection:
    """Which status file (if any) to parse, and why."""

    chosen: ArchiveEntry | None
    changed: tuple[str, ...]
    conflict: bool
    warnings: tuple[str, ...]

    @property
    def chosen_name(self) -> str | None:
        return self.chosen.archive_path if self.chosen is not None else None


def _is_changed(entry: ArchiveEntry, manifest: ChecksumManifest) -> bool:
    record = manifest.get(entry.archive_path)
    if record is None or record.kind != "status_file":
        return False
    return record.compare(digest_file(entry.local_path, COMPARABLE_ALGORITHMS)) is False


def select_status_file(
    candidates: Mapping[str, ArchiveEntry],
    manifest: ChecksumManifest | None,
    primary_name: str,
    secondary_name: str,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> StatusSelection:
    """Choose between the primary (A) and secondary (B) status file by checksum state.

    Only presence and digests are considered, never file content:

    * both edited: A wins and a `ConflictWarning` is issued naming both files;
    * one edited: that one;
    * none edited or no manifest: A if present, else B, else nothing.
    """

    effective_logger = logger or LOGGER
    primary = candidates.get(primary_name)
    secondary = candidates.get(secondary_name)
    present = [entry for entry in (primary, secondary) if entry is not None]

    changed: list[str] = []
    if manifest is not None:
        changed = [entry.archive_path for entry in present if _is_changed(entry, manifest)]

    messages: list[str] = []
    conflict = False
    if len(changed) == 2:
        conflict = True
        chosen = primary
        message = (
            f"Both {primary_name} and {secondary_name} were modified; applying {primary_name} "
            f"and ignoring {secondary_name}."
        )
        messages.append(message)
        warnings_module.warn(message, ConflictWarning, stacklevel=2)
        effective_logger.warning("status_select.conflict primary=%s secondary=%s", primary_name, secondary_name)
    elif len(changed) == 1:
        chosen = primary if changed[0] == primary_name else secondary
    else:
        chosen = primary or secondary

    effective_logger.info(
        "status_select.done present=%s changed=%s chosen=%s manifest=%s",
        ",".join(entry.archive_path for entry in present) or "-",
        ",".join(changed) or "-",
        chosen.archive_path if chosen is not None else "-",
        manifest is not None,
    )
    return StatusSelection(chosen=chosen, changed=tuple(changed), conflict=conflict, warnings=tuple(messages))
