"""Locate system files and participant folders inside an extracted archive."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Container, Iterable, Sequence

from feedback_archive.config import AppSettings
from feedback_archive.errors import ArchiveValidationError
from feedback_archive.models import ArchiveEntry, Assignment
from feedback_archive.naming import is_hidden_name

LOGGER = logging.getLogger(__name__)

TEAM_FOLDER_PATTERN = re.compile(r"^Team_(\d+)$")
USER_FOLDER_PATTERN = re.compile(r"^[^/]+_[^/]+_[^/]+_(\d+)$")
BASE_FOLDER_PREFIX = "Multi_Feedback_"


@dataclass(frozen=True, slots=True)
class DiscoveredFile:
    """A candidate file inside one participant folder."""

    entry: ArchiveEntry
    member_id: int | None = None


@dataclass(slots=True)
class ParticipantFolder:
    """All candidate files of one team or user folder, with paths relative to the archive root."""

    participant_id: int
    is_team: bool
    root: str
    files: list[DiscoveredFile] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ArchiveLayout:
    """Result of scanning an extracted archive."""

    prefix: str
    system_files: dict[str, ArchiveEntry]
    folders: tuple[ParticipantFolder, ...]
    warnings: tuple[str, ...]


def _visible(path: str) -> bool:
    return not any(is_hidden_name(segment) for segment in path.split("/"))


def find_archive_prefix(paths: Iterable[str], system_names: Iterable[str]) -> str:
    """Return the wrapper folder (with trailing slash) that holds the system files, or ''.

    Re-zipping the extracted folder usually adds one top-level directory; the system
    files then sit one level down.
    """

    names = frozenset(system_names)
    visible = [path for path in paths if _visible(path)]
    if any(path in names for path in visible):
        return ""
    tops = {path.split("/", 1)[0] for path in visible}
    if len(tops) != 1:
        return ""
    top = next(iter(tops))
    if any(path == f"{top}/{name}" for path in visible for name in names):
        return f"{top}/"
    if top.startswith(BASE_FOLDER_PREFIX) or TEAM_FOLDER_PATTERN.match(top) or USER_FOLDER_PATTERN.match(top):
        return ""
    if all("/" in path for path in visible):
        return f"{top}/"
    return ""


def _participant_segments(relative: str) -> tuple[str, str, list[str]] | None:
    """Split a rebased path into (folder root, folder name, remainder), skipping the base folder."""

    segments = relative.split("/")
    start = 1 if segments[0].startswith(BASE_FOLDER_PREFIX) else 0
    if len(segments) - start < 2:
        return None
    return "/".join(segments[: start + 1]), segments[start], segments[start + 1 :]


def _rebased(path: str, prefix: str) -> str | None:
    if not prefix:
        return path
    if not path.startswith(prefix):
        return None
    return path[len(prefix) :] or None


def _folder_names(file_paths: Iterable[str], directory_paths: Iterable[str], prefix: str) -> set[str]:
    names: set[str] = set()
    for path in file_paths:
        relative = _rebased(path, prefix)
        if relative is None:
            continue
        parents = relative.split("/")[:-1]
        if not any(is_hidden_name(name) for name in parents):
            names.update(parents)
    for path in directory_paths:
        relative = _rebased(path + "/", prefix)
        if relative and _visible(relative.rstrip("/")):
            names.update(relative.rstrip("/").split("/"))
    return {name for name in names if not name.startswith(BASE_FOLDER_PREFIX)}


def validate_structure(
    assignment: Assignment,
    file_paths: Iterable[str],
    directory_paths: Iterable[str] = (),
    prefix: str = "",
) -> None:
    """Reject archives whose folder structure does not fit the assignment kind.

    Runs before anything is applied so a wrong archive never causes partial updates.
    """

    folder_names = _folder_names(file_paths, directory_paths, prefix)
    has_team = any(TEAM_FOLDER_PATTERN.match(name) for name in folder_names)
    has_user = any(USER_FOLDER_PATTERN.match(name) for name in folder_names)

    if assignment.uses_teams and not has_team:
        raise ArchiveValidationError("Team assignment archives need team folders (Team_1/, Team_2/, ...).")
    if not assignment.uses_teams and has_team:
        raise ArchiveValidationError("Individual assignment archives must not contain team folders.")
    if not assignment.uses_teams and not has_user:
        raise ArchiveValidationError("No user folders (Lastname_Firstname_Login_ID/) found in the archive.")


def discover_participant_folders(
    assignment: Assignment,
    entries: Sequence[ArchiveEntry],
    settings: AppSettings,
    prefix: str = "",
    logger: logging.Logger | logging.LoggerAdapter | None = None,
    tracked_paths: Container[str] = frozenset(),
) -> ArchiveLayout:
    """Group extracted files by participant folder and pick out root-level system files.

    Hidden files are skipped with a warning unless their path is in `tracked_paths`
    (submissions recorded in the manifest, such as `__init__.py`).
    """

    effective_logger = logger or LOGGER
    archive_cfg = settings.archive
    skip_hidden = settings.classification.skip_hidden_files
    system_files: dict[str, ArchiveEntry] = {}
    folders: dict[int, ParticipantFolder] = {}
    warnings: list[str] = []

    for entry in entries:
        relative = _rebased(entry.archive_path, prefix)
        if relative is None:
            warnings.append(f"File {entry.archive_path!r} lies outside the archive folder and was skipped.")
            effective_logger.warning("discover.outside_prefix path=%s prefix=%s", entry.archive_path, prefix)
            continue
        if skip_hidden and not _visible(relative) and relative not in tracked_paths:
            warnings.append(f"Hidden file {relative!r} skipped.")
            effective_logger.info("discover.hidden_skipped path=%s", relative)
            continue
        rebased = ArchiveEntry(archive_path=relative, local_path=entry.local_path, size=entry.size)

        if "/" not in relative:
            if relative in archive_cfg.system_names:
                system_files[relative] = rebased
            else:
                warnings.append(f"File {relative!r} at the archive root is not part of any participant folder.")
                effective_logger.warning("discover.root_file_skipped path=%s", relative)
            continue

        split = _participant_segments(relative)
        if split is None:
            warnings.append(f"File {relative!r} is not inside a participant folder and was skipped.")
            effective_logger.warning("discover.unplaced_file path=%s", relative)
            continue
        folder_root, head, rest = split

        if assignment.uses_teams:
            match = TEAM_FOLDER_PATTERN.match(head)
            if match is None:
                warnings.append(f"Folder {head!r} is not a team folder; {relative!r} skipped.")
                effective_logger.warning("discover.unknown_folder folder=%s path=%s", head, relative)
                continue
            participant_id = int(match.group(1))
            member_match = USER_FOLDER_PATTERN.match(rest[0]) if len(rest) == 2 else None
            if len(rest) == 1:
                if rest[0] == archive_cfg.team_info_name:
                    continue
                discovered = DiscoveredFile(entry=rebased)
            elif member_match is not None:
                discovered = DiscoveredFile(entry=rebased, member_id=int(member_match.group(1)))
            else:
                warnings.append(f"Nested file {relative!r} skipped; place feedback directly in a member folder.")
                effective_logger.warning("discover.nested_skipped path=%s", relative)
                continue
        else:
            match = USER_FOLDER_PATTERN.match(head)
            if match is None:
                warnings.append(f"Folder {head!r} is not a user folder; {relative!r} skipped.")
                effective_logger.warning("discover.unknown_folder folder=%s path=%s", head, relative)
                continue
            participant_id = int(match.group(1))
            if len(rest) != 1:
                warnings.append(f"Nested file {relative!r} skipped; place feedback directly in the user folder.")
                effective_logger.warning("discover.nested_skipped path=%s", relative)
                continue
            discovered = DiscoveredFile(entry=rebased)

        folder = folders.get(participant_id)
        if folder is None:
            folder = ParticipantFolder(participant_id=participant_id, is_team=assignment.uses_teams, root=folder_root)
            folders[participant_id] = folder
        elif folder.root != folder_root:
            warnings.append(f"Participant {participant_id} appears in several folders; merged {relative!r}.")
            effective_logger.warning("discover.folder_merged participant_id=%s path=%s", participant_id, relative)
        folder.files.append(discovered)

    effective_logger.info(
        "discover.done prefix=%s system_files=%s participant_folders=%s warnings=%s",
        prefix or "-",
        ",".join(sorted(system_files)) or "-",
        len(folders),
        len(warnings),
    )
    return ArchiveLayout(
        prefix=prefix,
        system_files=system_files,
        folders=tuple(folders[key] for key in sorted(folders)),
        warnings=tuple(warnings),
    )

