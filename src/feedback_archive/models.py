"""Domain types shared by the export and import pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Mapping, Union

AssignmentKind = Literal["individual", "team"]
ArtifactKind = Literal["status_file", "submission"]
ARTIFACT_KINDS: tuple[ArtifactKind, ...] = ("status_file", "submission")

FileClass = Literal["new_feedback", "unchanged_submission", "modified_submission"]
FILE_CLASS_VALUES: tuple[FileClass, ...] = ("new_feedback", "unchanged_submission", "modified_submission")


@dataclass(frozen=True, slots=True)
class Assignment:
    """A unit of graded work; `kind` decides whether participants are teams."""

    assignment_id: int
    title: str
    kind: AssignmentKind = "individual"

    @property
    def uses_teams(self) -> bool:
        return self.kind == "team"


@dataclass(frozen=True, slots=True)
class Identity:
    """One person known to the participant directory."""

    user_id: int
    login: str
    firstname: str = ""
    lastname: str = ""

    @property
    def display_name(self) -> str:
        full = f"{self.firstname} {self.lastname}".strip()
        return full or self.login


@dataclass(frozen=True, slots=True)
class Individual:
    """Participant graded on their own."""

    identity: Identity
    status: str = "notgraded"
    mark: str = ""

    @property
    def participant_id(self) -> int:
        return self.identity.user_id

    @property
    def members(self) -> tuple[Identity, ...]:
        return (self.identity,)

    @property
    def member_ids(self) -> tuple[int, ...]:
        return (self.identity.user_id,)


@dataclass(frozen=True, slots=True)
class Team:
    """Participant with a fixed, ordered membership for one pipeline run."""

    team_id: int
    members: tuple[Identity, ...] = ()
    status: str = "notgraded"
    mark: str = ""

    @property
    def participant_id(self) -> int:
        return self.team_id

    @property
    def member_ids(self) -> tuple[int, ...]:
        return tuple(member.user_id for member in self.members)


Participant = Union[Individual, Team]


@dataclass(frozen=True, slots=True)
class SubmissionFile:
    """A previously submitted file as reported by the submission lookup."""

    name: str
    storage_path: str
    submitted_at: datetime | None = None
    content: bytes | None = None
    uploaded_by: int | None = None

    def read_bytes(self) -> bytes:
        """Return the file content, reading from `storage_path` when not preloaded."""

        if self.content is not None:
            return self.content
        return Path(self.storage_path).read_bytes()


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """One extracted file; `local_path` always lies inside the extraction root."""

    archive_path: str
    local_path: Path
    size: int

    @property
    def name(self) -> str:
        return self.archive_path.rsplit("/", 1)[-1]


@dataclass(frozen=True, slots=True)
class ClassifiedFile:
    """Classification of one participant-folder file for the current import run."""

    entry: ArchiveEntry
    classification: FileClass
    filename: str
    original_filename: str
    local_path: Path
    sha256: str = ""

    @property
    def attachable(self) -> bool:
        return self.classification != "unchanged_submission"

    @property
    def renamed(self) -> bool:
        return self.filename != self.original_filename


@dataclass(frozen=True, slots=True)
class StatusUpdateRecord:
    """One row of bulk status data as produced by the status codec."""

    participant_id: int
    apply: bool = False
    status: str = ""
    mark: str = ""
    notice: str = ""
    comment: str = ""
    extra: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True, slots=True)
class RenamedFile:
    """A modified submission renamed with the modification marker."""

    participant_id: int
    archive_path: str
    original_name: str
    new_name: str
