"""Interfaces of the host-platform services the pipelines depend on.

Implementations are passed in explicitly through `FeedbackServices`; see
`feedback_archive.backends.local` for the directory-backed versions used by the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence, runtime_checkable

from feedback_archive.models import Assignment, Participant, StatusUpdateRecord, SubmissionFile


@runtime_checkable
class StatusCodec(Protocol):
    """Renders and parses the bulk status files (`status_format` is the file suffix, e.g. `xlsx`)."""

    def render(self, assignment: Assignment, participants: Sequence[Participant], status_format: str) -> bytes: ...

    def parse(self, path: Path, status_format: str, assignment: Assignment) -> list[StatusUpdateRecord]:
        """Raise `StatusFileStructureError` when the file layout is unusable."""
        ...


@runtime_checkable
class ParticipantDirectory(Protocol):
    def get_assignment(self, assignment_id: int) -> Assignment | None: ...

    def list_participants(self, assignment: Assignment) -> list[Participant]: ...


@runtime_checkable
class SubmissionLookup(Protocol):
    def list_submissions(self, assignment_id: int, user_id: int) -> list[SubmissionFile]: ...


@runtime_checkable
class ArtifactStore(Protocol):
    def attach(self, assignment_id: int, user_id: int, filename: str, source: Path) -> None: ...


@runtime_checkable
class SharedArtifactStore(ArtifactStore, Protocol):
    """Store that can keep one copy of a team file visible to all members."""

    def attach_shared(
        self,
        assignment_id: int,
        team_id: int,
        member_ids: Sequence[int],
        filename: str,
        source: Path,
    ) -> None: ...


@runtime_checkable
class GradingStore(Protocol):
    def apply_status(self, assignment_id: int, user_id: int, record: StatusUpdateRecord, actor_id: int) -> None: ...

    def mark_feedback(self, assignment_id: int, user_id: int, actor_id: int) -> None: ...


@runtime_checkable
class Notifier(Protocol):
    def notify(self, assignment: Assignment, user_id: int, filenames: Sequence[str]) -> None: ...


@dataclass(frozen=True, slots=True)
class FeedbackServices:
    """Collaborators for one export or import call."""

    directory: ParticipantDirectory
    submissions: SubmissionLookup
    artifacts: ArtifactStore
    grading: GradingStore
    notifier: Notifier
    codec: StatusCodec | None = None
