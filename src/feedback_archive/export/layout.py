"""Folder layout strategies for individual and team assignments."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from feedback_archive.errors import ExportError
from feedback_archive.models import Assignment, Identity, Individual, Participant, Team
from feedback_archive.naming import to_ascii


@dataclass(frozen=True, slots=True)
class MemberFolder:
    """Archive folder that receives files on behalf of one member."""

    user_id: int
    path: str


@dataclass(frozen=True, slots=True)
class ParticipantPlan:
    """Where one participant's content lands in the archive."""

    participant: Participant
    root_folder: str
    member_folders: tuple[MemberFolder, ...]

    @property
    def source_user_ids(self) -> tuple[int, ...]:
        return tuple(folder.user_id for folder in self.member_folders)


def user_folder_name(identity: Identity) -> str:
    """`<Last>_<First>_<login>_<id>` made filesystem-safe."""

    return to_ascii(f"{identity.lastname}_{identity.firstname}_{identity.login}_{identity.user_id}")


def team_folder_name(team_id: int) -> str:
    return f"Team_{team_id}"


class ExportLayout(ABC):
    """Base strategy; subclasses decide folder names and archive naming per assignment kind."""

    kind: str = ""
    base_prefix: str = ""
    count_label: str = ""
    overview_title: str = ""

    def base_folder(self, assignment: Assignment) -> str:
        return to_ascii(f"{self.base_prefix}{assignment.title}_{assignment.assignment_id}")

    def download_name(self, assignment: Assignment, participant_count: int) -> str:
        return f"{self.base_prefix}{to_ascii(assignment.title)}_{participant_count}_{self.count_label}.zip"

    @abstractmethod
    def accepts(self, participant: Participant) -> bool: ...

    @abstractmethod
    def plan(self, assignment: Assignment, participant: Participant) -> ParticipantPlan: ...

    @abstractmethod
    def overview(self, participants: Sequence[Participant]) -> str: ...

    def _reject(self, participant: Participant) -> ExportError:
        return ExportError(f"The {self.kind} layout cannot place participant {participant.participant_id}.")


class IndividualLayout(ExportLayout):
    kind = "individual"
    base_prefix = "Multi_Feedback_Individual_"
    count_label = "Users"
    overview_title = "User overview"

    def accepts(self, participant: Participant) -> bool:
        return isinstance(participant, Individual)

    def plan(self, assignment: Assignment, participant: Participant) -> ParticipantPlan:
        if not isinstance(participant, Individual):
            raise self._reject(participant)
        folder = f"{self.base_folder(assignment)}/{user_folder_name(participant.identity)}"
        return ParticipantPlan(
            participant=participant,
            root_folder=folder,
            member_folders=(MemberFolder(user_id=participant.identity.user_id, path=folder),),
        )

    def overview(self, participants: Sequence[Participant]) -> str:
        lines: list[str] = []
        for participant in participants:
            if not isinstance(participant, Individual):
                raise self._reject(participant)
            identity = participant.identity
            lines.append(f"### {identity.display_name} ({identity.login})")
            lines.append(f"- **Status:** {participant.status}")
            if participant.mark:
                lines.append(f"- **Grade:** {participant.mark}")
            lines.append("")
        return "\n".join(lines)


class TeamLayout(ExportLayout):
    kind = "team"
    base_prefix = "Multi_Feedback_"
    count_label = "Teams"
    overview_title = "Team overview"

    def accepts(self, participant: Participant) -> bool:
        return isinstance(participant, Team)

    def plan(self, assignment: Assignment, participant: Participant) -> ParticipantPlan:
        if not isinstance(participant, Team):
            raise self._reject(participant)
        team_root = f"{self.base_folder(assignment)}/{team_folder_name(participant.team_id)}"
        members = tuple(
            MemberFolder(user_id=member.user_id, path=f"{team_root}/{user_folder_name(member)}")
            for member in participant.members
        )
        return ParticipantPlan(participant=participant, root_folder=team_root, member_folders=members)

    def overview(self, participants: Sequence[Participant]) -> str:
        lines: list[str] = []
        for participant in participants:
            if not isinstance(participant, Team):
                raise self._reject(participant)
            lines.append(f"### Team {participant.team_id}")
            lines.append(f"- **Status:** {participant.status}")
            members = ", ".join(f"{member.display_name} ({member.login})" for member in participant.members)
            lines.append(f"- **Members:** {members}")
            if participant.mark:
                lines.append(f"- **Grade:** {participant.mark}")
            lines.append("")
        return "\n".join(lines)


def layout_for(assignment: Assignment) -> ExportLayout:
    return TeamLayout() if assignment.uses_teams else IndividualLayout()
