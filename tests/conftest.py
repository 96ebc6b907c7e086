"""Shared pytest fixtures and in-memory collaborators."""

from __future__ import annotations

import io
import sys
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from feedback_archive.collaborators import FeedbackServices  # noqa: E402
from feedback_archive.config import AppSettings, load_settings  # noqa: E402
from feedback_archive.errors import StatusFileStructureError  # noqa: E402
from feedback_archive.models import (  # noqa: E402
    Assignment,
    Identity,
    Individual,
    Participant,
    StatusUpdateRecord,
    SubmissionFile,
    Team,
)


class FakeCodec:
    """Status codec that renders a tiny text table and returns preset rows on parse."""

    def __init__(
        self,
        records: Sequence[StatusUpdateRecord] = (),
        fail_render: Sequence[str] = (),
        structure_error: bool = False,
    ) -> None:
        self.records = list(records)
        self.fail_render = set(fail_render)
        self.structure_error = structure_error
        self.parsed: list[tuple[str, str]] = []

    def render(self, assignment: Assignment, participants: Sequence[Participant], status_format: str) -> bytes:
        if status_format in self.fail_render:
            raise RuntimeError(f"{status_format} writer unavailable")
        lines = [f"{status_format};{assignment.assignment_id};update"]
        lines.extend(f"{participant.participant_id};{participant.status};0" for participant in participants)
        return "\n".join(lines).encode("utf-8")

    def parse(self, path: Path, status_format: str, assignment: Assignment) -> list[StatusUpdateRecord]:
        self.parsed.append((path.name, status_format))
        if self.structure_error:
            raise StatusFileStructureError("header row missing")
        return list(self.records)


class MemoryStore:
    """Participant directory, submission lookup, artifact store and grading store in memory."""

    def __init__(
        self,
        assignment: Assignment,
        participants: Sequence[Participant],
        submissions: dict[int, list[SubmissionFile]] | None = None,
    ) -> None:
        self.assignment = assignment
        self.participants = list(participants)
        self.submissions = submissions or {}
        self.attached: dict[int, list[str]] = {}
        self.statuses: dict[int, StatusUpdateRecord] = {}
        self.feedback_marked: list[int] = []
        self.fail_attach_for: set[int] = set()
        self.fail_status_for: set[int] = set()

    def get_assignment(self, assignment_id: int) -> Assignment | None:
        return self.assignment if assignment_id == self.assignment.assignment_id else None

    def list_participants(self, assignment: Assignment) -> list[Participant]:
        return list(self.participants)

    def list_submissions(self, assignment_id: int, user_id: int) -> list[SubmissionFile]:
        return list(self.submissions.get(user_id, []))

    def attach(self, assignment_id: int, user_id: int, filename: str, source: Path) -> None:
        if user_id in self.fail_attach_for:
            raise OSError("storage offline")
        assert source.is_file()
        self.attached.setdefault(user_id, []).append(filename)

    def apply_status(self, assignment_id: int, user_id: int, record: StatusUpdateRecord, actor_id: int) -> None:
        if user_id in self.fail_status_for:
            raise ValueError("status rejected")
        self.statuses[user_id] = record

    def mark_feedback(self, assignment_id: int, user_id: int, actor_id: int) -> None:
        self.feedback_marked.append(user_id)


class SharedMemoryStore(MemoryStore):
    """Memory store that keeps one copy per team file."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.shared: list[tuple[int, tuple[int, ...], str]] = []

    def attach_shared(
        self,
        assignment_id: int,
        team_id: int,
        member_ids: Sequence[int],
        filename: str,
        source: Path,
    ) -> None:
        self.shared.append((team_id, tuple(member_ids), filename))
        for user_id in member_ids:
            self.attached.setdefault(user_id, []).append(filename)


class RecordingNotifier:
    def __init__(self, fail_for: Sequence[int] = ()) -> None:
        self.calls: list[tuple[int, int, tuple[str, ...]]] = []
        self.fail_for = set(fail_for)

    def notify(self, assignment: Assignment, user_id: int, filenames: Sequence[str]) -> None:
        if user_id in self.fail_for:
            raise ConnectionError("mail relay down")
        self.calls.append((assignment.assignment_id, user_id, tuple(filenames)))


def submission(name: str, content: bytes, user_id: int, hour: int = 6) -> SubmissionFile:
    return SubmissionFile(
        name=name,
        storage_path=f"/store/{user_id}/{name}",
        submitted_at=datetime(2025, 10, 9, hour, 19, 55, tzinfo=timezone.utc),
        content=content,
        uploaded_by=user_id,
    )


def services_for(store: MemoryStore, codec: FakeCodec | None = None, notifier=None) -> FeedbackServices:
    return FeedbackServices(
        directory=store,
        submissions=store,
        artifacts=store,
        grading=store,
        notifier=notifier or RecordingNotifier(),
        codec=codec,
    )


def rewrite_zip(
    data: bytes,
    replace: dict[str, bytes] | None = None,
    add: dict[str, bytes] | None = None,
    drop: Sequence[str] = (),
    prefix: str = "",
) -> bytes:
    """Copy an archive, swapping, adding, dropping or re-rooting members."""

    replace = replace or {}
    buffer = io.BytesIO()
    with zipfile.ZipFile(io.BytesIO(data)) as source, zipfile.ZipFile(buffer, "w") as target:
        for info in source.infolist():
            if info.filename in drop:
                continue
            payload = replace.get(info.filename, source.read(info.filename))
            target.writestr(f"{prefix}{info.filename}", payload)
        for name, payload in (add or {}).items():
            target.writestr(name, payload)
    return buffer.getvalue()


def make_zip(members: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, payload in members.items():
            archive.writestr(name, payload)
    return buffer.getvalue()


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    config_dir = tmp_path / "project" / "configs"
    config_dir.mkdir(parents=True)
    config_file = config_dir / "settings.yaml"
    config_file.write_text(
        "paths:\n"
        "  work_root: ./work\n"
        "  export_root: ./exports\n"
        "  store_root: ./store\n"
        "  logs_root: ./logs\n"
        "notifications:\n"
        "  enabled: true\n"
        "  debug_mode: false\n",
        encoding="utf-8",
    )
    return load_settings(config_file=config_file)


@pytest.fixture
def anna() -> Identity:
    return Identity(user_id=101, login="anna.m", firstname="Anna", lastname="Müller")


@pytest.fixture
def ben() -> Identity:
    return Identity(user_id=102, login="ben", firstname="Ben", lastname="Öztürk")


@pytest.fixture
def cara() -> Identity:
    return Identity(user_id=103, login="cara", firstname="Cara", lastname="Lind")


@pytest.fixture
def essay_assignment() -> Assignment:
    return Assignment(assignment_id=7, title="Essay 1", kind="individual")


@pytest.fixture
def team_assignment() -> Assignment:
    return Assignment(assignment_id=9, title="Projekt", kind="team")


@pytest.fixture
def essay_store(essay_assignment: Assignment, anna: Identity, ben: Identity) -> MemoryStore:
    return MemoryStore(
        essay_assignment,
        [Individual(identity=anna), Individual(identity=ben, status="passed", mark="1.3")],
        {
            anna.user_id: [submission("20251009061955_essay.txt", b"anna's essay", anna.user_id)],
            ben.user_id: [submission("20251009071955_essay.txt", b"ben's essay", ben.user_id)],
        },
    )


@pytest.fixture
def team_store(team_assignment: Assignment, anna: Identity, ben: Identity, cara: Identity) -> SharedMemoryStore:
    return SharedMemoryStore(
        team_assignment,
        [Team(team_id=4, members=(anna, ben, cara))],
        {
            anna.user_id: [submission("20251009061955_report.pdf", b"%PDF team report", anna.user_id, hour=8)],
            ben.user_id: [submission("20251009051955_notes.md", b"# notes", ben.user_id, hour=5)],
        },
    )
