"""Directory-backed participant, submission, artifact and grading store.

Layout below the store root::

    assignments/<assignment_id>/assignment.yaml     assignment, users, teams, submissions
    assignments/<assignment_id>/status.json         grading state per user
    assignments/<assignment_id>/feedback/<user_id>/ feedback files of one user
    assignments/<assignment_id>/feedback/t<team_id>/ shared team feedback files

Submission paths in `assignment.yaml` are relative to the assignment directory.
"""

from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

import yaml

from feedback_archive.collaborators import Notifier
from feedback_archive.models import (
    Assignment,
    Identity,
    Individual,
    Participant,
    StatusUpdateRecord,
    SubmissionFile,
    Team,
)
from feedback_archive.utils.paths import ensure_directories, is_within, write_bytes_atomically, write_json_atomically
from feedback_archive.utils.time_utils import now_utc

LOGGER = logging.getLogger(__name__)

ASSIGNMENT_FILE = "assignment.yaml"
STATUS_FILE = "status.json"
FEEDBACK_DIR = "feedback"

VALID_STATUSES = ("notgraded", "passed", "failed")
_STATUS_ALIASES = {
    "": "notgraded",
    "not graded": "notgraded",
    "pending": "notgraded",
    "passed": "passed",
    "ok": "passed",
    "success": "passed",
    "yes": "passed",
    "1": "passed",
    "failed": "failed",
    "fail": "failed",
    "not passed": "failed",
    "no": "failed",
    "0": "failed",
}


def normalize_status(value: str) -> str:
    """Map a free-form status value to one of `VALID_STATUSES`; raises ValueError otherwise."""

    key = value.strip().lower()
    if key in VALID_STATUSES:
        return key
    try:
        return _STATUS_ALIASES[key]
    except KeyError:
        raise ValueError(f"invalid status {value!r}; expected one of {', '.join(VALID_STATUSES)}") from None


def team_feedback_key(team_id: int) -> str:
    return f"t{team_id}"


class LocalStore:
    """Implements every store-side collaborator on top of a plain directory tree."""

    def __init__(self, root: Path, logger: logging.Logger | None = None) -> None:
        self.root = root
        self.logger = logger or LOGGER

    def assignment_dir(self, assignment_id: int) -> Path:
        return self.root / "assignments" / str(assignment_id)

    def _read_definition(self, assignment_id: int) -> dict[str, Any] | None:
        path = self.assignment_dir(assignment_id) / ASSIGNMENT_FILE
        if not path.is_file():
            return None
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
        if not isinstance(payload, dict):
            raise ValueError(f"{path} must contain a mapping")
        return payload

    def _read_status(self, assignment_id: int) -> dict[str, dict[str, Any]]:
        path = self.assignment_dir(assignment_id) / STATUS_FILE
        if not path.is_file():
            return {}
        return json.loads(path.read_text(encoding="utf-8"))

    def _write_status(self, assignment_id: int, state: dict[str, dict[str, Any]]) -> None:
        write_json_atomically(state, self.assignment_dir(assignment_id) / STATUS_FILE)

    def save_assignment(
        self,
        assignment: Assignment,
        users: Sequence[Identity],
        teams: Sequence[tuple[int, Sequence[int]]] = (),
        submissions: dict[int, list[dict[str, Any]]] | None = None,
    ) -> Path:
        """Write `assignment.yaml`; submission dicts carry `name`, `path` and optional `submitted_at`."""

        payload = {
            "assignment": {"id": assignment.assignment_id, "title": assignment.title, "kind": assignment.kind},
            "users": [
                {"user_id": user.user_id, "login": user.login, "firstname": user.firstname, "lastname": user.lastname}
                for user in users
            ],
            "teams": [{"team_id": team_id, "members": list(members)} for team_id, members in teams],
            "submissions": {str(user_id): items for user_id, items in (submissions or {}).items()},
        }
        target = self.assignment_dir(assignment.assignment_id) / ASSIGNMENT_FILE
        write_bytes_atomically(yaml.safe_dump(payload, sort_keys=False, allow_unicode=True).encode("utf-8"), target)
        return target

    def initialize(self) -> list[Path]:
        return ensure_directories([self.root / "assignments"])

    # ParticipantDirectory

    def get_assignment(self, assignment_id: int) -> Assignment | None:
        definition = self._read_definition(assignment_id)
        if definition is None:
            return None
        raw = definition.get("assignment") or {}
        return Assignment(
            assignment_id=int(raw.get("id", assignment_id)),
            title=str(raw.get("title", f"Assignment {assignment_id}")),
            kind="team" if raw.get("kind") == "team" else "individual",
        )

    def list_participants(self, assignment: Assignment) -> list[Participant]:
        definition = self._read_definition(assignment.assignment_id) or {}
        state = self._read_status(assignment.assignment_id)
        users = {
            int(item["user_id"]): Identity(
                user_id=int(item["user_id"]),
                login=str(item.get("login", "")),
                firstname=str(item.get("firstname", "")),
                lastname=str(item.get("lastname", "")),
            )
            for item in definition.get("users") or []
        }

        def grading(user_id: int) -> tuple[str, str]:
            entry = state.get(str(user_id), {})
            return str(entry.get("status", "notgraded")), str(entry.get("mark", ""))

        if not assignment.uses_teams:
            participants: list[Participant] = []
            for user_id in sorted(users):
                status, mark = grading(user_id)
                participants.append(Individual(identity=users[user_id], status=status, mark=mark))
            return participants

        teams: list[Participant] = []
        for item in definition.get("teams") or []:
            members = tuple(users[int(member)] for member in (item.get("members") or []) if int(member) in users)
            status, mark = grading(members[0].user_id) if members else ("notgraded", "")
            teams.append(Team(team_id=int(item["team_id"]), members=members, status=status, mark=mark))
        return sorted(teams, key=lambda team: team.participant_id)

    def team_of(self, assignment_id: int, user_id: int) -> int | None:
        definition = self._read_definition(assignment_id) or {}
        for item in definition.get("teams") or []:
            if user_id in {int(member) for member in (item.get("members") or [])}:
                return int(item["team_id"])
        return None

    # SubmissionLookup

    def list_submissions(self, assignment_id: int, user_id: int) -> list[SubmissionFile]:
        definition = self._read_definition(assignment_id) or {}
        base = self.assignment_dir(assignment_id)
        submissions = definition.get("submissions") or {}
        items = submissions.get(str(user_id)) or submissions.get(user_id) or []
        files: list[SubmissionFile] = []
        for item in items:
            submitted_at = item.get("submitted_at")
            if isinstance(submitted_at, str):
                submitted_at = datetime.fromisoformat(submitted_at)
            files.append(
                SubmissionFile(
                    name=str(item["name"]),
                    storage_path=str(base / item["path"]),
                    submitted_at=submitted_at,
                    uploaded_by=user_id,
                )
            )
        return files

    # ArtifactStore / SharedArtifactStore

    def _store_file(self, assignment_id: int, folder: str, filename: str, source: Path) -> Path:
        feedback_root = self.assignment_dir(assignment_id) / FEEDBACK_DIR / folder
        target = feedback_root / filename
        if not is_within(feedback_root, target) or "/" in filename:
            raise ValueError(f"unsafe feedback filename {filename!r}")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return target

    def attach(self, assignment_id: int, user_id: int, filename: str, source: Path) -> None:
        target = self._store_file(assignment_id, str(user_id), filename, source)
        self.logger.info("store.attached assignment_id=%s user_id=%s path=%s", assignment_id, user_id, target)

    def attach_shared(
        self,
        assignment_id: int,
        team_id: int,
        member_ids: Sequence[int],
        filename: str,
        source: Path,
    ) -> None:
        target = self._store_file(assignment_id, team_feedback_key(team_id), filename, source)
        self.logger.info(
            "store.attached_shared assignment_id=%s team_id=%s members=%s path=%s",
            assignment_id,
            team_id,
            list(member_ids),
            target,
        )

    def feedback_files(self, assignment_id: int, user_id: int) -> list[str]:
        """Names of all feedback files visible to a user, including shared team files."""

        feedback_root = self.assignment_dir(assignment_id) / FEEDBACK_DIR
        folders = [feedback_root / str(user_id)]
        team_id = self.team_of(assignment_id, user_id)
        if team_id is not None:
            folders.append(feedback_root / team_feedback_key(team_id))
        names: set[str] = set()
        for folder in folders:
            if folder.is_dir():
                names.update(child.name for child in folder.iterdir() if child.is_file())
        return sorted(names)

    # GradingStore

    def apply_status(self, assignment_id: int, user_id: int, record: StatusUpdateRecord, actor_id: int) -> None:
        status = normalize_status(record.status)
        state = self._read_status(assignment_id)
        entry = state.setdefault(str(user_id), {})
        entry.update(
            {
                "status": status,
                "mark": record.mark,
                "notice": record.notice,
                "comment": record.comment,
                "extra": dict(record.extra),
                "updated_by": actor_id,
                "updated_at": now_utc().isoformat(),
            }
        )
        self._write_status(assignment_id, state)
        self.logger.info("store.status_applied assignment_id=%s user_id=%s status=%s", assignment_id, user_id, status)

    def mark_feedback(self, assignment_id: int, user_id: int, actor_id: int) -> None:
        state = self._read_status(assignment_id)
        entry = state.setdefault(str(user_id), {})
        entry["feedback"] = True
        entry["feedback_by"] = actor_id
        entry["feedback_at"] = now_utc().isoformat()
        self._write_status(assignment_id, state)

    def grading_state(self, assignment_id: int, user_id: int) -> dict[str, Any]:
        return dict(self._read_status(assignment_id).get(str(user_id), {}))


class LoggingNotifier:
    """Notifier that only logs; used when notifications run in debug mode."""

    def __init__(self, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self.logger = logger or LOGGER

    def notify(self, assignment: Assignment, user_id: int, filenames: Sequence[str]) -> None:
        self.logger.info(
            "notify.debug assignment_id=%s user_id=%s files=%s",
            assignment.assignment_id,
            user_id,
            ",".join(filenames),
        )


class CountingNotifier:
    """Wraps another notifier and counts what was sent; without one, counts skips."""

    def __init__(self, inner: Notifier | None = None) -> None:
        self.inner = inner
        self.sent = 0
        self.skipped = 0

    def notify(self, assignment: Assignment, user_id: int, filenames: Sequence[str]) -> None:
        if self.inner is None:
            self.skipped += 1
            return
        self.inner.notify(assignment, user_id, filenames)
        self.sent += 1
