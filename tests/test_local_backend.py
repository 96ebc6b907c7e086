"""Tests for the directory-backed store."""

from datetime import datetime, timezone

import pytest

from feedback_archive.backends.local import CountingNotifier, LocalStore, normalize_status
from feedback_archive.collaborators import SharedArtifactStore
from feedback_archive.models import Assignment, Identity, Individual, StatusUpdateRecord, Team

USERS = [
    Identity(user_id=1, login="jd", firstname="Jane", lastname="Doe"),
    Identity(user_id=2, login="rr", firstname="Rick", lastname="Roe"),
]


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "store")


class TestNormalizeStatus:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("passed", "passed"), (" OK ", "passed"), ("1", "passed"), ("not passed", "failed"), ("", "notgraded")],
    )
    def test_aliases(self, raw, expected):
        assert normalize_status(raw) == expected

    def test_unknown_value(self):
        with pytest.raises(ValueError):
            normalize_status("maybe")


class TestLocalStore:
    def test_individual_assignment(self, store):
        assignment = Assignment(assignment_id=3, title="Essay")
        submission_dir = store.assignment_dir(3) / "submissions"
        submission_dir.mkdir(parents=True)
        (submission_dir / "20251009061955_essay.txt").write_bytes(b"essay")
        store.save_assignment(
            assignment,
            USERS,
            submissions={
                1: [
                    {
                        "name": "20251009061955_essay.txt",
                        "path": "submissions/20251009061955_essay.txt",
                        "submitted_at": "2025-10-09T06:19:55+00:00",
                    }
                ]
            },
        )

        assert store.get_assignment(3) == assignment
        assert store.get_assignment(4) is None
        participants = store.list_participants(assignment)
        assert [item.participant_id for item in participants] == [1, 2]
        assert isinstance(participants[0], Individual)

        (item,) = store.list_submissions(3, 1)
        assert item.read_bytes() == b"essay"
        assert item.submitted_at == datetime(2025, 10, 9, 6, 19, 55, tzinfo=timezone.utc)
        assert store.list_submissions(3, 2) == []

    def test_team_assignment_and_shared_files(self, store, tmp_path):
        assignment = Assignment(assignment_id=5, title="Projekt", kind="team")
        store.save_assignment(assignment, USERS, teams=[(8, [1, 2])])
        source = tmp_path / "feedback.pdf"
        source.write_bytes(b"%PDF")

        (team,) = store.list_participants(assignment)
        assert isinstance(team, Team)
        assert team.member_ids == (1, 2)
        assert store.team_of(5, 2) == 8

        assert isinstance(store, SharedArtifactStore)
        store.attach_shared(5, 8, [1, 2], "feedback.pdf", source)
        assert store.feedback_files(5, 1) == ["feedback.pdf"]
        assert store.feedback_files(5, 2) == ["feedback.pdf"]

    def test_attach_refuses_nested_names(self, store, tmp_path):
        source = tmp_path / "x.txt"
        source.write_bytes(b"x")
        with pytest.raises(ValueError):
            store.attach(1, 1, "../x.txt", source)

    def test_status_and_feedback_flags(self, store):
        assignment = Assignment(assignment_id=3, title="Essay")
        store.save_assignment(assignment, USERS)

        store.apply_status(3, 1, StatusUpdateRecord(participant_id=1, apply=True, status="OK", mark="1.7"), actor_id=9)
        store.mark_feedback(3, 1, actor_id=9)

        state = store.grading_state(3, 1)
        assert state["status"] == "passed"
        assert state["mark"] == "1.7"
        assert state["updated_by"] == 9
        assert state["feedback"] is True
        assert store.list_participants(assignment)[0].status == "passed"

    def test_invalid_status_is_not_written(self, store):
        store.save_assignment(Assignment(assignment_id=3, title="Essay"), USERS)
        with pytest.raises(ValueError):
            store.apply_status(3, 1, StatusUpdateRecord(participant_id=1, status="maybe"), actor_id=9)
        assert store.grading_state(3, 1) == {}


class TestCountingNotifier:
    def test_counts_sent_and_skipped(self):
        assignment = Assignment(assignment_id=3, title="Essay")
        silent = CountingNotifier()
        silent.notify(assignment, 1, ["a.txt"])
        assert (silent.sent, silent.skipped) == (0, 1)

        calls = []

        class Inner:
            def notify(self, assignment, user_id, filenames):
                calls.append(user_id)

        counting = CountingNotifier(Inner())
        counting.notify(assignment, 2, ["a.txt"])
        assert (counting.sent, calls) == (1, [2])
