"""Tests for attaching files and fanning team feedback out to members."""

from conftest import MemoryStore, RecordingNotifier, SharedMemoryStore
from feedback_archive.ingest.fanout import ParticipantFanoutResolver, attachable_files
from feedback_archive.ingest.outcome import ImportOutcome
from feedback_archive.models import ArchiveEntry, ClassifiedFile, Individual, Team


def _classified(tmp_path, folder, name, data, classification="new_feedback", filename=None):
    directory = tmp_path / folder
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / (filename or name)
    path.write_bytes(data)
    return ClassifiedFile(
        entry=ArchiveEntry(archive_path=f"{folder}/{name}", local_path=path, size=len(data)),
        classification=classification,
        filename=filename or name,
        original_filename=name,
        local_path=path,
        sha256=str(hash(data)),
    )


class TestAttachableFiles:
    def test_unchanged_submissions_are_dropped(self, tmp_path):
        files = [
            _classified(tmp_path, "a", "essay.txt", b"x", classification="unchanged_submission"),
            _classified(tmp_path, "a", "notes.txt", b"y"),
        ]
        assert [item.filename for item in attachable_files(files)] == ["notes.txt"]

    def test_identical_copies_collapse(self, tmp_path):
        files = [
            _classified(tmp_path, "m1", "feedback.pdf", b"same"),
            _classified(tmp_path, "m2", "feedback.pdf", b"same"),
        ]
        assert len(attachable_files(files)) == 1

    def test_same_name_different_content_is_numbered(self, tmp_path):
        files = [
            _classified(tmp_path, "m1", "feedback.pdf", b"one"),
            _classified(tmp_path, "m2", "feedback.pdf", b"two"),
        ]
        assert [item.filename for item in attachable_files(files)] == ["feedback.pdf", "feedback_2.pdf"]


class TestParticipantFanoutResolver:
    def test_team_files_reach_every_member_once(self, tmp_path, team_assignment, anna, ben, cara):
        team = Team(team_id=4, members=(anna, ben, cara))
        store = MemoryStore(team_assignment, [team])
        notifier = RecordingNotifier()
        outcome = ImportOutcome(run_id="t")
        files = [
            _classified(tmp_path, "Team_4", "feedback.pdf", b"fb"),
            _classified(tmp_path, "Team_4/m1", "feedback.pdf", b"fb"),
            _classified(tmp_path, "Team_4/m2", "essay.txt", b"e2", "modified_submission", "essay_korrigiert.txt"),
        ]

        notified = set()
        ParticipantFanoutResolver(team_assignment, store, store, notifier, actor_id=1).resolve(
            team, files, notified, outcome
        )

        for member in (anna, ben, cara):
            assert sorted(store.attached[member.user_id]) == ["essay_korrigiert.txt", "feedback.pdf"]
        assert sorted(store.feedback_marked) == [101, 102, 103]
        assert [call[1] for call in notifier.calls] == [101, 102, 103]
        assert notified == {101, 102, 103}
        assert outcome.attached_count == 6

    def test_shared_store_keeps_one_copy_per_team(self, tmp_path, team_assignment, anna, ben):
        team = Team(team_id=4, members=(anna, ben))
        store = SharedMemoryStore(team_assignment, [team])
        outcome = ImportOutcome(run_id="t")

        ParticipantFanoutResolver(team_assignment, store, store, None, actor_id=1).resolve(
            team, [_classified(tmp_path, "Team_4", "feedback.pdf", b"fb")], set(), outcome
        )

        assert store.shared == [(4, (101, 102), "feedback.pdf")]
        assert outcome.attached == {101: ["feedback.pdf"], 102: ["feedback.pdf"]}
        assert outcome.notified == []

    def test_already_notified_users_are_skipped(self, tmp_path, essay_assignment, anna):
        individual = Individual(identity=anna)
        store = MemoryStore(essay_assignment, [individual])
        notifier = RecordingNotifier()

        ParticipantFanoutResolver(essay_assignment, store, store, notifier, actor_id=1).resolve(
            individual, [_classified(tmp_path, "u", "a.txt", b"a")], {101}, ImportOutcome(run_id="t")
        )

        assert store.attached == {101: ["a.txt"]}
        assert notifier.calls == []

    def test_failures_are_collected(self, tmp_path, team_assignment, anna, ben):
        team = Team(team_id=4, members=(anna, ben))
        store = MemoryStore(team_assignment, [team])
        store.fail_attach_for.add(101)
        notifier = RecordingNotifier(fail_for=[102])
        outcome = ImportOutcome(run_id="t")

        ParticipantFanoutResolver(team_assignment, store, store, notifier, actor_id=1).resolve(
            team, [_classified(tmp_path, "Team_4", "feedback.pdf", b"fb")], set(), outcome
        )

        assert store.attached == {102: ["feedback.pdf"]}
        assert len(outcome.errors) == 2
        assert {error.participant_id for error in outcome.errors} == {4}
        assert outcome.notified == []

    def test_nothing_attachable(self, tmp_path, essay_assignment, anna):
        individual = Individual(identity=anna)
        store = MemoryStore(essay_assignment, [individual])
        delivered = ParticipantFanoutResolver(essay_assignment, store, store, None, actor_id=1).resolve(
            individual,
            [_classified(tmp_path, "u", "a.txt", b"a", classification="unchanged_submission")],
            set(),
            ImportOutcome(run_id="t"),
        )
        assert delivered == {}
        assert store.feedback_marked == []
