"""Attach classified files to participants and fan team files out to every member."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Sequence

from feedback_archive.collaborators import ArtifactStore, GradingStore, Notifier, SharedArtifactStore
from feedback_archive.errors import ProcessingError
from feedback_archive.ingest.outcome import ImportOutcome
from feedback_archive.models import Assignment, ClassifiedFile, Participant, Team

LOGGER = logging.getLogger(__name__)


def attachable_files(classified: Sequence[ClassifiedFile]) -> list[ClassifiedFile]:
    """New feedback and modified submissions, one per (filename, content).

    The same file placed in several member folders collapses to one; two different
    files sharing a name get a numbered suffix on the later one.
    """

    selected: list[ClassifiedFile] = []
    seen: set[tuple[str, str]] = set()
    digest_by_name: dict[str, str] = {}
    for item in classified:
        if not item.attachable:
            continue
        key = (item.filename, item.sha256)
        if key in seen:
            continue
        seen.add(key)
        filename = item.filename
        if filename in digest_by_name:
            path = PurePosixPath(filename)
            counter = 2
            while filename in digest_by_name:
                filename = f"{path.stem}_{counter}{path.suffix}"
                counter += 1
            item = ClassifiedFile(
                entry=item.entry,
                classification=item.classification,
                filename=filename,
                original_filename=item.original_filename,
                local_path=item.local_path,
                sha256=item.sha256,
            )
        digest_by_name[filename] = item.sha256
        selected.append(item)
    return selected


class ParticipantFanoutResolver:
    """Persists one participant's attachable files, then marks and notifies each recipient."""

    def __init__(
        self,
        assignment: Assignment,
        artifacts: ArtifactStore,
        grading: GradingStore,
        notifier: Notifier | None,
        actor_id: int,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.assignment = assignment
        self.artifacts = artifacts
        self.grading = grading
        self.notifier = notifier
        self.actor_id = actor_id
        self.logger = logger or LOGGER

    def _attach_shared(
        self,
        store: SharedArtifactStore,
        target: Team,
        files: Sequence[ClassifiedFile],
        outcome: ImportOutcome,
    ) -> dict[int, list[str]]:
        delivered: dict[int, list[str]] = {}
        for item in files:
            try:
                store.attach_shared(
                    self.assignment.assignment_id,
                    target.team_id,
                    target.member_ids,
                    item.filename,
                    item.local_path,
                )
            except Exception as exc:
                outcome.add_error(
                    ProcessingError(
                        f"Could not store {item.filename} for team {target.team_id}: {exc}",
                        participant_id=target.team_id,
                        filename=item.filename,
                    )
                )
                self.logger.exception("fanout.attach_shared_failed team_id=%s file=%s", target.team_id, item.filename)
                continue
            for user_id in target.member_ids:
                delivered.setdefault(user_id, []).append(item.filename)
        return delivered

    def _attach_each(
        self,
        target: Participant,
        files: Sequence[ClassifiedFile],
        outcome: ImportOutcome,
    ) -> dict[int, list[str]]:
        delivered: dict[int, list[str]] = {}
        for user_id in target.member_ids:
            for item in files:
                try:
                    self.artifacts.attach(self.assignment.assignment_id, user_id, item.filename, item.local_path)
                except Exception as exc:
                    outcome.add_error(
                        ProcessingError(
                            f"Could not store {item.filename} for user {user_id}: {exc}",
                            participant_id=target.participant_id,
                            filename=item.filename,
                        )
                    )
                    self.logger.exception("fanout.attach_failed user_id=%s file=%s", user_id, item.filename)
                    continue
                delivered.setdefault(user_id, []).append(item.filename)
        return delivered

    def resolve(
        self,
        target: Participant,
        classified: Sequence[ClassifiedFile],
        notified: set[int],
        outcome: ImportOutcome,
    ) -> dict[int, list[str]]:
        """Attach, mark and notify for one participant; returns filenames delivered per user."""

        files = attachable_files(classified)
        if not files:
            self.logger.debug("fanout.nothing_to_attach participant_id=%s", target.participant_id)
            return {}

        if isinstance(target, Team) and isinstance(self.artifacts, SharedArtifactStore):
            delivered = self._attach_shared(self.artifacts, target, files, outcome)
        else:
            delivered = self._attach_each(target, files, outcome)

        for user_id in target.member_ids:
            names = delivered.get(user_id)
            if not names:
                continue
            for name in names:
                outcome.record_attachment(user_id, name)
            try:
                self.grading.mark_feedback(self.assignment.assignment_id, user_id, self.actor_id)
            except Exception as exc:
                outcome.add_error(
                    ProcessingError(
                        f"Could not mark feedback for user {user_id}: {exc}",
                        participant_id=target.participant_id,
                    )
                )
                self.logger.exception("fanout.mark_failed user_id=%s", user_id)

            if self.notifier is None or user_id in notified:
                continue
            try:
                self.notifier.notify(self.assignment, user_id, names)
            except Exception as exc:
                outcome.add_error(
                    ProcessingError(f"Could not notify user {user_id}: {exc}", participant_id=target.participant_id)
                )
                self.logger.exception("fanout.notify_failed user_id=%s", user_id)
                continue
            notified.add(user_id)
            outcome.notified.append(user_id)

        self.logger.info(
            "fanout.done participant_id=%s files=%s recipients=%s",
            target.participant_id,
            len(files),
            len(delivered),
        )
        return delivered
