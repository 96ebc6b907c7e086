"""Import orchestration: extract, validate, apply status rows, attach feedback."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any, Mapping, Sequence
from uuid import uuid4

from feedback_archive.backends.local import LoggingNotifier
from feedback_archive.collaborators import FeedbackServices, Notifier
from feedback_archive.config import AppSettings
from feedback_archive.errors import (
    ArchiveValidationError,
    FeedbackArchiveError,
    ProcessingError,
    StatusFileStructureError,
)
from feedback_archive.ingest.classify import ChangeClassifier
from feedback_archive.ingest.discover import (
    ParticipantFolder,
    discover_participant_folders,
    find_archive_prefix,
    validate_structure,
)
from feedback_archive.ingest.extract import ArchiveImporter, read_archive_source
from feedback_archive.ingest.fanout import ParticipantFanoutResolver
from feedback_archive.ingest.outcome import ImportOutcome
from feedback_archive.ingest.status_select import select_status_file
from feedback_archive.logging_utils import bind_run
from feedback_archive.manifest import ChecksumManifest, load_manifest
from feedback_archive.models import ArchiveEntry, Assignment, Participant, RenamedFile, SubmissionFile
from feedback_archive.utils.paths import scoped_work_dir

LOGGER = logging.getLogger(__name__)


def _resolve_notifier(
    services: FeedbackServices,
    settings: AppSettings,
    logger: logging.Logger | logging.LoggerAdapter,
) -> Notifier | None:
    if not settings.notifications.enabled:
        return None
    if settings.notifications.debug_mode:
        return LoggingNotifier(logger=logger)
    return services.notifier


def _known_submissions(
    services: FeedbackServices,
    assignment: Assignment,
    participant: Participant,
) -> list[SubmissionFile]:
    known: list[SubmissionFile] = []
    seen: set[str] = set()
    for user_id in participant.member_ids:
        for item in services.submissions.list_submissions(assignment.assignment_id, user_id):
            if item.storage_path not in seen:
                seen.add(item.storage_path)
                known.append(item)
    return known


def apply_status_rows(
    entry: ArchiveEntry,
    assignment: Assignment,
    participants: Mapping[int, Participant],
    services: FeedbackServices,
    actor_id: int,
    outcome: ImportOutcome,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> int:
    """Parse the chosen status file and apply each row marked for update.

    Rows are checked completely before anything is written; a failing row becomes a
    `ProcessingError` and the remaining rows continue.
    """

    effective_logger = logger or LOGGER
    name = entry.archive_path
    if services.codec is None:
        outcome.add_warning(f"{name} was not applied because no status codec is configured.")
        effective_logger.warning("status.skipped file=%s reason=no_codec", name)
        return 0

    status_format = PurePosixPath(name).suffix.lstrip(".").lower()
    try:
        records = services.codec.parse(entry.local_path, status_format, assignment)
    except StatusFileStructureError as exc:
        outcome.add_error(ProcessingError(f"Status file {name} is invalid: {exc}", filename=name))
        effective_logger.error("status.structure_invalid file=%s error=%s", name, exc)
        return 0
    except Exception as exc:
        outcome.add_error(ProcessingError(f"Status file {name} could not be read: {exc}", filename=name))
        effective_logger.exception("status.parse_failed file=%s", name)
        return 0

    applicable = [record for record in records if record.apply]
    if not applicable:
        outcome.add_warning(f"{name} contains no rows marked for update.")
        effective_logger.info("status.no_rows file=%s rows=%s", name, len(records))
        return 0

    applied = 0
    for record in applicable:
        participant = participants.get(record.participant_id)
        if participant is None:
            outcome.add_error(
                ProcessingError(
                    f"Status row for unknown participant {record.participant_id} skipped.",
                    participant_id=record.participant_id,
                    filename=name,
                )
            )
            effective_logger.warning("status.unknown_participant participant_id=%s", record.participant_id)
            continue
        recipients = participant.member_ids
        if not recipients:
            outcome.add_error(
                ProcessingError(
                    f"Team {record.participant_id} has no members; status row skipped.",
                    participant_id=record.participant_id,
                    filename=name,
                )
            )
            continue

        updated: list[int] = []
        try:
            for user_id in recipients:
                services.grading.apply_status(assignment.assignment_id, user_id, record, actor_id)
                updated.append(user_id)
        except Exception as exc:
            outcome.add_error(
                ProcessingError(
                    f"Status row for participant {record.participant_id} failed after updating {updated}: {exc}",
                    participant_id=record.participant_id,
                    filename=name,
                )
            )
            effective_logger.exception("status.row_failed participant_id=%s updated=%s", record.participant_id, updated)
            continue
        applied += 1

    effective_logger.info("status.applied file=%s rows=%s applied=%s", name, len(applicable), applied)
    return applied


def _process_folder(
    folder: ParticipantFolder,
    participant: Participant,
    assignment: Assignment,
    classifier: ChangeClassifier,
    resolver: ParticipantFanoutResolver,
    services: FeedbackServices,
    notified: set[int],
    outcome: ImportOutcome,
) -> None:
    known = _known_submissions(services, assignment, participant)
    classified = classifier.classify([item.entry for item in folder.files], known, folder.root)
    for item in classified:
        if item.renamed:
            outcome.renamed.append(
                RenamedFile(
                    participant_id=folder.participant_id,
                    archive_path=item.entry.archive_path,
                    original_name=item.original_filename,
                    new_name=item.filename,
                )
            )
    resolver.resolve(participant, classified, notified, outcome)


def _process_feedback(
    folders: Sequence[ParticipantFolder],
    assignment: Assignment,
    participants: Mapping[int, Participant],
    manifest: ChecksumManifest | None,
    services: FeedbackServices,
    settings: AppSettings,
    actor_id: int,
    outcome: ImportOutcome,
    logger: logging.Logger | logging.LoggerAdapter,
) -> None:
    classifier = ChangeClassifier(manifest, settings, logger=logger)
    resolver = ParticipantFanoutResolver(
        assignment,
        services.artifacts,
        services.grading,
        _resolve_notifier(services, settings, logger),
        actor_id,
        logger=logger,
    )
    notified: set[int] = set()
    for folder in folders:
        participant = participants.get(folder.participant_id)
        if participant is None:
            outcome.add_warning(f"Folder {folder.root!r} belongs to no participant of this assignment; skipped.")
            logger.warning("import.unknown_participant participant_id=%s folder=%s", folder.participant_id, folder.root)
            continue
        try:
            _process_folder(folder, participant, assignment, classifier, resolver, services, notified, outcome)
        except (OSError, FeedbackArchiveError) as exc:
            outcome.add_error(
                ProcessingError(f"Folder {folder.root} could not be processed: {exc}", participant_id=folder.participant_id)
            )
            logger.exception("import.folder_failed participant_id=%s folder=%s", folder.participant_id, folder.root)


def run_import(
    source: Any,
    *,
    assignment_id: int,
    actor_id: int,
    services: FeedbackServices,
    settings: AppSettings,
    logger: logging.Logger | None = None,
) -> ImportOutcome:
    """Ingest an edited feedback archive and return what was applied.

    `source` is raw bytes, a path, or an upload handle (see `read_archive_source`).
    Validation failures abort before anything is written; per-row and per-file
    failures are collected and the run continues.
    """

    run_id = f"import-{uuid4().hex[:12]}"
    log = bind_run(logger or LOGGER, run_id)
    outcome = ImportOutcome(run_id=run_id)
    archive_cfg = settings.archive
    log.info("import.start assignment_id=%s actor_id=%s", assignment_id, actor_id)

    try:
        data = read_archive_source(source)
        assignment = services.directory.get_assignment(assignment_id)
        if assignment is None:
            raise ArchiveValidationError(f"Assignment {assignment_id} not found.")

        with scoped_work_dir("feedback_import_", settings.paths.work_root) as work_dir:
            extraction = ArchiveImporter(settings, log).extract(data, work_dir / "extracted")
            outcome.rejected_entries.extend(error.entry_name for error in extraction.rejected)
            for error in extraction.rejected:
                outcome.add_warning(f"Rejected archive entry: {error}")
            for message in extraction.warnings:
                outcome.add_warning(message)

            file_paths = [entry.archive_path for entry in extraction.entries]
            prefix = find_archive_prefix([*file_paths, *extraction.directories], archive_cfg.system_names)
            validate_structure(assignment, file_paths, extraction.directories, prefix)

            manifest: ChecksumManifest | None = None
            manifest_path = f"{prefix}{archive_cfg.manifest_name}"
            manifest_entry = next((item for item in extraction.entries if item.archive_path == manifest_path), None)
            if manifest_entry is not None:
                manifest = load_manifest(manifest_entry.local_path, logger=log)
            if manifest is None:
                outcome.add_warning(
                    f"{archive_cfg.manifest_name} missing or unreadable; every file is treated as new feedback."
                )
                log.warning("import.degraded reason=no_manifest")
            tracked: frozenset[str] = frozenset()
            if manifest is not None:
                tracked = frozenset(record.path for record in manifest.of_kind("submission"))

            layout = discover_participant_folders(
                assignment,
                extraction.entries,
                settings,
                prefix=prefix,
                logger=log,
                tracked_paths=tracked,
            )
            for message in layout.warnings:
                outcome.add_warning(message)

            participants = {item.participant_id: item for item in services.directory.list_participants(assignment)}

            candidates = {name: layout.system_files[name] for name in archive_cfg.status_names if name in layout.system_files}
            selection = select_status_file(
                candidates,
                manifest,
                archive_cfg.status_primary_name,
                archive_cfg.status_secondary_name,
                logger=log,
            )
            for message in selection.warnings:
                outcome.add_warning(message)
            if selection.chosen is not None:
                outcome.status_file = selection.chosen_name
                outcome.status_rows_applied = apply_status_rows(
                    selection.chosen,
                    assignment,
                    participants,
                    services,
                    actor_id,
                    outcome,
                    logger=log,
                )
            else:
                outcome.add_warning("No status file found; only feedback files were processed.")

            _process_feedback(
                layout.folders,
                assignment,
                participants,
                manifest,
                services,
                settings,
                actor_id,
                outcome,
                log,
            )
    except ArchiveValidationError as exc:
        log.error("import.rejected error=%s", exc)
        return outcome.fail(str(exc), "validation")
    except FeedbackArchiveError as exc:
        log.error("import.failed error=%s", exc)
        return outcome.fail(str(exc), "processing")

    log.info(
        "import.done status_rows_applied=%s attached=%s renamed=%s warnings=%s errors=%s",
        outcome.status_rows_applied,
        outcome.attached_count,
        len(outcome.renamed),
        len(outcome.warnings),
        len(outcome.errors),
    )
    return outcome
