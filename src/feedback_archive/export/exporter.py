"""Build the multi-feedback export archive for one assignment."""

from __future__ import annotations

import logging
import os
import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Iterable, Sequence
from uuid import uuid4

from feedback_archive.collaborators import StatusCodec, SubmissionLookup
from feedback_archive.config import AppSettings
from feedback_archive.errors import ExportError
from feedback_archive.export.layout import ParticipantPlan, layout_for
from feedback_archive.export.readme import render_readme, render_team_info
from feedback_archive.logging_utils import bind_run
from feedback_archive.manifest import ChecksumManifest, ManifestBuilder
from feedback_archive.models import Assignment, Participant, SubmissionFile, Team
from feedback_archive.naming import archive_filename
from feedback_archive.utils.paths import atomic_temp_path
from feedback_archive.utils.time_utils import as_utc, now_utc

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExportResult:
    """Return object for a finished export."""

    run_id: str
    archive_path: Path
    manifest: ChecksumManifest
    download_name: str
    participant_count: int
    file_count: int
    status_files: tuple[str, ...]
    warnings: tuple[str, ...]


def select_participants(
    participants: Sequence[Participant],
    requested_ids: Iterable[int],
    logger: logging.Logger | None = None,
) -> list[Participant]:
    """Keep the requested participants in request order; unknown ids are dropped."""

    effective_logger = logger or LOGGER
    by_id = {participant.participant_id: participant for participant in participants}
    selected: list[Participant] = []
    seen: set[int] = set()
    for participant_id in requested_ids:
        if participant_id in seen:
            continue
        seen.add(participant_id)
        participant = by_id.get(participant_id)
        if participant is None:
            effective_logger.warning("export.participant_dropped participant_id=%s reason=not_in_assignment", participant_id)
            continue
        selected.append(participant)
    if not selected:
        raise ExportError("None of the requested participants belong to this assignment.")
    return selected


def collect_files(
    submissions: SubmissionLookup,
    assignment_id: int,
    user_ids: Sequence[int],
    timestamp_pattern: str,
) -> list[tuple[str, SubmissionFile]]:
    """Union of the users' submissions as `(archive name, file)`, most recent first.

    Files are de-duplicated by storage path; when two files map to the same archive
    name the most recent one is kept.
    """

    union: list[SubmissionFile] = []
    seen_paths: set[str] = set()
    for user_id in user_ids:
        for item in submissions.list_submissions(assignment_id, user_id):
            if item.storage_path in seen_paths:
                continue
            seen_paths.add(item.storage_path)
            union.append(item)
    union.sort(key=lambda item: as_utc(item.submitted_at), reverse=True)

    named: list[tuple[str, SubmissionFile]] = []
    taken: set[str] = set()
    for item in union:
        name = archive_filename(item.name, timestamp_pattern)
        if not name or name in taken:
            continue
        taken.add(name)
        named.append((name, item))
    return named


class ArchiveExporter:
    """Writes folder tree, status files, manifest and README into one ZIP."""

    def __init__(
        self,
        settings: AppSettings,
        submissions: SubmissionLookup,
        codec: StatusCodec | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.submissions = submissions
        self.codec = codec
        self.logger = logger or LOGGER

    def build(self, assignment: Assignment, participants: Sequence[Participant], output_dir: Path) -> ExportResult:
        run_id = f"export-{uuid4().hex[:12]}"
        log = bind_run(self.logger, run_id)
        layout = layout_for(assignment)
        if not participants:
            raise ExportError("No participants selected for export.")
        mismatched = [participant.participant_id for participant in participants if not layout.accepts(participant)]
        if mismatched:
            raise ExportError(
                f"Participants {mismatched} do not match the {assignment.kind} assignment {assignment.assignment_id}."
            )

        log.info(
            "export.start assignment_id=%s kind=%s participants=%s",
            assignment.assignment_id,
            assignment.kind,
            len(participants),
        )
        archive_cfg = self.settings.archive
        builder = ManifestBuilder(archive_cfg.digest_algorithms)
        warnings: list[str] = []
        generated_at = now_utc()
        download_name = layout.download_name(assignment, len(participants))

        output_dir.mkdir(parents=True, exist_ok=True)
        archive_path = output_dir / download_name
        temp_path = atomic_temp_path(archive_path)
        file_count = 0
        status_files: list[str] = []
        try:
            with zipfile.ZipFile(temp_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for participant in participants:
                    plan = layout.plan(assignment, participant)
                    file_count += self._write_participant(archive, assignment, plan, builder, warnings, generated_at, log)

                status_files = self._write_status_files(archive, assignment, participants, builder, warnings, log)
                if not status_files and file_count == 0:
                    raise ExportError("Export produced neither status files nor submission files.")

                manifest = builder.build()
                archive.writestr(archive_cfg.manifest_name, manifest.to_json())
                archive.writestr(
                    archive_cfg.readme_name,
                    render_readme(
                        assignment,
                        layout,
                        participants,
                        archive_cfg,
                        self.settings.classification,
                        generated_at,
                    ),
                )
            os.replace(temp_path, archive_path)
        finally:
            if temp_path.exists():
                temp_path.unlink()

        log.info(
            "export.done archive=%s files=%s status_files=%s warnings=%s",
            archive_path,
            file_count,
            ",".join(status_files) or "-",
            len(warnings),
        )
        return ExportResult(
            run_id=run_id,
            archive_path=archive_path,
            manifest=manifest,
            download_name=download_name,
            participant_count=len(participants),
            file_count=file_count,
            status_files=tuple(status_files),
            warnings=tuple(warnings),
        )

    def _write_participant(
        self,
        archive: zipfile.ZipFile,
        assignment: Assignment,
        plan: ParticipantPlan,
        builder: ManifestBuilder,
        warnings: list[str],
        generated_at: datetime,
        log: logging.LoggerAdapter,
    ) -> int:
        pattern = self.settings.classification.timestamp_prefix_pattern
        files = collect_files(self.submissions, assignment.assignment_id, plan.source_user_ids, pattern)

        payloads: list[tuple[str, bytes]] = []
        for name, item in files:
            try:
                payloads.append((name, item.read_bytes()))
            except OSError as exc:
                message = f"Skipped unreadable submission {item.name!r} of participant {plan.participant.participant_id}: {exc}"
                warnings.append(message)
                log.warning(
                    "export.file_unreadable participant_id=%s storage_path=%s error=%s",
                    plan.participant.participant_id,
                    item.storage_path,
                    exc,
                )

        if isinstance(plan.participant, Team):
            archive.writestr(f"{plan.root_folder}/", b"")
            team_info = render_team_info(plan.participant, generated_at)
            archive.writestr(f"{plan.root_folder}/{self.settings.archive.team_info_name}", team_info)

        written = 0
        for folder in plan.member_folders:
            archive.writestr(f"{folder.path}/", b"")
            for name, data in payloads:
                member_path = str(PurePosixPath(folder.path) / name)
                archive.writestr(member_path, data)
                builder.add(member_path, data, "submission")
                written += 1
        if not payloads:
            log.info("export.participant_empty participant_id=%s folder=%s", plan.participant.participant_id, plan.root_folder)
        return written

    def _write_status_files(
        self,
        archive: zipfile.ZipFile,
        assignment: Assignment,
        participants: Sequence[Participant],
        builder: ManifestBuilder,
        warnings: list[str],
        log: logging.LoggerAdapter,
    ) -> list[str]:
        if self.codec is None:
            warnings.append("No status codec configured; status files were not generated.")
            log.warning("export.status_skipped reason=no_codec")
            return []

        written: list[str] = []
        for name in self.settings.archive.status_names:
            status_format = PurePosixPath(name).suffix.lstrip(".").lower()
            try:
                data = self.codec.render(assignment, participants, status_format)
            except Exception as exc:
                warnings.append(f"Status file {name} could not be generated: {exc}")
                log.warning("export.status_render_failed file=%s error=%s", name, exc)
                continue
            if not data:
                warnings.append(f"Status file {name} is empty and was not added.")
                log.warning("export.status_render_empty file=%s", name)
                continue
            archive.writestr(name, data)
            builder.add(name, data, "status_file")
            written.append(name)
        return written
