"""HTTP-shaped download responses for the export archive."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable

from feedback_archive.collaborators import FeedbackServices
from feedback_archive.config import AppSettings
from feedback_archive.errors import ExportError, FeedbackArchiveError
from feedback_archive.export.exporter import ArchiveExporter, select_participants
from feedback_archive.utils.paths import scoped_work_dir

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DownloadResponse:
    """Status code, headers and body for the transport layer to send as-is."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return self.status_code == 200


def error_response(message: str, status_code: int = 400) -> DownloadResponse:
    payload = {"success": False, "error": True, "message": message}
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    return DownloadResponse(
        status_code=status_code,
        headers={"Content-Type": "application/json; charset=utf-8", "Content-Length": str(len(body))},
        body=body,
    )


def zip_response(data: bytes, download_name: str) -> DownloadResponse:
    return DownloadResponse(
        status_code=200,
        headers={
            "Content-Type": "application/zip",
            "Content-Disposition": f'attachment; filename="{download_name}"',
            "Content-Length": str(len(data)),
            "Cache-Control": "no-cache, must-revalidate",
        },
        body=data,
    )


def export_for_download(
    assignment_id: int,
    participant_ids: Iterable[int],
    *,
    services: FeedbackServices,
    settings: AppSettings,
    logger: logging.Logger | None = None,
) -> DownloadResponse:
    """Build an export archive in a scoped temp directory and return it as a download."""

    effective_logger = logger or LOGGER
    try:
        assignment = services.directory.get_assignment(assignment_id)
        if assignment is None:
            raise ExportError(f"Assignment {assignment_id} not found.")
        participants = select_participants(
            services.directory.list_participants(assignment),
            participant_ids,
            logger=effective_logger,
        )
        exporter = ArchiveExporter(settings, services.submissions, codec=services.codec, logger=effective_logger)
        with scoped_work_dir("feedback_export_", settings.paths.work_root) as work_dir:
            result = exporter.build(assignment, participants, work_dir)
            data = result.archive_path.read_bytes()
    except FeedbackArchiveError as exc:
        effective_logger.error("download.failed assignment_id=%s error=%s", assignment_id, exc)
        return error_response(str(exc))
    except OSError as exc:
        effective_logger.exception("download.io_failed assignment_id=%s", assignment_id)
        return error_response(f"Export failed: {exc}")

    effective_logger.info(
        "download.ready assignment_id=%s name=%s bytes=%s",
        assignment_id,
        result.download_name,
        len(data),
    )
    return zip_response(data, result.download_name)
