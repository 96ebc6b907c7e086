"""Export archive construction and download helpers."""

from feedback_archive.export.download import DownloadResponse, error_response, export_for_download, zip_response
from feedback_archive.export.exporter import ArchiveExporter, ExportResult, collect_files, select_participants
from feedback_archive.export.layout import (
    ExportLayout,
    IndividualLayout,
    MemberFolder,
    ParticipantPlan,
    TeamLayout,
    layout_for,
    team_folder_name,
    user_folder_name,
)

__all__ = [
    "DownloadResponse",
    "error_response",
    "export_for_download",
    "zip_response",
    "ArchiveExporter",
    "ExportResult",
    "collect_files",
    "select_participants",
    "ExportLayout",
    "IndividualLayout",
    "MemberFolder",
    "ParticipantPlan",
    "TeamLayout",
    "layout_for",
    "team_folder_name",
    "user_folder_name",
]
