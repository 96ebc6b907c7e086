"""Import side: safe extraction, discovery, classification and fan-out."""

from feedback_archive.ingest.classify import ChangeClassifier, classification_counts
from feedback_archive.ingest.discover import (
    ArchiveLayout,
    DiscoveredFile,
    ParticipantFolder,
    discover_participant_folders,
    find_archive_prefix,
    validate_structure,
)
from feedback_archive.ingest.extract import ArchiveImporter, ExtractionResult, read_archive_source, sanitize_entry_name
from feedback_archive.ingest.fanout import ParticipantFanoutResolver, attachable_files
from feedback_archive.ingest.outcome import ImportOutcome
from feedback_archive.ingest.pipeline import apply_status_rows, run_import
from feedback_archive.ingest.status_select import StatusSelection, select_status_file

__all__ = [
    "ChangeClassifier",
    "classification_counts",
    "ArchiveLayout",
    "DiscoveredFile",
    "ParticipantFolder",
    "discover_participant_folders",
    "find_archive_prefix",
    "validate_structure",
    "ArchiveImporter",
    "ExtractionResult",
    "read_archive_source",
    "sanitize_entry_name",
    "ParticipantFanoutResolver",
    "attachable_files",
    "ImportOutcome",
    "apply_status_rows",
    "run_import",
    "StatusSelection",
    "select_status_file",
]
