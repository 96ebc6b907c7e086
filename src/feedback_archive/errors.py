"""Exception taxonomy shared by the export and import pipelines.

Severity follows the scope of the failure:

* `ArchiveValidationError` aborts a whole import before anything is mutated.
* `ArchiveSecurityError` concerns one archive entry; the entry is dropped.
* `ProcessingError` concerns one row, file, or notification; the run continues.
"""

from __future__ import annotations


class FeedbackArchiveError(Exception):
    """Base class for all package errors."""


class ArchiveValidationError(FeedbackArchiveError):
    """Uploaded archive is unreadable, empty, oversized, or structurally wrong."""


class ArchiveSecurityError(FeedbackArchiveError):
    """An archive entry name is unsafe (traversal, absolute path, NUL byte)."""

    def __init__(self, entry_name: str, reason: str) -> None:
        super().__init__(f"{reason}: {entry_name!r}")
        self.entry_name = entry_name
        self.reason = reason


class ProcessingError(FeedbackArchiveError):
    """A localized failure collected into the outcome instead of aborting the run."""

    def __init__(self, message: str, *, participant_id: int | None = None, filename: str | None = None) -> None:
        super().__init__(message)
        self.participant_id = participant_id
        self.filename = filename


class StatusFileStructureError(FeedbackArchiveError):
    """Raised by a status codec when a status file is structurally invalid."""


class ManifestFormatError(FeedbackArchiveError):
    """`checksums.json` could not be decoded into a manifest."""


class ExportError(FeedbackArchiveError):
    """Export produced nothing usable or was requested for invalid participants."""


class ConflictWarning(UserWarning):
    """Both status files were edited; the primary format wins."""
