"""Aggregated result of one import run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from feedback_archive.errors import ProcessingError
from feedback_archive.models import RenamedFile

ErrorKind = Literal["validation", "processing"]


@dataclass(slots=True)
class ImportOutcome:
    """Everything an import run did, skipped, renamed or failed, in one place."""

    run_id: str
    success: bool = True
    status_rows_applied: int = 0
    status_file: str | None = None
    attached: dict[int, list[str]] = field(default_factory=dict)
    renamed: list[RenamedFile] = field(default_factory=list)
    notified: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[ProcessingError] = field(default_factory=list)
    rejected_entries: list[str] = field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def add_error(self, error: ProcessingError) -> None:
        self.errors.append(error)

    def record_attachment(self, user_id: int, filename: str) -> None:
        self.attached.setdefault(user_id, []).append(filename)

    def fail(self, message: str, kind: ErrorKind) -> "ImportOutcome":
        self.success = False
        self.error = message
        self.error_kind = kind
        return self

    @property
    def attached_count(self) -> int:
        return sum(len(names) for names in self.attached.values())

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error
        parts = [f"{self.status_rows_applied} status row(s) applied", f"{self.attached_count} file(s) attached"]
        if self.renamed:
            parts.append(f"{len(self.renamed)} modified submission(s) renamed")
        if self.errors:
            parts.append(f"{len(self.errors)} error(s)")
        return ", ".join(parts) + "."

    def to_payload(self) -> dict[str, Any]:
        """JSON response shape returned to the uploading client."""

        return {
            "success": self.success,
            "error": not self.success,
            "error_kind": self.error_kind,
            "message": self.message,
            "run_id": self.run_id,
            "status_file": self.status_file,
            "status_rows_applied": self.status_rows_applied,
            "attached": {str(user_id): list(names) for user_id, names in sorted(self.attached.items())},
            "renamed": [
                {
                    "participant_id": item.participant_id,
                    "archive_path": item.archive_path,
                    "original_name": item.original_name,
                    "new_name": item.new_name,
                }
                for item in self.renamed
            ],
            "notified": sorted(self.notified),
            "warnings": list(self.warnings),
            "errors": [
                {"message": str(error), "participant_id": error.participant_id, "filename": error.filename}
                for error in self.errors
            ],
            "rejected_entries": list(self.rejected_entries),
        }
