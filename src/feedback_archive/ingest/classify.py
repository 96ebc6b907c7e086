"""Classify re-imported files as new feedback, unchanged or modified submissions."""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import PurePosixPath
from typing import Sequence

from feedback_archive.config import AppSettings
from feedback_archive.manifest import COMPARABLE_ALGORITHMS, ChecksumManifest, ManifestRecord, digest_file
from feedback_archive.models import FILE_CLASS_VALUES, ArchiveEntry, ClassifiedFile, FileClass, SubmissionFile
from feedback_archive.naming import marked_filename, match_keys, strip_timestamp_prefix

LOGGER = logging.getLogger(__name__)


def classification_counts(classified: Sequence[ClassifiedFile]) -> dict[str, int]:
    """Return new/unchanged/modified counts for a classified batch."""

    counts = {value: 0 for value in FILE_CLASS_VALUES}
    counts.update(Counter(item.classification for item in classified))
    return counts


class ChangeClassifier:
    """Compares candidate files against the export-time manifest of one archive."""

    def __init__(
        self,
        manifest: ChecksumManifest | None,
        settings: AppSettings,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.manifest = manifest
        self.config = settings.classification
        self.logger = logger or LOGGER

    @property
    def degraded(self) -> bool:
        """True when no manifest is available and every candidate counts as new feedback."""

        return self.manifest is None

    @staticmethod
    def _record_for(manifest: ChecksumManifest, entry: ArchiveEntry, folder_root: str) -> ManifestRecord | None:
        exact = manifest.get(entry.archive_path)
        if exact is not None and exact.kind == "submission":
            return exact
        prefix = folder_root.rstrip("/") + "/"
        for path in sorted(manifest):
            record = manifest[path]
            if record.kind == "submission" and path.startswith(prefix) and PurePosixPath(path).name == entry.name:
                return record
        return None

    def _decide(self, entry: ArchiveEntry, digests: dict[str, str], matched: bool, folder_root: str) -> FileClass:
        manifest = self.manifest
        if manifest is None:
            return "new_feedback"

        if not matched:
            exact = manifest.get(entry.archive_path)
            if exact is None or exact.kind != "submission":
                return "new_feedback"
            verdict = exact.compare(digests)
            if verdict is None:
                return "new_feedback"
            return "unchanged_submission" if verdict else "modified_submission"

        record = self._record_for(manifest, entry, folder_root)
        verdict = record.compare(digests) if record is not None else None
        if verdict is None:
            self.logger.info(
                "classify.unverified_match path=%s policy=%s",
                entry.archive_path,
                self.config.unverified_match_policy,
            )
            if self.config.unverified_match_policy == "new_feedback":
                return "new_feedback"
            return "unchanged_submission"
        return "unchanged_submission" if verdict else "modified_submission"

    def classify(
        self,
        files: Sequence[ArchiveEntry],
        known_submissions: Sequence[SubmissionFile],
        folder_root: str,
    ) -> list[ClassifiedFile]:
        """Classify one participant folder's candidates; modified files are renamed on disk."""

        pattern = self.config.timestamp_prefix_pattern
        known_keys: set[str] = set()
        for submission in known_submissions:
            known_keys.update(match_keys(submission.name, pattern))

        taken_by_dir: dict[str, set[str]] = {}
        for entry in files:
            taken_by_dir.setdefault(str(entry.local_path.parent), set()).add(entry.name)

        results: list[ClassifiedFile] = []
        for entry in sorted(files, key=lambda item: item.archive_path):
            name = entry.name
            digests = digest_file(entry.local_path, COMPARABLE_ALGORITHMS)
            candidate_keys = {name, strip_timestamp_prefix(name, pattern)}
            matched = bool(candidate_keys & known_keys)
            classification = self._decide(entry, digests, matched, folder_root)

            filename = name
            local_path = entry.local_path
            if classification == "modified_submission":
                taken = taken_by_dir.setdefault(str(local_path.parent), set())
                taken.update(child.name for child in local_path.parent.iterdir())
                filename = marked_filename(name, self.config.modification_marker, taken)
                renamed_path = local_path.with_name(filename)
                local_path.rename(renamed_path)
                taken.add(filename)
                local_path = renamed_path
                self.logger.info("classify.modified_renamed path=%s new_name=%s", entry.archive_path, filename)

            self.logger.debug("classify.result path=%s classification=%s", entry.archive_path, classification)
            results.append(
                ClassifiedFile(
                    entry=entry,
                    classification=classification,
                    filename=filename,
                    original_filename=name,
                    local_path=local_path,
                    sha256=digests["sha256"],
                )
            )

        self.logger.info(
            "classify.folder_done folder=%s degraded=%s counts=%s",
            folder_root,
            self.degraded,
            classification_counts(results),
        )
        return results
