"""Collaborator implementations shipped with the package."""

from feedback_archive.backends.local import CountingNotifier, LocalStore, LoggingNotifier, normalize_status

__all__ = ["CountingNotifier", "LocalStore", "LoggingNotifier", "normalize_status"]
