"""Feedback archive export and re-import for graded assignments."""

__version__ = "0.1.0"
