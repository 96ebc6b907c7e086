"""Plain-text documents bundled with an export archive."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from feedback_archive.config import ArchiveConfig, ClassificationConfig
from feedback_archive.export.layout import ExportLayout
from feedback_archive.models import Assignment, Participant, Team

_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _structure_block(layout: ExportLayout, archive: ArchiveConfig) -> list[str]:
    lines = [
        "```",
        f"{archive.status_primary_name:<28}# status sheet (preferred)",
        f"{archive.status_secondary_name:<28}# same data as plain text",
        f"{archive.manifest_name:<28}# checksums of everything exported",
        f"{archive.readme_name:<28}# this file",
        f"{layout.base_prefix}[Assignment]_[ID]/",
    ]
    if layout.kind == "team":
        lines.append("  Team_[ID]/                # one folder per team, plus team_info.txt")
        lines.append("    [Last_First_Login_ID]/  # one folder per member, full team file set")
    else:
        lines.append("  [Last_First_Login_ID]/    # one folder per user")
    lines.append("```")
    return lines


def render_readme(
    assignment: Assignment,
    layout: ExportLayout,
    participants: Sequence[Participant],
    archive: ArchiveConfig,
    classification: ClassificationConfig,
    generated_at: datetime,
) -> str:
    """Describe the archive layout, the grading workflow, and the selected participants."""

    count_label = "Teams" if layout.kind == "team" else "Users"
    lines = [
        f"# Multi-Feedback - {assignment.title}",
        "",
        "## Information",
        "",
        f"- **Assignment:** {assignment.title} (ID {assignment.assignment_id})",
        f"- **{count_label}:** {len(participants)} selected",
        f"- **Generated:** {generated_at.strftime(_TIMESTAMP_FORMAT)}",
        "",
        "## Structure",
        "",
        *_structure_block(layout, archive),
        "",
        "## Workflow",
        "",
        f"1. **Edit status:** open `{archive.status_primary_name}` or `{archive.status_secondary_name}` "
        "and set `update` to `1` on every row that should be applied. Edit only one of the two files; "
        f"if both change, `{archive.status_primary_name}` wins.",
        "2. **Add feedback:** place feedback files in the matching participant folder. "
        "Do NOT rename or move folders; the trailing number identifies the participant.",
        "3. **Re-upload:** zip the complete folder again and upload it.",
        "",
        "## Modified submissions",
        "",
        "Submissions that are uploaded unchanged are ignored. A submission you edited (for example "
        "with annotations) is detected via the checksums and stored as "
        f"`<name>_{classification.modification_marker}<ext>` next to the original.",
        "",
        f"Keep `{archive.manifest_name}` in the archive. Without it every file is treated as new feedback.",
        "",
        f"## {layout.overview_title}",
        "",
        layout.overview(participants),
    ]
    return "\n".join(lines).rstrip() + "\n"


def render_team_info(team: Team, generated_at: datetime) -> str:
    lines = [
        "TEAM INFORMATION",
        "================",
        "",
        f"Team ID: {team.team_id}",
        f"Members: {len(team.members)}",
        f"Status: {team.status}",
    ]
    if team.mark:
        lines.append(f"Grade: {team.mark}")
    lines.append("")
    lines.append("Members:")
    lines.extend(f"- {member.display_name} ({member.login})" for member in team.members)
    lines.append("")
    lines.append(f"Generated: {generated_at.strftime(_TIMESTAMP_FORMAT)}")
    return "\n".join(lines) + "\n"
