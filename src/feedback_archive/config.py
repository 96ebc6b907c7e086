"""Configuration models and loading logic."""

from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar, Literal

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_SETTINGS_FILE = Path("configs/settings.yaml")
SETTINGS_FILE_ENV = "FEEDBACK_ARCHIVE_SETTINGS_FILE"


class ProjectConfig(BaseModel):
    """Project metadata settings."""

    name: str = "feedback_archive"
    env: str = "dev"


class PathsConfig(BaseModel):
    """Filesystem locations used by export and import runs."""

    work_root: Path | None = None
    export_root: Path = Path("./exports")
    store_root: Path = Path("./store")
    logs_root: Path = Path("./logs")

    def resolved(self, project_root: Path) -> "PathsConfig":
        """Return a copy with project-relative paths resolved to absolute paths."""

        updates: dict[str, Path | None] = {}
        for field_name in type(self).model_fields:
            value = getattr(self, field_name)
            if value is None:
                updates[field_name] = None
                continue
            updates[field_name] = value if value.is_absolute() else (project_root / value).resolve()
        return self.model_copy(update=updates)


class ArchiveConfig(BaseModel):
    """Archive layout names and import size guards."""

    status_primary_name: str = "status.xlsx"
    status_secondary_name: str = "status.csv"
    manifest_name: str = "checksums.json"
    readme_name: str = "README.md"
    team_info_name: str = "team_info.txt"
    digest_algorithms: list[Literal["sha256", "sha1", "md5"]] = Field(
        default_factory=lambda: ["sha256", "md5"],
        min_length=1,
    )
    max_entries: int = Field(default=10_000, ge=1)
    max_total_uncompressed_mb: int = Field(default=1024, ge=1)

    @property
    def status_names(self) -> tuple[str, str]:
        return (self.status_primary_name, self.status_secondary_name)

    @property
    def system_names(self) -> frozenset[str]:
        """Reserved filenames recognized at the archive root."""

        return frozenset(
            {
                self.status_primary_name,
                self.status_secondary_name,
                self.manifest_name,
                self.readme_name,
            }
        )


class ClassificationConfig(BaseModel):
    """Change-classification behavior for re-imported files."""

    modification_marker: str = Field(default="korrigiert", min_length=1)
    unverified_match_policy: Literal["unchanged", "new_feedback"] = "unchanged"
    timestamp_prefix_pattern: str = r"^\d{14}_"
    skip_hidden_files: bool = True


class NotificationsConfig(BaseModel):
    """Feedback notification switches."""

    enabled: bool = True
    debug_mode: bool = False


class AppSettings(BaseSettings):
    """Top-level application settings."""

    _yaml_file_override: ClassVar[Path | None] = None

    project: ProjectConfig = Field(default_factory=ProjectConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)

    model_config = SettingsConfigDict(
        env_prefix="FEEDBACK_ARCHIVE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use YAML defaults while allowing env vars to override values."""

        yaml_file = resolve_settings_file(cls._yaml_file_override)
        yaml_settings = YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def as_dict(self) -> dict[str, object]:
        """Return settings as a standard nested dictionary."""

        return self.model_dump(mode="json")


def find_project_root(start: Path | None = None, marker: Path = DEFAULT_SETTINGS_FILE) -> Path:
    """Walk upward from `start` (default: cwd) to the first directory holding `marker`."""

    current = (start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        if (candidate / marker).is_file():
            return candidate
    return current


def resolve_settings_file(override: Path | None = None) -> Path:
    """Pick the explicit override, then `FEEDBACK_ARCHIVE_SETTINGS_FILE`, then the default.

    A relative path is looked up from the nearest ancestor directory that contains it.
    """

    env_value = os.getenv(SETTINGS_FILE_ENV)
    chosen = override or (Path(env_value) if env_value else DEFAULT_SETTINGS_FILE)
    if chosen.is_absolute():
        return chosen
    return (find_project_root(marker=chosen) / chosen).resolve()


def load_settings(config_file: Path | None = None) -> AppSettings:
    """Load settings with YAML defaults and environment variable overrides."""

    settings_file = resolve_settings_file(config_file)
    project_root = settings_file.parent.parent.resolve()
    AppSettings._yaml_file_override = settings_file
    try:
        settings = AppSettings()
    finally:
        AppSettings._yaml_file_override = None
    resolved_paths = settings.paths.resolved(project_root=project_root)
    return settings.model_copy(update={"paths": resolved_paths})
