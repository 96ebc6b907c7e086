"""Typer CLI entrypoint for feedback_archive."""

from __future__ import annotations

import importlib
import json
import logging
import zipfile
from pathlib import Path

import typer
import yaml

from feedback_archive.backends.local import CountingNotifier, LocalStore, LoggingNotifier
from feedback_archive.collaborators import FeedbackServices, StatusCodec
from feedback_archive.config import AppSettings, load_settings
from feedback_archive.errors import ExportError, ManifestFormatError
from feedback_archive.export.exporter import ArchiveExporter, select_participants
from feedback_archive.ingest.discover import find_archive_prefix
from feedback_archive.ingest.pipeline import run_import
from feedback_archive.logging_utils import PACKAGE_LOGGER_NAME, configure_logging
from feedback_archive.manifest import ChecksumManifest
from feedback_archive.utils.paths import ensure_directories

app = typer.Typer(
    add_completion=False,
    help="feedback_archive command line interface.",
    no_args_is_help=True,
)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    help="Optional settings YAML path.",
    exists=False,
    file_okay=True,
    dir_okay=False,
    readable=True,
)
CODEC_OPTION = typer.Option(
    None,
    "--codec",
    help="Status codec as module:attribute; classes are instantiated without arguments.",
)


def _load_and_optionally_configure_logger(
    config_file: Path | None,
    configure: bool,
) -> tuple[AppSettings, logging.Logger]:
    settings = load_settings(config_file=config_file)
    if configure:
        logger = configure_logging(settings.paths.logs_root / "feedback_archive.log")
    else:
        logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    return settings, logger


def _parse_int_csv(value: str, option_name: str) -> list[int]:
    items = [part.strip() for part in value.split(",") if part.strip() != ""]
    if not items:
        raise typer.BadParameter(f"{option_name} must contain at least one integer.")
    parsed: list[int] = []
    for item in items:
        try:
            parsed.append(int(item))
        except ValueError as exc:
            raise typer.BadParameter(f"{option_name} must be comma-separated integers.") from exc
    return parsed


def _load_codec(reference: str | None) -> StatusCodec | None:
    if reference is None:
        return None
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise typer.BadParameter("codec must look like package.module:attribute")
    try:
        target = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as exc:
        raise typer.BadParameter(f"codec {reference!r} could not be loaded: {exc}") from exc
    codec = target() if isinstance(target, type) else target
    if not isinstance(codec, StatusCodec):
        raise typer.BadParameter(f"codec {reference!r} does not provide render() and parse().")
    return codec


def _local_services(
    settings: AppSettings,
    codec: StatusCodec | None,
    logger: logging.Logger,
) -> tuple[FeedbackServices, CountingNotifier]:
    store = LocalStore(settings.paths.store_root, logger=logger)
    notifier = CountingNotifier(LoggingNotifier(logger=logger))
    services = FeedbackServices(
        directory=store,
        submissions=store,
        artifacts=store,
        grading=store,
        notifier=notifier,
        codec=codec,
    )
    return services, notifier


@app.command("show-config")
def show_config(config_file: Path | None = CONFIG_FILE_OPTION) -> None:
    """Print the effective configuration after env overrides."""

    settings, _ = _load_and_optionally_configure_logger(config_file, configure=False)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("init-store")
def init_store(config_file: Path | None = CONFIG_FILE_OPTION) -> None:
    """Create the local store, export and log folders."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    created = ensure_directories([settings.paths.export_root, settings.paths.logs_root])
    created.extend(LocalStore(settings.paths.store_root, logger=logger).initialize())
    logger.info("init_store.created_dirs count=%s", len(created))
    for directory in created:
        typer.echo(f"ready: {directory}")


@app.command("export")
def export_cmd(
    assignment_id: int = typer.Option(..., "--assignment-id", help="Assignment to export."),
    participants: str | None = typer.Option(
        None,
        "--participants",
        help="Comma-separated user or team ids; defaults to every participant.",
    ),
    output_dir: Path | None = typer.Option(None, "--output-dir", help="Defaults to paths.export_root."),
    codec: str | None = CODEC_OPTION,
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Build a multi-feedback archive from the local store."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    services, _ = _local_services(settings, _load_codec(codec), logger)
    assignment = services.directory.get_assignment(assignment_id)
    if assignment is None:
        raise typer.BadParameter(f"assignment {assignment_id} not found in {settings.paths.store_root}")

    available = services.directory.list_participants(assignment)
    requested = (
        _parse_int_csv(participants, "participants")
        if participants is not None
        else [item.participant_id for item in available]
    )
    try:
        selected = select_participants(available, requested, logger=logger)
        result = ArchiveExporter(settings, services.submissions, codec=services.codec, logger=logger).build(
            assignment,
            selected,
            output_dir or settings.paths.export_root,
        )
    except ExportError as exc:
        typer.echo(f"export failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"run_id: {result.run_id}")
    typer.echo(f"archive_path: {result.archive_path}")
    typer.echo(f"participants: {result.participant_count}")
    typer.echo(f"files: {result.file_count}")
    typer.echo(f"status_files: {','.join(result.status_files) or '-'}")
    for message in result.warnings:
        typer.echo(f"warning: {message}")


@app.command("import")
def import_cmd(
    archive: Path = typer.Argument(..., exists=True, file_okay=True, dir_okay=False, readable=True),
    assignment_id: int = typer.Option(..., "--assignment-id", help="Assignment the archive belongs to."),
    actor_id: int = typer.Option(0, "--actor-id", help="User id recorded as the grader."),
    codec: str | None = CODEC_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the full outcome payload as JSON."),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Apply an edited feedback archive to the local store."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=True)
    services, _ = _local_services(settings, _load_codec(codec), logger)
    outcome = run_import(
        archive,
        assignment_id=assignment_id,
        actor_id=actor_id,
        services=services,
        settings=settings,
        logger=logger,
    )

    if as_json:
        typer.echo(json.dumps(outcome.to_payload(), indent=2, sort_keys=True))
    else:
        typer.echo(f"run_id: {outcome.run_id}")
        typer.echo(f"success: {outcome.success}")
        typer.echo(f"message: {outcome.message}")
        typer.echo(f"status_file: {outcome.status_file or '-'}")
        typer.echo(f"status_rows_applied: {outcome.status_rows_applied}")
        typer.echo(f"files_attached: {outcome.attached_count}")
        typer.echo(f"renamed: {len(outcome.renamed)}")
        typer.echo(f"notifications_sent: {len(outcome.notified)}")
        for message in outcome.warnings:
            typer.echo(f"warning: {message}")
        for error in outcome.errors:
            typer.echo(f"error: {error}")
    if not outcome.success:
        raise typer.Exit(code=1)


@app.command("inspect-manifest")
def inspect_manifest(
    archive: Path = typer.Argument(..., exists=True, file_okay=True, dir_okay=False, readable=True),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Print the checksum records embedded in an export archive."""

    settings, logger = _load_and_optionally_configure_logger(config_file, configure=False)
    manifest_name = settings.archive.manifest_name
    try:
        with zipfile.ZipFile(archive) as handle:
            names = handle.namelist()
            prefix = find_archive_prefix(names, settings.archive.system_names)
            payload = handle.read(f"{prefix}{manifest_name}")
    except (zipfile.BadZipFile, KeyError) as exc:
        typer.echo(f"{manifest_name} not found in {archive}: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    try:
        manifest = ChecksumManifest.from_json(payload, logger=logger)
    except ManifestFormatError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"records: {len(manifest)}")
    for path in sorted(manifest):
        record = manifest[path]
        typer.echo(f"{record.kind}\t{record.size}\t{record.strongest_algorithm}\t{path}")


def main() -> None:
    """CLI script entrypoint."""

    app()


if __name__ == "__main__":
    main()
