"""
Main CLI entry point for softpaq-mirror.

This module provides the Click-based command-line interface. Every command
works on one repository root (--root, default: current directory).
"""

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from softpaq_mirror import __version__
from softpaq_mirror.core.activity import ActivityLog
from softpaq_mirror.core.config import ToolConfig, load_config
from softpaq_mirror.core.context import RepositoryContext
from softpaq_mirror.core.errors import SoftpaqMirrorError
from softpaq_mirror.core.output import OutputLevel, SyncOutputter
from softpaq_mirror.repository.manifest import (
    ManifestStore,
    ReportFormat,
    RepositoryManifest,
    Settings,
    initialize_repository,
    load_manifest,
)
from softpaq_mirror.repository.report import build_report, write_report
from softpaq_mirror.repository.retention import cleanup_repository
from softpaq_mirror.repository.sync import sync_repository
from softpaq_mirror.softpaq.filters import CATEGORIES, CHARACTERISTICS, RELEASE_TYPES
from softpaq_mirror.softpaq.models import WILDCARD, Filter

# Click context settings to enable -h as alias for --help
CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

SETTING_NAMES = [field.alias for field in Settings.model_fields.values()]
REPORT_FORMATS = [f.value for f in ReportFormat]


def _repo(ctx: click.Context) -> RepositoryContext:
    return ctx.obj["repo"]


def _fail(ctx: click.Context, message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    ctx.exit(1)


def _load_manifest(ctx: click.Context) -> RepositoryManifest:
    try:
        return load_manifest(_repo(ctx)).unwrap()
    except SoftpaqMirrorError as e:
        _fail(ctx, str(e))


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (default: /etc/softpaq-mirror/config.yaml, or $SOFTPAQ_MIRROR_CONFIG)",
)
@click.option(
    "--root",
    "-r",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Repository root directory",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors")
@click.pass_context
def cli(ctx: click.Context, config: Optional[Path], root: Path, verbose: bool, quiet: bool) -> None:
    """softpaq-mirror - HP SoftPaq repository synchronization.

    Keeps a local directory in sync with the SoftPaqs selected by its
    per-platform filters.
    """
    ctx.ensure_object(dict)

    try:
        tool_config = load_config(config)
    except FileNotFoundError:
        if config:
            click.echo(f"Error: Configuration file not found: {config}", err=True)
            ctx.exit(1)
        tool_config = ToolConfig()
    except ValueError as e:
        # YAML syntax error or validation error
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    if verbose and quiet:
        click.echo("Error: --verbose and --quiet are mutually exclusive", err=True)
        ctx.exit(1)

    if verbose:
        console_level = logging.DEBUG
    elif quiet:
        console_level = logging.ERROR
    else:
        console_level = logging.WARNING

    # ActivityLog lowers the package logger to INFO; the console keeps its own level
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logging.basicConfig(level=console_level, handlers=[console_handler])

    ctx.obj["config"] = tool_config
    ctx.obj["repo"] = RepositoryContext.from_config(root.absolute(), tool_config)
    if verbose:
        ctx.obj["level"] = OutputLevel.VERBOSE
    elif quiet:
        ctx.obj["level"] = OutputLevel.QUIET
    else:
        ctx.obj["level"] = OutputLevel.NORMAL


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize a repository in the root directory."""
    repo = _repo(ctx)
    try:
        initialize_repository(repo)
    except FileExistsError as e:
        _fail(ctx, str(e))
    click.echo(f"✓ Repository initialized at {repo.root}")


@cli.command("add-filter")
@click.option("--platform", "-p", required=True, help="Platform id (4 hex digits, e.g. 8549)")
@click.option(
    "--os",
    "operating_system",
    default=WILDCARD,
    show_default=True,
    help='Operating system: "*", win10, win11, "win10:22H2", "win11:*"',
)
@click.option("--category", "-c", multiple=True, type=click.Choice(CATEGORIES, case_sensitive=False))
@click.option("--release-type", multiple=True, type=click.Choice(RELEASE_TYPES, case_sensitive=False))
@click.option("--characteristic", multiple=True, type=click.Choice(CHARACTERISTICS, case_sensitive=False))
@click.option("--prefer-ltsc/--no-prefer-ltsc", default=None, help="Prefer the LTSC catalog")
@click.pass_context
def add_filter(
    ctx: click.Context,
    platform: str,
    operating_system: str,
    category: tuple[str, ...],
    release_type: tuple[str, ...],
    characteristic: tuple[str, ...],
    prefer_ltsc: Optional[bool],
) -> None:
    """Add a filter to the repository.

    Options left out match everything. A bare win10/win11 is bound to the
    feature version of this machine.
    """
    store = ManifestStore(_repo(ctx))
    try:
        new_filter = Filter(
            platform=platform,
            operating_system=operating_system,
            category=list(category) or None,
            release_type=list(release_type) or None,
            characteristic=list(characteristic) or None,
            prefer_ltsc=prefer_ltsc,
        )
        added = store.add_filter(new_filter)
    except (SoftpaqMirrorError, ValueError) as e:
        _fail(ctx, str(e))

    if added:
        click.echo(f"✓ Filter added for platform {new_filter.platform}")
    else:
        click.echo(f"- Identical filter already exists for platform {new_filter.platform}")


@cli.command("remove-filter")
@click.option("--platform", "-p", required=True, help="Platform id")
@click.option("--os", "operating_system", default=None, help="Only filters with this operating system")
@click.option("--category", "-c", multiple=True, help="Only filters with exactly these categories")
@click.option("--release-type", multiple=True, help="Only filters with exactly these release types")
@click.option("--characteristic", multiple=True, help="Only filters with exactly these characteristics")
@click.option("--prefer-ltsc/--no-prefer-ltsc", default=None)
@click.pass_context
def remove_filter(
    ctx: click.Context,
    platform: str,
    operating_system: Optional[str],
    category: tuple[str, ...],
    release_type: tuple[str, ...],
    characteristic: tuple[str, ...],
    prefer_ltsc: Optional[bool],
) -> None:
    """Remove the filters of a platform.

    Without criteria, every filter of the platform is removed.
    """
    store = ManifestStore(_repo(ctx))
    try:
        removed = store.remove_filter(
            platform,
            operating_system=operating_system,
            category=list(category) or None,
            release_type=list(release_type) or None,
            characteristic=list(characteristic) or None,
            prefer_ltsc=prefer_ltsc,
        )
    except (SoftpaqMirrorError, ValueError) as e:
        _fail(ctx, str(e))

    if removed:
        click.echo(f"✓ Removed {removed} filter(s) for platform {platform}")
    else:
        click.echo(f"- No matching filter for platform {platform}")


def _display(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, list):
        return ", ".join(value)
    return str(value)


@cli.command()
@click.pass_context
def show(ctx: click.Context) -> None:
    """Show the repository's filters, settings and notifications."""
    repo = _repo(ctx)
    try:
        manifest = ManifestStore(repo).load()
    except SoftpaqMirrorError as e:
        _fail(ctx, str(e))

    console = Console()
    console.print(f"Repository: {repo.root}", style="bold")
    if manifest.date_created:
        console.print(f"Created: {manifest.date_created.isoformat()} by {manifest.created_by}")
    if manifest.date_last_modified:
        console.print(f"Modified: {manifest.date_last_modified.isoformat()} by {manifest.modified_by}")

    table = Table(title="Filters")
    for column in ("Platform", "OS", "Category", "Release Type", "Characteristic", "Prefer LTSC"):
        table.add_column(column)
    for f in manifest.filters:
        table.add_row(
            f.platform,
            f.operating_system,
            _display(f.category),
            _display(f.release_type),
            _display(f.characteristic),
            _display(f.prefer_ltsc),
        )
    console.print(table)

    settings = Table(title="Settings")
    settings.add_column("Name")
    settings.add_column("Value")
    for name, value in manifest.settings.model_dump(by_alias=True, mode="json").items():
        settings.add_row(name, str(value))
    console.print(settings)

    notifications = manifest.notifications
    if notifications and notifications.server:
        console.print(
            f"Notifications: {notifications.server}:{notifications.port} "
            f"(tls={notifications.tls}) -> {_display(notifications.addresses)}"
        )
    else:
        console.print("Notifications: not configured")


@cli.command("set")
@click.argument("name", type=click.Choice(SETTING_NAMES, case_sensitive=False))
@click.argument("value")
@click.pass_context
def set_setting(ctx: click.Context, name: str, value: str) -> None:
    """Change a repository setting.

    \b
    Examples:
        softpaq-mirror set OnRemoteFileNotFound LogAndContinue
        softpaq-mirror set RepositoryReport JSON
    """
    # Choice returns the canonical spelling
    try:
        ManifestStore(_repo(ctx)).set_setting(name, value)
    except (SoftpaqMirrorError, ValueError) as e:
        _fail(ctx, str(e))
    click.echo(f"✓ {name} = {value}")


@cli.command("set-notification")
@click.option("--server", help="SMTP server")
@click.option("--port", type=int, help="SMTP port")
@click.option("--tls/--no-tls", default=None, help="Use STARTTLS")
@click.option("--username", help="SMTP user name")
@click.option("--password", help="SMTP password (or set $SOFTPAQ_MIRROR_SMTP_PASSWORD)")
@click.option("--from", "from_address", help="Sender address")
@click.option("--from-name", help="Sender display name")
@click.option("--add-recipient", multiple=True, help="Add a recipient address")
@click.option("--remove-recipient", multiple=True, help="Remove a recipient address")
@click.option("--clear", is_flag=True, help="Remove the notification configuration")
@click.pass_context
def set_notification(
    ctx: click.Context,
    server: Optional[str],
    port: Optional[int],
    tls: Optional[bool],
    username: Optional[str],
    password: Optional[str],
    from_address: Optional[str],
    from_name: Optional[str],
    add_recipient: tuple[str, ...],
    remove_recipient: tuple[str, ...],
    clear: bool,
) -> None:
    """Configure failure notifications."""
    store = ManifestStore(_repo(ctx))
    try:
        if clear:
            store.clear_notification()
            click.echo("✓ Notifications removed")
            return

        fields = dict(
            server=server,
            port=port,
            tls=tls,
            username=username,
            password=password,
            from_address=from_address,
            from_name=from_name,
        )
        config = None
        if any(v is not None for v in fields.values()):
            config = store.set_notification(**fields)
        for address in add_recipient:
            config = store.add_recipient(address)
        for address in remove_recipient:
            config = store.remove_recipient(address)
    except (SoftpaqMirrorError, ValueError) as e:
        _fail(ctx, str(e))

    if config is None:
        click.echo("- Nothing to change")
        return
    click.echo(f"✓ Notifications: server={config.server}, recipients={len(config.addresses)}")


@cli.command()
@click.option("--reference-url", default=None, help="Reference catalog host (default from config)")
@click.option(
    "--offline-cache/--no-offline-cache",
    default=None,
    help="Override the repository's OfflineCacheMode",
)
@click.pass_context
def sync(ctx: click.Context, reference_url: Optional[str], offline_cache: Optional[bool]) -> None:
    """Synchronize the repository with HP's reference catalogs."""
    repo = _repo(ctx)
    manifest = _load_manifest(ctx)

    outputter = SyncOutputter(ctx.obj["level"])
    with ActivityLog(repo):
        report = sync_repository(
            manifest,
            repo,
            reference_url=reference_url,
            offline_cache_mode=offline_cache,
            outputter=outputter,
        )

    if not report.success:
        ctx.exit(1)
    if report.partial:
        outputter.warning(f"Sync completed with {len(report.errors)} error(s)")
    else:
        outputter.success("Sync completed")


@cli.command()
@click.pass_context
def cleanup(ctx: click.Context) -> None:
    """Delete SoftPaqs that are no longer selected by any filter."""
    repo = _repo(ctx)
    manifest = _load_manifest(ctx)

    with ActivityLog(repo):
        try:
            deleted = cleanup_repository(repo, manifest.settings.exclusive_lock_max_retries)
        except OSError as e:
            _fail(ctx, f"Cleanup failed: {e}")
    click.echo(f"✓ Removed {deleted} file(s)")


@cli.command()
@click.option(
    "--format",
    "report_format",
    type=click.Choice(REPORT_FORMATS, case_sensitive=False),
    default=None,
    help="Report format (default: the repository's RepositoryReport setting)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write to this file instead of .repository/Contents.<ext>",
)
@click.pass_context
def report(ctx: click.Context, report_format: Optional[str], output: Optional[Path]) -> None:
    """Write the repository contents report."""
    repo = _repo(ctx)
    manifest = _load_manifest(ctx)

    fmt = ReportFormat(report_format) if report_format else manifest.settings.repository_report
    try:
        if output:
            output.write_bytes(build_report(repo.root, fmt))
            path = output
        else:
            path = write_report(repo, fmt)
    except OSError as e:
        _fail(ctx, f"Could not write report: {e}")
    click.echo(f"✓ Report written to {path}")


if __name__ == "__main__":
    cli()
