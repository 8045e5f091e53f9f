"""CLI interface for pys3sync."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import S3Client
from .cli_progress import run_sync_with_progress
from .config import S3SyncSettings, config
from .exceptions import S3SyncConfigError, S3SyncError
from .output import OutputFormatter
from .sync import RunResult, RunStatus, SyncEngine, SyncScheduler, SyncStateManager

logger = logging.getLogger(__name__)


@click.group()
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pys3sync")
@click.pass_context
def main(ctx: Any, quiet: bool, json: bool, verbose: bool) -> None:
    """pys3sync - Two-way sync between a local folder and an S3 bucket."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pys3sync").setLevel(logging.DEBUG)
    else:
        # Set default logging level to WARNING to suppress debug/info messages
        logging.basicConfig(level=logging.WARNING)


def _load_settings(ctx: Any, out: OutputFormatter) -> S3SyncSettings:
    """Load settings or exit with an error if they are incomplete."""
    try:
        settings = config.get_settings()
    except S3SyncConfigError as e:
        out.error(str(e))
        ctx.exit(1)
    if not settings.is_complete():
        out.error("S3 connection not configured.")
        out.info(
            "Run 'pys3sync init' or set S3SYNC_BUCKET, S3SYNC_ACCESS_KEY_ID "
            "and S3SYNC_SECRET_ACCESS_KEY"
        )
        ctx.exit(1)
    return settings


def _build_engine(
    ctx: Any,
    out: OutputFormatter,
    local_path: Path,
    prune_empty_dirs: bool = True,
) -> SyncEngine:
    settings = _load_settings(ctx, out)
    engine_out = OutputFormatter(json_output=out.json_output, quiet=out.quiet)
    try:
        return SyncEngine.from_settings(
            settings,
            local_path,
            state_dir=config.get_state_dir(),
            output=engine_out,
            prune_empty_dirs=prune_empty_dirs,
        )
    except S3SyncError as e:
        out.error(str(e))
        ctx.exit(1)
        raise  # Unreachable, but helps type checker


def _report_result(ctx: Any, out: OutputFormatter, result: RunResult) -> None:
    """Print a run result and exit non-zero unless it succeeded."""
    if out.json_output:
        out.output_json(result.to_dict())

    if result.status == RunStatus.ALREADY_RUNNING:
        out.error("Another sync is already running")
        ctx.exit(1)
    if result.status == RunStatus.FAILED:
        if result.error is not None and result.error.path and not out.json_output:
            out.info(f"Failed path: {result.error.path}")
        ctx.exit(1)

    conflicts = result.stats.get("conflicts", 0)
    if conflicts > 0 and not out.quiet:
        out.warning(
            f"\n⚠  {conflicts} conflict(s): both versions were kept, the remote "
            "one under a '(conflict ...)' name."
        )


@main.command()
@click.option("--endpoint", prompt="S3 endpoint URL (empty for AWS)", default="")
@click.option("--region", prompt="Region", default="us-east-1")
@click.option("--bucket", prompt="Bucket name", help="Bucket to sync with")
@click.option("--access-key-id", prompt="Access key ID")
@click.option("--secret-access-key", prompt="Secret access key", hide_input=True)
@click.option("--prefix", prompt="Remote prefix (empty for bucket root)", default="")
@click.option(
    "--interval",
    type=click.IntRange(min=1),
    default=15,
    help="Minutes between automatic syncs (default: 15)",
)
@click.option(
    "--auto-sync/--no-auto-sync",
    default=False,
    help="Enable automatic sync in the saved settings",
)
@click.pass_context
def init(
    ctx: Any,
    endpoint: str,
    region: str,
    bucket: str,
    access_key_id: str,
    secret_access_key: str,
    prefix: str,
    interval: int,
    auto_sync: bool,
) -> None:
    """Initialize the S3 connection settings.

    Stores the settings in ~/.config/pys3sync/config.json for future use.
    """
    out: OutputFormatter = ctx.obj["out"]

    settings = S3SyncSettings(
        endpoint=endpoint.strip(),
        region=region.strip(),
        bucket_name=bucket.strip(),
        access_key_id=access_key_id.strip(),
        secret_access_key=secret_access_key.strip(),
        remote_prefix=prefix.strip(),
        sync_interval_minutes=interval,
        enable_automatic_sync=auto_sync,
    )

    out.info("Checking connection...")
    try:
        S3Client(settings).check_connection()
        out.success("✓ Bucket is reachable")
    except S3SyncError as e:
        out.error(f"Connection check failed: {e}")
        if not click.confirm("Save settings anyway?", default=False):
            out.warning("Configuration cancelled.")
            ctx.exit(1)

    try:
        config_path = config.save_settings(settings)
    except OSError as e:
        out.error(f"Initialization failed: {e}")
        ctx.exit(1)

    out.print_summary(
        "Initialization Complete",
        [
            ("Status", "✓ Configuration saved successfully"),
            ("Config file", str(config_path)),
            ("Remote", f"{settings.bucket_name}/{settings.remote_prefix}"),
        ],
    )


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Show the configuration and check the connection to the bucket."""
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)

    connected = False
    error: Optional[str] = None
    try:
        connected = S3Client(settings).check_connection()
    except S3SyncError as e:
        error = str(e)

    if out.json_output:
        out.output_json(
            {"settings": settings.masked(), "connected": connected, "error": error}
        )
    else:
        masked = settings.masked()
        out.print_summary(
            "Configuration",
            [
                ("Endpoint", masked["endpoint"] or "(AWS default)"),
                ("Region", masked["region"] or "-"),
                ("Bucket", masked["bucket_name"]),
                ("Prefix", masked["remote_prefix"] or "(bucket root)"),
                ("Access key ID", masked["access_key_id"]),
                ("Secret access key", masked["secret_access_key"]),
                ("Sync interval", f"{masked['sync_interval_minutes']} min"),
                ("Automatic sync", "on" if masked["enable_automatic_sync"] else "off"),
                ("Config file", str(config.get_config_path())),
            ],
        )
        if connected:
            out.success("✓ Connected")

    if not connected:
        out.error(f"Connection failed: {error}")
        ctx.exit(1)


@main.command()
@click.argument(
    "path", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be synced without syncing"
)
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.option(
    "--no-prune", is_flag=True, help="Keep empty local folders after syncing"
)
@click.pass_context
def sync(
    ctx: Any, path: Path, dry_run: bool, no_progress: bool, no_prune: bool
) -> None:
    """Synchronize a local directory with the configured bucket.

    Changes on either side are applied to the other; files changed on
    both sides at the same instant are kept twice.

    PATH: Local directory to sync
    """
    out: OutputFormatter = ctx.obj["out"]
    engine = _build_engine(ctx, out, path, prune_empty_dirs=not no_prune)

    if no_progress or out.quiet or out.json_output:
        result = engine.preview() if dry_run else engine.run_once()
    else:
        try:
            result = run_sync_with_progress(engine, dry_run=dry_run)
        except KeyboardInterrupt:
            out.warning("\nSync cancelled by user")
            ctx.exit(130)

    _report_result(ctx, out, result)


@main.command()
@click.argument(
    "path", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--interval",
    "-i",
    type=click.IntRange(min=1),
    default=None,
    help="Minutes between syncs (default: from settings)",
)
@click.pass_context
def watch(ctx: Any, path: Path, interval: Optional[int]) -> None:
    """Sync a local directory periodically until interrupted.

    Without --interval, automatic sync must be enabled in the settings
    and the configured interval is used.

    PATH: Local directory to sync
    """
    out: OutputFormatter = ctx.obj["out"]
    engine = _build_engine(ctx, out, path)
    settings = engine.client.settings

    if interval is None and not settings.enable_automatic_sync:
        out.error("Automatic sync is disabled in the settings.")
        out.info("Run 'pys3sync init --auto-sync' or pass --interval")
        ctx.exit(1)
    minutes = interval or settings.sync_interval_minutes

    try:
        scheduler = SyncScheduler(engine, minutes)
    except ValueError as e:
        out.error(str(e))
        ctx.exit(1)

    out.info(f"Syncing {path} every {minutes} minute(s). Press Ctrl+C to stop.")
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        out.info("\nStopped")


@main.command("reset-state")
@click.argument("path", type=click.Path(file_okay=False, path_type=Path))
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset_state(ctx: Any, path: Path, yes: bool) -> None:
    """Forget the recorded sync state of a local directory.

    The next sync treats every file on both sides as new: files present
    on only one side are copied, files present on both are compared by
    modification time. Nothing is deleted.

    PATH: Local directory whose sync state should be cleared
    """
    out: OutputFormatter = ctx.obj["out"]
    settings = _load_settings(ctx, out)
    remote_root = S3Client(settings).remote_root

    if not yes and not click.confirm(
        f"Clear sync state for {path} <-> {remote_root}?", default=False
    ):
        out.warning("Cancelled.")
        ctx.exit(1)

    manager = SyncStateManager(config.get_state_dir())
    cleared = manager.clear_state(path, remote_root)

    if out.json_output:
        out.output_json({"cleared": cleared})
    elif cleared:
        out.success("✓ Sync state cleared")
    else:
        out.info("No sync state recorded for this location")


if __name__ == "__main__":
    main()
