"""CLI interface for the pysyncd synchronization daemon."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .config import (
    DEFAULT_CONFIG,
    SyncdConfig,
    default_config_path,
    load_config,
    save_config,
)
from .daemon import SyncDaemon
from .exceptions import SyncdError
from .output import OutputFormatter
from .session import SyncSession
from .transport import create_transport
from .utils import format_hash, format_size, hash_file

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
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar="PYSYNCD_CONFIG",
    help="Path to the config file (default: ~/.config/pysyncd/config.json)",
)
@click.version_option(package_name="pysyncd")
@click.pass_context
def main(
    ctx: Any,
    quiet: bool,
    json: bool,
    verbose: bool,
    config_path: Optional[Path],
) -> None:
    """syncd - Keep a directory in sync with a peer over a pub/sub channel."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


def configure_logging(verbose: bool, quiet: bool, default: int) -> None:
    """Configure logging for a command.

    Args:
        verbose: Enable debug output with timestamps
        quiet: Only show warnings and errors
        default: Level used when neither flag is given
    """
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pysyncd").setLevel(logging.DEBUG)
    elif quiet:
        logging.basicConfig(level=logging.WARNING)
    else:
        logging.basicConfig(
            level=default,
            format="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )


@main.command()
@click.option("--channel", help="Channel identifier shared with the peer")
@click.option(
    "--dir",
    "synced_dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory to synchronize",
)
@click.option("--address", help="Transport server address (host:port)")
@click.option("--backend", help="Transport backend")
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing config file")
@click.pass_context
def init(
    ctx: Any,
    channel: Optional[str],
    synced_dir: Optional[Path],
    address: Optional[str],
    backend: Optional[str],
    force: bool,
) -> None:
    """Write a configuration file.

    Values not given on the command line use the defaults.
    """
    out: OutputFormatter = ctx.obj["out"]
    configure_logging(ctx.obj["verbose"], ctx.obj["quiet"], logging.WARNING)
    config_path = ctx.obj["config_path"] or default_config_path()

    if config_path.exists() and not force:
        out.error(f"Config file {config_path} already exists (use --force)")
        ctx.exit(1)

    data = dict(DEFAULT_CONFIG)
    if channel:
        data["channel"] = channel
    if synced_dir:
        data["syncedDir"] = str(synced_dir)
    if address:
        data["address"] = address
    if backend:
        data["backend"] = backend

    try:
        SyncdConfig.from_dict(data)
        saved_path = save_config(data, config_path)
    except SyncdError as e:
        out.error(str(e))
        ctx.exit(1)

    out.print_summary(
        "Initialization Complete",
        [
            ("Config file", str(saved_path)),
            ("Channel", data["channel"]),
            ("Synced directory", data["syncedDir"]),
            ("Address", data["address"]),
        ],
    )


@main.command(name="config")
@click.pass_context
def show_config(ctx: Any) -> None:
    """Show the effective configuration."""
    out: OutputFormatter = ctx.obj["out"]
    configure_logging(ctx.obj["verbose"], ctx.obj["quiet"], logging.WARNING)

    try:
        cfg = load_config(ctx.obj["config_path"])
    except SyncdError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(cfg.to_dict())
        return

    config_path = ctx.obj["config_path"] or default_config_path()
    out.print(f"Config file: {config_path}")
    for key, value in cfg.to_dict().items():
        out.print(f"  {key}: {value}")


@main.command()
@click.option("--channel", help="Override the configured channel")
@click.option(
    "--dir",
    "synced_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Override the configured directory",
)
@click.option("--address", help="Override the configured server address")
@click.option(
    "--no-watch",
    is_flag=True,
    help="Only apply remote changes, do not send local ones",
)
@click.pass_context
def run(
    ctx: Any,
    channel: Optional[str],
    synced_dir: Optional[Path],
    address: Optional[str],
    no_watch: bool,
) -> None:
    """Run the synchronization daemon until interrupted."""
    out: OutputFormatter = ctx.obj["out"]
    configure_logging(ctx.obj["verbose"], ctx.obj["quiet"], logging.INFO)

    try:
        cfg = load_config(ctx.obj["config_path"])
        if channel:
            cfg.channel = channel
        if synced_dir:
            cfg.synced_dir = synced_dir
        if address:
            cfg.address = address
        cfg.validate()

        transport = create_transport(cfg.backend, cfg.backend_options)
        session = SyncSession(cfg.address, cfg.synced_dir, cfg.channel, transport)
        daemon = SyncDaemon(
            session,
            ping_interval=cfg.ping_interval,
            watch=cfg.watch and not no_watch,
        )
    except SyncdError as e:
        out.error(str(e))
        ctx.exit(1)

    out.info(f"Syncing {session.root} on channel '{cfg.channel}' via {cfg.address}")

    try:
        daemon.run()
    except KeyboardInterrupt:
        daemon.stop()
        out.warning("Interrupted, shutting down")
    except SyncdError as e:
        out.error(str(e))
        ctx.exit(1)


@main.command(name="hash")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.pass_context
def hash_command(ctx: Any, paths: tuple[Path, ...]) -> None:
    """Print the content fingerprint of files."""
    out: OutputFormatter = ctx.obj["out"]
    results = []
    failed = False

    for path in paths:
        try:
            value = hash_file(path)
        except OSError as e:
            out.error(f"Cannot read {path}: {e}")
            failed = True
            continue
        results.append(
            {"path": str(path), "hash": format_hash(value), "size": path.stat().st_size}
        )

    if out.json_output:
        out.output_json(results)
    else:
        for result in results:
            out.print(
                f"{result['hash']}  {result['path']} ({format_size(result['size'])})"
            )

    if failed:
        ctx.exit(1)


if __name__ == "__main__":
    main()
