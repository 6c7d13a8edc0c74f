"""ratio-master command line entry point."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import click

from ratiomaster import __version__
from ratiomaster.cli.console import (
    SessionDisplay,
    create_console,
    print_warning,
    render_parameters,
    render_results,
    render_torrent_info,
)
from ratiomaster.cli.verbosity import VerbosityManager
from ratiomaster.config import init_config
from ratiomaster.exceptions import RatioMasterError
from ratiomaster.logging_config import setup_logging
from ratiomaster.models import Config
from ratiomaster.session import AnnounceSession, prepare_torrent
from ratiomaster.utils.dependencies import check_dependencies
from ratiomaster.utils.formatting import format_size
from ratiomaster.utils.shutdown import install_signal_handlers, is_shutting_down, set_shutdown

logger = logging.getLogger(__name__)

MAX_SIZE_MIB = 8388608
EXIT_INTERRUPTED = 130


def derive_speed(size_mib: int, seconds: int) -> int:
    """Speed in KiB/s that uploads ``size_mib`` in ``seconds``, at least 1."""
    return max(size_mib * 1024 * 1024 // seconds // 1024, 1)


def _build_overrides(
    speed: int | None,
    size: int | None,
    duration: int | None,
    port: int | None,
    listen: bool,
) -> dict[str, Any]:
    overrides: dict[str, Any] = {
        "simulation.speed_kib": speed,
        "simulation.upload_size_mib": size,
        "network.listen_port": port,
        "network.enable_responder": True if listen else None,
    }
    if duration is not None:
        if size is not None:
            overrides["simulation.speed_kib"] = derive_speed(size, duration)
        else:
            overrides["simulation.duration"] = duration
    return overrides


async def _run_session(session: AnnounceSession) -> None:
    task = asyncio.current_task()
    if task is not None:
        install_signal_handlers(task)
    await session.run()


def run_session(session: AnnounceSession, display: SessionDisplay) -> bool:
    """Run ``session`` to completion under the live display.

    Returns:
        True if the session was interrupted by a signal

    """
    try:
        with display:
            asyncio.run(_run_session(session))
    except (KeyboardInterrupt, asyncio.CancelledError):
        set_shutdown()
    if is_shutting_down():
        logger.info("Session interrupted")
        return True
    return False


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("torrent_file", type=click.Path(dir_okay=False))
@click.option(
    "--speed",
    "-s",
    type=click.IntRange(min=1),
    help="Simulated upload speed in KB/s (default: 512)",
)
@click.option(
    "--size",
    "-S",
    type=click.IntRange(1, MAX_SIZE_MIB),
    help="Amount of upload to simulate in MB, then stop",
)
@click.option(
    "--time",
    "-t",
    "duration",
    type=click.IntRange(min=1),
    help="Simulation time in seconds (with --size: derive the speed)",
)
@click.option(
    "--port",
    type=click.IntRange(1024, 65535),
    help="Listen port reported to the tracker (default: random)",
)
@click.option("--listen", is_flag=True, help="Answer peer handshakes on the listen port")
@click.option("--dry-run", is_flag=True, help="Parse and display only, send nothing")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.version_option(__version__, "-V", "--version", prog_name="ratio-master")
@click.pass_context
def cli(
    ctx: click.Context,
    torrent_file: str,
    speed: int | None,
    size: int | None,
    duration: int | None,
    port: int | None,
    listen: bool,
    dry_run: bool,
    no_color: bool,
    config: str | None,
    verbose: int,
) -> None:
    """Simulate seeding TORRENT_FILE by announcing upload to its tracker."""
    if not torrent_file.endswith(".torrent"):
        msg = "File must have .torrent extension"
        raise click.BadParameter(msg, param_hint="'TORRENT_FILE'")

    console = create_console(no_color)
    verbosity = VerbosityManager(verbose)

    try:
        check_dependencies()
        config_manager = init_config(config)
        cfg: Config = config_manager.apply_overrides(
            _build_overrides(speed, size, duration, port, listen)
        )
        observability = cfg.observability.model_copy(
            update={"log_level": verbosity.log_level(cfg.observability.log_level)}
        )
        setup_logging(observability, use_color=not console.no_color)

        prepared = prepare_torrent(torrent_file, require_tracker=not dry_run)
    except RatioMasterError as e:
        raise click.ClickException(str(e)) from None

    render_torrent_info(console, prepared.metadata, prepared.info_hash)

    if dry_run:
        render_parameters(console, cfg.simulation)
        console.print("[dim]DRY-RUN MODE - No simulation performed[/dim]")
        return

    if not prepared.metadata.size_known:
        print_warning(
            "Torrent size unknown, reporting a "
            f"{format_size(cfg.simulation.unknown_size_fallback)} download for the ratio",
            console,
        )

    display = SessionDisplay(console, cfg.simulation.upload_target)
    session = AnnounceSession(
        prepared.metadata,
        prepared.info_hash,
        config=cfg,
        on_tick=display.on_tick,
        on_announce=display.on_announce,
    )
    render_parameters(console, cfg.simulation, session.identity)

    interrupted = run_session(session, display)
    render_results(console, session, interrupted=interrupted)
    if interrupted:
        ctx.exit(EXIT_INTERRUPTED)


def main() -> None:
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
