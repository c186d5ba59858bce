"""CLI entry point for the pnw tool."""

import asyncio
import logging
import sys

import click

from pnw.analytics import build_snapshot
from pnw.config import ConfigError, PnwConfig, load_config
from pnw.fetcher import FetchError
from pnw.models import NETWORKS, CycleResult
from pnw.output import (
    render,
    render_history,
    render_node_history,
    render_summary,
)
from pnw.persistence import (
    get_latest_snapshot,
    get_network_history,
    get_node_history,
    init_db,
    prune_snapshots,
    save_snapshot,
)
from pnw.pipeline import run_cycle, watch
from pnw.summary import NoNetworkData, SummaryService

logger = logging.getLogger(__name__)

FORMATS = ("table", "json")


def _network_option(func):
    return click.option(
        "--network",
        "-n",
        default="all",
        type=click.Choice(NETWORKS, case_sensitive=False),
        show_default=True,
        help="Network to query.",
    )(func)


def _format_option(func):
    return click.option(
        "--format",
        "-f",
        "output_format",
        default="table",
        type=click.Choice(FORMATS, case_sensitive=False),
        show_default=True,
        help="Output format.",
    )(func)


def _locate_option(func):
    return click.option(
        "--locate/--no-locate",
        default=False,
        help="Geolocate node IPs with the configured GeoLite2-City database.",
    )(func)


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.pnw/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """Monitor Xandeum pNodes: status, credits, history and summaries."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    logger.debug("Config loaded: %s", cfg)
    ctx.obj = cfg


@main.command()
@_network_option
@_format_option
@_locate_option
@click.pass_obj
def nodes(cfg: PnwConfig, network: str, output_format: str, locate: bool) -> None:
    """List every pNode with its status, health and credits."""
    result = _run(cfg, network, locate)
    render(result, output_format, view="nodes")


@main.command()
@_network_option
@_format_option
@_locate_option
@click.pass_obj
def stats(cfg: PnwConfig, network: str, output_format: str, locate: bool) -> None:
    """Show network statistics, version spread and top nodes."""
    result = _run(cfg, network, locate)
    render(result, output_format, view="stats")


@main.command("watch")
@_network_option
@_format_option
@_locate_option
@click.option(
    "--interval",
    type=click.IntRange(min=1),
    default=None,
    help="Seconds between polls (default: poll_interval from config).",
)
@click.option(
    "--cycles",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many polls (default: run until interrupted).",
)
@click.pass_obj
def watch_cmd(
    cfg: PnwConfig,
    network: str,
    output_format: str,
    locate: bool,
    interval: int | None,
    cycles: int | None,
) -> None:
    """Poll the network repeatedly and print each cycle."""

    def on_cycle(result: CycleResult) -> None:
        render(result, output_format, view="nodes")

    try:
        succeeded = asyncio.run(
            watch(
                cfg,
                network,
                on_cycle,
                interval=interval,
                cycles=cycles,
                locate_nodes=locate,
            )
        )
    except KeyboardInterrupt:
        click.echo("Stopped.", err=True)
        return

    if cycles is not None and succeeded == 0:
        click.echo("Error: every poll cycle failed", err=True)
        sys.exit(1)


@main.command()
@_network_option
@click.pass_obj
def snapshot(cfg: PnwConfig, network: str) -> None:
    """Record a history snapshot of the network and prune old ones."""
    result = _run(cfg, network, False)
    snap = build_snapshot(network, result.nodes, result.meta.get("credits"))

    conn = init_db(cfg.db_path)
    try:
        previous = get_latest_snapshot(conn, network)
        snapshot_id = save_snapshot(conn, snap, result.nodes)
        prune_snapshots(conn, cfg.snapshot_retention_days)
    finally:
        conn.close()

    click.echo(
        f"Saved snapshot {snapshot_id}: {snap.total_nodes} nodes, "
        f"{snap.online_nodes} online"
    )
    if previous is not None:
        click.echo(
            f"Since snapshot {previous.id}: "
            f"{snap.total_nodes - previous.total_nodes:+d} nodes, "
            f"{snap.online_nodes - previous.online_nodes:+d} online"
        )


@main.command()
@_network_option
@_format_option
@click.option("--days", type=click.IntRange(min=1), default=7, show_default=True)
@click.option("--node", "node_id", default=None, help="Show one node's history.")
@click.pass_obj
def history(
    cfg: PnwConfig,
    network: str,
    output_format: str,
    days: int,
    node_id: str | None,
) -> None:
    """Show recorded snapshots for a network or a single node."""
    conn = init_db(cfg.db_path)
    try:
        if node_id:
            rows = get_node_history(conn, node_id, days)
        else:
            snapshots = get_network_history(conn, days, network)
    finally:
        conn.close()

    if node_id:
        render_node_history(node_id, rows, output_format)
    else:
        render_history(snapshots, output_format)


@main.command()
@_network_option
@_format_option
@click.option("--force", is_flag=True, help="Regenerate even if cached.")
@click.pass_obj
def summary(cfg: PnwConfig, network: str, output_format: str, force: bool) -> None:
    """Write an executive summary of the network's health."""
    conn = init_db(cfg.db_path)
    try:
        service = SummaryService(cfg, conn=conn)
        result = asyncio.run(service.get_summary(network, force=force))
    except FetchError as exc:
        _fail(exc.user_message)
    except NoNetworkData as exc:
        _fail(str(exc))
    finally:
        conn.close()
    render_summary(result, output_format)


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _run(cfg: PnwConfig, network: str, locate: bool) -> CycleResult:
    """Run one poll cycle, exiting with the user-facing message on failure."""
    try:
        return asyncio.run(run_cycle(cfg, network, locate_nodes=locate))
    except FetchError as exc:
        _fail(exc.user_message)


def _fail(message: str):
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)

