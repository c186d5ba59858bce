"""Output renderer: rich table formatter, JSON formatter, view dispatch."""

import dataclasses
import json
import logging
import sys
from io import StringIO

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pnw.analytics import stats_to_meta, uptime_badge, version_status, version_type
from pnw.models import CycleResult, NetworkSummary, Snapshot

logger = logging.getLogger(__name__)

# Columns displayed for the nodes view: (header, attribute).
_NODE_COLUMNS = [
    ("ID", "id"),
    ("Status", "status"),
    ("Uptime %", "uptime_percent"),
    ("Health", "health_score"),
    ("Credits", "credits"),
    ("Version", "version"),
    ("Address", "ip_address"),
    ("Country", "country"),
]

_STATUS_STYLES = {"online": "green", "degraded": "yellow", "offline": "red"}
_VERSION_STYLES = {"current": "green", "outdated": "yellow"}

# How many entries to show in top-N tables.
_TOP_N = 10

VIEWS = ("nodes", "stats")


def render(
    result: CycleResult,
    fmt: str,
    *,
    view: str = "nodes",
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Dispatch output to the appropriate formatter.

    Args:
        result: Poll-cycle result to render.
        fmt: Output format, ``"table"`` or ``"json"``.
        view: ``"nodes"`` for the node list, ``"stats"`` for network stats.
        file: Writable file object for output (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).

    Raises:
        ValueError: If *fmt* or *view* is unknown.
    """
    if view not in VIEWS:
        raise ValueError(f"Unknown view: {view!r}")

    if fmt == "table":
        render_table(result, view=view, file=file, width=width)
    elif fmt == "json":
        render_json(result, view=view, file=file)
    else:
        raise ValueError(f"Unknown output format: {fmt!r}")


# ---------------------------------------------------------------------------
# Table (rich) formatter
# ---------------------------------------------------------------------------


def render_table(
    result: CycleResult,
    *,
    view: str = "nodes",
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render *result* as ``rich`` tables to *file*."""
    console = _console(file, width)

    if view == "stats":
        _render_table_stats(console, result)
    else:
        _render_table_nodes(console, result)


def _render_table_nodes(console: Console, result: CycleResult) -> None:
    """Render one row per node, healthiest first, plus a summary line."""
    table = Table(title=f"{result.network}: {len(result.nodes)} nodes")
    id_width = max((len(n.id) for n in result.nodes), default=2)
    for header, _ in _NODE_COLUMNS:
        if header == "ID":
            # Ids are typed back into `history --node`.
            table.add_column(header, no_wrap=True, min_width=id_width)
            continue
        justify = "right" if header in ("Uptime %", "Health", "Credits") else "left"
        table.add_column(header, justify=justify)

    for node in sorted(result.nodes, key=lambda n: n.health_score, reverse=True):
        cells = []
        for _, attr in _NODE_COLUMNS:
            if attr == "country":
                value = node.location.country if node.location else None
            else:
                value = getattr(node, attr)
            cells.append(escape(_fmt(value)))
        style = _STATUS_STYLES.get(node.status)
        cells[1] = f"[{style}]{cells[1]}[/{style}]" if style else cells[1]
        table.add_row(*cells)

    console.print(table)
    _print_nodes_summary(console, result)


def _print_nodes_summary(console: Console, result: CycleResult) -> None:
    nodes = result.nodes
    online = sum(1 for n in nodes if n.status == "online")
    degraded = sum(1 for n in nodes if n.status == "degraded")
    offline = len(nodes) - online - degraded
    line = f"  {online} online, {degraded} degraded, {offline} offline"
    if not result.credits_available:
        line += " (credits unavailable)"
    console.print(line)


def _render_table_stats(console: Console, result: CycleResult) -> None:
    """Render network statistics, version / country tables, rankings and issues."""
    meta = stats_to_meta(result.nodes)
    stats = meta["stats"]
    latest = meta["latest_version"]

    console.print(f"\n[bold]{result.network} network statistics[/bold]\n")

    t = Table(title="Overview")
    t.add_column("Metric")
    t.add_column("Value", justify="right")
    t.add_row("Total nodes", str(stats.total_nodes))
    t.add_row("Online", str(stats.online_nodes))
    t.add_row("Degraded", str(stats.degraded_nodes))
    t.add_row("Offline", str(stats.offline_nodes))
    t.add_row("Elite (>= 99.5% uptime)", str(stats.elite_nodes))
    t.add_row("Avg uptime %", f"{stats.avg_uptime:.1f}")
    t.add_row("Avg health score", f"{stats.avg_health_score:.1f}")
    t.add_row("Network health", f"{stats.health_score:.1f}")
    t.add_row("Storage committed", format_bytes(stats.total_storage))
    t.add_row("Storage used", format_bytes(stats.used_storage))
    t.add_row("Avg credits", str(stats.avg_credits))
    t.add_row("Latest version", escape(latest))
    console.print(t)

    versions = meta["version_distribution"]
    if versions:
        t = Table(title="Versions")
        t.add_column("Version", no_wrap=True)
        t.add_column("Channel")
        t.add_column("Status")
        t.add_column("Nodes", justify="right")
        t.add_column("%", justify="right")
        for version, count, percent in versions[:_TOP_N]:
            status = version_status(version, latest)
            style = _VERSION_STYLES.get(status)
            t.add_row(
                escape(version),
                version_type(version),
                f"[{style}]{status}[/{style}]" if style else status,
                str(count),
                f"{percent:.1f}",
            )
        console.print(t)

    countries = meta["country_distribution"]
    if countries:
        t = Table(title="Top countries")
        t.add_column("Country")
        t.add_column("Nodes", justify="right")
        for country, count in countries[:_TOP_N]:
            t.add_row(escape(country), str(count))
        console.print(t)

    top_nodes = meta["top_nodes"]
    if top_nodes:
        t = Table(title="Top nodes by credits")
        t.add_column("Rank", justify="right")
        t.add_column("ID", no_wrap=True)
        t.add_column("Credits", justify="right")
        t.add_column("Uptime %", justify="right")
        t.add_column("Badge")
        for rank, node in enumerate(top_nodes, start=1):
            t.add_row(
                str(rank),
                escape(node.id),
                _fmt(node.credits),
                f"{node.uptime_percent:.1f}",
                uptime_badge(node.uptime_percent),
            )
        console.print(t)

    top_by_health = meta["top_by_health"]
    if top_by_health:
        t = Table(title="Top nodes by health")
        t.add_column("Rank", justify="right")
        t.add_column("ID", no_wrap=True)
        t.add_column("Health", justify="right")
        t.add_column("Version")
        for rank, node in enumerate(top_by_health, start=1):
            t.add_row(
                str(rank),
                escape(node.id),
                str(node.health_score),
                escape(node.version),
            )
        console.print(t)

    issues = meta["issues"]
    if issues:
        console.print(f"\n[bold]Issues ({len(issues)})[/bold]")
        for issue in issues[:_TOP_N]:
            console.print(f"  [red]{issue.severity}[/red] {escape(issue.message)}")
        if len(issues) > _TOP_N:
            console.print(f"  ... and {len(issues) - _TOP_N} more")
    else:
        console.print("\n  No issues detected.")


def render_history(
    snapshots: list[Snapshot],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render stored snapshots, oldest first."""
    if fmt == "json":
        _dump_json([dataclasses.asdict(s) for s in snapshots], file)
        return

    console = _console(file, width)
    if not snapshots:
        console.print("  No snapshots recorded.")
        return

    t = Table(title=f"History: {len(snapshots)} snapshots")
    for header in ("Time", "Network", "Nodes", "Online", "Offline", "Avg uptime %", "Avg credits"):
        t.add_column(header)
    for s in snapshots:
        t.add_row(
            s.timestamp.strftime("%Y-%m-%d %H:%M"),
            escape(s.network),
            str(s.total_nodes),
            str(s.online_nodes),
            str(s.offline_nodes),
            f"{s.avg_uptime:.1f}",
            f"{s.avg_credits:.0f}",
        )
    console.print(t)


def render_node_history(
    node_id: str,
    rows: list[dict],
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render one node's per-snapshot rows from ``get_node_history``."""
    if fmt == "json":
        _dump_json({"node_id": node_id, "history": rows}, file)
        return

    console = _console(file, width)
    if not rows:
        console.print(f"  No history recorded for {escape(node_id)}.")
        return

    t = Table(title=f"History: {escape(node_id)}")
    for header in ("Time", "Status", "Uptime %", "Storage %", "Health", "Credits", "Version"):
        t.add_column(header)
    for row in rows:
        t.add_row(
            row["timestamp"][:16].replace("T", " "),
            escape(row["status"]),
            f"{row['uptime_percent']:.1f}",
            f"{row['storage_usage_percent']:.1f}",
            str(row["health_score"]),
            f"{row['credits']:.0f}",
            escape(_fmt(row["version"])),
        )
    console.print(t)


def render_summary(
    summary: NetworkSummary,
    fmt: str,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    if fmt == "json":
        _dump_json(dataclasses.asdict(summary), file)
        return

    console = _console(file, width)
    console.print(f"[bold]{escape(summary.title)}[/bold]\n")
    console.print(summary.content, markup=False)
    console.print(
        f"\n[bold]Key recommendation:[/bold] {escape(summary.key_recommendation)}"
    )


# ---------------------------------------------------------------------------
# JSON formatter
# ---------------------------------------------------------------------------


def render_json(
    result: CycleResult,
    *,
    view: str = "nodes",
    file: object | None = None,
) -> None:
    """Render *result* as JSON to *file*.

    The nodes view is an object with ``network``, ``fetched_at``,
    ``credits_available`` and ``nodes``; the stats view replaces ``nodes``
    with ``stats``, ``versions``, ``countries``, ``latest_version``,
    ``top_nodes``, ``top_by_health`` and ``issues``.
    """
    payload: dict = {
        "network": result.network,
        "fetched_at": result.fetched_at,
        "credits_available": result.credits_available,
    }
    if view == "stats":
        meta = stats_to_meta(result.nodes)
        payload["stats"] = dataclasses.asdict(meta["stats"])
        payload["versions"] = meta["version_distribution"]
        payload["countries"] = meta["country_distribution"]
        payload["latest_version"] = meta["latest_version"]
        payload["top_nodes"] = [dataclasses.asdict(n) for n in meta["top_nodes"]]
        payload["top_by_health"] = [n.id for n in meta["top_by_health"]]
        payload["issues"] = [dataclasses.asdict(i) for i in meta["issues"]]
    else:
        payload["nodes"] = [dataclasses.asdict(n) for n in result.nodes]
    _dump_json(payload, file)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _console(file: object | None, width: int | None) -> Console:
    return Console(file=file or sys.stdout, highlight=False, width=width)


def _dump_json(payload: object, file: object | None) -> None:
    out = file or sys.stdout
    json.dump(payload, out, indent=2, default=str)
    out.write("\n")  # type: ignore[union-attr]


def _fmt(value: object) -> str:
    """Format a field value for table display.

    ``None`` becomes ``"—"``, whole floats lose their ``.0``.
    """
    if value is None:
        return "—"
    if isinstance(value, float) and value.is_integer() and abs(value) >= 1:
        return str(int(value))
    return str(value)


def format_bytes(num: int) -> str:
    """Human-readable size with binary units, e.g. ``1.5 KB``."""
    if num == 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    value = float(num)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{value:.1f} {units[index]}"


def render_to_string(
    result: CycleResult, fmt: str, *, view: str = "nodes", width: int = 200
) -> str:
    """Render to a string instead of stdout, for tests.

    Args:
        result: Poll-cycle result to render.
        fmt: Output format, ``"table"`` or ``"json"``.
        view: ``"nodes"`` or ``"stats"``.
        width: Console width for table rendering (default: 200).

    Returns:
        The rendered output as a string.
    """
    buf = StringIO()
    render(result, fmt, view=view, file=buf, width=width)
    return buf.getvalue()
