"""Analytics: network statistics, distributions, badges and snapshots."""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Literal

from pnw.models import NetworkStats, NormalizedNode, Snapshot
from pnw.scoring import round_half_up

logger = logging.getLogger(__name__)

ELITE_UPTIME = 99.5

# Weights for the network-wide health score.
HEALTH_WEIGHTS: dict[str, float] = {
    "availability": 0.4,
    "performance": 0.3,
    "storage": 0.3,
}

_SEMVER_RE = re.compile(r"^v?\d+\.\d+\.\d+$")

UptimeBadge = Literal["elite", "reliable", "average", "unreliable"]
VersionStatus = Literal["current", "outdated", "unknown"]
VersionType = Literal["mainnet", "trynet", "devnet", "unknown"]


@dataclass
class NodeIssue:
    node_id: str
    type: str
    severity: str
    message: str


@dataclass
class NetworkAnalysis:
    """Figures the network summary is written from.

    Attributes:
        versions: ``(version, count, percent)`` sorted by count descending.
        top_countries: ``(country, count)`` pairs, at most five.
        health_score: ``online% * 0.4 + avg uptime * 0.3 + avg health * 0.3``.
    """

    total_nodes: int = 0
    online_nodes: int = 0
    degraded_nodes: int = 0
    offline_nodes: int = 0
    online_percent: float = 0.0
    avg_uptime: float = 0.0
    avg_health: float = 0.0
    health_score: int = 0
    versions: list[tuple[str, int, float]] = field(default_factory=list)
    top_countries: list[tuple[str, int]] = field(default_factory=list)
    country_count: int = 0


# ------------------------------------------------------------------
# Network-wide figures
# ------------------------------------------------------------------


def calculate_network_health(nodes: list[NormalizedNode]) -> float:
    """Overall 0-100 network health, rounded to one decimal.

    Blends availability (share of non-offline nodes), performance (average
    response time against a 1 s budget) and storage headroom, then mixes
    the result 60/40 with the average per-node health score.
    """
    if not nodes:
        return 0.0

    count = len(nodes)
    availability = sum(1 for n in nodes if n.status != "offline") / count
    avg_health = sum(n.health_score for n in nodes) / count

    avg_response_time = sum(n.response_time for n in nodes) / count
    performance = max(0.0, 1 - avg_response_time / 1000)

    with_storage = [n for n in nodes if n.storage.total > 0]
    storage = 1.0
    if with_storage:
        utilisation = (
            sum(n.storage.usage_percent for n in with_storage) / len(with_storage) / 100
        )
        storage = 1.0 if utilisation < 0.9 else max(0.0, 1 - (utilisation - 0.9) * 10)

    health = (
        availability * HEALTH_WEIGHTS["availability"]
        + performance * HEALTH_WEIGHTS["performance"]
        + storage * HEALTH_WEIGHTS["storage"]
    ) * 100

    return round_half_up(health * 0.6 + avg_health * 0.4, 1)


def credits_stats(values: list[float]) -> tuple[float, int, int]:
    """Return ``(total, average, threshold)`` over the positive credit values.

    The threshold (80 % of the 95th percentile) marks the top earners.
    """
    positive = sorted(v for v in values if v > 0)
    if not positive:
        return 0, 0, 0

    total = sum(positive)
    avg = total / len(positive)
    p95_index = math.floor(len(positive) * 0.95)
    p95 = positive[p95_index] if p95_index < len(positive) else positive[-1]
    return total, int(round_half_up(avg)), int(round_half_up(p95 * 0.8))


def calculate_network_stats(nodes: list[NormalizedNode]) -> NetworkStats:
    """Compute aggregate statistics for a batch of nodes."""
    if not nodes:
        return NetworkStats()

    count = len(nodes)
    online = sum(1 for n in nodes if n.status == "online")
    degraded = sum(1 for n in nodes if n.status == "degraded")
    public = sum(1 for n in nodes if n.is_public)

    total_storage = sum(n.storage.total for n in nodes)
    used_storage = sum(n.storage.used for n in nodes)
    utilisation = used_storage / total_storage * 100 if total_storage > 0 else 0.0

    versions: dict[str, int] = {}
    for node in nodes:
        versions[node.version] = versions.get(node.version, 0) + 1

    total_credits, avg_credits, threshold = credits_stats(
        [n.credits for n in nodes if n.credits is not None]
    )

    return NetworkStats(
        total_nodes=count,
        online_nodes=online,
        degraded_nodes=degraded,
        offline_nodes=count - online - degraded,
        public_nodes=public,
        private_nodes=count - public,
        elite_nodes=sum(1 for n in nodes if n.uptime_percent >= ELITE_UPTIME),
        avg_uptime=round_half_up(sum(n.uptime_percent for n in nodes) / count, 1),
        avg_response_time=int(
            round_half_up(sum(n.response_time for n in nodes) / count)
        ),
        total_storage=total_storage,
        used_storage=used_storage,
        storage_utilization=round_half_up(utilisation, 2),
        health_score=calculate_network_health(nodes),
        avg_health_score=round_half_up(sum(n.health_score for n in nodes) / count, 1),
        version_distribution=versions,
        total_credits=total_credits,
        avg_credits=avg_credits,
        credits_threshold=threshold,
    )


# ------------------------------------------------------------------
# Distributions and rankings
# ------------------------------------------------------------------


def version_distribution(
    nodes: list[NormalizedNode],
) -> list[tuple[str, int, float]]:
    """``(version, count, percent)`` tuples sorted by count descending."""
    counts: dict[str, int] = {}
    for node in nodes:
        counts[node.version] = counts.get(node.version, 0) + 1

    return sorted(
        ((version, c, c / len(nodes) * 100) for version, c in counts.items()),
        key=lambda item: item[1],
        reverse=True,
    )


def country_distribution(
    nodes: list[NormalizedNode],
    *,
    include_unknown: bool = False,
) -> list[tuple[str, int]]:
    """``(country, count)`` pairs sorted by count descending.

    Nodes without a location are skipped unless *include_unknown* is set,
    in which case they are counted under ``"Unknown"``.
    """
    counts: dict[str, int] = {}
    for node in nodes:
        country = node.location.country if node.location else None
        if not country:
            if not include_unknown:
                continue
            country = "Unknown"
        counts[country] = counts.get(country, 0) + 1

    return sorted(counts.items(), key=lambda item: item[1], reverse=True)


def most_common_version(nodes: list[NormalizedNode]) -> str:
    """The most widely deployed known version, treated as "latest"."""
    counts: dict[str, int] = {}
    for node in nodes:
        counts[node.version] = counts.get(node.version, 0) + 1

    best, best_count = "unknown", 0
    for version, c in counts.items():
        if c > best_count and version != "unknown":
            best, best_count = version, c
    return best


def version_status(node_version: str, latest_version: str) -> VersionStatus:
    if not node_version or node_version == "unknown":
        return "unknown"
    if not latest_version or latest_version == "unknown":
        return "unknown"
    return "current" if node_version == latest_version else "outdated"


def version_type(version: str) -> VersionType:
    """Infer the release channel from a version string."""
    if not version:
        return "unknown"
    lowered = version.lower()
    if "trynet" in lowered:
        return "trynet"
    if "devnet" in lowered:
        return "devnet"
    if _SEMVER_RE.match(version):
        return "mainnet"
    return "unknown"


def uptime_badge(uptime: float) -> UptimeBadge:
    if uptime >= ELITE_UPTIME:
        return "elite"
    if uptime >= 95:
        return "reliable"
    if uptime >= 80:
        return "average"
    return "unreliable"


def top_nodes_by_credits(
    nodes: list[NormalizedNode], limit: int = 5
) -> list[NormalizedNode]:
    """Nodes with credits, best first; offline nodes are included."""
    ranked = [n for n in nodes if (n.credits or 0) > 0]
    ranked.sort(key=lambda n: n.credits or 0, reverse=True)
    return ranked[:limit]


def top_nodes_by_health(
    nodes: list[NormalizedNode], limit: int = 10
) -> list[NormalizedNode]:
    ranked = [n for n in nodes if n.status != "offline"]
    ranked.sort(key=lambda n: n.health_score, reverse=True)
    return ranked[:limit]


def detect_issues(nodes: list[NormalizedNode]) -> list[NodeIssue]:
    """Flag every offline node."""
    return [
        NodeIssue(
            node_id=node.id,
            type="offline",
            severity="high",
            message=f"Node {node.id} is offline",
        )
        for node in nodes
        if node.status == "offline"
    ]


# ------------------------------------------------------------------
# Summary analysis and snapshots
# ------------------------------------------------------------------


def analyze_network(nodes: list[NormalizedNode]) -> NetworkAnalysis:
    """Compute the figures used by the network summary."""
    if not nodes:
        return NetworkAnalysis()

    count = len(nodes)
    online = sum(1 for n in nodes if n.status == "online")
    degraded = sum(1 for n in nodes if n.status == "degraded")
    online_percent = online / count * 100
    avg_uptime = sum(n.uptime_percent for n in nodes) / count
    avg_health = sum(n.health_score for n in nodes) / count
    countries = country_distribution(nodes, include_unknown=True)

    return NetworkAnalysis(
        total_nodes=count,
        online_nodes=online,
        degraded_nodes=degraded,
        offline_nodes=count - online - degraded,
        online_percent=online_percent,
        avg_uptime=avg_uptime,
        avg_health=avg_health,
        health_score=int(
            round_half_up(online_percent * 0.4 + avg_uptime * 0.3 + avg_health * 0.3)
        ),
        versions=version_distribution(nodes),
        top_countries=countries[:5],
        country_count=len(countries),
    )


def build_snapshot(
    network: str,
    nodes: list[NormalizedNode],
    credits: dict[str, float] | None = None,
) -> Snapshot:
    """Aggregate a batch of nodes into a history ``Snapshot``.

    Credit totals come from *credits* when given (every pod the credits
    API knows about), otherwise from the nodes' own ``credits`` field.
    """
    count = len(nodes)
    online = sum(1 for n in nodes if n.status == "online")
    degraded = sum(1 for n in nodes if n.status == "degraded")

    if credits is not None:
        credit_values = list(credits.values())
    else:
        credit_values = [n.credits for n in nodes if n.credits is not None]
    total_credits = sum(credit_values)

    return Snapshot(
        network=network,
        total_nodes=count,
        online_nodes=online,
        degraded_nodes=degraded,
        offline_nodes=count - online - degraded,
        total_storage_bytes=sum(n.storage.total for n in nodes),
        used_storage_bytes=sum(n.storage.used for n in nodes),
        avg_uptime=sum(n.uptime_percent for n in nodes) / count if count else 0.0,
        avg_health_score=sum(n.health_score for n in nodes) / count if count else 0.0,
        total_credits=total_credits,
        avg_credits=total_credits / len(credit_values) if credit_values else 0.0,
    )


def stats_to_meta(nodes: list[NormalizedNode]) -> dict:
    """Network statistics, distributions, rankings and issues as a plain dict."""
    stats = calculate_network_stats(nodes)
    return {
        "stats": stats,
        "country_distribution": country_distribution(nodes),
        "version_distribution": version_distribution(nodes),
        "latest_version": most_common_version(nodes),
        "top_nodes": top_nodes_by_credits(nodes),
        "top_by_health": top_nodes_by_health(nodes, limit=5),
        "issues": detect_issues(nodes),
    }
