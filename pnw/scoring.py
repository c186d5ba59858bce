"""Status, uptime and health-score formulas shared by every caller.

Dashboard stats, snapshots and the network summary all import these
functions; nothing else in the package recomputes them.  Thresholds and
weights are part of the displayed values and must not drift.
"""

import hashlib
import math

from pnw.models import Status

ONLINE_THRESHOLD_SECONDS = 60
DEGRADED_THRESHOLD_SECONDS = 300
DAY_IN_SECONDS = 86400

DEFAULT_PORT = 9001
DEFAULT_RPC_PORT = 6000

# Health-score weights.
STATUS_WEIGHTS: dict[str, int] = {"online": 40, "degraded": 20, "offline": 0}
UPTIME_WEIGHT = 30
UPTIME_FULL_HOURS = 24
STORAGE_COMMITTED_WEIGHT = 10
STORAGE_LOW_USAGE_WEIGHT = 10
STORAGE_MID_USAGE_WEIGHT = 5
STORAGE_LOW_USAGE_LIMIT = 80
STORAGE_MID_USAGE_LIMIT = 95
VERSION_WEIGHT = 5
PUBKEY_WEIGHT = 5


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like the dashboard does: halves always go up.

    Python's built-in ``round`` rounds halves to even, which would make
    e.g. a score of 92.5 display as 92 instead of 93.
    """
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def determine_status(last_seen: int, max_last_seen: int) -> Status:
    """Classify a pod's freshness relative to the freshest pod in its batch.

    Args:
        last_seen: The pod's ``last_seen_timestamp`` (unix seconds).
        max_last_seen: The largest ``last_seen_timestamp`` in the batch.

    Returns:
        ``"online"`` when seen within 60 s of the freshest pod,
        ``"degraded"`` within 300 s, ``"offline"`` otherwise.
    """
    delta = max_last_seen - last_seen
    if delta <= ONLINE_THRESHOLD_SECONDS:
        return "online"
    if delta <= DEGRADED_THRESHOLD_SECONDS:
        return "degraded"
    return "offline"


def uptime_percent(
    uptime_seconds: int,
    status: Status,
    last_seen: int,
    max_last_seen: int,
) -> float:
    """Convert raw uptime seconds into a 0-100 percentage of one day.

    Pods that are not online lose the staleness window from the
    percentage, so a pod that stopped reporting long ago cannot keep
    showing a near-perfect figure.

    Returns:
        The percentage, clamped to ``[0, 100]`` and rounded to one decimal.
    """
    base = min(100.0, uptime_seconds / DAY_IN_SECONDS * 100)

    if status != "online":
        offline_seconds = max_last_seen - last_seen
        penalty = offline_seconds / DAY_IN_SECONDS * 100
        base = max(0.0, base - penalty)

    return round_half_up(base, 1)


def health_score(
    status: Status,
    uptime_seconds: int,
    storage_committed: int,
    storage_usage_percent: float,
    version: str | None,
    pubkey: str | None,
) -> int:
    """Weighted 0-100 composite of status, uptime, storage and metadata.

    Weights: status 40/20/0, uptime up to 30 (full at 24 h), committed
    storage 10 plus 10 below 80 % usage or 5 below 95 %, known version 5,
    pubkey present 5.
    """
    score = float(STATUS_WEIGHTS[status])

    uptime_hours = uptime_seconds / 3600
    score += min(UPTIME_WEIGHT, uptime_hours / UPTIME_FULL_HOURS * UPTIME_WEIGHT)

    if storage_committed > 0:
        score += STORAGE_COMMITTED_WEIGHT
        if storage_usage_percent < STORAGE_LOW_USAGE_LIMIT:
            score += STORAGE_LOW_USAGE_WEIGHT
        elif storage_usage_percent < STORAGE_MID_USAGE_LIMIT:
            score += STORAGE_MID_USAGE_WEIGHT

    if version and version != "unknown":
        score += VERSION_WEIGHT
    if pubkey:
        score += PUBKEY_WEIGHT

    return int(round_half_up(score))


def extract_ip(address: str) -> str:
    """Return the IP portion of an ``ip:port`` address."""
    return address.split(":")[0]


def extract_port(address: str) -> int:
    """Return the port of an ``ip:port`` address, 9001 if absent or invalid."""
    parts = address.split(":")
    if len(parts) < 2 or not parts[1]:
        return DEFAULT_PORT
    try:
        return int(parts[1])
    except ValueError:
        return DEFAULT_PORT


def node_id(pubkey: str | None, address: str) -> str:
    """Build the node identifier from its pubkey and address.

    Several pods can share a pubkey, so the last two octets of the IP are
    appended: ``("ABCDEFGH12", "1.2.3.4:9001")`` gives ``"ABCDEFGH-34"``.
    Pods without a pubkey get ``"unknown-"`` plus a short hash of their
    address, which stays the same across fetches.
    """
    if not pubkey:
        digest = hashlib.sha1(address.encode("utf-8")).hexdigest()
        return f"unknown-{digest[:6]}"
    addr_part = "".join(extract_ip(address).split(".")[-2:])
    return f"{pubkey[:8]}-{addr_part}"
