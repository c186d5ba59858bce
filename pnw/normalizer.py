"""Normalizer: raw pods -> NormalizedNode records."""

import logging
from datetime import UTC, datetime, timedelta

from pnw.models import NormalizedNode, Storage
from pnw.schemas import RawPod
from pnw.scoring import (
    DEFAULT_RPC_PORT,
    determine_status,
    extract_ip,
    extract_port,
    health_score,
    node_id,
    uptime_percent,
)

logger = logging.getLogger(__name__)


def max_last_seen(pods: list[RawPod]) -> int:
    """Return the freshest ``last_seen_timestamp`` in the batch (0 if empty)."""
    return max((pod.last_seen_timestamp for pod in pods), default=0)


def normalize_pod(
    pod: RawPod,
    response_time: float,
    reference: int,
    now: datetime | None = None,
) -> NormalizedNode:
    """Derive a ``NormalizedNode`` from one raw pod.

    Args:
        pod: Validated raw pod record.
        response_time: Proxy round-trip time for the batch, in ms.
        reference: The batch's maximum ``last_seen_timestamp``.
        now: Wall-clock time used for ``last_seen_at`` (default: now, UTC).
    """
    now = now or datetime.now(UTC)
    status = determine_status(pod.last_seen_timestamp, reference)
    seconds_ago = reference - pod.last_seen_timestamp

    return NormalizedNode(
        id=node_id(pod.pubkey, pod.address),
        public_key=pod.pubkey or "unknown",
        status=status,
        uptime_seconds=pod.uptime,
        uptime_percent=uptime_percent(
            pod.uptime, status, pod.last_seen_timestamp, reference
        ),
        health_score=health_score(
            status,
            pod.uptime,
            pod.storage_committed,
            pod.storage_usage_percent,
            pod.version,
            pod.pubkey,
        ),
        response_time=response_time,
        storage=Storage(
            total=pod.storage_committed,
            used=pod.storage_used,
            usage_percent=pod.storage_usage_percent,
        ),
        last_seen_timestamp=pod.last_seen_timestamp,
        last_seen_at=now - timedelta(seconds=seconds_ago),
        version=pod.version or "unknown",
        is_public=pod.is_public,
        ip_address=extract_ip(pod.address),
        port=extract_port(pod.address),
        rpc_port=pod.rpc_port or DEFAULT_RPC_PORT,
    )


def normalize(
    pods: list[RawPod],
    response_time: float = 0.0,
    *,
    now: datetime | None = None,
) -> list[NormalizedNode]:
    """Normalize a batch of raw pods.

    Status is relative to the freshest pod of the whole batch, so the
    reference timestamp is taken before pods without a pubkey are dropped.

    Args:
        pods: Validated raw pods from a single fetch.
        response_time: Proxy round-trip time for the batch, in ms.
        now: Wall-clock time used for ``last_seen_at`` (default: now, UTC).

    Returns:
        One node per pod that has a pubkey, in input order.
    """
    now = now or datetime.now(UTC)
    reference = max_last_seen(pods)

    nodes = [
        normalize_pod(pod, response_time, reference, now)
        for pod in pods
        if pod.pubkey
    ]

    dropped = len(pods) - len(nodes)
    if dropped:
        logger.debug("Dropped %d pod(s) without a pubkey", dropped)

    online = sum(1 for n in nodes if n.status == "online")
    degraded = sum(1 for n in nodes if n.status == "degraded")
    offline = len(nodes) - online - degraded
    logger.info(
        "Nodes: %d online, %d degraded, %d offline", online, degraded, offline
    )
    return nodes
