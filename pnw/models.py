"""Data models: NormalizedNode, Location, FetchResult, NetworkStats, Snapshot."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

Status = Literal["online", "degraded", "offline"]
Network = Literal["mainnet", "devnet", "all"]

NETWORKS: tuple[str, ...] = ("mainnet", "devnet", "all")


@dataclass(frozen=True)
class Storage:
    """Storage figures reported by a pod, in bytes and percent."""

    total: int = 0
    used: int = 0
    usage_percent: float = 0.0


@dataclass(frozen=True)
class Location:
    """Geolocation of a node's IP address.

    Attributes:
        country: Country name from GeoLite2-City.
        country_code: ISO 3166-1 alpha-2 country code.
        city: City name from GeoLite2-City.
        region: Continent name, used for regional grouping.
        latitude: Latitude from GeoLite2-City.
        longitude: Longitude from GeoLite2-City.
    """

    country: str | None = None
    country_code: str | None = None
    city: str | None = None
    region: str | None = None
    latitude: float | None = None
    longitude: float | None = None


@dataclass(frozen=True)
class NormalizedNode:
    """A pod as displayed: raw telemetry plus derived status and scores.

    Records are recomputed from scratch every poll cycle and never
    mutated; enrichment produces new instances.

    Attributes:
        id: Stable identifier built from the pubkey and IP address.
        public_key: The pod's public key.
        status: Freshness relative to the most recently seen pod in the batch.
        uptime_seconds: Raw consecutive uptime reported by the pod.
        uptime_percent: Derived 0-100 uptime figure with staleness penalty.
        health_score: Derived 0-100 composite score.
        response_time: Proxy round-trip time for the batch, in milliseconds.
        storage: Committed / used storage.
        last_seen_timestamp: Unix seconds the pod was last seen.
        last_seen_at: Wall-clock estimate of when the pod was last seen.
        version: Software version, ``"unknown"`` if not reported.
        is_public: Whether the pod's RPC port is publicly reachable.
        ip_address: IP portion of the pod's address.
        port: Port portion of the pod's address.
        rpc_port: pRPC port of the pod.
        location: Set by the enricher when geolocation succeeded.
        credits: Set by the enricher when a credits map was available.
    """

    id: str
    public_key: str
    status: Status
    uptime_seconds: int
    uptime_percent: float
    health_score: int
    response_time: float
    storage: Storage
    last_seen_timestamp: int
    last_seen_at: datetime
    version: str = "unknown"
    is_public: bool = False
    ip_address: str = ""
    port: int = 9001
    rpc_port: int = 6000
    location: Location | None = None
    credits: float | None = None


@dataclass
class FetchResult:
    """Raw pods returned by one successful proxy call.

    Attributes:
        pods: Validated raw pod records (``pnw.schemas.RawPod``).
        response_time: Round-trip time reported by the proxy, in ms.
        network: Network filter the request was made with.
        attempts: Number of requests it took to get this result.
    """

    pods: list
    response_time: float
    network: str = "all"
    attempts: int = 1


@dataclass
class CycleResult:
    """Output of one poll cycle: enriched nodes for a network.

    Attributes:
        network: Network filter the cycle ran with.
        nodes: Normalized, enriched nodes.
        credits_available: False when every credits source failed.
        fetched_at: When the cycle started (UTC).
        meta: Extra information (response time, dropped pods, ...).
    """

    network: str
    nodes: list[NormalizedNode]
    credits_available: bool = True
    fetched_at: datetime = field(
        default_factory=lambda: datetime.now(UTC),
    )
    meta: dict = field(default_factory=dict)


@dataclass
class NetworkStats:
    """Aggregate statistics over one batch of nodes."""

    total_nodes: int = 0
    online_nodes: int = 0
    degraded_nodes: int = 0
    offline_nodes: int = 0
    public_nodes: int = 0
    private_nodes: int = 0
    elite_nodes: int = 0
    avg_uptime: float = 0.0
    avg_response_time: int = 0
    total_storage: int = 0
    used_storage: int = 0
    storage_utilization: float = 0.0
    health_score: float = 0.0
    avg_health_score: float = 0.0
    version_distribution: dict[str, int] = field(default_factory=dict)
    total_credits: float = 0
    avg_credits: int = 0
    credits_threshold: int = 0


@dataclass
class Snapshot:
    """Aggregate record written to the history store once per interval.

    Attributes:
        network: ``"mainnet"``, ``"devnet"`` or ``"all"``.
        id: Row id assigned at persist time; None until persisted.
        timestamp: When the snapshot was taken (UTC).
    """

    network: str
    total_nodes: int
    online_nodes: int
    degraded_nodes: int
    offline_nodes: int
    total_storage_bytes: int
    used_storage_bytes: int
    avg_uptime: float
    avg_health_score: float
    total_credits: float
    avg_credits: float
    id: int | None = None
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC),
    )


@dataclass
class NetworkSummary:
    """Human-readable network report, generated at most once per TTL."""

    title: str
    content: str
    key_recommendation: str
    generated_at: datetime = field(
        default_factory=lambda: datetime.now(UTC),
    )
