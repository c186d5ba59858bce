"""Poll cycle: fetch pods and credits concurrently, normalize, enrich."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime

import httpx

from pnw.config import PnwConfig
from pnw.credits import fetch_credits
from pnw.enricher import enrich
from pnw.fetcher import FetchError, fetch_pods
from pnw.geoip import locate
from pnw.models import CycleResult
from pnw.normalizer import normalize

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def client_scope(
    client: httpx.AsyncClient | None = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield *client*, or a fresh client that is closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(follow_redirects=True) as owned:
        yield owned


async def run_cycle(
    config: PnwConfig,
    network: str = "all",
    *,
    client: httpx.AsyncClient | None = None,
    locate_nodes: bool = False,
    now: datetime | None = None,
) -> CycleResult:
    """Run one fetch -> normalize -> enrich cycle.

    The pods request and the credits request(s) are issued concurrently
    and joined before normalization, so enrichment always sees nodes and
    credits from the same cycle.

    Args:
        config: Loaded application configuration.
        network: ``"mainnet"``, ``"devnet"`` or ``"all"``.
        client: Shared HTTP client (default: a client owned by this call).
        locate_nodes: Geolocate node IPs with the configured MaxMind DB.
        now: Wall-clock reference for ``last_seen_at`` (default: now, UTC).

    Returns:
        A ``CycleResult`` with the enriched nodes.

    Raises:
        FetchError: If the pods could not be fetched.
    """
    fetched_at = now or datetime.now(UTC)

    async with client_scope(client) as http:
        fetched, credits = await asyncio.gather(
            fetch_pods(http, config, network),
            fetch_credits(http, config, network),
            return_exceptions=True,
        )

    if isinstance(fetched, BaseException):
        raise fetched
    if isinstance(credits, BaseException):
        logger.warning("Credits fetch failed unexpectedly: %s", credits)
        credits = None

    nodes = normalize(fetched.pods, fetched.response_time, now=fetched_at)

    locations = None
    if locate_nodes and config.maxmind_city_db:
        ips = {node.ip_address for node in nodes}
        try:
            locations = await asyncio.to_thread(locate, ips, config)
        except (OSError, RuntimeError, ValueError) as exc:
            logger.warning("Geolocation failed, continuing without it: %s", exc)

    nodes = enrich(nodes, credits, locations)

    return CycleResult(
        network=network,
        nodes=nodes,
        credits_available=credits is not None,
        fetched_at=fetched_at,
        meta={
            "response_time": fetched.response_time,
            "attempts": fetched.attempts,
            "pod_count": len(fetched.pods),
            "credits": credits,
        },
    )


async def watch(
    config: PnwConfig,
    network: str,
    on_cycle: Callable[[CycleResult], None],
    *,
    interval: float | None = None,
    cycles: int | None = None,
    client: httpx.AsyncClient | None = None,
    locate_nodes: bool = False,
) -> int:
    """Repeat ``run_cycle`` every *interval* seconds.

    A cycle whose fetch fails is logged and skipped; the loop keeps
    polling.  Nothing is carried over between cycles.

    Args:
        config: Loaded application configuration.
        network: Network filter for every cycle.
        on_cycle: Called with each successful ``CycleResult``.
        interval: Seconds between cycles (default: ``config.poll_interval``).
        cycles: Stop after this many cycles; ``None`` runs forever.
        client: Shared HTTP client reused across cycles.
        locate_nodes: Geolocate node IPs each cycle.

    Returns:
        The number of cycles that succeeded.
    """
    interval = config.poll_interval if interval is None else interval
    succeeded = 0
    done = 0

    async with client_scope(client) as http:
        while cycles is None or done < cycles:
            try:
                result = await run_cycle(
                    config, network, client=http, locate_nodes=locate_nodes
                )
            except FetchError as exc:
                logger.error("Poll cycle failed: %s", exc.user_message)
            else:
                succeeded += 1
                on_cycle(result)

            done += 1
            if cycles is None or done < cycles:
                await _sleep(interval)

    return succeeded


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)
