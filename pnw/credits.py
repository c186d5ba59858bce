"""Credits source: per-network credits APIs and the mainnet/devnet merge."""

import asyncio
import logging

import httpx
from pydantic import ValidationError

from pnw.config import PnwConfig
from pnw.schemas import CreditsResponse

logger = logging.getLogger(__name__)


class CreditsError(Exception):
    """Raised when a credits endpoint returns an unusable response."""


def merge_credits(
    devnet: dict[str, float] | None,
    mainnet: dict[str, float] | None,
) -> dict[str, float]:
    """Merge two per-network credits maps, keeping the best value per pod.

    A pod present on both networks is credited once, with the higher of
    its two scores.  A missing map counts as empty.
    """
    merged: dict[str, float] = dict(devnet or {})
    for pod_id, credits in (mainnet or {}).items():
        merged[pod_id] = max(merged.get(pod_id, 0), credits)
    return merged


async def fetch_network_credits(
    client: httpx.AsyncClient,
    url: str,
    timeout: float,
) -> dict[str, float]:
    """Fetch one credits endpoint and return ``pod_id -> credits``.

    Raises:
        CreditsError: On HTTP, transport, JSON or schema failures.
    """
    try:
        response = await client.get(
            url, headers={"Accept": "application/json"}, timeout=timeout
        )
    except httpx.HTTPError as exc:
        raise CreditsError(f"Request to {url} failed: {exc}") from exc

    if response.status_code != 200:
        raise CreditsError(f"{url} returned HTTP {response.status_code}")

    try:
        parsed = CreditsResponse.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise CreditsError(f"Unexpected credits payload from {url}: {exc}") from exc

    if parsed.status is not None and parsed.status != "success":
        raise CreditsError(f"{url} reported status {parsed.status!r}")

    return parsed.to_map()


async def fetch_credits(
    client: httpx.AsyncClient,
    config: PnwConfig,
    network: str = "all",
) -> dict[str, float] | None:
    """Fetch credits for *network*; failures are logged, never raised.

    For ``"all"`` both networks are fetched concurrently and merged with
    ``merge_credits``; one failing network still yields the other's map.

    Returns:
        ``pod_id -> credits``, or ``None`` when no source could be read.
    """
    if network == "all":
        devnet, mainnet = await asyncio.gather(
            _fetch_or_none(client, config.credits_devnet_url, config),
            _fetch_or_none(client, config.credits_mainnet_url, config),
        )
        if devnet is None and mainnet is None:
            return None
        merged = merge_credits(devnet, mainnet)
        logger.info(
            "Credits: %d devnet, %d mainnet, %d merged",
            len(devnet or {}),
            len(mainnet or {}),
            len(merged),
        )
        return merged

    url = config.credits_mainnet_url if network == "mainnet" else config.credits_devnet_url
    return await _fetch_or_none(client, url, config)


async def _fetch_or_none(
    client: httpx.AsyncClient,
    url: str,
    config: PnwConfig,
) -> dict[str, float] | None:
    try:
        return await fetch_network_credits(client, url, config.credits_timeout)
    except CreditsError as exc:
        logger.warning("Credits unavailable: %s", exc)
        return None
