"""Fetcher: get-pods-with-stats over the pRPC proxy, with retry and backoff."""

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx
from pydantic import ValidationError

from pnw.config import PnwConfig
from pnw.models import FetchResult
from pnw.schemas import JsonRpcResponse, PodsPayload, ProxyResponse, parse_pods

logger = logging.getLogger(__name__)

RPC_METHOD = "get-pods-with-stats"

# The proxy only looks at ``method``; the JSON-RPC members let the same
# body be sent straight to a seed node's /rpc endpoint.
_RPC_BODY = {"jsonrpc": "2.0", "method": RPC_METHOD, "id": 1}

MSG_UNAVAILABLE = (
    "The pRPC network is temporarily unavailable. "
    "This usually resolves within a few minutes."
)
MSG_TIMEOUT = (
    "Connection to the pRPC network timed out. "
    "Please check your internet connection."
)
MSG_CONNECT = (
    "Unable to connect to the pRPC network. Please check your internet connection."
)
MSG_SEEDS_DOWN = (
    "All pRPC seed nodes are currently unavailable. "
    "The network may be under maintenance."
)
MSG_GENERIC = "Unable to fetch node data. Please try again later."


class FetchError(Exception):
    """Raised when pods could not be fetched.

    Attributes:
        user_message: Message suitable for showing to an end user.
        retryable: Whether repeating the request may succeed.
        status_code: HTTP status of the failed response, if there was one.
    """

    def __init__(
        self,
        message: str,
        user_message: str,
        *,
        retryable: bool = True,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.user_message = user_message
        self.retryable = retryable
        self.status_code = status_code


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: base, 2*base, 4*base, ... capped at max_delay."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0

    @classmethod
    def from_config(cls, config: PnwConfig) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.backoff_base,
            max_delay=config.backoff_cap,
        )

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the failed *attempt* (1-based)."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


def user_message_for(message: str, status_code: int | None = None) -> str:
    """Map a technical error description to a user-facing message."""
    if status_code in (502, 503, 504):
        return MSG_UNAVAILABLE

    lowered = message.lower()
    if "timeout" in lowered or "timed out" in lowered:
        return MSG_TIMEOUT
    if "all seed nodes failed" in lowered:
        return MSG_SEEDS_DOWN
    if "network" in lowered or "connect" in lowered or "transport" in lowered:
        return MSG_CONNECT
    return MSG_GENERIC


async def fetch_pods(
    client: httpx.AsyncClient,
    config: PnwConfig,
    network: str = "all",
    *,
    policy: RetryPolicy | None = None,
) -> FetchResult:
    """Fetch raw pods from the proxy, retrying transient failures.

    Transport errors, timeouts, HTTP 5xx and ``success: false`` envelopes
    are retried; HTTP 4xx, JSON-RPC errors and malformed payloads are not.

    Args:
        client: Shared async HTTP client.
        config: Loaded application configuration.
        network: ``"mainnet"``, ``"devnet"`` or ``"all"``.
        policy: Retry policy (default: built from *config*).

    Returns:
        A ``FetchResult`` with validated pods and the round-trip time.

    Raises:
        FetchError: On a non-retryable failure, or once attempts run out.
    """
    policy = policy or RetryPolicy.from_config(config)
    attempt = 1

    while True:
        try:
            pods, response_time = await _request_pods(client, config, network)
        except FetchError as exc:
            if exc.retryable and attempt < policy.max_attempts:
                delay = policy.delay(attempt)
                logger.warning(
                    "Attempt %d failed (%s), retrying in %.1fs", attempt, exc, delay
                )
                await _sleep(delay)
                attempt += 1
                continue
            logger.error("Failed after %d attempt(s): %s", attempt, exc)
            raise

        logger.debug(
            "Fetched %d pod(s) in %.0f ms (attempt %d)",
            len(pods),
            response_time,
            attempt,
        )
        return FetchResult(
            pods=pods,
            response_time=response_time,
            network=network,
            attempts=attempt,
        )


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def _request_pods(
    client: httpx.AsyncClient,
    config: PnwConfig,
    network: str,
) -> tuple[list, float]:
    """Issue one request and return ``(pods, response_time_ms)``.

    Raises:
        FetchError: Classified as retryable or not.
    """
    params = {"network": network} if network != "all" else None

    t0 = time.monotonic()
    try:
        response = await client.post(
            config.proxy_url,
            json=_RPC_BODY,
            params=params,
            timeout=config.rpc_timeout,
        )
    except httpx.TimeoutException as exc:
        message = f"Request timed out: {exc}"
        raise FetchError(message, MSG_TIMEOUT, retryable=True) from exc
    except httpx.TransportError as exc:
        message = f"Transport error: {exc}"
        raise FetchError(message, user_message_for(message), retryable=True) from exc
    elapsed_ms = (time.monotonic() - t0) * 1000

    status = response.status_code
    if status >= 400:
        message = f"HTTP {status}: {response.reason_phrase or 'Unknown error'}"
        raise FetchError(
            message,
            user_message_for(message, status),
            retryable=status >= 500,
            status_code=status,
        )

    try:
        body = response.json()
    except ValueError as exc:
        raise _parse_error("Invalid JSON response", status) from exc

    payload, reported_time = _unwrap(body, status)
    pods, dropped = parse_pods(payload.pods)
    if dropped:
        logger.warning("Dropped %d malformed pod record(s)", dropped)

    return pods, reported_time or elapsed_ms


def _unwrap(body: object, status: int) -> tuple[PodsPayload, float]:
    """Validate a proxy or JSON-RPC envelope and return its pod payload."""
    if isinstance(body, dict) and "jsonrpc" in body:
        try:
            rpc = JsonRpcResponse.model_validate(body)
        except ValidationError as exc:
            raise _parse_error(f"Malformed JSON-RPC response: {exc}", status) from exc
        if rpc.error is not None:
            message = f"RPC Error: {rpc.error}"
            raise FetchError(message, MSG_GENERIC, retryable=False, status_code=status)
        return rpc.result or PodsPayload(), 0.0

    try:
        envelope = ProxyResponse.model_validate(body)
    except ValidationError as exc:
        raise _parse_error(f"Malformed proxy response: {exc}", status) from exc

    if not envelope.success:
        message = envelope.error or "Failed to fetch nodes"
        raise FetchError(
            message, user_message_for(message), retryable=True, status_code=status
        )
    return envelope.data or PodsPayload(), envelope.response_time


def _parse_error(message: str, status: int) -> FetchError:
    return FetchError(message, MSG_GENERIC, retryable=False, status_code=status)
