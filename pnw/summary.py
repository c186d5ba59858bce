"""Network summary: an LLM-written report, cached per network for one TTL."""

import json
import logging
import re
import sqlite3

import httpx
from pydantic import ValidationError

from pnw.analytics import NetworkAnalysis, analyze_network
from pnw.cache import TTLCache
from pnw.config import PnwConfig
from pnw.models import NetworkSummary
from pnw.persistence import get_stored_summary, save_summary
from pnw.pipeline import client_scope, run_cycle
from pnw.schemas import ChatCompletion, SummaryReply

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

SYSTEM_PROMPT = "You are a helpful AI assistant that analyzes network data."


class NoNetworkData(Exception):
    """Raised when a summary is requested but the network reported no nodes."""


class SummaryGenerationError(Exception):
    """Raised when the chat endpoint's reply cannot be used."""


class SummaryService:
    """Produce network summaries, generating each at most once per TTL.

    With a database connection, generated summaries are also stored and
    served to later processes until they are ``config.summary_ttl``
    seconds old.

    Args:
        config: Loaded application configuration.
        client: Shared HTTP client (default: one client per generation).
        cache: Summary cache keyed by network (default: a new
            ``TTLCache`` with ``config.summary_ttl``).
        conn: Open database from ``init_db`` (default: in-process only).
    """

    def __init__(
        self,
        config: PnwConfig,
        *,
        client: httpx.AsyncClient | None = None,
        cache: TTLCache | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._conn = conn
        self.cache = cache if cache is not None else TTLCache(config.summary_ttl)

    async def get_summary(
        self, network: str = "all", *, force: bool = False
    ) -> NetworkSummary:
        """Return the summary for *network*, generating it on a cache miss.

        Args:
            network: ``"mainnet"``, ``"devnet"`` or ``"all"``.
            force: Drop any cached summary and generate a new one.

        Raises:
            NoNetworkData: If the fetch returned no nodes.
            FetchError: If the nodes could not be fetched.
        """
        if force:
            logger.info("Force regenerating summary for %s", network)
            self.cache.invalidate(network)
        elif self._conn is not None and network not in self.cache:
            stored = get_stored_summary(self._conn, network, self.cache.ttl)
            if stored is not None:
                logger.info(
                    "Using stored summary for %s from %s", network, stored.generated_at
                )
                return stored
        return await self.cache.get_or_create(network, lambda: self._generate(network))

    async def _generate(self, network: str) -> NetworkSummary:
        logger.info("Generating new summary for %s", network)
        async with client_scope(self._client) as http:
            result = await run_cycle(self._config, network, client=http)
            if not result.nodes:
                raise NoNetworkData(f"No network data available for {network}")
            analysis = analyze_network(result.nodes)
            summary = await generate_summary(http, self._config, analysis, network)

        if self._conn is not None:
            save_summary(self._conn, network, summary)
        return summary


def network_label(network: str) -> str:
    return "All Networks" if network == "all" else network.capitalize()


def build_prompt(analysis: NetworkAnalysis, network: str) -> str:
    """Render the analysis into the instruction sent to the chat model."""
    label = network_label(network)
    versions = ", ".join(
        f"{version}: {count} ({percent:.0f}%)"
        for version, count, percent in analysis.versions[:5]
    )
    return f"""You are a network analyst for Xandeum, a decentralized storage network. \
Analyze the following network data and provide a professional executive summary.

NETWORK: {label}

NETWORK DATA:
- Total pNodes: {analysis.total_nodes}
- Online: {analysis.online_nodes} ({analysis.online_percent:.1f}%)
- Degraded: {analysis.degraded_nodes}
- Offline: {analysis.offline_nodes}
- Average Uptime (24h): {analysis.avg_uptime:.1f}%
- Average Health Score: {analysis.avg_health:.1f}/100
- Version distribution: {versions}

INSTRUCTIONS:
1. Write a title "Xandeum {label} pNode Network Analysis".
2. Write 2-3 paragraphs analyzing the network health, performance, and version adoption.
3. Use **bold** for key metrics and positive/negative indicators.
4. Provide one "Key Recommendation" at the end.

Respond ONLY with valid JSON in this format:
{{
  "title": "Xandeum {label} pNode Network Analysis",
  "content": "Markdown content with paragraphs and **bold** highlights...",
  "keyRecommendation": "Your recommendation here..."
}}"""


def fallback_summary(analysis: NetworkAnalysis, network: str) -> NetworkSummary:
    """Template summary used whenever the chat model is unavailable."""
    label = network_label(network)
    if analysis.versions:
        top_version, _, top_percent = analysis.versions[0]
    else:
        top_version, top_percent = "unknown", 0.0

    content = (
        f"The Xandeum {label.lower()} network currently has "
        f"**{analysis.total_nodes} pNodes** with "
        f"**{analysis.online_percent:.1f}% online**. "
        f"The average health score is **{analysis.avg_health:.1f}/100**.\n\n"
        f"Version adoption shows **{top_version}** is the dominant version "
        f"with **{top_percent:.1f}%** of nodes."
    )
    return NetworkSummary(
        title=f"Xandeum {label} pNode Network Analysis",
        content=content,
        key_recommendation=(
            "Ensure all nodes are running the latest version for optimal performance."
        ),
    )


async def generate_summary(
    client: httpx.AsyncClient,
    config: PnwConfig,
    analysis: NetworkAnalysis,
    network: str,
) -> NetworkSummary:
    """Ask the chat endpoint for a summary, falling back to the template.

    Never raises: a missing API key, an HTTP failure or an unusable reply
    all produce ``fallback_summary``.
    """
    if not config.llm_api_key:
        logger.info("No llm_api_key configured; using template summary")
        return fallback_summary(analysis, network)

    try:
        reply = await _request_summary(client, config, build_prompt(analysis, network))
    except (httpx.HTTPError, SummaryGenerationError) as exc:
        logger.error("AI summary generation failed: %s", exc)
        return fallback_summary(analysis, network)

    return NetworkSummary(
        title=reply.title or "Xandeum pNode Network Analysis",
        content=reply.content or "Analysis unavailable.",
        key_recommendation=reply.key_recommendation or "Monitor network health.",
    )


async def _request_summary(
    client: httpx.AsyncClient,
    config: PnwConfig,
    prompt: str,
) -> SummaryReply:
    response = await client.post(
        config.llm_api_url,
        headers={"Authorization": f"Bearer {config.llm_api_key}"},
        json={
            "model": config.llm_model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": 1000,
            "temperature": 0.7,
        },
        timeout=config.rpc_timeout,
    )
    response.raise_for_status()

    try:
        completion = ChatCompletion.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        raise SummaryGenerationError(f"Unexpected completion payload: {exc}") from exc

    content = completion.choices[0].message.content or ""
    match = _JSON_OBJECT_RE.search(content)
    if not match:
        raise SummaryGenerationError("No JSON found in AI response")

    try:
        return SummaryReply.model_validate(json.loads(match.group(0)))
    except (ValueError, ValidationError) as exc:
        raise SummaryGenerationError(f"Unparsable AI response: {exc}") from exc
