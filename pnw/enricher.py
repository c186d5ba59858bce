"""Enricher: attach credits and geolocation to normalized nodes."""

import dataclasses
import logging

from pnw.models import Location, NormalizedNode

logger = logging.getLogger(__name__)


def enrich(
    nodes: list[NormalizedNode],
    credits: dict[str, float] | None = None,
    locations: dict[str, Location] | None = None,
) -> list[NormalizedNode]:
    """Return copies of *nodes* with credits and location filled in.

    Credits are joined on the public key and locations on the IP address.
    When a credits map is given, nodes missing from it get ``credits = 0``;
    when it is ``None`` (the source could not be read) ``credits`` is left
    unset.  Nodes without a location match keep ``location = None``.

    Args:
        nodes: Output of ``normalize`` for one fetch.
        credits: ``public_key -> credits``, or ``None``.
        locations: ``ip -> Location``, or ``None``.

    Returns:
        New node records, in input order.
    """
    locations = locations or {}
    out: list[NormalizedNode] = []
    matched_credits = 0

    for node in nodes:
        changes: dict[str, object] = {}

        if credits is not None:
            value = credits.get(node.public_key)
            if value is not None:
                matched_credits += 1
            changes["credits"] = value if value is not None else 0

        location = locations.get(node.ip_address)
        if location is not None:
            changes["location"] = location

        out.append(dataclasses.replace(node, **changes) if changes else node)

    if credits is not None:
        logger.debug(
            "Matched credits for %d of %d node(s)", matched_credits, len(nodes)
        )
    return out
