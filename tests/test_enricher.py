"""Tests for pnw.enricher — credits and location joins."""

from datetime import UTC, datetime

from pnw.enricher import enrich
from pnw.models import Location, NormalizedNode, Storage


def _node(public_key: str = "PK1", ip: str = "1.2.3.4") -> NormalizedNode:
    return NormalizedNode(
        id=f"{public_key}-34",
        public_key=public_key,
        status="online",
        uptime_seconds=86400,
        uptime_percent=100.0,
        health_score=100,
        response_time=10.0,
        storage=Storage(),
        last_seen_timestamp=0,
        last_seen_at=datetime(2026, 1, 1, tzinfo=UTC),
        ip_address=ip,
    )


class TestEnrichCredits:
    def test_credits_joined_by_public_key(self) -> None:
        (node,) = enrich([_node("PK1")], {"PK1": 42.0})
        assert node.credits == 42.0

    def test_missing_from_map_is_zero(self) -> None:
        (node,) = enrich([_node("PK1")], {"OTHER": 1.0})
        assert node.credits == 0

    def test_no_map_leaves_credits_unset(self) -> None:
        (node,) = enrich([_node("PK1")], None)
        assert node.credits is None

    def test_shared_pubkey_gets_same_credits(self) -> None:
        nodes = enrich([_node("PK1", "1.1.1.1"), _node("PK1", "2.2.2.2")], {"PK1": 5})
        assert [n.credits for n in nodes] == [5, 5]


class TestEnrichLocation:
    def test_location_joined_by_ip(self) -> None:
        loc = Location(country="Germany", country_code="DE")
        a, b = enrich([_node(ip="1.1.1.1"), _node(ip="2.2.2.2")], None, {"1.1.1.1": loc})

        assert a.location == loc
        assert b.location is None


class TestEnrichPurity:
    def test_inputs_not_mutated(self) -> None:
        original = _node()
        (enriched,) = enrich([original], {"PK1": 3.0})

        assert original.credits is None
        assert enriched is not original

    def test_order_preserved(self) -> None:
        nodes = [_node(f"PK{i}") for i in range(4)]
        assert [n.public_key for n in enrich(nodes, {})] == ["PK0", "PK1", "PK2", "PK3"]

    def test_empty_input(self) -> None:
        assert enrich([], {"PK1": 1.0}) == []
