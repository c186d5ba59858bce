"""Tests for pnw.persistence — SQLite snapshot storage."""

import sqlite3
from datetime import UTC, datetime, timedelta

import pytest

from pnw.models import NetworkSummary, NormalizedNode, Snapshot, Storage
from pnw.persistence import (
    _SCHEMA_V1,
    _SCHEMA_VERSION,
    get_latest_snapshot,
    get_network_history,
    get_node_history,
    get_stored_summary,
    init_db,
    prune_snapshots,
    save_snapshot,
    save_summary,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def conn() -> sqlite3.Connection:
    """In-memory database, closed after each test."""
    c = init_db(":memory:")
    yield c
    c.close()


def _snapshot(
    network: str = "all",
    timestamp: datetime = NOW,
    total: int = 2,
) -> Snapshot:
    return Snapshot(
        network=network,
        total_nodes=total,
        online_nodes=1,
        degraded_nodes=0,
        offline_nodes=1,
        total_storage_bytes=2000,
        used_storage_bytes=500,
        avg_uptime=75.0,
        avg_health_score=60.0,
        total_credits=40.0,
        avg_credits=20.0,
        timestamp=timestamp,
    )


def _node(node_id: str = "ABCDEFGH-34", health: int = 100) -> NormalizedNode:
    return NormalizedNode(
        id=node_id,
        public_key="ABCDEFGH12",
        status="online",
        uptime_seconds=86400,
        uptime_percent=100.0,
        health_score=health,
        response_time=10.0,
        storage=Storage(total=1000, used=100, usage_percent=10.0),
        last_seen_timestamp=0,
        last_seen_at=NOW,
        version="0.8.0",
        credits=12.0,
    )


class TestInitDb:
    def test_schema_version_set(self, conn: sqlite3.Connection) -> None:
        (version,) = conn.execute("PRAGMA user_version").fetchone()
        assert version == _SCHEMA_VERSION

    def test_tables_created(self, conn: sqlite3.Connection) -> None:
        names = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"snapshots", "node_snapshots", "summaries"} <= names

    def test_upgrades_v1_database(self, tmp_path) -> None:
        path = str(tmp_path / "pnw.db")
        old = sqlite3.connect(path)
        old.executescript(_SCHEMA_V1)
        old.execute("PRAGMA user_version = 1")
        old.commit()
        old.close()

        c = init_db(path)
        try:
            (version,) = c.execute("PRAGMA user_version").fetchone()
            assert version == _SCHEMA_VERSION
            assert get_stored_summary(c, "all", 3600) is None
        finally:
            c.close()

    def test_reopen_is_idempotent(self, tmp_path) -> None:
        path = str(tmp_path / "pnw.db")
        init_db(path).close()
        c = init_db(path)
        try:
            (version,) = c.execute("PRAGMA user_version").fetchone()
            assert version == _SCHEMA_VERSION
        finally:
            c.close()


class TestSaveSnapshot:
    def test_assigns_id(self, conn: sqlite3.Connection) -> None:
        snap = _snapshot()
        snapshot_id = save_snapshot(conn, snap, [_node()])

        assert snapshot_id is not None
        assert snap.id == snapshot_id

    def test_write_then_read(self, conn: sqlite3.Connection) -> None:
        snap = _snapshot()
        save_snapshot(conn, snap, [_node()])

        (stored,) = get_network_history(conn, 7, now=NOW)
        assert stored == snap

    def test_node_rows_deduplicated(self, conn: sqlite3.Connection) -> None:
        save_snapshot(conn, _snapshot(), [_node(health=50), _node(health=90)])

        rows = conn.execute("SELECT health_score FROM node_snapshots").fetchall()
        assert [r["health_score"] for r in rows] == [90]


class TestNetworkHistory:
    def test_ordered_oldest_first(self, conn: sqlite3.Connection) -> None:
        save_snapshot(conn, _snapshot(timestamp=NOW - timedelta(hours=1), total=5), [])
        save_snapshot(conn, _snapshot(timestamp=NOW - timedelta(hours=3), total=3), [])

        history = get_network_history(conn, 7, now=NOW)
        assert [s.total_nodes for s in history] == [3, 5]

    def test_excludes_older_than_window(self, conn: sqlite3.Connection) -> None:
        save_snapshot(conn, _snapshot(timestamp=NOW - timedelta(days=8)), [])
        save_snapshot(conn, _snapshot(timestamp=NOW - timedelta(days=1)), [])

        assert len(get_network_history(conn, 7, now=NOW)) == 1

    def test_network_filter(self, conn: sqlite3.Connection) -> None:
        save_snapshot(conn, _snapshot(network="devnet"), [])
        save_snapshot(conn, _snapshot(network="mainnet"), [])

        history = get_network_history(conn, 7, "devnet", now=NOW)
        assert [s.network for s in history] == ["devnet"]


class TestNodeHistory:
    def test_rows_for_node(self, conn: sqlite3.Connection) -> None:
        save_snapshot(conn, _snapshot(timestamp=NOW - timedelta(hours=2)), [_node(health=80)])
        save_snapshot(conn, _snapshot(timestamp=NOW - timedelta(hours=1)), [_node(health=90)])
        save_snapshot(conn, _snapshot(), [_node("OTHER-11")])

        rows = get_node_history(conn, "ABCDEFGH-34", 30, now=NOW)

        assert [r["health_score"] for r in rows] == [80, 90]
        assert rows[0]["credits"] == 12.0
        assert rows[0]["version"] == "0.8.0"
        assert rows[0]["status"] == "online"

    def test_unknown_node(self, conn: sqlite3.Connection) -> None:
        assert get_node_history(conn, "nope", now=NOW) == []


class TestLatestAndPrune:
    def test_latest(self, conn: sqlite3.Connection) -> None:
        save_snapshot(conn, _snapshot(timestamp=NOW - timedelta(hours=1), total=1), [])
        save_snapshot(conn, _snapshot(total=9), [])

        assert get_latest_snapshot(conn).total_nodes == 9

    def test_latest_empty(self, conn: sqlite3.Connection) -> None:
        assert get_latest_snapshot(conn) is None

    def test_prune_cascades(self, conn: sqlite3.Connection) -> None:
        save_snapshot(conn, _snapshot(timestamp=NOW - timedelta(days=40)), [_node()])
        save_snapshot(conn, _snapshot(), [_node()])

        assert prune_snapshots(conn, 30, now=NOW) == 1
        (count,) = conn.execute("SELECT COUNT(*) FROM node_snapshots").fetchone()
        assert count == 1
        assert len(get_network_history(conn, 365, now=NOW)) == 1

    def test_latest_for_network(self, conn: sqlite3.Connection) -> None:
        save_snapshot(conn, _snapshot(network="devnet", total=3), [])
        save_snapshot(conn, _snapshot(network="mainnet", total=7), [])

        assert get_latest_snapshot(conn, "devnet").total_nodes == 3
        assert get_latest_snapshot(conn, "all") is None


class TestSummaries:
    def _summary(self, generated_at: datetime, content: str = "Body") -> NetworkSummary:
        return NetworkSummary(
            title="Title",
            content=content,
            key_recommendation="Upgrade",
            generated_at=generated_at,
        )

    def test_write_then_read(self, conn: sqlite3.Connection) -> None:
        save_summary(conn, "devnet", self._summary(NOW - timedelta(minutes=10)))

        stored = get_stored_summary(conn, "devnet", 3600, now=NOW)

        assert stored == self._summary(NOW - timedelta(minutes=10))

    def test_older_than_max_age_ignored(self, conn: sqlite3.Connection) -> None:
        save_summary(conn, "devnet", self._summary(NOW - timedelta(hours=1)))
        assert get_stored_summary(conn, "devnet", 3600, now=NOW) is None

    def test_replaced_per_network(self, conn: sqlite3.Connection) -> None:
        save_summary(conn, "devnet", self._summary(NOW, content="first"))
        save_summary(conn, "devnet", self._summary(NOW, content="second"))
        save_summary(conn, "mainnet", self._summary(NOW, content="other"))

        assert get_stored_summary(conn, "devnet", 60, now=NOW).content == "second"
        assert get_stored_summary(conn, "mainnet", 60, now=NOW).content == "other"
        assert get_stored_summary(conn, "all", 60, now=NOW) is None
