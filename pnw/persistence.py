"""SQLite persistence: history snapshots, per-node rows, summaries, migrations."""

import logging
import sqlite3
from datetime import UTC, datetime, timedelta

from pnw.models import NetworkSummary, NormalizedNode, Snapshot

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 2

_SCHEMA_V1 = """\
CREATE TABLE IF NOT EXISTS snapshots (
    id                   INTEGER PRIMARY KEY AUTOINCREMENT,
    network              TEXT NOT NULL,
    timestamp            TEXT NOT NULL,
    total_nodes          INTEGER NOT NULL,
    online_nodes         INTEGER NOT NULL,
    degraded_nodes       INTEGER NOT NULL,
    offline_nodes        INTEGER NOT NULL,
    total_storage_bytes  INTEGER NOT NULL,
    used_storage_bytes   INTEGER NOT NULL,
    avg_uptime           REAL NOT NULL,
    avg_health_score     REAL NOT NULL,
    total_credits        REAL NOT NULL,
    avg_credits          REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_timestamp ON snapshots (timestamp);

CREATE TABLE IF NOT EXISTS node_snapshots (
    id                     INTEGER PRIMARY KEY AUTOINCREMENT,
    snapshot_id            INTEGER NOT NULL
                           REFERENCES snapshots (id) ON DELETE CASCADE,
    node_id                TEXT NOT NULL,
    public_key             TEXT,
    status                 TEXT NOT NULL,
    uptime_percent         REAL NOT NULL,
    storage_usage_percent  REAL NOT NULL,
    health_score           INTEGER NOT NULL,
    credits                REAL NOT NULL,
    version                TEXT,
    is_public              INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_node_snapshots_node ON node_snapshots (node_id);
"""

_SCHEMA_V2 = """\
CREATE TABLE IF NOT EXISTS summaries (
    network             TEXT PRIMARY KEY,
    generated_at        TEXT NOT NULL,
    title               TEXT NOT NULL,
    content             TEXT NOT NULL,
    key_recommendation  TEXT NOT NULL
);
"""

_SNAPSHOT_COLUMNS = (
    "id, network, timestamp, total_nodes, online_nodes, degraded_nodes, "
    "offline_nodes, total_storage_bytes, used_storage_bytes, avg_uptime, "
    "avg_health_score, total_credits, avg_credits"
)


def init_db(db_path: str) -> sqlite3.Connection:
    """Open (or create) the SQLite database and apply pending migrations.

    Args:
        db_path: Filesystem path for the database, or ``":memory:"`` for
            an in-memory database (useful in tests).

    Returns:
        An open ``sqlite3.Connection`` with WAL journal mode and foreign
        keys enabled.
    """
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute("PRAGMA foreign_keys = ON")
    conn.row_factory = sqlite3.Row
    _migrate(conn)
    return conn


def save_snapshot(
    conn: sqlite3.Connection,
    snapshot: Snapshot,
    nodes: list[NormalizedNode],
) -> int:
    """Persist a snapshot and its per-node rows.

    Node rows are de-duplicated by node id (the last occurrence wins).
    The generated row id is written back to ``snapshot.id``.

    Args:
        conn: Open database connection (from ``init_db``).
        snapshot: Aggregate record to persist.
        nodes: The nodes the snapshot was computed from.

    Returns:
        The new snapshot id.
    """
    cur = conn.execute(
        "INSERT INTO snapshots (network, timestamp, total_nodes, online_nodes, "
        "degraded_nodes, offline_nodes, total_storage_bytes, used_storage_bytes, "
        "avg_uptime, avg_health_score, total_credits, avg_credits) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            snapshot.network,
            snapshot.timestamp.isoformat(),
            snapshot.total_nodes,
            snapshot.online_nodes,
            snapshot.degraded_nodes,
            snapshot.offline_nodes,
            snapshot.total_storage_bytes,
            snapshot.used_storage_bytes,
            snapshot.avg_uptime,
            snapshot.avg_health_score,
            snapshot.total_credits,
            snapshot.avg_credits,
        ),
    )
    snapshot_id = cur.lastrowid
    snapshot.id = snapshot_id

    by_id = {n.id: n for n in nodes}
    rows = [
        (
            snapshot_id,
            n.id,
            n.public_key,
            n.status,
            n.uptime_percent,
            n.storage.usage_percent,
            n.health_score,
            n.credits or 0,
            n.version,
            int(n.is_public),
        )
        for n in by_id.values()
    ]
    conn.executemany(
        "INSERT INTO node_snapshots (snapshot_id, node_id, public_key, status, "
        "uptime_percent, storage_usage_percent, health_score, credits, version, "
        "is_public) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        rows,
    )
    conn.commit()
    logger.debug("Saved snapshot %d with %d node row(s)", snapshot_id, len(rows))
    return snapshot_id


def get_network_history(
    conn: sqlite3.Connection,
    days: int = 7,
    network: str | None = None,
    *,
    now: datetime | None = None,
) -> list[Snapshot]:
    """Return snapshots from the last *days* days, oldest first.

    Args:
        conn: Open database connection.
        days: How far back to look.
        network: Restrict to one network; ``None`` returns all networks.
        now: Reference time (default: now, UTC).
    """
    cutoff = _cutoff(days, now)
    sql = f"SELECT {_SNAPSHOT_COLUMNS} FROM snapshots WHERE timestamp >= ?"
    params: list[object] = [cutoff]
    if network:
        sql += " AND network = ?"
        params.append(network)
    sql += " ORDER BY timestamp ASC, id ASC"

    return [_row_to_snapshot(row) for row in conn.execute(sql, params).fetchall()]


def get_node_history(
    conn: sqlite3.Connection,
    node_id: str,
    days: int = 30,
    *,
    now: datetime | None = None,
) -> list[dict]:
    """Return one node's per-snapshot figures from the last *days* days."""
    rows = conn.execute(
        "SELECT s.timestamp, n.status, n.uptime_percent, n.storage_usage_percent, "
        "n.health_score, n.credits, n.version "
        "FROM node_snapshots n JOIN snapshots s ON s.id = n.snapshot_id "
        "WHERE n.node_id = ? AND s.timestamp >= ? "
        "ORDER BY s.timestamp ASC, s.id ASC",
        (node_id, _cutoff(days, now)),
    ).fetchall()
    return [dict(row) for row in rows]


def get_latest_snapshot(
    conn: sqlite3.Connection,
    network: str | None = None,
) -> Snapshot | None:
    sql = f"SELECT {_SNAPSHOT_COLUMNS} FROM snapshots"
    params: list[object] = []
    if network:
        sql += " WHERE network = ?"
        params.append(network)
    sql += " ORDER BY timestamp DESC, id DESC LIMIT 1"

    row = conn.execute(sql, params).fetchone()
    return _row_to_snapshot(row) if row else None


def prune_snapshots(
    conn: sqlite3.Connection,
    keep_days: int = 30,
    *,
    now: datetime | None = None,
) -> int:
    """Delete snapshots older than *keep_days*; node rows cascade.

    Returns:
        The number of snapshots deleted.
    """
    cur = conn.execute(
        "DELETE FROM snapshots WHERE timestamp < ?", (_cutoff(keep_days, now),)
    )
    conn.commit()
    if cur.rowcount:
        logger.info("Pruned %d snapshot(s) older than %d days", cur.rowcount, keep_days)
    return cur.rowcount


def save_summary(
    conn: sqlite3.Connection,
    network: str,
    summary: NetworkSummary,
) -> None:
    """Store *summary* as the latest one for *network*, replacing any older one."""
    conn.execute(
        "INSERT OR REPLACE INTO summaries (network, generated_at, title, content, "
        "key_recommendation) VALUES (?, ?, ?, ?, ?)",
        (
            network,
            summary.generated_at.isoformat(),
            summary.title,
            summary.content,
            summary.key_recommendation,
        ),
    )
    conn.commit()


def get_stored_summary(
    conn: sqlite3.Connection,
    network: str,
    max_age: float,
    *,
    now: datetime | None = None,
) -> NetworkSummary | None:
    """Return the stored summary for *network* if younger than *max_age* seconds."""
    cutoff = (now or datetime.now(UTC)) - timedelta(seconds=max_age)
    row = conn.execute(
        "SELECT generated_at, title, content, key_recommendation "
        "FROM summaries WHERE network = ? AND generated_at > ?",
        (network, cutoff.isoformat()),
    ).fetchone()
    if row is None:
        return None
    return NetworkSummary(
        title=row["title"],
        content=row["content"],
        key_recommendation=row["key_recommendation"],
        generated_at=datetime.fromisoformat(row["generated_at"]),
    )


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _cutoff(days: int, now: datetime | None) -> str:
    return ((now or datetime.now(UTC)) - timedelta(days=days)).isoformat()


def _row_to_snapshot(row: sqlite3.Row) -> Snapshot:
    return Snapshot(
        id=row["id"],
        network=row["network"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
        total_nodes=row["total_nodes"],
        online_nodes=row["online_nodes"],
        degraded_nodes=row["degraded_nodes"],
        offline_nodes=row["offline_nodes"],
        total_storage_bytes=row["total_storage_bytes"],
        used_storage_bytes=row["used_storage_bytes"],
        avg_uptime=row["avg_uptime"],
        avg_health_score=row["avg_health_score"],
        total_credits=row["total_credits"],
        avg_credits=row["avg_credits"],
    )


def _migrate(conn: sqlite3.Connection) -> None:
    """Apply database migrations up to ``_SCHEMA_VERSION``.

    Uses the SQLite ``user_version`` pragma to track the current schema
    version.  Each version bump is applied in order so that databases
    created at any prior version are brought up to date.
    """
    (current,) = conn.execute("PRAGMA user_version").fetchone()

    if current >= _SCHEMA_VERSION:
        return

    if current < 1:
        logger.debug("Applying schema migration v0 -> v1")
        conn.executescript(_SCHEMA_V1)

    if current < 2:
        logger.debug("Applying schema migration v1 -> v2")
        conn.executescript(_SCHEMA_V2)

    conn.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
    conn.commit()
    logger.debug("Database schema at version %d", _SCHEMA_VERSION)
