"""Tests for the output renderer."""

import json
from datetime import UTC, datetime
from io import StringIO

import pytest

from pnw.models import (
    CycleResult,
    Location,
    NetworkSummary,
    NormalizedNode,
    Snapshot,
    Storage,
)
from pnw.output import (
    _fmt,
    format_bytes,
    render,
    render_history,
    render_node_history,
    render_summary,
    render_to_string,
)

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

# -- Fixtures ----------------------------------------------------------------


def _make_node(**overrides: object) -> NormalizedNode:
    """Create a ``NormalizedNode`` with sensible defaults, overridable."""
    defaults: dict = {
        "id": "ABCDEFGH-34",
        "public_key": "ABCDEFGH12",
        "status": "online",
        "uptime_seconds": 86400,
        "uptime_percent": 100.0,
        "health_score": 100,
        "response_time": 80.0,
        "storage": Storage(total=2048, used=1024, usage_percent=50.0),
        "last_seen_timestamp": 1_700_000_000,
        "last_seen_at": NOW,
        "version": "0.8.0",
        "ip_address": "1.2.3.4",
    }
    defaults.update(overrides)
    return NormalizedNode(**defaults)


def _result(credits_available: bool = True) -> CycleResult:
    nodes = [
        _make_node(credits=120.0, location=Location(country="Germany")),
        _make_node(
            id="STALEPOD-78",
            public_key="STALEPOD99",
            status="offline",
            uptime_percent=99.3,
            health_score=30,
            ip_address="5.6.7.8",
            version="0.7.0",
            credits=None,
        ),
    ]
    return CycleResult(
        network="devnet",
        nodes=nodes,
        credits_available=credits_available,
        fetched_at=NOW,
    )


# -- Dispatch ----------------------------------------------------------------


class TestRenderDispatch:
    def test_unknown_format_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown output format"):
            render(_result(), "xml", file=StringIO())

    def test_unknown_view_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown view"):
            render(_result(), "table", view="map", file=StringIO())

    def test_table_format_produces_output(self) -> None:
        assert render_to_string(_result(), "table").strip()

    def test_json_format_produces_valid_json(self) -> None:
        json.loads(render_to_string(_result(), "json"))


# -- Nodes table ---------------------------------------------------------------


class TestNodesTable:
    def test_contains_node_count_in_title(self) -> None:
        assert "devnet: 2 nodes" in render_to_string(_result(), "table")

    def test_contains_ids_and_ips(self) -> None:
        out = render_to_string(_result(), "table")
        for text in ("ABCDEFGH-34", "STALEPOD-78", "1.2.3.4", "5.6.7.8"):
            assert text in out

    def test_contains_country(self) -> None:
        assert "Germany" in render_to_string(_result(), "table")

    def test_summary_line_present(self) -> None:
        out = render_to_string(_result(), "table")
        assert "1 online, 0 degraded, 1 offline" in out

    def test_credits_unavailable_noted(self) -> None:
        out = render_to_string(_result(credits_available=False), "table")
        assert "credits unavailable" in out

    def test_none_fields_show_dash(self) -> None:
        assert "—" in render_to_string(_result(), "table")

    def test_ids_not_truncated_at_80_columns(self) -> None:
        out = render_to_string(_result(), "table", width=80)
        assert "ABCDEFGH-34" in out
        assert "STALEPOD-78" in out

    def test_bracketed_values_rendered_literally(self) -> None:
        node = _make_node(
            version="0.8.0[/trynet]",
            location=Location(country="[bold]Atlantis"),
        )
        result = CycleResult(network="devnet", nodes=[node], fetched_at=NOW)

        out = render_to_string(result, "table")

        assert "0.8.0[/trynet]" in out
        assert "[bold]Atlantis" in out


# -- Stats table ---------------------------------------------------------------


class TestStatsTable:
    def test_contains_heading_and_overview(self) -> None:
        out = render_to_string(_result(), "table", view="stats")
        assert "devnet network statistics" in out
        assert "Total nodes" in out
        assert "Network health" in out

    def test_contains_versions(self) -> None:
        out = render_to_string(_result(), "table", view="stats")
        assert "0.8.0" in out
        assert "0.7.0" in out

    def test_contains_storage_sizes(self) -> None:
        out = render_to_string(_result(), "table", view="stats")
        assert "4.0 KB" in out

    def test_top_nodes_with_badge(self) -> None:
        out = render_to_string(_result(), "table", view="stats")
        assert "Top nodes by credits" in out
        assert "elite" in out

    def test_version_channel_and_status(self) -> None:
        out = render_to_string(_result(), "table", view="stats")
        assert "Latest version" in out
        assert "mainnet" in out
        assert "current" in out
        assert "outdated" in out

    def test_top_nodes_by_health_excludes_offline(self) -> None:
        out = render_to_string(_result(), "table", view="stats")
        section = out.split("Top nodes by health")[1].split("Issues")[0]
        assert "ABCDEFGH-34" in section
        assert "STALEPOD-78" not in section

    def test_offline_nodes_listed_as_issues(self) -> None:
        out = render_to_string(_result(), "table", view="stats")
        assert "Issues (1)" in out
        assert "Node STALEPOD-78 is offline" in out

    def test_no_issues(self) -> None:
        result = CycleResult(network="devnet", nodes=[_make_node()], fetched_at=NOW)
        assert "No issues detected" in render_to_string(result, "table", view="stats")

    def test_bracketed_version_rendered_literally(self) -> None:
        node = _make_node(version="0.8.0[/trynet]")
        result = CycleResult(network="devnet", nodes=[node], fetched_at=NOW)

        out = render_to_string(result, "table", view="stats")

        assert "0.8.0[/trynet]" in out


# -- JSON ----------------------------------------------------------------------


class TestJsonOutput:
    def test_nodes_view_keys(self) -> None:
        data = json.loads(render_to_string(_result(), "json"))

        assert set(data) == {"network", "fetched_at", "credits_available", "nodes"}
        assert data["network"] == "devnet"
        assert len(data["nodes"]) == 2

    def test_node_fields(self) -> None:
        data = json.loads(render_to_string(_result(), "json"))
        node = data["nodes"][0]

        assert node["id"] == "ABCDEFGH-34"
        assert node["status"] == "online"
        assert node["credits"] == 120.0
        assert node["storage"]["usage_percent"] == 50.0
        assert node["location"]["country"] == "Germany"
        assert node["last_seen_at"].startswith("2026-01-01")

    def test_stats_view(self) -> None:
        data = json.loads(render_to_string(_result(), "json", view="stats"))

        assert data["stats"]["total_nodes"] == 2
        assert data["stats"]["online_nodes"] == 1
        assert data["countries"] == [["Germany", 1]]
        assert [n["id"] for n in data["top_nodes"]] == ["ABCDEFGH-34"]
        assert data["latest_version"] == "0.8.0"
        assert data["top_by_health"] == ["ABCDEFGH-34"]
        assert data["issues"] == [
            {
                "node_id": "STALEPOD-78",
                "type": "offline",
                "severity": "high",
                "message": "Node STALEPOD-78 is offline",
            }
        ]


# -- History and summary --------------------------------------------------------


def _snapshot() -> Snapshot:
    return Snapshot(
        network="devnet",
        total_nodes=2,
        online_nodes=1,
        degraded_nodes=0,
        offline_nodes=1,
        total_storage_bytes=4096,
        used_storage_bytes=2048,
        avg_uptime=99.65,
        avg_health_score=65.0,
        total_credits=120.0,
        avg_credits=120.0,
        id=1,
        timestamp=NOW,
    )


class TestHistoryOutput:
    def test_table(self) -> None:
        buf = StringIO()
        render_history([_snapshot()], "table", file=buf, width=200)
        out = buf.getvalue()

        assert "2026-01-01 12:00" in out
        assert "devnet" in out

    def test_empty_table(self) -> None:
        buf = StringIO()
        render_history([], "table", file=buf, width=200)
        assert "No snapshots recorded" in buf.getvalue()

    def test_json(self) -> None:
        buf = StringIO()
        render_history([_snapshot()], "json", file=buf)
        (row,) = json.loads(buf.getvalue())
        assert row["total_nodes"] == 2
        assert row["id"] == 1

    def test_node_history_table(self) -> None:
        rows = [
            {
                "timestamp": NOW.isoformat(),
                "status": "online",
                "uptime_percent": 100.0,
                "storage_usage_percent": 10.0,
                "health_score": 100,
                "credits": 12.0,
                "version": "0.8.0",
            }
        ]
        buf = StringIO()
        render_node_history("ABCDEFGH-34", rows, "table", file=buf, width=200)
        out = buf.getvalue()

        assert "ABCDEFGH-34" in out
        assert "2026-01-01 12:00" in out

    def test_node_history_empty(self) -> None:
        buf = StringIO()
        render_node_history("nope", [], "table", file=buf, width=200)
        assert "No history recorded for nope" in buf.getvalue()


class TestSummaryOutput:
    def test_table(self) -> None:
        summary = NetworkSummary(title="Title", content="Body **bold**", key_recommendation="Upgrade")
        buf = StringIO()
        render_summary(summary, "table", file=buf, width=200)
        out = buf.getvalue()

        assert "Title" in out
        assert "Body **bold**" in out
        assert "Upgrade" in out

    def test_model_text_rendered_literally(self) -> None:
        summary = NetworkSummary(
            title="Report [/x]", content="Body", key_recommendation="Pin [red]0.8.0"
        )
        buf = StringIO()
        render_summary(summary, "table", file=buf, width=200)
        out = buf.getvalue()

        assert "Report [/x]" in out
        assert "Pin [red]0.8.0" in out

    def test_json(self) -> None:
        summary = NetworkSummary(title="T", content="C", key_recommendation="K")
        buf = StringIO()
        render_summary(summary, "json", file=buf)
        data = json.loads(buf.getvalue())
        assert data["key_recommendation"] == "K"


class TestHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, "—"), (120.0, "120"), (99.3, "99.3"), (0.0, "0.0"), ("x", "x")],
    )
    def test_fmt(self, value: object, expected: str) -> None:
        assert _fmt(value) == expected

    @pytest.mark.parametrize(
        ("num", "expected"),
        [(0, "0 B"), (512, "512.0 B"), (1536, "1.5 KB"), (1024**3, "1.0 GB")],
    )
    def test_format_bytes(self, num: int, expected: str) -> None:
        assert format_bytes(num) == expected
