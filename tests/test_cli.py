# ==============================================================================
# Tests for CLI Commands
# ==============================================================================
"""
Tests for the clickpulse command tree.

Verifies that every command and subcommand:
- Exits with code 0 when invoked with --help
- Lists the expected subcommands or options

and exercises the commands that run without external services:
analytics over a JSON-lines file, the agent simulation and config output.

These tests use the real app from clickpulse.app (not minimal Typer apps)
to ensure the full command tree is wired up correctly.
"""

import json

import pytest
from typer.testing import CliRunner

from clickpulse.app import app

runner = CliRunner()


@pytest.fixture()
def events_file(tmp_path, make_event):
    """JSON-lines file with a bounced session and a converting session."""
    events = [
        make_event(session_id="a"),
        make_event(session_id="b", offset=10),
        make_event(session_id="b", page_url="https://shop.example.com/cart", offset=40),
        make_event("form_submit", session_id="b", page_url="https://shop.example.com/cart", offset=70),
    ]
    lines = []
    for event in events:
        record = event.to_record()
        record["timestamp"] = record["timestamp"].isoformat()
        lines.append(json.dumps(record))

    path = tmp_path / "events.jsonl"
    path.write_text("\n".join(lines) + "\n")
    return path


# ==============================================================================
# Help Output
# ==============================================================================


class TestHelp:
    """Tests for --help output across the command tree."""

    def test_root_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Clickpulse event tracking and behavior analytics CLI" in result.output
        for cmd in ["serve", "simulate", "analytics", "patterns", "funnel", "dropoff", "config", "db"]:
            assert cmd in result.output, f"Missing command: {cmd}"

    @pytest.mark.parametrize(
        "args, expected",
        [
            (["serve", "--help"], "--port"),
            (["simulate", "--help"], "--batch-size"),
            (["analytics", "--help"], "--window"),
            (["patterns", "--help"], "--per-session"),
            (["funnel", "--help"], "STAGES"),
            (["dropoff", "--help"], "--limit"),
            (["config", "--help"], "show"),
            (["db", "--help"], "add-site"),
            (["db", "add-site", "--help"], "CREDENTIAL"),
        ],
    )
    def test_subcommand_help(self, args, expected):
        result = runner.invoke(app, args)
        assert result.exit_code == 0
        assert expected in result.output


# ==============================================================================
# Analytics Commands
# ==============================================================================


class TestAnalyticsCommands:
    """Tests for analytics, patterns, funnel and dropoff over a file."""

    def test_analytics_json(self, events_file):
        result = runner.invoke(app, ["analytics", "--input", str(events_file), "--window", "all", "--json"])

        assert result.exit_code == 0
        snapshot = json.loads(result.stdout)
        assert snapshot["total_sessions"] == 2
        assert snapshot["bounce_rate"] == 50.0
        assert snapshot["conversion_rate"] == 50.0
        assert snapshot["return_visitor_rate_available"] is False

    def test_analytics_formatted(self, events_file):
        result = runner.invoke(app, ["analytics", "-i", str(events_file), "-w", "all"])
        assert result.exit_code == 0
        assert "CLICKPULSE ANALYTICS" in result.output
        assert "n/a" in result.output

    def test_relative_window_anchored_at_latest_event(self, events_file):
        result = runner.invoke(app, ["analytics", "-i", str(events_file), "-w", "1d", "-j"])
        assert json.loads(result.stdout)["total_sessions"] == 2

    def test_unknown_window(self, events_file):
        result = runner.invoke(app, ["analytics", "-i", str(events_file), "-w", "90d"])
        assert result.exit_code == 1

    def test_missing_input_file(self, tmp_path):
        result = runner.invoke(app, ["analytics", "-i", str(tmp_path / "missing.jsonl")])
        assert result.exit_code == 1

    def test_patterns_per_session_json(self, events_file):
        result = runner.invoke(
            app, ["patterns", "-i", str(events_file), "-w", "all", "--per-session", "-j"]
        )
        assert result.exit_code == 0
        grouped = json.loads(result.stdout)
        assert grouped["a"] == []
        assert [p["pattern_type"] for p in grouped["b"]] == ["form_completion"]

    def test_funnel_json(self, events_file):
        result = runner.invoke(app, ["funnel", "/home", "/cart", "-i", str(events_file), "-w", "all", "-j"])

        assert result.exit_code == 0
        stages = json.loads(result.stdout)
        assert [s["visitor_count"] for s in stages] == [2, 1]
        assert stages[1]["conversion_rate"] == 50.0

    def test_funnel_rejects_empty_stage(self, events_file):
        result = runner.invoke(app, ["funnel", "/home", "", "-i", str(events_file), "-w", "all"])
        assert result.exit_code == 1

    def test_dropoff_formatted(self, events_file):
        result = runner.invoke(app, ["dropoff", "-i", str(events_file), "-w", "all", "-n", "1"])
        assert result.exit_code == 0
        assert "https://shop.example.com/home" in result.output
        assert "https://shop.example.com/cart" not in result.output


# ==============================================================================
# Simulation and Configuration
# ==============================================================================


class TestSimulate:
    """Tests for the simulate command."""

    def test_json_batches(self):
        result = runner.invoke(app, ["simulate", "--events", "12", "--seed", "3", "--json"])

        assert result.exit_code == 0
        batches = json.loads(result.stdout)
        events = [e for batch in batches for e in batch]
        assert events[0]["event_type"] == "session_start"
        assert events[1]["event_type"] == "page_view"
        assert events[-1]["event_type"] == "session_end"
        assert {e["site_credential"] for e in events} == {"demo-site"}
        assert len({e["event_id"] for e in events}) == len(events)

    def test_failures_are_retried(self):
        result = runner.invoke(app, ["simulate", "--events", "5", "--seed", "3", "--fail", "2"])

        assert result.exit_code == 0
        assert "SIMULATED DELIVERY" in result.output
        assert "Undelivered" in result.output


class TestConfigShow:
    """Tests for `clickpulse config show`."""

    def test_json(self):
        result = runner.invoke(app, ["config", "show", "--json"])

        assert result.exit_code == 0
        config = json.loads(result.stdout)
        assert set(config) >= {"agent", "ingestion", "postgresql", "valkey", "analytics"}
        assert "static_credentials" not in config["ingestion"]

    def test_formatted(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "CLICKPULSE CONFIGURATION" in result.output


class TestServeAndDb:
    """Tests for serve and db commands without external services."""

    def test_serve_runs_uvicorn_factory(self, monkeypatch):
        calls = []
        monkeypatch.setattr("uvicorn.run", lambda *args, **kwargs: calls.append((args, kwargs)))

        result = runner.invoke(app, ["serve", "--host", "127.0.0.1", "--port", "9001"])

        assert result.exit_code == 0
        [(args, kwargs)] = calls
        assert args == ("clickpulse.ingestion.api:create_app",)
        assert kwargs["factory"] is True
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9001

    def test_add_site_rejects_short_credential(self):
        result = runner.invoke(app, ["db", "add-site", "ab", "shop"])
        assert result.exit_code == 1
