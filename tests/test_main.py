"""Tests for pipeline assembly and the CLI entry point."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from alert_relay.classifiers.scripted import ScriptedClassifier
from alert_relay.config import Settings
from alert_relay.exceptions import ConfigurationError
from alert_relay.gating import SirenGate
from alert_relay.main import build_pipeline, main, parse_args, run
from alert_relay.sinks import LogRelay, TelegramRelay


@pytest.fixture
def preamble_file(tmp_path):
    path = tmp_path / "system_message.txt"
    path.write_text("Judge the situation.", encoding="utf-8")
    return path


@pytest.fixture
def make_settings(preamble_file):
    def _make(**values) -> Settings:
        options = {
            "_env_file": None,
            "classifier": "scripted",
            "dry_run": True,
            "channels": "alpha,beta",
            "preamble_file": str(preamble_file),
        }
        options.update(values)
        return Settings(**options)

    return _make


class TestBuildPipeline:
    """Tests for wiring collaborators from settings."""

    def test_dry_run_wiring(self, make_settings):
        runtime = build_pipeline(make_settings(batch_window_seconds=12, batch_extend_seconds=2))
        pipeline = runtime.pipeline

        assert pipeline.source_ids == ["alpha", "beta"]
        assert isinstance(pipeline.classifier, ScriptedClassifier)
        assert isinstance(pipeline.relay, LogRelay)
        assert pipeline.gate is None
        assert pipeline.scheduler.base_window == 12
        assert pipeline.scheduler.extend_by == 2
        assert runtime.preamble.text == "Judge the situation."
        assert pipeline.classifier.preamble is runtime.preamble

    def test_cursor_and_scheduler_share_lock(self, make_settings):
        pipeline = build_pipeline(make_settings()).pipeline

        assert pipeline.cursor.lock is pipeline.scheduler.lock

    def test_live_relay_requires_token(self, make_settings):
        with pytest.raises(ConfigurationError):
            build_pipeline(make_settings(dry_run=False))

    def test_live_relay_built(self, make_settings):
        runtime = build_pipeline(make_settings(dry_run=False, telegram_bot_token="123:abc"))

        assert isinstance(runtime.pipeline.relay, TelegramRelay)
        assert runtime.pipeline.relay in runtime.closables

    def test_gate_built_when_configured(self, make_settings):
        runtime = build_pipeline(make_settings(gate_url="https://siren.example/api"))

        assert isinstance(runtime.pipeline.gate, SirenGate)

    def test_missing_preamble_raises(self, make_settings, tmp_path):
        with pytest.raises(OSError):
            build_pipeline(make_settings(preamble_file=str(tmp_path / "missing.txt")))

    def test_no_channels(self, make_settings):
        with pytest.raises(ConfigurationError):
            build_pipeline(make_settings(channels=" , "))

    @pytest.mark.asyncio
    async def test_aclose_closes_resources(self, make_settings):
        runtime = build_pipeline(make_settings())
        failing = AsyncMock()
        failing.aclose.side_effect = RuntimeError("already closed")
        healthy = AsyncMock()
        runtime.closables = [failing, healthy]

        await runtime.aclose()

        healthy.aclose.assert_awaited_once()


class TestRun:
    @pytest.mark.asyncio
    async def test_run_stops_when_pipeline_returns(self, make_settings):
        """Test that run closes resources after the pipeline exits."""

        async def fake_run(self, stop_event):
            await asyncio.sleep(0)

        with (
            patch("alert_relay.main.Pipeline.run", fake_run),
            patch("alert_relay.main.watch_preamble_file", AsyncMock()),
        ):
            await asyncio.wait_for(run(make_settings()), timeout=2)


class TestCli:
    """Tests for argument parsing and exit codes."""

    def test_parse_args(self):
        args = parse_args(["--dry-run", "--log-level", "DEBUG", "--classifier", "gemini"])

        assert args.dry_run is True
        assert args.log_level == "DEBUG"
        assert args.classifier == "gemini"
        assert args.env_file == ".env"

    def test_defaults(self):
        args = parse_args([])

        assert args.dry_run is False
        assert args.log_level is None
        assert args.classifier is None

    def test_startup_failure_exits_1(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PREAMBLE_FILE", str(tmp_path / "missing.txt"))
        monkeypatch.setenv("CLASSIFIER", "scripted")

        with patch("alert_relay.main.setup_logging"):
            code = main(["--dry-run", "--env-file", str(tmp_path / "none.env")])

        assert code == 1

    def test_invalid_settings_exit_1(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MESSAGE_LIMIT", "0")

        with patch("alert_relay.main.setup_logging"):
            code = main(["--env-file", str(tmp_path / "none.env")])

        assert code == 1

    def test_missing_api_key_exits_1(self, preamble_file, tmp_path, monkeypatch):
        monkeypatch.setenv("PREAMBLE_FILE", str(preamble_file))
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)

        with patch("alert_relay.main.setup_logging"):
            code = main(["--dry-run", "--classifier", "claude", "--env-file", str(tmp_path / "x")])

        assert code == 1
