"""Tests for the CLI entry point."""

from __future__ import annotations

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest

from nft_activity_bot.__main__ import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_SUCCESS,
    configure_logging,
    create_parser,
    load_payloads,
    main,
    run_config_check,
    validate_config,
)

SALE_PAYLOAD = {
    "event_type": "item_sold",
    "payload": {
        "item": {"nft_id": "ethereum/0xcat/1", "metadata": {"name": "Cool Cat #1"}},
        "taker": {"address": "0x38a16c7eb3f0d7c1e5b4a2f6d8e9c0b1a2fc7eb3"},
        "sale_price": "1500000000000000000",
        "payment_token": {"symbol": "ETH", "decimals": 18, "usd_price": "2000"},
        "transaction": {"hash": "0xtx"},
    },
}


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test without routing configuration."""
    for name in ("DISCORD_TOKEN", "DISCORD_EVENTS", "TWITTER_EVENTS", "DRY_RUN", "LOG_LEVEL", "DEBUG"):
        monkeypatch.delenv(name, raising=False)


class TestCreateParser:
    """Tests for argument parser creation."""

    def test_parser_has_version(self):
        """Parser should have version flag."""
        parser = create_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_parser_config_check(self):
        """Parser should accept --config-check flag."""
        parser = create_parser()
        args = parser.parse_args(["--config-check"])
        assert args.config_check is True

    def test_parser_events_file(self):
        """Parser should accept an events file."""
        parser = create_parser()
        args = parser.parse_args(["--dry-run", "events.json"])
        assert args.events == "events.json"
        assert args.dry_run is True

    def test_parser_default_values(self):
        """Parser should have correct defaults."""
        parser = create_parser()
        args = parser.parse_args([])
        assert args.config_check is False
        assert args.log_level is None
        assert args.dry_run is False
        assert args.events is None


class TestConfigureLogging:
    """Tests for logging configuration."""

    def test_configure_logging_info(self):
        """Should configure logging at INFO level."""
        configure_logging("INFO")
        assert logging.getLogger().level == logging.INFO

    def test_configure_logging_debug(self):
        """Should configure logging at DEBUG level."""
        configure_logging("DEBUG")
        assert logging.getLogger().level == logging.DEBUG


class TestValidateConfig:
    """Tests for configuration validation."""

    def test_validate_config_success(self):
        """Should return settings on valid config."""
        assert validate_config() is not None

    def test_validate_config_failure(self, monkeypatch, capsys):
        """Should return None on invalid config."""
        monkeypatch.setenv("DISCORD_EVENTS", "123=airdrop")

        assert validate_config() is None

        captured = capsys.readouterr()
        assert "Configuration validation failed" in captured.err


class TestRunConfigCheck:
    """Tests for config check mode."""

    def test_config_check_prints_routes(self, monkeypatch, capsys):
        """Config check should print configuration and routes."""
        monkeypatch.setenv("DISCORD_TOKEN", "token")
        monkeypatch.setenv("DISCORD_EVENTS", "123=sale")

        settings = validate_config()
        assert settings is not None

        assert run_config_check(settings) == EXIT_SUCCESS

        captured = capsys.readouterr()
        assert "Configuration is valid!" in captured.out
        assert "discord:123 <- sold" in captured.out

    def test_config_check_warns_without_routes(self, capsys):
        """Config check should warn when nothing is routed."""
        settings = validate_config()
        assert settings is not None

        run_config_check(settings)

        assert "no destinations configured" in capsys.readouterr().out


class TestLoadPayloads:
    """Tests for events file loading."""

    def test_list(self, tmp_path):
        """A JSON list is returned as-is."""
        path = tmp_path / "events.json"
        path.write_text(json.dumps([SALE_PAYLOAD]))
        assert load_payloads(str(path)) == [SALE_PAYLOAD]

    def test_events_object(self, tmp_path):
        """An object with an events list is unwrapped."""
        path = tmp_path / "events.json"
        path.write_text(json.dumps({"events": [SALE_PAYLOAD]}))
        assert load_payloads(str(path)) == [SALE_PAYLOAD]

    def test_single_payload(self, tmp_path):
        """A single payload object becomes a one-item batch."""
        path = tmp_path / "events.json"
        path.write_text(json.dumps(SALE_PAYLOAD))
        assert load_payloads(str(path)) == [SALE_PAYLOAD]

    def test_invalid_json(self, tmp_path):
        """Invalid JSON raises ValueError."""
        path = tmp_path / "events.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            load_payloads(str(path))


class TestMain:
    """Tests for main entry point."""

    def test_main_with_config_check(self):
        """Main should exit successfully with --config-check."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--config-check"])

        assert exc_info.value.code == EXIT_SUCCESS

    def test_main_with_invalid_config(self, monkeypatch):
        """Main should exit with config error on invalid config."""
        monkeypatch.setenv("TWITTER_EVENTS", "airdrop")

        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == EXIT_CONFIG_ERROR

    def test_main_requires_events_file(self, capsys):
        """Main should fail without an events file."""
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == EXIT_ERROR
        assert "events file is required" in capsys.readouterr().err

    def test_main_missing_events_file(self, tmp_path):
        """Main should fail on an unreadable events file."""
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "missing.json")])

        assert exc_info.value.code == EXIT_ERROR

    def test_main_dry_run_dispatches(self, monkeypatch, tmp_path):
        """Main should relay the batch through logging adapters."""
        monkeypatch.setenv("DISCORD_EVENTS", "123=sale")
        monkeypatch.setenv("INTER_MESSAGE_DELAY_MS", "0")
        path = tmp_path / "events.json"
        path.write_text(json.dumps([SALE_PAYLOAD]))

        with (
            patch(
                "nft_activity_bot.opensea.names.NameResolver.resolve",
                new=AsyncMock(return_value="alice"),
            ),
            patch("nft_activity_bot.alerter.channels.base.LoggingChannel.send", new=AsyncMock()) as mock_send,
            pytest.raises(SystemExit) as exc_info,
        ):
            main(["--dry-run", str(path)])

        assert exc_info.value.code == EXIT_SUCCESS
        mock_send.assert_awaited_once()
        destination, message = mock_send.await_args.args
        assert destination == "123"
        assert "purchased for 1.5 ETH ($3000.00 USD) by alice" in message.text


class TestIntegration:
    """Integration tests for CLI invocation."""

    def test_cli_help_option(self, capsys):
        """CLI should display help with -h option."""
        with pytest.raises(SystemExit) as exc_info:
            main(["-h"])

        assert exc_info.value.code == 0
        captured = capsys.readouterr()
        assert "nft-activity-bot" in captured.out
        assert "--config-check" in captured.out
        assert "--dry-run" in captured.out

    def test_cli_version_option(self, capsys):
        """CLI should display version with --version option."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--version"])

        assert exc_info.value.code == 0
        assert "0.1.0" in capsys.readouterr().out

    def test_cli_invalid_log_level(self, capsys):
        """CLI should reject invalid log level."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--log-level", "INVALID"])

        assert exc_info.value.code != 0
        assert "invalid choice" in capsys.readouterr().err
