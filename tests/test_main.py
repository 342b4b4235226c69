"""Tests for the CLI entry point."""

from __future__ import annotations

import json
import logging
import os
import signal
import sys
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tornado_monitor.__main__ import (
    BURST_TEST_COUNT,
    BURST_TEST_SCOPE,
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    TEST_ALERT_MESSAGES,
    configure_logging,
    create_parser,
    find_telegram_config,
    main,
    print_banner,
    run_service,
    run_test_alert,
    validate_settings,
)
from tornado_monitor.config import ConfigFile

ENV_KEYS = (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "TELEGRAM_ENABLED",
    "MONITOR_INTERVAL",
    "MONITOR_TIMEOUT",
    "MAX_QUEUE",
    "MAX_FAILURES",
    "TORNADO_CONFIG_PATH",
    "DATABASE_URL",
    "LOG_LEVEL",
    "HEALTH_PORT",
)

TELEGRAM = {"botToken": "123:abc", "chatId": "-100"}
HEALTH = {"networks": [{"apiUrl": "https://eth.example/v1/status", "name": "Ethereum"}]}


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Run from an empty directory without tornado environment variables."""
    monkeypatch.chdir(tmp_path)
    env = {k: v for k, v in os.environ.items() if k not in ENV_KEYS}
    with patch.dict(os.environ, env, clear=True):
        yield


def write_config(tmp_path: Path, data: dict) -> str:
    path = tmp_path / "tornado.json"
    path.write_text(json.dumps(data))
    return str(path)


class TestCreateParser:
    """Tests for argument parser creation."""

    def test_parser_has_version(self):
        """Parser should have version flag."""
        parser = create_parser()
        with pytest.raises(SystemExit) as exc_info:
            parser.parse_args(["--version"])
        assert exc_info.value.code == 0

    def test_parser_config_path(self):
        """Parser should accept a positional config path."""
        args = create_parser().parse_args(["my-config.json"])
        assert args.config == "my-config.json"

    def test_parser_flags(self):
        """Parser should accept the mode flags."""
        args = create_parser().parse_args(["--config-check", "--test-alert"])
        assert args.config_check is True
        assert args.test_alert is True

    def test_parser_log_level(self):
        """Parser should accept --log-level option."""
        args = create_parser().parse_args(["--log-level", "DEBUG"])
        assert args.log_level == "DEBUG"

    def test_parser_health_port(self):
        """Parser should accept --health-port option."""
        args = create_parser().parse_args(["--health-port", "9090"])
        assert args.health_port == 9090

    def test_parser_default_values(self):
        """Parser should have correct defaults."""
        args = create_parser().parse_args([])
        assert args.config is None
        assert args.config_check is False
        assert args.test_alert is False
        assert args.log_level is None
        assert args.health_port is None


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

    def test_noisy_libraries_quieted(self):
        """HTTP and RPC libraries should log warnings only."""
        configure_logging("DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("web3").level == logging.WARNING


class TestPrintBanner:
    """Tests for banner printing."""

    def test_print_banner(self, capsys):
        """Banner should include app name and version."""
        print_banner()
        captured = capsys.readouterr()
        assert "Tornado Monitor" in captured.out
        assert "v0.1.0" in captured.out


class TestValidateSettings:
    """Tests for environment settings validation."""

    def test_valid_settings(self, clean_env):
        """Defaults should validate."""
        settings = validate_settings()
        assert settings is not None
        assert settings.log_level == "INFO"

    def test_invalid_settings(self, clean_env, capsys):
        """A bad value should be reported on stderr."""
        os.environ["HEALTH_PORT"] = "not-a-port"

        assert validate_settings() is None
        assert "Settings validation failed" in capsys.readouterr().err


class TestFindTelegramConfig:
    """Tests for picking the Telegram destination of --test-alert."""

    def test_none_configured(self):
        """No section with Telegram yields None."""
        config = ConfigFile.model_validate({"healthMonitoring": HEALTH})
        assert find_telegram_config(config) is None

    def test_disabled_skipped(self):
        """A disabled destination is passed over for the next section."""
        config = ConfigFile.model_validate(
            {
                "healthMonitoring": {**HEALTH, "telegram": {**TELEGRAM, "enabled": False}},
                "tornPriceMonitor": {"telegram": {**TELEGRAM, "chatId": "-200"}},
            }
        )
        telegram = find_telegram_config(config)
        assert telegram is not None
        assert telegram.chat_id == "-200"


class TestRunTestAlert:
    """Tests for the --test-alert mode."""

    @pytest.fixture
    def alert_service(self) -> Iterator[MagicMock]:
        """Patch the alert service used by --test-alert."""
        with patch("tornado_monitor.__main__.GenericAlertService") as cls:
            service = MagicMock()
            service.test_connection = AsyncMock(return_value=True)
            service.send_alert = AsyncMock(return_value=True)
            cls.return_value = service
            yield service

    @pytest.mark.asyncio
    async def test_no_telegram(self, alert_service):
        """Without a destination the config error code is returned."""
        config = ConfigFile.model_validate({"healthMonitoring": HEALTH})

        assert await run_test_alert(config, delay=0) == EXIT_CONFIG_ERROR
        alert_service.test_connection.assert_not_called()

    @pytest.mark.asyncio
    async def test_connection_failure(self, alert_service):
        """A failed canary stops before sending samples."""
        alert_service.test_connection.return_value = False
        config = ConfigFile.model_validate({"healthMonitoring": {**HEALTH, "telegram": TELEGRAM}})

        assert await run_test_alert(config, delay=0) == EXIT_ERROR
        alert_service.send_alert.assert_not_called()

    @pytest.mark.asyncio
    async def test_sends_samples_and_burst(self, alert_service, capsys):
        """Samples go to the first network, the burst to the test scope."""
        config = ConfigFile.model_validate({"healthMonitoring": {**HEALTH, "telegram": TELEGRAM}})

        assert await run_test_alert(config, delay=0) == EXIT_SUCCESS

        alerts = [call.args[0] for call in alert_service.send_alert.await_args_list]
        assert len(alerts) == len(TEST_ALERT_MESSAGES) + BURST_TEST_COUNT
        assert [a.message for a in alerts[:3]] == list(TEST_ALERT_MESSAGES)
        assert all(a.scope == "Ethereum" for a in alerts[:3])
        assert all(a.scope == BURST_TEST_SCOPE for a in alerts[3:])
        assert "Connection test: OK" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_burst_throttled_for_real(self, capsys):
        """With a real throttle the burst sends three and holds two back."""
        config = ConfigFile.model_validate({"tornPriceMonitor": {"telegram": TELEGRAM}})

        with patch(
            "tornado_monitor.alerts.channels.telegram.TelegramChannel.send",
            new=AsyncMock(return_value=True),
        ):
            assert await run_test_alert(config, delay=0) == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert "Burst test 3: sent" in out
        assert "Burst test 4: throttled" in out
        assert "Burst test 5: throttled" in out


class TestRunService:
    """Tests for the long-running service mode."""

    @pytest.fixture
    def service(self) -> Iterator[MagicMock]:
        """Patch the monitor service started by run_service."""
        with patch("tornado_monitor.__main__.TornadoMonitorService") as cls:
            service = MagicMock()
            service.start = AsyncMock()
            service.stop = AsyncMock()
            cls.return_value = service
            yield service

    @pytest.mark.skipif(sys.platform == "win32", reason="os.kill signals are Unix only")
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("sig", "expected"),
        [(signal.SIGINT, EXIT_INTERRUPTED), (signal.SIGTERM, EXIT_SUCCESS)],
    )
    async def test_exit_code_follows_signal(self, service, sig, expected):
        """SIGINT exits with 130 and SIGTERM with 0, after stopping the service."""
        service.start.side_effect = lambda: os.kill(os.getpid(), sig)
        config = ConfigFile.model_validate({"healthMonitoring": HEALTH})

        code = await run_service(config, MagicMock(), MagicMock(), shutdown_timeout=1.0)

        assert code == expected
        service.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_failure_is_error(self, service):
        """A service that fails to start exits with the error code."""
        service.start.side_effect = RuntimeError("no database")
        config = ConfigFile.model_validate({"healthMonitoring": HEALTH})

        assert await run_service(config, MagicMock(), MagicMock()) == EXIT_ERROR


class TestMain:
    """Tests for main entry point."""

    def test_main_with_config_check(self, clean_env, tmp_path, capsys):
        """Main should exit successfully with --config-check."""
        path = write_config(tmp_path, {"healthMonitoring": HEALTH})

        with pytest.raises(SystemExit) as exc_info:
            main([path, "--config-check"])

        assert exc_info.value.code == EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Configuration is valid!" in out
        assert "Ethereum: https://eth.example/v1/status" in out

    def test_config_check_missing_file(self, clean_env):
        """--config-check without any config file is a config error."""
        with pytest.raises(SystemExit) as exc_info:
            main(["--config-check"])

        assert exc_info.value.code == EXIT_CONFIG_ERROR

    def test_config_check_invalid_file(self, clean_env, tmp_path, capsys):
        """An invalid file is reported and exits with the config error code."""
        path = write_config(tmp_path, {"healthMonitoring": {"networks": [{"name": "x"}]}})

        with pytest.raises(SystemExit) as exc_info:
            main([path, "--config-check"])

        assert exc_info.value.code == EXIT_CONFIG_ERROR
        assert "Configuration invalid" in capsys.readouterr().err

    @patch("tornado_monitor.__main__.run_service")
    @patch("tornado_monitor.__main__.asyncio.run")
    def test_main_runs_service(self, mock_asyncio_run, _mock_run_service, clean_env, tmp_path):
        """Main should run the service when no mode flag is given."""
        path = write_config(tmp_path, {"healthMonitoring": HEALTH})
        mock_asyncio_run.return_value = EXIT_SUCCESS

        with pytest.raises(SystemExit) as exc_info:
            main([path])

        assert exc_info.value.code == EXIT_SUCCESS
        mock_asyncio_run.assert_called_once()

    @patch("tornado_monitor.__main__.run_test_alert")
    @patch("tornado_monitor.__main__.asyncio.run")
    def test_main_test_alert(self, mock_asyncio_run, mock_run_test_alert, clean_env, tmp_path):
        """--test-alert should exit with the test result."""
        path = write_config(tmp_path, {"healthMonitoring": HEALTH})
        mock_asyncio_run.return_value = EXIT_ERROR

        with pytest.raises(SystemExit) as exc_info:
            main([path, "--test-alert"])

        assert exc_info.value.code == EXIT_ERROR
        mock_run_test_alert.assert_called_once()


class TestIntegration:
    """Integration tests for CLI invocation."""

    def test_cli_help_option(self, capsys):
        """CLI should display help with -h option."""
        with pytest.raises(SystemExit) as exc_info:
            main(["-h"])

        assert exc_info.value.code == 0
        captured = capsys.readouterr()
        assert "tornado-monitor" in captured.out
        assert "--config-check" in captured.out
        assert "--test-alert" in captured.out

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
