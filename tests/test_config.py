"""Tests for configuration management."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from tornado_monitor.config import (
    DEFAULT_MAX_QUEUE,
    ConfigError,
    ConfigFile,
    ConfigLoader,
    ConfigWatcher,
    DatabaseConfig,
    MonitorDefaultsSettings,
    Settings,
    StakeBurnedConfig,
    TelegramSettings,
    clear_settings_cache,
    create_example_config,
    get_settings,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

CONTRACT = "0x5Ef8B60fE7cF3eE5F3F12c20E27FFfCdcE14C0D5"
RELAYER = "0x1234567890AbcdEF1234567890aBcdef12345678"

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


@pytest.fixture(autouse=True)
def clear_cache() -> Iterator[None]:
    """Clear settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def clean_env() -> Iterator[None]:
    """Remove every variable the settings read."""
    env = {k: v for k, v in os.environ.items() if k not in ENV_KEYS}
    with patch.dict(os.environ, env, clear=True):
        yield


@pytest.fixture
def settings(clean_env: None) -> Settings:
    """Settings without any environment influence."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def loader(settings: Settings) -> ConfigLoader:
    """Create a loader bound to clean settings."""
    return ConfigLoader(settings)


def write_config(path: Path, data: dict[str, Any]) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


# ============================================================================
# Environment settings
# ============================================================================


class TestTelegramSettings:
    """Tests for TelegramSettings."""

    def test_disabled_by_default(self, clean_env: None) -> None:
        """Test that Telegram is disabled without credentials."""
        assert TelegramSettings().enabled is False

    def test_disabled_with_partial_config(self, clean_env: None) -> None:
        """Test that a token alone is not enough."""
        with patch.dict(os.environ, {"TELEGRAM_BOT_TOKEN": "123:abc"}):
            assert TelegramSettings().enabled is False

    def test_enabled_with_full_config(self, clean_env: None) -> None:
        """Test that token and chat id enable Telegram."""
        with patch.dict(os.environ, {"TELEGRAM_BOT_TOKEN": "123:abc", "TELEGRAM_CHAT_ID": "42"}):
            settings = TelegramSettings()
            assert settings.enabled is True
            assert settings.bot_token is not None
            assert settings.bot_token.get_secret_value() == "123:abc"

    def test_explicitly_disabled(self, clean_env: None) -> None:
        """Test that TELEGRAM_ENABLED=false wins over credentials."""
        env = {"TELEGRAM_BOT_TOKEN": "t", "TELEGRAM_CHAT_ID": "1", "TELEGRAM_ENABLED": "false"}
        with patch.dict(os.environ, env):
            assert TelegramSettings().enabled is False


class TestMonitorDefaultsSettings:
    """Tests for environment network defaults."""

    def test_no_overrides(self, clean_env: None) -> None:
        """Test that unset variables produce no overrides."""
        assert MonitorDefaultsSettings().as_overrides() == {}

    def test_overrides_use_file_keys(self, clean_env: None) -> None:
        """Test that overrides are keyed like the config file."""
        with patch.dict(os.environ, {"MONITOR_INTERVAL": "45", "MAX_QUEUE": "7"}):
            assert MonitorDefaultsSettings().as_overrides() == {"interval": 45.0, "maxQueue": 7}


class TestSettings:
    """Tests for the main Settings class."""

    def test_defaults(self, settings: Settings) -> None:
        """Test default values."""
        assert settings.log_level == "INFO"
        assert settings.health_port == 8080
        assert settings.database_url is None
        assert settings.config_path is None

    def test_custom_log_level(self, clean_env: None) -> None:
        """Test custom log level."""
        with patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}):
            assert Settings(_env_file=None).log_level == "DEBUG"  # type: ignore[call-arg]

    def test_invalid_log_level_raises(self, clean_env: None) -> None:
        """Test that invalid log level raises validation error."""
        with patch.dict(os.environ, {"LOG_LEVEL": "VERBOSE"}), pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]

    def test_health_port_validation(self, clean_env: None) -> None:
        """Test health port bounds."""
        with patch.dict(os.environ, {"HEALTH_PORT": "70000"}), pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]

    def test_get_logging_level(self, settings: Settings) -> None:
        """Test conversion to numeric logging level."""
        assert settings.get_logging_level() == logging.INFO

    def test_redacted_summary(self, clean_env: None) -> None:
        """Test that passwords are hidden in the summary."""
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql://user:secret@db/tornado"}):
            summary = Settings(_env_file=None).redacted_summary()  # type: ignore[call-arg]

        assert "secret" not in summary["database_url"]
        assert summary["database_url"] == "postgresql://user:***@db/tornado"
        assert summary["telegram_env"] == "(not set)"


class TestGetSettings:
    """Tests for the settings singleton."""

    def test_returns_same_instance(self, clean_env: None) -> None:
        """Test that get_settings caches."""
        assert get_settings() is get_settings()

    def test_clear_cache_allows_reload(self, clean_env: None) -> None:
        """Test that clearing the cache picks up new values."""
        first = get_settings()
        clear_settings_cache()
        assert get_settings() is not first


# ============================================================================
# Config file models
# ============================================================================


class TestConfigModels:
    """Tests for config file validation."""

    def test_camel_case_keys(self) -> None:
        """Test that camelCase keys populate snake_case fields."""
        config = ConfigFile.model_validate(
            {
                "global": {"logLevel": "warn"},
                "tornPriceMonitor": {
                    "interval": 120,
                    "priceChangeThreshold": 5,
                    "priceThresholds": {"high": 0.01},
                },
            }
        )
        assert config.global_.logging_level == "WARNING"
        assert config.torn_price_monitor is not None
        assert config.torn_price_monitor.interval == 120
        assert config.torn_price_monitor.price_thresholds is not None
        assert config.torn_price_monitor.price_thresholds.high == Decimal("0.01")

    def test_invalid_api_url(self) -> None:
        """Test that relayer URLs must be HTTP(S)."""
        with pytest.raises(ValidationError, match="Invalid apiUrl"):
            ConfigFile.model_validate(
                {"healthMonitoring": {"networks": [{"apiUrl": "ftp://relayer"}]}}
            )

    def test_empty_networks_rejected(self) -> None:
        """Test that at least one network is required."""
        with pytest.raises(ValidationError):
            ConfigFile.model_validate({"healthMonitoring": {"networks": []}})

    def test_numeric_chat_id(self) -> None:
        """Test that numeric chat ids are accepted."""
        config = ConfigFile.model_validate(
            {
                "healthMonitoring": {
                    "networks": [{"apiUrl": "https://relayer"}],
                    "telegram": {"botToken": "t", "chatId": -100123},
                }
            }
        )
        assert config.health_monitoring is not None
        assert config.health_monitoring.telegram is not None
        assert config.health_monitoring.telegram.chat_id == "-100123"

    def test_relayers_lowercased(self) -> None:
        """Test that relayer filters are normalized."""
        config = StakeBurnedConfig(
            rpc_url="https://rpc", contract_address=CONTRACT, relayer_addresses=[RELAYER]
        )
        assert config.relayer_addresses == [RELAYER.lower()]

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("contract_address", "0x1234"),
            ("rpc_url", "wss://rpc"),
            ("relayer_addresses", ["not-an-address"]),
        ],
    )
    def test_invalid_listener_fields(self, field: str, value: Any) -> None:
        """Test listener validation errors."""
        kwargs: dict[str, Any] = {"rpc_url": "https://rpc", "contract_address": CONTRACT}
        kwargs[field] = value
        with pytest.raises(ValidationError):
            StakeBurnedConfig(**kwargs)

    def test_database_url_must_be_async_capable(self) -> None:
        """Test that unsupported database URLs are rejected."""
        DatabaseConfig(url="sqlite+aiosqlite:///events.db")
        with pytest.raises(ValidationError, match="PostgreSQL"):
            DatabaseConfig(url="mysql://root@localhost/tornado")

    def test_example_config_is_valid(self, loader: ConfigLoader) -> None:
        """Test that the shipped example validates."""
        config = loader.parse(create_example_config())
        assert config.health_monitoring is not None
        assert len(config.health_monitoring.networks) == 2
        assert config.stake_burned_listener is not None


# ============================================================================
# Loader
# ============================================================================


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_network_defaults_merge_order(self, loader: ConfigLoader) -> None:
        """Test built-in, section defaults and per-network values."""
        config = loader.parse(
            {
                "healthMonitoring": {
                    "defaults": {"interval": 60, "timeout": 20},
                    "networks": [
                        {"apiUrl": "https://a", "name": "A"},
                        {"apiUrl": "https://b", "name": "B", "interval": 15},
                    ],
                }
            }
        )
        assert config.health_monitoring is not None
        a, b = config.health_monitoring.networks
        assert (a.interval, a.timeout, a.max_queue) == (60, 20, DEFAULT_MAX_QUEUE)
        assert (b.interval, b.timeout) == (15, 20)

    def test_env_defaults_below_file_defaults(self, clean_env: None) -> None:
        """Test that env overrides apply under the section defaults."""
        with patch.dict(os.environ, {"MONITOR_INTERVAL": "90", "MAX_QUEUE": "8"}):
            loader = ConfigLoader(Settings(_env_file=None))  # type: ignore[call-arg]
            config = loader.parse(
                {
                    "healthMonitoring": {
                        "defaults": {"interval": 40},
                        "networks": [{"apiUrl": "https://a"}],
                    }
                }
            )
        assert config.health_monitoring is not None
        network = config.health_monitoring.networks[0]
        assert network.interval == 40
        assert network.max_queue == 8

    def test_env_telegram_fallback(self, clean_env: None) -> None:
        """Test that sections without telegram use env credentials."""
        env = {"TELEGRAM_BOT_TOKEN": "env-token", "TELEGRAM_CHAT_ID": "7"}
        with patch.dict(os.environ, env):
            loader = ConfigLoader(Settings(_env_file=None))  # type: ignore[call-arg]
            config = loader.parse(
                {
                    "healthMonitoring": {
                        "networks": [{"apiUrl": "https://a"}],
                        "telegram": {"botToken": "file-token", "chatId": "1"},
                    },
                    "tornPriceMonitor": {},
                }
            )
        assert config.health_monitoring is not None
        assert config.health_monitoring.telegram is not None
        assert config.health_monitoring.telegram.bot_token.get_secret_value() == "file-token"
        assert config.torn_price_monitor is not None
        assert config.torn_price_monitor.telegram is not None
        assert config.torn_price_monitor.telegram.chat_id == "7"

    def test_load_explicit_file(self, loader: ConfigLoader, tmp_path: Path) -> None:
        """Test loading a file by path."""
        path = write_config(
            tmp_path / "config.json",
            {"healthMonitoring": {"networks": [{"apiUrl": "https://a", "name": "A"}]}},
        )
        config = loader.load(path)

        assert loader.path == path
        assert config.health_monitoring is not None
        assert config.health_monitoring.networks[0].name == "A"

    def test_missing_file_uses_defaults(
        self, loader: ConfigLoader, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test the default configuration when nothing is found."""
        monkeypatch.chdir(tmp_path)
        config = loader.load()

        assert loader.path is None
        assert config.health_monitoring is not None
        assert [n.name for n in config.health_monitoring.networks] == ["Ethereum", "BSC"]

    def test_missing_file_strict(
        self, loader: ConfigLoader, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that strict loading refuses to fall back."""
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigError, match="No config file found"):
            loader.load(strict=True)

    def test_invalid_file_falls_back(self, loader: ConfigLoader, tmp_path: Path) -> None:
        """Test that an invalid file falls back unless strict."""
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")

        config = loader.load(path)
        assert config.health_monitoring is not None
        with pytest.raises(ConfigError, match="Cannot read"):
            loader.load(path, strict=True)

    def test_search_finds_default_path(
        self, loader: ConfigLoader, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that ./config.json is found."""
        monkeypatch.chdir(tmp_path)
        write_config(tmp_path / "config.json", {"tornPriceMonitor": {"interval": 90}})

        assert loader.find_config_file() == Path("./config.json")

    def test_reload_without_file(self, loader: ConfigLoader) -> None:
        """Test that reload needs a loaded file."""
        with pytest.raises(ConfigError):
            loader.reload()


# ============================================================================
# Watcher
# ============================================================================


class TestConfigWatcher:
    """Tests for ConfigWatcher."""

    @pytest.mark.asyncio
    async def test_reload_notifies_callbacks(self, loader: ConfigLoader, tmp_path: Path) -> None:
        """Test sync and async callbacks both receive the new config."""
        path = write_config(tmp_path / "config.json", {"tornPriceMonitor": {"interval": 60}})
        loader.load(path)
        watcher = ConfigWatcher(loader)
        sync_cb = MagicMock()
        async_cb = AsyncMock()
        watcher.register(sync_cb)
        watcher.register(async_cb)

        write_config(path, {"tornPriceMonitor": {"interval": 120}})
        config = await watcher.reload_and_notify()

        assert config is not None
        sync_cb.assert_called_once_with(config)
        async_cb.assert_awaited_once_with(config)

    @pytest.mark.asyncio
    async def test_invalid_reload_keeps_callbacks_quiet(
        self, loader: ConfigLoader, tmp_path: Path
    ) -> None:
        """Test that an invalid file does not reach callbacks."""
        path = write_config(tmp_path / "config.json", {"tornPriceMonitor": {}})
        loader.load(path)
        watcher = ConfigWatcher(loader)
        callback = MagicMock()
        watcher.register(callback)

        path.write_text("[]", encoding="utf-8")
        assert await watcher.reload_and_notify() is None
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_others(
        self, loader: ConfigLoader, tmp_path: Path
    ) -> None:
        """Test that one failing callback does not block the rest."""
        path = write_config(tmp_path / "config.json", {"tornPriceMonitor": {}})
        loader.load(path)
        watcher = ConfigWatcher(loader)
        watcher.register(MagicMock(side_effect=RuntimeError("boom")))
        second = MagicMock()
        watcher.register(second)

        await watcher.reload_and_notify()
        second.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_without_file_is_noop(self, loader: ConfigLoader) -> None:
        """Test that the default configuration is not watched."""
        watcher = ConfigWatcher(loader)
        await watcher.start()
        assert watcher.is_running is False

    @pytest.mark.asyncio
    async def test_detects_file_change(self, loader: ConfigLoader, tmp_path: Path) -> None:
        """Test the polling loop picks up a modified file."""
        path = write_config(tmp_path / "config.json", {"tornPriceMonitor": {"interval": 60}})
        loader.load(path)
        watcher = ConfigWatcher(loader, poll_interval=0.01, debounce=0.01)
        received: list[ConfigFile] = []
        watcher.register(received.append)

        await watcher.start()
        try:
            write_config(path, {"tornPriceMonitor": {"interval": 300}})
            stat = path.stat()
            os.utime(path, (stat.st_atime + 10, stat.st_mtime + 10))
            for _ in range(100):
                if received:
                    break
                await asyncio.sleep(0.01)
        finally:
            await watcher.stop()

        assert received
        assert received[0].torn_price_monitor is not None
        assert received[0].torn_price_monitor.interval == 300
