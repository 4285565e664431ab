"""Unit tests for settings models and loader."""

import json
import os
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from pydantic import ValidationError

from walrus_vault.commons.settings.loader import (
    SettingsLoader,
    get_settings,
    reset_settings,
)
from walrus_vault.commons.settings.models import (
    NETWORK_DEFAULTS,
    AppSettings,
    RelaySettings,
    RetrievalSettings,
    Settings,
    TransportSettings,
    UploadSettings,
    WalrusSettings,
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep host WALRUS_VAULT__* variables out of these tests."""
    for key in list(os.environ):
        if key.startswith("WALRUS_VAULT__"):
            monkeypatch.delenv(key)
    reset_settings()
    yield
    reset_settings()


class TestAppSettings:
    """Tests for AppSettings model."""

    def test_default_values(self):
        settings = AppSettings()
        assert settings.name == "walrus-vault"
        assert settings.environment == "dev"
        assert settings.log_level == "INFO"


class TestWalrusSettings:
    """Tests for WalrusSettings model."""

    def test_defaults_resolve_to_network(self):
        settings = WalrusSettings(network="mainnet")
        assert settings.resolved_aggregator() == NETWORK_DEFAULTS["mainnet"][
            "aggregator"
        ]
        assert settings.resolved_publisher() == NETWORK_DEFAULTS["mainnet"][
            "publisher"
        ]

    def test_explicit_urls_win(self):
        settings = WalrusSettings(
            aggregator_url="https://agg.example/", publisher_url="https://pub.example"
        )
        assert settings.resolved_aggregator() == "https://agg.example"
        assert settings.resolved_publisher() == "https://pub.example"

    def test_candidates_deduplicated_in_order(self):
        settings = WalrusSettings(
            aggregator_url="https://a.example",
            candidate_aggregators=["https://b.example", "https://a.example/"],
        )
        assert settings.aggregator_candidates() == [
            "https://a.example",
            "https://b.example",
        ]

    def test_rejects_unknown_network(self):
        with pytest.raises(ValidationError):
            WalrusSettings(network="localnet")


class TestPolicySettings:
    """Tests for the retry policy sections."""

    def test_upload_defaults(self):
        settings = UploadSettings()
        assert settings.max_attempts == 5
        assert settings.backoff_base_seconds == 3.0
        assert settings.backoff_cap_seconds == 8.0
        assert settings.configuration_pause_seconds == 1.0
        assert settings.write_timeout_seconds == 60.0

    def test_retrieval_defaults(self):
        settings = RetrievalSettings()
        assert settings.max_attempts == 10
        assert settings.backoff_cap_seconds == 30.0
        assert settings.read_timeout_seconds == 120.0
        assert settings.repair_enabled is True
        assert settings.debug_dump_dir is None

    def test_transport_defaults(self):
        settings = TransportSettings()
        assert (settings.read_retries, settings.write_retries) == (8, 5)
        assert settings.read_request_timeout_seconds == 30.0
        assert settings.write_request_timeout_seconds == 20.0

    def test_request_timeout_must_stay_below_deadline(self):
        with pytest.raises(ValidationError, match="write_request_timeout_seconds"):
            Settings(
                upload=UploadSettings(write_timeout_seconds=10.0),
                transport=TransportSettings(write_request_timeout_seconds=10.0),
            )
        with pytest.raises(ValidationError, match="read_request_timeout_seconds"):
            Settings(retrieval=RetrievalSettings(read_timeout_seconds=5.0))

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            UploadSettings(max_attempts=0)


class TestRelayHost:
    """Tests for relay host resolution."""

    def test_default_relay_for_network(self):
        settings = Settings(walrus=WalrusSettings(network="testnet"))
        assert settings.resolved_relay_host() == NETWORK_DEFAULTS["testnet"]["relay"]

    def test_disabled_relay(self):
        settings = Settings(relay=RelaySettings(enabled=False))
        assert settings.resolved_relay_host() is None

    def test_custom_relay_host(self):
        settings = Settings(relay=RelaySettings(host="https://relay.example/"))
        assert settings.resolved_relay_host() == "https://relay.example"


class TestSettingsLoader:
    """Tests for SettingsLoader."""

    def test_load_defaults_without_files(self):
        with TemporaryDirectory() as tmpdir:
            settings = SettingsLoader(config_dir=Path(tmpdir)).load()
        assert settings.walrus.network == "testnet"

    def test_environment_file_overrides_base(self):
        with TemporaryDirectory() as tmpdir:
            config_dir = Path(tmpdir)
            (config_dir / "appsettings.json").write_text(
                json.dumps({"upload": {"max_attempts": 7, "backoff_cap_seconds": 9}})
            )
            (config_dir / "appsettings.prod.json").write_text(
                json.dumps({"upload": {"max_attempts": 3}})
            )

            settings = SettingsLoader(config_dir=config_dir, environment="prod").load()

        assert settings.upload.max_attempts == 3
        assert settings.upload.backoff_cap_seconds == 9

    def test_env_vars_override_files(self, monkeypatch):
        monkeypatch.setenv("WALRUS_VAULT__RELAY__TIP_MAX", "10000")
        monkeypatch.setenv("WALRUS_VAULT__RELAY__ENABLED", "false")
        monkeypatch.setenv(
            "WALRUS_VAULT__WALRUS__CANDIDATE_AGGREGATORS", '["https://x.example"]'
        )
        with TemporaryDirectory() as tmpdir:
            config_dir = Path(tmpdir)
            (config_dir / "appsettings.json").write_text(
                json.dumps({"relay": {"tip_max": 1}})
            )
            settings = SettingsLoader(config_dir=config_dir).load()

        assert settings.relay.tip_max == 10000
        assert settings.relay.enabled is False
        assert settings.walrus.candidate_aggregators == ["https://x.example"]

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("true", True), ("False", False), ("42", 42), ("1.5", 1.5), ("abc", "abc")],
    )
    def test_coerce_value(self, raw, expected):
        assert SettingsLoader(config_dir=Path("."))._coerce_value(raw) == expected

    def test_get_settings_is_cached(self):
        with TemporaryDirectory() as tmpdir:
            first = get_settings(config_dir=Path(tmpdir))
            assert get_settings() is first
            assert get_settings(config_dir=Path(tmpdir), reload=True) is not first
