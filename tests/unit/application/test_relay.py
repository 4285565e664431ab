"""Unit tests for relay state and tip configuration."""

import logging

from walrus_vault.application.services.relay import RelayManager, build_tip_config
from walrus_vault.commons.settings.models import RelaySettings


class TestBuildTipConfig:
    """Tests for build_tip_config()."""

    def test_default_is_capped_max(self):
        tip = build_tip_config(RelaySettings())
        assert tip.kind == "max"
        assert tip.max_tip == 5_000
        assert tip.to_query_params() == {"tip_kind": "max", "tip_max": "5000"}

    def test_custom_max(self):
        assert build_tip_config(RelaySettings(tip_max=12_000)).max_tip == 12_000

    def test_const(self):
        tip = build_tip_config(
            RelaySettings(tip_kind="const", tip_address=" 0xabc ", tip_amount=100)
        )
        assert (tip.kind, tip.address, tip.amount) == ("const", "0xabc", 100)
        assert tip.to_query_params() == {
            "tip_kind": "const",
            "tip_address": "0xabc",
            "tip_amount": "100",
        }

    def test_linear(self):
        tip = build_tip_config(
            RelaySettings(
                tip_kind="linear", tip_address="0xabc", tip_base=10, tip_per_kib=2
            )
        )
        assert tip.kind == "linear"
        assert (tip.base, tip.per_encoded_kib) == (10, 2)

    def test_incomplete_const_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING, logger="walrus_vault"):
            tip = build_tip_config(RelaySettings(tip_kind="const", tip_amount=100))

        assert tip.kind == "max"
        assert tip.max_tip == 5_000
        assert "Invalid const relay tip" in caplog.text

    def test_incomplete_linear_falls_back(self):
        tip = build_tip_config(
            RelaySettings(tip_kind="linear", tip_address="0xabc", tip_base=10)
        )
        assert tip.kind == "max"


class TestRelayManager:
    """Tests for RelayManager state transitions."""

    def test_initially_usable(self):
        manager = RelayManager()
        assert manager.should_use_relay() is True
        assert manager.relay_degraded is False

    def test_unavailable_relay_never_used(self):
        manager = RelayManager(available=False)
        assert manager.should_use_relay() is False

    def test_fault_then_success(self):
        manager = RelayManager()
        manager.report_fault()
        assert manager.relay_degraded is True
        assert manager.should_use_relay() is False

        manager.report_success()
        assert manager.relay_degraded is False
        assert manager.should_use_relay() is True

    def test_reset_clears_flag(self):
        manager = RelayManager()
        manager.report_fault()
        manager.report_fault()
        manager.reset()
        assert manager.should_use_relay() is True
