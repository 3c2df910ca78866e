"""Tests for TradingSettings and mode presets."""

from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest

from pool_sniper.settings import MODE_PRESETS, TradingSettings, apply_mode


class TestTradingSettings:
    """Tests for the settings snapshot."""

    def test_defaults(self):
        settings = TradingSettings()

        assert settings.entry_liquidity == Decimal("20000")
        assert settings.max_holders == 3000
        assert settings.min_quality_score == Decimal("60")
        assert settings.priority_fee == Decimal("0.00009")
        assert settings.simulated is True

    def test_is_immutable(self):
        settings = TradingSettings()

        with pytest.raises(FrozenInstanceError):
            settings.max_holders = 10

    def test_bankroll(self):
        settings = TradingSettings(amount_to_spend_sol=Decimal("0.25"), concurrent_trades=4)

        assert settings.bankroll == Decimal("1.00")

    def test_with_overrides_coerces_types(self):
        settings = TradingSettings().with_overrides(
            entry_liquidity="1500.5",
            max_holders="100",
        )

        assert settings.entry_liquidity == Decimal("1500.5")
        assert settings.max_holders == 100

    def test_with_overrides_rejects_unknown(self):
        with pytest.raises(ValueError):
            TradingSettings().with_overrides(token_age=5)

    @pytest.mark.parametrize("value", ["8:00", "24:00", "12:60", "noon"])
    def test_invalid_schedule(self, value):
        with pytest.raises(ValueError):
            TradingSettings(schedule_start=value)

    @pytest.mark.parametrize("pct", [Decimal("0"), Decimal("100"), Decimal("-5")])
    def test_invalid_trailing_stop(self, pct):
        with pytest.raises(ValueError):
            TradingSettings(trailing_stop_percent=pct)

    def test_invalid_sizing(self):
        with pytest.raises(ValueError):
            TradingSettings(concurrent_trades=0)
        with pytest.raises(ValueError):
            TradingSettings(amount_to_spend_sol=Decimal("0"))

    def test_to_dict_stringifies_decimals(self):
        data = TradingSettings().to_dict()

        assert data["entry_liquidity"] == "20000"
        assert data["max_holders"] == 3000


class TestModes:
    """Tests for apply_mode."""

    @pytest.mark.parametrize("mode", sorted(MODE_PRESETS))
    def test_presets_apply(self, mode):
        settings = apply_mode(TradingSettings(), mode)

        for key, value in MODE_PRESETS[mode].items():
            assert getattr(settings, key) == value

    def test_preset_keeps_sizing(self):
        base = TradingSettings(amount_to_spend_sol=Decimal("2"))

        assert apply_mode(base, "yolo").amount_to_spend_sol == Decimal("2")

    def test_custom_layers_on_safe(self):
        settings = apply_mode(TradingSettings(), "custom", {"slippage": 7})

        assert settings.slippage == Decimal("7")
        assert settings.min_quality_score == MODE_PRESETS["safe"]["min_quality_score"]

    def test_custom_requires_params(self):
        with pytest.raises(ValueError):
            apply_mode(TradingSettings(), "custom")

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            apply_mode(TradingSettings(), "degen")
