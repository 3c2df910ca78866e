"""
Tests for RiskGate.

These tests verify:
- Kill-switch check order and short-circuiting
- Source errors count as inactive for that source only
- Bankroll computation
- Trailing-stop seeding, ratcheting, triggering and idempotence
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from pool_sniper.core.risk import RiskGate, trailing_stop_for


def source(active=False, error=None):
    mock = MagicMock()
    mock.is_active = AsyncMock(return_value=active, side_effect=error)
    return mock


class TestKillSwitch:
    """Tests for check_kill_switch."""

    @pytest.mark.asyncio
    async def test_inactive_without_sources(self, monkeypatch):
        monkeypatch.delenv("KILL_SWITCH", raising=False)
        risk = RiskGate()

        assert await risk.check_kill_switch() is False

    @pytest.mark.asyncio
    async def test_flag_active_skips_control_log(self):
        flag = source(active=True)
        control_log = source(active=False)
        risk = RiskGate(flag_source=flag, control_log=control_log)

        assert await risk.check_kill_switch() is True
        control_log.is_active.assert_not_called()

    @pytest.mark.asyncio
    async def test_control_log_consulted_when_flag_clear(self, monkeypatch):
        monkeypatch.delenv("KILL_SWITCH", raising=False)
        flag = source(active=False)
        control_log = source(active=True)
        risk = RiskGate(flag_source=flag, control_log=control_log)

        assert await risk.check_kill_switch() is True
        flag.is_active.assert_awaited_once()
        control_log.is_active.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_env_flag(self, monkeypatch):
        monkeypatch.setenv("KILL_SWITCH", "true")
        risk = RiskGate(flag_source=source(), control_log=source())

        assert await risk.check_kill_switch() is True

    @pytest.mark.asyncio
    async def test_env_flag_other_values_inactive(self, monkeypatch):
        monkeypatch.setenv("KILL_SWITCH", "false")
        risk = RiskGate()

        assert await risk.check_kill_switch() is False

    @pytest.mark.asyncio
    async def test_process_override(self, monkeypatch):
        monkeypatch.delenv("KILL_SWITCH", raising=False)
        risk = RiskGate()

        risk.set_process_override(True)
        assert await risk.check_kill_switch() is True

        risk.set_process_override(False)
        assert await risk.check_kill_switch() is False

    @pytest.mark.asyncio
    async def test_flag_error_falls_through_to_control_log(self, monkeypatch):
        monkeypatch.delenv("KILL_SWITCH", raising=False)
        flag = source(error=ConnectionError("redis down"))
        control_log = source(active=True)
        risk = RiskGate(flag_source=flag, control_log=control_log)

        assert await risk.check_kill_switch() is True

    @pytest.mark.asyncio
    async def test_all_sources_erroring_is_inactive(self, monkeypatch):
        monkeypatch.delenv("KILL_SWITCH", raising=False)
        risk = RiskGate(
            flag_source=source(error=ConnectionError("redis down")),
            control_log=source(error=TimeoutError("supabase slow")),
        )

        assert await risk.check_kill_switch() is False


class TestBankroll:
    """Tests for check_bankroll."""

    def test_amount_times_concurrent_trades(self, settings):
        risk = RiskGate()

        assert risk.check_bankroll(settings) == Decimal("1.0")
        assert risk.last_bankroll == Decimal("1.0")


class TestTrailingStop:
    """Tests for check_trailing_stop."""

    def test_stop_formula(self):
        assert trailing_stop_for(Decimal("100"), Decimal("10")) == Decimal("90")
        assert trailing_stop_for(Decimal("120"), Decimal("10")) == Decimal("108")

    def test_first_observation_seeds_from_entry(self, position):
        risk = RiskGate()

        assert risk.check_trailing_stop(position, Decimal("100"), Decimal("10")) is False
        assert position.highest_price == Decimal("100")
        assert position.trailing_stop == Decimal("90")

    def test_first_observation_never_exits(self, position):
        """Even a price below the seeded stop does not exit on seeding."""
        risk = RiskGate()

        assert risk.check_trailing_stop(position, Decimal("50"), Decimal("10")) is False

    def test_ratchet_then_trigger(self, position):
        risk = RiskGate()
        pct = Decimal("10")

        assert risk.check_trailing_stop(position, Decimal("100"), pct) is False
        assert risk.check_trailing_stop(position, Decimal("120"), pct) is False
        assert position.highest_price == Decimal("120")
        assert position.trailing_stop == Decimal("108")

        assert risk.check_trailing_stop(position, Decimal("105"), pct) is True

    def test_stop_never_moves_down(self, position):
        risk = RiskGate()
        pct = Decimal("10")
        risk.check_trailing_stop(position, Decimal("100"), pct)
        risk.check_trailing_stop(position, Decimal("120"), pct)

        risk.check_trailing_stop(position, Decimal("110"), pct)

        assert position.highest_price == Decimal("120")
        assert position.trailing_stop == Decimal("108")

    def test_triggers_at_exactly_the_stop(self, position):
        risk = RiskGate()
        pct = Decimal("10")
        risk.check_trailing_stop(position, Decimal("100"), pct)

        assert risk.check_trailing_stop(position, Decimal("90"), pct) is True

    def test_same_price_is_idempotent(self, position):
        risk = RiskGate()
        pct = Decimal("10")
        risk.check_trailing_stop(position, Decimal("100"), pct)
        risk.check_trailing_stop(position, Decimal("120"), pct)

        first = risk.check_trailing_stop(position, Decimal("120"), pct)
        state = (position.highest_price, position.trailing_stop)
        second = risk.check_trailing_stop(position, Decimal("120"), pct)

        assert first is second is False
        assert (position.highest_price, position.trailing_stop) == state

    def test_default_percent_from_constructor(self, position):
        risk = RiskGate(trailing_stop_percent=Decimal("20"))

        risk.check_trailing_stop(position, Decimal("100"))

        assert position.trailing_stop == Decimal("80")


class TestPanicAlert:
    """Tests for panic_alert."""

    def test_forwards_to_alert_manager(self):
        alerts = MagicMock()
        risk = RiskGate(alert_manager=alerts)

        risk.panic_alert("wallet drained")

        alerts.alert_panic.assert_called_once_with("wallet drained")

    def test_delivery_failure_is_swallowed(self):
        alerts = MagicMock()
        alerts.alert_panic.side_effect = RuntimeError("telegram down")
        risk = RiskGate(alert_manager=alerts)

        risk.panic_alert("wallet drained")
