"""
RiskGate - kill switch, bankroll sizing and trailing-stop exits.

Kill-switch check order (first positive wins):
    1. Fast shared flag (Redis key "sniper-kill-switch")
    2. Most recent row of the remote control log (action kill/stop/off)
    3. Process override (KILL_SWITCH=true or set_process_override(True))

A transport error in a source counts as "not active" for that source only.

Trailing stop:
    stop = highest_price * (1 - pct / 100)
    First observation seeds highest_price = entry_price and never exits.
    The stop only ratchets upward; exit once price <= stop.
"""
from __future__ import annotations

import logging
import os
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Protocol

from pool_sniper.execution.models import Position
from pool_sniper.settings import TradingSettings

if TYPE_CHECKING:
    from pool_sniper.monitoring import AlertManager

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class KillSwitchSource(Protocol):
    async def is_active(self) -> bool:
        ...


def trailing_stop_for(price: Decimal, pct: Decimal) -> Decimal:
    return price * (1 - pct / HUNDRED)


class RiskGate:
    """
    Pre-execution risk checks and the trailing-stop exit rule.

    Usage:
        risk = RiskGate(
            flag_source=RedisFlagSource.from_url(redis_url),
            control_log=ControlLogSource(supabase_url, supabase_key),
            alert_manager=alerts,
        )

        if await risk.check_kill_switch():
            return  # drop the trade

        risk.check_bankroll(settings)

        if risk.check_trailing_stop(position, current_price):
            await trader.sell(position, settings)
    """

    ENV_FLAG = "KILL_SWITCH"

    def __init__(
        self,
        flag_source: Optional[KillSwitchSource] = None,
        control_log: Optional[KillSwitchSource] = None,
        alert_manager: Optional["AlertManager"] = None,
        trailing_stop_percent: Decimal = Decimal("10"),
    ) -> None:
        """
        Initialize the risk gate.

        Args:
            flag_source: Optional fast shared flag (skipped when None)
            control_log: Optional remote control log (skipped when None)
            alert_manager: Optional alert sink for panic alerts
            trailing_stop_percent: Default trailing-stop distance
        """
        self._flag_source = flag_source
        self._control_log = control_log
        self._alert_manager = alert_manager
        self._trailing_stop_percent = trailing_stop_percent
        self._process_override = False

        self.last_bankroll: Optional[Decimal] = None

    # =========================================================================
    # Kill switch
    # =========================================================================

    def set_process_override(self, active: bool) -> None:
        """Set the in-process kill-switch override."""
        self._process_override = active
        logger.warning(f"Process kill-switch override set to {active}")

    def _process_flag_active(self) -> bool:
        if self._process_override:
            return True
        return os.environ.get(self.ENV_FLAG, "").strip().lower() == "true"

    async def _source_active(self, name: str, source: Optional[KillSwitchSource]) -> bool:
        if source is None:
            return False
        try:
            return await source.is_active()
        except Exception as e:
            logger.warning(f"Kill-switch source {name} unavailable, treating as inactive: {e}")
            return False

    async def check_kill_switch(self) -> bool:
        """
        Whether trading is currently suppressed.

        Must be called (and return False) before every execution.
        """
        if await self._source_active("flag", self._flag_source):
            logger.warning("Kill switch active (shared flag)")
            return True

        if await self._source_active("control_log", self._control_log):
            logger.warning("Kill switch active (control log)")
            return True

        if self._process_flag_active():
            logger.warning("Kill switch active (process flag)")
            return True

        return False

    # =========================================================================
    # Bankroll
    # =========================================================================

    def check_bankroll(self, settings: TradingSettings) -> Decimal:
        """
        Compute intended total exposure (per-trade amount x concurrent trades).

        Observability hook only; never rejects a trade.
        """
        bankroll = settings.bankroll
        self.last_bankroll = bankroll
        logger.info(
            f"Bankroll: {bankroll} SOL "
            f"({settings.amount_to_spend_sol} x {settings.concurrent_trades})"
        )
        return bankroll

    # =========================================================================
    # Trailing stop
    # =========================================================================

    def check_trailing_stop(
        self,
        position: Position,
        current_price: Decimal,
        pct: Optional[Decimal] = None,
    ) -> bool:
        """
        Evaluate the trailing-stop rule for one price observation.

        Mutates position.highest_price / position.trailing_stop. Callers
        must serialize calls per position.

        Returns:
            True when the position should be exited
        """
        pct = pct if pct is not None else self._trailing_stop_percent

        if position.highest_price is None or position.trailing_stop is None:
            position.highest_price = position.entry_price
            position.trailing_stop = trailing_stop_for(position.entry_price, pct)
            logger.debug(
                f"Seeded trailing stop for {position.position_id}: "
                f"high={position.highest_price} stop={position.trailing_stop}"
            )
            return False

        if current_price > position.highest_price:
            position.highest_price = current_price
            position.trailing_stop = trailing_stop_for(current_price, pct)
            logger.debug(
                f"Ratcheted trailing stop for {position.position_id}: "
                f"high={position.highest_price} stop={position.trailing_stop}"
            )

        return current_price <= position.trailing_stop

    # =========================================================================
    # Alerts
    # =========================================================================

    def panic_alert(self, reason: str) -> None:
        """Best-effort operator alert; delivery failures are swallowed."""
        logger.error(f"PANIC ALERT: {reason}")
        if self._alert_manager is None:
            return
        try:
            self._alert_manager.alert_panic(reason)
        except Exception as e:
            logger.error(f"Failed to deliver panic alert: {e}")
