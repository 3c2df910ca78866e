"""
Trading settings snapshot and mode presets.

TradingSettings is immutable. Operators change parameters by swapping in a
new snapshot (with_overrides / apply_mode); each evaluation reads the
snapshot once at its start, so a change never lands mid-decision.
"""
from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

SCHEDULE_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

_DECIMAL_FIELDS = {
    "amount_to_spend_sol",
    "entry_liquidity",
    "min_quality_score",
    "slippage",
    "priority_fee",
    "trailing_stop_percent",
}
_INT_FIELDS = {"concurrent_trades", "max_holders"}


@dataclass(frozen=True)
class TradingSettings:
    """Thresholds that parameterize the evaluator and risk gate."""

    # Sizing
    amount_to_spend_sol: Decimal = Decimal("0.1")
    concurrent_trades: int = 1

    # Admission gate
    entry_liquidity: Decimal = Decimal("20000")
    max_holders: int = 3000
    min_quality_score: Decimal = Decimal("60")

    # Execution
    slippage: Decimal = Decimal("2")  # percent
    priority_fee: Decimal = Decimal("0.00009")  # SOL
    simulated: bool = True

    # Exit
    trailing_stop_percent: Decimal = Decimal("10")

    # Schedule window (local time, HH:MM; equal values = always open)
    schedule_start: str = "00:00"
    schedule_end: str = "00:00"

    def __post_init__(self):
        for name in ("schedule_start", "schedule_end"):
            value = getattr(self, name)
            if not SCHEDULE_PATTERN.match(value):
                raise ValueError(f"{name} must be HH:MM, got {value!r}")
        if not (Decimal("0") < self.trailing_stop_percent < Decimal("100")):
            raise ValueError(
                f"trailing_stop_percent must be in (0, 100), got {self.trailing_stop_percent}"
            )
        if self.concurrent_trades < 1:
            raise ValueError("concurrent_trades must be at least 1")
        if self.amount_to_spend_sol <= 0:
            raise ValueError("amount_to_spend_sol must be positive")

    @property
    def bankroll(self) -> Decimal:
        """Intended total exposure across concurrent trades."""
        return self.amount_to_spend_sol * self.concurrent_trades

    def with_overrides(self, **params: Any) -> "TradingSettings":
        """Return a new snapshot with the given fields replaced."""
        known = {f.name for f in dataclasses.fields(self)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown settings: {sorted(unknown)}")

        coerced: Dict[str, Any] = {}
        for key, value in params.items():
            if key in _DECIMAL_FIELDS:
                coerced[key] = Decimal(str(value))
            elif key in _INT_FIELDS:
                coerced[key] = int(value)
            else:
                coerced[key] = value
        return dataclasses.replace(self, **coerced)

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            result[f.name] = str(value) if isinstance(value, Decimal) else value
        return result


MODE_PRESETS: Dict[str, Dict[str, Any]] = {
    "safe": {
        "entry_liquidity": Decimal("20000"),
        "slippage": Decimal("2"),
        "min_quality_score": Decimal("80"),
        "trailing_stop_percent": Decimal("10"),
    },
    "turbo": {
        "entry_liquidity": Decimal("8000"),
        "slippage": Decimal("5"),
        "min_quality_score": Decimal("65"),
        "trailing_stop_percent": Decimal("20"),
    },
    "yolo": {
        "entry_liquidity": Decimal("1000"),
        "slippage": Decimal("15"),
        "min_quality_score": Decimal("0"),
        "trailing_stop_percent": Decimal("50"),
    },
}


def apply_mode(
    settings: TradingSettings,
    mode: str,
    params: Optional[Dict[str, Any]] = None,
) -> TradingSettings:
    """
    Apply a named preset to a snapshot.

    "custom" uses the safe preset as its base and layers params on top.
    Raises ValueError for an unknown mode or custom without params.
    """
    params = params or {}
    if mode == "custom":
        if not params:
            raise ValueError("custom mode requires params")
        merged = {**MODE_PRESETS["safe"], **params}
    elif mode in MODE_PRESETS:
        merged = {**MODE_PRESETS[mode], **params}
    else:
        raise ValueError(f"Unknown mode: {mode!r}")
    return settings.with_overrides(**merged)
