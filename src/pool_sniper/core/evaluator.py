"""
Evaluator - scores a new pool and decides whether to admit it.

For each PoolCreated the five scoring queries run concurrently and are
awaited jointly (never a partial result). Admission is a strict AND-gate:

    quality_score >= min_quality_score
    liquidity     >= entry_liquidity
    not is_spoof
    not ranked
    holders       <  max_holders

There is no weighting or partial credit. Admitted decisions are passed to
on_admit; rejections are only logged.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from pool_sniper.ingestion import (
    DEFAULT_FLAGS,
    DEFAULT_HOLDERS,
    DEFAULT_LIQUIDITY,
    DEFAULT_PRICE,
    DEFAULT_QUALITY_SCORE,
    PoolCreated,
    ScoringClient,
)
from pool_sniper.settings import TradingSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SignalSet:
    """The five scoring results for one pool."""

    quality_score: Decimal
    liquidity: Decimal
    price: Decimal
    is_spoof: bool
    ranked: bool
    holders: int


@dataclass(frozen=True)
class Decision:
    """Outcome of evaluating one pool."""

    admit: bool
    pool: PoolCreated
    evidence: SignalSet
    reasons: Tuple[str, ...] = ()


DecisionCallback = Callable[[Decision], Awaitable[None]]


def gate(signals: SignalSet, settings: TradingSettings) -> Tuple[str, ...]:
    """
    Apply the admission gate.

    Returns:
        Names of the failed conditions; empty means admit.
    """
    reasons = []
    if signals.quality_score < settings.min_quality_score:
        reasons.append("quality_score")
    if signals.liquidity < settings.entry_liquidity:
        reasons.append("liquidity")
    if signals.is_spoof:
        reasons.append("spoof")
    if signals.ranked:
        reasons.append("ranked")
    if signals.holders >= settings.max_holders:
        reasons.append("holders")
    return tuple(reasons)


class Evaluator:
    """
    Concurrent multi-source scoring with fail-safe defaults.

    Usage:
        evaluator = Evaluator(scoring_client, settings, on_admit=handle)
        decision = await evaluator.evaluate(pool)
    """

    def __init__(
        self,
        client: ScoringClient,
        settings: Optional[TradingSettings] = None,
        on_admit: Optional[DecisionCallback] = None,
    ) -> None:
        self._client = client
        self._settings = settings or TradingSettings()
        self._on_admit = on_admit

        self.evaluated = 0
        self.admitted = 0

    async def _resolve(self, source: str, query: Awaitable[T], default: T) -> T:
        # Scoring client never raises; anything that slips through still
        # only affects this one source.
        try:
            return await query
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Unexpected {source} failure, using default: {e}")
            return default

    async def gather_signals(self, mint: str) -> SignalSet:
        """Query all five sources concurrently and wait for every one."""
        client = self._client
        score, liquidity, price, flags, holders = await asyncio.gather(
            self._resolve("quality_score", client.fetch_quality_score(mint), DEFAULT_QUALITY_SCORE),
            self._resolve("liquidity", client.fetch_liquidity(mint), DEFAULT_LIQUIDITY),
            self._resolve("price", client.fetch_price(mint), DEFAULT_PRICE),
            self._resolve("flags", client.fetch_flags(mint), DEFAULT_FLAGS),
            self._resolve("holders", client.fetch_holders(mint), DEFAULT_HOLDERS),
        )
        return SignalSet(
            quality_score=score,
            liquidity=liquidity,
            price=price,
            is_spoof=flags.is_spoof,
            ranked=flags.ranked,
            holders=holders,
        )

    async def evaluate(
        self,
        pool: PoolCreated,
        settings: Optional[TradingSettings] = None,
    ) -> Decision:
        """
        Score a pool and compute the admit/reject decision.

        Args:
            pool: The pool to evaluate
            settings: Snapshot to gate against (defaults to the one given
                at construction). Read once; later swaps do not affect
                this evaluation.
        """
        snapshot = settings or self._settings
        self.evaluated += 1

        signals = await self.gather_signals(pool.mint)
        reasons = gate(signals, snapshot)
        decision = Decision(
            admit=not reasons,
            pool=pool,
            evidence=signals,
            reasons=reasons,
        )

        if not decision.admit:
            logger.debug(f"Rejected {pool.mint}: {', '.join(reasons)}")
            return decision

        self.admitted += 1
        logger.info(
            f"Admitted {pool.mint} (score={signals.quality_score}, "
            f"liquidity={signals.liquidity}, holders={signals.holders})"
        )
        if self._on_admit:
            try:
                await self._on_admit(decision)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in admit callback for {pool.mint}: {e}")
        return decision
