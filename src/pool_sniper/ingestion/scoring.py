"""
REST client for the five pool scoring sources.

Each source is queried by mint address and reduced to one typed value.
Public fetch_* methods NEVER raise: any failure (network, timeout, HTTP
status, unparseable body) resolves to that source's fail-safe default,
chosen to bias the evaluator toward rejecting the pool.

    Source              Success value          Failure default
    ------------------  ---------------------  ---------------------------
    Quality (rugcheck)  numeric score          0
    Liquidity (dex)     USD liquidity          0
    Price (birdeye)     reference price        0 (not gating)
    Flags (pump.fun)    is_spoof / ranked      is_spoof=True, ranked=True
    Holders (solscan)   holder count           99999
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SpoofFlags:
    """Disqualifying flags reported by the launchpad API."""
    is_spoof: bool
    ranked: bool


# Fail-safe defaults
DEFAULT_QUALITY_SCORE = Decimal("0")
DEFAULT_LIQUIDITY = Decimal("0")
DEFAULT_PRICE = Decimal("0")
DEFAULT_FLAGS = SpoofFlags(is_spoof=True, ranked=True)
DEFAULT_HOLDERS = 99999


class ScoringAPIError(Exception):
    """Base exception for scoring source errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ScoringAPIError):
    """Rate limit exceeded."""
    pass


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ScoringAPIError(f"Expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ScoringAPIError(f"Expected a number, got {value!r}") from e


class ScoringClient:
    """
    Async client for the pool scoring sources.

    Features:
        - Shared aiohttp session with a total request timeout
        - Rate limiting across all sources
        - Retries with exponential backoff for 5xx / timeouts
        - Per-source wall-clock bound so one hung source cannot stall
          an evaluation indefinitely
        - Fail-safe defaults on every public fetch

    Usage:
        async with ScoringClient() as client:
            score = await client.fetch_quality_score(mint)
            holders = await client.fetch_holders(mint)
    """

    RUGCHECK_API = "https://api.rugcheck.xyz"
    DEXSCREENER_API = "https://api.dexscreener.com"
    BIRDEYE_API = "https://public-api.birdeye.so"
    PUMPFUN_API = "https://pump.fun/api"
    SOLSCAN_API = "https://public-api.solscan.io"

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limit: float = 20.0,  # requests per second
        timeout: float = 5.0,
        source_timeout: float = 10.0,
        max_retries: int = 2,
        retry_delay: float = 0.5,
        birdeye_api_key: Optional[str] = None,
        solscan_api_key: Optional[str] = None,
    ):
        """
        Initialize the scoring client.

        Args:
            session: Optional aiohttp session (created if not provided)
            rate_limit: Maximum requests per second across all sources
            timeout: Per-request timeout in seconds
            source_timeout: Upper bound for one source including retries
            max_retries: Attempts per request
            retry_delay: Base delay between retries (exponential backoff)
            birdeye_api_key: Optional Birdeye API key
            solscan_api_key: Optional Solscan API token
        """
        self._session = session
        self._owns_session = session is None
        self._rate_limit = rate_limit
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._source_timeout = source_timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._birdeye_api_key = birdeye_api_key
        self._solscan_api_key = solscan_api_key

        # Rate limiting
        self._request_times: list[float] = []
        self._rate_lock = asyncio.Lock()

        # Fallbacks taken, by source name
        self.failure_counts: Counter = Counter()

    async def __aenter__(self) -> "ScoringClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _rate_limit_wait(self) -> None:
        """Wait if necessary to respect rate limits."""
        async with self._rate_lock:
            now = time.time()

            self._request_times = [t for t in self._request_times if now - t < 1.0]

            if len(self._request_times) >= self._rate_limit:
                wait_time = 1.0 - (now - self._request_times[0])
                if wait_time > 0:
                    await asyncio.sleep(wait_time)

            self._request_times.append(time.time())

    async def _request(self, url: str, **kwargs) -> Any:
        """
        GET a URL with rate limiting and retries.

        Raises:
            ScoringAPIError: On HTTP, transport or decode errors
            RateLimitError: When rate limited on the last attempt
            asyncio.CancelledError: When task is cancelled (re-raised)
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                await self._rate_limit_wait()

                async with self._session.get(url, **kwargs) as response:
                    if response.status == 429:
                        raise RateLimitError("Rate limit exceeded", status_code=429)

                    if 400 <= response.status < 500:
                        text = await response.text()
                        raise ScoringAPIError(
                            f"API error: {response.status} - {text[:200]}",
                            status_code=response.status,
                        )

                    if response.status >= 500:
                        text = await response.text()
                        raise ScoringAPIError(
                            f"Server error: {response.status} - {text[:200]}",
                            status_code=response.status,
                        )

                    return await response.json(content_type=None)

            except RateLimitError as e:
                delay = self._retry_delay * (2 ** attempt) * 2
                logger.warning(f"Rate limited, waiting {delay}s before retry")
                await asyncio.sleep(delay)
                last_error = e

            except ScoringAPIError as e:
                if e.status_code and e.status_code >= 500:
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Server error {e.status_code}, retry {attempt + 1}/{self._max_retries}"
                    )
                    await asyncio.sleep(delay)
                    last_error = e
                else:
                    raise

            except asyncio.TimeoutError:
                delay = self._retry_delay * (2 ** attempt)
                logger.warning(f"Request timeout, retry {attempt + 1}/{self._max_retries}")
                await asyncio.sleep(delay)
                last_error = ScoringAPIError("Request timed out")

            except asyncio.CancelledError:
                logger.debug("Request cancelled")
                raise

            except aiohttp.ClientError as e:
                delay = self._retry_delay * (2 ** attempt)
                logger.warning(f"Request failed: {e}, retry {attempt + 1}/{self._max_retries}")
                await asyncio.sleep(delay)
                last_error = ScoringAPIError(str(e))

            except ValueError as e:
                # Body was not JSON
                raise ScoringAPIError(f"Invalid JSON response: {e}") from e

        raise last_error or ScoringAPIError("Request failed after retries")

    async def _guarded(
        self,
        source: str,
        mint: str,
        fetch: Callable[[], Awaitable[T]],
        default: T,
    ) -> T:
        """Run one source query, substituting its default on any failure."""
        try:
            return await asyncio.wait_for(fetch(), timeout=self._source_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failure_counts[source] += 1
            logger.warning(f"{source} lookup failed for {mint}, using default {default}: {e}")
            return default

    # =========================================================================
    # Sources
    # =========================================================================

    async def fetch_quality_score(self, mint: str) -> Decimal:
        """Rug-check quality score (higher is safer). Default 0."""

        async def fetch() -> Decimal:
            data = await self._request(f"{self.RUGCHECK_API}/score/{mint}")
            if not isinstance(data, dict):
                raise ScoringAPIError("Unexpected rugcheck payload")
            return _to_decimal(data.get("score") or 0)

        return await self._guarded("quality_score", mint, fetch, DEFAULT_QUALITY_SCORE)

    async def fetch_liquidity(self, mint: str) -> Decimal:
        """USD liquidity of the first listed pair. Default 0."""

        async def fetch() -> Decimal:
            data = await self._request(f"{self.DEXSCREENER_API}/latest/dex/tokens/{mint}")
            if not isinstance(data, dict):
                raise ScoringAPIError("Unexpected dexscreener payload")
            pairs = data.get("pairs") or []
            if not pairs:
                return Decimal("0")
            liquidity = (pairs[0] or {}).get("liquidity") or {}
            return _to_decimal(liquidity.get("usd") or 0)

        return await self._guarded("liquidity", mint, fetch, DEFAULT_LIQUIDITY)

    async def fetch_price(self, mint: str) -> Decimal:
        """Reference price. Default 0 (does not gate admission)."""

        async def fetch() -> Decimal:
            headers = {"X-API-KEY": self._birdeye_api_key} if self._birdeye_api_key else None
            data = await self._request(
                f"{self.BIRDEYE_API}/public/price",
                params={"address": mint},
                headers=headers,
            )
            if not isinstance(data, dict):
                raise ScoringAPIError("Unexpected birdeye payload")
            return _to_decimal((data.get("data") or {}).get("value") or 0)

        return await self._guarded("price", mint, fetch, DEFAULT_PRICE)

    async def fetch_flags(self, mint: str) -> SpoofFlags:
        """Spoof / ranked flags. Default is_spoof=True, ranked=True."""

        async def fetch() -> SpoofFlags:
            data = await self._request(f"{self.PUMPFUN_API}/token/{mint}")
            if not isinstance(data, dict):
                raise ScoringAPIError("Unexpected pump.fun payload")
            return SpoofFlags(
                is_spoof=bool(data.get("isSpoof")),
                ranked=bool(data.get("ranked")),
            )

        return await self._guarded("flags", mint, fetch, DEFAULT_FLAGS)

    async def fetch_holders(self, mint: str) -> int:
        """Holder count. Default 99999; a missing total counts as a failure."""

        async def fetch() -> int:
            headers = {"token": self._solscan_api_key} if self._solscan_api_key else None
            data = await self._request(
                f"{self.SOLSCAN_API}/token/holders",
                params={"tokenAddress": mint, "limit": 1},
                headers=headers,
            )
            if not isinstance(data, dict) or data.get("total") is None:
                raise ScoringAPIError("Holder total missing from solscan payload")
            return int(_to_decimal(data["total"]))

        return await self._guarded("holders", mint, fetch, DEFAULT_HOLDERS)
