"""
Streaming client for pool-creation notifications.

Features:
    - Subscribes to the pools channel immediately after connecting
    - Linear reconnect backoff: min(attempt * 1s, 10s)
    - Gives up after a bounded number of consecutive connection failures and
      reports a terminal error exactly once (no self-healing until the
      next explicit start())
    - Stale connection detection (no message within heartbeat_timeout)
    - Malformed or unrecognized messages are dropped silently

Only messages shaped {"type": "pool", "event": "create", "data": {...}}
become PoolCreated events.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from .models import FeedState, PoolCreated

logger = logging.getLogger(__name__)


class FeedTerminalError(Exception):
    """Raised (and reported) when the feed exhausts its connection attempts."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


# Type aliases for callbacks
PoolCallback = Callable[[PoolCreated], Awaitable[None]]
StateCallback = Callable[[FeedState], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]


class PoolFeed:
    """
    Resilient websocket subscription to newly created pools.

    State machine:
        DISCONNECTED -> CONNECTING -> SUBSCRIBED -> RECONNECTING -> ... -> FAILED

    The consecutive failure counter resets to zero on every successful
    subscription. After max_reconnects consecutive connection failures the
    feed enters FAILED, calls on_terminal_error once and stops trying.

    Usage:
        async def handle_pool(pool: PoolCreated):
            print(f"New pool: {pool.mint}")

        feed = PoolFeed(on_pool=handle_pool, api_key="...")
        await feed.start()

        # ... later
        await feed.stop()
    """

    MAINNET_URL = "wss://mainnet.laser.api.hel.io/v1/ws?api-key={api_key}"
    DEVNET_URL = "wss://devnet.laser.api.hel.io/v1/ws?api-key={api_key}"

    SUBSCRIBE_MESSAGE = {"type": "subscribe", "channels": ["pools"]}

    def __init__(
        self,
        on_pool: PoolCallback,
        on_error: Optional[ErrorCallback] = None,
        on_terminal_error: Optional[ErrorCallback] = None,
        on_state_change: Optional[StateCallback] = None,
        api_key: str = "",
        testnet: bool = False,
        url: Optional[str] = None,
        max_reconnects: int = 5,
        reconnect_delay_step: float = 1.0,
        max_reconnect_delay: float = 10.0,
        heartbeat_timeout: Optional[float] = 120.0,
    ):
        """
        Initialize the feed.

        Args:
            on_pool: Callback for each PoolCreated event (required)
            on_error: Optional callback for every transport error
            on_terminal_error: Optional callback, called once on FAILED
            on_state_change: Optional callback for state transitions
            api_key: Feed API key (interpolated into the endpoint URL)
            testnet: Use the devnet endpoint instead of mainnet
            url: Full URL override
            max_reconnects: Consecutive connection failures before giving up
            reconnect_delay_step: Delay added per attempt (linear backoff)
            max_reconnect_delay: Upper bound on the reconnect delay
            heartbeat_timeout: Seconds without a message before the
                connection is considered stale (None disables)
        """
        self._on_pool = on_pool
        self._on_error = on_error
        self._on_terminal_error = on_terminal_error
        self._on_state_change = on_state_change

        template = self.DEVNET_URL if testnet else self.MAINNET_URL
        self._url = url or template.format(api_key=api_key)

        self._max_reconnects = max_reconnects
        self._reconnect_delay_step = reconnect_delay_step
        self._max_reconnect_delay = max_reconnect_delay
        self._heartbeat_timeout = heartbeat_timeout

        # Connection state
        self._state = FeedState.DISCONNECTED
        self._ws: Optional[Any] = None
        self._run_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

        # Reconnection state
        self._attempts = 0
        self._reconnect_count = 0
        self._terminal_reported = False

        # Counters
        self._pools_received = 0
        self._messages_dropped = 0

    @property
    def state(self) -> FeedState:
        """Current feed state."""
        return self._state

    @property
    def is_subscribed(self) -> bool:
        """Whether currently subscribed to pool notifications."""
        return self._state == FeedState.SUBSCRIBED

    @property
    def attempts(self) -> int:
        """Consecutive connection failures since the last subscription."""
        return self._attempts

    @property
    def reconnect_count(self) -> int:
        """Total reconnect attempts since construction."""
        return self._reconnect_count

    @property
    def pools_received(self) -> int:
        return self._pools_received

    @property
    def messages_dropped(self) -> int:
        return self._messages_dropped

    @property
    def url(self) -> str:
        return self._url

    def reconnect_delay(self, attempt: int) -> float:
        """Delay after consecutive failure number `attempt` (1-based)."""
        return min(attempt * self._reconnect_delay_step, self._max_reconnect_delay)

    async def _set_state(self, state: FeedState) -> None:
        """Update state and notify callback."""
        if self._state != state:
            old_state = self._state
            self._state = state
            logger.info(f"Feed state: {old_state.value} -> {state.value}")

            if self._on_state_change:
                try:
                    await self._on_state_change(state)
                except Exception as e:
                    logger.error(f"Error in state change callback: {e}")

    async def start(self) -> None:
        """
        Begin (or resume) streaming.

        Allowed from DISCONNECTED and FAILED. Resets the attempt counter,
        so a feed that gave up can be revived by an explicit start().
        """
        if self._state not in (FeedState.DISCONNECTED, FeedState.FAILED):
            logger.warning(f"Cannot start: already in state {self._state.value}")
            return

        self._stop_event.clear()
        self._attempts = 0
        self._terminal_reported = False
        self._run_task = asyncio.create_task(self._run(), name="pool_feed")

    async def stop(self) -> None:
        """
        Terminate the connection and suppress further events.

        Idempotent; safe while connecting, subscribed, waiting to retry
        or after a terminal failure.
        """
        self._stop_event.set()

        if self._ws:
            try:
                await self._ws.close()
            except Exception as e:
                logger.warning(f"Error closing feed connection: {e}")
            self._ws = None

        task = self._run_task
        self._run_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._state != FeedState.DISCONNECTED:
            logger.info("Pool feed stopped")
        await self._set_state(FeedState.DISCONNECTED)

    async def wait_closed(self) -> None:
        """Wait until the run loop exits (stopped or FAILED)."""
        task = self._run_task
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        """Connect, stream, and reconnect until stopped or out of attempts."""
        while not self._stop_event.is_set():
            try:
                await self._connect()
                await self._receive_loop()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Feed transport error: {e}")
                await self._report_error(e)
            finally:
                await self._discard_socket()

            if self._stop_event.is_set():
                break

            self._attempts += 1
            if self._attempts >= self._max_reconnects:
                await self._fail()
                return

            self._reconnect_count += 1
            await self._set_state(FeedState.RECONNECTING)

            delay = self.reconnect_delay(self._attempts)
            logger.info(
                f"Reconnecting in {delay:.1f}s "
                f"(attempt {self._attempts}/{self._max_reconnects})..."
            )
            if not await self._pause(delay):
                break

    async def _connect(self) -> None:
        """Open the socket and subscribe to pool creations."""
        await self._set_state(FeedState.CONNECTING)

        self._ws = await websockets.connect(
            self._url,
            ping_interval=20,
            ping_timeout=10,
            open_timeout=10,
            close_timeout=5,
        )
        await self._ws.send(json.dumps(self.SUBSCRIBE_MESSAGE))

        self._attempts = 0
        await self._set_state(FeedState.SUBSCRIBED)
        logger.info("Subscribed to pool creations")

    async def _receive_loop(self) -> None:
        """Read messages until the connection closes or goes stale."""
        while not self._stop_event.is_set() and self._ws:
            try:
                message = await asyncio.wait_for(
                    self._ws.recv(),
                    timeout=self._heartbeat_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"No message received in {self._heartbeat_timeout}s, reconnecting..."
                )
                return
            except ConnectionClosedOK:
                if not self._stop_event.is_set():
                    logger.warning("Feed closed by server")
                return
            except ConnectionClosed as e:
                logger.warning(f"Feed connection closed: {e}")
                await self._report_error(e)
                return

            await self._handle_message(message)

    async def _handle_message(self, raw_message: Any) -> None:
        """Parse a raw frame and dispatch any pool creations."""
        if self._stop_event.is_set():
            return

        if isinstance(raw_message, (bytes, bytearray)):
            try:
                raw_message = raw_message.decode("utf-8")
            except UnicodeDecodeError:
                self._messages_dropped += 1
                return

        if not raw_message or not raw_message.strip():
            return

        try:
            data = json.loads(raw_message)
        except (ValueError, TypeError):
            self._messages_dropped += 1
            logger.debug(f"Dropped malformed message: {str(raw_message)[:200]}")
            return

        messages = data if isinstance(data, list) else [data]
        for message in messages:
            pool = PoolCreated.from_message(message)
            if pool is None:
                self._messages_dropped += 1
                continue

            self._pools_received += 1
            try:
                await self._on_pool(pool)
            except Exception as e:
                logger.error(f"Error in pool callback for {pool.mint}: {e}")

    async def _pause(self, delay: float) -> bool:
        """Sleep before a retry. Returns False if stop() was called meanwhile."""
        if delay <= 0:
            return not self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            return False
        except asyncio.TimeoutError:
            return True

    async def _fail(self) -> None:
        """Enter FAILED and report the terminal error once."""
        await self._set_state(FeedState.FAILED)
        if self._terminal_reported:
            return
        self._terminal_reported = True

        error = FeedTerminalError(
            f"Feed gave up after {self._max_reconnects} consecutive connection failures",
            attempts=self._max_reconnects,
        )
        logger.error(str(error))
        if self._on_terminal_error:
            try:
                await self._on_terminal_error(error)
            except Exception as e:
                logger.error(f"Error in terminal error callback: {e}")

    async def _report_error(self, error: Exception) -> None:
        if self._on_error:
            try:
                await self._on_error(error)
            except Exception as e:
                logger.error(f"Error in error callback: {e}")

    async def _discard_socket(self) -> None:
        if self._ws:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug(f"Error closing feed socket: {e}")
            self._ws = None
