"""Solana ``logsSubscribe`` WebSocket client.

Delivers one ``LogNotification`` per transaction that mentions the
program, reconnecting and re-subscribing with exponential backoff.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

import websockets
from websockets.asyncio.client import ClientConnection

from launchpad_indexer.ingestor.models import LogNotification

logger = logging.getLogger(__name__)

DEFAULT_PING_INTERVAL = 30  # seconds
DEFAULT_MAX_RECONNECT_DELAY = 30  # seconds
DEFAULT_INITIAL_RECONNECT_DELAY = 1  # seconds
SUBSCRIBE_REQUEST_ID = 1


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class StreamStats:
    notifications_received: int = 0
    reconnect_count: int = 0
    subscription_id: int | None = None
    last_message_time: float | None = None
    connected_since: float | None = None
    last_error: str | None = None


class LogsStreamError(Exception):
    """Base exception for log stream errors."""


class LogsConnectionError(LogsStreamError):
    """Raised when connection to WebSocket fails."""


NotificationCallback = Callable[[LogNotification], Awaitable[None]]
StateCallback = Callable[[ConnectionState], Awaitable[None]]


class LogsStreamHandler:
    """WebSocket client for program log notifications."""

    def __init__(
        self,
        *,
        host: str,
        program_id: str,
        on_notification: NotificationCallback,
        commitment: str = "confirmed",
        on_state_change: StateCallback | None = None,
        ping_interval: int = DEFAULT_PING_INTERVAL,
        max_reconnect_delay: int = DEFAULT_MAX_RECONNECT_DELAY,
        initial_reconnect_delay: int = DEFAULT_INITIAL_RECONNECT_DELAY,
    ) -> None:
        self._host = host
        self._program_id = program_id
        self._on_notification = on_notification
        self._commitment = commitment
        self._on_state_change = on_state_change
        self._ping_interval = ping_interval
        self._max_reconnect_delay = max_reconnect_delay
        self._initial_reconnect_delay = initial_reconnect_delay

        self._state = ConnectionState.DISCONNECTED
        self._stats = StreamStats()

        self._ws: ClientConnection | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def stats(self) -> StreamStats:
        return self._stats

    def subscribe_message(self) -> str:
        return json.dumps(
            {
                "jsonrpc": "2.0",
                "id": SUBSCRIBE_REQUEST_ID,
                "method": "logsSubscribe",
                "params": [
                    {"mentions": [self._program_id]},
                    {"commitment": self._commitment},
                ],
            }
        )

    async def _set_state(self, new_state: ConnectionState) -> None:
        if self._state != new_state:
            old = self._state
            self._state = new_state
            logger.info("Logs stream state: %s -> %s", old.value, new_state.value)
            if self._on_state_change:
                try:
                    await self._on_state_change(new_state)
                except Exception as e:  # pragma: no cover
                    logger.error("Error in state change callback: %s", e)

    async def _connect(self) -> ClientConnection:
        await self._set_state(ConnectionState.CONNECTING)
        try:
            ws = await websockets.connect(
                self._host,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_interval * 2,
                max_size=None,
            )
        except Exception as e:
            self._stats.last_error = str(e)
            raise LogsConnectionError(f"Failed to connect to {self._host}: {e}") from e

        await ws.send(self.subscribe_message())
        await self._set_state(ConnectionState.CONNECTED)
        self._stats.connected_since = time.time()
        logger.info("Subscribed to logs for %s via %s", self._program_id, self._host)
        return ws

    async def handle_message(self, message: str) -> None:
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON message on logs stream")
            return

        if data.get("id") == SUBSCRIBE_REQUEST_ID:
            if "error" in data:
                raise LogsStreamError(f"logsSubscribe rejected: {data['error']}")
            self._stats.subscription_id = data.get("result")
            logger.debug("Logs subscription id %s", self._stats.subscription_id)
            return

        if data.get("method") != "logsNotification":
            logger.debug("Ignoring logs stream message method=%r", data.get("method"))
            return

        try:
            notification = LogNotification.from_websocket_message(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Failed to parse logs notification: %s", e)
            return

        self._stats.notifications_received += 1
        self._stats.last_message_time = time.time()
        await self._on_notification(notification)

    async def _listen(self, ws: ClientConnection) -> None:
        try:
            while self._running:
                try:
                    message = await asyncio.wait_for(ws.recv(), timeout=1.0)
                except TimeoutError:
                    continue

                if isinstance(message, str):
                    await self.handle_message(message)
                else:
                    logger.debug("Ignoring non-text logs stream message")
        except websockets.ConnectionClosed as e:
            logger.warning("Logs stream connection closed: %s", e)
            raise

    async def start(self) -> None:
        if self._running:
            raise RuntimeError("Logs stream already running")
        self._running = True
        self._stop_event = asyncio.Event()

        delay = self._initial_reconnect_delay
        while self._running and not self._stop_event.is_set():
            try:
                self._ws = await self._connect()
                delay = self._initial_reconnect_delay
                await self._listen(self._ws)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not self._running:
                    break
                self._stats.reconnect_count += 1
                self._stats.last_error = str(e)
                logger.warning("Logs stream error, reconnecting in %ds: %s", delay, e)
                await self._set_state(ConnectionState.RECONNECTING)
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                delay = min(self._max_reconnect_delay, delay * 2)
            finally:
                with contextlib.suppress(Exception):
                    if self._ws:
                        await self._ws.close()
                self._ws = None

        await self._set_state(ConnectionState.DISCONNECTED)

    async def stop(self) -> None:
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._ws:
            with contextlib.suppress(Exception):
                await self._ws.close()
