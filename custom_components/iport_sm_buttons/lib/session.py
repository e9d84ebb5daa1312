"""TCP session to the keypad.

One :class:`DeviceSession` owns the socket for a keypad. It keeps the link
up on its own: failed connects and dropped links are retried with a capped
exponential backoff, a periodic LED query doubles as keep-alive probe, and a
watchdog forces a reconnect when nothing has been received for a while even
though the socket never reported an error (half-open TCP).

Everything runs on one asyncio loop. Listeners receive typed events:
:class:`SessionConnected`, :class:`SessionData` and
:class:`SessionDisconnected`.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Union

from .protocol import LED_QUERY

log = logging.getLogger("iport.session")

MAX_BACKOFF_EXPONENT = 5
READ_CHUNK_SIZE = 4096

OpenConnection = Callable[
    [str, int], Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]
]


@dataclass(slots=True)
class SessionConfig:
    host: str
    port: int
    connect_timeout: float = 5.0
    idle_timeout: float = 30.0
    reconnect_base_delay: float = 5.0
    reconnect_max_delay: float = 300.0
    keepalive_interval: float = 5.0
    health_check_interval: float = 15.0
    stale_after: float = 30.0


@dataclass(slots=True, frozen=True)
class SessionConnected:
    host: str
    port: int


@dataclass(slots=True, frozen=True)
class SessionData:
    payload: bytes


@dataclass(slots=True, frozen=True)
class SessionDisconnected:
    reason: str


SessionEvent = Union[SessionConnected, SessionData, SessionDisconnected]


def reconnect_delay(attempts: int, base: float, ceiling: float) -> float:
    """Delay before retry number ``attempts`` (0-based)."""

    exponent = min(max(attempts, 0), MAX_BACKOFF_EXPONENT)
    return min(ceiling, base * (2 ** exponent))


class DeviceSession:
    def __init__(
        self,
        config: SessionConfig,
        on_event: Callable[[SessionEvent], None],
        *,
        open_connection: OpenConnection = asyncio.open_connection,
        log_frames: bool = False,
    ) -> None:
        self.config = config
        self.log_frames = log_frames
        self._on_event = on_event
        self._open_connection = open_connection

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._read_task: Optional[asyncio.Task] = None
        self._connect_task: Optional[asyncio.Task] = None

        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._keepalive_handle: Optional[asyncio.TimerHandle] = None
        self._health_handle: Optional[asyncio.TimerHandle] = None

        self._connected = False
        self._connecting = False
        self._shutting_down = False
        self._reconnect_attempts = 0
        self._last_data_at: Optional[float] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def last_data_at(self) -> Optional[float]:
        return self._last_data_at

    def seconds_since_data(self) -> Optional[float]:
        if self._last_data_at is None:
            return None
        return self._get_loop().time() - self._last_data_at

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Schedule the first connect on the running loop."""

        if self._shutting_down:
            return
        self._connect_task = self._get_loop().create_task(self.connect())

    async def connect(self) -> bool:
        """Open a fresh connection, replacing any previous socket."""

        if self._shutting_down:
            return False
        if self._connecting:
            log.debug("[%s:%s] connect already in progress", self.config.host, self.config.port)
            return False

        loop = self._get_loop()
        self._connecting = True
        try:
            if self._reconnect_handle is not None:
                self._reconnect_handle.cancel()
                self._reconnect_handle = None
            self._cancel_periodic()
            self._destroy_socket()
            self._connected = False

            host, port = self.config.host, self.config.port
            log.info("[TCP] connecting to %s:%s", host, port)
            try:
                reader, writer = await asyncio.wait_for(
                    self._open_connection(host, port),
                    timeout=self.config.connect_timeout,
                )
            except asyncio.TimeoutError:
                self._handle_disconnect(
                    f"no handshake within {self.config.connect_timeout:g}s"
                )
                return False
            except OSError as err:
                self._handle_disconnect(f"connect failed: {err}")
                return False

            if self._shutting_down:
                self._close_writer(writer)
                return False

            self._reader = reader
            self._writer = writer
            self._connected = True
            self._reconnect_attempts = 0
            self._last_data_at = loop.time()
            log.info("[TCP] connected to %s:%s", host, port)

            self._emit(SessionConnected(host, port))
            self.write(LED_QUERY)

            self._read_task = loop.create_task(self._read_loop(reader))
            self._schedule_keepalive()
            self._schedule_health_check()
            return True
        finally:
            self._connecting = False

    async def shutdown(self) -> None:
        """Close the link for good. Later calls are no-ops."""

        if self._shutting_down:
            return
        self._shutting_down = True
        log.info("[TCP] shutting down session to %s:%s", self.config.host, self.config.port)

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._cancel_periodic()

        read_task = self._read_task
        connect_task = self._connect_task
        self._connected = False
        self._destroy_socket()

        current = asyncio.current_task()
        for task in (read_task, connect_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._connect_task = None

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    def write(self, data: bytes) -> bool:
        """Best-effort send. Returns ``False`` when nothing was written."""

        writer = self._writer
        if not self._connected or self._shutting_down or writer is None:
            return False
        try:
            writer.write(data)
        except (OSError, RuntimeError) as err:
            log.debug("[TCP] write failed: %s", err)
            return False
        if self.log_frames:
            log.debug("[TX] %r", data)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        loop = self._get_loop()
        while True:
            try:
                data = await asyncio.wait_for(
                    reader.read(READ_CHUNK_SIZE),
                    timeout=self.config.idle_timeout,
                )
            except asyncio.TimeoutError:
                reason = f"idle for {self.config.idle_timeout:g}s"
                break
            except OSError as err:
                reason = f"socket error: {err}"
                break

            if not data:
                reason = "connection closed by device"
                break
            if reader is not self._reader:
                return

            self._last_data_at = loop.time()
            if self.log_frames:
                log.debug("[RX] %r", data)
            self._emit(SessionData(data))

        if reader is self._reader:
            self._handle_disconnect(reason)

    def _handle_disconnect(self, reason: str) -> None:
        was_connected = self._connected
        self._connected = False
        self._cancel_periodic()
        self._destroy_socket()

        if was_connected:
            log.warning("[TCP] link to %s:%s lost: %s", self.config.host, self.config.port, reason)
            self._emit(SessionDisconnected(reason))
        else:
            log.info("[TCP] %s:%s unavailable: %s", self.config.host, self.config.port, reason)

        if not self._shutting_down:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        delay = reconnect_delay(
            self._reconnect_attempts,
            self.config.reconnect_base_delay,
            self.config.reconnect_max_delay,
        )
        self._reconnect_attempts += 1
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
        log.info(
            "[TCP] reconnecting in %gs (attempt %d)", delay, self._reconnect_attempts
        )
        self._reconnect_handle = self._get_loop().call_later(delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_handle = None
        if self._shutting_down:
            return
        self._connect_task = self._get_loop().create_task(self.connect())

    def _schedule_keepalive(self) -> None:
        if self._keepalive_handle is not None:
            self._keepalive_handle.cancel()
        self._keepalive_handle = self._get_loop().call_later(
            self.config.keepalive_interval, self._keepalive_tick
        )

    def _keepalive_tick(self) -> None:
        self._keepalive_handle = None
        if not self._connected or self._shutting_down:
            return
        self.write(LED_QUERY)
        self._schedule_keepalive()

    def _schedule_health_check(self) -> None:
        if self._health_handle is not None:
            self._health_handle.cancel()
        self._health_handle = self._get_loop().call_later(
            self.config.health_check_interval, self._health_tick
        )

    def _health_tick(self) -> None:
        self._health_handle = None
        if not self._connected or self._shutting_down:
            return
        silent_for = self.seconds_since_data()
        if silent_for is not None and silent_for > self.config.stale_after:
            self._handle_disconnect(f"no data for {silent_for:.0f}s")
            return
        self._schedule_health_check()

    def _cancel_periodic(self) -> None:
        if self._keepalive_handle is not None:
            self._keepalive_handle.cancel()
            self._keepalive_handle = None
        if self._health_handle is not None:
            self._health_handle.cancel()
            self._health_handle = None

    def _destroy_socket(self) -> None:
        writer = self._writer
        read_task = self._read_task
        self._reader = None
        self._writer = None
        self._read_task = None

        if read_task is not None and not read_task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if read_task is not current:
                read_task.cancel()
        if writer is not None:
            self._close_writer(writer)

    @staticmethod
    def _close_writer(writer: asyncio.StreamWriter) -> None:
        try:
            writer.close()
        except (OSError, RuntimeError):
            pass

    def _emit(self, event: SessionEvent) -> None:
        try:
            self._on_event(event)
        except Exception:
            log.exception("session listener failed for %s", type(event).__name__)


__all__ = [
    "DeviceSession",
    "SessionConfig",
    "SessionConnected",
    "SessionData",
    "SessionDisconnected",
    "SessionEvent",
    "reconnect_delay",
]
