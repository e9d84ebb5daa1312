import asyncio

import pytest

from custom_components.iport_sm_buttons.lib.protocol import LED_QUERY
from custom_components.iport_sm_buttons.lib.session import (
    DeviceSession,
    SessionConfig,
    SessionConnected,
    SessionData,
    SessionDisconnected,
    reconnect_delay,
)


class _FakeReader:
    def __init__(self) -> None:
        self._chunks: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        self._chunks.put_nowait(data)

    async def read(self, _n: int = -1) -> bytes:
        return await self._chunks.get()


class _FakeWriter:
    def __init__(self) -> None:
        self.buffer: list[bytes] = []
        self.closed = False

    def write(self, data: bytes) -> None:
        self.buffer.append(data)

    def close(self) -> None:
        self.closed = True


def _config(**overrides) -> SessionConfig:
    values = {
        "host": "127.0.0.1",
        "port": 10001,
        "connect_timeout": 1.0,
        "idle_timeout": 10.0,
        "reconnect_base_delay": 60.0,
        "reconnect_max_delay": 300.0,
        "keepalive_interval": 60.0,
        "health_check_interval": 60.0,
        "stale_after": 120.0,
    }
    values.update(overrides)
    return SessionConfig(**values)


def test_reconnect_delay_sequence():
    delays = [reconnect_delay(n, 10, 300) for n in range(7)]
    assert delays == [10, 20, 40, 80, 160, 300, 300]


def test_reconnect_delay_exponent_is_capped():
    assert reconnect_delay(50, 1, 10_000) == 32


def test_write_before_connect_returns_false():
    session = DeviceSession(_config(), lambda _ev: None)
    assert session.write(b"x") is False


def test_connect_against_real_server_reads_data():
    async def _run():
        received: list[bytes] = []

        async def _handle(reader, writer):
            try:
                received.append(await reader.readexactly(len(LED_QUERY)))
                writer.write(b'{"led":"255000000"}\r')
                await writer.drain()
                await reader.read()
            finally:
                writer.close()

        server = await asyncio.start_server(_handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        events = []
        got_data = asyncio.Event()

        def _on_event(event):
            events.append(event)
            if isinstance(event, SessionData):
                got_data.set()

        session = DeviceSession(_config(port=port), _on_event)
        assert await session.connect() is True
        assert session.connected is True
        assert session.reconnect_attempts == 0
        await asyncio.wait_for(got_data.wait(), timeout=2)

        await session.shutdown()
        server.close()
        await server.wait_closed()
        return received, events, session

    received, events, session = asyncio.run(_run())
    assert received == [LED_QUERY]
    assert isinstance(events[0], SessionConnected)
    assert events[0].host == "127.0.0.1"
    assert events[1] == SessionData(b'{"led":"255000000"}\r')
    assert session.connected is False
    assert session.shutting_down is True


def test_device_closing_link_emits_disconnect_and_schedules_reconnect():
    async def _run():
        async def _handle(_reader, writer):
            writer.close()

        server = await asyncio.start_server(_handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]

        events = []
        dropped = asyncio.Event()

        def _on_event(event):
            events.append(event)
            if isinstance(event, SessionDisconnected):
                dropped.set()

        session = DeviceSession(_config(port=port), _on_event)
        await session.connect()
        await asyncio.wait_for(dropped.wait(), timeout=2)
        pending = session.reconnect_pending
        attempts = session.reconnect_attempts
        await session.shutdown()
        server.close()
        await server.wait_closed()
        return events, pending, attempts, session

    events, pending, attempts, session = asyncio.run(_run())
    assert isinstance(events[0], SessionConnected)
    assert isinstance(events[-1], SessionDisconnected)
    assert pending is True
    assert attempts == 1
    assert session.reconnect_pending is False


def test_connect_failure_schedules_reconnect_without_disconnect_event():
    async def _refuse(_host, _port):
        raise ConnectionRefusedError("refused")

    async def _run():
        events = []
        session = DeviceSession(_config(), events.append, open_connection=_refuse)
        ok = await session.connect()
        state = (ok, session.reconnect_pending, session.reconnect_attempts)
        ok_again = await session.connect()
        state_again = (ok_again, session.reconnect_pending, session.reconnect_attempts)
        await session.shutdown()
        return events, state, state_again, session

    events, state, state_again, session = asyncio.run(_run())
    assert events == []
    assert state == (False, True, 1)
    assert state_again == (False, True, 2)
    assert session.reconnect_pending is False


def test_connect_timeout_counts_as_failure():
    async def _hang(_host, _port):
        await asyncio.sleep(10)

    async def _run():
        session = DeviceSession(
            _config(connect_timeout=0.05), lambda _ev: None, open_connection=_hang
        )
        ok = await session.connect()
        pending = session.reconnect_pending
        await session.shutdown()
        return ok, pending

    assert asyncio.run(_run()) == (False, True)


def test_reconnect_fires_after_delay():
    async def _run():
        reader, writer = _FakeReader(), _FakeWriter()
        attempts = []

        async def _open(_host, _port):
            attempts.append(True)
            if len(attempts) == 1:
                raise OSError("unreachable")
            return reader, writer

        events = []
        session = DeviceSession(
            _config(reconnect_base_delay=0.01), events.append, open_connection=_open
        )
        await session.connect()
        await asyncio.sleep(0.1)
        connected = session.connected
        await session.shutdown()
        return len(attempts), connected, events, session

    count, connected, events, session = asyncio.run(_run())
    assert count == 2
    assert connected is True
    assert isinstance(events[0], SessionConnected)
    assert session.reconnect_attempts == 0


def test_keepalive_sends_led_query():
    async def _run():
        reader, writer = _FakeReader(), _FakeWriter()

        async def _open(_host, _port):
            return reader, writer

        session = DeviceSession(
            _config(keepalive_interval=0.02), lambda _ev: None, open_connection=_open
        )
        await session.connect()
        await asyncio.sleep(0.15)
        await session.shutdown()
        return writer

    writer = asyncio.run(_run())
    # one query on connect plus at least two keep-alives
    assert len(writer.buffer) >= 3
    assert set(writer.buffer) == {LED_QUERY}
    assert writer.closed is True


def test_health_check_drops_silent_link():
    async def _run():
        reader, writer = _FakeReader(), _FakeWriter()

        async def _open(_host, _port):
            return reader, writer

        events = []
        session = DeviceSession(
            _config(health_check_interval=0.05, stale_after=0.01),
            events.append,
            open_connection=_open,
        )
        await session.connect()
        await asyncio.sleep(0.15)
        state = (session.connected, session.reconnect_pending)
        await session.shutdown()
        return events, state

    events, state = asyncio.run(_run())
    assert state == (False, True)
    assert isinstance(events[-1], SessionDisconnected)
    assert events[-1].reason.startswith("no data")


def test_idle_timeout_drops_link():
    async def _run():
        reader, writer = _FakeReader(), _FakeWriter()

        async def _open(_host, _port):
            return reader, writer

        events = []
        session = DeviceSession(
            _config(idle_timeout=0.05), events.append, open_connection=_open
        )
        await session.connect()
        await asyncio.sleep(0.15)
        await session.shutdown()
        return events

    events = asyncio.run(_run())
    assert isinstance(events[-1], SessionDisconnected)
    assert events[-1].reason.startswith("idle")


def test_data_refreshes_last_seen_and_listener_errors_are_contained():
    async def _run():
        reader, writer = _FakeReader(), _FakeWriter()

        async def _open(_host, _port):
            return reader, writer

        payloads = []

        def _on_event(event):
            if isinstance(event, SessionData):
                payloads.append(event.payload)
                raise RuntimeError("listener broke")

        session = DeviceSession(_config(), _on_event, open_connection=_open)
        await session.connect()
        reader.feed(b"255000000\r")
        reader.feed(b"000255000\r")
        await asyncio.sleep(0.05)
        alive = session.connected
        since = session.seconds_since_data()
        await session.shutdown()
        return payloads, alive, since

    payloads, alive, since = asyncio.run(_run())
    assert payloads == [b"255000000\r", b"000255000\r"]
    assert alive is True
    assert since is not None and since < 1


@pytest.mark.parametrize("calls", [1, 2])
def test_shutdown_is_terminal(calls):
    async def _run():
        reader, writer = _FakeReader(), _FakeWriter()

        async def _open(_host, _port):
            return reader, writer

        session = DeviceSession(_config(), lambda _ev: None, open_connection=_open)
        await session.connect()
        for _ in range(calls):
            await session.shutdown()
        return session, await session.connect(), session.write(b"x")

    session, reconnected, wrote = asyncio.run(_run())
    assert session.shutting_down is True
    assert reconnected is False
    assert wrote is False
    assert session.reconnect_pending is False


def test_start_schedules_connect_on_running_loop():
    async def _run():
        reader, writer = _FakeReader(), _FakeWriter()

        async def _open(_host, _port):
            return reader, writer

        session = DeviceSession(_config(), lambda _ev: None, open_connection=_open)
        session.start()
        await asyncio.sleep(0.01)
        connected = session.connected
        await session.shutdown()
        return connected

    assert asyncio.run(_run()) is True
