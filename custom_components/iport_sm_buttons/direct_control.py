from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

_LOGGER = logging.getLogger(__name__)

LISTEN_HOST = "127.0.0.1"

DEFAULT_MAX_REQUEST_LINE_BYTES = 4096
DEFAULT_MAX_HEADER_BYTES = 16384
DEFAULT_MAX_HEADER_COUNT = 100
DEFAULT_MAX_BODY_BYTES = 1024
DEFAULT_READ_TIMEOUT_SECONDS = 2.0

_REASONS = {
    200: "OK",
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    408: "Request Timeout",
    413: "Payload Too Large",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
}


class DirectControlTarget(Protocol):
    entry_id: str

    async def async_trigger_button(self, button_number: int) -> None:  # pragma: no cover - protocol
        ...

    def set_led(self, r: int, g: int, b: int) -> bool:  # pragma: no cover - protocol
        ...


class _RequestError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


def _valid_channel(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 255


class DirectControlServer:
    """Loopback-only HTTP endpoint that acts like a physical key press.

    ``POST /action/button/<n>`` runs button ``n`` exactly as a press on the
    keypad would, ``POST /action/led`` with ``{"r": .., "g": .., "b": ..}``
    sets the LED.
    """

    def __init__(self, target: DirectControlTarget, port: int) -> None:
        self._target = target
        self._port = int(port)
        self._server: asyncio.AbstractServer | None = None
        self._max_request_line_bytes = DEFAULT_MAX_REQUEST_LINE_BYTES
        self._max_header_bytes = DEFAULT_MAX_HEADER_BYTES
        self._max_header_count = DEFAULT_MAX_HEADER_COUNT
        self._max_body_bytes = DEFAULT_MAX_BODY_BYTES
        self._read_timeout_seconds = DEFAULT_READ_TIMEOUT_SECONDS
        self._last_start_error: str | None = None

    @property
    def port(self) -> int:
        return self._port

    @property
    def running(self) -> bool:
        return self._server is not None

    def get_last_start_error(self) -> str | None:
        return self._last_start_error

    async def async_start(self) -> None:
        if self._server is not None:
            return
        try:
            self._server = await asyncio.start_server(
                self._async_handle_client,
                host=LISTEN_HOST,
                port=self._port,
            )
        except OSError as err:
            self._last_start_error = str(err) or repr(err)
            _LOGGER.error(
                "[%s] Failed to start direct control server on port %s: %s",
                self._target.entry_id,
                self._port,
                err,
            )
            return

        self._last_start_error = None
        _LOGGER.info(
            "[%s] Direct control HTTP server running on http://%s:%s",
            self._target.entry_id,
            LISTEN_HOST,
            self._port,
        )

    async def async_stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        _LOGGER.info("[%s] Direct control HTTP server stopped", self._target.entry_id)

    async def _async_handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            method, path, body = await self._async_read_request(reader)
            status, payload = await self.async_handle_request(method=method, path=path, body=body)
        except _RequestError as err:
            status, payload = err.status, {"error": err.message}
        except asyncio.TimeoutError:
            status, payload = 408, {"error": "request timeout"}
        except asyncio.IncompleteReadError:
            status, payload = 400, {"error": "incomplete body"}
        except Exception:  # pragma: no cover - network boundary
            _LOGGER.exception("[%s] Direct control request failed", self._target.entry_id)
            status, payload = 500, {"error": "internal error"}
        try:
            self._write_json(writer, status, payload)
        finally:
            writer.close()
            await writer.wait_closed()

    async def _async_readline(self, reader: asyncio.StreamReader) -> bytes:
        return await asyncio.wait_for(reader.readline(), timeout=self._read_timeout_seconds)

    async def _async_read_request(self, reader: asyncio.StreamReader) -> tuple[str, str, bytes]:
        first = await self._async_readline(reader)
        if len(first) > self._max_request_line_bytes:
            raise _RequestError(431, "request headers too large")
        fields = first.decode("utf-8", errors="ignore").split()
        if len(fields) != 3:
            raise _RequestError(400, "bad request")
        method, path = fields[0], fields[1]

        content_length = "0"
        seen = size = 0
        while True:
            line = await self._async_readline(reader)
            if not line.strip():
                break
            seen += 1
            size += len(line)
            if seen > self._max_header_count or size > self._max_header_bytes:
                raise _RequestError(431, "request headers too large")
            name, _, value = line.decode("utf-8", errors="ignore").partition(":")
            if name.strip().lower() == "content-length":
                content_length = value.strip()

        if not content_length.isdigit():
            raise _RequestError(400, "bad request")
        length = int(content_length)
        if length > self._max_body_bytes:
            raise _RequestError(413, "payload too large")
        if not length:
            return method, path, b""
        body = await asyncio.wait_for(
            reader.readexactly(length), timeout=self._read_timeout_seconds
        )
        return method, path, body

    async def async_handle_request(
        self, *, method: str, path: str, body: bytes
    ) -> tuple[int, dict[str, Any]]:
        parts = [part for part in path.split("?", 1)[0].strip("/").split("/") if part]
        if len(parts) < 2 or parts[0] != "action":
            return (404, {"error": "not found"})
        if method.upper() != "POST":
            return (405, {"error": "method not allowed"})

        if parts[1] == "button" and len(parts) == 3:
            return await self._async_handle_button(parts[2])
        if parts[1] == "led" and len(parts) == 2:
            return self._handle_led(body)
        return (404, {"error": "not found"})

    async def _async_handle_button(self, raw_number: str) -> tuple[int, dict[str, Any]]:
        try:
            button_number = int(raw_number, 10)
        except ValueError:
            button_number = 0
        if button_number < 1 or button_number > 10:
            return (400, {"error": "Invalid button number (must be 1-10)"})

        _LOGGER.info("[%s] Direct control: triggering button %d", self._target.entry_id, button_number)
        try:
            await self._target.async_trigger_button(button_number)
        except Exception as err:
            _LOGGER.error(
                "[%s] Direct control failed for button %d: %s",
                self._target.entry_id,
                button_number,
                err,
            )
            return (500, {"error": str(err)})
        return (200, {"success": True})

    def _handle_led(self, body: bytes) -> tuple[int, dict[str, Any]]:
        try:
            data = json.loads(body.decode("utf-8") or "{}")
        except ValueError:
            return (400, {"error": "Body must be JSON"})
        if not isinstance(data, dict):
            return (400, {"error": "Body must be a JSON object"})

        r, g, b = data.get("r"), data.get("g"), data.get("b")
        if not all(_valid_channel(v) for v in (r, g, b)):
            return (400, {"error": "Invalid RGB values (must be 0-255)"})

        _LOGGER.info("[%s] Direct control: setting LED to RGB(%d, %d, %d)", self._target.entry_id, r, g, b)
        try:
            self._target.set_led(r, g, b)
        except Exception as err:
            _LOGGER.error("[%s] Direct LED control failed: %s", self._target.entry_id, err)
            return (500, {"error": str(err)})
        return (200, {"success": True})

    def _write_json(self, writer: asyncio.StreamWriter, status: int, payload: dict[str, Any]) -> None:
        body = json.dumps(payload).encode("utf-8")
        response = (
            f"HTTP/1.1 {status} {_REASONS.get(status, 'OK')}\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Content-Type: application/json\r\n"
            "Connection: close\r\n\r\n"
        ).encode("utf-8") + body
        writer.write(response)
