"""Front-end message channel.

Protocol: line-delimited JSON over a local TCP connection. Each line from the
front end is a request ``{"channel", "request_id", "params"}``; each line back
is a response ``{"channel", "request_id", "error", "result"}``. Responses are
written as requests complete, in any order; the front end matches them by
``(channel, request_id)``.
"""

import asyncio
import json
import logging
from typing import Callable, Optional

from pydantic import ValidationError

from dtcontrol.models.messages import BridgeRequest, BridgeResponse, error_response
from dtcontrol.services.bridge import RequestBridge

logger = logging.getLogger(__name__)

EXIT_CHANNEL = "exit"

# Longest accepted request line, newline excluded
DEFAULT_LINE_LIMIT = 2 ** 16


class _Connection:
    """One front-end connection; serializes writes of concurrent replies."""

    def __init__(self, writer: asyncio.StreamWriter) -> None:
        self.writer = writer
        self.lock = asyncio.Lock()
        self.peer = writer.get_extra_info("peername")

    async def send(self, response: BridgeResponse) -> None:
        async with self.lock:
            if self.writer.is_closing():
                logger.debug("dropping response for %s %r: %s disconnected",
                             response.channel, response.request_id, self.peer)
                return
            try:
                self.writer.write(response.model_dump_json().encode("utf-8") + b"\n")
                await self.writer.drain()
            except ConnectionError as e:
                logger.warning("could not deliver %s %r to %s: %s",
                               response.channel, response.request_id, self.peer, e)


def parse_request(line: bytes) -> BridgeRequest:
    """Decode one request line.

    Raises:
        ValueError: If the line is not valid JSON or not a well-formed request.
    """
    data = json.loads(line.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("request must be a JSON object")
    return BridgeRequest.model_validate(data)


async def _read_line(reader: asyncio.StreamReader) -> Optional[bytes]:
    """Read one line, or return None after skipping one longer than the reader limit.

    Returns b"" at end of stream, like ``StreamReader.readline``.
    """
    overlong = False
    while True:
        try:
            line = await reader.readuntil(b"\n")
        except asyncio.LimitOverrunError as e:
            # Drop what is buffered and keep scanning for the end of this line
            await reader.readexactly(e.consumed)
            overlong = True
            continue
        except asyncio.IncompleteReadError as e:
            return b"" if overlong else e.partial
        return None if overlong else line


class FrontendChannel:
    """Local server carrying front-end requests into the bridge."""

    def __init__(
        self,
        bridge: RequestBridge,
        host: str = "127.0.0.1",
        port: int = 55557,
        on_exit: Optional[Callable[[], None]] = None,
        line_limit: int = DEFAULT_LINE_LIMIT,
    ) -> None:
        self.bridge = bridge
        self.host = host
        self.port = port
        self.on_exit = on_exit
        self.line_limit = line_limit
        self._server: Optional[asyncio.base_events.Server] = None
        self._connections: set[_Connection] = set()

    @property
    def bound_port(self) -> Optional[int]:
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle_client, self.host, self.port, limit=self.line_limit,
        )
        logger.info("Front-end channel listening on %s:%s", self.host, self.bound_port)

    async def close(self) -> None:
        if self._server is None:
            return
        self._server.close()
        for connection in list(self._connections):
            connection.writer.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Front-end channel closed")

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        connection = _Connection(writer)
        self._connections.add(connection)
        logger.debug("front end connected from %s", connection.peer)
        try:
            while True:
                line = await _read_line(reader)
                if line is None:
                    logger.warning("front end %s sent a line over %d bytes", connection.peer, self.line_limit)
                    await connection.send(error_response("", None, "malformed request: line too long"))
                    continue
                if not line:
                    break
                if not line.strip():
                    continue
                await self._handle_line(connection, line)
        except ConnectionError as e:
            logger.warning("front end %s connection lost: %s", connection.peer, e)
        finally:
            self._connections.discard(connection)
            writer.close()
            logger.debug("front end %s disconnected", connection.peer)

    async def _handle_line(self, connection: _Connection, line: bytes) -> None:
        try:
            request = parse_request(line)
        except (ValueError, ValidationError) as e:
            logger.warning("malformed front-end message from %s: %s", connection.peer, e)
            await connection.send(error_response("", None, f"malformed request: {e}"))
            return

        if request.channel == EXIT_CHANNEL:
            logger.info("front end requested exit")
            if self.on_exit is not None:
                self.on_exit()
            return

        self.bridge.submit(request, connection.send)
