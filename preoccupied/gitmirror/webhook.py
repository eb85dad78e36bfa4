"""
Minimal TCP webhook listener. It performs no HTTP parsing at all: each
connection gets a single bounded read, a fixed acknowledgement, and the
raw bytes are handed on to a payload callback.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from .errors import BindError


logger = logging.getLogger(__name__)


PAYLOAD_LIMIT = 255

ACKNOWLEDGEMENT = b'HTTP/1.0 200 OK\r\n'


PayloadCallback = Callable[[bytes], Any]


class TriggerListener:
    """
    Accepts connections on a port and dispatches whatever the peer sends
    first (up to PAYLOAD_LIMIT bytes) to on_payload.

    The peer is always acknowledged before its payload is dispatched, and
    its connection is closed before dispatch as well, so the sender never
    waits on downstream processing.
    """

    def __init__(
            self,
            port: int,
            on_payload: Optional[PayloadCallback] = None,
            host: str = '0.0.0.0'):

        self.host = host
        self.requested_port = port
        self._callback = on_payload
        self._server: Optional[asyncio.AbstractServer] = None


    @property
    def port(self) -> Optional[int]:
        """
        The port actually bound, or None when not listening
        """

        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]


    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()


    async def start(self) -> None:
        """
        Bind and begin accepting connections
        """

        if self._server is not None:
            return

        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                host=self.host,
                port=self.requested_port,
            )
        except OSError as e:
            raise BindError(f'Unable to listen on {self.host}:{self.requested_port}: {e}') from e

        logger.info(f'Listening for webhooks on {self.host}:{self.port}')


    async def stop(self) -> None:
        """
        Stop accepting connections. Connections that were already accepted
        are allowed to finish.
        """

        server = self._server
        if server is None:
            return

        self._server = None
        server.close()
        logger.info(f'Stopped listening for webhooks on {self.host}:{self.requested_port}')


    async def on_payload(self, payload: bytes) -> None:
        """
        Handle the bytes received from one connection. Does nothing unless
        a callback was given or a subclass overrides it.
        """

        if self._callback is None:
            return

        result = self._callback(payload)
        if inspect.isawaitable(result):
            await result


    async def _handle_connection(
            self,
            reader: asyncio.StreamReader,
            writer: asyncio.StreamWriter) -> None:

        peer = writer.get_extra_info('peername')

        try:
            payload = await reader.read(PAYLOAD_LIMIT)
            if not payload:
                logger.debug(f'Dropping empty connection from {peer}')
                return

            writer.write(ACKNOWLEDGEMENT)
            await writer.drain()

        except (ConnectionError, OSError) as e:
            logger.debug(f'Dropping connection from {peer}: {e}')
            return

        finally:
            writer.close()

        try:
            await self.on_payload(payload)
        except Exception as e:
            logger.error(f'Error handling webhook payload from {peer}: {e}', exc_info=True)


# The end.
