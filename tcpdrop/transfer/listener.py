"""
Single-Shot Listener

Binds an OS-assigned port, reports where it can be reached, then hands out
exactly one inbound connection. The object is consumed by that: it cannot
listen again or accept a second peer.
"""

import asyncio
import logging
import socket
from enum import Enum
from typing import Optional, Tuple

from ..errors import AcceptError, BindError, SessionError
from .protocol import TransferStream

logger = logging.getLogger(__name__)

FALLBACK_ADDRESS = '127.0.0.1'


class ListenerState(Enum):
    NEW = "new"
    LISTENING = "listening"
    ACCEPTED = "accepted"
    CLOSED = "closed"


async def local_ipv4_address() -> str:
    """First IPv4 address the local hostname resolves to."""
    loop = asyncio.get_running_loop()
    hostname = socket.gethostname()
    try:
        infos = await loop.getaddrinfo(
            hostname, None,
            family=socket.AF_INET,
            type=socket.SOCK_STREAM
        )
    except socket.gaierror as e:
        logger.warning(f"Cannot resolve {hostname}: {e}; advertising {FALLBACK_ADDRESS}")
        return FALLBACK_ADDRESS
    if not infos:
        return FALLBACK_ADDRESS
    return infos[0][4][0]


class Listener:
    """
    Listens for a single sender.

    Usage:
        listener = Listener()
        address, port = await listener.listen()   # show these to the user
        stream = await listener.accept_once()
        ...
        await listener.close()
    """

    def __init__(self, host: str = '0.0.0.0', port: int = 0,
                 advertise_host: Optional[str] = None,
                 byte_order: str = 'native'):
        self.host = host
        self.port = port
        self.advertise_host = advertise_host
        self.byte_order = byte_order

        self.address: Optional[str] = None
        self.state = ListenerState.NEW
        self.server: Optional[asyncio.AbstractServer] = None
        self._accepted: Optional[asyncio.Future] = None
        self.rejected = 0

    async def listen(self) -> Tuple[str, int]:
        """
        Bind and start listening.

        Returns:
            (advertised address, bound port)
        """
        if self.state != ListenerState.NEW:
            raise SessionError(f"Listener already used ({self.state.value})")

        loop = asyncio.get_running_loop()
        self._accepted = loop.create_future()

        try:
            self.server = await asyncio.start_server(
                self._on_connection,
                self.host,
                self.port,
                family=socket.AF_INET,
                backlog=1
            )
        except OSError as e:
            self.state = ListenerState.CLOSED
            logger.error(f"Bind failed on {self.host}:{self.port}: {e}")
            raise BindError(f"Bind failed: {e}") from e

        self.state = ListenerState.LISTENING
        self.port = self.server.sockets[0].getsockname()[1]
        self.address = self.advertise_host or await local_ipv4_address()

        logger.info(f"Listening on {self.host}:{self.port} (advertised as {self.address})")
        return self.address, self.port

    def _on_connection(self, reader: asyncio.StreamReader,
                       writer: asyncio.StreamWriter):
        """Take the first connection, turn everyone else away."""
        peer = writer.get_extra_info('peername')
        if self._accepted is None or self._accepted.done():
            self.rejected += 1
            logger.warning(f"Rejecting extra connection from {peer}")
            writer.close()
            return

        logger.info(f"Accepted connection from {peer}")
        self._accepted.set_result(
            TransferStream(reader, writer, byte_order=self.byte_order)
        )
        # One peer per listener: stop taking new connections right away.
        if self.server is not None:
            self.server.close()

    async def accept_once(self, timeout: Optional[float] = None) -> TransferStream:
        """
        Wait for the one inbound connection.

        Raises:
            AcceptError: timed out, or the listener was closed first
        """
        if self.state == ListenerState.CLOSED:
            raise AcceptError("Listener closed before a peer connected")
        if self.state != ListenerState.LISTENING:
            raise SessionError(f"Cannot accept in state {self.state.value}")

        try:
            stream = await asyncio.wait_for(
                asyncio.shield(self._accepted), timeout=timeout
            )
        except asyncio.TimeoutError as e:
            raise AcceptError(f"No connection within {timeout}s") from e
        except asyncio.CancelledError:
            if self.state == ListenerState.CLOSED:
                raise AcceptError("Listener closed before a peer connected") from None
            raise

        self.state = ListenerState.ACCEPTED
        return stream

    async def close(self):
        """Stop listening. Safe to call more than once."""
        if self.state == ListenerState.CLOSED:
            return
        self.state = ListenerState.CLOSED

        if self._accepted is not None:
            if not self._accepted.done():
                self._accepted.cancel()
            elif not self._accepted.cancelled():
                # Server shutdown waits for open connections.
                await self._accepted.result().close()

        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
        logger.debug("Listener closed")
