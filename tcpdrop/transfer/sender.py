"""
File Sender

Send Flow:
1. Validate target address/port
2. Connect (single attempt)
3. Open the source file and size it with an end-of-file seek
4. Write the 8-byte size header
5. Stream the file in CHUNK_SIZE pieces, reporting after each one
6. Close; the receiver sees end-of-stream and finishes

The source file is only touched once the connection is up, so a dead
target never causes a file read.
"""

import asyncio
import ipaddress
import logging
import os
import time
from pathlib import Path

import aiofiles

from ..errors import FileAccessError, InvalidArgumentError, TransferError
from ..progress import (
    ProgressReporter, TransferResult, TransferState,
    SEND_COMPLETE_TEXT, transfer_fraction
)
from .protocol import CHUNK_SIZE, TransferStream, open_stream

logger = logging.getLogger(__name__)


def validate_target(address: str, port: int, allow_hostnames: bool = False):
    """
    Check the target before any socket is created.

    Raises:
        InvalidArgumentError: empty/non-IPv4 address or port outside 1-65535
    """
    if not address or not isinstance(port, int) or not 0 < port <= 65535:
        raise InvalidArgumentError("Invalid IP or port")
    if allow_hostnames:
        return
    try:
        ipaddress.IPv4Address(address)
    except ValueError:
        raise InvalidArgumentError("Invalid IP or port") from None


class FileSender:
    """Sends one file to a listening receiver."""

    def __init__(self, reporter: ProgressReporter = None,
                 chunk_size: int = CHUNK_SIZE,
                 byte_order: str = 'native',
                 connect_timeout: float = 10.0,
                 allow_hostnames: bool = False):
        self.reporter = reporter or ProgressReporter()
        self.chunk_size = chunk_size
        self.byte_order = byte_order
        self.connect_timeout = connect_timeout
        self.allow_hostnames = allow_hostnames

    async def send(self, address: str, port: int, source: Path) -> TransferResult:
        """
        Connect to (address, port) and stream `source` to it.

        Raises:
            InvalidArgumentError, ConnectError, FileAccessError, NetworkError
        """
        try:
            validate_target(address, port, self.allow_hostnames)
            logger.info(f"Connecting to {address}:{port}...")
            stream = await open_stream(
                address, port,
                timeout=self.connect_timeout,
                byte_order=self.byte_order
            )
        except TransferError as e:
            self.reporter.fail(e)
            raise

        return await self.send_over(stream, source)

    async def send_over(self, stream: TransferStream, source: Path) -> TransferResult:
        """Stream `source` over an already connected stream, then close it."""
        source = Path(source)
        try:
            result = await self._send(stream, source)
        except TransferError as e:
            logger.error(f"Send to {stream.remote_address} failed: {e}")
            self.reporter.fail(e)
            raise
        finally:
            await stream.close()

        self.reporter.set_status(TransferState.COMPLETE, SEND_COMPLETE_TEXT)
        return result

    async def _send(self, stream: TransferStream, source: Path) -> TransferResult:
        try:
            f = await aiofiles.open(source, 'rb')
        except OSError as e:
            raise FileAccessError(f"Failed to open file: {source}") from e

        try:
            try:
                await f.seek(0, os.SEEK_END)
                total_size = await f.tell()
                await f.seek(0, os.SEEK_SET)
            except OSError as e:
                raise FileAccessError(f"Failed to read file: {source}") from e

            result = TransferResult(
                direction='send',
                path=source,
                total_size=total_size,
            )
            self.reporter.begin()
            self.reporter.set_status(
                TransferState.TRANSFERRING,
                f"Sending {source.name} ({total_size:,} bytes)"
            )

            await stream.send_header(total_size)
            logger.debug(f"Header sent: {total_size} bytes declared")

            while True:
                try:
                    chunk = await f.read(self.chunk_size)
                except OSError as e:
                    raise FileAccessError(f"Failed to read file: {source}") from e
                if not chunk:
                    break

                await stream.send_chunk(chunk)
                result.bytes_moved += len(chunk)
                result.chunks += 1

                fraction = transfer_fraction(result.bytes_moved, total_size)
                self.reporter.report(fraction, f"Transfer: {fraction * 100:.2f}%")

                # Let the rest of the event loop run between chunks
                await asyncio.sleep(0)
        finally:
            await f.close()

        result.finished_at = time.time()
        logger.info(f"Sent {source.name}: {result.bytes_moved:,} bytes "
                    f"in {result.chunks} chunks")
        return result
