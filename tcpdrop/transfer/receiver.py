"""
File Receiver

Design Decision: End of Transfer
================================

Options Considered:
1. Stop once total_size bytes have arrived
   - Detects nothing if the sender dies early
2. Read until the sender closes the connection
   - Same as what existing senders expect
   - A truncated stream still looks like a finished one

Decision: read until close
- The header size only drives the progress fraction
- A short stream ends with "Transfer complete" like a full one; callers
  check TransferResult.complete, or turn on verify_size to get a
  ProtocolError instead
"""

import logging
import time
from pathlib import Path

import aiofiles

from ..errors import FileAccessError, ProtocolError, TransferError
from ..progress import (
    ProgressReporter, TransferResult, TransferState,
    RECEIVE_COMPLETE_TEXT, transfer_fraction
)
from .protocol import CHUNK_SIZE, TransferStream

logger = logging.getLogger(__name__)


class FileReceiver:
    """Receives one file from an accepted TransferStream."""

    def __init__(self, reporter: ProgressReporter = None,
                 chunk_size: int = CHUNK_SIZE,
                 verify_size: bool = False):
        self.reporter = reporter or ProgressReporter()
        self.chunk_size = chunk_size
        self.verify_size = verify_size

    async def receive(self, stream: TransferStream, destination: Path) -> TransferResult:
        """
        Read the header, then write every chunk to `destination` until the
        peer closes. The stream is always closed on return.

        Raises:
            ProtocolError: incomplete header (or size mismatch when verified)
            FileAccessError: destination not writable
            NetworkError: socket failure mid-transfer
        """
        destination = Path(destination)
        try:
            result = await self._receive(stream, destination)
        except TransferError as e:
            logger.error(f"Receive from {stream.remote_address} failed: {e}")
            self.reporter.fail(e)
            raise
        finally:
            await stream.close()

        self.reporter.set_status(TransferState.COMPLETE, RECEIVE_COMPLETE_TEXT)
        return result

    async def _receive(self, stream: TransferStream, destination: Path) -> TransferResult:
        header = await stream.read_header()
        total_size = header.total_size
        logger.info(f"Receiving {total_size:,} bytes into {destination}")

        result = TransferResult(
            direction='receive',
            path=destination,
            total_size=total_size,
        )
        self.reporter.begin()
        self.reporter.set_status(
            TransferState.TRANSFERRING,
            f"Receiving {total_size:,} bytes..."
        )

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            f = await aiofiles.open(destination, 'wb')
        except OSError as e:
            raise FileAccessError(f"Failed to open {destination}: {e}") from e

        try:
            while True:
                chunk = await stream.read_chunk(self.chunk_size)
                if not chunk:
                    break
                try:
                    await f.write(chunk)
                except OSError as e:
                    raise FileAccessError(f"Failed to write {destination}: {e}") from e

                result.bytes_moved += len(chunk)
                result.chunks += 1
                self.reporter.report(transfer_fraction(result.bytes_moved, total_size))
                logger.debug(f"Chunk {result.chunks}: {len(chunk)} bytes "
                             f"({result.bytes_moved:,}/{total_size:,})")
        except BaseException:
            try:
                await f.close()
            except OSError as e:
                logger.warning(f"Closing {destination} after failed receive: {e}")
            raise

        # Buffered writes are flushed here; a full disk shows up on close
        try:
            await f.close()
        except OSError as e:
            raise FileAccessError(f"Failed to write {destination}: {e}") from e

        result.finished_at = time.time()

        if not result.complete:
            logger.warning(f"Peer closed after {result.bytes_moved:,} of "
                           f"{total_size:,} declared bytes")
            if self.verify_size:
                raise ProtocolError(
                    f"Size mismatch: received {result.bytes_moved} of {total_size} bytes"
                )

        logger.info(f"Received {destination.name}: {result.bytes_moved:,} bytes "
                    f"in {result.chunks} chunks")
        return result
