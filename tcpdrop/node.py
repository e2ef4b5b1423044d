"""
Transfer Node - Main Controller

The surface a UI talks to:
- start_listening(): bind, report address/port, receive in the background
- send(address, port, path): push a file to a listening node

One node runs at most one transfer at a time.

Design Decision: Where the Receive Runs
=======================================

Options Considered:
1. A task on the caller's event loop
   - No threads
   - Posted callbacks run on the same loop, so a slow observer delays
     every read of the socket

2. A worker thread with its own event loop
   - The receive loop shares nothing with the observer
   - Events cross threads through call_soon_threadsafe

Decision: worker thread
- Listener, stream and destination file all live on the worker loop
- The caller's loop only receives posted callbacks and the final outcome
"""

import asyncio
import concurrent.futures
import logging
import threading
from pathlib import Path
from typing import Optional, Tuple

from .config import Config
from .errors import SessionError, TransferError
from .progress import (
    ProgressReporter, TransferCallbacks, TransferResult, TransferState,
    WAITING_TEXT
)
from .transfer import FileReceiver, FileSender, Listener

logger = logging.getLogger(__name__)


def _close_on_loop(listener: Listener):
    asyncio.get_running_loop().create_task(listener.close())


class TransferNode:
    """
    Runs listen/receive and send on behalf of a presentation layer.

    Receiving happens on a detached worker thread; its progress and status
    are posted to `observer_loop` (the loop that called start_listening() if
    not given) so a slow observer never holds the receive loop up.
    """

    def __init__(self, config: Config = None,
                 callbacks: TransferCallbacks = None,
                 observer_loop: Optional[asyncio.AbstractEventLoop] = None):
        self.config = config or Config()
        self.callbacks = callbacks or TransferCallbacks()
        self.observer_loop = observer_loop

        self.listener: Optional[Listener] = None
        self.last_result: Optional[TransferResult] = None
        self.last_error: Optional[TransferError] = None
        self._busy = False
        self._receive_loop: Optional[asyncio.AbstractEventLoop] = None
        self._finished: Optional[concurrent.futures.Future] = None

    @property
    def busy(self) -> bool:
        return self._busy

    def _claim(self):
        if self._busy:
            raise SessionError("A transfer is already in progress")
        self._busy = True
        self.last_result = None
        self.last_error = None

    # === Receiving ===

    async def start_listening(self, destination: Path = None) -> Tuple[str, int]:
        """
        Bind a listener and start receiving in the background.

        Returns as soon as the address and port are known; the transfer
        itself is observed through the callbacks (or wait()).

        Returns:
            (advertised address, port)
        """
        self._claim()
        destination = Path(destination or self.config.destination)
        loop = self.observer_loop or asyncio.get_running_loop()
        reporter = ProgressReporter(self.callbacks, loop=loop)
        reporter.set_status(TransferState.WAITING, WAITING_TEXT)

        listener = Listener(
            host=self.config.host,
            port=self.config.port,
            advertise_host=self.config.advertise_host,
            byte_order=self.config.byte_order,
        )
        ready = concurrent.futures.Future()
        self._finished = concurrent.futures.Future()

        threading.Thread(
            target=self._receive_thread,
            args=(listener, destination, reporter, ready),
            name='tcpdrop-receive',
            daemon=True
        ).start()

        try:
            return await asyncio.wrap_future(ready)
        except TransferError:
            await asyncio.wrap_future(self._finished)
            raise

    def _receive_thread(self, listener: Listener, destination: Path,
                        reporter: ProgressReporter,
                        ready: concurrent.futures.Future):
        try:
            asyncio.run(self._receive_session(listener, destination, reporter, ready))
        except Exception as e:
            logger.exception(f"Receive thread crashed: {e}")
            if not ready.done():
                ready.set_exception(e)
            self._finish(exception=e)
        else:
            self._finish()

    def _finish(self, exception: Exception = None):
        self.listener = None
        self._receive_loop = None
        self._busy = False
        if exception is not None:
            self._finished.set_exception(exception)
        else:
            self._finished.set_result(None)

    async def _receive_session(self, listener: Listener, destination: Path,
                               reporter: ProgressReporter,
                               ready: concurrent.futures.Future):
        self._receive_loop = asyncio.get_running_loop()
        try:
            address, port = await listener.listen()
        except TransferError as e:
            self.last_error = e
            reporter.fail(e)
            ready.set_exception(e)
            return

        self.listener = listener
        reporter.set_status(
            TransferState.WAITING,
            f"IP: {address} \nWaiting on Port: {port}"
        )
        ready.set_result((address, port))

        receiver = FileReceiver(
            reporter=reporter,
            chunk_size=self.config.chunk_size,
            verify_size=self.config.verify_size,
        )
        try:
            stream = await listener.accept_once(timeout=self.config.accept_timeout)
            self.last_result = await receiver.receive(stream, destination)
        except TransferError as e:
            # FileReceiver already reported errors raised after accept
            if reporter.state != TransferState.ERROR:
                reporter.fail(e)
            logger.error(f"Receive failed: {e}")
            self.last_error = e
        finally:
            await listener.close()

    async def wait(self) -> Optional[TransferResult]:
        """
        Wait for the background receive, if any.

        Raises:
            TransferError: the receive failed
        """
        if self._finished is not None:
            await asyncio.wrap_future(self._finished)
        if self.last_error is not None:
            raise self.last_error
        return self.last_result

    async def stop(self):
        """Close a listener that is still waiting for its peer."""
        loop, listener = self._receive_loop, self.listener
        if loop is not None and listener is not None:
            try:
                loop.call_soon_threadsafe(_close_on_loop, listener)
            except RuntimeError:
                logger.debug("Receive loop already finished")
        if self._finished is not None:
            await asyncio.wrap_future(self._finished)

    # === Sending ===

    async def send(self, address: str, port: int, source: Path) -> TransferResult:
        """Send `source` to a listening node; runs on the caller's task."""
        self._claim()
        sender = FileSender(
            reporter=ProgressReporter(self.callbacks),
            chunk_size=self.config.chunk_size,
            byte_order=self.config.byte_order,
            connect_timeout=self.config.connect_timeout,
            allow_hostnames=self.config.allow_hostnames,
        )
        try:
            self.last_result = await sender.send(address, port, Path(source))
            return self.last_result
        except TransferError as e:
            self.last_error = e
            raise
        finally:
            self._busy = False
