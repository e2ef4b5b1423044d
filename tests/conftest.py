"""Shared fixtures: in-memory streams and temporary files."""

import asyncio
import os

import pytest

from tcpdrop.config import Config
from tcpdrop.progress import ProgressReporter, TransferCallbacks
from tcpdrop.transfer.protocol import TransferHeader, TransferStream


class FakeWriter:
    """Collects everything written; stands in for asyncio.StreamWriter."""

    def __init__(self, fail_after: int = None):
        self.writes = []
        self.closed = False
        self.fail_after = fail_after

    def write(self, data: bytes):
        if self.fail_after is not None and len(self.writes) >= self.fail_after:
            raise ConnectionResetError("peer reset")
        self.writes.append(bytes(data))

    async def drain(self):
        pass

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass

    def get_extra_info(self, name, default=None):
        if name == 'peername':
            return ('127.0.0.1', 50000)
        return default


class ResettingReader:
    """Serves `data`, then fails like a reset socket instead of reaching EOF."""

    def __init__(self, data: bytes):
        self.data = data

    async def readexactly(self, n: int) -> bytes:
        if len(self.data) < n:
            raise asyncio.IncompleteReadError(self.data, n)
        chunk, self.data = self.data[:n], self.data[n:]
        return chunk

    async def read(self, n: int = -1) -> bytes:
        if not self.data:
            raise ConnectionResetError("Connection reset by peer")
        chunk, self.data = self.data[:n], self.data[n:]
        return chunk


class Recorder:
    """Records every callback in arrival order."""

    def __init__(self):
        self.progress = []
        self.statuses = []

    @property
    def callbacks(self) -> TransferCallbacks:
        return TransferCallbacks(
            on_progress=self.progress.append,
            on_status=self.statuses.append,
        )


def feed_stream(data: bytes, byte_order: str = 'native') -> TransferStream:
    """A TransferStream whose reader yields `data` and then EOF."""
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return TransferStream(reader, FakeWriter(), byte_order=byte_order)


def resetting_stream(data: bytes) -> TransferStream:
    """A TransferStream that breaks once `data` is used up."""
    return TransferStream(ResettingReader(data), FakeWriter())


def framed(payload: bytes, declared: int = None) -> bytes:
    """Header + payload as the sender puts it on the wire."""
    size = len(payload) if declared is None else declared
    return TransferHeader(size).to_bytes() + payload


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def reporter(recorder):
    return ProgressReporter(recorder.callbacks)


@pytest.fixture
def make_file(tmp_path):
    """Write random content of the given size and return its path."""
    def _make(size: int, name: str = 'source.bin'):
        path = tmp_path / name
        path.write_bytes(os.urandom(size))
        return path
    return _make


@pytest.fixture
def loopback_config(tmp_path):
    return Config(
        host='127.0.0.1',
        advertise_host='127.0.0.1',
        destination=tmp_path / 'received.bin',
        accept_timeout=10.0,
    )
