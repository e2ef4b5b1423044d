#!/usr/bin/env python3
"""Tests for the single-shot Listener over real loopback sockets."""

import asyncio
import socket

import pytest

from tcpdrop.errors import AcceptError, BindError, SessionError
from tcpdrop.transfer.listener import Listener, ListenerState, local_ipv4_address


@pytest.mark.asyncio
async def test_listen_reports_ephemeral_port_before_accept():
    listener = Listener(host='127.0.0.1', advertise_host='127.0.0.1')
    try:
        address, port = await listener.listen()
        assert address == '127.0.0.1'
        assert 0 < port <= 65535
        assert listener.state == ListenerState.LISTENING
    finally:
        await listener.close()
    assert listener.state == ListenerState.CLOSED


@pytest.mark.asyncio
async def test_accept_exactly_one_connection():
    listener = Listener(host='127.0.0.1', advertise_host='127.0.0.1')
    _, port = await listener.listen()

    reader, writer = await asyncio.open_connection('127.0.0.1', port)
    stream = await listener.accept_once(timeout=5.0)
    assert listener.state == ListenerState.ACCEPTED

    writer.write(b'ping')
    await writer.drain()
    assert await stream.reader.readexactly(4) == b'ping'

    # Nothing listens any more after the first peer
    with pytest.raises(OSError):
        await asyncio.open_connection('127.0.0.1', port)

    with pytest.raises(SessionError):
        await listener.accept_once()

    writer.close()
    await writer.wait_closed()
    await stream.close()
    await listener.close()


@pytest.mark.asyncio
async def test_second_listen_is_refused():
    listener = Listener(host='127.0.0.1', advertise_host='127.0.0.1')
    _, port = await listener.listen()
    try:
        with pytest.raises(SessionError):
            await listener.listen()
        # First session still accepts its peer
        _, writer = await asyncio.open_connection('127.0.0.1', port)
        stream = await listener.accept_once(timeout=5.0)
        writer.close()
        await writer.wait_closed()
        await stream.close()
    finally:
        await listener.close()


@pytest.mark.asyncio
async def test_accept_before_listen():
    with pytest.raises(SessionError):
        await Listener().accept_once()


@pytest.mark.asyncio
async def test_accept_timeout():
    listener = Listener(host='127.0.0.1', advertise_host='127.0.0.1')
    await listener.listen()
    try:
        with pytest.raises(AcceptError):
            await listener.accept_once(timeout=0.05)
    finally:
        await listener.close()


@pytest.mark.asyncio
async def test_close_while_waiting_raises_accept_error():
    listener = Listener(host='127.0.0.1', advertise_host='127.0.0.1')
    await listener.listen()

    waiter = asyncio.create_task(listener.accept_once())
    await asyncio.sleep(0)
    await listener.close()

    with pytest.raises(AcceptError):
        await waiter


@pytest.mark.asyncio
async def test_accept_after_close_raises_accept_error():
    listener = Listener(host='127.0.0.1', advertise_host='127.0.0.1')
    await listener.listen()
    await listener.close()

    with pytest.raises(AcceptError, match="closed before a peer connected"):
        await listener.accept_once()


@pytest.mark.asyncio
async def test_bind_error_on_taken_port():
    taken = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    taken.bind(('127.0.0.1', 0))
    taken.listen(1)
    port = taken.getsockname()[1]
    try:
        listener = Listener(host='127.0.0.1', port=port, advertise_host='127.0.0.1')
        with pytest.raises(BindError):
            await listener.listen()
        assert listener.state == ListenerState.CLOSED
    finally:
        taken.close()


@pytest.mark.asyncio
async def test_local_ipv4_address_is_dotted_quad():
    address = await local_ipv4_address()
    socket.inet_aton(address)
