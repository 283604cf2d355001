# tests/test_network.py
"""
测试 asyncio UDP 传输层。
底层 DatagramTransport 被 Mock，不绑定真实端口。
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from drcom_engine.exceptions import TimeoutError, TransportError
from drcom_engine.network import DrcomUdpProtocol, NetworkClient

from packet_factory import SERVER_ADDR


@pytest.fixture
def client(valid_config):
    return NetworkClient(valid_config)


@pytest.fixture
def endpoint():
    """伪造 create_datagram_endpoint 的返回值"""
    transport = MagicMock()
    transport.is_closing.return_value = False
    protocol = DrcomUdpProtocol()
    protocol.connection_made(transport)
    return transport, protocol


def _patch_endpoint(endpoint, **kwargs):
    loop = asyncio.get_running_loop()
    return patch.object(
        loop,
        "create_datagram_endpoint",
        new=AsyncMock(return_value=endpoint, **kwargs),
    )


@pytest.mark.asyncio
async def test_connect_binds_server_port(client, endpoint, valid_config):
    with _patch_endpoint(endpoint) as create:
        await client.connect()
        await client.connect()

    create.assert_awaited_once()
    assert create.call_args.kwargs["local_addr"] == ("0.0.0.0", valid_config.server_port)
    assert client.protocol is endpoint[1]


@pytest.mark.asyncio
async def test_bind_failure_raises_transport_error(client):
    loop = asyncio.get_running_loop()
    with patch.object(
        loop,
        "create_datagram_endpoint",
        new=AsyncMock(side_effect=OSError(98, "Address already in use")),
    ):
        with pytest.raises(TransportError, match="端口绑定失败"):
            await client.connect()


@pytest.mark.asyncio
async def test_send_targets_server(client, endpoint):
    transport, _ = endpoint
    with _patch_endpoint(endpoint):
        await client.send(b"\x01\x02")

    transport.sendto.assert_called_once_with(b"\x01\x02", SERVER_ADDR)


@pytest.mark.asyncio
async def test_send_drains_stale_packets(client, endpoint):
    _, protocol = endpoint
    with _patch_endpoint(endpoint):
        await client.connect()

    protocol.datagram_received(b"stale", SERVER_ADDR)
    await client.send(b"\x01\x02")

    assert protocol.queue.empty()


@pytest.mark.asyncio
async def test_send_os_error_wrapped(client, endpoint):
    transport, _ = endpoint
    transport.sendto.side_effect = OSError("Network is unreachable")
    with _patch_endpoint(endpoint):
        with pytest.raises(TransportError, match="发送失败"):
            await client.send(b"\x01")


@pytest.mark.asyncio
async def test_receive_datagram(client, endpoint):
    _, protocol = endpoint
    with _patch_endpoint(endpoint):
        await client.connect()

    protocol.datagram_received(b"\x02data", SERVER_ADDR)
    assert await client.receive(0.1) == (b"\x02data", SERVER_ADDR)


@pytest.mark.asyncio
async def test_receive_timeout(client, endpoint):
    with _patch_endpoint(endpoint):
        await client.connect()

    with pytest.raises(TimeoutError):
        await client.receive(0.01)


@pytest.mark.asyncio
async def test_receive_propagates_socket_errors(client, endpoint):
    _, protocol = endpoint
    with _patch_endpoint(endpoint):
        await client.connect()

    protocol.error_received(ConnectionRefusedError("refused"))
    with pytest.raises(TransportError, match="UDP 错误"):
        await client.receive(0.1)


@pytest.mark.asyncio
async def test_receive_before_connect(client):
    with pytest.raises(TransportError):
        await client.receive(0.01)


@pytest.mark.asyncio
async def test_closed_client_refuses_io(client, endpoint):
    transport, _ = endpoint
    with _patch_endpoint(endpoint):
        await client.connect()

    await client.close()
    await client.close()
    transport.close.assert_called_once()

    with pytest.raises(TransportError, match="禁止发送"):
        await client.send(b"\x01")
    with pytest.raises(TransportError):
        await client.receive(0.01)
    with pytest.raises(TransportError):
        await client.connect()
    transport.sendto.assert_not_called()


@pytest.mark.asyncio
async def test_context_manager_closes(client, endpoint):
    transport, _ = endpoint
    with _patch_endpoint(endpoint):
        async with client:
            assert client.transport is transport

    transport.close.assert_called_once()


@pytest.mark.asyncio
async def test_protocol_queue_overflow_keeps_errors():
    protocol = DrcomUdpProtocol()
    for i in range(protocol.queue.maxsize):
        protocol.datagram_received(bytes([i % 256]), SERVER_ADDR)

    # 队列已满，新数据包被丢弃
    protocol.datagram_received(b"overflow", SERVER_ADDR)
    assert protocol.queue.qsize() == protocol.queue.maxsize

    # 错误仍然能进入队列
    protocol.connection_lost(None)
    assert protocol.queue.qsize() == protocol.queue.maxsize
    assert protocol.drain() == protocol.queue.maxsize
