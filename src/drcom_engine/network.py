# src/drcom_engine/network.py
"""
Dr.COM 认证引擎 - 网络模块 (Network) [Asyncio Edition]

封装 UDP Socket 的创建、绑定、发送和接收逻辑。
该模块屏蔽了底层 Socket 的复杂性，向策略层提供纯粹的 bytes 收发接口。

一个 NetworkClient 只属于一个引擎实例，不允许在多个调用点并发使用。
"""

import asyncio
import logging
from typing import Protocol, cast

from .config import DrcomConfig
from .exceptions import TimeoutError, TransportError

logger = logging.getLogger(__name__)

Address = tuple[str, int]


class Transport(Protocol):
    """引擎依赖的传输层接口。

    默认实现为 NetworkClient；测试或上层应用可以注入任何满足该接口的对象。
    """

    async def connect(self) -> None: ...

    async def send(self, packet: bytes) -> None: ...

    async def receive(self, timeout: float) -> tuple[bytes, Address]: ...

    async def close(self) -> None: ...


class DrcomUdpProtocol(asyncio.DatagramProtocol):
    """
    asyncio UDP 协议适配器。
    将回调风格的 datagram_received 转换为 Queue 模式，供上层 await 使用。
    """

    def __init__(self) -> None:
        self.transport: asyncio.DatagramTransport | None = None
        # 队列内容可以是数据元组，也可以是异常对象（用于快速失败）
        self.queue: asyncio.Queue[tuple[bytes, Address] | Exception] = asyncio.Queue(
            maxsize=128
        )

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = cast(asyncio.DatagramTransport, transport)
        logger.debug("UDP Transport 已建立")

    def datagram_received(self, data: bytes, addr: Address) -> None:
        """接收数据并放入队列"""
        try:
            self.queue.put_nowait((data, addr))
        except asyncio.QueueFull:
            logger.warning("UDP 接收队列已满，丢弃数据包")

    def error_received(self, exc: Exception) -> None:
        logger.error(f"UDP 错误: {exc}")
        self._propagate_error(TransportError(f"UDP 错误: {exc}"))

    def connection_lost(self, exc: Exception | None) -> None:
        if exc:
            logger.warning(f"UDP 连接断开: {exc}")
            self._propagate_error(TransportError(f"UDP 连接断开: {exc}"))
        else:
            logger.debug("UDP 连接已正常关闭")
            self._propagate_error(TransportError("连接已关闭"))
        self.transport = None

    def _propagate_error(self, exc: Exception) -> None:
        """将底层错误立即传播给上层消费者"""
        if self.queue.full():
            # 为了保证错误能被传达，挤掉最旧的一个数据包
            self.queue.get_nowait()
        self.queue.put_nowait(exc)

    def drain(self) -> int:
        """丢弃队列中残留的数据包，返回丢弃数量。"""
        dropped = 0
        while not self.queue.empty():
            self.queue.get_nowait()
            dropped += 1
        return dropped


class NetworkClient:
    """
    封装 asyncio UDP 操作的客户端。

    本地绑定端口与服务器端口相同 (61440)，目标地址固定为配置中的服务器。
    一旦 close()，该实例即作废，后续的 send/receive 一律抛出 TransportError。
    """

    def __init__(self, config: DrcomConfig) -> None:
        self.config = config
        self.protocol: DrcomUdpProtocol | None = None
        self.transport: asyncio.DatagramTransport | None = None
        self._closed = False

    @property
    def server(self) -> Address:
        return (self.config.server_address, self.config.server_port)

    async def connect(self) -> None:
        """
        初始化 UDP Endpoint。
        """
        if self._closed:
            raise TransportError("Transport 已释放，不能重新绑定")
        if self.transport is not None:
            return

        loop = asyncio.get_running_loop()
        bind_addr = (self.config.bind_ip, self.config.server_port)

        try:
            transport, protocol = await loop.create_datagram_endpoint(
                DrcomUdpProtocol, local_addr=bind_addr
            )
        except OSError as e:
            raise TransportError(f"端口绑定失败 {bind_addr}: {e}") from e

        self.transport = cast(asyncio.DatagramTransport, transport)
        self.protocol = cast(DrcomUdpProtocol, protocol)
        logger.debug(f"Async Socket 绑定成功: {bind_addr}")

    async def send(self, packet: bytes) -> None:
        """
        发送 UDP 数据包到认证服务器。
        """
        if self._closed:
            raise TransportError("Transport 已释放，禁止发送")
        if self.transport is None:
            await self.connect()
        if self.transport is None or self.transport.is_closing():
            raise TransportError("Transport 已关闭")

        # 新请求发出前清空旧响应，保证一次只有一个在途请求
        if self.protocol is not None:
            dropped = self.protocol.drain()
            if dropped:
                logger.debug(f"丢弃 {dropped} 个过期数据包")

        try:
            # sendto 是同步非阻塞的，直接调用
            self.transport.sendto(packet, self.server)
        except OSError as e:
            raise TransportError(f"发送失败: {e}") from e

    async def receive(self, timeout: float) -> tuple[bytes, Address]:
        """
        接收 UDP 数据包 (Async)。

        使用 asyncio.wait_for 实现超时控制。

        Raises:
            TimeoutError: 超时未收到数据。
            TransportError: 底层连接出错或已关闭。
        """
        if self._closed or self.protocol is None:
            raise TransportError("Transport 未初始化或已释放")

        try:
            item = await asyncio.wait_for(self.protocol.queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            raise TimeoutError(f"接收超时 ({timeout}s)") from None

        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        """释放 Transport。幂等。"""
        self._closed = True
        if self.transport:
            self.transport.close()
            self.transport = None
            logger.debug("UDP Transport 已关闭")

    async def __aenter__(self) -> "NetworkClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
