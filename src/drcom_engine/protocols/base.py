"""
Dr.COM 协议基类 (Base Protocol)

定义协议策略必须实现的抽象接口。
策略只负责“发什么、收什么、重试几次”；状态迁移由引擎 (core) 统一负责。
"""

import abc
import logging
import secrets
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import Credentials, DrcomConfig, HostProfile
    from ..network import Address, Transport
    from ..state import Session


class BaseProtocol(abc.ABC):
    """协议策略抽象基类。"""

    def __init__(
        self,
        config: "DrcomConfig",
        session: "Session",
        transport: "Transport",
        clock: Callable[[], float] = time.time,
        rng: Callable[[int, int], int] | None = None,
    ) -> None:
        """初始化协议基类。

        Args:
            config: 全局配置对象。
            session: 引擎持有的会话对象 (策略只读取 Salt / Package Tail，并推进心跳计数器)。
            transport: 传输层实例。
            clock: 时间源，用于 Challenge 种子与心跳时间字段。
            rng: 随机数源 randint(a, b)，用于 Challenge 种子偏移；默认使用 secrets。
        """
        self.config = config
        self.session = session
        self.transport = transport
        self.clock = clock
        self.rng = rng or secrets.SystemRandom().randint
        self.logger = logging.getLogger(self.__class__.__name__)

    def _from_server(self, addr: "Address") -> bool:
        """响应是否来自配置中的认证服务器。"""
        return tuple(addr[:2]) == (self.config.server_address, self.config.server_port)

    @abc.abstractmethod
    async def challenge(self) -> bytes:
        """[Abstract] 执行 Challenge 握手。

        Returns:
            bytes: 服务器下发的 Salt。

        Raises:
            TimeoutError: 超过最大重试次数仍未获得有效响应。
            TransportError: 传输层错误。
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def authenticate(
        self, credentials: "Credentials", host: "HostProfile"
    ) -> bytes:
        """[Abstract] 使用会话中的 Salt 执行登录。

        Returns:
            bytes: 服务器返回的 Package Tail。

        Raises:
            AuthError: 认证被拒绝或重试耗尽。
            TransportError: 传输层错误。
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def keep_alive(self) -> bool:
        """[Abstract] 发送一次心跳。

        Returns:
            bool: 服务器确认返回 True，未确认返回 False。
        """
        raise NotImplementedError
