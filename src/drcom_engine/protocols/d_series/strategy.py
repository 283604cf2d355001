"""
Dr.COM D 版策略 (Strategy) [Asyncio Edition]

职责：
1. 报文交换：Challenge -> Login -> Keep Alive 的收发与响应校验。
2. 重试策略：每次尝试有独立的截止时间，尝试次数有上限。
3. 异常分类：超时/畸形包重试，认证拒绝与传输错误直接上抛。
"""

import asyncio
import builtins
from typing import TYPE_CHECKING

from ...exceptions import AuthError, ProtocolError, StateError, TimeoutError
from ..base import BaseProtocol
from . import constants, packets

if TYPE_CHECKING:
    from ...config import Credentials, HostProfile


class ProtocolD(BaseProtocol):
    """Dr.COM D 版协议策略实现 (Async)。"""

    credentials: "Credentials | None" = None

    async def challenge(self) -> bytes:
        """执行 Challenge 握手以获取 Salt。

        每次尝试都使用新的随机种子。首字节不符、来源地址不符、
        长度不足或超时都只算作“尚未收到”，继续下一次尝试。

        Returns:
            bytes: 4 字节 Salt。

        Raises:
            TimeoutError: 超过最大重试次数。
            TransportError: 发送或接收失败。
        """
        max_retries = self.config.max_challenge_retries

        for attempt in range(1, max_retries + 1):
            offset = self.rng(constants.SEED_OFFSET_MIN, constants.SEED_OFFSET_MAX)
            seed = packets.make_challenge_seed(self.clock(), offset)
            pkt = packets.build_challenge_request(seed)
            await self.transport.send(pkt.data)

            try:
                data, addr = await self.transport.receive(self.config.challenge_timeout)
                if not self._from_server(addr):
                    self.logger.warning(f"忽略来自 {addr} 的数据包 ({attempt}/{max_retries})")
                    continue
                salt = packets.parse_challenge_response(data)
            except (builtins.TimeoutError, ProtocolError) as e:
                self.logger.warning(f"Challenge 无有效响应，重试中... ({attempt}/{max_retries}): {e}")
                continue

            if salt is not None:
                return salt
            self.logger.warning(f"Challenge 响应码不匹配，重试中... ({attempt}/{max_retries})")

        raise TimeoutError(f"Challenge 失败: {max_retries} 次尝试均未收到有效响应")

    async def authenticate(
        self, credentials: "Credentials", host: "HostProfile"
    ) -> bytes:
        """执行核心登录逻辑。

        登录包只构建一次，超时或收到畸形包时按固定间隔重发。
        收到任何非 0x04 的响应码即视为被拒绝，不再重试。

        Returns:
            bytes: 16 字节 Package Tail。

        Raises:
            StateError: 会话中尚无 Salt。
            AuthError: 认证被拒绝，或重试次数耗尽。
            TransportError: 发送或接收失败。
        """
        if not self.session.salt:
            raise StateError("尚未完成 Challenge，不能构建登录包")

        self.credentials = credentials
        pkt = packets.build_login_packet(
            self.config, credentials, host, self.session.salt
        )
        max_retries = self.config.max_login_retries

        for attempt in range(1, max_retries + 1):
            if attempt > 1:
                await asyncio.sleep(self.config.retry_delay)

            await self.transport.send(pkt.data)
            try:
                data, addr = await self.transport.receive(self.config.login_timeout)
                if not self._from_server(addr):
                    self.logger.warning(f"忽略来自 {addr} 的数据包 ({attempt}/{max_retries})")
                    continue
                result = packets.parse_login_response(data)
            except (builtins.TimeoutError, ProtocolError) as e:
                self.logger.warning(f"登录无有效响应，重试中... ({attempt}/{max_retries}): {e}")
                continue

            if result.success:
                return result.package_tail

            raise AuthError(
                f"登录被服务器拒绝 (响应码: {hex(data[0])})", result.error_code
            )

        raise AuthError(f"登录失败: {max_retries} 次尝试均未收到有效响应")

    async def keep_alive(self) -> bool:
        """发送一次心跳并等待确认。

        心跳是尽力而为的：未收到确认只返回 False，由引擎决定如何记录。

        Returns:
            bool: 收到服务器 0x07 确认返回 True。

        Raises:
            StateError: 会话不在线，或缺少 Salt / Package Tail。
            TransportError: 发送失败。
        """
        session = self.session
        if not session.is_online:
            raise StateError(f"当前状态 {session.state.name} 不允许发送心跳")
        if self.credentials is None or not session.salt or not session.package_tail:
            raise StateError("缺少会话凭据，无法构建心跳包")

        pkt = packets.build_keep_alive_packet(
            salt=session.salt,
            password=self.credentials.password,
            package_tail=session.package_tail,
            now=self.clock(),
        )
        await self.transport.send(pkt.data)
        seq = session.next_sequence()

        try:
            data, addr = await self.transport.receive(self.config.keepalive_timeout)
        except builtins.TimeoutError:
            self.logger.warning(f"心跳 #{seq} 未收到确认")
            return False

        if self._from_server(addr) and packets.parse_keep_alive_response(data):
            self.logger.debug(f"心跳 #{seq} 已确认")
            return True

        self.logger.warning(f"心跳 #{seq} 收到非预期响应")
        return False
