# File: src/drcom_engine/core.py
"""
Dr.COM 认证引擎 (Core Engine)

职责：
1. 资源组装：Session + Transport + Config + Strategy。
2. 状态机：IDLE -> CHALLENGING -> AUTHENTICATING -> AUTHENTICATED
   -> HEARTBEAT_ACTIVE -> DISCONNECTED，失败进入 FAILED。
3. 生命周期：Login -> Heartbeat -> Disconnect。

引擎实例由调用方独占持有，不存在全局单例；需要在界面间“恢复”会话时，
把同一个引擎对象传回即可。
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

from .config import Credentials, DrcomConfig, HostProfile
from .exceptions import ConfigError, DrcomError, StateError
from .network import NetworkClient, Transport
from .protocols.base import BaseProtocol
from .protocols.d_series import ProtocolD
from .state import Session, SessionState

logger = logging.getLogger(__name__)

# 回调函数类型别名：支持同步或异步函数
StatusCallback = Callable[[SessionState, str], Any | Awaitable[Any]]


class DrcomEngine:
    """Dr.COM 认证引擎 (Async)。"""

    def __init__(
        self,
        config: DrcomConfig,
        transport: Transport | None = None,
        status_callback: StatusCallback | None = None,
        clock: Callable[[], float] = time.time,
        rng: Callable[[int, int], int] | None = None,
    ) -> None:
        """初始化认证引擎。

        Args:
            config: 全局配置对象。
            transport: 传输层实例，默认为绑定 61440 端口的 NetworkClient。
            status_callback: 初始状态回调，也可以之后用 add_listener 注册。
            clock: 时间源。
            rng: 随机数源 randint(a, b)，默认使用 secrets。
        """
        self.config = config

        self._listeners: list[StatusCallback] = []
        if status_callback:
            self.add_listener(status_callback)

        self._session = Session()
        self.transport: Transport = (
            transport if transport is not None else NetworkClient(config)
        )

        self.protocol: BaseProtocol = self._load_strategy(clock, rng)

        self._stop_event = asyncio.Event()
        self._heartbeat_task: asyncio.Task | None = None

    @property
    def session(self) -> Session:
        """获取当前会话数据的只读副本。

        修改返回的对象不会影响引擎内部状态。
        """
        return replace(self._session)

    def current_state(self) -> SessionState:
        """返回当前生命周期状态。"""
        return self._session.state

    def add_listener(self, callback: StatusCallback) -> None:
        """注册状态变更监听器。"""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: StatusCallback) -> None:
        """移除状态变更监听器。"""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _load_strategy(
        self,
        clock: Callable[[], float],
        rng: Callable[[int, int], int] | None,
    ) -> BaseProtocol:
        """加载并实例化对应的协议策略。"""
        ver = self.config.protocol_version
        if ver == "D":
            return ProtocolD(self.config, self._session, self.transport, clock, rng)
        raise ConfigError(f"不支持的协议版本: {ver}")

    async def login(self, credentials: Credentials, host: HostProfile) -> bool:
        """执行握手：Challenge -> Login。

        握手是顺序的请求/响应交换，必须以成功或 FAILED 结束后才能启动心跳。

        Returns:
            bool: 登录成功返回 True；已在线时直接返回 True。

        Raises:
            StateError: 握手已在进行中，或会话已结束。
            TimeoutError: Challenge 重试耗尽。
            AuthError: 认证被拒绝或登录重试耗尽。
            TransportError: 端口绑定或收发失败。

        任何异常都会先让会话进入 FAILED 并释放 Transport，再原样上抛。
        """
        session = self._session
        if session.is_online:
            logger.warning("当前已在线，跳过登录")
            return True
        if session.is_handshaking:
            raise StateError("握手正在进行中，拒绝重复登录")
        if session.is_terminal:
            raise StateError(f"会话已结束 ({session.state.name})，请创建新的引擎")

        # connect() 之前即进入 CHALLENGING，握手期间的重复 login() 一律拒绝
        self._update_status(SessionState.CHALLENGING, "正在获取 Challenge...")
        try:
            await self.transport.connect()

            salt = await self.protocol.challenge()
            session.set_salt(salt)

            self._update_status(SessionState.AUTHENTICATING, "正在登录...")
            package_tail = await self.protocol.authenticate(credentials, host)
            session.set_package_tail(package_tail)

        except Exception as e:
            await self._fail(e)
            raise
        except asyncio.CancelledError:
            await self._fail(StateError("登录被取消"))
            raise

        self._update_status(SessionState.AUTHENTICATED, "登录成功")
        return True

    async def step(self) -> bool:
        """执行单次心跳步进。

        供外部 Event Loop (如 Daemon) 精细控制心跳时机。
        如果处于非在线状态，调用此方法无效（返回 False）。

        Returns:
            bool: 心跳被服务器确认返回 True，否则返回 False。
        """
        if not self._session.is_online:
            return False

        try:
            return await self.protocol.keep_alive()
        except DrcomError as e:
            logger.error(f"心跳步进异常: {e}")
            self._session.last_error = str(e)
            return False

    async def start_heartbeat(self) -> None:
        """启动内置的后台心跳任务。

        会阻塞直到心跳 Loop 真正开始运行。

        Raises:
            StateError: 当前不处于 AUTHENTICATED 状态。
        """
        if self._heartbeat_task and not self._heartbeat_task.done():
            return

        if self._session.state != SessionState.AUTHENTICATED:
            raise StateError(
                f"无法启动心跳：当前状态为 {self._session.state.name}，需要 AUTHENTICATED"
            )

        self._stop_event.clear()
        self._update_status(SessionState.HEARTBEAT_ACTIVE, "心跳维持中")

        started_event = asyncio.Event()
        self._heartbeat_task = asyncio.create_task(
            self._heartbeat_loop(started_event), name="DrcomHeartbeatTask"
        )
        await started_event.wait()

    async def disconnect(self) -> None:
        """断开会话。

        设置停止信号，取消并等待心跳任务结束，然后释放 Transport。
        该方法返回后不会再有任何数据包发出。可重复调用。
        """
        self._stop_event.set()

        if self._heartbeat_task and not self._heartbeat_task.done():
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
        self._heartbeat_task = None

        await self.transport.close()

        if not self._session.is_terminal:
            self._update_status(SessionState.DISCONNECTED, "已断开连接")

    async def _heartbeat_loop(self, started_event: asyncio.Event | None = None) -> None:
        """[Internal] 内置心跳循环。

        心跳是尽力而为的：任何异常都只记录并退避，不会终止已认证的会话。
        """
        if started_event:
            started_event.set()

        try:
            while not self._stop_event.is_set():
                delay = self.config.heartbeat_interval
                try:
                    if not await self.protocol.keep_alive():
                        logger.warning("心跳未被确认，继续保活")
                except Exception as e:
                    delay = self.config.heartbeat_backoff
                    self._session.last_error = str(e)
                    self._notify(f"心跳异常，{delay}s 后重试: {e}", logging.WARNING)

                # 等待下一次心跳或停止信号
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    continue

        except asyncio.CancelledError:
            logger.debug("心跳任务被取消")
            raise

    async def _fail(self, exc: Exception) -> None:
        """握手失败：记录错误，进入 FAILED 并释放 Transport。"""
        self._session.last_error = str(exc)
        if not self._session.is_terminal:
            self._update_status(SessionState.FAILED, f"登录失败: {exc}", logging.ERROR)
        await self.transport.close()

    def _update_status(
        self, state: SessionState, msg: str, level: int = logging.INFO
    ) -> None:
        """执行状态迁移并通知所有监听器。"""
        self._session.transition(state)
        self._notify(msg, level)

    def _notify(self, msg: str, level: int = logging.INFO) -> None:
        """以当前状态异步触发所有回调。"""
        status = self._session.state
        logger.log(level, f"[{status.name}] {msg}")

        for callback in self._listeners:
            try:
                if inspect.iscoroutinefunction(callback):
                    asyncio.create_task(callback(status, msg))  # type: ignore
                else:
                    loop = asyncio.get_running_loop()
                    loop.call_soon(callback, status, msg)
            except RuntimeError:
                # 应对 loop 尚未运行或已关闭的边缘情况
                pass

    async def __aenter__(self) -> "DrcomEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
