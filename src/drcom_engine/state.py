# File: src/drcom_engine/state.py
"""
Dr.COM 认证引擎 - 状态模块

负责定义会话生命周期状态，以及存储所有易变的会话数据。
本模块不包含网络逻辑，仅作为数据容器供 Engine 和 Strategy 共享读写。
"""

from dataclasses import dataclass
from enum import Enum, auto

from .exceptions import StateError


class SessionState(Enum):
    """会话的生命周期状态枚举。

    状态流转示意:
    IDLE -> CHALLENGING -> AUTHENTICATING -> AUTHENTICATED -> HEARTBEAT_ACTIVE -> DISCONNECTED
                 |               |
                 v               v
               FAILED          FAILED
    """

    IDLE = auto()
    """初始状态，引擎已实例化但未执行任何操作。"""

    CHALLENGING = auto()
    """正在执行 Challenge 握手，等待服务器下发 Salt。"""

    AUTHENTICATING = auto()
    """已获取 Salt，登录包已发出，等待认证结果。"""

    AUTHENTICATED = auto()
    """登录成功。已获取 Package Tail，但心跳任务尚未启动。"""

    HEARTBEAT_ACTIVE = auto()
    """在线保活中。心跳任务正在后台运行。"""

    DISCONNECTED = auto()
    """已断开。Transport 已释放，不允许再发送任何数据包。"""

    FAILED = auto()
    """握手失败 (超时、传输错误或认证被拒绝)，终态。"""


# 合法的状态迁移表。任何不在表中的迁移都视为状态机错误。
TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset(
        {SessionState.CHALLENGING, SessionState.FAILED, SessionState.DISCONNECTED}
    ),
    SessionState.CHALLENGING: frozenset(
        {SessionState.AUTHENTICATING, SessionState.FAILED, SessionState.DISCONNECTED}
    ),
    SessionState.AUTHENTICATING: frozenset(
        {SessionState.AUTHENTICATED, SessionState.FAILED, SessionState.DISCONNECTED}
    ),
    SessionState.AUTHENTICATED: frozenset(
        {SessionState.HEARTBEAT_ACTIVE, SessionState.DISCONNECTED}
    ),
    SessionState.HEARTBEAT_ACTIVE: frozenset({SessionState.DISCONNECTED}),
    SessionState.DISCONNECTED: frozenset(),
    SessionState.FAILED: frozenset(),
}

SALT_LEN = 4
PACKAGE_TAIL_LEN = 16


@dataclass
class Session:
    """存储一次 Dr.COM 认证会话的易变数据。

    该对象是非持久化的，由唯一的调用方 (引擎) 持有。
    salt 与 package_tail 在一个会话内只允许写入一次；
    需要重新登录时应创建新的引擎与会话。

    Attributes:
        state: 当前生命周期状态。
        salt: Challenge 阶段从服务器获取的随机盐值 (4 Bytes)。
        package_tail: 登录成功后服务器返回的会话令牌 (16 Bytes)，每次心跳回显。
        sequence: 心跳计数器 (0-255)，每发送一次心跳自增。
        last_error: 最近一次错误的描述，用于 UI 显示。
    """

    state: SessionState = SessionState.IDLE
    salt: bytes = b""
    package_tail: bytes = b""
    sequence: int = 0
    last_error: str = ""

    @property
    def is_online(self) -> bool:
        """是否处于“在线”状态 (AUTHENTICATED 或 HEARTBEAT_ACTIVE)。"""
        return self.state in (SessionState.AUTHENTICATED, SessionState.HEARTBEAT_ACTIVE)

    @property
    def is_handshaking(self) -> bool:
        """握手是否正在进行中。"""
        return self.state in (SessionState.CHALLENGING, SessionState.AUTHENTICATING)

    @property
    def is_terminal(self) -> bool:
        """会话是否已进入终态。"""
        return self.state in (SessionState.DISCONNECTED, SessionState.FAILED)

    def transition(self, new_state: SessionState) -> None:
        """按迁移表切换状态。

        Raises:
            StateError: 迁移不合法。
        """
        if new_state not in TRANSITIONS[self.state]:
            raise StateError(f"非法状态迁移: {self.state.name} -> {new_state.name}")
        self.state = new_state

    def set_salt(self, salt: bytes) -> None:
        """写入 Challenge Salt (每个会话仅一次)。"""
        if self.salt:
            raise StateError("Salt 已写入，同一会话不可覆盖")
        if len(salt) != SALT_LEN:
            raise StateError(f"Salt 长度必须为 {SALT_LEN} 字节 (实际 {len(salt)})")
        self.salt = salt

    def set_package_tail(self, package_tail: bytes) -> None:
        """写入登录成功后的 Package Tail (每个会话仅一次)。"""
        if self.package_tail:
            raise StateError("Package Tail 已写入，同一会话不可覆盖")
        if len(package_tail) != PACKAGE_TAIL_LEN:
            raise StateError(
                f"Package Tail 长度必须为 {PACKAGE_TAIL_LEN} 字节 (实际 {len(package_tail)})"
            )
        self.package_tail = package_tail

    def next_sequence(self) -> int:
        """心跳计数器自增 (模 256)，返回自增后的值。"""
        self.sequence = (self.sequence + 1) % 256
        return self.sequence
