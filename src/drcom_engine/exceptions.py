"""
Dr.COM 认证引擎 - 异常体系 (Exceptions)

定义库内统一使用的异常类，以便上层应用（如 CLI/GUI）能进行精细的错误处理。

握手阶段的失败会同步抛给调用者；心跳阶段的失败在引擎内部就地恢复。
"""

import builtins
from enum import IntEnum


class DrcomError(Exception):
    """Dr.COM 认证引擎所有内部异常的基类。

    上层应用可以通过捕获此异常来处理所有由 drcom-engine 抛出的已知错误。
    """

    pass


class ConfigError(DrcomError):
    """配置加载或校验失败。

    触发场景:
    1. 缺少必要字段 (如 username/password)。
    2. 字段格式错误 (如 IP 地址非法、MAC 无法解析、用户名含非 ASCII 字符)。
    3. 找不到配置文件或环境变量。
    """

    pass


class TransportError(DrcomError):
    """传输层错误 (Socket 级别)。

    触发场景:
    1. 端口 61440 被占用或绑定失败。
    2. 发送 (sendto) 失败。
    3. Transport 已被释放后仍尝试收发。

    握手阶段遇到此错误会立即终止当前阶段。
    """

    pass


class TimeoutError(DrcomError, builtins.TimeoutError):
    """在截止时间内未收到响应。

    单次超时会被重试；握手阶段超过重试上限后作为最终结果抛出。
    同时继承内置 TimeoutError，方便通用代码捕获。
    """

    pass


class ProtocolError(DrcomError):
    """协议交互错误 (逻辑级别)。

    触发场景:
    1. 数据包长度不足或结构损坏。
    2. 收到空响应。

    握手阶段将其视为“未匹配”，与超时一样重试，绝不会导致进程崩溃。
    """

    pass


class StateError(DrcomError):
    """状态机错误 (FSM Violation)。

    触发场景:
    1. 握手进行中再次调用 login()。
    2. 未登录时尝试启动心跳或构建心跳包。
    3. 会话已断开或失败后继续使用。
    4. 重复写入 Salt / Package Tail。
    """

    pass


class AuthErrorCode(IntEnum):
    """Dr.COM 认证失败错误代码枚举。

    这些代码来自登录失败响应包 (0x05) 的第 5 字节 (Index 4)。
    引擎只用它生成可读的提示，不会针对某个代码做不同处理。
    """

    IN_USE_WIRED = 0x01  # 账号正在别处以有线方式在线
    SERVER_BUSY = 0x02  # 服务器繁忙
    WRONG_PASSWORD = 0x03  # 密码错误
    INSUFFICIENT_FUNDS = 0x04  # 余额不足或时长超限
    ACCOUNT_FROZEN = 0x05  # 账号被冻结/暂停使用
    WRONG_IP = 0x07  # IP地址不匹配
    WRONG_MAC = 0x0B  # MAC地址不匹配
    TOO_MANY_IP = 0x14  # 在线 IP 数量过多
    WRONG_VERSION = 0x15  # 客户端版本不正确
    WRONG_IP_MAC_BIND = 0x16  # IP/MAC 绑定错误
    FORCE_DHCP = 0x17  # 禁止静态 IP，强制 DHCP

    @property
    def description(self) -> str:
        """获取错误码对应的人类可读中文描述。"""
        _DESC_MAP = {
            0x01: "账号已在别处登录 (有线)",
            0x02: "服务器繁忙，请稍后重试",
            0x03: "账号或密码错误",
            0x04: "账户余额不足或时长超限",
            0x05: "账号已暂停使用",
            0x07: "IP地址不匹配 (请检查是否获取到了正确的内网IP)",
            0x0B: "MAC地址不匹配",
            0x14: "在线IP数量超出限制",
            0x15: "客户端版本过低或账号被封禁",
            0x16: "IP/MAC 绑定错误",
            0x17: "检测到静态IP，请改为自动获取 (DHCP)",
        }
        return _DESC_MAP.get(self.value, f"未知认证错误 (Code: {hex(self.value)})")


class AuthError(DrcomError):
    """认证被拒绝 (业务层面的失败)。

    当登录响应的首字节不是 0x04，或登录重试次数耗尽时抛出。
    对 login() 而言是终态，不会自动重试，需要用户干预。
    """

    def __init__(self, message: str, error_code: int | None = None) -> None:
        """初始化认证错误。

        Args:
            message: 错误描述信息。
            error_code: 原始错误代码。若能识别为 AuthErrorCode，
                则使用标准化的中文描述覆盖 message。
        """
        self.error_code_enum: AuthErrorCode | None = None

        if error_code is not None:
            try:
                self.error_code_enum = AuthErrorCode(error_code)
                message = self.error_code_enum.description
            except ValueError:
                pass

        super().__init__(message)
        self.error_code = error_code
