"""
Dr.COM 认证引擎 - 配置模块

负责配置的加载、解析与强类型转换。
支持从 TOML 文件、环境变量 (含 .env 文件) 或字典中加载配置。

配置被拆为三部分:
- DrcomConfig: 服务器地址、站点指纹与重试/超时策略，引擎构造时传入。
- Credentials: 账号密码，每次 login() 传入。
- HostProfile: 本机 IP / 主机名 / MAC / 系统标签，每次 login() 传入。
"""

import logging
import os
import socket
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DRCOM_PORT = 61440
USERNAME_MAX_BYTES = 32
MAC_MAX = 0xFFFFFFFFFFFF
U32_MAX = 0xFFFFFFFF

_OS_FIELDS = ("os_major", "os_minor", "os_build", "os_platform")
_DURATION_FIELDS = (
    "challenge_timeout",
    "login_timeout",
    "keepalive_timeout",
    "retry_delay",
    "heartbeat_interval",
    "heartbeat_backoff",
)

# 各协议字段的固定宽度，宽度不对会导致登录包长度变化并被网关静默丢弃
_FIELD_WIDTHS = {
    "control_check_status": 1,
    "adapter_num": 1,
    "ipdog": 1,
    "auth_version": 2,
}


def _ip_to_bytes(value: str, field: str) -> bytes:
    """将点分十进制 IPv4 字符串转换为网络字节序 (4 bytes)。"""
    try:
        return socket.inet_aton(value)
    except (OSError, TypeError):
        raise ConfigError(f"IP 格式无效 '{field}': {value}") from None


def _normalize_ip(value: str, field: str) -> str:
    """将简写形式 (如 10.30.1) 规范化为标准点分十进制。"""
    return socket.inet_ntoa(_ip_to_bytes(value, field))


@dataclass(frozen=True)
class Credentials:
    """认证凭据。

    Attributes:
        username: 用户名，可打印 ASCII，最长 32 字节。
        password: 密码原始字节；传入 str 时按 UTF-8 编码。
    """

    username: str
    password: bytes

    def __post_init__(self) -> None:
        if isinstance(self.password, str):
            object.__setattr__(self, "password", self.password.encode("utf-8"))
        if not isinstance(self.password, bytes):
            raise ConfigError("密码必须为 str 或 bytes")

        if not self.username:
            raise ConfigError("用户名不能为空")
        if not (self.username.isascii() and self.username.isprintable()):
            raise ConfigError(f"用户名只能包含可打印 ASCII 字符: {self.username!r}")
        if len(self.username) > USERNAME_MAX_BYTES:
            raise ConfigError(f"用户名过长 (最多 {USERNAME_MAX_BYTES} 字节)")

    @property
    def username_bytes(self) -> bytes:
        return self.username.encode("ascii")

    def __repr__(self) -> str:
        """隐藏密码字段，防止日志泄露敏感信息。"""
        return f"<{self.__class__.__name__} username='{self.username}', password='******'>"


@dataclass(frozen=True)
class HostProfile:
    """本机网络指纹。

    由外部的网卡探测模块或配置文件提供，在一次会话中保持不变。

    Attributes:
        ip_address: 本机 IPv4 地址 (点分十进制)。
        host_name: 主机名。
        mac_address: 48 位 MAC 地址 (整数形式)。
        os_label: 操作系统标签 (如 "WINDOWS")。
    """

    ip_address: str
    host_name: str
    mac_address: int
    os_label: str

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "ip_address", _normalize_ip(self.ip_address, "host_ip")
        )
        if not 0 <= self.mac_address <= MAC_MAX:
            raise ConfigError(f"MAC 超出 48 位范围: {self.mac_address:#x}")

    @property
    def ip_bytes(self) -> bytes:
        return socket.inet_aton(self.ip_address)

    @property
    def mac_bytes(self) -> bytes:
        return self.mac_address.to_bytes(6, byteorder="big")

    @property
    def host_name_bytes(self) -> bytes:
        return self.host_name.encode("utf-8", "ignore")

    @property
    def os_label_bytes(self) -> bytes:
        return self.os_label.encode("utf-8", "ignore")


@dataclass(frozen=True)
class DrcomConfig:
    """DrcomEngine 的强类型配置对象。

    所有字段均为只读 (frozen=True)，确保配置在运行时不可变。

    Attributes:
        server_address: 认证服务器 IPv4 地址。
        server_port: 认证服务器端口，同时作为本地绑定端口 (61440)。
        bind_ip: 本地绑定 IP (通常为 0.0.0.0)。
        protocol_version: 协议版本标识，仅支持 'D'。
        primary_dns_bytes: 主 DNS 地址 (4 bytes)。
        secondary_dns_bytes: 次 DNS 地址 (4 bytes)。
        dhcp_address_bytes: DHCP 服务器地址 (4 bytes)。
        control_check_status: 控制校验位 (1 byte)。
        adapter_num: 网卡数量标志位 (1 byte)。
        ipdog: IPDog (保持 IP) 标志位 (1 byte)。
        auth_version: 认证版本号 (2 bytes)。
        os_major / os_minor / os_build / os_platform: 操作系统版本信息。
        challenge_timeout: Challenge 单次等待时间 (秒)。
        login_timeout: Login 单次等待时间 (秒)。
        keepalive_timeout: 心跳确认等待时间 (秒)。
        max_challenge_retries: Challenge 最大尝试次数。
        max_login_retries: Login 最大尝试次数。
        retry_delay: 握手重试间隔 (秒)。
        heartbeat_interval: 心跳周期 (秒)。
        heartbeat_backoff: 心跳出错后的退避时间 (秒)。
    """

    server_address: str
    server_port: int = DRCOM_PORT
    bind_ip: str = "0.0.0.0"
    protocol_version: str = "D"

    # --- 站点指纹 ---
    primary_dns_bytes: bytes = b"\x72\x72\x72\x72"  # 114.114.114.114
    secondary_dns_bytes: bytes = b"\x08\x08\x08\x08"  # 8.8.8.8
    dhcp_address_bytes: bytes = b"\x0a\xff\x00\xc5"  # 10.255.0.197
    control_check_status: bytes = b"\x20"
    adapter_num: bytes = b"\x03"
    ipdog: bytes = b"\x01"
    auth_version: bytes = b"\x22\x00"
    os_major: int = 5
    os_minor: int = 1
    os_build: int = 2600
    os_platform: int = 2

    # --- 超时与重试策略 ---
    challenge_timeout: float = 3.0
    login_timeout: float = 3.0
    keepalive_timeout: float = 3.0
    max_challenge_retries: int = 5
    max_login_retries: int = 3
    retry_delay: float = 1.0
    heartbeat_interval: float = 20.0
    heartbeat_backoff: float = 5.0

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "server_address", _normalize_ip(self.server_address, "server_ip")
        )
        if not 0 < self.server_port <= 0xFFFF:
            raise ConfigError(f"'server_port' 超出范围: {self.server_port}")
        for name in ("primary_dns_bytes", "secondary_dns_bytes", "dhcp_address_bytes"):
            if len(getattr(self, name)) != 4:
                raise ConfigError(f"'{name}' 必须为 4 字节")
        for name, width in _FIELD_WIDTHS.items():
            if len(getattr(self, name)) != width:
                raise ConfigError(f"'{name}' 必须为 {width} 字节")
        if self.max_challenge_retries < 1 or self.max_login_retries < 1:
            raise ConfigError("重试次数必须至少为 1")
        for name in _OS_FIELDS:
            if not 0 <= getattr(self, name) <= U32_MAX:
                raise ConfigError(f"'{name}' 超出 u32 范围: {getattr(self, name)}")
        for name in _DURATION_FIELDS:
            if getattr(self, name) < 0:
                raise ConfigError(f"'{name}' 不能为负数: {getattr(self, name)}")

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} "
            f"server={self.server_address}:{self.server_port}, "
            f"bind_ip='{self.bind_ip}', "
            f"protocol={self.protocol_version}>"
        )


@dataclass(frozen=True)
class Settings:
    """一次完整运行所需的配置组合 (由加载器生成)。"""

    config: DrcomConfig
    credentials: Credentials
    host: HostProfile


def _req(raw_data: dict[str, Any], key: str) -> Any:
    """获取必要字段，缺失则报错"""
    if key not in raw_data or raw_data[key] in (None, ""):
        raise ConfigError(f"配置缺失: 缺少必要字段 '{key}'")
    return raw_data[key]


def _to_bytes_hex(raw_data: dict[str, Any], key: str, default: bytes) -> bytes:
    """增强型 Hex 解析：支持 0x 前缀、空格、自动补零。"""
    if key not in raw_data:
        return default

    val = str(raw_data[key])
    try:
        clean = val.lower().replace("0x", "").replace("\\x", "").replace(" ", "")
        if len(clean) % 2 != 0:
            clean = "0" + clean
        return bytes.fromhex(clean)
    except ValueError:
        raise ConfigError(f"Hex 格式无效 '{key}': {val}") from None


def _to_mac_int(value: Any) -> int:
    """将 MAC 地址字符串转换为整数。"""
    if isinstance(value, int):
        return value
    val = str(value)
    clean = val.replace(":", "").replace("-", "").replace(".", "")
    if len(clean) != 12:
        raise ConfigError(f"MAC 格式无效: {val}")
    try:
        return int(clean, 16)
    except ValueError:
        raise ConfigError(f"MAC 格式无效: {val}") from None


def create_config_from_dict(raw_data: dict[str, Any]) -> DrcomConfig:
    """通用工厂：将字典转换为强类型引擎配置。

    负责字段的清洗、默认值注入和类型转换。

    Args:
        raw_data: 原始配置字典 (来自 TOML 或 Env)。

    Returns:
        DrcomConfig: 验证并转换后的配置对象。

    Raises:
        ConfigError: 当必要字段缺失或格式错误时抛出。
    """
    defaults = DrcomConfig.__dataclass_fields__

    def _get(key: str, cast: type, field: str | None = None) -> Any:
        field = field or key
        if key not in raw_data:
            return defaults[field].default
        try:
            return cast(raw_data[key])
        except (TypeError, ValueError):
            raise ConfigError(f"字段格式无效 '{key}': {raw_data[key]}") from None

    def _ip(key: str, field: str) -> bytes:
        if key not in raw_data:
            return defaults[field].default
        return _ip_to_bytes(str(raw_data[key]), key)

    try:
        return DrcomConfig(
            server_address=str(_req(raw_data, "server_ip")),
            server_port=_get("drcom_port", int, "server_port"),
            bind_ip=str(raw_data.get("bind_ip", "0.0.0.0")),
            protocol_version=str(raw_data.get("protocol_version", "D")).upper(),
            primary_dns_bytes=_ip("primary_dns", "primary_dns_bytes"),
            secondary_dns_bytes=_ip("secondary_dns", "secondary_dns_bytes"),
            dhcp_address_bytes=_ip("dhcp_server", "dhcp_address_bytes"),
            control_check_status=_to_bytes_hex(
                raw_data, "control_check_status", b"\x20"
            ),
            adapter_num=_to_bytes_hex(raw_data, "adapter_num", b"\x03"),
            ipdog=_to_bytes_hex(raw_data, "ipdog", b"\x01"),
            auth_version=_to_bytes_hex(raw_data, "auth_version", b"\x22\x00"),
            os_major=_get("os_major", int),
            os_minor=_get("os_minor", int),
            os_build=_get("os_build", int),
            os_platform=_get("os_platform", int),
            challenge_timeout=_get("challenge_timeout", float),
            login_timeout=_get("login_timeout", float),
            keepalive_timeout=_get("keepalive_timeout", float),
            max_challenge_retries=_get("max_challenge_retries", int),
            max_login_retries=_get("max_login_retries", int),
            retry_delay=_get("retry_delay", float),
            heartbeat_interval=_get("heartbeat_interval", float),
            heartbeat_backoff=_get("heartbeat_backoff", float),
        )
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(f"配置生成失败: {e}") from e


def create_credentials_from_dict(raw_data: dict[str, Any]) -> Credentials:
    """从字典中提取账号密码。"""
    return Credentials(
        username=str(_req(raw_data, "username")),
        password=str(_req(raw_data, "password")),
    )


def create_host_profile_from_dict(raw_data: dict[str, Any]) -> HostProfile:
    """从字典中提取本机指纹。

    仅负责解析；自动探测网卡不在本库职责范围内。
    """
    return HostProfile(
        ip_address=str(_req(raw_data, "host_ip")),
        host_name=str(raw_data.get("host_name", "DRCOM-CLIENT")),
        mac_address=_to_mac_int(_req(raw_data, "mac")),
        os_label=str(raw_data.get("host_os", "WINDOWS")),
    )


def create_settings_from_dict(raw_data: dict[str, Any]) -> Settings:
    """一次性解析引擎配置、凭据与本机指纹。"""
    return Settings(
        config=create_config_from_dict(raw_data),
        credentials=create_credentials_from_dict(raw_data),
        host=create_host_profile_from_dict(raw_data),
    )


def load_config_from_toml(file_path: Path, profile: str = "default") -> Settings:
    """从 TOML 文件加载配置。

    支持多层级查找策略:
    1. [profile.xxx]: 优先查找指定的 profile 块。
    2. [drcom]: 兼容旧版配置块。
    3. Root: 兼容根目录直接配置。

    Args:
        file_path: TOML 文件路径。
        profile: 配置预设名。默认为 "default"。

    Returns:
        Settings: 配置组合。

    Raises:
        ConfigError: 文件读取失败或 Profile 不存在。
    """
    if not file_path.exists():
        raise ConfigError(f"配置文件未找到: {file_path}")

    try:
        with open(file_path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"读取 TOML 失败: {e}") from e

    if "profile" in data:
        if profile not in data["profile"]:
            raise ConfigError(f"未找到预设: [profile.{profile}]")
        raw_config = data["profile"][profile]
    elif "drcom" in data:
        if profile != "default":
            logger.warning(f"配置仅包含 [drcom] 节，忽略 profile='{profile}'。")
        raw_config = data["drcom"]
    else:
        raw_config = data

    return create_settings_from_dict(raw_config)


# 字段映射表 (Config Key -> Env Suffix)
ENV_MAP = {
    "username": "USERNAME",
    "password": "PASSWORD",
    "server_ip": "SERVER_IP",
    "drcom_port": "PORT",
    "bind_ip": "BIND_IP",
    "protocol_version": "PROTOCOL_VERSION",
    "mac": "MAC",
    "host_ip": "HOST_IP",
    "host_name": "HOST_NAME",
    "host_os": "HOST_OS",
    "primary_dns": "PRIMARY_DNS",
    "secondary_dns": "SECONDARY_DNS",
    "dhcp_server": "DHCP_SERVER",
    "control_check_status": "CONTROL_CHECK_STATUS",
    "adapter_num": "ADAPTER_NUM",
    "ipdog": "IPDOG",
    "auth_version": "AUTH_VERSION",
    "os_major": "OS_MAJOR",
    "os_minor": "OS_MINOR",
    "os_build": "OS_BUILD",
    "os_platform": "OS_PLATFORM",
    "challenge_timeout": "CHALLENGE_TIMEOUT",
    "login_timeout": "LOGIN_TIMEOUT",
    "keepalive_timeout": "KEEPALIVE_TIMEOUT",
    "max_challenge_retries": "MAX_CHALLENGE_RETRIES",
    "max_login_retries": "MAX_LOGIN_RETRIES",
    "retry_delay": "RETRY_DELAY",
    "heartbeat_interval": "HEARTBEAT_INTERVAL",
    "heartbeat_backoff": "HEARTBEAT_BACKOFF",
}


def load_config_from_env(dotenv_path: Path | None = None) -> Settings:
    """从环境变量加载配置 (Docker/Cloud Friendly)。

    读取所有以 `DRCOM_` 开头的环境变量，并映射到配置字段。
    例如: `DRCOM_USERNAME` -> `username`。
    若给出 dotenv_path，会先将该 .env 文件载入环境 (不覆盖已有变量)。

    Returns:
        Settings: 配置组合。

    Raises:
        ConfigError: 未检测到任何相关环境变量，或 .env 文件不存在。
    """
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise ConfigError(f".env 文件未找到: {dotenv_path}")
        load_dotenv(dotenv_path=dotenv_path, override=False)
        logger.debug(f"已载入 .env 文件: {dotenv_path}")

    raw_data = {}
    for cfg_key, env_suffix in ENV_MAP.items():
        val = os.environ.get(f"DRCOM_{env_suffix}")
        if val is not None:
            raw_data[cfg_key] = val

    if not raw_data:
        raise ConfigError("未检测到 DRCOM_ 前缀的环境变量")

    return create_settings_from_dict(raw_data)
