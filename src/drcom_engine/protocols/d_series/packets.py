# File: src/drcom_engine/protocols/d_series/packets.py
"""
Dr.COM D 版协议封包构建器 (Packet Builders)

负责将 Python 数据结构转换为符合协议规范的二进制字节流，以及反向解析响应。
本模块是无状态的 (Stateless)，不持有任何配置或会话信息，也不做任何网络 I/O。

所有字段的偏移与宽度都是固定的。任何偏差都会被网关静默丢弃，而不是返回错误。
"""

import logging
import secrets
import struct
import time
from dataclasses import dataclass
from typing import NamedTuple

from ... import utils
from ...config import Credentials, DrcomConfig, HostProfile
from ...exceptions import ProtocolError
from . import constants
from .constants import Code, PacketKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Packet:
    """带逻辑类型标签的不可变数据包。"""

    kind: PacketKind
    data: bytes

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)


class LoginResult(NamedTuple):
    """登录响应解析结果。"""

    success: bool
    package_tail: bytes | None
    error_code: int | None


def _fixed(data: bytes, width: int) -> bytes:
    """截断或补零到固定宽度。"""
    return data[:width].ljust(width, b"\x00")


# =========================================================================
# Challenge (0x01)
# =========================================================================


def make_challenge_seed(now: float | None = None, offset: int | None = None) -> int:
    """生成 Challenge 随机种子。

    种子 = (当前时间 + 一个小的随机偏移) mod 0xFFFF，使探测包不易被预测。

    Args:
        now: 当前时间戳，默认为 time.time()。
        offset: 随机偏移，默认在 [0x0F, 0xFF] 内随机选取。
    """
    if now is None:
        now = time.time()
    if offset is None:
        span = constants.SEED_OFFSET_MAX - constants.SEED_OFFSET_MIN + 1
        offset = constants.SEED_OFFSET_MIN + secrets.randbelow(span)
    return (int(now) + offset) % constants.SEED_MODULUS


def build_challenge_request(seed: int | None = None) -> Packet:
    """构建 Challenge 请求包 (0x01)。

    结构: Code(01 02) + Seed(2B, 小端) + Magic(09) + Padding(15B)

    Args:
        seed: 随机种子；为 None 时调用 make_challenge_seed() 生成。

    Returns:
        Packet: 20 字节的 Challenge 请求包。
    """
    if seed is None:
        seed = make_challenge_seed()

    data = (
        Code.CHALLENGE_REQ
        + struct.pack("<H", seed % constants.SEED_MODULUS)
        + constants.CHALLENGE_MAGIC
        + b"\x00" * constants.CHALLENGE_PADDING_LEN
    )
    logger.debug("challenge_build: seed=%#06x", seed)
    return Packet(PacketKind.CHALLENGE_REQUEST, data)


def parse_challenge_response(data: bytes) -> bytes | None:
    """解析 Challenge 响应包 (0x02)，提取 Salt。

    Args:
        data: 接收到的 UDP 数据包。

    Returns:
        bytes | None: 有效时返回 4 字节 Salt；首字节不是 0x02 时返回 None (尚未收到)。

    Raises:
        ProtocolError: 首字节为 0x02 但长度不足以包含 Salt。
    """
    if not data:
        return None

    if data[0] != Code.CHALLENGE_RESP:
        logger.debug("challenge_response: code mismatch %#04x", data[0])
        return None

    if len(data) < constants.SALT_OFFSET_END:
        raise ProtocolError(f"Challenge 响应长度不足 ({len(data)} 字节)")

    salt = data[constants.SALT_OFFSET_START : constants.SALT_OFFSET_END]
    logger.debug("challenge_response: salt=%s", salt.hex())
    return salt


# =========================================================================
# Login (0x03)
# =========================================================================


def build_login_packet(
    config: DrcomConfig,
    credentials: Credentials,
    host: HostProfile,
    salt: bytes,
) -> Packet:
    """构建 D 版登录数据包 (Login Request)。

    包长固定为 330 字节，与用户名、密码长度无关；
    头部长度字节必须严格等于 len(username) + 20，否则服务器会拒绝。

    Args:
        config: 引擎配置，提供站点指纹 (DNS、版本号等)。
        credentials: 账号密码。
        host: 本机指纹。
        salt: Challenge 阶段获取的 4 字节盐值。

    Returns:
        Packet: 构建好的登录请求包。

    Raises:
        ValueError: Salt 缺失或长度不正确。
    """
    if len(salt) != constants.SALT_OFFSET_END - constants.SALT_OFFSET_START:
        raise ValueError("构建登录包需要 4 字节 Salt")

    usr_bytes = credentials.username_bytes
    pwd_bytes = credentials.password
    mac_bytes = host.mac_bytes

    pkt = bytearray()

    # 1. Header (包头)
    pkt.extend(Code.LOGIN_REQ)
    pkt.append(0x00)
    pkt.append(len(usr_bytes) + constants.LOGIN_LEN_OFFSET)

    # 2. MD5_A
    md5a = utils.derive_md5a(salt, pwd_bytes)
    pkt.extend(md5a)

    # 3. Identity (身份信息)
    pkt.extend(_fixed(usr_bytes, constants.USERNAME_FIELD_LEN))
    pkt.extend(config.control_check_status)
    pkt.extend(config.adapter_num)

    # 4. MAC XOR (MAC 地址混淆)
    pkt.extend(utils.obfuscate_mac(md5a, host.mac_address))

    # 5. MD5_B
    pkt.extend(utils.derive_md5b(salt, pwd_bytes))

    # 6. IP List
    pkt.extend(constants.NIC_COUNT)
    pkt.extend(host.ip_bytes)
    pkt.extend(b"\x00" * constants.IP_RESERVED_LEN)

    # 7. MD5_C (覆盖此前全部内容的完整性标签)
    md5c = utils.md5_bytes(bytes(pkt) + constants.MD5C_SUFFIX)
    pkt.extend(md5c[: constants.MD5C_LEN])

    # 8. IPDOG
    pkt.extend(config.ipdog)
    pkt.extend(b"\x00" * constants.IPDOG_RESERVED_LEN)

    # 9. Host Info (主机网络信息)
    pkt.extend(_fixed(host.host_name_bytes, constants.HOSTNAME_FIELD_LEN))
    pkt.extend(config.primary_dns_bytes)
    pkt.extend(config.dhcp_address_bytes)
    pkt.extend(config.secondary_dns_bytes)
    pkt.extend(b"\x00" * constants.DNS_RESERVED_LEN)

    # 10. OS Info (结构体大小 + 主/次版本号、构建号、平台号)
    pkt.extend(
        struct.pack(
            "<5I",
            constants.OS_INFO_SIZE,
            config.os_major,
            config.os_minor,
            config.os_build,
            config.os_platform,
        )
    )
    pkt.extend(_fixed(host.os_label_bytes, constants.HOST_OS_FIELD_LEN))
    pkt.extend(b"\x00" * constants.HOST_OS_SUFFIX_LEN)

    # 11. Version & Adapter Tag
    pkt.extend(config.auth_version)
    pkt.extend(constants.ADAPTER_TAG)

    # 12. Checksum (整包校验)
    checksum_input = bytes(pkt) + constants.CHECKSUM_TAG + mac_bytes
    pkt.extend(utils.checksum(checksum_input))
    pkt.extend(b"\x00" * constants.CHECKSUM_RESERVED_LEN)

    # 13. MAC & Tail
    pkt.extend(mac_bytes)
    pkt.extend(constants.AUTO_LOGOUT)
    pkt.extend(constants.BROADCAST_MODE)
    pkt.extend(constants.LOGIN_TRAILER)

    out = bytes(pkt)
    logger.debug("login_build: user_len=%d len=%d", len(usr_bytes), len(out))
    return Packet(PacketKind.LOGIN_REQUEST, out)


def parse_login_response(data: bytes) -> LoginResult:
    """解析登录响应数据包。

    首字节 0x04 为成功，其他任何值都视为失败。
    首字节为 0x05 时，Index 4 处的错误码会一并返回，供生成可读提示。

    Args:
        data: 接收到的 UDP 数据包。

    Returns:
        LoginResult: 解析结果。

    Raises:
        ProtocolError: 空包，或成功包长度不足以包含 Package Tail。
    """
    if not data:
        raise ProtocolError("登录响应为空")

    code = data[0]
    if code == Code.LOGIN_RESP_SUCC:
        if len(data) < constants.PACKAGE_TAIL_END:
            raise ProtocolError(f"登录成功响应长度不足 ({len(data)} 字节)")
        tail = data[constants.PACKAGE_TAIL_START : constants.PACKAGE_TAIL_END]
        logger.debug("login_response: success tail_len=%d", len(tail))
        return LoginResult(True, tail, None)

    err = None
    if code == Code.LOGIN_RESP_FAIL and len(data) > constants.ERROR_CODE_INDEX:
        err = data[constants.ERROR_CODE_INDEX]
    logger.debug("login_response: rejected code=%#04x err=%s", code, err)
    return LoginResult(False, None, err)


# =========================================================================
# Keep Alive (0xFF)
# =========================================================================


def build_keep_alive_packet(
    salt: bytes,
    password: bytes,
    package_tail: bytes,
    now: float | None = None,
) -> Packet:
    """构建心跳 (0xFF) 数据包。

    结构: FF + MD5_A(16) + 00*3 + PackageTail(16) + Time(2B, 大端) + 00*4

    MD5_A 必须与登录时使用的 Salt、密码一致，否则服务器会静默停止响应。

    Args:
        salt: 本会话 Challenge 阶段的 Salt。
        password: 用户密码。
        package_tail: 登录成功后获取的 16 字节 Package Tail。
        now: 当前时间戳，默认为 time.time()。

    Returns:
        Packet: 42 字节的心跳包。

    Raises:
        ValueError: Salt 或 Package Tail 缺失。
    """
    if not salt or len(package_tail) != (
        constants.PACKAGE_TAIL_END - constants.PACKAGE_TAIL_START
    ):
        raise ValueError("构建心跳包需要 Salt 与 16 字节 Package Tail")

    if now is None:
        now = time.time()
    timestamp = struct.pack("!H", int(now) % constants.KEEP_ALIVE_TIME_MODULUS)

    pkt = bytearray()
    pkt.extend(Code.KEEP_ALIVE)
    pkt.extend(utils.derive_md5a(salt, password))
    pkt.extend(b"\x00" * constants.KEEP_ALIVE_PAD_AFTER_DIGEST)
    pkt.extend(package_tail)
    pkt.extend(timestamp)
    pkt.extend(b"\x00" * constants.KEEP_ALIVE_TRAILING_LEN)

    return Packet(PacketKind.KEEPALIVE_REQUEST, bytes(pkt))


def parse_keep_alive_response(data: bytes) -> bool:
    """验证心跳响应。

    Returns:
        bool: 以 0x07 开头视为服务器已确认。
    """
    ok = bool(data) and data[0] == Code.KEEP_ALIVE_RESP
    logger.debug("keep_alive_response: ok=%s", ok)
    return ok
