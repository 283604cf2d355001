"""
Dr.COM D 版协议常量表 (Constants)

仅定义协议的结构性常量（如 OpCode、偏移量、字段宽度与魔法数字）。
站点相关的默认值（DNS、版本号等）由 DrcomConfig 注入。
"""

from enum import Enum


# =========================================================================
# 协议操作码 (Protocol Codes)
# =========================================================================
class Code:
    """协议包头部的 Code 字段定义"""

    CHALLENGE_REQ = b"\x01\x02"  # 挑战请求 (Client -> Server)
    CHALLENGE_RESP = 0x02  # 挑战响应 (Server -> Client)
    LOGIN_REQ = b"\x03\x01"  # 登录请求 (Client -> Server)
    LOGIN_RESP_SUCC = 0x04  # 登录成功
    LOGIN_RESP_FAIL = 0x05  # 登录失败 (带错误码)
    KEEP_ALIVE = b"\xff"  # 心跳 (0xFF)
    KEEP_ALIVE_RESP = 0x07  # 心跳确认


class PacketKind(Enum):
    """数据包的逻辑类型"""

    CHALLENGE_REQUEST = "challenge_request"
    CHALLENGE_RESPONSE = "challenge_response"
    LOGIN_REQUEST = "login_request"
    LOGIN_RESPONSE = "login_response"
    KEEPALIVE_REQUEST = "keepalive_request"
    KEEPALIVE_RESPONSE = "keepalive_response"


# =========================================================================
# Challenge
# =========================================================================
CHALLENGE_MAGIC = b"\x09"
CHALLENGE_PADDING_LEN = 15
CHALLENGE_REQ_LEN = 20

# 随机种子 = (当前秒数 + [0x0F, 0xFF] 随机偏移) mod 0xFFFF
SEED_OFFSET_MIN = 0x0F
SEED_OFFSET_MAX = 0xFF
SEED_MODULUS = 0xFFFF

SALT_OFFSET_START = 4
SALT_OFFSET_END = 8

# =========================================================================
# Login
# =========================================================================
LOGIN_LEN_OFFSET = 20  # 头部长度字节 = 用户名长度 + 20

USERNAME_FIELD_LEN = 36
HOSTNAME_FIELD_LEN = 32
HOST_OS_FIELD_LEN = 32
HOST_OS_SUFFIX_LEN = 96

NIC_COUNT = b"\x01"
IP_RESERVED_LEN = 12  # 第 2~4 个 IP 地址
MD5C_SUFFIX = b"\x14\x00\x07\x0b"
MD5C_LEN = 8
IPDOG_RESERVED_LEN = 4
DNS_RESERVED_LEN = 8

OS_INFO_SIZE = 0x94  # OSVERSIONINFO 结构体大小 (148)

ADAPTER_TAG = b"\x02\x0c"
CHECKSUM_TAG = b"\x01\x26\x07\x11\x00\x00"
CHECKSUM_RESERVED_LEN = 2
AUTO_LOGOUT = b"\x00"
BROADCAST_MODE = b"\x00"
LOGIN_TRAILER = b"\xc2\x66"

LOGIN_PACKET_LEN = 330

# 登录响应解析
PACKAGE_TAIL_START = 23
PACKAGE_TAIL_END = 39
ERROR_CODE_INDEX = 4

# =========================================================================
# Keep Alive (0xFF)
# =========================================================================
KEEP_ALIVE_PAD_AFTER_DIGEST = 3
KEEP_ALIVE_TIME_MODULUS = 0xFFFF
KEEP_ALIVE_TRAILING_LEN = 4
KEEP_ALIVE_PACKET_LEN = 42
