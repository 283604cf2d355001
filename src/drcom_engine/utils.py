# File: src/drcom_engine/utils.py
"""
Dr.COM 认证引擎 - 通用算法工具箱

本模块汇集了 D 版协议使用的校验与摘要算法。
所有函数都是纯函数，不持有任何跨调用的状态。
"""

import hashlib
import struct

CHECKSUM_INIT_VAL = 1234
CHECKSUM_MULTIPLIER = 1968

MD5A_PREFIX = b"\x03\x01"
MD5B_PREFIX = b"\x01"
MD5B_SUFFIX = b"\x00" * 4

MAC_LEN = 6


def checksum(data: bytes) -> bytes:
    """计算 Dr.COM D 版协议专用的 4 字节校验和 (CRC-1968)。

    此算法用于 Login 包尾部的校验字段。

    算法逻辑:
    1. 初始值 ret = 1234
    2. 将数据按 4 字节分组（小端序），末尾不足 4 字节的部分直接忽略。
    3. 对每组数据进行异或 (XOR) 累加。
    4. 结果乘以魔数 1968，截断为 32 位。

    末尾残余字节不参与计算是协议本身的行为，服务器按同样方式校验，不能补零。

    Args:
        data: 需要计算校验和的原始字节流。

    Returns:
        bytes: 4 字节的小端序校验和。
    """
    ret = CHECKSUM_INIT_VAL
    full_len = len(data) - len(data) % 4

    for (val,) in struct.iter_unpack("<I", data[:full_len]):
        ret ^= val

    ret = (CHECKSUM_MULTIPLIER * ret) & 0xFFFFFFFF
    return struct.pack("<I", ret)


def md5_bytes(data: bytes) -> bytes:
    """计算 MD5 哈希的快捷函数。

    Args:
        data: 输入字节流。

    Returns:
        bytes: 16 字节的 MD5 摘要。
    """
    return hashlib.md5(data).digest()


def derive_md5a(salt: bytes, password: bytes) -> bytes:
    """MD5(03 01 + Salt + Password)：与本次 Challenge 绑定的密码证明。"""
    return md5_bytes(MD5A_PREFIX + salt + password)


def derive_md5b(salt: bytes, password: bytes) -> bytes:
    """MD5(01 + Password + Salt + 00*4)：登录包中的第二段密码证明。"""
    return md5_bytes(MD5B_PREFIX + password + salt + MD5B_SUFFIX)


def obfuscate_mac(md5a: bytes, mac_address: int) -> bytes:
    """用 MD5_A 的前 6 字节对 MAC 地址做异或混淆。

    Args:
        md5a: derive_md5a() 的结果。
        mac_address: 48 位 MAC 地址 (整数形式)。

    Returns:
        bytes: 6 字节混淆结果 (大端序)。
    """
    xor_key = int.from_bytes(md5a[:MAC_LEN], byteorder="big")
    mac_low = mac_address & 0xFFFFFFFFFFFF
    return (xor_key ^ mac_low).to_bytes(MAC_LEN, byteorder="big")
