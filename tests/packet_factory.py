# tests/packet_factory.py
"""测试用的常量与服务器响应构造函数。"""

SERVER_IP = "10.30.1.19"
SERVER_ADDR = (SERVER_IP, 61440)


def make_challenge_resp(salt: bytes) -> bytes:
    """构造 Challenge 响应：Code(0x02) + 3 字节 + Salt(4) + 填充"""
    return b"\x02\x00\x00\x00" + salt + b"\x00" * 20


def make_login_succ(tail: bytes) -> bytes:
    """构造登录成功响应：Code(0x04) + 22 字节 + Tail(16) + 填充"""
    return b"\x04" + b"\x00" * 22 + tail + b"\x00" * 20


def make_login_fail(code: int, err: int = 0x03) -> bytes:
    return bytes([code]) + b"\x00" * 3 + bytes([err]) + b"\x00" * 20


KEEP_ALIVE_ACK = b"\x07" + b"\x00" * 20
