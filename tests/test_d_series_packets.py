# tests/test_d_series_packets.py
"""
测试 D 版协议封包构建器与解析器 (Packets)。
"""

import hashlib
import struct

import pytest

from drcom_engine import utils
from drcom_engine.config import Credentials
from drcom_engine.exceptions import ProtocolError
from drcom_engine.protocols.d_series import constants, packets
from drcom_engine.protocols.d_series.constants import PacketKind

from packet_factory import make_challenge_resp, make_login_fail, make_login_succ

# =========================================================================
# Challenge (0x01/0x02)
# =========================================================================


def test_make_challenge_seed():
    assert packets.make_challenge_seed(now=1000.7, offset=0x10) == 1016
    # 取模 0xFFFF
    assert packets.make_challenge_seed(now=0xFFFF, offset=0x0F) == 0x0F


def test_make_challenge_seed_random_offset_in_range():
    for _ in range(50):
        seed = packets.make_challenge_seed(now=1000)
        assert 1000 + 0x0F <= seed <= 1000 + 0xFF


def test_build_challenge_request():
    """验证 Challenge 请求包结构"""
    pkt = packets.build_challenge_request(seed=0x1234)

    assert pkt.kind is PacketKind.CHALLENGE_REQUEST
    assert len(pkt) == 20
    assert pkt.data[:2] == b"\x01\x02"
    assert pkt.data[2:4] == b"\x34\x12"
    assert pkt.data[4] == 0x09
    assert pkt.data[5:] == b"\x00" * 15


def test_build_challenge_request_default_seed():
    pkt = packets.build_challenge_request()
    assert bytes(pkt).startswith(b"\x01\x02")
    assert len(pkt) == 20


def test_challenge_round_trip(salt):
    """模拟服务器以 0x02 回应请求，Salt 位于 Offset 4"""
    request = packets.build_challenge_request(seed=42).data
    response = b"\x02" + request[1:4] + salt + request[8:]

    assert packets.parse_challenge_response(response) == salt


def test_parse_challenge_response(salt):
    assert packets.parse_challenge_response(make_challenge_resp(salt)) == salt
    # 错误 Code：尚未收到
    assert packets.parse_challenge_response(b"\x03" + b"\x00" * 20) is None
    assert packets.parse_challenge_response(b"") is None
    assert packets.parse_challenge_response(None) is None


def test_parse_challenge_response_too_short():
    with pytest.raises(ProtocolError):
        packets.parse_challenge_response(b"\x02\x00\x00\x00\x01")


# =========================================================================
# Login (0x03/0x04)
# =========================================================================


def test_login_packet_layout(valid_config, credentials, host_profile, salt):
    pkt = packets.build_login_packet(valid_config, credentials, host_profile, salt)
    data = pkt.data
    usr = credentials.username.encode()
    pwd = credentials.password
    mac = host_profile.mac_bytes

    assert pkt.kind is PacketKind.LOGIN_REQUEST
    assert len(data) == constants.LOGIN_PACKET_LEN == 330

    # Header
    assert data[:3] == b"\x03\x01\x00"
    assert data[3] == len(usr) + 20

    md5a = hashlib.md5(b"\x03\x01" + salt + pwd).digest()
    assert data[4:20] == md5a
    assert data[20:56] == usr.ljust(36, b"\x00")
    assert data[56:57] == valid_config.control_check_status
    assert data[57:58] == valid_config.adapter_num
    assert data[58:64] == utils.obfuscate_mac(md5a, host_profile.mac_address)
    assert data[64:80] == hashlib.md5(b"\x01" + pwd + salt + b"\x00" * 4).digest()

    # IP List + MD5_C
    assert data[80] == 0x01
    assert data[81:85] == bytes([192, 168, 1, 100])
    assert data[85:97] == b"\x00" * 12
    assert data[97:105] == hashlib.md5(data[:97] + b"\x14\x00\x07\x0b").digest()[:8]

    # IPDOG + Host Info
    assert data[105:106] == valid_config.ipdog
    assert data[106:110] == b"\x00" * 4
    assert data[110:142] == b"Test-PC".ljust(32, b"\x00")
    assert data[142:146] == valid_config.primary_dns_bytes
    assert data[146:150] == valid_config.dhcp_address_bytes
    assert data[150:154] == valid_config.secondary_dns_bytes
    assert data[154:162] == b"\x00" * 8

    # OS Info
    assert data[162:182] == struct.pack("<5I", 0x94, 5, 1, 2600, 2)
    assert data[182:214] == b"WINDOWS".ljust(32, b"\x00")
    assert data[214:310] == b"\x00" * 96

    # Version + Checksum
    assert data[310:312] == b"\x22\x00"
    assert data[312:314] == b"\x02\x0c"
    assert data[314:318] == utils.checksum(
        data[:314] + b"\x01\x26\x07\x11\x00\x00" + mac
    )
    assert data[318:320] == b"\x00\x00"

    # MAC + Tail
    assert data[320:326] == mac
    assert data[326:328] == b"\x00\x00"
    assert data[328:330] == b"\xc2\x66"


@pytest.mark.parametrize("username", ["a", "user", "541913460101", "x" * 32])
def test_login_packet_length_independent_of_username(
    valid_config, host_profile, salt, username
):
    pkt = packets.build_login_packet(
        valid_config, Credentials(username, "pw"), host_profile, salt
    )
    assert len(pkt) == 330
    assert pkt.data[3] == len(username) + 20


def test_login_packet_length_independent_of_password(valid_config, host_profile, salt):
    short = packets.build_login_packet(
        valid_config, Credentials("user", "1"), host_profile, salt
    )
    long = packets.build_login_packet(
        valid_config, Credentials("user", "p" * 100), host_profile, salt
    )
    assert len(short) == len(long)
    assert short.data != long.data


def test_login_packet_is_deterministic(valid_config, credentials, host_profile, salt):
    """同一 Salt 下重发的登录包完全一致"""
    a = packets.build_login_packet(valid_config, credentials, host_profile, salt)
    b = packets.build_login_packet(valid_config, credentials, host_profile, salt)
    assert a == b


def test_login_packet_truncates_long_hostname(valid_config, credentials, host_profile, salt):
    from dataclasses import replace

    host = replace(host_profile, host_name="H" * 40, os_label="L" * 40)
    data = packets.build_login_packet(valid_config, credentials, host, salt).data

    assert len(data) == 330
    assert data[110:142] == b"H" * 32
    assert data[182:214] == b"L" * 32


def test_login_packet_requires_salt(valid_config, credentials, host_profile):
    with pytest.raises(ValueError):
        packets.build_login_packet(valid_config, credentials, host_profile, b"")


def test_parse_login_response_success(package_tail):
    result = packets.parse_login_response(make_login_succ(package_tail))
    assert result.success is True
    assert result.package_tail == package_tail
    assert result.error_code is None


def test_parse_login_response_failure_code():
    result = packets.parse_login_response(make_login_fail(0x05, 0x03))
    assert result == (False, None, 0x03)


def test_parse_login_response_unknown_code_is_rejection():
    result = packets.parse_login_response(b"\x09" + b"\x00" * 40)
    assert result.success is False
    assert result.package_tail is None
    assert result.error_code is None


def test_parse_login_response_malformed():
    with pytest.raises(ProtocolError):
        packets.parse_login_response(b"")
    with pytest.raises(ProtocolError):
        packets.parse_login_response(b"\x04" + b"\x00" * 10)


# =========================================================================
# Keep Alive (0xFF)
# =========================================================================


def test_keep_alive_packet_layout(salt, package_tail):
    pkt = packets.build_keep_alive_packet(salt, b"pw", package_tail, now=0x12345)
    data = pkt.data

    assert pkt.kind is PacketKind.KEEPALIVE_REQUEST
    assert len(data) == constants.KEEP_ALIVE_PACKET_LEN == 42
    assert data[0] == 0xFF
    assert data[1:17] == hashlib.md5(b"\x03\x01" + salt + b"pw").digest()
    assert data[17:20] == b"\x00" * 3
    assert data[20:36] == package_tail
    assert data[36:38] == struct.pack(">H", 0x12345 % 0xFFFF)
    assert data[38:42] == b"\x00" * 4


def test_keep_alive_packet_requires_session_values(salt, package_tail):
    with pytest.raises(ValueError):
        packets.build_keep_alive_packet(b"", b"pw", package_tail)
    with pytest.raises(ValueError):
        packets.build_keep_alive_packet(salt, b"pw", b"")


def test_parse_keep_alive_response():
    assert packets.parse_keep_alive_response(b"\x07\x00\x00") is True
    assert packets.parse_keep_alive_response(b"\x02\x00") is False
    assert packets.parse_keep_alive_response(b"") is False
