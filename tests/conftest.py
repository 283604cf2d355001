# tests/conftest.py
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# 确保 src 目录在 sys.path 中
src_path = Path(__file__).resolve().parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from drcom_engine.config import Credentials, DrcomConfig, HostProfile

from packet_factory import SERVER_ADDR, SERVER_IP


@pytest.fixture
def valid_config() -> DrcomConfig:
    """
    [Fixture] 返回一个用于测试的 DrcomConfig。
    超时、退避都压缩到毫秒级，保证测试快速结束。
    """
    return DrcomConfig(
        server_address=SERVER_IP,
        challenge_timeout=0.01,
        login_timeout=0.01,
        keepalive_timeout=0.01,
        retry_delay=0,
        heartbeat_interval=0.02,
        heartbeat_backoff=0.02,
    )


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(username="541913460101", password="test_password")


@pytest.fixture
def host_profile() -> HostProfile:
    return HostProfile(
        ip_address="192.168.1.100",
        host_name="Test-PC",
        mac_address=0x20689DF3D066,
        os_label="WINDOWS",
    )


@pytest.fixture
def salt() -> bytes:
    """一个模拟的 4 字节 Challenge Salt"""
    return b"\x1a\x2b\x3c\x4d"


@pytest.fixture
def package_tail() -> bytes:
    """一个模拟的 16 字节 Package Tail，来自登录成功响应"""
    return bytes(range(0xA0, 0xB0))


@pytest.fixture
def transport() -> MagicMock:
    """网络收发全部 Mock 为异步；receive 默认无数据。"""
    net = MagicMock()
    net.connect = AsyncMock()
    net.send = AsyncMock()
    net.receive = AsyncMock(return_value=(b"", SERVER_ADDR))
    net.close = AsyncMock()
    return net
