# src/drcom_engine/__init__.py
"""
Drcom-Engine v1.0.0
Dr.COM D 版认证协议引擎：Challenge 握手、登录与心跳保活。
"""

from .config import (
    Credentials,
    DrcomConfig,
    HostProfile,
    Settings,
    create_config_from_dict,
    create_settings_from_dict,
    load_config_from_env,
    load_config_from_toml,
)
from .core import DrcomEngine
from .exceptions import (
    AuthError,
    AuthErrorCode,
    ConfigError,
    DrcomError,
    ProtocolError,
    StateError,
    TimeoutError,
    TransportError,
)
from .network import NetworkClient, Transport
from .state import Session, SessionState

__version__ = "1.0.0"

__all__ = [
    "DrcomEngine",
    "DrcomConfig",
    "Credentials",
    "HostProfile",
    "Settings",
    "Session",
    "SessionState",
    "NetworkClient",
    "Transport",
    "create_config_from_dict",
    "create_settings_from_dict",
    "load_config_from_env",
    "load_config_from_toml",
    "DrcomError",
    "ConfigError",
    "TransportError",
    "TimeoutError",
    "ProtocolError",
    "StateError",
    "AuthError",
    "AuthErrorCode",
]
