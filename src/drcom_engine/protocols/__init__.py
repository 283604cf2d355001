"""
Dr.COM 协议层 (Protocol Layer)

- base: 策略抽象基类。
- d_series: D 版协议的封包编解码与报文交换策略。

封包模块不包含任何 socket 操作与状态管理；状态迁移由 core 负责。
"""

from .base import BaseProtocol
from .d_series import ProtocolD

__all__ = ["BaseProtocol", "ProtocolD"]
