"""
Dr.COM D 版协议族

- constants: 结构性常量。
- packets: 无状态的封包构建与解析。
- strategy: 报文交换与重试策略。
"""

from . import constants, packets
from .strategy import ProtocolD

__all__ = ["constants", "packets", "ProtocolD"]
