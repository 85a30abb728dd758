"""
同步模式
"""

from enum import Enum


class SyncMode(str, Enum):
    """客户端数据来源"""

    # 只使用本地存储
    LOCAL = "local"
    # 有令牌时优先远程，网络失败回退到本地
    HYBRID = "hybrid"
    # 只使用远程接口，网络失败直接抛出
    REMOTE = "remote"
