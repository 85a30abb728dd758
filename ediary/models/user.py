"""
用户数据模型
定义用户、会话以及认证接口的请求/响应结构
"""

from datetime import datetime
from typing import Optional
from pydantic import Field

from .diary import CamelModel, utcnow


ADMIN_CANONICAL_EMAIL = "admin"
ADMIN_ALIASES = frozenset({ADMIN_CANONICAL_EMAIL, "admin@admin.com"})


def normalize_email(value: Optional[str]) -> str:
    """去除首尾空白并转为小写"""
    return (value or "").strip().lower()


def canonical_email(value: Optional[str]) -> str:
    """
    计算用户的规范身份（本地存储的键）

    管理员的所有别名都映射到同一个身份
    """
    normalized = normalize_email(value)
    if normalized in ADMIN_ALIASES:
        return ADMIN_CANONICAL_EMAIL
    return normalized


def sanitize_text(value: Optional[str]) -> str:
    return (value or "").strip()


class User(CamelModel):
    """用户模型（不包含密码）"""

    id: str
    email: str
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class Session(CamelModel):
    """当前会话：已登录用户 + 远程令牌（本地模式下为空）"""

    user: User
    identity: str
    token: Optional[str] = None

    @property
    def is_remote(self) -> bool:
        return bool(self.token)


class RegisterRequest(CamelModel):
    """注册请求模型"""
    email: Optional[str] = None
    password: Optional[str] = None
    username: Optional[str] = None


class LoginRequest(CamelModel):
    """登录请求模型，username 和 email 二选一"""
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdate(CamelModel):
    """更新资料请求模型"""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None


class AuthResponse(CamelModel):
    """登录/注册响应模型"""
    token: str
    user: User


class ProfileResponse(CamelModel):
    """更新资料响应模型"""
    message: str
    user: User
