"""
接口依赖
服务实例提供者和Bearer令牌认证
"""

from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ediary.models.user import User
from ediary.services.auth_service import AuthService
from ediary.services.diary_service import DiaryService
from ediary.utils.errors import AuthRequired

bearer_scheme = HTTPBearer(auto_error=False)

_auth_service: Optional[AuthService] = None
_diary_service: Optional[DiaryService] = None


def get_auth_service() -> AuthService:
    """获取认证服务（单例）"""
    global _auth_service
    if _auth_service is None:
        _auth_service = AuthService()
    return _auth_service


def get_diary_service() -> DiaryService:
    """获取日记服务（单例）"""
    global _diary_service
    if _diary_service is None:
        _diary_service = DiaryService()
    return _diary_service


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth_service: AuthService = Depends(get_auth_service),
) -> User:
    """
    从 Authorization: Bearer <token> 解析当前用户

    Raises:
        AuthRequired: 缺少或无效的令牌
    """
    if credentials is None or not credentials.credentials:
        raise AuthRequired("No token, authorization denied")
    return auth_service.verify_token(credentials.credentials)
