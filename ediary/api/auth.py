"""
认证接口
注册、登录和更新个人资料
"""

from fastapi import APIRouter, Depends

from ediary.api.deps import get_auth_service, get_current_user
from ediary.models.user import (
    User, RegisterRequest, LoginRequest, ProfileUpdate, AuthResponse, ProfileResponse,
)
from ediary.services.auth_service import AuthService

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201, response_model=AuthResponse)
async def register(payload: RegisterRequest,
                   auth_service: AuthService = Depends(get_auth_service)) -> AuthResponse:
    """注册并返回令牌"""
    user = auth_service.register(payload)
    return AuthResponse(token=auth_service.create_token(user.id), user=user)


@router.post("/login", status_code=201, response_model=AuthResponse)
async def login(payload: LoginRequest,
                auth_service: AuthService = Depends(get_auth_service)) -> AuthResponse:
    """登录并返回令牌"""
    user = auth_service.login(payload)
    return AuthResponse(token=auth_service.create_token(user.id), user=user)


@router.put("/update-profile", response_model=ProfileResponse)
async def update_profile(payload: ProfileUpdate,
                         current_user: User = Depends(get_current_user),
                         auth_service: AuthService = Depends(get_auth_service)) -> ProfileResponse:
    """更新当前用户资料"""
    user = auth_service.update_profile(current_user.id, payload)
    return ProfileResponse(message="Profile updated successfully", user=user)
