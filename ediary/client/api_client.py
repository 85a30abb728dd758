"""
远程接口客户端
调用 E-Diary REST 接口，把HTTP错误码转换回统一的异常类型
"""

from typing import Any, Dict, List, Optional, Tuple
import httpx

from ediary.models.diary import DiaryEntry
from ediary.models.stats import DiaryStats
from ediary.models.user import User
from ediary.utils.config import settings
from ediary.utils.errors import (
    DiaryError, ValidationError, AuthRequired, NotFound, NetworkFailure, ERRORS_BY_CODE,
)
from ediary.utils.logger import get_logger

logger = get_logger(__name__)


class DiaryApiClient:
    """远程接口客户端，令牌由调用方按会话显式传入"""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        初始化客户端

        Args:
            base_url: 接口地址，例如 http://localhost:3000/api
            timeout: 请求超时（秒）
            transport: 自定义传输层（测试时可直接挂载ASGI应用）
        """
        self.base_url = base_url or settings.api_base_url
        self.timeout = timeout if timeout is not None else settings.api_timeout
        self.transport = transport

    async def _request(self, method: str, path: str, token: Optional[str] = None,
                       json: Optional[Dict[str, Any]] = None) -> Any:
        """
        发送请求

        Returns:
            响应JSON

        Raises:
            NetworkFailure: 服务器不可达
            DiaryError: 服务器返回错误状态码时对应的子类
        """
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                         transport=self.transport) as client:
                response = await client.request(method, path, headers=headers, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"请求失败 {method} {path}: {e}")
            raise NetworkFailure() from e

        if response.status_code >= 400:
            raise self._error_for(response)
        return response.json()

    def _error_for(self, response: httpx.Response) -> DiaryError:
        """根据响应中的错误码构造异常，没有错误码时按状态码判断"""
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or response.reason_phrase

        error_class = ERRORS_BY_CODE.get(body.get("code"))
        if error_class is not None:
            return error_class(message)

        status = response.status_code
        if status in (400, 422):
            return ValidationError(message)
        if status == 401:
            return AuthRequired(message)
        if status == 404:
            return NotFound(message)
        logger.error(f"接口返回错误: {status} - {message}")
        return DiaryError(message)

    # ===== 认证 =====

    async def register(self, email: str, password: str, username: str) -> Tuple[str, User]:
        data = await self._request(
            "POST", "/auth/register",
            json={"email": email, "password": password, "username": username}
        )
        return data["token"], User.model_validate(data["user"])

    async def login(self, password: str, username: Optional[str] = None,
                    email: Optional[str] = None) -> Tuple[str, User]:
        body = {"password": password}
        if username:
            body["username"] = username
        if email:
            body["email"] = email
        data = await self._request("POST", "/auth/login", json=body)
        return data["token"], User.model_validate(data["user"])

    async def update_profile(self, token: str, fields: Dict[str, Any]) -> User:
        data = await self._request("PUT", "/auth/update-profile", token=token, json=fields)
        return User.model_validate(data["user"])

    # ===== 日记 =====

    async def list_entries(self, token: str) -> List[DiaryEntry]:
        data = await self._request("GET", "/diaries", token=token)
        return [DiaryEntry.model_validate(item) for item in data]

    async def list_trash(self, token: str) -> List[DiaryEntry]:
        data = await self._request("GET", "/diaries/trash", token=token)
        return [DiaryEntry.model_validate(item) for item in data]

    async def get_stats(self, token: str) -> DiaryStats:
        data = await self._request("GET", "/diaries/stats", token=token)
        return DiaryStats.model_validate(data)

    async def create_entry(self, token: str, fields: Dict[str, Any]) -> DiaryEntry:
        data = await self._request("POST", "/diaries", token=token, json=fields)
        return DiaryEntry.model_validate(data)

    async def update_entry(self, token: str, entry_id: str, fields: Dict[str, Any]) -> DiaryEntry:
        data = await self._request("PUT", f"/diaries/{entry_id}", token=token, json=fields)
        return DiaryEntry.model_validate(data)

    async def delete_entry(self, token: str, entry_id: str) -> DiaryEntry:
        """软删除，返回带 trashedAt 的条目"""
        data = await self._request("DELETE", f"/diaries/{entry_id}", token=token)
        return DiaryEntry.model_validate(data["diary"])

    async def restore_entry(self, token: str, entry_id: str) -> DiaryEntry:
        data = await self._request("PUT", f"/diaries/{entry_id}/restore", token=token)
        return DiaryEntry.model_validate(data["diary"])

    async def permanently_delete_entry(self, token: str, entry_id: str) -> None:
        await self._request("DELETE", f"/diaries/{entry_id}/permanent", token=token)
