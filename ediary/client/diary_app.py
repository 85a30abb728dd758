"""
客户端应用状态
把凭证存储和日记仓库连接起来：会话变化后重新加载日记，身份变化时先迁移本地数据
"""

from typing import Any, Optional

from ediary.client.api_client import DiaryApiClient
from ediary.client.credential_store import CredentialStore
from ediary.client.entry_repository import EntryRepository
from ediary.client.local_store import LocalStore
from ediary.client.sync_mode import SyncMode
from ediary.models.stats import DiaryStats
from ediary.models.user import Session
from ediary.services import stats_service
from ediary.utils.config import settings
from ediary.utils.errors import DiaryError
from ediary.utils.logger import get_logger

logger = get_logger(__name__)


class DiaryApp:
    """客户端应用状态容器，界面层只通过它读取和修改数据"""

    def __init__(self, store: LocalStore, api_client: Optional[DiaryApiClient] = None,
                 mode: SyncMode = SyncMode.HYBRID):
        self.api_client = api_client
        self.mode = mode if api_client is not None else SyncMode.LOCAL
        self.auth = CredentialStore(store, api_client, mode)
        self.diary = EntryRepository(store, api_client, mode)
        self._identity: Optional[str] = None

    @classmethod
    def from_settings(cls) -> "DiaryApp":
        """按配置创建：本地存储路径、接口地址和同步模式"""
        mode = SyncMode(settings.sync_mode)
        api_client = None if mode == SyncMode.LOCAL else DiaryApiClient()
        return cls(LocalStore(), api_client, mode)

    @property
    def session(self) -> Optional[Session]:
        return self.auth.session

    async def _on_session_change(self, session: Optional[Session]) -> None:
        """会话变化：身份改变时迁移本地日记，然后重新加载"""
        if session is None:
            self._identity = None
        else:
            if self._identity and self._identity != session.identity:
                self.diary.migrate(self._identity, session.identity)
            self._identity = session.identity
        await self.diary.load(session)

    async def start(self) -> Optional[Session]:
        """启动：恢复会话并加载日记"""
        session = self.auth.hydrate()
        await self._on_session_change(session)
        return session

    async def signup(self, email: str, password: str, username: str = "", **profile: Any) -> Session:
        session = await self.auth.signup(email, password, username, **profile)
        await self._on_session_change(session)
        return session

    async def login(self, password: str, username: Optional[str] = None,
                    email: Optional[str] = None) -> Session:
        session = await self.auth.login(password, username=username, email=email)
        await self._on_session_change(session)
        return session

    async def logout(self) -> None:
        self.auth.logout()
        await self._on_session_change(None)

    async def update_profile(self, **fields: Any) -> Session:
        """更新资料，修改邮箱时日记随身份迁移"""
        session = await self.auth.update_profile(**fields)
        if session.identity != self._identity:
            logger.info(f"身份变化: {self._identity} -> {session.identity}")
        await self._on_session_change(session)
        return session

    async def stats(self) -> DiaryStats:
        """
        个人资料页统计

        远程会话使用服务器统计，混合模式下请求失败时改为按本地日记计算

        Raises:
            DiaryError: 仅远程模式下请求失败
        """
        session = self.session
        if self.mode != SyncMode.LOCAL and session is not None and session.is_remote:
            try:
                return await self.api_client.get_stats(session.token)
            except DiaryError as e:
                if self.mode == SyncMode.REMOTE:
                    raise
                logger.warning(f"远程统计不可用，改为本地计算: {e.message}")
        return stats_service.build_stats(self.diary.entries)
