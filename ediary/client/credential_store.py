"""
凭证存储
管理客户端的账号和当前会话：本地账号保存在键值存储中，远程账号委托给REST接口
"""

import json
import sqlite3
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import ValidationError as ModelValidationError
from werkzeug.security import generate_password_hash, check_password_hash

from ediary.client.api_client import DiaryApiClient
from ediary.client.local_store import LocalStore, USERS_KEY, ACTIVE_USER_KEY
from ediary.client.sync_mode import SyncMode
from ediary.models.diary import utcnow
from ediary.models.user import (
    User, Session, ADMIN_ALIASES, ADMIN_CANONICAL_EMAIL, canonical_email, sanitize_text,
)
from ediary.utils.errors import ValidationError, InvalidCredentials, AuthRequired, NetworkFailure
from ediary.utils.logger import get_logger

logger = get_logger(__name__)

SESSION_KEY = "@ediary/session"


class AuthState(str, Enum):
    """认证状态"""
    UNINITIALIZED = "uninitialized"
    HYDRATING = "hydrating"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


_TRANSITIONS = {
    AuthState.UNINITIALIZED: {AuthState.HYDRATING},
    AuthState.HYDRATING: {AuthState.AUTHENTICATED, AuthState.ANONYMOUS},
    AuthState.ANONYMOUS: {AuthState.AUTHENTICATED},
    AuthState.AUTHENTICATED: {AuthState.ANONYMOUS},
}


def _admin_record() -> Dict[str, Any]:
    """内置管理员账号"""
    return {
        "id": "user-admin",
        "email": ADMIN_CANONICAL_EMAIL,
        "passwordHash": generate_password_hash("admin"),
        "firstName": "Admin",
        "lastName": "",
        "username": "01234567890",
        "createdAt": utcnow().isoformat(),
    }


class CredentialStore:
    """凭证存储"""

    def __init__(self, store: LocalStore, api_client: Optional[DiaryApiClient] = None,
                 mode: SyncMode = SyncMode.HYBRID):
        """
        初始化凭证存储

        Args:
            store: 本地键值存储
            api_client: 远程接口客户端，为空时只使用本地账号
            mode: 同步模式
        """
        self.store = store
        self.api_client = api_client
        self.mode = mode if api_client is not None else SyncMode.LOCAL
        self.state = AuthState.UNINITIALIZED
        self.session: Optional[Session] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED

    @property
    def user(self) -> Optional[User]:
        return self.session.user if self.session else None

    def _transition(self, target: AuthState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Cannot move from {self.state.value} to {target.value}")
        self.state = target

    @property
    def _uses_remote(self) -> bool:
        return self.mode != SyncMode.LOCAL

    # ===== 本地账号 =====

    def _read_users(self) -> Dict[str, Dict[str, Any]]:
        """读取本地账号表，数据损坏时返回空表"""
        raw = self.store.get_item(USERS_KEY)
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except ValueError as e:
            logger.warning(f"本地账号数据解析失败: {e}")
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def _ensure_admin_account(self, users: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        if ADMIN_CANONICAL_EMAIL in users:
            return users
        users = {**users, ADMIN_CANONICAL_EMAIL: _admin_record()}
        self.store.set_item(USERS_KEY, json.dumps(users))
        return users

    def _load_users(self) -> Dict[str, Dict[str, Any]]:
        return self._ensure_admin_account(self._read_users())

    def _to_user(self, record: Dict[str, Any]) -> User:
        data = {k: v for k, v in record.items() if k != "passwordHash"}
        return User.model_validate(data)

    def _to_record(self, user: User, password_hash: str) -> Dict[str, Any]:
        record = user.model_dump(mode="json", by_alias=True)
        record["passwordHash"] = password_hash
        return record

    # ===== 会话 =====

    def _open_session(self, user: User, token: Optional[str] = None) -> Session:
        """建立会话并持久化当前用户指针"""
        session = Session(user=user, identity=canonical_email(user.email), token=token)
        self.store.set_item(ACTIVE_USER_KEY, session.identity)
        if token:
            self.store.set_item(SESSION_KEY, session.model_dump_json(by_alias=True))
        else:
            self.store.remove_item(SESSION_KEY)
        self.session = session
        if self.state != AuthState.AUTHENTICATED:
            self._transition(AuthState.AUTHENTICATED)
        return session

    def _restore_remote_session(self) -> Optional[Session]:
        raw = self.store.get_item(SESSION_KEY)
        if not raw:
            return None
        try:
            return Session.model_validate_json(raw)
        except ModelValidationError as e:
            logger.warning(f"远程会话数据解析失败: {e}")
            return None

    def hydrate(self) -> Optional[Session]:
        """
        启动时恢复会话

        Returns:
            恢复的会话，未登录时为None
        """
        self._transition(AuthState.HYDRATING)
        session = None
        try:
            users = self._load_users()
            if self._uses_remote:
                session = self._restore_remote_session()
            if session is None:
                active = canonical_email(self.store.get_item(ACTIVE_USER_KEY))
                record = users.get(active) if active else None
                if record:
                    session = Session(user=self._to_user(record), identity=active)
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"恢复会话失败: {e}")
            session = None

        self.session = session
        self._transition(AuthState.AUTHENTICATED if session else AuthState.ANONYMOUS)
        logger.info(f"会话恢复完成: {self.state.value}")
        return session

    def _require_anonymous(self) -> None:
        if self.state == AuthState.UNINITIALIZED:
            raise RuntimeError("hydrate() must be called first")
        if self.state == AuthState.AUTHENTICATED:
            raise RuntimeError("Already signed in, log out first")

    async def signup(self, email: str, password: str, username: str = "",
                     **profile: Any) -> Session:
        """
        注册并登录

        Args:
            email: 邮箱
            password: 密码
            username: 用户名
            profile: first_name / last_name / phone

        Raises:
            ValidationError: 缺少字段、邮箱被保留或已注册
        """
        self._require_anonymous()

        if self._uses_remote:
            try:
                token, user = await self.api_client.register(email, password, username)
                logger.info(f"远程注册成功: {user.id}")
                return self._open_session(user, token)
            except NetworkFailure:
                if self.mode == SyncMode.REMOTE:
                    raise
                logger.warning("远程注册失败，改为创建本地账号")

        identity = canonical_email(email)
        password = sanitize_text(password)
        if not identity:
            raise ValidationError("Email is required.")
        if identity in ADMIN_ALIASES:
            raise ValidationError("That email is reserved.")
        if not password:
            raise ValidationError("Password is required.")

        users = self._load_users()
        if identity in users:
            raise ValidationError("An account with this email already exists.")

        now = utcnow()
        user = User(
            id=f"user-{int(now.timestamp() * 1000)}",
            email=identity,
            username=sanitize_text(username),
            first_name=sanitize_text(profile.get("first_name")),
            last_name=sanitize_text(profile.get("last_name")),
            phone=sanitize_text(profile.get("phone")) or None,
            created_at=now,
        )
        users = {**users, identity: self._to_record(user, generate_password_hash(password))}
        self.store.set_item(USERS_KEY, json.dumps(users))
        logger.info(f"本地注册成功: {user.id}")
        return self._open_session(user)

    async def login(self, password: str, username: Optional[str] = None,
                    email: Optional[str] = None) -> Session:
        """
        使用用户名或邮箱登录

        Raises:
            ValidationError: 缺少字段
            InvalidCredentials: 账号不存在或密码错误
        """
        self._require_anonymous()

        password = sanitize_text(password)
        username = sanitize_text(username)
        email = sanitize_text(email)
        if not password:
            raise ValidationError("Password is required.")
        if not username and not email:
            raise ValidationError("Username or email is required.")

        if self._uses_remote:
            try:
                token, user = await self.api_client.login(password, username=username, email=email)
                logger.info(f"远程登录成功: {user.id}")
                return self._open_session(user, token)
            except NetworkFailure:
                if self.mode == SyncMode.REMOTE:
                    raise
                logger.warning("远程登录失败，改为本地账号登录")

        users = self._load_users()
        record = None
        if username:
            wanted = username.lower()
            record = next(
                (r for r in users.values() if (r.get("username") or "").lower() == wanted),
                None,
            )
        else:
            record = users.get(canonical_email(email))

        if not record or not check_password_hash(record.get("passwordHash", ""), password):
            raise InvalidCredentials("Invalid username or password.")

        logger.info(f"本地登录成功: {record['id']}")
        return self._open_session(self._to_user(record))

    def logout(self) -> None:
        """退出登录，清除当前用户指针和令牌"""
        self.store.multi_remove([ACTIVE_USER_KEY, SESSION_KEY])
        self.session = None
        self._transition(AuthState.ANONYMOUS)
        logger.info("已退出登录")

    async def update_profile(self, **fields: Any) -> Session:
        """
        更新当前用户资料

        邮箱变化时规范身份随之变化，调用方负责迁移按身份保存的日记数据

        Args:
            fields: first_name / last_name / username / phone / email / password

        Returns:
            更新后的会话

        Raises:
            AuthRequired: 未登录，或远程模式下没有令牌
            ValidationError: 邮箱为空、已被使用或密码为空
        """
        if self.session is None:
            raise AuthRequired("No active user to update.")
        if self.mode == SyncMode.REMOTE and not self.session.is_remote:
            raise AuthRequired("Sign in to the diary server to update your profile.")

        if self.session.is_remote and self._uses_remote:
            payload = {
                key: value for key, value in {
                    "firstName": fields.get("first_name"),
                    "lastName": fields.get("last_name"),
                    "username": fields.get("username"),
                    "phone": fields.get("phone"),
                    "email": fields.get("email"),
                    "password": fields.get("password"),
                }.items() if value is not None
            }
            user = await self.api_client.update_profile(self.session.token, payload)
            return self._open_session(user, self.session.token)

        users = self._load_users()
        current_identity = self.session.identity
        next_identity = current_identity
        if fields.get("email") is not None:
            next_identity = canonical_email(fields["email"])
        if not next_identity:
            raise ValidationError("Email cannot be empty.")
        if next_identity != current_identity and (
                next_identity in users or next_identity in ADMIN_ALIASES):
            raise ValidationError("Another account already uses this email.")

        record = users.get(current_identity) or self._to_record(self.session.user, "")
        updates: Dict[str, Any] = {"email": next_identity, "updated_at": utcnow()}
        for key in ("first_name", "last_name", "username", "phone"):
            if fields.get(key) is not None:
                updates[key] = sanitize_text(fields[key])
        user = self.session.user.model_copy(update=updates)

        password_hash = record.get("passwordHash", "")
        if fields.get("password") is not None:
            password = sanitize_text(fields["password"])
            if not password:
                raise ValidationError("Password cannot be empty.")
            password_hash = generate_password_hash(password)

        users = {k: v for k, v in users.items() if k != current_identity}
        users[next_identity] = self._to_record(user, password_hash)
        self.store.set_item(USERS_KEY, json.dumps(users))
        logger.info(f"本地资料更新成功: {user.id}")
        return self._open_session(user)
