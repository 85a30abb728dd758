"""
认证服务
管理服务端用户注册、登录、资料更新，以及JWT令牌的签发和校验
"""

from datetime import timedelta
from typing import Dict, Any, Optional
from uuid import uuid4

import jwt
from werkzeug.security import generate_password_hash, check_password_hash

from ediary.models.diary import utcnow
from ediary.models.user import (
    User, RegisterRequest, LoginRequest, ProfileUpdate, normalize_email, sanitize_text,
)
from ediary.utils.config import settings
from ediary.utils.database import Database, db
from ediary.utils.errors import ValidationError, InvalidCredentials, AuthRequired, NotFound
from ediary.utils.logger import logger

MIN_USERNAME_LENGTH = 6
MIN_PASSWORD_LENGTH = 6
AVATAR_URL = "https://api.dicebear.com/9.x/fun-emoji/svg?seed={seed}"


class AuthService:
    """认证服务"""

    def __init__(self, database: Optional[Database] = None, secret: Optional[str] = None):
        """
        初始化认证服务

        Args:
            database: 数据库实例，默认使用全局实例
            secret: JWT签名密钥，默认使用配置
        """
        self.db = database or db
        self.secret = secret or settings.jwt_secret
        self.algorithm = settings.jwt_algorithm

    def create_token(self, user_id: str) -> str:
        """
        签发访问令牌

        Args:
            user_id: 用户ID

        Returns:
            JWT字符串
        """
        payload = {
            "userId": user_id,
            "exp": utcnow() + timedelta(days=settings.jwt_expire_days),
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> User:
        """
        校验令牌并返回对应用户

        Raises:
            AuthRequired: 令牌无效、过期或用户不存在
        """
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthRequired("Token expired")
        except jwt.InvalidTokenError:
            raise AuthRequired("Invalid token")

        user = self.get_user(payload.get("userId", ""))
        if user is None:
            raise AuthRequired("Invalid token")
        return user

    def register(self, payload: RegisterRequest) -> User:
        """
        注册新用户

        Raises:
            ValidationError: 缺少字段、长度不足或邮箱已被使用
        """
        email = normalize_email(payload.email)
        username = sanitize_text(payload.username)
        password = payload.password or ""

        if not email or not password or not username:
            raise ValidationError("All fields are required")
        if len(username) < MIN_USERNAME_LENGTH:
            raise ValidationError(f"Username should be at least {MIN_USERNAME_LENGTH} characters long")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters long")
        if self._find_row("email", email):
            raise ValidationError("Email address already used")

        user_id = str(uuid4())
        self.db.execute(
            """
            INSERT INTO users (id, email, username, password_hash, profile_image, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                user_id, email, username, generate_password_hash(password),
                AVATAR_URL.format(seed=email), utcnow().isoformat()
            )
        )
        logger.info(f"用户注册成功: {user_id}")
        return self.get_user(user_id)

    def login(self, payload: LoginRequest) -> User:
        """
        使用用户名（或邮箱）和密码登录

        Raises:
            ValidationError: 缺少字段
            InvalidCredentials: 用户不存在或密码错误
        """
        username = sanitize_text(payload.username)
        email = normalize_email(payload.email)
        if not payload.password or not (username or email):
            raise ValidationError("All fields are required")

        if username:
            row = self.db.fetch_one(
                "SELECT * FROM users WHERE lower(username) = ?",
                (username.lower(),)
            )
        else:
            row = self._find_row("email", email)

        if not row or not check_password_hash(row["password_hash"], payload.password):
            logger.warning(f"登录失败: {username or email}")
            raise InvalidCredentials()

        logger.info(f"用户登录成功: {row['id']}")
        return self._format_user(row)

    def update_profile(self, user_id: str, payload: ProfileUpdate) -> User:
        """
        更新用户资料，只合并提供的字段

        Raises:
            NotFound: 用户不存在
            ValidationError: 邮箱为空或已被其他用户使用
        """
        if self.get_user(user_id) is None:
            raise NotFound("User not found")

        fields = payload.model_dump(exclude_unset=True, exclude_none=True)
        changes: Dict[str, Any] = {}

        for key in ("first_name", "last_name", "username", "phone"):
            if key in fields:
                changes[key] = sanitize_text(fields[key])

        if "email" in fields:
            email = normalize_email(fields["email"])
            if not email:
                raise ValidationError("Email cannot be empty")
            existing = self._find_row("email", email)
            if existing and existing["id"] != user_id:
                raise ValidationError("Another account already uses this email")
            changes["email"] = email

        if "password" in fields:
            if len(fields["password"]) < MIN_PASSWORD_LENGTH:
                raise ValidationError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters long")
            changes["password_hash"] = generate_password_hash(fields["password"])

        changes["updated_at"] = utcnow().isoformat()
        assignments = ", ".join(f"{column} = ?" for column in changes)
        self.db.execute(
            f"UPDATE users SET {assignments} WHERE id = ?",
            (*changes.values(), user_id)
        )
        logger.info(f"用户资料更新成功: {user_id}")
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[User]:
        """根据ID获取用户"""
        row = self._find_row("id", user_id)
        return self._format_user(row) if row else None

    def _find_row(self, column: str, value: str) -> Optional[Dict[str, Any]]:
        return self.db.fetch_one(f"SELECT * FROM users WHERE {column} = ?", (value,))

    def _format_user(self, row: Dict[str, Any]) -> User:
        """数据库行转用户模型，去掉密码哈希"""
        data = {k: v for k, v in row.items() if k != "password_hash"}
        return User(**data)
