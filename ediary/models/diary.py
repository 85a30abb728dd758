"""
日记数据模型
定义日记相关的数据结构，服务端接口和客户端本地存储共用同一套JSON格式（camelCase）
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any
from typing_extensions import Annotated
from pydantic import BaseModel, Field, AliasChoices, BeforeValidator, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """当前UTC时间（带时区）"""
    return datetime.now(timezone.utc)


class Mood(str, Enum):
    """心情标签"""

    SAD = "sad"
    ANGRY = "angry"
    CALM = "calm"
    HAPPY = "happy"
    LOVE = "love"

    @classmethod
    def parse(cls, value: Any) -> Optional["Mood"]:
        """
        解析心情值，兼容 "in love" 写法和大小写

        Returns:
            对应的心情，无法识别时返回None
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        if normalized == "in love":
            normalized = "love"
        try:
            return cls(normalized)
        except ValueError:
            return None


DEFAULT_MOOD = Mood.CALM


class CamelModel(BaseModel):
    """JSON 字段使用 camelCase 的基础模型"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


def _coerce_mood(value: Any) -> Any:
    mood = Mood.parse(value)
    return mood if mood is not None else value


MoodField = Annotated[Mood, BeforeValidator(_coerce_mood)]


class DiaryEntry(CamelModel):
    """日记条目（客户端视角），trashed_at 不为空即表示在回收站中"""

    id: str
    mood: MoodField = DEFAULT_MOOD
    title: str
    content: str
    image_uri: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    trashed_at: Optional[datetime] = Field(
        default=None,
        serialization_alias="trashedAt",
        validation_alias=AliasChoices("trashedAt", "trashed_at", "deletedAt"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if value is not None else value

    @property
    def is_trashed(self) -> bool:
        return self.trashed_at is not None


class DiaryRecord(CamelModel):
    """服务端数据库中的日记记录"""

    id: str
    user_id: str = Field(serialization_alias="user", validation_alias=AliasChoices("user", "user_id", "userId"))
    mood: MoodField = DEFAULT_MOOD
    title: str
    content: str
    image_uri: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None


class DiaryCreate(CamelModel):
    """创建日记请求模型，必填校验在服务层完成以返回统一的错误信息"""

    mood: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    image_uri: Optional[str] = None


class DiaryUpdate(CamelModel):
    """更新日记请求模型"""

    mood: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    image_uri: Optional[str] = None


class DiaryActionResponse(CamelModel):
    """删除/恢复操作响应模型"""

    message: str
    diary: Optional[DiaryRecord] = None


class MessageResponse(BaseModel):
    """仅包含提示信息的响应"""

    message: str
