"""
日记服务
管理服务端日记的保存、查询、更新、软删除（回收站）、恢复和彻底删除
"""

from typing import List, Dict, Any, Optional
from uuid import uuid4

from ediary.models.diary import (
    DiaryRecord, DiaryCreate, DiaryUpdate, Mood, DEFAULT_MOOD, utcnow,
)
from ediary.models.stats import DiaryStats
from ediary.services import stats_service
from ediary.utils.database import Database, db
from ediary.utils.errors import ValidationError, NotFound
from ediary.utils.logger import logger


class DiaryService:
    """日记服务"""

    def __init__(self, database: Optional[Database] = None):
        """
        初始化日记服务

        Args:
            database: 数据库实例，默认使用全局实例
        """
        self.db = database or db

    def list_diaries(self, user_id: str) -> List[DiaryRecord]:
        """
        获取用户未删除的日记，按创建时间倒序

        Args:
            user_id: 用户ID

        Returns:
            日记列表
        """
        rows = self.db.fetch_all(
            "SELECT * FROM diaries WHERE user_id = ? AND deleted_at IS NULL ORDER BY created_at DESC",
            (user_id,)
        )
        return [self._format_diary(r) for r in rows]

    def list_trash(self, user_id: str) -> List[DiaryRecord]:
        """
        获取回收站中的日记，最近删除的在前

        Args:
            user_id: 用户ID

        Returns:
            日记列表
        """
        rows = self.db.fetch_all(
            "SELECT * FROM diaries WHERE user_id = ? AND deleted_at IS NOT NULL ORDER BY deleted_at DESC",
            (user_id,)
        )
        return [self._format_diary(r) for r in rows]

    def get_diary(self, user_id: str, diary_id: str) -> DiaryRecord:
        """
        根据ID获取日记（包括回收站中的）

        Raises:
            NotFound: 日记不存在或不属于该用户
        """
        row = self.db.fetch_one(
            "SELECT * FROM diaries WHERE id = ? AND user_id = ?",
            (diary_id, user_id)
        )
        if not row:
            raise NotFound()
        return self._format_diary(row)

    def create_diary(self, user_id: str, payload: DiaryCreate) -> DiaryRecord:
        """
        创建日记

        Args:
            user_id: 用户ID
            payload: 请求数据，mood 缺省为 calm

        Returns:
            新建的日记

        Raises:
            ValidationError: 标题或内容为空，或心情不合法
        """
        title = (payload.title or "").strip()
        content = (payload.content or "").strip()
        if not title or not content:
            raise ValidationError("Title and content are required")

        mood = self._parse_mood(payload.mood) if payload.mood else DEFAULT_MOOD
        now = utcnow().isoformat()
        diary_id = str(uuid4())

        self.db.execute(
            """
            INSERT INTO diaries (id, user_id, mood, title, content, image_uri, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (diary_id, user_id, mood.value, title, content, payload.image_uri, now, now)
        )
        logger.info(f"日记创建成功: {diary_id}")
        return self.get_diary(user_id, diary_id)

    def update_diary(self, user_id: str, diary_id: str, payload: DiaryUpdate) -> DiaryRecord:
        """
        更新日记，只合并请求中提供的字段

        Raises:
            NotFound: 日记不存在
            ValidationError: 标题/内容被清空或心情不合法
        """
        changes: Dict[str, Any] = {}
        fields = payload.model_dump(exclude_unset=True)

        for key in ("title", "content"):
            if fields.get(key) is not None:
                value = fields[key].strip()
                if not value:
                    raise ValidationError("Title and content are required")
                changes[key] = value
        if fields.get("mood") is not None:
            changes["mood"] = self._parse_mood(fields["mood"]).value
        if "image_uri" in fields:
            changes["image_uri"] = fields["image_uri"]

        # 确认日记存在
        self.get_diary(user_id, diary_id)

        changes["updated_at"] = utcnow().isoformat()
        assignments = ", ".join(f"{column} = ?" for column in changes)
        self.db.execute(
            f"UPDATE diaries SET {assignments} WHERE id = ? AND user_id = ?",
            (*changes.values(), diary_id, user_id)
        )
        logger.info(f"日记更新成功: {diary_id}")
        return self.get_diary(user_id, diary_id)

    def soft_delete(self, user_id: str, diary_id: str) -> DiaryRecord:
        """
        移入回收站

        Raises:
            NotFound: 日记不存在或已在回收站中
        """
        affected = self.db.execute(
            "UPDATE diaries SET deleted_at = ? WHERE id = ? AND user_id = ? AND deleted_at IS NULL",
            (utcnow().isoformat(), diary_id, user_id)
        )
        if not affected:
            raise NotFound()
        logger.info(f"日记已移入回收站: {diary_id}")
        return self.get_diary(user_id, diary_id)

    def restore(self, user_id: str, diary_id: str) -> DiaryRecord:
        """
        从回收站恢复

        Raises:
            NotFound: 回收站中没有该日记
        """
        affected = self.db.execute(
            "UPDATE diaries SET deleted_at = NULL WHERE id = ? AND user_id = ? AND deleted_at IS NOT NULL",
            (diary_id, user_id)
        )
        if not affected:
            raise NotFound("Diary entry not found in trash")
        logger.info(f"日记已恢复: {diary_id}")
        return self.get_diary(user_id, diary_id)

    def permanent_delete(self, user_id: str, diary_id: str) -> None:
        """
        彻底删除，只允许删除回收站中的日记

        Raises:
            NotFound: 回收站中没有该日记
        """
        affected = self.db.execute(
            "DELETE FROM diaries WHERE id = ? AND user_id = ? AND deleted_at IS NOT NULL",
            (diary_id, user_id)
        )
        if not affected:
            raise NotFound("Diary entry not found in trash")
        logger.info(f"日记已彻底删除: {diary_id}")

    def get_stats(self, user_id: str) -> DiaryStats:
        """统计用户未删除日记的条数、连续天数和字数"""
        return stats_service.build_stats(self.list_diaries(user_id))

    def _parse_mood(self, value: str) -> Mood:
        mood = Mood.parse(value)
        if mood is None:
            raise ValidationError(f"Unknown mood: {value}")
        return mood

    def _format_diary(self, row: Dict[str, Any]) -> DiaryRecord:
        """
        格式化日记数据

        Args:
            row: 数据库行

        Returns:
            日记模型
        """
        return DiaryRecord(**row)
