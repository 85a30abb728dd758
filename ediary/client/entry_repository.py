"""
日记仓库
持有当前会话的日记（未删除 + 回收站），负责与远程接口同步并持久化到本地存储

每条日记只保存一份，trashed_at 为空表示在日记列表中，不为空表示在回收站中，
因此同一条日记不可能同时出现在两个列表里
"""

import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as ModelValidationError

from ediary.client.api_client import DiaryApiClient
from ediary.client.local_store import LocalStore, entries_key_for, trash_key_for
from ediary.client.sync_mode import SyncMode
from ediary.models.diary import DiaryEntry, Mood, DEFAULT_MOOD, utcnow
from ediary.models.user import Session, ADMIN_CANONICAL_EMAIL
from ediary.utils.errors import DiaryError, ValidationError, AuthRequired, NotFound
from ediary.utils.logger import get_logger

logger = get_logger(__name__)

# 客户端生成的条目ID前缀，服务器生成的ID是UUID
LOCAL_ID_PREFIX = "entry-"

# 管理员账号首次登录时的示例日记
INITIAL_ENTRIES = [
    {
        "id": "entry-1",
        "mood": "sad",
        "title": "Lost my precious item",
        "content": "I misplaced something important today. Hoping it turns up soon.",
        "createdAt": "2025-10-09T23:00:00.000Z",
        "imageUri": None,
    },
    {
        "id": "entry-2",
        "mood": "angry",
        "title": "Travel",
        "content": "Even with the delays, the trip was worth it in the end.",
        "createdAt": "2025-10-08T08:00:00.000Z",
        "imageUri": None,
    },
    {
        "id": "entry-3",
        "mood": "calm",
        "title": "Bad day",
        "content": "Trying to unwind after everything that happened.",
        "createdAt": "2025-10-07T22:00:00.000Z",
        "imageUri": None,
    },
    {
        "id": "entry-4",
        "mood": "love",
        "title": "She's pretty",
        "content": "I finally told her how I felt today.",
        "createdAt": "2025-10-07T19:00:00.000Z",
        "imageUri": None,
    },
    {
        "id": "entry-5",
        "mood": "happy",
        "title": "First day in work",
        "content": "Excited to start this new chapter!",
        "createdAt": "2025-10-01T15:00:00.000Z",
        "imageUri": None,
    },
]


def seed_entries_for(identity: str) -> List[DiaryEntry]:
    """新身份的初始日记，只有管理员有示例数据"""
    if identity == ADMIN_CANONICAL_EMAIL:
        return [DiaryEntry.model_validate(item) for item in INITIAL_ENTRIES]
    return []


def parse_stored_list(raw: Optional[str], fallback: List[DiaryEntry]) -> List[DiaryEntry]:
    """
    解析本地保存的日记列表

    逐条校验：无法识别的心情按 calm 显示，缺少必要字段的条目跳过，其余条目保留

    Args:
        raw: JSON字符串
        fallback: 不存在、无法解析或不是数组时返回的列表

    Returns:
        日记列表
    """
    if not raw:
        return fallback
    try:
        parsed = json.loads(raw)
    except ValueError as e:
        logger.warning(f"本地日记数据解析失败: {e}")
        return fallback
    if not isinstance(parsed, list):
        logger.warning(f"本地日记数据不是列表: {type(parsed).__name__}")
        return fallback

    entries = []
    for item in parsed:
        if isinstance(item, dict) and Mood.parse(item.get("mood")) is None:
            item = {**item, "mood": DEFAULT_MOOD.value}
        try:
            entries.append(DiaryEntry.model_validate(item))
        except ModelValidationError as e:
            logger.warning(f"跳过无法解析的本地日记: {e.error_count()} 个字段错误")
    return entries


def is_local_id(entry_id: str) -> bool:
    return entry_id.startswith(LOCAL_ID_PREFIX)


def _remote_fields(entry: DiaryEntry) -> Dict[str, Any]:
    return {
        "mood": entry.mood.value, "title": entry.title,
        "content": entry.content, "imageUri": entry.image_uri,
    }


def _clean_text(value: Optional[str]) -> str:
    return (value or "").strip()


def _parse_mood(value: Any) -> Mood:
    if value is None or value == "":
        return DEFAULT_MOOD
    mood = Mood.parse(value)
    if mood is None:
        raise ValidationError(f"Unknown mood: {value}")
    return mood


class EntryRepository:
    """日记仓库"""

    def __init__(self, store: LocalStore, api_client: Optional[DiaryApiClient] = None,
                 mode: SyncMode = SyncMode.HYBRID):
        """
        初始化日记仓库

        Args:
            store: 本地键值存储
            api_client: 远程接口客户端，为空时只使用本地存储
            mode: 同步模式
        """
        self.store = store
        self.api_client = api_client
        self.mode = mode if api_client is not None else SyncMode.LOCAL
        self.session: Optional[Session] = None
        self.is_ready = False
        self._entries: List[DiaryEntry] = []

    # ===== 读取 =====

    @property
    def identity(self) -> Optional[str]:
        return self.session.identity if self.session else None

    @property
    def entries(self) -> List[DiaryEntry]:
        """未删除的日记，按插入顺序（最新添加的在前）"""
        return [entry for entry in self._entries if not entry.is_trashed]

    @property
    def trash_entries(self) -> List[DiaryEntry]:
        """回收站，最近删除的在前"""
        trashed = [entry for entry in self._entries if entry.is_trashed]
        return sorted(trashed, key=lambda e: e.trashed_at.timestamp(), reverse=True)

    def get_entry(self, entry_id: str) -> Optional[DiaryEntry]:
        return next((e for e in self.entries if e.id == entry_id), None)

    def _new_local_id(self, now: datetime) -> str:
        """按毫秒时间戳生成本地ID，同一毫秒内的多条日记依次顺延"""
        taken = {entry.id for entry in self._entries}
        millis = int(now.timestamp() * 1000)
        while f"{LOCAL_ID_PREFIX}{millis}" in taken:
            millis += 1
        return f"{LOCAL_ID_PREFIX}{millis}"

    def _find(self, entry_id: str, trashed: bool) -> Tuple[int, DiaryEntry]:
        for index, entry in enumerate(self._entries):
            if entry.id == entry_id and entry.is_trashed == trashed:
                return index, entry
        raise NotFound("Diary entry not found in trash" if trashed else "Diary entry not found")

    # ===== 远程同步 =====

    @property
    def _remote_active(self) -> bool:
        return (self.mode != SyncMode.LOCAL and self.session is not None
                and self.session.is_remote)

    def _check_auth(self) -> None:
        if self.mode == SyncMode.REMOTE and not self._remote_active:
            raise AuthRequired()

    async def _call_remote(self, method: str, *args: Any,
                           local_only: bool = False) -> Tuple[bool, Any]:
        """
        调用远程接口

        Args:
            method: DiaryApiClient 的方法名，令牌作为第一个参数自动传入
            args: 其余参数
            local_only: 条目还没有同步到服务器，只修改本地数据

        Returns:
            (是否已同步到远程, 接口返回值)；未启用远程或本地条目时为 (False, None)，
            混合模式下网络不可达、令牌失效或服务器错误时也为 (False, None)

        Raises:
            ValidationError, NotFound: 服务器拒绝了这次修改
            DiaryError: 仅远程模式下的其他请求失败
        """
        if not self._remote_active or local_only:
            return False, None
        operation = getattr(self.api_client, method)
        try:
            return True, await operation(self.session.token, *args)
        except (ValidationError, NotFound):
            raise
        except DiaryError as e:
            if self.mode == SyncMode.REMOTE:
                raise
            logger.warning(f"远程接口不可用，改用本地数据: {e.message}")
            return False, None

    async def _fetch_remote(self) -> Optional[List[DiaryEntry]]:
        """
        读取服务器上的日记和回收站

        Returns:
            两个列表合并后的条目；未启用远程，或混合模式下请求失败（网络、令牌过期、服务器错误）时为None

        Raises:
            DiaryError: 仅远程模式下请求失败
        """
        try:
            synced, entries = await self._call_remote("list_entries")
            if synced:
                synced, trash = await self._call_remote("list_trash")
        except DiaryError as e:
            if self.mode == SyncMode.REMOTE:
                raise
            logger.warning(f"远程日记加载失败，改用本地数据: {e.message}")
            return None
        return entries + trash if synced else None

    async def _push_local_only(self, pending: List[DiaryEntry]) -> None:
        """
        把离线时创建的条目补传到服务器并放到列表最前面

        上传失败的条目保留本地版本，下次加载时再次上传
        """
        for entry in reversed(pending):
            pushed = entry
            try:
                synced, created = await self._call_remote("create_entry", _remote_fields(entry))
                if synced:
                    pushed = created
                    if entry.is_trashed:
                        synced, trashed = await self._call_remote("delete_entry", created.id)
                        pushed = trashed if synced else created.model_copy(
                            update={"trashed_at": entry.trashed_at})
                    logger.info(f"离线日记已同步: {entry.id} -> {created.id}")
            except DiaryError as e:
                logger.warning(f"离线日记同步失败 {entry.id}: {e.message}")
            self._entries.insert(0, pushed)

    # ===== 本地持久化 =====

    def _read_local(self, identity: str, seed: bool = True) -> List[DiaryEntry]:
        """读取本地保存的两个列表；seed 为真且日记列表不存在时使用示例日记"""
        fallback = seed_entries_for(identity) if seed else []
        try:
            (_, raw_entries), (_, raw_trash) = self.store.multi_get(
                [entries_key_for(identity), trash_key_for(identity)]
            )
        except sqlite3.Error as e:
            logger.error(f"读取本地日记失败: {e}")
            return fallback

        entries = parse_stored_list(raw_entries, fallback)
        trash = parse_stored_list(raw_trash, [])
        return entries + [
            entry if entry.is_trashed else entry.model_copy(update={"trashed_at": utcnow()})
            for entry in trash
        ]

    def _persist(self) -> None:
        """把两个列表写入本地存储；远程模式或未登录时不写"""
        if self.mode == SyncMode.REMOTE or not self.identity:
            return
        try:
            self.store.multi_set([
                (entries_key_for(self.identity), self._dump(self.entries)),
                (trash_key_for(self.identity), self._dump(self.trash_entries)),
            ])
        except sqlite3.Error as e:
            logger.error(f"保存本地日记失败: {e}")

    def _dump(self, entries: List[DiaryEntry]) -> str:
        return json.dumps([entry.model_dump(mode="json", by_alias=True) for entry in entries])

    def migrate(self, from_identity: str, to_identity: str) -> None:
        """
        身份变化（修改邮箱）时把本地日记迁移到新身份下

        目标身份已有数据时保留目标数据，不覆盖
        """
        if not from_identity or not to_identity or from_identity == to_identity:
            return

        keys = [
            entries_key_for(from_identity), trash_key_for(from_identity),
            entries_key_for(to_identity), trash_key_for(to_identity),
        ]
        try:
            (_, from_entries), (_, from_trash), (_, to_entries), (_, to_trash) = self.store.multi_get(keys)

            updates = []
            keys_to_remove = []
            if from_entries and not to_entries:
                updates.append((keys[2], from_entries))
                keys_to_remove.append(keys[0])
            if from_trash and not to_trash:
                updates.append((keys[3], from_trash))
                keys_to_remove.append(keys[1])

            if updates:
                self.store.multi_set(updates)
            if keys_to_remove:
                self.store.multi_remove(keys_to_remove)
            logger.info(f"日记数据已迁移: {from_identity} -> {to_identity}")
        except sqlite3.Error as e:
            logger.error(f"迁移日记数据失败: {e}")

    # ===== 生命周期操作 =====

    async def load(self, session: Optional[Session]) -> List[DiaryEntry]:
        """
        加载会话的日记

        有令牌时先请求远程接口，混合模式下请求失败（网络不可达、令牌过期、服务器错误）
        回退到本地存储；本地也没有数据时为空列表（管理员身份使用示例日记）。
        远程加载成功时，离线期间创建、服务器上还没有的条目会补传上去。
        session 为空表示已退出登录，清空内存数据。

        Returns:
            未删除的日记

        Raises:
            AuthRequired: 远程模式下没有令牌
            DiaryError: 仅远程模式下请求失败
        """
        self.is_ready = False
        self.session = session
        self._entries = []

        if session is None:
            self.is_ready = True
            return []

        self._check_auth()
        remote = await self._fetch_remote()
        if remote is None:
            self._entries = self._read_local(session.identity)
        else:
            known = {entry.id for entry in remote}
            pending = [
                entry for entry in self._read_local(session.identity, seed=False)
                if is_local_id(entry.id) and entry.id not in known
            ]
            self._entries = remote
            await self._push_local_only(pending)
            self._persist()

        self.is_ready = True
        logger.info(f"日记加载完成: {len(self.entries)} 条, 回收站 {len(self.trash_entries)} 条")
        return self.entries

    async def add(self, title: str, content: str, mood: Any = None,
                  image_uri: Optional[str] = None, entry_id: Optional[str] = None,
                  created_at: Optional[datetime] = None) -> DiaryEntry:
        """
        新建日记并放在列表最前面

        标题和内容去除首尾空白后不能为空，心情缺省为 calm；
        未指定 id 和创建时间时自动生成

        Raises:
            ValidationError: 标题或内容为空，或心情不合法
            AuthRequired: 远程模式下没有令牌
        """
        title = _clean_text(title)
        content = _clean_text(content)
        if not title or not content:
            raise ValidationError("Title and content are required")
        parsed_mood = _parse_mood(mood)
        self._check_auth()

        now = utcnow()
        entry = DiaryEntry(
            id=entry_id or self._new_local_id(now),
            mood=parsed_mood,
            title=title,
            content=content,
            image_uri=image_uri,
            created_at=created_at or now,
        )
        synced, created = await self._call_remote("create_entry", _remote_fields(entry))
        if synced:
            entry = created

        self._entries.insert(0, entry)
        self._persist()
        logger.info(f"日记已添加: {entry.id}")
        return entry

    async def update(self, entry_id: str, **fields: Any) -> DiaryEntry:
        """
        合并字段到未删除的日记

        Args:
            entry_id: 日记ID
            fields: title / content / mood / image_uri

        Raises:
            NotFound: 日记不存在
            ValidationError: 标题或内容被清空，或心情不合法
        """
        self._check_auth()
        index, current = self._find(entry_id, trashed=False)

        changes = {}
        for key in ("title", "content"):
            if fields.get(key) is not None:
                changes[key] = _clean_text(fields[key])
                if not changes[key]:
                    raise ValidationError("Title and content are required")
        if fields.get("mood") is not None:
            changes["mood"] = _parse_mood(fields["mood"])
        if "image_uri" in fields:
            changes["image_uri"] = fields["image_uri"]

        payload = {
            ("imageUri" if key == "image_uri" else key): (value.value if isinstance(value, Mood) else value)
            for key, value in changes.items()
        }
        synced, entry = await self._call_remote(
            "update_entry", entry_id, payload, local_only=is_local_id(entry_id))
        if not synced:
            entry = current.model_copy(update=changes)

        self._entries[index] = entry
        self._persist()
        logger.info(f"日记已更新: {entry_id}")
        return entry

    async def soft_delete(self, entry_id: str) -> DiaryEntry:
        """
        移入回收站并记录删除时间

        Raises:
            AuthRequired: 远程模式下没有令牌
            NotFound: 日记不存在
        """
        self._check_auth()
        index, current = self._find(entry_id, trashed=False)

        synced, entry = await self._call_remote(
            "delete_entry", entry_id, local_only=is_local_id(entry_id))
        if not synced:
            entry = current.model_copy(update={"trashed_at": utcnow()})

        # 放到最前面，删除时间相同时回收站仍按删除先后排列
        del self._entries[index]
        self._entries.insert(0, entry)
        self._persist()
        logger.info(f"日记已移入回收站: {entry_id}")
        return entry

    async def recover(self, entry_id: str) -> DiaryEntry:
        """
        从回收站恢复

        本地恢复放到列表最前面；远程恢复按创建时间倒序插回原位置

        Raises:
            NotFound: 回收站中没有该日记
        """
        self._check_auth()
        index, current = self._find(entry_id, trashed=True)

        synced, entry = await self._call_remote(
            "restore_entry", entry_id, local_only=is_local_id(entry_id))
        if not synced:
            entry = current.model_copy(update={"trashed_at": None})

        del self._entries[index]
        if synced:
            position = next(
                (i for i, e in enumerate(self._entries)
                 if not e.is_trashed and e.created_at.timestamp() < entry.created_at.timestamp()),
                len(self._entries),
            )
            self._entries.insert(position, entry)
        else:
            self._entries.insert(0, entry)

        self._persist()
        logger.info(f"日记已恢复: {entry_id}")
        return entry

    async def permanently_delete(self, entry_id: str) -> None:
        """
        从回收站彻底删除，之后不能再恢复

        Raises:
            NotFound: 回收站中没有该日记
        """
        self._check_auth()
        index, _ = self._find(entry_id, trashed=True)

        await self._call_remote(
            "permanently_delete_entry", entry_id, local_only=is_local_id(entry_id))

        del self._entries[index]
        self._persist()
        logger.info(f"日记已彻底删除: {entry_id}")

    async def empty_trash(self) -> int:
        """
        清空回收站，远程会话会逐条彻底删除服务器上的记录

        Returns:
            删除的条数
        """
        self._check_auth()
        removed = set()
        try:
            for entry in self.trash_entries:
                try:
                    await self._call_remote(
                        "permanently_delete_entry", entry.id, local_only=is_local_id(entry.id))
                except NotFound:
                    logger.warning(f"服务器回收站中已不存在: {entry.id}")
                removed.add(entry.id)
        finally:
            self._entries = [e for e in self._entries if not (e.is_trashed and e.id in removed)]
            self._persist()

        logger.info(f"回收站已清空: {len(removed)} 条")
        return len(removed)
