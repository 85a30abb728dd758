"""
本地存储
客户端的命名空间键值存储，值为JSON字符串，保存在单独的SQLite文件中
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ediary.utils.config import settings
from ediary.utils.logger import get_logger

logger = get_logger(__name__)

USERS_KEY = "@ediary/users"
ACTIVE_USER_KEY = "@ediary/activeUser"


def entries_key_for(identity: str) -> str:
    return f"@ediary/entries/{identity}"


def trash_key_for(identity: str) -> str:
    return f"@ediary/trash/{identity}"


class LocalStore:
    """键值存储"""

    def __init__(self, path: Optional[str] = None):
        """
        初始化本地存储

        Args:
            path: SQLite文件路径，默认使用配置中的路径
        """
        self.path = path or settings.local_store_path
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS kv_store (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )
        logger.info(f"本地存储初始化完成: {self.path}")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """打开连接，退出时提交并关闭；写入失败时回滚"""
        conn = sqlite3.connect(self.path)
        try:
            yield conn
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()

    def get_item(self, key: str) -> Optional[str]:
        with self.connection() as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
            return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        self.multi_set([(key, value)])

    def remove_item(self, key: str) -> None:
        self.multi_remove([key])

    def multi_get(self, keys: Iterable[str]) -> List[Tuple[str, Optional[str]]]:
        """
        批量读取

        Returns:
            与 keys 顺序一致的 (key, value) 列表，不存在的值为None
        """
        keys = list(keys)
        if not keys:
            return []
        placeholders = ", ".join("?" for _ in keys)
        with self.connection() as conn:
            rows = conn.execute(
                f"SELECT key, value FROM kv_store WHERE key IN ({placeholders})", keys
            ).fetchall()
        found: Dict[str, str] = dict(rows)
        return [(key, found.get(key)) for key in keys]

    def multi_set(self, pairs: Iterable[Tuple[str, str]]) -> None:
        """在同一个事务中写入多个键"""
        with self.connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)", list(pairs)
            )

    def multi_remove(self, keys: Iterable[str]) -> None:
        with self.connection() as conn:
            conn.executemany("DELETE FROM kv_store WHERE key = ?", [(key,) for key in keys])
