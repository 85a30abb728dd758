"""
数据库管理模块
服务端SQLite数据库：建表、连接管理和基础查询
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterator
from .config import settings
from .logger import logger

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        username TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        first_name TEXT DEFAULT '',
        last_name TEXT DEFAULT '',
        phone TEXT,
        profile_image TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT
    )
    """,
    # deleted_at 不为空表示在回收站中
    """
    CREATE TABLE IF NOT EXISTS diaries (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        mood TEXT NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        image_uri TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        deleted_at TEXT,
        FOREIGN KEY (user_id) REFERENCES users(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_diaries_user ON diaries(user_id, deleted_at)",
)


def parse_sqlite_url(url: str) -> str:
    """sqlite:///path 形式的连接URL转换为文件路径，其他值原样返回"""
    prefix = "sqlite:///"
    return url[len(prefix):] if url.startswith(prefix) else url


class Database:
    """数据库管理类"""

    def __init__(self, db_url: Optional[str] = None):
        """
        初始化数据库

        Args:
            db_url: 数据库连接URL，默认使用配置中的URL
        """
        self.db_url = db_url or settings.database_url
        self.db_path = parse_sqlite_url(self.db_url)
        self._init_db()

    def _init_db(self):
        """创建数据库文件和表结构"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        with self.connection() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
        logger.info(f"数据库初始化完成: {self.db_path}")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """
        打开一个连接，正常退出时提交，出错时回滚，最后关闭连接

        Yields:
            行可以按列名访问的连接
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"数据库操作失败: {e}")
            raise
        finally:
            conn.close()

    def execute(self, query: str, params: tuple = ()) -> int:
        """
        执行写操作

        Returns:
            影响的行数
        """
        with self.connection() as conn:
            return conn.execute(query, params).rowcount

    def fetch_one(self, query: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        """查询单条记录，没有时返回None"""
        with self.connection() as conn:
            row = conn.execute(query, params).fetchone()
        return dict(row) if row else None

    def fetch_all(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(row) for row in rows]


# 创建全局数据库实例
db = Database()
