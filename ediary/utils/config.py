"""
配置管理模块
管理应用的所有配置信息，包括服务器配置、数据库配置、认证配置和客户端同步配置等
"""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """应用配置类"""

    # 服务器配置
    host: str = "0.0.0.0"
    port: int = 3000

    # 数据库配置
    database_url: str = "sqlite:///./ediary.db"

    # 认证配置
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_days: int = 15

    # 客户端配置（本地存储 + 远程同步）
    local_store_path: str = "./ediary_local.db"
    api_base_url: str = "http://localhost:3000/api"
    api_timeout: float = 10.0
    sync_mode: str = "hybrid"

    # 日志配置
    log_level: str = "INFO"
    log_file: str = "logs/app.log"
    log_max_bytes: int = 5 * 1024 * 1024
    log_backup_count: int = 3

    # 应用配置
    app_name: str = "E-Diary"
    app_version: str = "1.0.0"
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """
    获取配置实例（单例模式）
    使用lru_cache确保只创建一个配置实例
    """
    return Settings()


# 导出配置实例
settings = get_settings()
