"""
日志管理模块
服务端和客户端共用 "ediary" 日志记录器，各模块通过 get_logger 取得子记录器
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from .config import settings

ROOT_LOGGER_NAME = "ediary"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    设置日志记录器：控制台 + 按大小轮转的日志文件

    Args:
        name: 日志记录器名称

    Returns:
        配置好的日志记录器
    """
    level = getattr(logging, settings.log_level.upper())

    log_path = Path(settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if settings.debug else level)
    logger.propagate = False

    # 重复调用时不叠加处理器
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if settings.debug else logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger


def get_logger(module_name: str) -> logging.Logger:
    """
    获取模块日志记录器

    Args:
        module_name: 模块名（通常传 __name__），不在 ediary 包下时挂到 ediary 记录器下面

    Returns:
        ediary 的子记录器，输出沿用全局记录器的处理器
    """
    if module_name == ROOT_LOGGER_NAME or module_name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(module_name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{module_name}")


# 创建全局日志记录器
logger = setup_logger()
