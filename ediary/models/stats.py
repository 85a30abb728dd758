"""
统计数据模型
首页日历和个人资料页统计卡片使用的数据结构
"""

from datetime import date
from pydantic import BaseModel

from .diary import CamelModel


class DiaryStats(CamelModel):
    """个人资料页的统计数据"""
    total_entries: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    total_words: int = 0


class CalendarDay(BaseModel):
    """月历中的一个格子"""
    day: date
    is_current_month: bool
    is_today: bool
    is_selected: bool
    has_entries: bool


class MoodMeta(BaseModel):
    """心情的展示信息"""
    label: str
    color: str
    icon: str
