"""
日历与统计服务
按日分组、连续写日记天数（streak）、字数统计和首页月历，全部为纯函数
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ediary.models.diary import Mood
from ediary.models.stats import CalendarDay, DiaryStats, MoodMeta


MOOD_META: Dict[Mood, MoodMeta] = {
    Mood.HAPPY: MoodMeta(label="Happy", color="#F3C95C", icon="emoticon-happy-outline"),
    Mood.SAD: MoodMeta(label="Sad", color="#79A7F3", icon="emoticon-sad-outline"),
    Mood.ANGRY: MoodMeta(label="Angry", color="#F37A74", icon="emoticon-angry-outline"),
    Mood.CALM: MoodMeta(label="Calm", color="#68C290", icon="emoticon-neutral-outline"),
    Mood.LOVE: MoodMeta(label="In Love", color="#E39BCB", icon="heart-outline"),
}

FALLBACK_META = MoodMeta(label="Memory", color="#FFA36C", icon="emoticon-outline")

# 月历固定显示6周
CALENDAR_CELLS = 42


def local_date(value: datetime, tz: Optional[tzinfo] = None) -> date:
    """
    取日期的本地日历日

    带时区的时间先转换到本地时区（或指定时区），不带时区的视为本地时间，
    避免按UTC取日期导致跨零点的日记被算到前一天/后一天
    """
    if value.tzinfo is not None:
        value = value.astimezone(tz)
    return value.date()


def date_key(day: date) -> str:
    """日期键 YYYY-MM-DD"""
    return day.strftime("%Y-%m-%d")


def group_entries_by_day(entries: Iterable[Any], tz: Optional[tzinfo] = None) -> Dict[str, List[Any]]:
    """
    按本地日历日分组

    Args:
        entries: 带 created_at 属性的日记列表
        tz: 计算日期使用的时区，默认本机时区

    Returns:
        {日期键: 当天的日记列表}
    """
    grouped: Dict[str, List[Any]] = {}
    for entry in entries:
        key = date_key(local_date(entry.created_at, tz))
        grouped.setdefault(key, []).append(entry)
    return grouped


def entries_on(entries: Iterable[Any], day: date, tz: Optional[tzinfo] = None) -> List[Any]:
    """获取某一天的日记"""
    return group_entries_by_day(entries, tz).get(date_key(day), [])


def sort_recent(entries: Iterable[Any], limit: Optional[int] = None) -> List[Any]:
    """按创建时间倒序，可选截取前 limit 条"""
    ordered = sorted(entries, key=lambda e: e.created_at.timestamp(), reverse=True)
    return ordered if limit is None else ordered[:limit]


def compute_streaks(entries: Iterable[Any], today: Optional[date] = None,
                    tz: Optional[tzinfo] = None) -> Tuple[int, int]:
    """
    计算当前连续天数和最长连续天数

    同一天的多条日记只算一天；相邻日期相差一天则累加，否则重新从1开始。
    最近一次写日记的日期不是今天或昨天时，当前连续天数为0。

    Returns:
        (current_streak, longest_streak)
    """
    days = sorted({local_date(entry.created_at, tz) for entry in entries})
    if not days:
        return 0, 0

    longest = 1
    run = 1
    for previous, current in zip(days, days[1:]):
        if current - previous == timedelta(days=1):
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    today = today or date.today()
    if days[-1] not in (today, today - timedelta(days=1)):
        return 0, longest
    # 循环结束时 run 即以最近一天结尾的连续天数
    return run, longest


def count_words(entry: Any) -> int:
    """标题 + 内容按空白切分后的非空词数"""
    text = f"{entry.title or ''} {entry.content or ''}"
    return len(text.split())


def total_words(entries: Iterable[Any]) -> int:
    return sum(count_words(entry) for entry in entries)


def build_stats(entries: Iterable[Any], today: Optional[date] = None,
                tz: Optional[tzinfo] = None) -> DiaryStats:
    """
    生成个人资料页统计

    Args:
        entries: 未删除的日记
        today: 计算当前连续天数的基准日期，默认今天
        tz: 计算日期使用的时区

    Returns:
        统计数据
    """
    entries = list(entries)
    current, longest = compute_streaks(entries, today, tz)
    return DiaryStats(
        total_entries=len(entries),
        current_streak=current,
        longest_streak=longest,
        total_words=total_words(entries),
    )


def month_grid(year: int, month: int, entries: Iterable[Any] = (),
               selected: Optional[date] = None, today: Optional[date] = None,
               tz: Optional[tzinfo] = None) -> List[CalendarDay]:
    """
    生成首页月历的42个格子（6周，周日开始）

    Args:
        year: 年
        month: 月
        entries: 用于标记有日记的日期
        selected: 当前选中的日期
        today: 今天，默认本机日期

    Returns:
        格子列表
    """
    today = today or date.today()
    grouped = group_entries_by_day(entries, tz)

    start_of_month = date(year, month, 1)
    # weekday(): 周一为0，换算成周日为0
    first_day_index = (start_of_month.weekday() + 1) % 7
    grid_start = start_of_month - timedelta(days=first_day_index)

    cells = []
    for index in range(CALENDAR_CELLS):
        day = grid_start + timedelta(days=index)
        cells.append(CalendarDay(
            day=day,
            is_current_month=day.month == month,
            is_today=day == today,
            is_selected=selected is not None and day == selected,
            has_entries=bool(grouped.get(date_key(day))),
        ))
    return cells


def mood_meta(mood: Any) -> MoodMeta:
    """心情的展示信息，无法识别的心情使用 Memory 兜底"""
    parsed = Mood.parse(mood)
    if parsed is None:
        return FALLBACK_META
    return MOOD_META[parsed]


def greeting_name(user: Any) -> str:
    """首页问候语中的称呼"""
    if user is None:
        return "there"

    username = (user.username or "").strip()
    if username:
        return username

    parts = [(user.first_name or "").strip(), (user.last_name or "").strip()]
    full_name = " ".join(part for part in parts if part)
    if full_name:
        return full_name

    if user.email:
        local_part = user.email.split("@")[0]
        return local_part or "there"

    return "there"
