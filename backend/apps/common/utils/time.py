"""
时间工具：统一使用感知时区的 UTC 时间

业务层每个逻辑操作只取一次 now()，再显式传给阶段计算与写入，避免同一请求内前后不一致
"""

from __future__ import annotations

import datetime

from django.utils import timezone


def now() -> datetime.datetime:
    """返回当前 UTC 时间（感知时区）"""
    return timezone.now()


def to_timestamp(dt: datetime.datetime) -> int:
    """将 datetime 转为秒级时间戳，缺省时区则补齐 UTC"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return int(dt.timestamp())
