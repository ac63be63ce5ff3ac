"""日期解析工具."""

import time
from datetime import UTC, datetime


def utcnow() -> datetime:
    """当前 UTC 时间（naive，与数据库存储一致）."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """转换为 naive UTC 时间."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_iso8601(value: str) -> datetime:
    """解析 ISO 8601 日期（JSON Feed）.

    Raises:
        ValueError: 无法解析
    """
    return to_naive_utc(datetime.fromisoformat(value.strip()))


def from_struct_time(value: time.struct_time) -> datetime:
    """feedparser 的 *_parsed 字段（已是 UTC）转 naive UTC."""
    return datetime(*value[:6])


def from_timestamp(value: int | float) -> datetime:
    """Unix 时间戳转 naive UTC."""
    return datetime.fromtimestamp(value, UTC).replace(tzinfo=None)
