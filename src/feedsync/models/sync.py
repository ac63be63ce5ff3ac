"""SyncStatus 同步状态模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from feedsync.utils.dates import utcnow


class SyncStatus(SQLModel, table=True):
    """同步轮次状态."""

    __tablename__ = "sync_status"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="accounts.id", index=True)
    sync_type: str = Field(description="同步类型: initial|classic|local")
    status: str = Field(description="状态: running|success|partial|failed")
    items_inserted: int = Field(default=0, description="新增文章数")
    feeds_failed: int = Field(default=0, description="失败的 Feed 数")
    error_message: str | None = Field(default=None, description="错误信息")
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = Field(default=None)
