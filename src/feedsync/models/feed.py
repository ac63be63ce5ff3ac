"""Feed 订阅源模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from feedsync.utils.dates import utcnow


class Feed(SQLModel, table=True):
    """RSS 订阅源."""

    __tablename__ = "feeds"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    account_id: int | None = Field(
        default=None, foreign_key="accounts.id", index=True
    )
    name: str = Field(description="Feed 标题")
    url: str = Field(unique=True, description="Feed URL")
    site_url: str | None = Field(default=None, description="网站 URL")
    description: str | None = Field(default=None, description="Feed 描述")
    folder_id: int | None = Field(
        default=None,
        foreign_key="folders.id",
        ondelete="SET NULL",
        description="所属文件夹",
    )
    remote_id: str | None = Field(default=None, description="远端 Feed ID")
    remote_folder_id: str | None = Field(
        default=None, description="远端文件夹 ID（合并时解析为 folder_id）"
    )
    etag: str | None = Field(default=None, description="ETag 缓存校验值")
    last_modified: str | None = Field(
        default=None, description="Last-Modified 缓存校验值"
    )
    icon_url: str | None = Field(default=None, description="图标 URL")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
