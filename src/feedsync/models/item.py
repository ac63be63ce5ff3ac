"""Item 文章模型."""

from datetime import datetime

from sqlmodel import Field, SQLModel


class Item(SQLModel, table=True):
    """订阅源中的一篇文章."""

    __tablename__ = "items"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    feed_id: int | None = Field(
        default=None, foreign_key="feeds.id", index=True, description="关联 Feed"
    )
    guid: str = Field(unique=True, description="全局唯一标识")
    remote_id: str | None = Field(default=None, description="远端文章 ID")
    remote_feed_id: str | None = Field(default=None, description="远端 Feed ID")
    title: str = Field(default="", description="标题")
    link: str | None = Field(default=None, description="原文链接")
    author: str | None = Field(default=None, description="作者")
    content: str | None = Field(default=None, description="HTML 内容")
    description: str | None = Field(default=None, description="HTML 摘要")
    clean_description: str | None = Field(default=None, description="纯文本摘要")
    image_link: str | None = Field(default=None, description="封面图")
    read_time: int | None = Field(default=None, ge=0, description="阅读时间（分钟）")
    pub_date: datetime | None = Field(default=None, description="发布时间")
    read: bool = Field(default=False, description="是否已读")
    starred: bool = Field(default=False, description="是否收藏")
    read_changed: bool = Field(default=False, description="已读状态待上传")
    starred_changed: bool = Field(default=False, description="收藏状态待上传")
    fetched_at: datetime | None = Field(default=None, description="入库时间，由存储写入")
