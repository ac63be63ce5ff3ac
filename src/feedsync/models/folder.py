"""Folder 文件夹模型."""

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Folder(SQLModel, table=True):
    """订阅源分组."""

    __tablename__ = "folders"  # type: ignore[assignment]
    __table_args__ = (UniqueConstraint("account_id", "name"),)

    id: int | None = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="accounts.id", index=True)
    name: str = Field(description="文件夹名称")
    remote_id: str | None = Field(default=None, description="远端文件夹 ID")
