"""Account 账户模型."""

from datetime import datetime
from enum import Enum

from sqlmodel import Field, SQLModel

from feedsync.utils.dates import utcnow


class AccountType(str, Enum):
    """账户类型."""

    LOCAL = "local"
    FRESHRSS = "freshrss"
    NEXTCLOUD = "nextcloud"


class Account(SQLModel, table=True):
    """同步账户."""

    __tablename__ = "accounts"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(description="账户名称")
    account_type: AccountType = Field(
        default=AccountType.LOCAL, description="账户类型: local|freshrss|nextcloud"
    )
    url: str | None = Field(default=None, description="服务端地址")
    login: str | None = Field(default=None, description="用户名")
    password: str | None = Field(default=None, description="密码或 API 密码")
    last_modified: int | None = Field(
        default=None, description="上次成功同步的时间戳（秒）"
    )
    is_initialized: bool = Field(default=False, description="是否已完成首次同步")
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_local(self) -> bool:
        return self.account_type == AccountType.LOCAL
