"""同步适配器抽象基类."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from types import TracebackType
from typing import Any, ClassVar, Self, TypeVar

import httpx

from feedsync.core.errors import ParseError
from feedsync.core.results import StateKind, SyncData, SyncResult, SyncStage, SyncType
from feedsync.models.account import Account
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item

StageCallback = Callable[[SyncStage], None]
T = TypeVar("T")


def ignore_stage(stage: SyncStage) -> None:
    return None


def parse_rows(
    rows: Iterable[Any], parse: Callable[[Any], T], what: str
) -> list[T]:
    """逐行解析远端 JSON 数据，字段缺失或类型不符时抛出 ParseError."""
    try:
        return [parse(row) for row in rows]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        msg = f"无法解析{what}: {e!r}"
        raise ParseError(msg) from e


class SyncAdapter(ABC):
    """远端同步适配器.

    每个后端一个实现，由账户配置选择。所有操作失败时抛出 SyncError 子类，
    由编排器转换为结果值。
    """

    supports_star_sync: ClassVar[bool] = True

    def __init__(self, account: Account, client: httpx.AsyncClient) -> None:
        self.account = account
        self._client = client

    async def close(self) -> None:
        """关闭连接池."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @abstractmethod
    async def login(self) -> None:
        """认证，失败时抛出 AuthenticationError / NetworkError."""
        ...

    @abstractmethod
    async def fetch_folders(self) -> list[Folder]:
        ...

    @abstractmethod
    async def fetch_feeds(self) -> list[Feed]:
        ...

    @abstractmethod
    async def fetch_items(
        self,
        exclude: str | None = None,
        max_count: int | None = None,
        since: int | None = None,
    ) -> list[Item]:
        ...

    @abstractmethod
    async def push_item_state(
        self, ids: Sequence[str], kind: StateKind, on: bool
    ) -> None:
        """上传一批文章的状态（on=True 标记，False 取消）."""
        ...

    @abstractmethod
    async def create_feed(self, url: str, folder: Folder | None = None) -> Feed:
        """订阅 Feed，返回待入库的 Feed 记录（远端账户带远端 ID）."""
        ...

    @abstractmethod
    async def delete_feed(self, feed: Feed) -> None:
        ...

    @abstractmethod
    async def update_feed(
        self, feed: Feed, name: str, folder: Folder | None = None
    ) -> None:
        ...

    @abstractmethod
    async def create_folder(self, name: str) -> str | None:
        """创建文件夹，返回远端 ID."""
        ...

    @abstractmethod
    async def rename_folder(self, folder: Folder, name: str) -> str | None:
        """重命名文件夹，返回新的远端 ID."""
        ...

    @abstractmethod
    async def delete_folder(self, folder: Folder) -> None:
        ...

    @abstractmethod
    async def sync(
        self,
        sync_type: SyncType,
        sync_data: SyncData,
        on_stage: StageCallback = ignore_stage,
    ) -> SyncResult:
        """执行一轮同步，返回拉取到的数据和逐 Feed 结果."""
        ...
