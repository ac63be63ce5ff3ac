"""本地存储访问接口."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from feedsync.core.results import SyncData
from feedsync.models.account import Account
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item
from feedsync.models.sync import SyncStatus


class StoreGateway(ABC):
    """编排器使用的本地存储契约.

    所有写操作逐行提交；唯一约束冲突视为记录已存在。
    """

    # Feed

    @abstractmethod
    async def get_all_feeds(self, account_id: int | None = None) -> list[Feed]:
        ...

    @abstractmethod
    async def get_feed(self, feed_id: int) -> Feed | None:
        ...

    @abstractmethod
    async def get_feed_by_url(self, url: str) -> Feed | None:
        ...

    @abstractmethod
    async def feed_exists(self, url: str) -> bool:
        ...

    @abstractmethod
    async def insert_feed(self, feed: Feed) -> int | None:
        """插入 Feed，URL 已存在时返回 None."""
        ...

    @abstractmethod
    async def update_feed(self, feed: Feed) -> None:
        ...

    @abstractmethod
    async def update_feed_headers(
        self, etag: str | None, last_modified: str | None, feed_id: int
    ) -> None:
        ...

    @abstractmethod
    async def delete_feed(self, feed_id: int) -> None:
        ...

    # Item

    @abstractmethod
    async def guid_exists(self, guid: str) -> bool:
        ...

    @abstractmethod
    async def insert_item(self, item: Item) -> bool:
        """插入文章，GUID 已存在时返回 False."""
        ...

    @abstractmethod
    async def get_items(self, item_ids: Sequence[int]) -> list[Item]:
        ...

    @abstractmethod
    async def update_item(self, item: Item) -> None:
        ...

    # Folder

    @abstractmethod
    async def insert_folder(self, folder: Folder) -> int | None:
        """插入文件夹，同名已存在时返回 None."""
        ...

    @abstractmethod
    async def get_folder(self, folder_id: int) -> Folder | None:
        ...

    @abstractmethod
    async def get_folder_by_remote_id(
        self, account_id: int, remote_id: str
    ) -> Folder | None:
        ...

    @abstractmethod
    async def get_folder_by_name(self, account_id: int, name: str) -> Folder | None:
        ...

    @abstractmethod
    async def update_folder(self, folder: Folder) -> None:
        ...

    @abstractmethod
    async def delete_folder(self, folder_id: int) -> None:
        """删除文件夹，其中的 Feed 变为无文件夹."""
        ...

    @abstractmethod
    async def list_folders(self, account_id: int | None = None) -> list[Folder]:
        """按名称排序."""
        ...

    # 同步状态

    @abstractmethod
    async def build_sync_data(self, account: Account) -> SyncData:
        ...

    @abstractmethod
    async def clear_state_changes(
        self, account_id: int, sync_data: SyncData, starred: bool = True
    ) -> None:
        """清除 sync_data 中已上传文章的变更标记."""
        ...

    @abstractmethod
    async def update_account(self, account: Account) -> None:
        ...

    @abstractmethod
    async def add_sync_status(self, status: SyncStatus) -> SyncStatus:
        ...

    @abstractmethod
    async def update_sync_status(self, status: SyncStatus) -> None:
        ...
