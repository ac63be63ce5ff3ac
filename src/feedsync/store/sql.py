"""基于 SQLModel 异步会话的本地存储."""

import logging
from collections.abc import Sequence

from sqlalchemy import delete, or_, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from feedsync.core.results import SyncData
from feedsync.models.account import Account
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item
from feedsync.models.sync import SyncStatus
from feedsync.store.base import StoreGateway
from feedsync.utils.dates import utcnow

logger = logging.getLogger(__name__)


class SQLStore(StoreGateway):
    """SQLite 存储实现.

    插入使用 ON CONFLICT DO NOTHING，由唯一约束处理并发轮次之间的冲突写入。
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Feed

    async def get_all_feeds(self, account_id: int | None = None) -> list[Feed]:
        stmt = select(Feed).order_by(Feed.id)
        if account_id is not None:
            stmt = stmt.where(Feed.account_id == account_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_feed(self, feed_id: int) -> Feed | None:
        return await self.session.get(Feed, feed_id)

    async def get_feed_by_url(self, url: str) -> Feed | None:
        result = await self.session.execute(select(Feed).where(Feed.url == url))
        return result.scalar_one_or_none()

    async def feed_exists(self, url: str) -> bool:
        return await self.get_feed_by_url(url) is not None

    async def insert_feed(self, feed: Feed) -> int | None:
        stmt = (
            sqlite_insert(Feed.__table__)
            .values(**feed.model_dump(exclude={"id"}))
            .on_conflict_do_nothing(index_elements=["url"])
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        if not result.rowcount:
            return None
        feed.id = result.inserted_primary_key[0]
        return feed.id

    async def update_feed(self, feed: Feed) -> None:
        feed.updated_at = utcnow()
        await self.session.merge(feed)
        await self.session.commit()

    async def update_feed_headers(
        self, etag: str | None, last_modified: str | None, feed_id: int
    ) -> None:
        await self.session.execute(
            update(Feed)
            .where(Feed.id == feed_id)
            .values(etag=etag, last_modified=last_modified)
        )
        await self.session.commit()

    async def delete_feed(self, feed_id: int) -> None:
        await self.session.execute(delete(Item).where(Item.feed_id == feed_id))
        await self.session.execute(delete(Feed).where(Feed.id == feed_id))
        await self.session.commit()

    # Item

    async def guid_exists(self, guid: str) -> bool:
        result = await self.session.execute(select(Item.id).where(Item.guid == guid))
        return result.first() is not None

    async def insert_item(self, item: Item) -> bool:
        if item.fetched_at is None:
            item.fetched_at = utcnow()
        stmt = (
            sqlite_insert(Item.__table__)
            .values(**item.model_dump(exclude={"id"}))
            .on_conflict_do_nothing(index_elements=["guid"])
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        if not result.rowcount:
            return False
        item.id = result.inserted_primary_key[0]
        return True

    async def get_items(self, item_ids: Sequence[int]) -> list[Item]:
        if not item_ids:
            return []
        result = await self.session.execute(select(Item).where(Item.id.in_(item_ids)))
        return list(result.scalars().all())

    async def update_item(self, item: Item) -> None:
        await self.session.merge(item)
        await self.session.commit()

    # Folder

    async def insert_folder(self, folder: Folder) -> int | None:
        stmt = (
            sqlite_insert(Folder.__table__)
            .values(**folder.model_dump(exclude={"id"}))
            .on_conflict_do_nothing(index_elements=["account_id", "name"])
        )
        result = await self.session.execute(stmt)
        await self.session.commit()

        if not result.rowcount:
            return None
        folder.id = result.inserted_primary_key[0]
        return folder.id

    async def get_folder(self, folder_id: int) -> Folder | None:
        return await self.session.get(Folder, folder_id)

    async def get_folder_by_remote_id(
        self, account_id: int, remote_id: str
    ) -> Folder | None:
        result = await self.session.execute(
            select(Folder).where(
                Folder.account_id == account_id, Folder.remote_id == remote_id
            )
        )
        return result.scalars().first()

    async def get_folder_by_name(self, account_id: int, name: str) -> Folder | None:
        result = await self.session.execute(
            select(Folder).where(Folder.account_id == account_id, Folder.name == name)
        )
        return result.scalar_one_or_none()

    async def update_folder(self, folder: Folder) -> None:
        await self.session.merge(folder)
        await self.session.commit()

    async def delete_folder(self, folder_id: int) -> None:
        # Feed 不随文件夹删除
        await self.session.execute(
            update(Feed).where(Feed.folder_id == folder_id).values(folder_id=None)
        )
        await self.session.execute(delete(Folder).where(Folder.id == folder_id))
        await self.session.commit()

    async def list_folders(self, account_id: int | None = None) -> list[Folder]:
        stmt = select(Folder).order_by(Folder.name.asc())
        if account_id is not None:
            stmt = stmt.where(Folder.account_id == account_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # 同步状态

    async def _changed_items(self, account_id: int) -> list[Item]:
        stmt = (
            select(Item)
            .join(Feed, Item.feed_id == Feed.id)
            .where(
                Feed.account_id == account_id,
                Item.remote_id.is_not(None),
                or_(Item.read_changed, Item.starred_changed),
            )
            .order_by(Item.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def build_sync_data(self, account: Account) -> SyncData:
        read_ids: list[str] = []
        unread_ids: list[str] = []
        starred_ids: list[str] = []
        unstarred_ids: list[str] = []

        for item in await self._changed_items(account.id):
            if item.read_changed:
                (read_ids if item.read else unread_ids).append(item.remote_id)
            if item.starred_changed:
                (starred_ids if item.starred else unstarred_ids).append(item.remote_id)

        return SyncData(
            read_ids=tuple(read_ids),
            unread_ids=tuple(unread_ids),
            starred_ids=tuple(starred_ids),
            unstarred_ids=tuple(unstarred_ids),
            last_modified=account.last_modified,
        )

    async def clear_state_changes(
        self, account_id: int, sync_data: SyncData, starred: bool = True
    ) -> None:
        """清除已上传文章的变更标记.

        只处理 sync_data 中的文章，且当前状态必须与上传的状态一致；
        上传之后又被修改的文章保留标记，留到下一轮上传。
        """
        feed_ids = select(Feed.id).where(Feed.account_id == account_id)
        buckets = [
            (Item.read_changed, Item.read, True, sync_data.read_ids),
            (Item.read_changed, Item.read, False, sync_data.unread_ids),
        ]
        if starred:
            buckets += [
                (Item.starred_changed, Item.starred, True, sync_data.starred_ids),
                (Item.starred_changed, Item.starred, False, sync_data.unstarred_ids),
            ]

        for flag, state, value, remote_ids in buckets:
            if not remote_ids:
                continue
            await self.session.execute(
                update(Item)
                .where(
                    Item.feed_id.in_(feed_ids),
                    Item.remote_id.in_(remote_ids),
                    flag,
                    state == value,
                )
                .values({flag: False})
            )
        await self.session.commit()

    async def update_account(self, account: Account) -> None:
        await self.session.merge(account)
        await self.session.commit()

    async def add_sync_status(self, status: SyncStatus) -> SyncStatus:
        self.session.add(status)
        await self.session.commit()
        await self.session.refresh(status)
        return status

    async def update_sync_status(self, status: SyncStatus) -> None:
        await self.session.merge(status)
        await self.session.commit()
