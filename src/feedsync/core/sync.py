"""同步服务 - 编排一次同步轮次."""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import UTC, datetime

import httpx

from feedsync.adapters.base import SyncAdapter
from feedsync.core.content import ContentProcessor
from feedsync.core.errors import (
    ConflictError,
    NotFoundError,
    SyncError,
    classify_exception,
)
from feedsync.core.favicon import FaviconResolver
from feedsync.core.results import (
    FeedInsertionResult,
    OperationResult,
    SyncData,
    SyncReport,
    SyncStage,
    SyncType,
)
from feedsync.models.account import Account
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item
from feedsync.models.sync import SyncStatus
from feedsync.store.base import StoreGateway
from feedsync.utils.dates import utcnow

logger = logging.getLogger(__name__)

# 添加订阅时可能出现的错误，其余异常视为程序错误向上抛出
FEED_ERRORS = (SyncError, httpx.HTTPError, OSError, ValueError)


def _publish_order(item: Item) -> tuple[bool, datetime]:
    """按发布时间从旧到新，无发布时间的排在最前."""
    return (item.pub_date is not None, item.pub_date or datetime.min)


class SyncService:
    """同步服务.

    一个实例对应一个账户的一次会话：持有该账户的适配器和存储。
    """

    def __init__(
        self,
        adapter: SyncAdapter,
        store: StoreGateway,
        account: Account,
        processor: ContentProcessor | None = None,
        favicon_resolver: FaviconResolver | None = None,
    ) -> None:
        self.adapter = adapter
        self.store = store
        self.account = account
        self.processor = processor or ContentProcessor()
        self.favicon_resolver = favicon_resolver
        self.stage = SyncStage.START
        self._icon_tasks: dict[int, asyncio.Task[str | None]] = {}

    def _enter(self, stage: SyncStage) -> None:
        self.stage = stage
        logger.info(f"[账户 {self.account.id}] 同步阶段: {stage.value}")

    def _sync_type(self) -> SyncType:
        if self.account.is_local:
            return SyncType.LOCAL
        if self.account.is_initialized:
            return SyncType.CLASSIC
        return SyncType.INITIAL

    # 同步轮次

    async def sync(self, feed_ids: Sequence[int] | None = None) -> SyncReport:
        """执行一次同步，返回逐 Feed 的结果报告.

        登录或传输层失败时中止并向上抛出；单个 Feed 的错误记录在报告中。
        feed_ids 只限定本地账户要抓取的 Feed。
        """
        sync_type = self._sync_type()
        self.stage = SyncStage.START
        status = await self.store.add_sync_status(
            SyncStatus(
                account_id=self.account.id,
                sync_type=sync_type.value,
                status="running",
            )
        )

        try:
            report = await self._run_round(sync_type, feed_ids)
            await self.drain()
        except Exception as e:
            status.status = "failed"
            status.error_message = e.message if isinstance(e, SyncError) else str(e)
            status.completed_at = utcnow()
            await self.store.update_sync_status(status)
            message = (
                f"[账户 {self.account.id}] 同步在 {self.stage.value} 阶段失败: "
                f"{status.error_message}"
            )
            if isinstance(e, SyncError):
                logger.error(message)
            else:
                logger.exception(message)
            raise
        finally:
            await self.close()

        failed = report.result.failed_feeds
        status.status = "partial" if report.partial else "success"
        status.items_inserted = report.items_inserted
        status.feeds_failed = len(failed)
        if failed:
            status.error_message = "; ".join(
                f"{r.url}: {r.error.value if r.error else ''}" for r in failed
            )
        status.completed_at = utcnow()
        await self.store.update_sync_status(status)

        logger.info(
            f"[账户 {self.account.id}] 同步完成: 状态={status.status}, "
            f"新增文章={report.items_inserted}, 失败 Feed={len(failed)}"
        )
        return report

    async def _build_sync_data(self, feed_ids: Sequence[int] | None) -> SyncData:
        feeds = await self.store.get_all_feeds(self.account.id)
        if feed_ids:
            wanted = set(feed_ids)
            feeds = [feed for feed in feeds if feed.id in wanted]

        sync_data = await self.store.build_sync_data(self.account)
        if not sync_data.has_changes:
            logger.debug(f"[账户 {self.account.id}] 无待上传的状态变更")
        return replace(sync_data, feeds=tuple(feeds))

    async def _run_round(
        self, sync_type: SyncType, feed_ids: Sequence[int] | None
    ) -> SyncReport:
        started_at = int(datetime.now(UTC).timestamp())

        await self.adapter.login()

        sync_data = await self._build_sync_data(feed_ids)
        result = await self.adapter.sync(sync_type, sync_data, on_stage=self._enter)

        self._enter(SyncStage.MERGE_AND_PERSIST)
        folders_inserted = await self._merge_folders(result.folders)
        feeds_inserted = await self._merge_feeds(result.feeds)
        items_inserted = await self._merge_items(result.items)
        # 文章入库之后再保存校验值，中途失败时下一轮会重新抓取
        for validators in result.validators:
            await self.store.update_feed_headers(
                validators.etag, validators.last_modified, validators.feed_id
            )

        if not result.is_error:
            await self._clear_pushed_state(sync_data)
            self.account.last_modified = started_at
            self.account.is_initialized = True
            await self.store.update_account(self.account)

        self._enter(SyncStage.DONE)
        return SyncReport(
            account_id=self.account.id,
            sync_type=sync_type.value,
            stage=self.stage,
            result=result,
            folders_inserted=folders_inserted,
            feeds_inserted=feeds_inserted,
            items_inserted=items_inserted,
        )

    async def _clear_pushed_state(self, sync_data: SyncData) -> None:
        if not sync_data.has_changes:
            return
        await self.store.clear_state_changes(
            self.account.id,
            sync_data,
            starred=self.adapter.supports_star_sync,
        )

    # 合并

    async def _merge_folders(self, folders: Iterable[Folder]) -> int:
        inserted = 0
        for folder in folders:
            existing = None
            if folder.remote_id:
                existing = await self.store.get_folder_by_remote_id(
                    self.account.id, folder.remote_id
                )
            if existing is None:
                existing = await self.store.get_folder_by_name(
                    self.account.id, folder.name
                )

            if existing is not None:
                if (existing.name, existing.remote_id) != (folder.name, folder.remote_id):
                    existing.name = folder.name
                    existing.remote_id = folder.remote_id
                    await self.store.update_folder(existing)
                continue

            folder.account_id = self.account.id
            if await self.store.insert_folder(folder) is not None:
                inserted += 1
        return inserted

    async def _resolve_folder_id(self, remote_folder_id: str | None) -> int | None:
        if not remote_folder_id:
            return None
        folder = await self.store.get_folder_by_remote_id(
            self.account.id, remote_folder_id
        )
        return folder.id if folder else None

    async def _merge_feeds(self, feeds: Iterable[Feed]) -> int:
        inserted = 0
        for feed in feeds:
            folder_id = await self._resolve_folder_id(feed.remote_folder_id)
            existing = await self.store.get_feed_by_url(feed.url)

            if existing is not None:
                if existing.account_id != self.account.id:
                    logger.warning(f"Feed 已属于其他账户，跳过: {feed.url}")
                    continue
                existing.name = feed.name
                existing.folder_id = folder_id
                existing.remote_id = feed.remote_id
                existing.remote_folder_id = feed.remote_folder_id
                existing.site_url = feed.site_url or existing.site_url
                existing.icon_url = feed.icon_url or existing.icon_url
                await self.store.update_feed(existing)
                continue

            feed.account_id = self.account.id
            feed.folder_id = folder_id
            if await self._insert_new_feed(feed) is not None:
                inserted += 1
        return inserted

    async def _merge_items(self, items: Iterable[Item]) -> int:
        """按 Feed 分组，从旧到新插入.

        本地抓取的文章已带 feed_id，远端文章通过 remote_feed_id 找到 Feed。
        """
        feeds = await self.store.get_all_feeds(self.account.id)
        feeds_by_id = {feed.id: feed for feed in feeds}
        feeds_by_remote_id = {feed.remote_id: feed for feed in feeds if feed.remote_id}

        by_feed: dict[int, list[Item]] = {}
        for item in items:
            if item.feed_id is not None:
                feed = feeds_by_id.get(item.feed_id)
            else:
                feed = feeds_by_remote_id.get(item.remote_feed_id or "")
            if feed is None:
                logger.warning(
                    f"文章 {item.guid} 的 Feed {item.remote_feed_id} 不存在，跳过"
                )
                continue
            by_feed.setdefault(feed.id, []).append(item)

        inserted = 0
        for feed_id, feed_items in by_feed.items():
            feed_items.sort(key=_publish_order)
            new_items = await self._insert_items(feed_items, feeds_by_id[feed_id])
            if new_items:
                logger.info(f"Feed {feeds_by_id[feed_id].name}: 新增 {new_items} 篇文章")
            inserted += new_items
        return inserted

    async def _insert_items(self, items: Iterable[Item], feed: Feed) -> int:
        """插入新文章，GUID 已存在的文章跳过且不更新."""
        inserted = 0
        for item in items:
            if await self.store.guid_exists(item.guid):
                continue

            processed = self.processor.process(item, feed.site_url)
            processed.feed_id = feed.id
            if await self.store.insert_item(processed):
                inserted += 1
        return inserted

    async def _insert_new_feed(self, feed: Feed) -> int | None:
        # 清空缓存校验值，保证第一次抓取不会得到 304
        feed.etag = None
        feed.last_modified = None

        feed_id = await self.store.insert_feed(feed)
        if feed_id is not None and not feed.icon_url:
            self._schedule_favicon(feed)
        return feed_id

    # 站点图标

    def _schedule_favicon(self, feed: Feed) -> None:
        if self.favicon_resolver is None or not feed.site_url or feed.id is None:
            return
        self._icon_tasks[feed.id] = asyncio.create_task(
            self.favicon_resolver.resolve(feed.site_url)
        )

    async def drain(self) -> None:
        """等待后台图标解析完成并写入."""
        tasks, self._icon_tasks = self._icon_tasks, {}
        for feed_id, task in tasks.items():
            try:
                icon_url = await task
            except httpx.HTTPError as e:
                logger.debug(f"解析 Feed {feed_id} 图标失败: {e}")
                continue

            feed = await self.store.get_feed(feed_id)
            if icon_url and feed is not None:
                feed.icon_url = icon_url
                await self.store.update_feed(feed)

    async def close(self) -> None:
        """取消尚未写入的图标解析任务，在关闭连接池之前调用."""
        tasks, self._icon_tasks = self._icon_tasks, {}
        for task in tasks.values():
            task.cancel()

        outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)
        for feed_id, outcome in zip(tasks, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.debug(f"解析 Feed {feed_id} 图标失败: {outcome}")

    # 订阅和文件夹管理

    async def add_feed(self, url: str, folder_id: int | None = None) -> FeedInsertionResult:
        """添加订阅，URL 已存在时返回 already_inserted."""
        existing = await self.store.get_feed_by_url(url)
        if existing is not None:
            return FeedInsertionResult(feed=existing, url=url, already_inserted=True)

        folder = await self.store.get_folder(folder_id) if folder_id else None

        try:
            feed = await self.adapter.create_feed(url, folder)
        except FEED_ERRORS as e:
            error = classify_exception(e)
            logger.warning(f"添加订阅失败 {url}: [{error.kind.value}] {error.message}")
            return FeedInsertionResult.failed(error, url=url)

        feed.account_id = self.account.id
        feed.folder_id = folder.id if folder else None
        if await self._insert_new_feed(feed) is None:
            return FeedInsertionResult(url=url, already_inserted=True)

        logger.info(f"已添加订阅: {feed.name} ({url})")
        return FeedInsertionResult(feed=feed, url=url)

    async def add_feeds(self, urls: Sequence[str]) -> list[FeedInsertionResult]:
        """批量添加订阅."""
        return [await self.add_feed(url) for url in urls]

    async def delete_feed(self, feed_id: int) -> OperationResult:
        feed = await self.store.get_feed(feed_id)
        if feed is None:
            return OperationResult.failed(NotFoundError("Feed 不存在"))

        try:
            await self.adapter.delete_feed(feed)
        except SyncError as e:
            return OperationResult.failed(e)

        await self.store.delete_feed(feed_id)
        return OperationResult(remote_id=feed.remote_id)

    async def update_feed(
        self, feed_id: int, name: str, folder_id: int | None = None
    ) -> OperationResult:
        """修改订阅名称和文件夹."""
        feed = await self.store.get_feed(feed_id)
        if feed is None:
            return OperationResult.failed(NotFoundError("Feed 不存在"))

        folder = await self.store.get_folder(folder_id) if folder_id else None
        if folder_id and folder is None:
            return OperationResult.failed(NotFoundError("文件夹不存在"))

        try:
            await self.adapter.update_feed(feed, name, folder)
        except SyncError as e:
            return OperationResult.failed(e)

        feed.name = name
        feed.folder_id = folder.id if folder else None
        feed.remote_folder_id = folder.remote_id if folder else None
        await self.store.update_feed(feed)
        return OperationResult(remote_id=feed.remote_id)

    async def create_folder(self, name: str) -> OperationResult:
        if await self.store.get_folder_by_name(self.account.id, name) is not None:
            return OperationResult.failed(ConflictError(f"文件夹已存在: {name}"))

        try:
            remote_id = await self.adapter.create_folder(name)
        except SyncError as e:
            return OperationResult.failed(e)

        folder = Folder(account_id=self.account.id, name=name, remote_id=remote_id)
        if await self.store.insert_folder(folder) is None:
            return OperationResult.failed(ConflictError(f"文件夹已存在: {name}"))
        return OperationResult(remote_id=remote_id)

    async def rename_folder(self, folder_id: int, name: str) -> OperationResult:
        folder = await self.store.get_folder(folder_id)
        if folder is None:
            return OperationResult.failed(NotFoundError("文件夹不存在"))
        other = await self.store.get_folder_by_name(self.account.id, name)
        if other is not None and other.id != folder.id:
            return OperationResult.failed(ConflictError(f"文件夹已存在: {name}"))

        try:
            remote_id = await self.adapter.rename_folder(folder, name)
        except SyncError as e:
            return OperationResult.failed(e)

        folder.name = name
        folder.remote_id = remote_id or folder.remote_id
        await self.store.update_folder(folder)
        return OperationResult(remote_id=folder.remote_id)

    async def delete_folder(self, folder_id: int) -> OperationResult:
        folder = await self.store.get_folder(folder_id)
        if folder is None:
            return OperationResult.failed(NotFoundError("文件夹不存在"))

        try:
            await self.adapter.delete_folder(folder)
        except SyncError as e:
            return OperationResult.failed(e)

        await self.store.delete_folder(folder_id)
        return OperationResult(remote_id=folder.remote_id)

    # 本地状态变更

    async def mark_read(self, item_ids: Sequence[int], read: bool = True) -> int:
        """标记已读/未读，远端账户记录待上传的变更."""
        changed = 0
        for item in await self.store.get_items(item_ids):
            if item.read == read:
                continue
            item.read = read
            item.read_changed = not self.account.is_local
            await self.store.update_item(item)
            changed += 1
        return changed

    async def mark_starred(self, item_ids: Sequence[int], starred: bool = True) -> int:
        """标记收藏/取消收藏."""
        changed = 0
        for item in await self.store.get_items(item_ids):
            if item.starred == starred:
                continue
            item.starred = starred
            item.starred_changed = not self.account.is_local
            await self.store.update_item(item)
            changed += 1
        return changed
