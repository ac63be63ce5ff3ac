"""测试同步服务."""

import asyncio
import json

import httpx
import pytest
from conftest import RSS_FEED, mock_client
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from feedsync.adapters.base import StageCallback, ignore_stage
from feedsync.adapters.freshrss import FreshRSSAdapter
from feedsync.adapters.local import LocalFeedAdapter
from feedsync.adapters.nextcloud import NextcloudNewsAdapter
from feedsync.core.errors import AuthenticationError, ErrorKind
from feedsync.core.favicon import FaviconResolver
from feedsync.core.results import SyncData, SyncResult, SyncStage, SyncType
from feedsync.core.sync import SyncService
from feedsync.models.account import Account
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item
from feedsync.models.sync import SyncStatus
from feedsync.store.sql import SQLStore

OTHER_URL = "https://other.example.com/rss"


class FeedServer:
    """按 URL 返回 Feed 文档，支持 ETag."""

    def __init__(self) -> None:
        self.documents: dict[str, bytes] = {}
        self.etags: dict[str, str] = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url not in self.documents:
            return httpx.Response(404)

        etag = self.etags.get(url)
        if etag and request.headers.get("If-None-Match") == etag:
            return httpx.Response(304)

        headers = {"etag": etag} if etag else {}
        return httpx.Response(200, content=self.documents[url], headers=headers)


@pytest.fixture
def feed_server(local_feed: Feed) -> FeedServer:
    server = FeedServer()
    server.documents[local_feed.url] = RSS_FEED
    server.etags[local_feed.url] = '"v1"'
    return server


@pytest.fixture
def local_service(
    store: SQLStore, local_account: Account, feed_server: FeedServer
) -> SyncService:
    adapter = LocalFeedAdapter(local_account, mock_client(feed_server))
    return SyncService(adapter, store, local_account)


async def all_items(session: AsyncSession) -> list[Item]:
    result = await session.execute(select(Item).order_by(Item.id))
    return list(result.scalars().all())


async def latest_status(session: AsyncSession) -> SyncStatus:
    result = await session.execute(select(SyncStatus).order_by(SyncStatus.id.desc()))
    return result.scalars().first()


class TestLocalSync:
    """本地账户同步."""

    async def test_inserts_items_oldest_first(
        self,
        local_service: SyncService,
        local_feed: Feed,
        async_session: AsyncSession,
    ) -> None:
        report = await local_service.sync()

        assert report.success
        assert report.stage == SyncStage.DONE
        assert report.items_inserted == 2

        items = await all_items(async_session)
        assert [i.title for i in items] == ["Older post", "Newer post"]
        assert all(i.feed_id == local_feed.id for i in items)
        assert all(i.fetched_at is not None for i in items)

        older = items[0]
        assert older.image_link == "https://blog.example.com/cover.png"
        assert older.clean_description == "First"
        assert older.read_time == 1

        feed = await local_service.store.get_feed(local_feed.id)
        assert feed.etag == '"v1"'

        status = await latest_status(async_session)
        assert status.status == "success"
        assert status.sync_type == "local"
        assert status.items_inserted == 2

    async def test_not_modified_inserts_nothing(
        self,
        local_service: SyncService,
        feed_server: FeedServer,
    ) -> None:
        await local_service.sync()

        report = await local_service.sync()

        assert report.items_inserted == 0
        assert report.success
        assert feed_server.requests[-1].headers["If-None-Match"] == '"v1"'

    async def test_existing_guid_keeps_local_state(
        self,
        local_service: SyncService,
        feed_server: FeedServer,
        local_feed: Feed,
        store: SQLStore,
        async_session: AsyncSession,
    ) -> None:
        await store.insert_item(
            Item(
                feed_id=local_feed.id,
                guid="https://blog.example.com/newer",
                title="Local title",
                read=True,
                starred=True,
            )
        )
        feed_server.etags.clear()

        report = await local_service.sync()

        assert report.items_inserted == 1
        items = {i.guid: i for i in await all_items(async_session)}
        kept = items["https://blog.example.com/newer"]
        assert kept.title == "Local title"
        assert kept.read is True
        assert kept.starred is True

    async def test_failed_feed_does_not_stop_siblings(
        self,
        local_service: SyncService,
        feed_server: FeedServer,
        local_account: Account,
        store: SQLStore,
        async_session: AsyncSession,
    ) -> None:
        broken = Feed(
            account_id=local_account.id,
            name="Broken",
            url=OTHER_URL,
            etag='"old"',
        )
        await store.insert_feed(broken)
        feed_server.documents[OTHER_URL] = b"<html><body>moved</body></html>"

        report = await local_service.sync()

        assert report.partial
        assert report.items_inserted == 2
        failed = report.result.failed_feeds
        assert len(failed) == 1
        assert failed[0].url == OTHER_URL
        assert failed[0].error == ErrorKind.FORMAT

        # 失败的 Feed 不更新缓存校验值
        assert (await store.get_feed(broken.id)).etag == '"old"'

        status = await latest_status(async_session)
        assert status.status == "partial"
        assert status.feeds_failed == 1

    async def test_network_error_is_classified(
        self,
        local_service: SyncService,
        feed_server: FeedServer,
        local_account: Account,
        store: SQLStore,
    ) -> None:
        await store.insert_feed(
            Feed(account_id=local_account.id, name="Gone", url=OTHER_URL)
        )

        report = await local_service.sync()

        assert report.result.failed_feeds[0].error == ErrorKind.NETWORK

    async def test_malformed_json_feed_does_not_stop_siblings(
        self,
        local_service: SyncService,
        feed_server: FeedServer,
        local_account: Account,
        store: SQLStore,
        async_session: AsyncSession,
    ) -> None:
        broken = Feed(account_id=local_account.id, name="JSON", url=OTHER_URL)
        await store.insert_feed(broken)
        feed_server.documents[OTHER_URL] = json.dumps(
            {
                "version": "https://jsonfeed.org/version/1.1",
                "title": "JSON",
                "items": [{"id": "1", "title": "Bad", "date_published": 1700000000}],
            }
        ).encode()

        report = await local_service.sync()

        assert report.partial
        assert report.items_inserted == 2
        failed = report.result.failed_feeds
        assert [(r.url, r.error) for r in failed] == [(OTHER_URL, ErrorKind.PARSE)]
        assert [i.title for i in await all_items(async_session)] == [
            "Older post",
            "Newer post",
        ]

    async def test_sync_selected_feeds(
        self,
        local_service: SyncService,
        feed_server: FeedServer,
        local_account: Account,
        store: SQLStore,
    ) -> None:
        other = Feed(account_id=local_account.id, name="Other", url=OTHER_URL)
        await store.insert_feed(other)

        await local_service.sync(feed_ids=[other.id])

        assert [str(r.url) for r in feed_server.requests] == [OTHER_URL]


class TestAddFeed:
    """添加订阅."""

    async def test_add_local_feed(
        self,
        store: SQLStore,
        local_account: Account,
        async_session: AsyncSession,
    ) -> None:
        server = FeedServer()
        server.documents[OTHER_URL] = RSS_FEED
        server.etags[OTHER_URL] = '"v9"'
        service = SyncService(
            LocalFeedAdapter(local_account, mock_client(server)), store, local_account
        )

        result = await service.add_feed(OTHER_URL)

        assert not result.is_error
        assert result.already_inserted is False
        feed = await store.get_feed_by_url(OTHER_URL)
        assert feed.name == "Example Blog"
        assert feed.site_url == "https://blog.example.com"
        assert feed.account_id == local_account.id
        # 首次同步时必须完整抓取
        assert feed.etag is None
        assert feed.last_modified is None
        assert await all_items(async_session) == []

    async def test_add_existing_url(
        self, local_service: SyncService, local_feed: Feed
    ) -> None:
        result = await local_service.add_feed(local_feed.url)

        assert result.already_inserted is True
        assert result.feed.id == local_feed.id

    async def test_add_unreachable_feed(self, local_service: SyncService) -> None:
        result = await local_service.add_feed("https://missing.example.com/feed")

        assert result.error == ErrorKind.NETWORK
        assert result.url == "https://missing.example.com/feed"

    async def test_add_feeds(
        self, local_service: SyncService, local_feed: Feed
    ) -> None:
        results = await local_service.add_feeds([local_feed.url, OTHER_URL])

        assert results[0].already_inserted is True
        assert results[1].is_error

    async def test_favicon_resolved_in_background(
        self,
        store: SQLStore,
        local_account: Account,
    ) -> None:
        server = FeedServer()
        server.documents[OTHER_URL] = RSS_FEED

        def site(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                text='<html><head><link rel="shortcut icon" href="/icon.png"></head></html>',
            )

        service = SyncService(
            LocalFeedAdapter(local_account, mock_client(server)),
            store,
            local_account,
            favicon_resolver=FaviconResolver(mock_client(site)),
        )

        result = await service.add_feed(OTHER_URL)
        assert result.feed.icon_url is None

        await service.drain()

        feed = await store.get_feed(result.feed.id)
        assert feed.icon_url == "https://blog.example.com/icon.png"


class TestFolders:
    """文件夹和订阅管理."""

    async def test_create_duplicate_folder_conflict(
        self, local_service: SyncService
    ) -> None:
        assert (await local_service.create_folder("Tech")).ok

        result = await local_service.create_folder("Tech")

        assert result.error == ErrorKind.CONFLICT

    async def test_delete_folder_keeps_feeds(
        self,
        local_service: SyncService,
        local_feed: Feed,
        store: SQLStore,
        local_account: Account,
    ) -> None:
        await local_service.create_folder("Tech")
        folder = await store.get_folder_by_name(local_account.id, "Tech")
        assert (await local_service.update_feed(local_feed.id, "Renamed", folder.id)).ok

        result = await local_service.delete_folder(folder.id)

        assert result.ok
        feed = await store.get_feed(local_feed.id)
        assert feed.name == "Renamed"
        assert feed.folder_id is None
        assert await store.list_folders(local_account.id) == []

    async def test_rename_folder(
        self, local_service: SyncService, store: SQLStore, local_account: Account
    ) -> None:
        await local_service.create_folder("Tech")
        folder = await store.get_folder_by_name(local_account.id, "Tech")

        assert (await local_service.rename_folder(folder.id, "Science")).ok

        assert (await store.get_folder(folder.id)).name == "Science"

    async def test_missing_folder(self, local_service: SyncService) -> None:
        result = await local_service.delete_folder(999)

        assert result.error == ErrorKind.NOT_FOUND

    async def test_delete_feed_removes_items(
        self,
        local_service: SyncService,
        local_feed: Feed,
        store: SQLStore,
        async_session: AsyncSession,
    ) -> None:
        await local_service.sync()

        assert (await local_service.delete_feed(local_feed.id)).ok

        assert await store.get_feed(local_feed.id) is None
        assert await all_items(async_session) == []


def freshrss_handler(requests: list[httpx.Request]):
    """最小的 FreshRSS 服务端."""

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path.endswith("/accounts/ClientLogin"):
            return httpx.Response(200, text="Auth=token")
        if path.endswith("/reader/api/0/token"):
            return httpx.Response(200, text="write")
        if path.endswith("/tag/list"):
            return httpx.Response(200, json={"tags": [{"id": "user/-/label/Tech"}]})
        if path.endswith("/subscription/list"):
            return httpx.Response(
                200,
                json={
                    "subscriptions": [
                        {
                            "id": "feed/1",
                            "title": "Blog",
                            "url": "https://blog.example.com/feed",
                            "htmlUrl": "https://blog.example.com",
                            "iconUrl": "https://rss.example.com/1.png",
                            "categories": [{"id": "user/-/label/Tech"}],
                        }
                    ]
                },
            )
        if "/stream/contents/" in path:
            return httpx.Response(
                200,
                json={
                    "items": [
                        {
                            "id": "item/2",
                            "title": "Second",
                            "published": 1700000100,
                            "origin": {"streamId": "feed/1"},
                            "summary": {"content": "<p>Two</p>"},
                            "categories": [],
                        },
                        {
                            "id": "item/1",
                            "title": "First",
                            "published": 1700000000,
                            "origin": {"streamId": "feed/1"},
                            "summary": {"content": "<p>One</p>"},
                            "categories": [],
                        },
                        {
                            "id": "item/orphan",
                            "title": "Orphan",
                            "origin": {"streamId": "feed/unknown"},
                            "categories": [],
                        },
                    ]
                },
            )
        return httpx.Response(200, text="OK")

    return handler


class TestRemoteSync:
    """远端账户同步."""

    async def test_freshrss_initial_then_classic(
        self,
        store: SQLStore,
        freshrss_account: Account,
        async_session: AsyncSession,
    ) -> None:
        requests: list[httpx.Request] = []
        adapter = FreshRSSAdapter(freshrss_account, mock_client(freshrss_handler(requests)))
        service = SyncService(adapter, store, freshrss_account)

        report = await service.sync()

        assert report.success
        assert report.sync_type == "initial"
        assert report.folders_inserted == 1
        assert report.feeds_inserted == 1
        assert report.items_inserted == 2

        folder = await store.get_folder_by_remote_id(
            freshrss_account.id, "user/-/label/Tech"
        )
        feed = await store.get_feed_by_url("https://blog.example.com/feed")
        assert feed.folder_id == folder.id
        assert feed.account_id == freshrss_account.id

        items = await all_items(async_session)
        assert [i.guid for i in items] == ["item/1", "item/2"]
        assert all(i.feed_id == feed.id for i in items)

        assert freshrss_account.is_initialized is True
        assert freshrss_account.last_modified is not None

        # 本地标记已读，下次同步上传
        assert await service.mark_read([items[0].id]) == 1
        assert await service.mark_starred([items[1].id]) == 1
        requests.clear()

        report = await service.sync()

        assert report.sync_type == "classic"
        assert report.items_inserted == 0
        edit_tags = [r for r in requests if r.url.path.endswith("/edit-tag")]
        assert len(edit_tags) == 2
        stream = next(r for r in requests if "/stream/contents/" in r.url.path)
        assert "ot" in stream.url.params

        for item in await all_items(async_session):
            await async_session.refresh(item)
            assert item.read_changed is False
            assert item.starred_changed is False

    async def test_login_failure_aborts(
        self,
        store: SQLStore,
        freshrss_account: Account,
        async_session: AsyncSession,
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401)

        service = SyncService(
            FreshRSSAdapter(freshrss_account, mock_client(handler)),
            store,
            freshrss_account,
        )

        with pytest.raises(AuthenticationError):
            await service.sync()

        status = await latest_status(async_session)
        assert status.status == "failed"
        assert freshrss_account.is_initialized is False

    async def test_nextcloud_push_failure_keeps_flags(
        self,
        store: SQLStore,
        nextcloud_account: Account,
        async_session: AsyncSession,
    ) -> None:
        feed = Feed(
            account_id=nextcloud_account.id,
            name="Blog",
            url="https://blog.example.com/feed",
            remote_id="39",
        )
        await store.insert_feed(feed)
        await store.insert_item(
            Item(
                feed_id=feed.id,
                guid="g-1",
                remote_id="100",
                read=True,
                read_changed=True,
            )
        )
        nextcloud_account.is_initialized = True
        nextcloud_account.last_modified = 1700000000
        await store.update_account(nextcloud_account)

        def handler(request: httpx.Request) -> httpx.Response:
            path = request.url.path
            if path.endswith("/items/read/multiple"):
                return httpx.Response(500)
            if path.endswith("/folders"):
                return httpx.Response(200, json={"folders": []})
            if path.endswith("/feeds"):
                return httpx.Response(
                    200,
                    json={
                        "feeds": [
                            {"id": 39, "url": "https://blog.example.com/feed", "title": "Blog"}
                        ]
                    },
                )
            if path.endswith("/items/updated"):
                return httpx.Response(
                    200,
                    json={
                        "items": [
                            {"id": 101, "guidHash": "g-2", "feedId": 39, "unread": True}
                        ]
                    },
                )
            return httpx.Response(200, json={})

        service = SyncService(
            NextcloudNewsAdapter(nextcloud_account, mock_client(handler)),
            store,
            nextcloud_account,
        )

        report = await service.sync()

        assert report.partial
        assert report.items_inserted == 1
        assert nextcloud_account.last_modified == 1700000000

        sync_data = await store.build_sync_data(nextcloud_account)
        assert sync_data.read_ids == ("100",)

        status = await latest_status(async_session)
        assert status.status == "partial"


async def test_folder_merge_matches_existing_by_name(
    store: SQLStore, freshrss_account: Account
) -> None:
    await store.insert_folder(Folder(account_id=freshrss_account.id, name="Tech"))
    requests: list[httpx.Request] = []
    service = SyncService(
        FreshRSSAdapter(freshrss_account, mock_client(freshrss_handler(requests))),
        store,
        freshrss_account,
    )

    report = await service.sync()

    assert report.folders_inserted == 0
    folders = await store.list_folders(freshrss_account.id)
    assert [(f.name, f.remote_id) for f in folders] == [("Tech", "user/-/label/Tech")]


class RacingFreshRSSAdapter(FreshRSSAdapter):
    """在拉取期间执行回调，模拟用户同时修改文章状态."""

    during_sync = None

    async def sync(
        self,
        sync_type: SyncType,
        sync_data: SyncData,
        on_stage: StageCallback = ignore_stage,
    ) -> SyncResult:
        if self.during_sync is not None:
            await self.during_sync()
        return await super().sync(sync_type, sync_data, on_stage)


async def test_changes_made_during_round_are_kept(
    store: SQLStore,
    freshrss_account: Account,
    async_session: AsyncSession,
) -> None:
    requests: list[httpx.Request] = []
    adapter = RacingFreshRSSAdapter(
        freshrss_account, mock_client(freshrss_handler(requests))
    )
    service = SyncService(adapter, store, freshrss_account)
    await service.sync()

    first, second = await all_items(async_session)
    await service.mark_read([first.id])

    async def concurrent_changes() -> None:
        # 已上传的文章又被改回未读，另一篇是本轮之后才收藏的
        await service.mark_read([first.id], read=False)
        await service.mark_starred([second.id])

    adapter.during_sync = concurrent_changes
    await service.sync()

    await async_session.refresh(first)
    await async_session.refresh(second)
    assert first.read is False
    assert first.read_changed is True
    assert second.starred is True
    assert second.starred_changed is True

    sync_data = await store.build_sync_data(freshrss_account)
    assert sync_data.unread_ids == ("item/1",)
    assert sync_data.starred_ids == ("item/2",)


async def test_pushed_changes_are_cleared(
    store: SQLStore,
    freshrss_account: Account,
    async_session: AsyncSession,
) -> None:
    requests: list[httpx.Request] = []
    adapter = RacingFreshRSSAdapter(
        freshrss_account, mock_client(freshrss_handler(requests))
    )
    service = SyncService(adapter, store, freshrss_account)
    await service.sync()

    first, second = await all_items(async_session)
    await service.mark_read([first.id])

    async def concurrent_changes() -> None:
        await service.mark_read([second.id])

    adapter.during_sync = concurrent_changes
    await service.sync()

    await async_session.refresh(first)
    await async_session.refresh(second)
    assert first.read_changed is False
    assert second.read_changed is True


class HangingFaviconResolver(FaviconResolver):
    """永远不返回的图标解析."""

    async def resolve(self, site_url: str | None) -> str | None:
        await asyncio.Event().wait()
        return None


async def test_aborted_round_cancels_favicon_tasks(
    store: SQLStore,
    local_account: Account,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    server = FeedServer()
    server.documents[OTHER_URL] = RSS_FEED
    adapter = LocalFeedAdapter(local_account, mock_client(server))
    service = SyncService(
        adapter,
        store,
        local_account,
        favicon_resolver=HangingFaviconResolver(mock_client(server)),
    )
    result = await service.add_feed(OTHER_URL)
    task = service._icon_tasks[result.feed.id]

    async def broken_sync(*args, **kwargs) -> SyncResult:
        raise RuntimeError("store went away")

    monkeypatch.setattr(adapter, "sync", broken_sync)

    with pytest.raises(RuntimeError):
        await service.sync()

    assert task.cancelled()
    assert service._icon_tasks == {}
