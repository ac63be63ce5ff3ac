"""测试 HTTP API 端点."""

from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from feedsync.core.runner import reset_runner
from feedsync.main import app
from feedsync.models.database import async_session_maker, close_db, init_db
from feedsync.models.feed import Feed
from feedsync.models.item import Item


@pytest_asyncio.fixture
async def client(tmp_path: Path) -> AsyncGenerator[AsyncClient, None]:
    """创建测试用的 HTTP 客户端（临时文件数据库）."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    reset_runner()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    reset_runner()
    await close_db()


async def create_local_account(client: AsyncClient) -> int:
    response = await client.post("/api/accounts", json={"name": "Local"})
    assert response.status_code == 201
    return response.json()["id"]


async def add_feed_row(account_id: int, url: str = "https://blog.example.com/feed") -> int:
    async with async_session_maker()() as session:
        feed = Feed(account_id=account_id, name="Blog", url=url)
        session.add(feed)
        await session.commit()
        await session.refresh(feed)
        return feed.id


async def add_item_rows(feed_id: int) -> list[int]:
    async with async_session_maker()() as session:
        items = [
            Item(
                feed_id=feed_id,
                guid="guid-old",
                title="Old",
                pub_date=datetime(2024, 1, 1),
            ),
            Item(
                feed_id=feed_id,
                guid="guid-new",
                title="New",
                pub_date=datetime(2024, 2, 1),
                starred=True,
            ),
        ]
        session.add_all(items)
        await session.commit()
        return [item.id for item in items]


async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_root(client: AsyncClient) -> None:
    response = await client.get("/")

    assert response.json()["name"] == "FeedSync"


class TestAccounts:
    """账户 API."""

    async def test_create_and_list(self, client: AsyncClient) -> None:
        await create_local_account(client)
        response = await client.post(
            "/api/accounts",
            json={
                "name": "FreshRSS",
                "account_type": "freshrss",
                "url": "https://rss.example.com",
                "login": "alice",
                "password": "secret",
            },
        )
        assert response.status_code == 201
        assert "password" not in response.json()

        response = await client.get("/api/accounts")

        data = response.json()
        assert data["total"] == 2
        assert [a["account_type"] for a in data["items"]] == ["local", "freshrss"]

    async def test_remote_account_requires_url(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/accounts", json={"name": "Cloud", "account_type": "nextcloud"}
        )

        assert response.status_code == 422


class TestSync:
    """同步 API."""

    async def test_sync_local_account_without_feeds(self, client: AsyncClient) -> None:
        account_id = await create_local_account(client)

        response = await client.post(f"/api/sync/{account_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["items_inserted"] == 0
        assert data["stage"] == "done"

        response = await client.get("/api/sync/status", params={"account_id": account_id})

        statuses = response.json()["items"]
        assert statuses[0]["status"] == "success"
        assert statuses[0]["sync_type"] == "local"

    async def test_sync_missing_account(self, client: AsyncClient) -> None:
        response = await client.post("/api/sync/999")

        assert response.status_code == 404


class TestFolders:
    """文件夹 API."""

    async def test_create_conflict_and_list(self, client: AsyncClient) -> None:
        account_id = await create_local_account(client)

        for name in ("Tech", "Art"):
            response = await client.post(
                "/api/folders", json={"account_id": account_id, "name": name}
            )
            assert response.status_code == 201

        response = await client.post(
            "/api/folders", json={"account_id": account_id, "name": "Tech"}
        )
        assert response.status_code == 409

        response = await client.get("/api/folders", params={"account_id": account_id})
        assert [f["name"] for f in response.json()["items"]] == ["Art", "Tech"]

    async def test_rename_and_delete(self, client: AsyncClient) -> None:
        account_id = await create_local_account(client)
        feed_id = await add_feed_row(account_id)
        response = await client.post(
            "/api/folders", json={"account_id": account_id, "name": "Tech"}
        )
        folder_id = response.json()["id"]

        response = await client.patch(
            f"/api/feeds/{feed_id}", json={"name": "Blog", "folder_id": folder_id}
        )
        assert response.status_code == 200

        response = await client.patch(f"/api/folders/{folder_id}", json={"name": "Science"})
        assert response.status_code == 200

        response = await client.delete(f"/api/folders/{folder_id}")
        assert response.status_code == 200

        feeds = (await client.get("/api/feeds")).json()["items"]
        assert feeds[0]["folder_id"] is None

    async def test_missing_folder(self, client: AsyncClient) -> None:
        response = await client.delete("/api/folders/999")

        assert response.status_code == 404


class TestFeeds:
    """订阅 API."""

    async def test_add_existing_feed_conflict(self, client: AsyncClient) -> None:
        account_id = await create_local_account(client)
        await add_feed_row(account_id)

        response = await client.post(
            "/api/feeds",
            json={"account_id": account_id, "url": "https://blog.example.com/feed"},
        )

        assert response.status_code == 409

    async def test_add_feed_unknown_account(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/feeds", json={"account_id": 42, "url": "https://x.example.com/feed"}
        )

        assert response.status_code == 404

    async def test_update_missing_folder(self, client: AsyncClient) -> None:
        account_id = await create_local_account(client)
        feed_id = await add_feed_row(account_id)

        response = await client.patch(
            f"/api/feeds/{feed_id}", json={"name": "Blog", "folder_id": 999}
        )

        assert response.status_code == 404

    async def test_delete_feed(self, client: AsyncClient) -> None:
        account_id = await create_local_account(client)
        feed_id = await add_feed_row(account_id)
        await add_item_rows(feed_id)

        response = await client.delete(f"/api/feeds/{feed_id}")
        assert response.status_code == 200

        assert (await client.get("/api/feeds")).json()["total"] == 0
        items = (await client.get("/api/items", params={"filter": "all"})).json()
        assert items["total"] == 0

        response = await client.delete(f"/api/feeds/{feed_id}")
        assert response.status_code == 404


class TestItems:
    """文章 API."""

    async def test_list_and_mark_read(self, client: AsyncClient) -> None:
        account_id = await create_local_account(client)
        feed_id = await add_feed_row(account_id)
        old_id, new_id = await add_item_rows(feed_id)

        response = await client.get("/api/items")
        data = response.json()
        assert data["total"] == 2
        assert [i["id"] for i in data["items"]] == [new_id, old_id]

        response = await client.post("/api/items/read", json={"item_ids": [old_id]})
        assert response.json()["updated"] == 1

        response = await client.get("/api/items", params={"filter": "unread"})
        assert [i["id"] for i in response.json()["items"]] == [new_id]

    async def test_mark_starred_and_filter(self, client: AsyncClient) -> None:
        account_id = await create_local_account(client)
        feed_id = await add_feed_row(account_id)
        old_id, new_id = await add_item_rows(feed_id)

        response = await client.post(
            "/api/items/starred", json={"item_ids": [new_id], "starred": False}
        )
        assert response.json()["updated"] == 1

        response = await client.get(
            "/api/items", params={"filter": "starred", "account_id": account_id}
        )
        assert response.json()["total"] == 0

    async def test_mark_read_requires_ids(self, client: AsyncClient) -> None:
        response = await client.post("/api/items/read", json={"item_ids": []})

        assert response.status_code == 422
