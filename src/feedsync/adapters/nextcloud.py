"""Nextcloud News API (v1-2) 适配器."""

import logging
from collections.abc import Awaitable, Sequence
from typing import Any, ClassVar

import httpx

from feedsync.adapters.base import (
    StageCallback,
    SyncAdapter,
    ignore_stage,
    parse_rows,
)
from feedsync.core.errors import (
    HTTP_FORBIDDEN,
    HTTP_UNAUTHORIZED,
    AuthenticationError,
    NetworkError,
    ParseError,
    SyncError,
    UnknownError,
    raise_for_status,
)
from feedsync.core.results import StateKind, SyncData, SyncResult, SyncStage, SyncType
from feedsync.models.account import Account
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item
from feedsync.utils.dates import from_timestamp

logger = logging.getLogger(__name__)

ENDPOINT = "index.php/apps/news/api/v1-2"

# 文章类型选择：3 = 全部
ITEM_TYPE_ALL = 3


class NextcloudNewsAdapter(SyncAdapter):
    """Nextcloud News 客户端.

    同步过程中每个请求的非 2xx 响应只记录错误标记，继续后续请求以保留部分进度；
    网络错误则中止本轮同步。
    """

    supports_star_sync: ClassVar[bool] = False

    def __init__(self, account: Account, client: httpx.AsyncClient) -> None:
        super().__init__(account, client)
        self.base_url = f"{(account.url or '').rstrip('/')}/{ENDPOINT}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}/{path}"
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            msg = f"{method} {url} 失败: {e}"
            raise NetworkError(msg) from e

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            msg = f"无效的 JSON 响应: {response.request.url}"
            raise ParseError(msg) from e
        if not isinstance(data, dict):
            msg = f"JSON 响应不是对象: {response.request.url}"
            raise ParseError(msg)
        return data

    async def login(self) -> None:
        """校验账户凭据."""
        await self.get_user()

    async def get_user(self) -> dict[str, Any]:
        """获取用户信息."""
        response = await self._request("GET", "user")
        if response.status_code in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
            msg = "认证失败：用户名或密码错误"
            raise AuthenticationError(msg, status_code=response.status_code)
        raise_for_status(response)
        return self._json(response)

    def _parse_folder(self, data: dict[str, Any]) -> Folder:
        return Folder(
            account_id=self.account.id,
            name=data["name"],
            remote_id=str(data["id"]),
        )

    def _parse_feed(self, data: dict[str, Any]) -> Feed:
        folder_id = data.get("folderId")
        return Feed(
            account_id=self.account.id,
            name=data.get("title") or data["url"],
            url=data["url"],
            site_url=data.get("link"),
            icon_url=data.get("faviconLink") or None,
            remote_id=str(data["id"]),
            remote_folder_id=str(folder_id) if folder_id else None,
        )

    def _parse_item(self, data: dict[str, Any]) -> Item:
        image_link = data.get("mediaThumbnail") or None
        if not image_link and (data.get("enclosureMime") or "").startswith("image/"):
            image_link = data.get("enclosureLink")

        pub_date = data.get("pubDate")
        return Item(
            guid=data.get("guid") or data["guidHash"],
            remote_id=str(data["id"]),
            remote_feed_id=str(data["feedId"]),
            title=data.get("title") or "",
            link=data.get("url"),
            author=data.get("author") or None,
            content=data.get("body") or None,
            image_link=image_link,
            pub_date=from_timestamp(pub_date) if pub_date else None,
            read=not data.get("unread", True),
            starred=bool(data.get("starred", False)),
        )

    async def fetch_folders(self) -> list[Folder]:
        response = await self._request("GET", "folders")
        raise_for_status(response)
        return parse_rows(
            self._json(response).get("folders", []), self._parse_folder, "文件夹"
        )

    async def fetch_feeds(self) -> list[Feed]:
        response = await self._request("GET", "feeds")
        raise_for_status(response)
        return parse_rows(
            self._json(response).get("feeds", []), self._parse_feed, "订阅"
        )

    async def fetch_items(
        self,
        exclude: str | None = None,
        max_count: int | None = None,
        since: int | None = None,
    ) -> list[Item]:
        """获取文章.

        since 为空时获取全部未读文章（exclude 为 "read" 时不含已读），
        否则获取该时间戳之后修改过的文章。
        """
        if since is None:
            response = await self._request(
                "GET",
                "items",
                params={
                    "type": ITEM_TYPE_ALL,
                    "getRead": "false" if exclude == "read" else "true",
                    "batchSize": max_count or -1,
                },
            )
        else:
            response = await self._request(
                "GET",
                "items/updated",
                params={"lastModified": since, "type": ITEM_TYPE_ALL},
            )
        raise_for_status(response)
        return parse_rows(
            self._json(response).get("items", []), self._parse_item, "文章"
        )

    async def push_item_state(
        self, ids: Sequence[str], kind: StateKind, on: bool
    ) -> None:
        """批量标记已读/未读."""
        if kind != StateKind.READ:
            msg = f"Nextcloud News 不支持批量上传 {kind.value} 状态"
            raise UnknownError(msg)

        state = "read" if on else "unread"
        response = await self._request(
            "PUT",
            f"items/{state}/multiple",
            json={"items": [int(i) for i in ids]},
        )
        raise_for_status(response)

    async def _attempt(self, coro: Awaitable[Any], what: str) -> tuple[Any, bool]:
        """执行请求，非网络错误只记录并返回失败标记."""
        try:
            return await coro, True
        except NetworkError:
            raise
        except SyncError as e:
            logger.warning(f"Nextcloud {what} 失败: {e.message}")
            return None, False

    async def _fetch_feeds_and_folders(self, on_stage: StageCallback) -> SyncResult:
        on_stage(SyncStage.FETCH_FOLDERS)
        folders, folders_ok = await self._attempt(self.fetch_folders(), "获取文件夹")
        on_stage(SyncStage.FETCH_FEEDS)
        feeds, feeds_ok = await self._attempt(self.fetch_feeds(), "获取订阅")

        return SyncResult(
            folders=tuple(folders or ()),
            feeds=tuple(feeds or ()),
            is_error=not (folders_ok and feeds_ok),
        )

    async def _push_modified_items(self, sync_data: SyncData) -> SyncResult:
        """上传已读和未读两批文章，两次调用相互独立."""
        is_error = False
        if sync_data.read_ids:
            _, ok = await self._attempt(
                self.push_item_state(sync_data.read_ids, StateKind.READ, on=True),
                "上传已读状态",
            )
            is_error = is_error or not ok
        if sync_data.unread_ids:
            _, ok = await self._attempt(
                self.push_item_state(sync_data.unread_ids, StateKind.READ, on=False),
                "上传未读状态",
            )
            is_error = is_error or not ok
        return SyncResult(is_error=is_error)

    async def sync(
        self,
        sync_type: SyncType,
        sync_data: SyncData,
        on_stage: StageCallback = ignore_stage,
    ) -> SyncResult:
        """INITIAL 只拉取数据；CLASSIC 先上传状态再增量拉取."""
        result = SyncResult()

        if sync_type == SyncType.CLASSIC:
            on_stage(SyncStage.PUSH_LOCAL_STATE)
            result = result.merge(await self._push_modified_items(sync_data))

        result = result.merge(await self._fetch_feeds_and_folders(on_stage))

        on_stage(SyncStage.FETCH_ITEMS)
        if sync_type == SyncType.INITIAL:
            items, ok = await self._attempt(
                self.fetch_items(exclude="read"), "获取文章"
            )
        else:
            items, ok = await self._attempt(
                self.fetch_items(since=sync_data.last_modified or 0), "获取新文章"
            )

        result = result.merge(SyncResult(items=tuple(items or ()), is_error=not ok))
        logger.info(
            f"Nextcloud 拉取完成: 文件夹={len(result.folders)}, "
            f"订阅={len(result.feeds)}, 文章={len(result.items)}, "
            f"错误={result.is_error}"
        )
        return result

    async def create_feed(self, url: str, folder: Folder | None = None) -> Feed:
        folder_id = int(folder.remote_id) if folder and folder.remote_id else 0
        response = await self._request(
            "POST", "feeds", json={"url": url, "folderId": folder_id}
        )
        raise_for_status(response)
        feeds = parse_rows(
            self._json(response).get("feeds", []), self._parse_feed, "订阅"
        )
        if not feeds:
            msg = f"创建订阅的响应中没有 Feed: {url}"
            raise ParseError(msg)
        return feeds[0]

    async def delete_feed(self, feed: Feed) -> None:
        response = await self._request("DELETE", f"feeds/{feed.remote_id}")
        raise_for_status(response)

    async def update_feed(
        self, feed: Feed, name: str, folder: Folder | None = None
    ) -> None:
        """重命名并移动订阅."""
        response = await self._request(
            "PUT", f"feeds/{feed.remote_id}/rename", json={"feedTitle": name}
        )
        raise_for_status(response)

        folder_id = int(folder.remote_id) if folder and folder.remote_id else 0
        response = await self._request(
            "PUT", f"feeds/{feed.remote_id}/move", json={"folderId": folder_id}
        )
        raise_for_status(response)

    async def create_folder(self, name: str) -> str | None:
        response = await self._request("POST", "folders", json={"name": name})
        raise_for_status(response)
        folders = self._json(response).get("folders", [])
        return str(folders[0]["id"]) if folders else None

    async def rename_folder(self, folder: Folder, name: str) -> str | None:
        response = await self._request(
            "PUT", f"folders/{folder.remote_id}", json={"name": name}
        )
        raise_for_status(response)
        return folder.remote_id

    async def delete_folder(self, folder: Folder) -> None:
        response = await self._request("DELETE", f"folders/{folder.remote_id}")
        raise_for_status(response)
