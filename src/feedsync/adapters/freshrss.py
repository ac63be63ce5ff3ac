"""FreshRSS Google Reader API 适配器."""

import logging
from collections.abc import Sequence
from typing import Any

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
    raise_for_status,
)
from feedsync.core.results import StateKind, SyncData, SyncResult, SyncStage, SyncType
from feedsync.models.account import Account
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item
from feedsync.utils.dates import from_timestamp

logger = logging.getLogger(__name__)

GOOGLE_READ = "user/-/state/com.google/read"
GOOGLE_STARRED = "user/-/state/com.google/starred"
READING_LIST = "user/-/state/com.google/reading-list"

FEED_PREFIX = "feed/"
FOLDER_PREFIX = "user/-/label/"

MAX_ITEMS = 5000

STATE_TAGS = {
    StateKind.READ: GOOGLE_READ,
    StateKind.STARRED: GOOGLE_STARRED,
}


class FreshRSSAdapter(SyncAdapter):
    """FreshRSS Google Reader API 客户端."""

    def __init__(
        self,
        account: Account,
        client: httpx.AsyncClient,
        max_items: int = MAX_ITEMS,
    ) -> None:
        super().__init__(account, client)
        self.base_url = f"{(account.url or '').rstrip('/')}/api/greader.php"
        self.max_items = max_items
        self._auth_token: str | None = None
        self._write_token: str | None = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}/{path}"
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            msg = f"{method} {url} 失败: {e}"
            raise NetworkError(msg) from e

    async def login(self) -> None:
        """获取认证 token 和写入 token."""
        response = await self._request(
            "POST",
            "accounts/ClientLogin",
            data={
                "Email": self.account.login or "",
                "Passwd": self.account.password or "",
            },
        )
        if response.status_code in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
            msg = "认证失败：用户名或密码错误"
            raise AuthenticationError(msg, status_code=response.status_code)
        raise_for_status(response)

        # 解析响应，格式为 "Auth=xxx"
        for line in response.text.strip().split("\n"):
            if line.startswith("Auth="):
                self._auth_token = line[5:].strip()
                break
        else:
            msg = "认证失败：无法获取 Auth token"
            raise AuthenticationError(msg)

        self._write_token = await self.get_write_token()

    def _get_headers(self) -> dict[str, str]:
        """获取带认证的请求头."""
        if not self._auth_token:
            msg = "未认证，请先调用 login()"
            raise AuthenticationError(msg)
        return {"Authorization": f"GoogleLogin auth={self._auth_token}"}

    async def _get_json(
        self, path: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        response = await self._request(
            "GET",
            path,
            params={"output": "json", **(params or {})},
            headers=self._get_headers(),
        )
        raise_for_status(response)
        try:
            data = response.json()
        except ValueError as e:
            msg = f"无效的 JSON 响应: {path}"
            raise ParseError(msg) from e
        if not isinstance(data, dict):
            msg = f"JSON 响应不是对象: {path}"
            raise ParseError(msg)
        return data

    async def _post(self, path: str, data: dict[str, Any]) -> httpx.Response:
        if not self._write_token:
            msg = "缺少写入 token，请先调用 login()"
            raise AuthenticationError(msg)

        response = await self._request(
            "POST",
            path,
            data={**data, "T": self._write_token},
            headers=self._get_headers(),
        )
        raise_for_status(response)
        return response

    async def get_write_token(self) -> str:
        """获取修改服务端数据所需的写入 token."""
        response = await self._request(
            "GET", "reader/api/0/token", headers=self._get_headers()
        )
        raise_for_status(response)
        return response.text.strip()

    async def get_user_info(self) -> dict[str, Any]:
        """获取当前用户信息（userId / userName / userEmail 等）."""
        return await self._get_json("reader/api/0/user-info")

    async def fetch_folders(self) -> list[Folder]:
        """获取文件夹（label 类型的 tag）."""
        data = await self._get_json("reader/api/0/tag/list")
        folders = parse_rows(data.get("tags", []), self._parse_folder, "文件夹")
        return [folder for folder in folders if folder is not None]

    def _parse_folder(self, tag: dict[str, Any]) -> Folder | None:
        tag_id = tag["id"]
        if "/label/" not in tag_id:
            return None
        return Folder(
            account_id=self.account.id,
            name=tag_id.rsplit("/label/", 1)[-1],
            remote_id=tag_id,
        )

    async def fetch_feeds(self) -> list[Feed]:
        """获取订阅列表."""
        data = await self._get_json("reader/api/0/subscription/list")
        return parse_rows(data.get("subscriptions", []), self._parse_feed, "订阅")

    def _parse_feed(self, sub: dict[str, Any]) -> Feed:
        categories = sub.get("categories") or []
        return Feed(
            account_id=self.account.id,
            name=sub.get("title") or sub["url"],
            url=sub["url"],
            site_url=sub.get("htmlUrl"),
            icon_url=sub.get("iconUrl") or None,
            remote_id=sub["id"],
            remote_folder_id=categories[0].get("id") if categories else None,
        )

    async def fetch_items(
        self,
        exclude: str | None = None,
        max_count: int | None = None,
        since: int | None = None,
    ) -> list[Item]:
        """获取文章.

        Args:
            exclude: 排除的状态 tag（目前只有已读）
            max_count: 最大数量
            since: 只获取该时间戳之后的文章
        """
        params: dict[str, Any] = {"n": max_count or self.max_items}
        if exclude:
            params["xt"] = exclude
        if since is not None:
            params["ot"] = since

        data = await self._get_json(
            f"reader/api/0/stream/contents/{READING_LIST}", params=params
        )
        return parse_rows(data.get("items", []), self._parse_item, "文章")

    @staticmethod
    def _parse_item(item: dict[str, Any]) -> Item:
        # summary 是摘要，content 是全文，两者都可能缺失
        summary = item.get("summary") or {}
        content = item.get("content") or {}
        alternates = item.get("alternate") or []
        categories = item.get("categories") or []
        published_ts = item.get("published")

        return Item(
            guid=item["id"],
            remote_id=item["id"],
            remote_feed_id=(item.get("origin") or {}).get("streamId"),
            title=item.get("title") or "",
            link=alternates[0].get("href") if alternates else None,
            author=item.get("author") or None,
            description=summary.get("content") or None,
            content=content.get("content") or None,
            pub_date=from_timestamp(published_ts) if published_ts else None,
            read=GOOGLE_READ in categories,
            starred=GOOGLE_STARRED in categories,
        )

    async def push_item_state(
        self, ids: Sequence[str], kind: StateKind, on: bool
    ) -> None:
        """添加或移除一个状态 tag，同一次调用不会同时添加和移除."""
        tag = STATE_TAGS[kind]
        data: dict[str, Any] = {"i": list(ids)}
        data["a" if on else "r"] = tag
        await self._post("reader/api/0/edit-tag", data)

    async def _push_bucket_pair(
        self, kind: StateKind, on_ids: Sequence[str], off_ids: Sequence[str]
    ) -> None:
        if on_ids:
            await self.push_item_state(on_ids, kind, on=True)
        if off_ids:
            await self.push_item_state(off_ids, kind, on=False)

    async def sync(
        self,
        sync_type: SyncType,
        sync_data: SyncData,
        on_stage: StageCallback = ignore_stage,
    ) -> SyncResult:
        """先上传已读和收藏状态，再依次拉取文件夹、订阅和文章."""
        on_stage(SyncStage.PUSH_LOCAL_STATE)
        await self._push_bucket_pair(
            StateKind.READ, sync_data.read_ids, sync_data.unread_ids
        )
        await self._push_bucket_pair(
            StateKind.STARRED, sync_data.starred_ids, sync_data.unstarred_ids
        )

        on_stage(SyncStage.FETCH_FOLDERS)
        folders = await self.fetch_folders()

        on_stage(SyncStage.FETCH_FEEDS)
        feeds = await self.fetch_feeds()

        on_stage(SyncStage.FETCH_ITEMS)
        if sync_type == SyncType.INITIAL:
            items = await self.fetch_items(exclude=GOOGLE_READ, max_count=self.max_items)
        else:
            items = await self.fetch_items(
                max_count=self.max_items, since=sync_data.last_modified
            )

        logger.info(
            f"FreshRSS 拉取完成: 文件夹={len(folders)}, "
            f"订阅={len(feeds)}, 文章={len(items)}"
        )
        return SyncResult(folders=tuple(folders), feeds=tuple(feeds), items=tuple(items))

    async def create_feed(self, url: str, folder: Folder | None = None) -> Feed:
        """订阅 Feed，名称在下一轮同步拉取订阅列表时更新."""
        stream_id = FEED_PREFIX + url
        remote_folder_id = folder.remote_id if folder else None
        data = {"s": stream_id, "ac": "subscribe"}
        if remote_folder_id:
            data["a"] = remote_folder_id
        await self._post("reader/api/0/subscription/edit", data)
        return Feed(
            account_id=self.account.id,
            name=url,
            url=url,
            remote_id=stream_id,
            remote_folder_id=remote_folder_id,
        )

    async def delete_feed(self, feed: Feed) -> None:
        """取消订阅."""
        await self._post(
            "reader/api/0/subscription/edit",
            {"s": feed.remote_id or FEED_PREFIX + feed.url, "ac": "unsubscribe"},
        )

    async def update_feed(
        self, feed: Feed, name: str, folder: Folder | None = None
    ) -> None:
        """修改订阅标题和文件夹."""
        data = {"s": feed.remote_id or FEED_PREFIX + feed.url, "t": name, "ac": "edit"}
        if folder and folder.remote_id:
            data["a"] = folder.remote_id
        await self._post("reader/api/0/subscription/edit", data)

    async def create_folder(self, name: str) -> str | None:
        tag = FOLDER_PREFIX + name
        await self._post("reader/api/0/edit-tag", {"a": tag})
        return tag

    async def rename_folder(self, folder: Folder, name: str) -> str | None:
        tag = FOLDER_PREFIX + name
        await self._post(
            "reader/api/0/rename-tag",
            {"s": folder.remote_id or FOLDER_PREFIX + folder.name, "dest": tag},
        )
        return tag

    async def delete_folder(self, folder: Folder) -> None:
        await self._post(
            "reader/api/0/disable-tag",
            {"s": folder.remote_id or FOLDER_PREFIX + folder.name},
        )
