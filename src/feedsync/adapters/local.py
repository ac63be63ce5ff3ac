"""本地 RSS 适配器：直接抓取 Feed 文档."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import httpx

from feedsync.adapters.base import StageCallback, SyncAdapter, ignore_stage
from feedsync.core.errors import (
    HTTP_NOT_MODIFIED,
    NetworkError,
    SyncError,
    UnknownError,
    classify_exception,
)
from feedsync.core.normalizer import FeedDocument, parse_document
from feedsync.core.results import (
    FeedInsertionResult,
    FeedValidators,
    StateKind,
    SyncData,
    SyncResult,
    SyncStage,
    SyncType,
)
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item

logger = logging.getLogger(__name__)

IF_NONE_MATCH_HEADER = "If-None-Match"
IF_MODIFIED_SINCE_HEADER = "If-Modified-Since"

# 抓取和解析中可预期的错误，其余异常同样记在该 Feed 上，但会记录堆栈
EXPECTED_FEED_ERRORS = (SyncError, httpx.HTTPError, OSError)


@dataclass(frozen=True)
class QueryResult:
    """一次 Feed 抓取的结果."""

    url: str
    document: FeedDocument | None
    etag: str | None = None
    last_modified: str | None = None

    @property
    def not_modified(self) -> bool:
        return self.document is None


class LocalFeedAdapter(SyncAdapter):
    """本地账户适配器.

    同步时逐个条件请求 Feed；文件夹和 Feed 只存在于本地库中，相关操作无需访问网络。
    """

    async def query(
        self,
        url: str,
        etag: str | None = None,
        last_modified: str | None = None,
    ) -> QueryResult:
        """条件请求抓取 Feed，304 返回 not_modified 结果.

        Raises:
            NetworkError: 请求失败或非 2xx 响应
            FormatError: 无法识别的文档
        """
        headers: dict[str, str] = {}
        if etag:
            headers[IF_NONE_MATCH_HEADER] = etag
        if last_modified:
            headers[IF_MODIFIED_SINCE_HEADER] = last_modified

        response = await self._client.get(url, headers=headers)

        if response.status_code == HTTP_NOT_MODIFIED:
            logger.debug(f"Feed 未修改: {url}")
            return QueryResult(
                url=url, document=None, etag=etag, last_modified=last_modified
            )

        if not response.is_success:
            msg = f"GET {url} -> HTTP {response.status_code}"
            raise NetworkError(msg, status_code=response.status_code)

        document = parse_document(response.content, response.headers.get("content-type"))
        return QueryResult(
            url=url,
            document=document,
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
        )

    async def _poll(self, feed: Feed) -> SyncResult:
        """抓取单个 Feed，任何错误都只记在这个 Feed 上."""
        try:
            query = await self.query(feed.url, feed.etag, feed.last_modified)
            if query.document is None:
                return SyncResult()
            items = query.document.to_items(feed)
        except Exception as e:
            error = classify_exception(e)
            message = f"Feed 抓取失败 {feed.url}: [{error.kind.value}] {error.message}"
            if isinstance(e, EXPECTED_FEED_ERRORS):
                logger.warning(message)
            else:
                logger.exception(message)
            failed = FeedInsertionResult.failed(error, feed=feed)
            return SyncResult(insertion_results=(failed,))

        # 只在抓取和解析都成功时更新缓存校验值
        return SyncResult(
            items=tuple(items),
            validators=(FeedValidators(feed.id, query.etag, query.last_modified),),
        )

    async def sync(
        self,
        sync_type: SyncType,
        sync_data: SyncData,
        on_stage: StageCallback = ignore_stage,
    ) -> SyncResult:
        """按顺序抓取 sync_data.feeds，单个 Feed 失败不影响其他 Feed."""
        on_stage(SyncStage.FETCH_ITEMS)
        result = SyncResult()
        for feed in sync_data.feeds:
            result = result.merge(await self._poll(feed))

        logger.info(
            f"本地抓取完成: Feed={len(sync_data.feeds)}, 文章={len(result.items)}, "
            f"失败={len(result.failed_feeds)}"
        )
        return result

    async def create_feed(self, url: str, folder: Folder | None = None) -> Feed:
        """抓取一次 Feed 读取名称和站点地址."""
        query = await self.query(url)
        if query.document is None:
            msg = f"首次抓取返回 304: {url}"
            raise UnknownError(msg)
        return query.document.to_feed(url)

    async def login(self) -> None:
        return None

    async def fetch_folders(self) -> list[Folder]:
        return []

    async def fetch_feeds(self) -> list[Feed]:
        return []

    async def fetch_items(
        self,
        exclude: str | None = None,
        max_count: int | None = None,
        since: int | None = None,
    ) -> list[Item]:
        return []

    async def push_item_state(
        self, ids: Sequence[str], kind: StateKind, on: bool
    ) -> None:
        return None

    async def delete_feed(self, feed: Feed) -> None:
        return None

    async def update_feed(
        self, feed: Feed, name: str, folder: Folder | None = None
    ) -> None:
        return None

    async def create_folder(self, name: str) -> str | None:
        return None

    async def rename_folder(self, folder: Folder, name: str) -> str | None:
        return None

    async def delete_folder(self, folder: Folder) -> None:
        return None
