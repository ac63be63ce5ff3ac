"""同步过程中的临时结果对象.

所有结果都是不可变值，阶段之间通过 merge 显式合并。
"""

from dataclasses import dataclass, field
from enum import Enum

from feedsync.core.errors import ErrorKind, SyncError
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item


class SyncType(str, Enum):
    """同步类型."""

    INITIAL = "initial"
    CLASSIC = "classic"
    LOCAL = "local"


class SyncStage(str, Enum):
    """同步轮次的阶段."""

    START = "start"
    PUSH_LOCAL_STATE = "push_local_state"
    FETCH_FOLDERS = "fetch_folders"
    FETCH_FEEDS = "fetch_feeds"
    FETCH_ITEMS = "fetch_items"
    MERGE_AND_PERSIST = "merge_and_persist"
    DONE = "done"


class StateKind(str, Enum):
    """可上传的文章状态."""

    READ = "read"
    STARRED = "starred"


@dataclass(frozen=True)
class SyncData:
    """一轮同步的输入：待上传的本地状态变更和要抓取的 Feed."""

    read_ids: tuple[str, ...] = ()
    unread_ids: tuple[str, ...] = ()
    starred_ids: tuple[str, ...] = ()
    unstarred_ids: tuple[str, ...] = ()
    last_modified: int | None = None
    # 本地账户本轮要抓取的 Feed
    feeds: tuple[Feed, ...] = ()

    @property
    def has_read_changes(self) -> bool:
        return bool(self.read_ids or self.unread_ids)

    @property
    def has_star_changes(self) -> bool:
        return bool(self.starred_ids or self.unstarred_ids)

    @property
    def has_changes(self) -> bool:
        return self.has_read_changes or self.has_star_changes


@dataclass(frozen=True)
class FeedInsertionResult:
    """单个 Feed 的处理结果."""

    feed: Feed | None = None
    url: str | None = None
    error: ErrorKind | None = None
    message: str | None = None
    already_inserted: bool = False
    new_items: int = 0

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def failed(
        cls, exc: SyncError, feed: Feed | None = None, url: str | None = None
    ) -> "FeedInsertionResult":
        return cls(
            feed=feed,
            url=url or (feed.url if feed else None),
            error=exc.kind,
            message=exc.message,
        )


@dataclass(frozen=True)
class OperationResult:
    """创建/重命名/删除操作的结果."""

    error: ErrorKind | None = None
    message: str | None = None
    remote_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, exc: SyncError) -> "OperationResult":
        return cls(error=exc.kind, message=exc.message)


@dataclass(frozen=True)
class FeedValidators:
    """抓取成功后要保存的 HTTP 缓存校验值."""

    feed_id: int
    etag: str | None = None
    last_modified: str | None = None


@dataclass(frozen=True)
class SyncResult:
    """一次同步轮次拉取到的数据和逐 Feed 结果."""

    folders: tuple[Folder, ...] = ()
    feeds: tuple[Feed, ...] = ()
    items: tuple[Item, ...] = ()
    insertion_results: tuple[FeedInsertionResult, ...] = ()
    validators: tuple[FeedValidators, ...] = ()
    is_error: bool = False

    def merge(self, other: "SyncResult") -> "SyncResult":
        """合并两个结果."""
        return SyncResult(
            folders=self.folders + other.folders,
            feeds=self.feeds + other.feeds,
            items=self.items + other.items,
            insertion_results=self.insertion_results + other.insertion_results,
            validators=self.validators + other.validators,
            is_error=self.is_error or other.is_error,
        )

    @property
    def failed_feeds(self) -> tuple[FeedInsertionResult, ...]:
        return tuple(r for r in self.insertion_results if r.is_error)


@dataclass(frozen=True)
class SyncReport:
    """同步轮次的最终报告."""

    account_id: int
    sync_type: str
    stage: SyncStage
    result: SyncResult = field(default_factory=SyncResult)
    folders_inserted: int = 0
    feeds_inserted: int = 0
    items_inserted: int = 0

    @property
    def success(self) -> bool:
        return self.stage == SyncStage.DONE and not self.result.is_error

    @property
    def partial(self) -> bool:
        return self.stage == SyncStage.DONE and (
            self.result.is_error or bool(self.result.failed_feeds)
        )
