"""远端同步适配器."""

from feedsync.adapters.base import SyncAdapter
from feedsync.adapters.factory import create_adapter
from feedsync.adapters.freshrss import FreshRSSAdapter
from feedsync.adapters.local import LocalFeedAdapter, QueryResult
from feedsync.adapters.nextcloud import NextcloudNewsAdapter

__all__ = [
    "FreshRSSAdapter",
    "LocalFeedAdapter",
    "NextcloudNewsAdapter",
    "QueryResult",
    "SyncAdapter",
    "create_adapter",
]
