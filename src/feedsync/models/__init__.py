"""数据模型."""

from feedsync.models.account import Account, AccountType
from feedsync.models.database import get_session, init_db
from feedsync.models.feed import Feed
from feedsync.models.folder import Folder
from feedsync.models.item import Item
from feedsync.models.sync import SyncStatus

__all__ = [
    "Account",
    "AccountType",
    "Feed",
    "Folder",
    "Item",
    "SyncStatus",
    "get_session",
    "init_db",
]
