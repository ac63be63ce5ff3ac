"""本地存储访问层."""

from feedsync.store.base import StoreGateway
from feedsync.store.sql import SQLStore

__all__ = ["SQLStore", "StoreGateway"]
