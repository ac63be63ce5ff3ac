"""同步适配器工厂."""

import httpx

from feedsync.adapters.base import SyncAdapter
from feedsync.adapters.freshrss import FreshRSSAdapter
from feedsync.adapters.local import LocalFeedAdapter
from feedsync.adapters.nextcloud import NextcloudNewsAdapter
from feedsync.config import Settings
from feedsync.core.http import create_http_client
from feedsync.models.account import Account, AccountType


def create_adapter(
    account: Account,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SyncAdapter:
    """根据账户类型创建适配器，每个适配器持有该账户自己的连接池."""
    if account.account_type == AccountType.FRESHRSS:
        client = create_http_client(settings, transport=transport)
        return FreshRSSAdapter(account, client, max_items=settings.freshrss_max_items)

    if account.account_type == AccountType.NEXTCLOUD:
        client = create_http_client(
            settings,
            auth=(account.login or "", account.password or ""),
            transport=transport,
        )
        return NextcloudNewsAdapter(account, client)

    client = create_http_client(settings, transport=transport)
    return LocalFeedAdapter(account, client)
