"""测试配置和 fixtures."""

from collections.abc import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from feedsync.models.account import Account, AccountType
from feedsync.models.feed import Feed
from feedsync.store.sql import SQLStore

Handler = Callable[[httpx.Request], httpx.Response]

RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example Blog</title>
    <link>https://blog.example.com</link>
    <description>Posts about things</description>
    <item>
      <title>Newer post</title>
      <link>https://blog.example.com/newer</link>
      <guid>https://blog.example.com/newer</guid>
      <pubDate>Wed, 02 Oct 2024 10:00:00 GMT</pubDate>
      <description>&lt;p&gt;Second&lt;/p&gt;</description>
    </item>
    <item>
      <title>Older post</title>
      <link>https://blog.example.com/older</link>
      <guid>https://blog.example.com/older</guid>
      <pubDate>Tue, 01 Oct 2024 10:00:00 GMT</pubDate>
      <description>&lt;p&gt;&lt;img src="/cover.png"&gt;&lt;/p&gt;&lt;p&gt;First&lt;/p&gt;</description>
    </item>
  </channel>
</rss>
"""


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """创建测试用的内存数据库会话工厂."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """创建测试用的数据库会话."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(async_session: AsyncSession) -> SQLStore:
    return SQLStore(async_session)


async def _add_account(session: AsyncSession, account: Account) -> Account:
    session.add(account)
    await session.commit()
    await session.refresh(account)
    return account


@pytest_asyncio.fixture
async def local_account(async_session: AsyncSession) -> Account:
    """本地账户."""
    return await _add_account(async_session, Account(name="Local"))


@pytest_asyncio.fixture
async def freshrss_account(async_session: AsyncSession) -> Account:
    """FreshRSS 账户."""
    return await _add_account(
        async_session,
        Account(
            name="FreshRSS",
            account_type=AccountType.FRESHRSS,
            url="https://rss.example.com",
            login="alice",
            password="secret",
        ),
    )


@pytest_asyncio.fixture
async def nextcloud_account(async_session: AsyncSession) -> Account:
    """Nextcloud News 账户."""
    return await _add_account(
        async_session,
        Account(
            name="Nextcloud",
            account_type=AccountType.NEXTCLOUD,
            url="https://cloud.example.com",
            login="bob",
            password="secret",
        ),
    )


@pytest_asyncio.fixture
async def local_feed(store: SQLStore, local_account: Account) -> Feed:
    """本地账户下的 Feed."""
    feed = Feed(
        account_id=local_account.id,
        name="Example Blog",
        url="https://blog.example.com/feed.xml",
        site_url="https://blog.example.com",
    )
    await store.insert_feed(feed)
    return feed


def mock_client(handler: Handler) -> httpx.AsyncClient:
    """使用 MockTransport 的 HTTP 客户端."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
