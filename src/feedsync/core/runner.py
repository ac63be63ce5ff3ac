"""同步任务执行器."""

import asyncio
import logging
from collections.abc import Sequence

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from feedsync.adapters.factory import create_adapter
from feedsync.config import Settings
from feedsync.core.content import ContentProcessor
from feedsync.core.errors import NotFoundError
from feedsync.core.favicon import FaviconResolver
from feedsync.core.http import create_http_client
from feedsync.core.results import SyncReport
from feedsync.core.sync import SyncService
from feedsync.models.account import Account
from feedsync.store.sql import SQLStore

logger = logging.getLogger(__name__)


class SyncRunner:
    """执行同步轮次.

    全局并发数由信号量限制；同一账户的轮次通过账户锁串行执行。
    每个轮次使用自己的数据库会话和连接池。
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.transport = transport
        self._semaphore = asyncio.Semaphore(settings.sync_concurrency)
        self._locks: dict[int, asyncio.Lock] = {}

    def _lock_for(self, account_id: int) -> asyncio.Lock:
        if account_id not in self._locks:
            self._locks[account_id] = asyncio.Lock()
        return self._locks[account_id]

    def is_running(self, account_id: int) -> bool:
        """账户是否有正在执行的轮次."""
        lock = self._locks.get(account_id)
        return lock is not None and lock.locked()

    async def run(
        self, account_id: int, feed_ids: Sequence[int] | None = None
    ) -> SyncReport:
        """同步一个账户.

        Raises:
            NotFoundError: 账户不存在
            SyncError: 登录或传输层失败导致轮次中止
        """
        lock = self._lock_for(account_id)
        if lock.locked():
            logger.info(f"[账户 {account_id}] 已有同步在运行，等待其完成")

        async with lock, self._semaphore:
            async with self.session_factory() as session:
                account = await session.get(Account, account_id)
                if account is None:
                    msg = f"账户不存在: {account_id}"
                    raise NotFoundError(msg)

                store = SQLStore(session)
                async with create_adapter(
                    account, self.settings, transport=self.transport
                ) as adapter, create_http_client(
                    self.settings, transport=self.transport
                ) as icon_client:
                    service = SyncService(
                        adapter,
                        store,
                        account,
                        processor=ContentProcessor(self.settings.read_speed_wpm),
                        favicon_resolver=(
                            FaviconResolver(icon_client)
                            if self.settings.resolve_favicons
                            else None
                        ),
                    )
                    return await service.sync(feed_ids)

    async def run_all(self) -> list[SyncReport]:
        """并发同步所有账户，单个账户失败只记录日志."""
        async with self.session_factory() as session:
            result = await session.execute(select(Account.id).order_by(Account.id))
            account_ids = list(result.scalars().all())

        if not account_ids:
            logger.info("没有需要同步的账户")
            return []

        outcomes = await asyncio.gather(
            *(self.run(account_id) for account_id in account_ids),
            return_exceptions=True,
        )

        reports: list[SyncReport] = []
        for account_id, outcome in zip(account_ids, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(f"[账户 {account_id}] 同步失败: {outcome}")
                continue
            reports.append(outcome)
        return reports


_runner: SyncRunner | None = None


def get_runner(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> SyncRunner:
    """获取进程内共享的执行器，API 和定时任务共用同一组账户锁."""
    global _runner
    if _runner is None:
        _runner = SyncRunner(settings, session_factory)
    return _runner


def reset_runner() -> None:
    """丢弃共享执行器（关闭应用或测试时使用）."""
    global _runner
    _runner = None
