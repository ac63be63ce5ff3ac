"""API 公共依赖."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from feedsync.adapters.factory import create_adapter
from feedsync.config import get_settings
from feedsync.core.content import ContentProcessor
from feedsync.core.errors import ErrorKind, SyncError
from feedsync.core.favicon import FaviconResolver
from feedsync.core.http import create_http_client
from feedsync.core.sync import SyncService
from feedsync.models.account import Account
from feedsync.store.sql import SQLStore

ERROR_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.FORMAT: 422,
    ErrorKind.NETWORK: 502,
}


def http_error(kind: ErrorKind | None, message: str | None) -> HTTPException:
    """把错误类型转换为 HTTP 异常."""
    status_code = ERROR_STATUS.get(kind, 500) if kind else 500
    return HTTPException(status_code=status_code, detail=message or "未知错误")


def http_error_from(exc: SyncError) -> HTTPException:
    return http_error(exc.kind, exc.message)


@asynccontextmanager
async def open_service(
    session: AsyncSession, account_id: int | None, login: bool = False
) -> AsyncIterator[SyncService]:
    """为账户打开同步服务，退出时等待图标解析并关闭连接池."""
    account = await session.get(Account, account_id) if account_id else None
    if account is None:
        raise HTTPException(status_code=404, detail="账户不存在")

    settings = get_settings()
    async with create_adapter(account, settings) as adapter, create_http_client(
        settings
    ) as icon_client:
        if login:
            try:
                await adapter.login()
            except SyncError as e:
                raise http_error_from(e) from e

        service = SyncService(
            adapter,
            SQLStore(session),
            account,
            processor=ContentProcessor(settings.read_speed_wpm),
            favicon_resolver=(
                FaviconResolver(icon_client) if settings.resolve_favicons else None
            ),
        )
        try:
            yield service
            await service.drain()
        finally:
            await service.close()
