"""同步 API."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from feedsync.api.deps import http_error_from
from feedsync.config import get_settings
from feedsync.core.errors import SyncError
from feedsync.core.runner import get_runner
from feedsync.models.database import async_session_maker, get_session
from feedsync.models.sync import SyncStatus

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("/{account_id}")
async def trigger_sync(account_id: int) -> dict:
    """触发账户同步，等待本轮完成后返回结果."""
    runner = get_runner(get_settings(), async_session_maker())

    try:
        report = await runner.run(account_id)
    except SyncError as e:
        raise http_error_from(e) from e

    return {
        "success": report.success,
        "partial": report.partial,
        "sync_type": report.sync_type,
        "stage": report.stage.value,
        "folders_inserted": report.folders_inserted,
        "feeds_inserted": report.feeds_inserted,
        "items_inserted": report.items_inserted,
        "failed_feeds": [
            {
                "url": r.url,
                "error": r.error.value if r.error else None,
                "message": r.message,
            }
            for r in report.result.failed_feeds
        ],
    }


@router.get("/status")
async def get_sync_status(
    account_id: int | None = Query(None, description="按账户筛选"),
    limit: int = Query(5, ge=1, le=50, description="返回数量"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """获取最近同步状态."""
    stmt = select(SyncStatus).order_by(SyncStatus.id.desc()).limit(limit)
    if account_id is not None:
        stmt = stmt.where(SyncStatus.account_id == account_id)
    result = await session.execute(stmt)
    statuses = result.scalars().all()

    return {
        "items": [
            {
                "id": s.id,
                "account_id": s.account_id,
                "sync_type": s.sync_type,
                "status": s.status,
                "items_inserted": s.items_inserted,
                "feeds_failed": s.feeds_failed,
                "error_message": s.error_message,
                "started_at": s.started_at.isoformat(),
                "completed_at": s.completed_at.isoformat() if s.completed_at else None,
            }
            for s in statuses
        ]
    }
