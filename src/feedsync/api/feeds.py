"""Feed 订阅源 API."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from feedsync.api.deps import http_error, open_service
from feedsync.models.database import get_session
from feedsync.models.feed import Feed

router = APIRouter(prefix="/api/feeds", tags=["feeds"])


class FeedCreateRequest(BaseModel):
    """添加订阅请求."""

    account_id: int
    url: str
    folder_id: int | None = None


class FeedUpdateRequest(BaseModel):
    """修改订阅请求."""

    name: str
    folder_id: int | None = None


def _feed_to_dict(feed: Feed) -> dict:
    return {
        "id": feed.id,
        "account_id": feed.account_id,
        "name": feed.name,
        "url": feed.url,
        "site_url": feed.site_url,
        "icon_url": feed.icon_url,
        "folder_id": feed.folder_id,
        "remote_id": feed.remote_id,
    }


@router.get("")
async def list_feeds(
    account_id: int | None = Query(None, description="按账户筛选"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """获取订阅列表."""
    stmt = select(Feed).order_by(Feed.name.asc())
    if account_id is not None:
        stmt = stmt.where(Feed.account_id == account_id)
    result = await session.execute(stmt)
    feeds = result.scalars().all()

    return {
        "total": len(feeds),
        "items": [_feed_to_dict(f) for f in feeds],
    }


@router.post("", status_code=201)
async def add_feed(
    request: FeedCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """添加订阅."""
    async with open_service(session, request.account_id, login=True) as service:
        result = await service.add_feed(request.url, request.folder_id)

    if result.already_inserted:
        raise HTTPException(status_code=409, detail=f"订阅已存在: {request.url}")
    if result.is_error or result.feed is None:
        raise http_error(result.error, result.message)

    return _feed_to_dict(result.feed)


async def _get_feed_or_404(session: AsyncSession, feed_id: int) -> Feed:
    feed = await session.get(Feed, feed_id)
    if not feed:
        raise HTTPException(status_code=404, detail="Feed 不存在")
    return feed


@router.patch("/{feed_id}")
async def update_feed(
    feed_id: int,
    request: FeedUpdateRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """修改订阅名称和文件夹."""
    feed = await _get_feed_or_404(session, feed_id)

    async with open_service(session, feed.account_id, login=True) as service:
        result = await service.update_feed(feed_id, request.name, request.folder_id)

    if not result.ok:
        raise http_error(result.error, result.message)

    return {"id": feed_id, "name": request.name, "folder_id": request.folder_id}


@router.delete("/{feed_id}")
async def delete_feed(
    feed_id: int,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """删除订阅及其文章."""
    feed = await _get_feed_or_404(session, feed_id)

    async with open_service(session, feed.account_id, login=True) as service:
        result = await service.delete_feed(feed_id)

    if not result.ok:
        raise http_error(result.error, result.message)

    return {"id": feed_id, "deleted": True}
