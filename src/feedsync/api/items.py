"""文章 API."""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from feedsync.api.deps import open_service
from feedsync.models.database import get_session
from feedsync.models.feed import Feed
from feedsync.models.item import Item

router = APIRouter(prefix="/api/items", tags=["items"])


class MarkReadRequest(BaseModel):
    item_ids: list[int] = Field(min_length=1)
    read: bool = True


class MarkStarredRequest(BaseModel):
    item_ids: list[int] = Field(min_length=1)
    starred: bool = True


def _item_to_dict(item: Item) -> dict:
    return {
        "id": item.id,
        "feed_id": item.feed_id,
        "guid": item.guid,
        "title": item.title,
        "link": item.link,
        "author": item.author,
        "description": item.clean_description,
        "image_link": item.image_link,
        "read_time": item.read_time,
        "pub_date": item.pub_date.isoformat() if item.pub_date else None,
        "read": item.read,
        "starred": item.starred,
    }


@router.get("")
async def list_items(
    filter: Literal["unread", "starred", "all"] = Query(
        "unread", description="筛选条件"
    ),
    account_id: int | None = Query(None, description="按账户筛选"),
    feed_id: int | None = Query(None, description="按 Feed 筛选"),
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """获取文章列表（按发布时间倒序）."""
    stmt = select(Item)
    if account_id is not None:
        stmt = stmt.join(Feed, Item.feed_id == Feed.id).where(
            Feed.account_id == account_id
        )
    if feed_id is not None:
        stmt = stmt.where(Item.feed_id == feed_id)
    if filter == "unread":
        stmt = stmt.where(Item.read.is_(False))
    elif filter == "starred":
        stmt = stmt.where(Item.starred.is_(True))

    count_result = await session.execute(
        select(func.count()).select_from(stmt.subquery())
    )
    total = count_result.scalar_one()

    stmt = (
        stmt.order_by(Item.pub_date.desc().nulls_last(), Item.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await session.execute(stmt)

    return {
        "total": total,
        "page": page,
        "limit": limit,
        "items": [_item_to_dict(i) for i in result.scalars().all()],
    }


async def _group_by_account(
    session: AsyncSession, item_ids: list[int]
) -> dict[int, list[int]]:
    stmt = (
        select(Item.id, Feed.account_id)
        .join(Feed, Item.feed_id == Feed.id)
        .where(Item.id.in_(item_ids))
    )
    result = await session.execute(stmt)

    groups: dict[int, list[int]] = {}
    for item_id, account_id in result.all():
        if account_id is not None:
            groups.setdefault(account_id, []).append(item_id)
    return groups


@router.post("/read")
async def mark_read(
    request: MarkReadRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """标记已读/未读，下次同步时上传."""
    updated = 0
    for account_id, ids in (await _group_by_account(session, request.item_ids)).items():
        async with open_service(session, account_id) as service:
            updated += await service.mark_read(ids, request.read)

    return {"updated": updated, "read": request.read}


@router.post("/starred")
async def mark_starred(
    request: MarkStarredRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """标记收藏/取消收藏，下次同步时上传."""
    updated = 0
    for account_id, ids in (await _group_by_account(session, request.item_ids)).items():
        async with open_service(session, account_id) as service:
            updated += await service.mark_starred(ids, request.starred)

    return {"updated": updated, "starred": request.starred}
