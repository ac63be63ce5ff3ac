"""文件夹 API."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from feedsync.api.deps import http_error, open_service
from feedsync.models.database import get_session
from feedsync.models.folder import Folder
from feedsync.store.sql import SQLStore

router = APIRouter(prefix="/api/folders", tags=["folders"])


class FolderCreateRequest(BaseModel):
    account_id: int
    name: str


class FolderRenameRequest(BaseModel):
    name: str


@router.get("")
async def list_folders(
    account_id: int | None = Query(None, description="按账户筛选"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    """获取文件夹列表（按名称排序）."""
    folders = await SQLStore(session).list_folders(account_id)

    return {
        "total": len(folders),
        "items": [
            {
                "id": f.id,
                "account_id": f.account_id,
                "name": f.name,
                "remote_id": f.remote_id,
            }
            for f in folders
        ],
    }


@router.post("", status_code=201)
async def create_folder(
    request: FolderCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """创建文件夹."""
    async with open_service(session, request.account_id, login=True) as service:
        result = await service.create_folder(request.name)

    if not result.ok:
        raise http_error(result.error, result.message)

    folder = await service.store.get_folder_by_name(request.account_id, request.name)
    return {
        "id": folder.id if folder else None,
        "account_id": request.account_id,
        "name": request.name,
        "remote_id": result.remote_id,
    }


async def _get_folder_or_404(session: AsyncSession, folder_id: int) -> Folder:
    folder = await session.get(Folder, folder_id)
    if not folder:
        raise HTTPException(status_code=404, detail="文件夹不存在")
    return folder


@router.patch("/{folder_id}")
async def rename_folder(
    folder_id: int,
    request: FolderRenameRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """重命名文件夹."""
    folder = await _get_folder_or_404(session, folder_id)

    async with open_service(session, folder.account_id, login=True) as service:
        result = await service.rename_folder(folder_id, request.name)

    if not result.ok:
        raise http_error(result.error, result.message)

    return {"id": folder_id, "name": request.name, "remote_id": result.remote_id}


@router.delete("/{folder_id}")
async def delete_folder(
    folder_id: int,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """删除文件夹，其中的订阅移到未分组."""
    folder = await _get_folder_or_404(session, folder_id)

    async with open_service(session, folder.account_id, login=True) as service:
        result = await service.delete_folder(folder_id)

    if not result.ok:
        raise http_error(result.error, result.message)

    return {"id": folder_id, "deleted": True}
