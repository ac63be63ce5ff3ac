"""账户 API."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from feedsync.models.account import Account, AccountType
from feedsync.models.database import get_session

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


class AccountCreateRequest(BaseModel):
    """创建账户请求."""

    name: str
    account_type: AccountType = AccountType.LOCAL
    url: str | None = None
    login: str | None = None
    password: str | None = None


def _account_to_dict(account: Account) -> dict:
    return {
        "id": account.id,
        "name": account.name,
        "account_type": account.account_type.value,
        "url": account.url,
        "login": account.login,
        "is_initialized": account.is_initialized,
        "last_modified": account.last_modified,
        "created_at": account.created_at.isoformat(),
    }


@router.post("", status_code=201)
async def create_account(
    request: AccountCreateRequest,
    session: AsyncSession = Depends(get_session),
) -> dict:
    """创建账户."""
    if request.account_type != AccountType.LOCAL and not request.url:
        raise HTTPException(status_code=422, detail="远端账户需要填写服务端地址")

    account = Account(**request.model_dump())
    session.add(account)
    await session.commit()
    await session.refresh(account)

    return _account_to_dict(account)


@router.get("")
async def list_accounts(
    session: AsyncSession = Depends(get_session),
) -> dict:
    """获取账户列表."""
    result = await session.execute(select(Account).order_by(Account.id))
    accounts = result.scalars().all()

    return {
        "total": len(accounts),
        "items": [_account_to_dict(a) for a in accounts],
    }
