"""HTTP 客户端构造."""

import httpx

from feedsync.config import Settings


def create_http_client(
    settings: Settings,
    base_url: str = "",
    auth: httpx.Auth | tuple[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """为一个账户凭据创建连接池，随账户会话关闭."""
    return httpx.AsyncClient(
        base_url=base_url,
        auth=auth,
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
        transport=transport,
    )
