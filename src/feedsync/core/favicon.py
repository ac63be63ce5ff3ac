"""站点图标解析."""

import logging
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

ICON_RELS = ("icon", "shortcut icon", "apple-touch-icon")


class FaviconResolver:
    """从站点首页解析图标地址."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def resolve(self, site_url: str | None) -> str | None:
        """返回图标 URL，站点无法访问时退回 /favicon.ico."""
        if not site_url:
            return None

        parsed = urlparse(site_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return None
        fallback = f"{parsed.scheme}://{parsed.netloc}/favicon.ico"

        try:
            response = await self._client.get(site_url)
        except httpx.HTTPError as e:
            logger.debug(f"获取站点首页失败 {site_url}: {e}")
            return fallback

        if not response.is_success:
            return fallback

        soup = BeautifulSoup(response.text, "lxml")
        for link in soup.find_all("link", href=True):
            rel = link.get("rel") or []
            rel_value = " ".join(rel).lower() if isinstance(rel, list) else rel.lower()
            if rel_value in ICON_RELS:
                return urljoin(str(response.url), link["href"])

        return fallback
