"""Feed 格式归一化.

在解析阶段识别一次格式（RSS / Atom / JSON Feed），之后下游只通过
FeedDocument 接口读取 Feed 和 Item，不再判断格式。RSS 和 Atom 由 feedparser
解析，JSON Feed 直接读取 JSON。
"""

import hashlib
import io
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar

import feedparser

from feedsync.core.errors import FormatError, ParseError
from feedsync.models.feed import Feed
from feedsync.models.item import Item
from feedsync.utils.dates import from_struct_time, parse_iso8601

logger = logging.getLogger(__name__)

JSON_FEED_VERSION_PREFIX = "https://jsonfeed.org/version/"

# 相对链接在内容后处理阶段按站点地址解析
FEEDPARSER_OPTIONS = {
    "sanitize_html": True,
    "resolve_relative_uris": False,
}


class FeedFormat(str, Enum):
    """Feed 文档格式."""

    RSS_2 = "rss2"
    ATOM = "atom"
    JSON_FEED = "json_feed"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _fallback_guid(*parts: str | None) -> str:
    raw = "\x1f".join(part or "" for part in parts)
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


class FeedDocument(ABC):
    """已解析的 Feed 文档."""

    format: ClassVar[FeedFormat]

    @abstractmethod
    def to_feed(self, url: str) -> Feed:
        """首次订阅时生成 Feed 记录."""
        ...

    @abstractmethod
    def to_items(self, feed: Feed) -> list[Item]:
        """生成属于 feed 的文章列表（保持文档顺序）."""
        ...


class _ParsedXMLDocument(FeedDocument):
    """feedparser 解析结果的公共读取逻辑."""

    def __init__(self, parsed: feedparser.FeedParserDict) -> None:
        self.parsed = parsed
        self.channel = parsed.feed

    @staticmethod
    def _text(data: feedparser.FeedParserDict, key: str) -> str | None:
        value = data.get(key)
        return _clean(value) if isinstance(value, str) else None

    @staticmethod
    def _date(entry: feedparser.FeedParserDict, key: str) -> datetime | None:
        raw = entry.get(key)
        if not raw:
            return None
        parsed = entry.get(f"{key}_parsed")
        if parsed is None:
            msg = f"无法解析日期 {raw!r}"
            raise ParseError(msg)
        return from_struct_time(parsed)

    @staticmethod
    def _content(entry: feedparser.FeedParserDict) -> str | None:
        for content in entry.get("content") or []:
            value = _clean(content.get("value"))
            if value:
                return value
        return None

    @abstractmethod
    def _image_link(self, entry: feedparser.FeedParserDict) -> str | None:
        ...

    def to_feed(self, url: str) -> Feed:
        return Feed(
            name=self._text(self.channel, "title") or url,
            url=url,
            site_url=self._text(self.channel, "link"),
            description=self._text(self.channel, "subtitle"),
        )

    def to_items(self, feed: Feed) -> list[Item]:
        items: list[Item] = []
        for entry in self.parsed.entries:
            link = self._text(entry, "link")
            title = self._text(entry, "title") or ""
            description = self._text(entry, "summary")

            pub_date = self._date(entry, "published")
            if pub_date is None:
                pub_date = self._date(entry, "updated")

            items.append(
                Item(
                    feed_id=feed.id,
                    guid=self._text(entry, "id")
                    or link
                    or _fallback_guid(feed.url, title, description),
                    title=title,
                    link=link,
                    author=self._text(entry, "author"),
                    description=description,
                    content=self._content(entry),
                    image_link=self._image_link(entry),
                    pub_date=pub_date,
                )
            )
        return items


class RSSDocument(_ParsedXMLDocument):
    """RSS 文档（0.9x / 1.0 / 2.0）."""

    format = FeedFormat.RSS_2

    def _image_link(self, entry: feedparser.FeedParserDict) -> str | None:
        for media in entry.get("media_content") or []:
            mime = media.get("type") or ""
            if media.get("url") and (
                media.get("medium") == "image" or mime.startswith("image/")
            ):
                return media["url"]

        for thumbnail in entry.get("media_thumbnail") or []:
            if thumbnail.get("url"):
                return thumbnail["url"]

        for enclosure in entry.get("enclosures") or []:
            if (enclosure.get("type") or "").startswith("image/") and enclosure.get(
                "href"
            ):
                return enclosure["href"]

        return None


class AtomDocument(_ParsedXMLDocument):
    """Atom 文档."""

    format = FeedFormat.ATOM

    def _image_link(self, entry: feedparser.FeedParserDict) -> str | None:
        for thumbnail in entry.get("media_thumbnail") or []:
            if thumbnail.get("url"):
                return thumbnail["url"]
        return None


class JSONFeedDocument(FeedDocument):
    """JSON Feed 文档.

    JSON 值的类型不受约束，所有字段读取前都做类型检查，类型不符时抛出 ParseError。
    """

    format = FeedFormat.JSON_FEED

    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data

    @staticmethod
    def _text(entry: dict[str, Any], *keys: str) -> str | None:
        """按顺序读取第一个非空的字符串字段."""
        for key in keys:
            value = entry.get(key)
            if value is None:
                continue
            if not isinstance(value, str):
                msg = f"JSON Feed 字段 {key} 不是字符串: {value!r}"
                raise ParseError(msg)
            value = _clean(value)
            if value:
                return value
        return None

    @classmethod
    def _date(cls, entry: dict[str, Any], key: str) -> datetime | None:
        value = cls._text(entry, key)
        if value is None:
            return None
        try:
            return parse_iso8601(value)
        except ValueError as e:
            msg = f"无法解析日期 {value!r}: {e}"
            raise ParseError(msg) from e

    @staticmethod
    def _guid(entry: dict[str, Any]) -> str | None:
        guid = entry.get("id")
        if guid is None or guid == "":
            return None
        if isinstance(guid, bool) or not isinstance(guid, str | int):
            msg = f"JSON Feed item id 类型无效: {guid!r}"
            raise ParseError(msg)
        return str(guid)

    @staticmethod
    def _author(entry: dict[str, Any]) -> str | None:
        authors = entry.get("authors") or []
        if not isinstance(authors, list):
            authors = []
        if isinstance(entry.get("author"), dict):
            authors = [entry["author"], *authors]
        for author in authors:
            if isinstance(author, dict) and isinstance(author.get("name"), str):
                name = _clean(author["name"])
                if name:
                    return name
        return None

    def to_feed(self, url: str) -> Feed:
        return Feed(
            name=self._text(self.data, "title") or url,
            url=url,
            site_url=self._text(self.data, "home_page_url"),
            description=self._text(self.data, "description"),
            icon_url=self._text(self.data, "favicon", "icon"),
        )

    def to_items(self, feed: Feed) -> list[Item]:
        entries = self.data.get("items")
        if not isinstance(entries, list):
            msg = "JSON Feed 缺少 items 列表"
            raise ParseError(msg)

        items: list[Item] = []
        for entry in entries:
            if not isinstance(entry, dict):
                msg = "JSON Feed item 不是对象"
                raise ParseError(msg)

            link = self._text(entry, "url")
            title = self._text(entry, "title") or ""
            description = self._text(entry, "summary")

            pub_date = self._date(entry, "date_published")
            if pub_date is None:
                pub_date = self._date(entry, "date_modified")

            items.append(
                Item(
                    feed_id=feed.id,
                    guid=self._guid(entry)
                    or link
                    or _fallback_guid(feed.url, title, description),
                    title=title,
                    link=link,
                    author=self._author(entry),
                    description=description,
                    content=self._text(entry, "content_html", "content_text"),
                    image_link=self._text(entry, "image", "banner_image"),
                    pub_date=pub_date,
                )
            )
        return items


def _parse_json(content: bytes) -> FeedDocument:
    try:
        data = json.loads(content)
    except (UnicodeDecodeError, ValueError) as e:
        msg = f"无效的 JSON 文档: {e}"
        raise FormatError(msg) from e

    if not isinstance(data, dict) or not str(data.get("version", "")).startswith(
        JSON_FEED_VERSION_PREFIX
    ):
        msg = "不是 JSON Feed 文档"
        raise FormatError(msg)
    return JSONFeedDocument(data)


def _parse_xml(content: bytes) -> FeedDocument:
    # 传入流而不是字节串，避免 feedparser 把内容当作 URL 或文件路径打开
    parsed = feedparser.parse(io.BytesIO(content), **FEEDPARSER_OPTIONS)
    version = parsed.get("version") or ""

    if parsed.bozo:
        if not parsed.entries:
            msg = f"无效的 Feed 文档: {parsed.get('bozo_exception')}"
            raise FormatError(msg)
        logger.warning(f"Feed 文档不规范，已按宽松模式解析: {parsed.get('bozo_exception')}")

    if version.startswith("rss"):
        return RSSDocument(parsed)
    if version.startswith("atom"):
        return AtomDocument(parsed)

    msg = f"无法识别的 Feed 格式: {version or 'unknown'}"
    raise FormatError(msg)


def parse_document(content: bytes, content_type: str | None = None) -> FeedDocument:
    """识别格式并解析 Feed 文档.

    Raises:
        FormatError: 无法识别或格式错误
    """
    if not content or not content.strip():
        msg = "空文档"
        raise FormatError(msg)

    mime = (content_type or "").split(";")[0].strip().lower()
    if mime.endswith("json") or content.lstrip().startswith(b"{"):
        return _parse_json(content)
    return _parse_xml(content)
