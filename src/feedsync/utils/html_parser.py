"""HTML 解析工具."""

import re
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, NavigableString, Tag


def html_to_text(html: str) -> str:
    """
    将 HTML 转换为纯文本.

    Args:
        html: HTML 内容

    Returns:
        提取的纯文本内容
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "lxml")

    # 移除 script 和 style 标签
    for element in soup(["script", "style"]):
        element.decompose()

    text = soup.get_text(separator="\n")

    # 清理多余空白
    lines = []
    for line in text.split("\n"):
        line = line.strip()
        if line:
            lines.append(line)

    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)

    return text.strip()


def resolve_url(src: str, base_url: str | None) -> str | None:
    """将相对地址解析为绝对 http(s) 地址，无法解析时返回 None."""
    src = src.strip()
    if not src:
        return None

    resolved = urljoin(base_url, src) if base_url else src
    if urlparse(resolved).scheme not in ("http", "https"):
        return None
    return resolved


def extract_first_image(html: str, base_url: str | None = None) -> str | None:
    """
    提取 HTML 中第一张可解析的图片 URL.

    Args:
        html: HTML 内容
        base_url: 用于解析相对地址的站点 URL

    Returns:
        图片 URL 或 None
    """
    if not html:
        return None

    soup = BeautifulSoup(html, "lxml")
    for img in soup.find_all("img"):
        src = img.get("src")
        if isinstance(src, list):
            src = src[0] if src else None
        if not src:
            continue

        resolved = resolve_url(src, base_url)
        if resolved:
            return resolved

    return None


def _is_blank(node: object) -> bool:
    return isinstance(node, NavigableString) and not node.strip()


def delete_cover_image(html: str) -> str:
    """
    删除位于开头的封面图片.

    只有当第一张图片之前没有任何文本时才删除，并且只删除一张。
    包裹图片的空元素（如 <p>、<figure>、<a>）一并删除。
    """
    if not html:
        return html

    soup = BeautifulSoup(html, "lxml")
    body = soup.body
    if body is None:
        return html

    img = body.find("img")
    if img is None:
        return html

    for text in img.find_all_previous(string=True):
        if text.find_parent("body") is body and text.strip():
            return html

    node: Tag = img
    parent = img.parent
    while (
        parent is not None
        and parent is not body
        and all(child is node or _is_blank(child) for child in parent.contents)
    ):
        node = parent
        parent = parent.parent

    node.decompose()
    return "".join(str(child) for child in body.contents).strip()


def count_words(text: str) -> int:
    """
    统计文本字数.

    对于中文，按字符计数；对于英文，按单词计数。
    """
    if not text:
        return 0

    chinese_chars = len(re.findall(r"[\u4e00-\u9fff]", text))

    english_text = re.sub(r"[\u4e00-\u9fff]", " ", text)
    english_words = len(english_text.split())

    return chinese_chars + english_words


def estimate_reading_time(text: str, wpm: int = 200) -> int:
    """
    估算阅读时间（分钟）.

    Args:
        text: 文本内容
        wpm: 每分钟阅读字数，默认 200

    Returns:
        阅读时间（分钟），最小 1
    """
    word_count = count_words(text)
    return max(1, round(word_count / wpm))
