"""文章内容后处理：纯文本摘要、封面图、阅读时间."""

from feedsync.models.item import Item
from feedsync.utils.html_parser import (
    delete_cover_image,
    estimate_reading_time,
    extract_first_image,
    html_to_text,
)


class ContentProcessor:
    """入库前的文章内容处理器.

    只处理尚未入库的文章，返回新的 Item，不修改传入的对象。
    """

    def __init__(self, read_speed_wpm: int = 200) -> None:
        self.read_speed_wpm = read_speed_wpm

    def process(self, item: Item, site_url: str | None = None) -> Item:
        """处理单篇文章."""
        result = Item(**item.model_dump())

        if result.description:
            result.clean_description = html_to_text(result.description)

            if result.image_link is None:
                result.image_link = extract_first_image(result.description, site_url)

        # 封面图可能来自 media 字段，也可能来自上面的摘要提取
        if result.image_link:
            if result.content:
                result.content = delete_cover_image(result.content)
            elif result.description:
                result.description = delete_cover_image(result.description)

        if result.content:
            result.read_time = estimate_reading_time(
                html_to_text(result.content), self.read_speed_wpm
            )
        elif result.description:
            result.read_time = estimate_reading_time(
                result.clean_description or "", self.read_speed_wpm
            )

        return result
