# Fetchers module - 数据获取模块
# 包含 FetchResult 数据类和 RSS 订阅源获取器

from .base import FetchResult
from .rss_fetcher import (
    RSSFetcher,
    clean_content,
    clean_title,
    extract_image_url,
    parse_published_at,
)

__all__ = [
    "FetchResult",
    "RSSFetcher",
    "clean_content",
    "clean_title",
    "extract_image_url",
    "parse_published_at",
]
