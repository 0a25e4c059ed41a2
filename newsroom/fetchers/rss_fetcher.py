"""
RSSFetcher - RSS订阅源获取器
RSSFetcher - RSS Feed Fetcher

从订阅源目录中的每个订阅源获取最新条目，并转换为 RawItem。
Fetches the newest entries of each catalog source and normalizes them into RawItems.

- 每个订阅源只取前 N 条（默认5条，按订阅源返回顺序）
- 标题去除末尾的 "- Publisher Name" 后缀并压缩空白
- 内容去除HTML标签、压缩空白并截断到500字符
- 单个订阅源失败时记录错误并返回空结果，不影响其他订阅源
- 单次运行内不重试
"""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any

import feedparser
import requests
from bs4 import BeautifulSoup

from newsroom.exceptions import FeedValidationError
from newsroom.fetchers.base import FetchResult
from newsroom.models import RawItem, Source, utc_now

logger = logging.getLogger(__name__)


# 末尾的 "- Publisher Name" 后缀（连字符、en dash 或 em dash）
PUBLISHER_SUFFIX_PATTERN = re.compile(r'\s*[-–—]\s*[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s*$')
WHITESPACE_PATTERN = re.compile(r'\s+')

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def clean_title(title: str | None) -> str:
    """
    清洗条目标题
    Clean an entry title

    去除末尾的出版方后缀，压缩空白。
    Strips a trailing publisher suffix and collapses whitespace.

    Examples:
        >>> clean_title('Storm hits coast - Reuters')
        'Storm hits coast'
        >>> clean_title('  Markets   rally – The Wall Street  ')
        'Markets rally'
        >>> clean_title('Results: 3 - 2')
        'Results: 3 - 2'
    """
    if not title:
        return ""
    title = PUBLISHER_SUFFIX_PATTERN.sub('', title)
    return WHITESPACE_PATTERN.sub(' ', title).strip()


def html_to_text(fragment: str) -> str:
    """
    将HTML片段转换为纯文本
    Convert an HTML fragment to plain text

    用 BeautifulSoup 解析并提取文本；对结果重复解析直到不再变化，
    这样 &lt;b&gt; 这类二次转义的标签也会被去除，而 "5 &lt; 10" 之类的正文保留。

    Examples:
        >>> html_to_text('Profits rose 5 &lt; 10 percent')
        'Profits rose 5 < 10 percent'
        >>> html_to_text('&lt;p&gt;Fish &amp;amp; chips&lt;/p&gt;')
        'Fish & chips'
    """
    text = WHITESPACE_PATTERN.sub(' ', fragment).strip()
    while True:
        parsed = BeautifulSoup(text, 'html.parser').get_text(' ', strip=True)
        parsed = WHITESPACE_PATTERN.sub(' ', parsed).strip()
        if parsed == text:
            return parsed
        text = parsed


def clean_content(content: str | None, max_length: int = 500) -> str:
    """
    清洗条目内容
    Clean entry content

    去除HTML标签，压缩空白，截断到 max_length 个字符。
    Strips HTML tags, collapses whitespace, truncates to max_length characters.

    Examples:
        >>> clean_content('<p>Hello   <b>world</b></p>')
        'Hello world'
        >>> len(clean_content('x' * 800))
        500
    """
    if not content:
        return ""
    return html_to_text(content)[:max_length].rstrip()


def extract_image_url(entry: Any) -> str | None:
    """
    提取条目图片URL
    Extract the entry image URL

    依次尝试：enclosure、media thumbnail、正文中嵌入的第一张图片。
    Tries, in order: enclosure, media thumbnail, first embedded <img>.
    """
    for enclosure in entry.get('enclosures') or []:
        url = enclosure.get('href') or enclosure.get('url')
        if url:
            return url

    for thumbnail in entry.get('media_thumbnail') or []:
        url = thumbnail.get('url')
        if url:
            return url

    html_fragments = [entry.get('summary') or '']
    for content in entry.get('content') or []:
        html_fragments.append(content.get('value') or '')
    for fragment in html_fragments:
        if '<img' not in fragment.lower():
            continue
        img = BeautifulSoup(fragment, 'html.parser').find('img')
        if img and img.get('src'):
            return img.get('src')

    return None


def parse_published_at(entry: Any) -> datetime:
    """
    解析条目的发布时间
    Parse entry's published time

    依次尝试 published_parsed、updated_parsed，无法解析时返回当前时间。
    Tries published_parsed then updated_parsed; falls back to now.
    """
    for key in ('published_parsed', 'updated_parsed'):
        time_struct = entry.get(key)
        if time_struct:
            try:
                return datetime(*time_struct[:6], tzinfo=timezone.utc)
            except (ValueError, TypeError):
                continue
    return utc_now()


class RSSFetcher:
    """
    RSS订阅源获取器
    RSS Feed Fetcher

    Attributes:
        max_items_per_source: 每个订阅源最多取的条目数
        content_max_length: 内容最大长度
        timeout: 请求超时时间（秒）
        max_workers: 并发抓取线程数，1 表示顺序抓取
        proxy: 代理URL（可选）
        user_agent: 请求使用的 User-Agent
    """

    def __init__(self, config: dict[str, Any] | None = None):
        """
        初始化获取器
        Initialize the fetcher

        Args:
            config: 配置字典，包含以下键：
                   - max_items_per_source: 每个订阅源条目数 (int, default=5)
                   - content_max_length: 内容最大长度 (int, default=500)
                   - timeout: 请求超时时间秒数 (int, default=30)
                   - max_workers: 最大并发线程数 (int, default=1)
                   - proxy: 代理URL (str, optional)
                   - user_agent: 自定义User-Agent (str, optional)
        """
        config = config or {}
        self.max_items_per_source: int = config.get('max_items_per_source', 5)
        self.content_max_length: int = config.get('content_max_length', 500)
        self.timeout: int = config.get('timeout', 30)
        self.max_workers: int = max(1, config.get('max_workers', 1))
        self.proxy: str | None = config.get('proxy')
        self.user_agent: str = config.get('user_agent') or DEFAULT_USER_AGENT

    def _get_proxies(self) -> dict | None:
        if not self.proxy:
            return None
        return {'http': self.proxy, 'https': self.proxy}

    def _download_feed(self, url: str) -> Any:
        """
        下载并解析订阅源
        Download and parse a feed

        Raises:
            requests.RequestException: 网络错误或HTTP错误状态
            ValueError: 响应无法解析为订阅源
        """
        response = requests.get(
            url,
            headers={'User-Agent': self.user_agent},
            timeout=self.timeout,
            proxies=self._get_proxies(),
        )
        response.raise_for_status()

        feed = feedparser.parse(response.content)
        if feed.get('bozo') and not feed.get('entries'):
            raise ValueError(f"无法解析订阅源: {feed.get('bozo_exception')}")
        return feed

    def _entry_to_item(self, entry: Any, source: Source) -> RawItem:
        """
        将feedparser条目转换为 RawItem
        Convert feedparser entry to RawItem
        """
        return RawItem(
            source_id=source.id,
            source_name=source.name,
            source_url=(entry.get('link') or '').strip(),
            title=clean_title(entry.get('title')),
            content=clean_content(
                entry.get('summary') or entry.get('description'),
                self.content_max_length,
            ),
            published_at=parse_published_at(entry),
            image_url=extract_image_url(entry),
        )

    def fetch_source(self, source: Source) -> FetchResult:
        """
        获取单个订阅源的条目
        Fetch items from a single source

        失败时返回带 error 的空结果，不抛出异常。
        Returns an empty result with `error` set instead of raising.
        """
        try:
            feed = self._download_feed(source.url)
            entries = list(feed.get('entries') or [])[:self.max_items_per_source]
            items = [self._entry_to_item(entry, source) for entry in entries]
            logger.info(f"从订阅源 '{source.name}' 获取了 {len(items)} 篇文章")
            return FetchResult(items=items, source_name=source.name, source_url=source.url)
        except Exception as e:
            logger.error(f"获取订阅源 {source.name} ({source.url}) 失败: {e}")
            return FetchResult(
                items=[],
                source_name=source.name,
                source_url=source.url,
                error=str(e),
            )

    def fetch_all(self, sources: list[Source]) -> list[FetchResult]:
        """
        获取所有订阅源的条目
        Fetch items from all sources

        结果顺序与 sources 顺序一致；max_workers > 1 时使用线程池并发获取。
        Results keep the order of `sources`; a thread pool is used when max_workers > 1.
        """
        if not sources:
            logger.warning("没有提供订阅源")
            return []

        if self.max_workers == 1 or len(sources) == 1:
            results = [self.fetch_source(source) for source in sources]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                results = list(executor.map(self.fetch_source, sources))

        total_items = sum(len(result) for result in results)
        failed = sum(1 for result in results if not result.is_success())
        logger.info(f"从 {len(sources)} 个订阅源共获取 {total_items} 篇文章（失败 {failed} 个）")
        return results

    def validate_feed(self, url: str) -> None:
        """
        校验URL是否为可解析的订阅源
        Validate that a URL parses as a feed

        Raises:
            FeedValidationError: URL 无法访问或无法解析
        """
        try:
            feed = self._download_feed(url)
        except Exception as e:
            raise FeedValidationError(str(e), url=url) from e

        if not feed.get('version') and not feed.get('entries'):
            raise FeedValidationError("not an RSS or Atom document", url=url)
