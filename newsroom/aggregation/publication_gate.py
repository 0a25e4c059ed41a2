"""
发布闸门模块

决定一篇合成文章是发布还是丢弃：

- 近期窗口（默认7天）内存在标题完全相同的文章，或
- 存在标题包含候选标题前30个字符（不区分大小写，按字面匹配）的文章

满足任一条件即视为重复并丢弃（不写入，不报错）；否则写入文章库。
存储层错误直接抛出，由调用方作为整次运行的失败处理。
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from newsroom.models import SynthesizedArticle, utc_now
from newsroom.repository import ArticleRepository

logger = logging.getLogger(__name__)

DEFAULT_RECENCY_WINDOW_DAYS = 7
DEFAULT_HEADLINE_PREFIX_LENGTH = 30


class PublicationGate:
    """
    发布闸门

    Attributes:
        repository: 文章仓库
        recency_window_days: 近期窗口天数
        headline_prefix_length: 近似匹配使用的标题前缀长度
    """

    def __init__(self, repository: ArticleRepository, config: dict[str, Any] | None = None):
        config = config or {}
        self.repository = repository
        self.recency_window_days: int = config.get(
            'recency_window_days', DEFAULT_RECENCY_WINDOW_DAYS
        )
        self.headline_prefix_length: int = config.get(
            'headline_prefix_length', DEFAULT_HEADLINE_PREFIX_LENGTH
        )

    def find_duplicate(
        self, article: SynthesizedArticle, now: datetime | None = None
    ) -> SynthesizedArticle | None:
        """
        查找近期窗口内的重复文章

        Args:
            article: 候选文章
            now: 当前时间（测试时注入）

        Returns:
            已存在的重复文章，没有返回None
        """
        now = now or utc_now()
        since = now - timedelta(days=self.recency_window_days)
        prefix = article.headline[:self.headline_prefix_length]
        return self.repository.find_recent_by_headline(article.headline, prefix, since)

    def is_duplicate(self, article: SynthesizedArticle, now: datetime | None = None) -> bool:
        return self.find_duplicate(article, now) is not None

    def publish(self, article: SynthesizedArticle, now: datetime | None = None) -> bool:
        """
        发布文章

        Returns:
            True 表示已写入，False 表示因重复被丢弃

        Raises:
            sqlite3.Error: 存储失败
        """
        duplicate = self.find_duplicate(article, now)
        if duplicate is not None:
            logger.info(
                f"⊘ 重复文章已跳过: {article.headline[:80]} "
                f"(已存在: {duplicate.headline[:80]})"
            )
            return False

        self.repository.save_article(article)
        logger.info(f"✓ 已保存: {article.headline[:80]}")
        return True
