"""
相似条目分组模块

根据标题的词汇重叠把原始条目分组为候选新闻事件（聚类）。

算法（单次遍历，O(n²)）：
1. 按抓取顺序遍历条目，跳过已使用的条目
2. 以当前条目为种子新建聚类，并标记为已使用
3. 扫描其后所有未使用条目，与聚类中已有的任一条目共享
   至少 3 个长度大于 3 的小写单词时加入聚类并标记为已使用

分组是贪心的、依赖输入顺序的：A~B、B~C 而 A 与 C 不直接匹配时，
只要按 A、B、C 的顺序出现，三者都会经由 B 进入同一聚类；
不做回溯扫描，也不做并查集式的传递闭包。
"""

import logging
from typing import Any

from newsroom.models import Cluster, RawItem

logger = logging.getLogger(__name__)

DEFAULT_MIN_COMMON_WORDS = 3
DEFAULT_MIN_WORD_LENGTH = 3


def title_words(title: str, min_word_length: int = DEFAULT_MIN_WORD_LENGTH) -> set[str]:
    """
    提取标题中长度大于 min_word_length 的小写单词集合

    Examples:
        >>> sorted(title_words('The Storm Hits Coastal City'))
        ['city', 'coastal', 'hits', 'storm']
    """
    return {word for word in title.lower().split() if len(word) > min_word_length}


def count_common_words(
    title_a: str,
    title_b: str,
    min_word_length: int = DEFAULT_MIN_WORD_LENGTH,
) -> int:
    """
    统计两个标题共有的长单词数量

    Args:
        title_a: 标题A
        title_b: 标题B
        min_word_length: 单词长度必须大于该值才计入

    Returns:
        共有单词数

    Examples:
        >>> count_common_words('Storm hits coastal city', 'Coastal city braces for storm')
        3
    """
    return len(title_words(title_a, min_word_length) & title_words(title_b, min_word_length))


class SimilarityGrouper:
    """
    相似条目分组器

    Attributes:
        min_common_words: 判定为同一事件所需的最少共有单词数（默认 3）
        min_word_length: 单词长度必须大于该值才计入（默认 3）
    """

    def __init__(self, config: dict[str, Any] | None = None):
        config = config or {}
        self.min_common_words: int = config.get('min_common_words', DEFAULT_MIN_COMMON_WORDS)
        self.min_word_length: int = config.get('min_word_length', DEFAULT_MIN_WORD_LENGTH)

    def titles_match(self, title_a: str, title_b: str) -> bool:
        """判断两个标题是否报道同一事件"""
        common = count_common_words(title_a, title_b, self.min_word_length)
        return common >= self.min_common_words

    def group(self, items: list[RawItem]) -> list[Cluster]:
        """
        将条目分组为聚类

        Args:
            items: 按抓取顺序展开的条目列表

        Returns:
            聚类列表，按种子条目首次出现的顺序排列；
            同一输入列表总是得到相同的分组结果
        """
        used: set[int] = set()
        clusters: list[Cluster] = []

        for i, seed in enumerate(items):
            if i in used:
                continue

            cluster = Cluster(items=[seed])
            used.add(i)

            for j in range(i + 1, len(items)):
                if j in used:
                    continue
                candidate = items[j]
                if any(self.titles_match(member.title, candidate.title) for member in cluster):
                    cluster.add(candidate)
                    used.add(j)

            clusters.append(cluster)

        logger.info(f"将 {len(items)} 篇文章分组为 {len(clusters)} 个独立事件")
        return clusters


def group_by_title_overlap(
    items: list[RawItem],
    min_common_words: int = DEFAULT_MIN_COMMON_WORDS,
    min_word_length: int = DEFAULT_MIN_WORD_LENGTH,
) -> list[Cluster]:
    """SimilarityGrouper.group 的函数形式"""
    grouper = SimilarityGrouper({
        'min_common_words': min_common_words,
        'min_word_length': min_word_length,
    })
    return grouper.group(items)
