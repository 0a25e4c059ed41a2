"""
流水线编排模块
Pipeline Orchestrator Module

执行一次完整的 抓取 -> 分组 -> 合成 -> 去重发布 流程并返回运行统计。
Runs one end-to-end fetch -> group -> synthesize -> dedup-and-publish pass.

错误处理：
- 没有启用的订阅源：抓取前抛出 NoEnabledSourcesError
- 单个订阅源失败：记录并计入 failed_sources，继续其他订阅源
- 单个聚类合成失败：记录并计入 failed，继续下一个聚类
- 存储失败：直接抛出，本次运行失败
- 同一进程内的重叠运行：抛出 RunInProgressError
"""

import logging
import threading
from typing import Any

from newsroom.aggregation.grouping import SimilarityGrouper
from newsroom.aggregation.publication_gate import PublicationGate
from newsroom.aggregation.synthesis_generator import SynthesisGenerator
from newsroom.config import get_config_value, get_proxy_url, get_section_config
from newsroom.exceptions import NoEnabledSourcesError, RunInProgressError
from newsroom.fetchers.rss_fetcher import RSSFetcher
from newsroom.models import RawItem, RunStats, utc_now
from newsroom.repository import ArticleRepository, Database, SourceRepository

logger = logging.getLogger(__name__)

DEFAULT_COST_PER_ARTICLE = 0.003


class NewsPipeline:
    """
    新闻合成流水线
    News synthesis pipeline

    所有协作组件通过构造函数注入；一个实例同一时间只允许一次运行。
    All collaborators are injected; one instance allows one run at a time.

    Attributes:
        sources: 订阅源目录
        fetcher: 订阅源获取器
        grouper: 相似条目分组器
        generator: 综述生成器
        gate: 发布闸门
        cost_per_article: 每篇保存文章的预估费用
    """

    def __init__(
        self,
        sources: SourceRepository,
        fetcher: RSSFetcher,
        grouper: SimilarityGrouper,
        generator: SynthesisGenerator,
        gate: PublicationGate,
        cost_per_article: float = DEFAULT_COST_PER_ARTICLE,
    ):
        self.sources = sources
        self.fetcher = fetcher
        self.grouper = grouper
        self.generator = generator
        self.gate = gate
        self.cost_per_article = cost_per_article
        self._run_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def run(self) -> RunStats:
        """
        执行一次流水线
        Execute one pipeline run

        Returns:
            运行统计

        Raises:
            RunInProgressError: 已有运行在进行
            NoEnabledSourcesError: 没有启用的订阅源
            sqlite3.Error: 存储失败
        """
        if not self._run_lock.acquire(blocking=False):
            raise RunInProgressError()
        try:
            return self._run()
        finally:
            self._run_lock.release()

    def _fetch_items(self, stats: RunStats) -> list[RawItem]:
        sources = self.sources.list_enabled()
        if not sources:
            raise NoEnabledSourcesError()

        logger.info(f"📰 从 {len(sources)} 个订阅源抓取新闻...")
        items: list[RawItem] = []
        for result in self.fetcher.fetch_all(sources):
            if result.is_success():
                items.extend(result.items)
            else:
                stats.failed_sources.append(result.source_name)
        return items

    def _run(self) -> RunStats:
        stats = RunStats()

        items = self._fetch_items(stats)
        stats.total_fetched = len(items)
        logger.info(f"📊 共抓取 {stats.total_fetched} 篇文章")

        clusters = self.grouper.group(items)
        stats.total_clusters = len(clusters)

        batch = self.generator.select_batch(clusters)
        stats.processed = len(batch)
        logger.info(f"🤖 开始合成 {stats.processed} 个事件...")

        for _cluster, article in self.generator.synthesize_all(batch):
            if article is None:
                stats.failed += 1
                continue
            if self.gate.publish(article):
                stats.accepted += 1
            else:
                stats.discarded += 1

        stats.estimated_cost = stats.accepted * self.cost_per_article
        stats.finished_at = utc_now()

        logger.info(
            f"✅ 完成: 保存 {stats.accepted} 篇新文章, 跳过重复 {stats.discarded} 篇, "
            f"失败 {stats.failed} 个事件"
        )
        logger.info(f"💰 预估费用: ${stats.estimated_cost:.3f}")
        return stats


def build_pipeline(config: dict[str, Any], db: Database, client=None) -> NewsPipeline:
    """
    根据配置构建流水线

    Args:
        config: 已应用默认值的完整配置字典
        db: 已初始化的 Database
        client: OpenAI 客户端（可选，测试时注入）

    Returns:
        NewsPipeline
    """
    fetch_config = dict(get_section_config(config, 'fetch'))
    proxy_url = get_proxy_url(config)
    if proxy_url:
        fetch_config['proxy'] = proxy_url

    synthesis_config = {
        **get_section_config(config, 'ai'),
        **get_section_config(config, 'synthesis'),
    }

    return NewsPipeline(
        sources=SourceRepository(db),
        fetcher=RSSFetcher(fetch_config),
        grouper=SimilarityGrouper(get_section_config(config, 'grouping')),
        generator=SynthesisGenerator(synthesis_config, client=client),
        gate=PublicationGate(ArticleRepository(db), get_section_config(config, 'publication')),
        cost_per_article=float(get_config_value(config, 'cost.per_article', DEFAULT_COST_PER_ARTICLE)),
    )
