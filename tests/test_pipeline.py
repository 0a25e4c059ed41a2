"""
流水线编排测试
Pipeline Orchestrator Tests

端到端测试使用内存数据库、真实的 feedparser 解析和模拟的 requests / OpenAI 客户端；
编排逻辑的边界情况使用 MagicMock 组件。
"""

import re
import sqlite3
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests

from newsroom.aggregation.grouping import SimilarityGrouper
from newsroom.aggregation.synthesis_generator import SynthesisGenerator
from newsroom.config import apply_defaults
from newsroom.exceptions import NoEnabledSourcesError, RunInProgressError
from newsroom.fetchers.base import FetchResult
from newsroom.models import Cluster, RawItem, Source
from newsroom.pipeline import NewsPipeline, build_pipeline
from newsroom.repository import ArticleRepository, Database, SourceRepository


FEEDS = {
    'https://alpha.example.com/rss': [
        ('Storm floods coastal city streets', 'Mon, 06 Jan 2025 10:00:00 GMT'),
        ('Markets rally after rate decision', 'Mon, 06 Jan 2025 09:00:00 GMT'),
    ],
    'https://beta.example.com/rss': [
        ('Coastal city streets flooded by storm - Beta Daily', 'Mon, 06 Jan 2025 11:00:00 GMT'),
        ('Election results announced tonight', 'Mon, 06 Jan 2025 08:00:00 GMT'),
    ],
}


def build_rss(entries: list[tuple[str, str]]) -> bytes:
    items = ''.join(
        f"<item><title>{title}</title>"
        f"<link>https://news.example.com/{index}</link>"
        f"<description>{title} in detail.</description>"
        f"<pubDate>{pub_date}</pubDate></item>"
        for index, (title, pub_date) in enumerate(entries)
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?><rss version="2.0"><channel>'
        f'<title>Feed</title><link>https://example.com</link><description>d</description>{items}'
        '</channel></rss>'
    ).encode('utf-8')


def fake_get(url, **kwargs):
    if url not in FEEDS:
        raise requests.ConnectionError(f'cannot reach {url}')
    response = MagicMock()
    response.content = build_rss(FEEDS[url])
    response.raise_for_status.return_value = None
    return response


def completion_for(content: str) -> MagicMock:
    completion = MagicMock()
    completion.choices = [MagicMock(message=MagicMock(content=content))]
    return completion


def echo_first_title(**kwargs):
    """用提示词中的第一个标题作为生成的标题"""
    prompt = kwargs['messages'][-1]['content']
    title = re.search(r'Title: (.+)', prompt).group(1)
    return completion_for(f'HEADLINE:\n{title}\n\nSUMMARY:\nAbout {title}.\n\nARTICLE:\nStory of {title} [1].')


@pytest.fixture
def db():
    with Database(':memory:') as database:
        yield database


@pytest.fixture
def client():
    mock_client = MagicMock()
    mock_client.chat.completions.create.side_effect = echo_first_title
    return mock_client


@pytest.fixture
def catalog(db):
    repository = SourceRepository(db)
    created = datetime(2025, 1, 1, tzinfo=timezone.utc)
    for name, url in [
        ('Alpha', 'https://alpha.example.com/rss'),
        ('Broken', 'https://broken.example.com/rss'),
        ('Beta', 'https://beta.example.com/rss'),
    ]:
        repository.add_source(Source(name=name, url=url, created_at=created))
    return repository


@pytest.fixture
def pipeline(db, client, catalog):
    config = apply_defaults({'synthesis': {'pacing_delay': 0}})
    return build_pipeline(config, db, client=client)


class TestEndToEnd:
    """端到端运行"""

    @patch('newsroom.fetchers.rss_fetcher.requests.get', side_effect=fake_get)
    def test_run_counts(self, mock_get, pipeline, db):
        stats = pipeline.run()

        assert stats.total_fetched == 4
        assert stats.failed_sources == ['Broken']
        assert stats.total_clusters == 3
        assert stats.processed == 3
        assert stats.accepted == 3
        assert stats.discarded == 0
        assert stats.failed == 0
        assert stats.estimated_cost == pytest.approx(0.009)
        assert stats.finished_at is not None
        assert ArticleRepository(db).count_articles() == 3

    @patch('newsroom.fetchers.rss_fetcher.requests.get', side_effect=fake_get)
    def test_merged_article_cites_both_sources(self, mock_get, pipeline, db):
        pipeline.run()

        articles = ArticleRepository(db).list_articles()
        storm = next(a for a in articles if a.headline == 'Storm floods coastal city streets')
        assert [s.name for s in storm.sources] == ['Alpha', 'Beta']
        assert storm.published_at == datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)
        assert storm.generated_content.endswith(
            '[1] Alpha - https://news.example.com/0\n[2] Beta - https://news.example.com/0'
        )

    @patch('newsroom.fetchers.rss_fetcher.requests.get', side_effect=fake_get)
    def test_second_run_discards_duplicates(self, mock_get, pipeline, db):
        pipeline.run()

        stats = pipeline.run()

        assert stats.accepted == 0
        assert stats.discarded == 3
        assert stats.estimated_cost == 0
        assert ArticleRepository(db).count_articles() == 3

    @patch('newsroom.fetchers.rss_fetcher.requests.get', side_effect=fake_get)
    def test_failed_cluster_does_not_stop_run(self, mock_get, pipeline, client):
        def flaky(**kwargs):
            if 'Markets rally' in kwargs['messages'][-1]['content']:
                raise RuntimeError('generation service unavailable')
            return echo_first_title(**kwargs)

        client.chat.completions.create.side_effect = flaky

        stats = pipeline.run()

        assert stats.failed == 1
        assert stats.accepted == 2
        assert stats.estimated_cost == pytest.approx(0.006)

    @patch('newsroom.fetchers.rss_fetcher.requests.get', side_effect=fake_get)
    def test_storage_error_propagates(self, mock_get, pipeline, db):
        db.get_connection().execute('DROP TABLE articles')

        with pytest.raises(sqlite3.OperationalError):
            pipeline.run()

    @patch('newsroom.fetchers.rss_fetcher.requests.get')
    def test_no_enabled_sources(self, mock_get, pipeline, catalog):
        for source in catalog.list_sources():
            catalog.set_enabled(source.id, False)

        with pytest.raises(NoEnabledSourcesError):
            pipeline.run()

        mock_get.assert_not_called()


def make_item(title: str) -> RawItem:
    return RawItem(
        source_id='src-1',
        source_name='Alpha',
        source_url='https://alpha.example.com/1',
        title=title,
        content='',
        published_at=datetime(2025, 1, 6, tzinfo=timezone.utc),
    )


def make_mock_pipeline(client=None, **overrides) -> NewsPipeline:
    sources = MagicMock()
    sources.list_enabled.return_value = [Source(name='Alpha', url='https://alpha.example.com/rss')]
    fetcher = MagicMock()
    fetcher.fetch_all.return_value = [FetchResult(items=[make_item('Only story')], source_name='Alpha')]
    gate = MagicMock()
    gate.publish.return_value = True
    components = {
        'sources': sources,
        'fetcher': fetcher,
        'grouper': SimilarityGrouper(),
        'generator': SynthesisGenerator({'pacing_delay': 0}, client=client),
        'gate': gate,
    }
    components.update(overrides)
    return NewsPipeline(**components)


class TestBuildPipeline:
    """根据配置构建流水线"""

    def test_cost_per_article_from_config(self, db, client):
        config = apply_defaults({'cost': {'per_article': 0.01}})

        pipeline = build_pipeline(config, db, client=client)

        assert pipeline.cost_per_article == pytest.approx(0.01)

    def test_cost_per_article_default_without_cost_section(self, db, client):
        pipeline = build_pipeline({}, db, client=client)

        assert pipeline.cost_per_article == pytest.approx(0.003)


class TestOrchestration:
    """编排逻辑"""

    def test_cluster_cap(self, client):
        grouper = MagicMock()
        grouper.group.return_value = [Cluster(items=[make_item(f'Story number {i}')]) for i in range(20)]
        pipeline = make_mock_pipeline(client, grouper=grouper)

        stats = pipeline.run()

        assert stats.total_clusters == 20
        assert stats.processed == 15
        assert stats.accepted == 15
        assert client.chat.completions.create.call_count == 15

    def test_overlapping_run_rejected(self, client):
        pipeline = make_mock_pipeline(client)
        nested_errors = []

        def list_enabled():
            assert pipeline.is_running
            try:
                pipeline.run()
            except RunInProgressError as e:
                nested_errors.append(e)
            return [Source(name='Alpha', url='https://alpha.example.com/rss')]

        pipeline.sources.list_enabled.side_effect = list_enabled

        stats = pipeline.run()

        assert len(nested_errors) == 1
        assert stats.accepted == 1
        assert not pipeline.is_running

    def test_lock_released_after_failure(self, client):
        pipeline = make_mock_pipeline(client)
        pipeline.sources.list_enabled.return_value = []

        with pytest.raises(NoEnabledSourcesError):
            pipeline.run()

        assert not pipeline.is_running

    def test_discarded_articles_cost_nothing(self, client):
        gate = MagicMock()
        gate.publish.return_value = False
        pipeline = make_mock_pipeline(client, gate=gate, cost_per_article=0.01)

        stats = pipeline.run()

        assert stats.discarded == 1
        assert stats.estimated_cost == 0
