"""
相似条目分组测试

包含单元测试和基于 Hypothesis 的属性测试：
- 共享单词阈值与单词长度阈值
- 经由中间条目的链式合并（A~B、B~C）
- 同一输入总是得到同一分组，且每个条目恰好属于一个聚类
"""

from datetime import datetime, timezone

from hypothesis import given, settings, strategies as st

from newsroom.aggregation.grouping import (
    SimilarityGrouper,
    count_common_words,
    group_by_title_overlap,
    title_words,
)
from newsroom.models import RawItem


def make_item(title: str, source_name: str = 'Example') -> RawItem:
    return RawItem(
        source_id='src-1',
        source_name=source_name,
        source_url=f'https://example.com/{abs(hash(title))}',
        title=title,
        content='',
        published_at=datetime(2025, 1, 6, tzinfo=timezone.utc),
    )


STORM = 'Storm floods coastal city streets'
BRIDGE = 'Coastal city streets close after bridge collapse'
RAIN = 'Bridge collapse after heavy rain'


class TestTitleWords:
    """测试标题单词提取"""

    def test_lowercases_and_filters_short_words(self):
        assert title_words('The BIG Storm Hits a Town') == {'storm', 'hits', 'town'}

    def test_custom_min_word_length(self):
        assert title_words('Storm hits big town', min_word_length=4) == {'storm'}

    def test_count_common_words(self):
        assert count_common_words(STORM, BRIDGE) == 3
        assert count_common_words(STORM, RAIN) == 0


class TestSimilarityGrouper:
    """测试分组器"""

    def test_empty_input(self):
        assert SimilarityGrouper().group([]) == []

    def test_matching_titles_share_cluster(self):
        items = [
            make_item('Storm hits coastal city overnight', 'BBC'),
            make_item('Coastal city storm damage hits homes', 'Reuters'),
            make_item('Markets rally after rate decision', 'CNBC'),
        ]

        clusters = SimilarityGrouper().group(items)

        assert [len(c) for c in clusters] == [2, 1]
        assert clusters[0].representative is items[0]
        assert clusters[1].representative is items[2]

    def test_two_common_words_is_not_enough(self):
        items = [
            make_item('Storm hits coastal region hard'),
            make_item('Storm hits inland farms'),
        ]

        assert len(SimilarityGrouper().group(items)) == 2

    def test_short_words_do_not_count(self):
        """长度不超过3的单词不计入"""
        items = [
            make_item('The cat and the dog ran far'),
            make_item('The cat and the dog ran far'),
        ]

        assert len(SimilarityGrouper().group(items)) == 2

    def test_chain_through_middle_item(self):
        """A~B、B~C 且 A 与 C 不直接匹配时，按 A、B、C 顺序出现三者合并"""
        items = [make_item(STORM), make_item(BRIDGE), make_item(RAIN)]

        clusters = SimilarityGrouper().group(items)

        assert len(clusters) == 1
        assert [item.title for item in clusters[0]] == [STORM, BRIDGE, RAIN]

    def test_grouping_is_order_dependent(self):
        """C 在 B 之前出现时，扫描到 C 时 B 尚未加入，因此不回溯"""
        items = [make_item(STORM), make_item(RAIN), make_item(BRIDGE)]

        clusters = SimilarityGrouper().group(items)

        assert [[item.title for item in c] for c in clusters] == [[STORM, BRIDGE], [RAIN]]

    def test_custom_threshold(self):
        items = [make_item('Storm hits coastal region'), make_item('Storm hits inland farms')]

        grouper = SimilarityGrouper({'min_common_words': 2})

        assert len(grouper.group(items)) == 1

    def test_functional_form(self):
        items = [make_item(STORM), make_item(BRIDGE)]
        assert len(group_by_title_overlap(items)) == 1
        assert len(group_by_title_overlap(items, min_common_words=4)) == 2


# =============================================================================
# Property-Based Tests
# =============================================================================

VOCABULARY = ['storm', 'coastal', 'city', 'bridge', 'markets', 'rally', 'election', 'vote', 'the', 'a']

titles_strategy = st.lists(
    st.lists(st.sampled_from(VOCABULARY), min_size=1, max_size=6).map(' '.join),
    max_size=25,
)


class TestGroupingProperties:
    """分组的属性测试"""

    @settings(max_examples=100)
    @given(titles_strategy)
    def test_grouping_is_deterministic(self, titles):
        items = [make_item(title) for title in titles]
        grouper = SimilarityGrouper()

        first = [[item.id for item in c] for c in grouper.group(items)]
        second = [[item.id for item in c] for c in grouper.group(items)]

        assert first == second

    @settings(max_examples=100)
    @given(titles_strategy)
    def test_every_item_in_exactly_one_cluster(self, titles):
        items = [make_item(title) for title in titles]

        clusters = SimilarityGrouper().group(items)

        grouped_ids = [item.id for c in clusters for item in c]
        assert sorted(grouped_ids) == sorted(item.id for item in items)
        assert all(len(c) >= 1 for c in clusters)

    @settings(max_examples=100)
    @given(titles_strategy)
    def test_cluster_members_follow_discovery_order(self, titles):
        items = [make_item(title) for title in titles]
        position = {item.id: index for index, item in enumerate(items)}

        clusters = SimilarityGrouper().group(items)

        seeds = [position[c.representative.id] for c in clusters]
        assert seeds == sorted(seeds)
        for cluster in clusters:
            indexes = [position[item.id] for item in cluster]
            assert indexes == sorted(indexes)

    @settings(max_examples=100)
    @given(titles_strategy)
    def test_each_member_matches_an_earlier_member(self, titles):
        items = [make_item(title) for title in titles]
        grouper = SimilarityGrouper()

        for cluster in grouper.group(items):
            members = list(cluster)
            for index in range(1, len(members)):
                assert any(
                    grouper.titles_match(earlier.title, members[index].title)
                    for earlier in members[:index]
                )
