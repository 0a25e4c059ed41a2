"""
新闻聚合模块

把抓取到的原始条目分组为新闻事件，合成综合文章，并在发布前做近期去重。

公共接口:
    - SimilarityGrouper / group_by_title_overlap: 标题词汇重叠分组
    - SynthesisGenerator: 综述生成器
    - PublicationGate: 发布闸门
"""

from newsroom.aggregation.grouping import (
    SimilarityGrouper,
    count_common_words,
    group_by_title_overlap,
    title_words,
)
from newsroom.aggregation.synthesis_generator import (
    ParsedSynthesis,
    SynthesisGenerator,
    DEFAULT_SYNTHESIS_PROMPT,
)
from newsroom.aggregation.publication_gate import PublicationGate

__all__ = [
    "SimilarityGrouper",
    "count_common_words",
    "group_by_title_overlap",
    "title_words",
    "ParsedSynthesis",
    "SynthesisGenerator",
    "DEFAULT_SYNTHESIS_PROMPT",
    "PublicationGate",
]
