"""
数据模型模块

定义流水线中使用的数据模型：原始条目、订阅源、聚类、合成文章和运行统计。
所有时间均为带时区的 UTC 时间。
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """返回当前 UTC 时间（带时区）"""
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """生成新的唯一标识"""
    return uuid.uuid4().hex


def _parse_datetime(value: Any) -> datetime:
    """
    将 ISO 字符串或 datetime 解析为带时区的 datetime

    无时区信息的时间按 UTC 处理。
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        dt = datetime.fromisoformat(value)
    else:
        return utc_now()

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class RawItem:
    """
    原始条目数据模型

    由 Feed Fetcher 从单个订阅源条目生成，只存在于一次流水线运行中。

    Attributes:
        id: 条目唯一标识，合成文章的引用来源通过它追溯到本条目
        source_id: 来源订阅源在目录中的 ID
        source_name: 订阅源名称
        source_url: 条目原文链接
        title: 清洗后的标题
        content: 清洗后的摘要内容（纯文本，最长 500 字符）
        published_at: 发布时间
        fetched_at: 抓取时间
        image_url: 图片 URL（可选）
    """
    source_id: str
    source_name: str
    source_url: str
    title: str
    content: str
    published_at: datetime
    fetched_at: datetime = field(default_factory=utc_now)
    image_url: str | None = None
    id: str = field(default_factory=generate_id)


@dataclass
class Source:
    """
    订阅源数据模型

    Attributes:
        id: 订阅源唯一标识
        name: 订阅源名称
        url: RSS/Atom 订阅源 URL
        category: 分类，默认 general
        enabled: 是否启用
        created_at: 创建时间
    """
    name: str
    url: str
    category: str = "general"
    enabled: bool = True
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "category": self.category,
            "enabled": self.enabled,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Source":
        return cls(
            id=data.get("id") or generate_id(),
            name=data.get("name", ""),
            url=data.get("url", ""),
            category=data.get("category") or "general",
            enabled=bool(data.get("enabled", True)),
            created_at=_parse_datetime(data.get("created_at")),
        )


@dataclass
class Cluster:
    """
    聚类数据模型

    表示一组被认为报道同一新闻事件的原始条目。
    条目顺序即发现顺序，第一个条目为代表条目。

    Attributes:
        items: 聚类中的条目列表，至少包含一个条目
    """
    items: list[RawItem]

    def __post_init__(self):
        if not self.items:
            raise ValueError("Cluster must contain at least one item")

    @property
    def representative(self) -> RawItem:
        """代表条目：决定默认标题和发布时间"""
        return self.items[0]

    def add(self, item: RawItem) -> None:
        self.items.append(item)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


@dataclass(frozen=True)
class ArticleSource:
    """
    合成文章的引用来源

    每个引用来源对应合成时使用的一个原始条目。
    """
    id: str
    name: str
    url: str
    fetched_at: datetime

    @classmethod
    def from_item(cls, item: RawItem) -> "ArticleSource":
        return cls(
            id=item.id,
            name=item.source_name,
            url=item.source_url,
            fetched_at=item.fetched_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "fetched_at": self.fetched_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArticleSource":
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            url=data.get("url", ""),
            fetched_at=_parse_datetime(data.get("fetched_at")),
        )


@dataclass(frozen=True)
class SynthesizedArticle:
    """
    合成文章数据模型

    每个被接受的聚类生成一篇，创建后不可修改。

    Attributes:
        headline: 标题
        summary: 2-3 句摘要
        generated_content: 正文（包含末尾的 SOURCES 引用列表）
        image_url: 图片 URL
        sources: 引用来源列表，至少一个
        published_at: 代表条目的发布时间（不是合成时间）
        id: 文章唯一标识
        created_at: 创建时间
    """
    headline: str
    summary: str
    generated_content: str
    image_url: str
    sources: tuple[ArticleSource, ...]
    published_at: datetime
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.sources:
            raise ValueError("SynthesizedArticle must cite at least one source")

    def to_dict(self) -> dict[str, Any]:
        """
        将文章转换为字典

        Returns:
            包含所有字段的字典，datetime 转换为 ISO 格式字符串
        """
        return {
            "id": self.id,
            "headline": self.headline,
            "summary": self.summary,
            "generated_content": self.generated_content,
            "image_url": self.image_url,
            "sources": [source.to_dict() for source in self.sources],
            "published_at": self.published_at.isoformat(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SynthesizedArticle":
        """
        从字典创建文章对象

        Args:
            data: 包含文章数据的字典（to_dict 的输出或数据库行）
        """
        sources = tuple(
            ArticleSource.from_dict(s) if isinstance(s, dict) else s
            for s in data.get("sources", [])
        )
        return cls(
            id=data.get("id") or generate_id(),
            headline=data.get("headline", ""),
            summary=data.get("summary", ""),
            generated_content=data.get("generated_content", ""),
            image_url=data.get("image_url", ""),
            sources=sources,
            published_at=_parse_datetime(data.get("published_at")),
            created_at=_parse_datetime(data.get("created_at")),
        )


@dataclass
class RunStats:
    """
    单次流水线运行统计

    Attributes:
        total_fetched: 抓取到的原始条目总数
        total_clusters: 形成的聚类总数（截断前）
        processed: 本次尝试合成的聚类数（截断后）
        accepted: 保存的新文章数
        discarded: 因近期重复被丢弃的文章数
        failed: 合成失败的聚类数
        failed_sources: 抓取失败的订阅源名称
        estimated_cost: 预估费用（与 accepted 成正比）
        started_at: 开始时间
        finished_at: 结束时间
    """
    total_fetched: int = 0
    total_clusters: int = 0
    processed: int = 0
    accepted: int = 0
    discarded: int = 0
    failed: int = 0
    failed_sources: list[str] = field(default_factory=list)
    estimated_cost: float = 0.0
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_fetched": self.total_fetched,
            "total_clusters": self.total_clusters,
            "processed": self.processed,
            "accepted": self.accepted,
            "discarded": self.discarded,
            "failed": self.failed,
            "failed_sources": list(self.failed_sources),
            "estimated_cost": round(self.estimated_cost, 3),
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
