"""
综述生成器模块

负责把一个聚类合成为一篇完整的新闻文章。

流程：
1. 为聚类中的每个条目构建来源文本块（序号、名称、标题、内容、URL）
2. 构建提示词，要求生成 HEADLINE / SUMMARY / ARTICLE 三个带标签的段落
3. 解析响应，缺少标签时分别回退到代表条目标题 / 空字符串 / 完整响应
4. 在正文末尾追加 SOURCES 引用列表（无论模型是否自行标注引用）
5. 选取聚类中第一个可用的图片，否则使用占位图片

单个聚类的请求或解析失败只记录日志并跳过该聚类。
连续两个聚类的合成之间由 RequestPacer 强制固定间隔。
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator

from openai import OpenAI, APIError, APITimeoutError, APIConnectionError

from newsroom.exceptions import SynthesisError
from newsroom.models import ArticleSource, Cluster, SynthesizedArticle, utc_now
from newsroom.utils.pacing import RequestPacer

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLUSTERS_PER_RUN = 15
DEFAULT_MAX_TOKENS = 2000
DEFAULT_PLACEHOLDER_IMAGE_URL = 'https://picsum.photos/seed/news-{token}/800/450'

DEFAULT_SYSTEM_PROMPT = "You are a professional news editor."

DEFAULT_SYNTHESIS_PROMPT = """You are a professional news editor. Create a comprehensive news article from these sources:

{sources_text}

Provide exactly this format:

HEADLINE:
[Write a compelling one-line headline]

SUMMARY:
[Write 2-3 sentences summarizing the key points]

ARTICLE:
[Write a comprehensive article that includes all unique facts from all sources. Use inline citations like [1], [2], [3] when referencing specific sources. Write in clear, professional news style.]"""

HEADLINE_PATTERN = re.compile(r'HEADLINE\**:\**\s*(.+?)(?:\n|$)', re.IGNORECASE)
# SUMMARY 截止到 ARTICLE 标签或下一个全大写标签
SUMMARY_PATTERN = re.compile(
    r'(?i:SUMMARY)\**:\**\s*(.+?)(?=\n\s*\**(?i:ARTICLE)\**:|\n\s*\**[A-Z]{3,}\**:|\Z)',
    re.DOTALL,
)
ARTICLE_PATTERN = re.compile(r'ARTICLE\**:\**\s*(.+)', re.IGNORECASE | re.DOTALL)
NEWLINE_PATTERN = re.compile(r'\s*\n\s*')


@dataclass(frozen=True)
class ParsedSynthesis:
    """
    解析后的生成结果

    Attributes:
        headline: 标题
        summary: 摘要（换行已替换为空格）
        body: 正文（不含 SOURCES 引用列表）
    """
    headline: str
    summary: str
    body: str


class SynthesisGenerator:
    """
    综述生成器

    Attributes:
        model: 使用的模型名称
        max_tokens: 最大生成 Token 数
        temperature: 生成温度参数
        timeout: API 调用超时时间（秒）
        max_clusters_per_run: 每次运行最多合成的聚类数
        placeholder_image_url: 占位图片 URL 模板，{token} 为时间戳
        pacer: 调用节流器
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        client: OpenAI | None = None,
        pacer: RequestPacer | None = None,
    ):
        """
        初始化综述生成器

        Args:
            config: 配置字典，包含：
                - api_base: API 基础 URL
                - api_key: API 密钥
                - model: 模型名称
                - max_tokens: 最大 Token 数（默认 2000）
                - temperature: 温度参数
                - timeout: 超时时间
                - max_clusters_per_run: 每次运行最多合成的聚类数（默认 15）
                - pacing_delay: 两次合成之间的等待时间（默认 2 秒）
                - placeholder_image_url: 占位图片 URL 模板
                - system_prompt / synthesis_prompt: 自定义提示词
            client: 预先构建的 OpenAI 客户端（可选，测试时注入）
            pacer: 预先构建的节流器（可选）
        """
        config = config or {}

        self._ai_client: OpenAI | None = client
        api_key = config.get('api_key', '')
        if self._ai_client is None and api_key:
            try:
                self._ai_client = OpenAI(
                    base_url=config.get('api_base', 'https://api.openai.com/v1'),
                    api_key=api_key,
                )
                logger.info("SynthesisGenerator AI 客户端初始化成功")
            except Exception as e:
                logger.error(f"AI 客户端初始化失败: {e}")

        self.model = config.get('model', 'gpt-4o-mini')
        self.max_tokens = int(config.get('max_tokens') or DEFAULT_MAX_TOKENS)
        self.temperature = float(config.get('temperature', 0.7))
        self.timeout = float(config.get('timeout', 60))

        self.max_clusters_per_run = int(
            config.get('max_clusters_per_run', DEFAULT_MAX_CLUSTERS_PER_RUN)
        )
        self.placeholder_image_url = config.get(
            'placeholder_image_url', DEFAULT_PLACEHOLDER_IMAGE_URL
        )
        self.pacer = pacer or RequestPacer(float(config.get('pacing_delay', 2.0)))

        self.system_prompt = config.get('system_prompt', DEFAULT_SYSTEM_PROMPT)
        self.synthesis_prompt = config.get('synthesis_prompt', DEFAULT_SYNTHESIS_PROMPT)

    @property
    def is_available(self) -> bool:
        """AI 客户端是否可用"""
        return self._ai_client is not None

    def build_sources_text(self, cluster: Cluster) -> str:
        """
        构建来源列表文本

        Args:
            cluster: 聚类

        Returns:
            每个条目一个文本块，以分隔线连接
        """
        blocks = []
        for index, item in enumerate(cluster, 1):
            blocks.append(
                f"SOURCE {index} [{item.source_name}]:\n"
                f"Title: {item.title}\n"
                f"Content: {item.content}\n"
                f"URL: {item.source_url}\n"
            )
        return "\n---\n\n".join(blocks)

    def build_prompt(self, cluster: Cluster) -> str:
        return self.synthesis_prompt.format(sources_text=self.build_sources_text(cluster))

    def generate_text(self, prompt: str) -> str:
        """
        调用生成服务

        Args:
            prompt: 用户提示词

        Returns:
            生成的文本

        Raises:
            SynthesisError: 客户端不可用或返回空响应
            openai.APIError: API 调用失败
        """
        if self._ai_client is None:
            raise SynthesisError("AI client is not configured")

        response = self._ai_client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.timeout,
        )

        if not response.choices or not response.choices[0].message.content:
            raise SynthesisError("empty response from generation service")

        return response.choices[0].message.content

    def parse_response(self, response: str, cluster: Cluster) -> ParsedSynthesis:
        """
        解析生成结果

        缺少标签时的回退：
            - HEADLINE -> 代表条目标题
            - SUMMARY  -> 空字符串
            - ARTICLE  -> 完整的原始响应

        Args:
            response: 生成服务返回的文本
            cluster: 对应的聚类

        Returns:
            ParsedSynthesis
        """
        headline_match = HEADLINE_PATTERN.search(response)
        summary_match = SUMMARY_PATTERN.search(response)
        article_match = ARTICLE_PATTERN.search(response)

        headline = ''
        if headline_match:
            headline = headline_match.group(1).strip().strip('*').strip()
        if not headline:
            headline = cluster.representative.title

        summary = ''
        if summary_match:
            summary = NEWLINE_PATTERN.sub(' ', summary_match.group(1).strip())

        body = article_match.group(1).strip() if article_match else response

        return ParsedSynthesis(headline=headline, summary=summary, body=body)

    def format_sources_section(self, cluster: Cluster) -> str:
        """
        格式化 SOURCES 引用列表

        Returns:
            以 "SOURCES:" 开头的文本块，每行 "[序号] 名称 - URL"
        """
        lines = [
            f"[{index}] {item.source_name} - {item.source_url}"
            for index, item in enumerate(cluster, 1)
        ]
        return "\n\n---\n\nSOURCES:\n" + "\n".join(lines)

    def resolve_image_url(self, cluster: Cluster, now: datetime | None = None) -> str:
        """
        选取文章图片

        使用聚类中第一个带图片的条目；都没有时返回以时间戳为参数的占位图片。
        """
        for item in cluster:
            if item.image_url:
                return item.image_url
        now = now or utc_now()
        return self.placeholder_image_url.format(token=int(now.timestamp()))

    def build_article(self, cluster: Cluster, response: str) -> SynthesizedArticle:
        """根据生成结果构建合成文章"""
        parsed = self.parse_response(response, cluster)
        return SynthesizedArticle(
            headline=parsed.headline,
            summary=parsed.summary,
            generated_content=parsed.body + self.format_sources_section(cluster),
            image_url=self.resolve_image_url(cluster),
            sources=tuple(ArticleSource.from_item(item) for item in cluster),
            published_at=cluster.representative.published_at,
        )

    def synthesize(self, cluster: Cluster) -> SynthesizedArticle | None:
        """
        合成一个聚类

        Args:
            cluster: 聚类

        Returns:
            合成文章；请求或解析失败时返回 None
        """
        title = cluster.representative.title
        try:
            response = self.generate_text(self.build_prompt(cluster))
            return self.build_article(cluster, response)
        except SynthesisError as e:
            logger.warning(f"综述生成失败，跳过该事件: {e}")
        except APITimeoutError as e:
            logger.error(f"AI API 调用超时 ({title[:60]}): {e}")
        except APIConnectionError as e:
            logger.error(f"AI API 连接失败 ({title[:60]}): {e}")
        except APIError as e:
            logger.error(f"AI API 调用失败 ({title[:60]}): {e}")
        except Exception as e:
            logger.error(f"生成综述时发生错误 ({title[:60]}): {e}")
        return None

    def select_batch(self, clusters: list[Cluster]) -> list[Cluster]:
        """
        截取本次运行要合成的聚类

        超出上限的聚类在本次运行中直接丢弃，下次运行重新抓取后再处理。
        """
        batch = clusters[:self.max_clusters_per_run]
        dropped = len(clusters) - len(batch)
        if dropped > 0:
            logger.info(f"本次运行只处理前 {len(batch)} 个事件，丢弃 {dropped} 个")
        return batch

    def synthesize_all(
        self, clusters: list[Cluster]
    ) -> Iterator[tuple[Cluster, SynthesizedArticle | None]]:
        """
        依次合成一批聚类

        每产出一个结果后由调用方处理（例如发布），再继续下一个聚类；
        两个聚类之间等待固定间隔，最后一个聚类之后不等待。

        Yields:
            (聚类, 合成文章或 None)
        """
        total = len(clusters)
        for index, cluster in enumerate(clusters):
            if index > 0:
                self.pacer.pause()
            logger.info(f"[{index + 1}/{total}] 处理: {cluster.representative.title[:60]}...")
            yield cluster, self.synthesize(cluster)
