"""
配置模块
Configuration Module

从 YAML 文件读取流水线配置，用 .env / 环境变量填充 API 密钥等敏感值，
并与 DEFAULT_CONFIG 深度合并，使缺省的配置段都有可用的默认值。

占位符格式：
    ${OPENAI_API_KEY}            未设置时替换为空字符串
    ${OPENAI_MODEL:gpt-4o-mini}  未设置时使用冒号后的默认值
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

ENV_PLACEHOLDER_PATTERN = re.compile(r'\$\{(?P<name>[^}:]+)(?::(?P<default>[^}]*))?\}')


def load_env_file(env_path: str | None = None) -> bool:
    """
    加载 .env 文件

    Args:
        env_path: 显式指定的 .env 路径；为 None 时由 python-dotenv 自动查找

    Returns:
        是否找到并加载了 .env 文件
    """
    if env_path is None:
        return load_dotenv()

    if not Path(env_path).is_file():
        return False
    return load_dotenv(env_path)


def _substitute(match: re.Match) -> str:
    return os.environ.get(match.group('name'), match.group('default') or '')


def replace_env_vars(value: Any) -> Any:
    """
    递归替换字符串、字典和列表中的 ${VAR} / ${VAR:default} 占位符。
    Substitute environment placeholders throughout a parsed YAML tree.

    数字、布尔值和 None 原样返回。

    Examples:
        >>> os.environ['NEWSROOM_MODEL'] = 'gpt-4o'
        >>> replace_env_vars({'ai': {'model': '${NEWSROOM_MODEL}'}})
        {'ai': {'model': 'gpt-4o'}}
        >>> replace_env_vars(['${NEWSROOM_UNSET:fallback}', 3])
        ['fallback', 3]
    """
    if isinstance(value, str):
        return ENV_PLACEHOLDER_PATTERN.sub(_substitute, value)
    if isinstance(value, dict):
        return {key: replace_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [replace_env_vars(item) for item in value]
    return value


def load_config(config_path: str = "config.yaml", env_path: str | None = None) -> dict:
    """
    读取 YAML 配置并替换环境变量占位符（不应用默认值）
    Read the YAML config and expand placeholders (defaults not applied)

    Raises:
        FileNotFoundError: 配置文件不存在
        yaml.YAMLError: YAML 语法错误
    """
    load_env_file(env_path)

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"配置文件不存在: {config_path}")

    raw = yaml.safe_load(path.read_text(encoding='utf-8'))
    return replace_env_vars(raw) if raw else {}


def get_config_value(config: dict, key_path: str, default: Any = None) -> Any:
    """
    按点分隔路径读取嵌套配置值，路径中任一段缺失时返回 default

    Examples:
        >>> get_config_value({'synthesis': {'pacing_delay': 2.0}}, 'synthesis.pacing_delay')
        2.0
        >>> get_config_value({'synthesis': {}}, 'synthesis.pacing_delay', 0)
        0
    """
    node: Any = config
    for key in key_path.split('.'):
        if not isinstance(node, dict) or key not in node:
            return default
        node = node[key]
    return node


# 默认配置值
# Default Configuration Values
DEFAULT_CONFIG: dict[str, Any] = {
    'database': {
        'path': 'data/newsroom.db',
        'timeout': 30.0,
    },
    # OpenAI 兼容生成服务
    'ai': {
        'api_base': 'https://api.openai.com/v1',
        'api_key': '',
        'model': 'gpt-4o-mini',
        'max_tokens': 2000,
        'temperature': 0.7,
        'timeout': 60,
    },
    'fetch': {
        'max_items_per_source': 5,
        'content_max_length': 500,
        'timeout': 30,
        'max_workers': 1,
    },
    'grouping': {
        'min_common_words': 3,
        # 只统计长度大于该值的单词
        'min_word_length': 3,
    },
    # 成本/限流控制
    'synthesis': {
        'max_clusters_per_run': 15,
        'pacing_delay': 2.0,
        'placeholder_image_url': 'https://picsum.photos/seed/news-{token}/800/450',
    },
    'publication': {
        'recency_window_days': 7,
        'headline_prefix_length': 30,
    },
    'cost': {
        'per_article': 0.003,
    },
    'schedule': {
        'time': '09:00',
        'interval_minutes': 0,
    },
    'proxy': {
        'enabled': False,
        'url': '',
    },
    'default_sources': [
        {'name': 'Reuters', 'url': 'https://feeds.reuters.com/reuters/topNews', 'category': 'general'},
        {'name': 'TechCrunch', 'url': 'https://techcrunch.com/feed/', 'category': 'technology'},
        {'name': 'BBC News', 'url': 'http://feeds.bbci.co.uk/news/rss.xml', 'category': 'general'},
        {'name': 'The Verge', 'url': 'https://www.theverge.com/rss/index.xml', 'category': 'technology'},
        {'name': 'Ars Technica', 'url': 'http://feeds.arstechnica.com/arstechnica/index', 'category': 'technology'},
    ],
}


def _deep_merge(base: dict, override: dict) -> dict:
    """
    递归合并配置字典，override 优先；两个输入都不会被修改

    Examples:
        >>> _deep_merge({'fetch': {'timeout': 30, 'max_workers': 1}}, {'fetch': {'timeout': 5}})
        {'fetch': {'timeout': 5, 'max_workers': 1}}
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def apply_defaults(config: dict) -> dict:
    """
    用 DEFAULT_CONFIG 补齐用户配置中缺失的配置项

    Examples:
        >>> config = apply_defaults({'synthesis': {'pacing_delay': 5}})
        >>> config['synthesis']['pacing_delay'], config['synthesis']['max_clusters_per_run']
        (5, 15)
    """
    return _deep_merge(DEFAULT_CONFIG, config or {})


def get_section_config(config: dict, section: str) -> dict:
    """
    获取单个配置段并补齐该段的默认值

    Args:
        config: 完整配置字典（是否已应用默认值均可）
        section: 配置段名称，如 ai、fetch、grouping、synthesis、publication

    Examples:
        >>> get_section_config({'publication': {'recency_window_days': 3}}, 'publication')
        {'recency_window_days': 3, 'headline_prefix_length': 30}
    """
    return _deep_merge(DEFAULT_CONFIG.get(section, {}), config.get(section) or {})


def get_proxy_url(config: dict) -> str | None:
    """返回启用的代理URL，未启用时返回None"""
    proxy_config = get_section_config(config, 'proxy')
    if proxy_config.get('enabled') and proxy_config.get('url'):
        return proxy_config['url']
    return None


def load_config_with_defaults(config_path: str = "config.yaml", env_path: str | None = None) -> dict:
    """读取配置文件并应用默认值，命令行和调度器都使用这个入口"""
    return apply_defaults(load_config(config_path, env_path))
