#!/usr/bin/env python3
"""
新闻合成流水线 - 主程序入口
Newsroom - Main Entry Point

支持的运行模式：
1. 定时调度模式（默认）：按配置的时间或间隔自动执行流水线
2. 单次执行模式（--once）：立即执行一次流水线并打印运行统计
3. 管理模式：--stats / --list-sources / --add-source / --list-articles
   / --enable-source / --disable-source / --remove-source / --show-article

使用方法 Usage:
    # 启动定时调度
    python main.py

    # 单次执行
    python main.py --once

    # 添加订阅源
    python main.py --add-source "Hacker News" https://news.ycombinator.com/rss --category tech

    # 使用自定义配置
    python main.py --config my_config.yaml --once
"""

import argparse
import logging
import sys
from pathlib import Path

from newsroom.config import apply_defaults, get_section_config, load_config_with_defaults, load_env_file
from newsroom.exceptions import FeedValidationError, NewsroomError
from newsroom.fetchers import RSSFetcher
from newsroom.models import RunStats, Source
from newsroom.scheduler import Scheduler


# 配置日志格式
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(verbose: bool = False) -> None:
    """
    配置日志系统
    Setup logging system

    Args:
        verbose: 是否启用详细日志（DEBUG级别）
    """
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # 降低第三方库的日志级别
    for name in ('urllib3', 'httpx', 'httpcore', 'openai', 'schedule'):
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    解析命令行参数
    Parse command line arguments
    """
    parser = argparse.ArgumentParser(
        description='新闻合成流水线 - 多源新闻抓取、事件分组与综述生成',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
运行模式 Modes:
  默认模式         启动定时调度
  --once           立即执行一次流水线后退出
  --stats          查看文章和订阅源统计
  --list-sources   列出订阅源
  --add-source     添加订阅源（会先校验是否为可解析的RSS）
  --enable-source  启用订阅源（ID 见 --list-sources）
  --disable-source 停用订阅源
  --remove-source  删除订阅源
  --show-article   查看单篇文章的完整内容
  --list-articles  列出最近的合成文章

示例 Examples:
  python main.py --once --verbose
  python main.py --list-articles --limit 10
        """
    )

    mode_group = parser.add_argument_group('运行模式 Mode Options')
    modes = mode_group.add_mutually_exclusive_group()
    modes.add_argument(
        '--once', '-1',
        action='store_true',
        help='单次执行模式：立即执行一次流水线后退出 / Run pipeline once and exit'
    )
    modes.add_argument(
        '--stats',
        action='store_true',
        help='查看统计信息 / Show article and source counts'
    )
    modes.add_argument(
        '--list-sources',
        action='store_true',
        help='列出订阅源 / List feed sources'
    )
    modes.add_argument(
        '--add-source',
        nargs=2,
        metavar=('NAME', 'URL'),
        help='添加订阅源 / Add a feed source'
    )
    modes.add_argument(
        '--list-articles',
        action='store_true',
        help='列出最近文章 / List recent synthesized articles'
    )
    modes.add_argument(
        '--enable-source',
        metavar='ID',
        help='启用订阅源 / Enable a feed source'
    )
    modes.add_argument(
        '--disable-source',
        metavar='ID',
        help='停用订阅源 / Disable a feed source'
    )
    modes.add_argument(
        '--remove-source',
        metavar='ID',
        help='删除订阅源 / Remove a feed source'
    )
    modes.add_argument(
        '--show-article',
        metavar='ID',
        help='查看文章全文 / Show one synthesized article'
    )

    option_group = parser.add_argument_group('模式参数 Mode Parameters')
    option_group.add_argument(
        '--category',
        type=str,
        default='general',
        help='订阅源分类，用于 --add-source (默认: general)'
    )
    option_group.add_argument(
        '--limit',
        type=int,
        default=20,
        help='文章数量，用于 --list-articles (默认: 20)'
    )

    config_group = parser.add_argument_group('配置选项 Config Options')
    config_group.add_argument(
        '--config', '-c',
        type=str,
        default='config.yaml',
        help='配置文件路径 (默认: config.yaml) / Config file path'
    )
    config_group.add_argument(
        '--env',
        type=str,
        default=None,
        help='.env文件路径 (默认: 自动查找) / .env file path'
    )

    general_group = parser.add_argument_group('通用选项 General Options')
    general_group.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='启用详细日志输出 / Enable verbose logging'
    )

    return parser.parse_args(argv)


def load_app_config(config_path: str, env_path: str | None, logger: logging.Logger) -> dict:
    """
    加载配置；配置文件不存在时使用默认配置
    """
    if not Path(config_path).exists():
        logger.warning(f"配置文件不存在: {config_path}，使用默认配置")
        load_env_file(env_path)
        return apply_defaults({})

    config = load_config_with_defaults(config_path, env_path)
    logger.info(f"已加载配置文件: {config_path}")
    return config


def print_run_stats(stats: RunStats) -> None:
    print(f"\n{'='*60}")
    print("运行统计")
    print(f"{'='*60}")
    print(f"抓取条目: {stats.total_fetched}")
    print(f"事件聚类: {stats.total_clusters} (本次处理 {stats.processed})")
    print(f"新增文章: {stats.accepted}")
    print(f"重复跳过: {stats.discarded}")
    print(f"合成失败: {stats.failed}")
    if stats.failed_sources:
        print(f"失败订阅源: {', '.join(stats.failed_sources)}")
    print(f"预估费用: ${stats.estimated_cost:.3f}")
    print(f"{'='*60}\n")


def run_scheduled_mode(scheduler: Scheduler, logger: logging.Logger) -> int:
    """运行定时调度模式"""
    logger.info("启动定时调度模式...")
    try:
        scheduler.start()
        return 0
    except KeyboardInterrupt:
        logger.info("用户中断，程序退出")
        return 0
    except Exception as e:
        logger.error(f"调度器运行失败: {e}", exc_info=True)
        return 1


def run_once_mode(scheduler: Scheduler, logger: logging.Logger) -> int:
    """
    运行单次执行模式
    Run once mode
    """
    logger.info("启动单次执行模式...")
    try:
        stats = scheduler.run_once()
    except NewsroomError as e:
        logger.error(f"任务未执行: {e}")
        print(f"错误: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"任务执行失败: {e}", exc_info=True)
        return 1

    print_run_stats(stats)
    return 0


def show_stats(scheduler: Scheduler) -> int:
    articles = scheduler.articles
    sources = scheduler.sources
    latest = articles.list_articles(limit=1)

    print(f"\n{'='*60}")
    print("统计信息")
    print(f"{'='*60}")
    print(f"文章总数: {articles.count_articles()}")
    print(f"订阅源: {sources.count_sources(enabled_only=True)} 启用 / {sources.count_sources()} 总计")
    print(f"最近更新: {latest[0].created_at.isoformat() if latest else '无'}")
    print(f"{'='*60}\n")
    return 0


def list_sources(scheduler: Scheduler) -> int:
    sources = scheduler.sources.list_sources()
    if not sources:
        print("没有订阅源")
        return 0

    for source in sources:
        status = '✓' if source.enabled else '✗'
        print(f"{status} [{source.category}] {source.name} - {source.url} ({source.id})")
    return 0


def add_source(
    scheduler: Scheduler, name: str, url: str, category: str, logger: logging.Logger
) -> int:
    """
    校验并添加订阅源
    Validate and add a feed source
    """
    fetch_config = get_section_config(scheduler.config, 'fetch')
    try:
        RSSFetcher(fetch_config).validate_feed(url)
    except FeedValidationError as e:
        logger.error(f"订阅源校验失败: {e}")
        print(f"错误: {e}", file=sys.stderr)
        return 1

    source = scheduler.sources.add_source(Source(name=name, url=url, category=category))
    print(f"✓ 已添加订阅源: {source.name} ({source.id})")
    return 0


def set_source_enabled(scheduler: Scheduler, source_id: str, enabled: bool) -> int:
    """启用或停用订阅源，订阅源不存在时返回1"""
    source = scheduler.sources.set_enabled(source_id, enabled)
    if source is None:
        print(f"错误: 订阅源不存在: {source_id}", file=sys.stderr)
        return 1

    print(f"✓ 已{'启用' if source.enabled else '停用'}订阅源: {source.name} ({source.id})")
    return 0


def remove_source(scheduler: Scheduler, source_id: str) -> int:
    source = scheduler.sources.get_source(source_id)
    if source is None or not scheduler.sources.remove_source(source_id):
        print(f"错误: 订阅源不存在: {source_id}", file=sys.stderr)
        return 1

    print(f"✓ 已删除订阅源: {source.name} ({source.id})")
    return 0


def show_article(scheduler: Scheduler, article_id: str) -> int:
    """
    打印单篇文章的标题、摘要、正文和来源
    Print one article with its sources
    """
    article = scheduler.articles.get_by_id(article_id)
    if article is None:
        print(f"错误: 文章不存在: {article_id}", file=sys.stderr)
        return 1

    print(f"\n{'='*60}")
    print(article.headline)
    print(f"{'='*60}")
    print(f"发布时间: {article.published_at:%Y-%m-%d %H:%M}")
    print(f"图片: {article.image_url}")
    if article.summary:
        print(f"\n{article.summary}")
    print(f"\n{article.generated_content}\n")
    return 0


def list_articles(scheduler: Scheduler, limit: int) -> int:
    articles = scheduler.articles.list_articles(limit=limit)
    if not articles:
        print("没有文章")
        return 0

    for article in articles:
        print(f"[{article.published_at:%Y-%m-%d %H:%M}] {article.headline} ({article.id})")
        print(f"    {article.summary[:120]}")
        print(f"    来源 {len(article.sources)} 个: {', '.join(s.name for s in article.sources)}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    主函数
    Main function

    Returns:
        退出码：0表示成功，非0表示失败
    """
    args = parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = load_app_config(args.config, args.env, logger)
    except Exception as e:
        logger.error(f"加载配置文件失败: {e}")
        print(f"错误: 加载配置文件失败: {e}", file=sys.stderr)
        return 1

    scheduler = Scheduler(config)

    admin_modes = (
        args.stats, args.list_sources, args.add_source, args.list_articles,
        args.enable_source, args.disable_source, args.remove_source, args.show_article,
    )
    if not (args.once or any(admin_modes)):
        # 定时调度模式（默认），由调度器自己管理数据库生命周期
        return run_scheduled_mode(scheduler, logger)

    try:
        if args.once:
            return run_once_mode(scheduler, logger)
        if args.stats:
            return show_stats(scheduler)
        if args.list_sources:
            return list_sources(scheduler)
        if args.add_source:
            name, url = args.add_source
            return add_source(scheduler, name, url, args.category, logger)
        if args.enable_source:
            return set_source_enabled(scheduler, args.enable_source, True)
        if args.disable_source:
            return set_source_enabled(scheduler, args.disable_source, False)
        if args.remove_source:
            return remove_source(scheduler, args.remove_source)
        if args.show_article:
            return show_article(scheduler, args.show_article)
        return list_articles(scheduler, args.limit)
    finally:
        scheduler.close()


if __name__ == '__main__':
    sys.exit(main())
