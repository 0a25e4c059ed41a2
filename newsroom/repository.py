"""
存储仓库模块

提供文章库和订阅源目录的数据库操作，使用SQLite作为存储引擎。

- Database: 持有共享连接，显式打开/关闭，由调用方注入到各仓库
- ArticleRepository: 合成文章的追加写入与查询（流水线从不更新或删除文章）
- SourceRepository: 订阅源目录
"""

import functools
import json
import logging
import sqlite3
import time
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from newsroom.models import Source, SynthesizedArticle

logger = logging.getLogger(__name__)

T = TypeVar('T')


def retry_on_locked(max_retries: int = 5, base_delay: float = 0.1):
    """
    装饰器：在数据库锁定时自动重试

    使用指数退避策略重试数据库操作，其他数据库错误直接抛出。

    Args:
        max_retries: 最大重试次数
        base_delay: 基础延迟时间（秒）
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            last_exception = None
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except sqlite3.OperationalError as e:
                    if "database is locked" in str(e):
                        last_exception = e
                        if attempt < max_retries:
                            delay = base_delay * (2 ** attempt)
                            logger.warning(
                                f"Database locked, retrying in {delay:.2f}s "
                                f"(attempt {attempt + 1}/{max_retries})"
                            )
                            time.sleep(delay)
                        continue
                    raise
            raise last_exception
        return wrapper
    return decorator


def to_db_time(value: datetime) -> str:
    """
    将时间转换为统一格式的 UTC ISO 字符串

    固定到微秒精度，保证字符串比较与时间先后一致。
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='microseconds')


class Database:
    """
    数据库连接

    Attributes:
        db_path: SQLite数据库文件路径，使用':memory:'创建内存数据库
        timeout: 数据库锁等待超时时间（秒）

    Example:
        >>> with Database(':memory:') as db:
        ...     articles = ArticleRepository(db)
        ...     articles.count_articles()
        0
    """

    def __init__(self, db_path: str, timeout: float = 30.0):
        self.db_path = db_path
        self.timeout = timeout
        self._connection: sqlite3.Connection | None = None

    def get_connection(self) -> sqlite3.Connection:
        """
        获取数据库连接

        使用WAL模式提高并发性能，设置超时时间避免锁定错误。
        """
        if self._connection is None:
            self._connection = sqlite3.connect(
                self.db_path,
                timeout=self.timeout,
                check_same_thread=False
            )
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA journal_mode=WAL")
            self._connection.execute(f"PRAGMA busy_timeout={int(self.timeout * 1000)}")
        return self._connection

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def close(self):
        """关闭数据库连接"""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def init_db(self):
        """
        初始化数据库表结构

        创建 articles 和 sources 表及相关索引。如果表已存在则不会重复创建。
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS articles (
                id TEXT PRIMARY KEY,
                headline TEXT NOT NULL,
                summary TEXT,
                generated_content TEXT NOT NULL,
                image_url TEXT,
                sources TEXT NOT NULL,
                published_at TEXT NOT NULL,
                created_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS sources (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                url TEXT NOT NULL,
                category TEXT NOT NULL DEFAULT 'general',
                enabled INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_articles_created_at ON articles(created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_sources_enabled ON sources(enabled)")

        conn.commit()

    def __enter__(self) -> "Database":
        self.init_db()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class ArticleRepository:
    """
    文章仓库：合成文章的存储

    只支持插入和查询，不提供更新或删除。
    """

    def __init__(self, db: Database):
        self.db = db

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def save_article(self, article: SynthesizedArticle) -> str:
        """
        保存文章

        Args:
            article: 合成文章

        Returns:
            文章ID

        Raises:
            sqlite3.IntegrityError: 如果ID已存在
        """
        conn = self.db.get_connection()
        conn.execute("""
            INSERT INTO articles (
                id, headline, summary, generated_content, image_url,
                sources, published_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            article.id,
            article.headline,
            article.summary,
            article.generated_content,
            article.image_url,
            json.dumps([source.to_dict() for source in article.sources], ensure_ascii=False),
            to_db_time(article.published_at),
            to_db_time(article.created_at),
        ))
        conn.commit()
        return article.id

    def find_recent_by_headline(
        self,
        headline: str,
        fragment: str,
        since: datetime,
    ) -> SynthesizedArticle | None:
        """
        查找近期标题相同或包含指定片段的文章

        Args:
            headline: 精确匹配的标题
            fragment: 不区分大小写的包含匹配片段（按字面文本匹配）
            since: 只查找 created_at 晚于该时间的文章

        Returns:
            第一篇匹配的文章，不存在返回None
        """
        conn = self.db.get_connection()
        cursor = conn.execute(
            "SELECT * FROM articles WHERE created_at > ? ORDER BY created_at DESC",
            (to_db_time(since),),
        )

        needle = fragment.casefold()
        for row in cursor.fetchall():
            existing = row['headline']
            if existing == headline or (needle and needle in existing.casefold()):
                return self._row_to_article(row)

        return None

    def get_by_id(self, article_id: str) -> SynthesizedArticle | None:
        conn = self.db.get_connection()
        row = conn.execute("SELECT * FROM articles WHERE id = ?", (article_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_article(row)

    def list_articles(self, limit: int = 50) -> list[SynthesizedArticle]:
        """
        获取最新的文章

        Args:
            limit: 最多返回的文章数

        Returns:
            按发布时间倒序排列的文章列表
        """
        conn = self.db.get_connection()
        rows = conn.execute(
            "SELECT * FROM articles ORDER BY published_at DESC LIMIT ?", (int(limit),)
        ).fetchall()
        return [self._row_to_article(row) for row in rows]

    def count_articles(self) -> int:
        conn = self.db.get_connection()
        return conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0]

    def _row_to_article(self, row: sqlite3.Row) -> SynthesizedArticle:
        """
        将数据库行转换为文章对象

        Args:
            row: SQLite Row对象
        """
        return SynthesizedArticle.from_dict({
            'id': row['id'],
            'headline': row['headline'],
            'summary': row['summary'] or '',
            'generated_content': row['generated_content'],
            'image_url': row['image_url'] or '',
            'sources': json.loads(row['sources']),
            'published_at': row['published_at'],
            'created_at': row['created_at'],
        })


class SourceRepository:
    """
    订阅源目录

    流水线只读取启用的订阅源；其余方法供命令行管理订阅源使用。
    """

    def __init__(self, db: Database):
        self.db = db

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def add_source(self, source: Source) -> Source:
        conn = self.db.get_connection()
        conn.execute("""
            INSERT INTO sources (id, name, url, category, enabled, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            source.id,
            source.name,
            source.url,
            source.category,
            1 if source.enabled else 0,
            to_db_time(source.created_at),
        ))
        conn.commit()
        return source

    def get_source(self, source_id: str) -> Source | None:
        conn = self.db.get_connection()
        row = conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_source(row)

    def list_sources(self) -> list[Source]:
        conn = self.db.get_connection()
        rows = conn.execute("SELECT * FROM sources ORDER BY created_at, rowid").fetchall()
        return [self._row_to_source(row) for row in rows]

    def list_enabled(self) -> list[Source]:
        """获取所有启用的订阅源，按添加顺序排列"""
        conn = self.db.get_connection()
        rows = conn.execute(
            "SELECT * FROM sources WHERE enabled = 1 ORDER BY created_at, rowid"
        ).fetchall()
        return [self._row_to_source(row) for row in rows]

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def update_source(self, source_id: str, **fields: Any) -> Source | None:
        """
        更新订阅源字段

        Args:
            source_id: 订阅源ID
            **fields: 要更新的字段（name, url, category, enabled）

        Returns:
            更新后的订阅源，不存在返回None
        """
        allowed = {'name', 'url', 'category', 'enabled'}
        updates = {k: v for k, v in fields.items() if k in allowed and v is not None}

        if updates:
            if 'enabled' in updates:
                updates['enabled'] = 1 if updates['enabled'] else 0
            assignments = ', '.join(f"{key} = ?" for key in updates)
            conn = self.db.get_connection()
            conn.execute(
                f"UPDATE sources SET {assignments} WHERE id = ?",
                list(updates.values()) + [source_id],
            )
            conn.commit()

        return self.get_source(source_id)

    def set_enabled(self, source_id: str, enabled: bool) -> Source | None:
        return self.update_source(source_id, enabled=enabled)

    @retry_on_locked(max_retries=5, base_delay=0.1)
    def remove_source(self, source_id: str) -> bool:
        conn = self.db.get_connection()
        cursor = conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
        conn.commit()
        return cursor.rowcount > 0

    def count_sources(self, enabled_only: bool = False) -> int:
        conn = self.db.get_connection()
        if enabled_only:
            return conn.execute("SELECT COUNT(*) FROM sources WHERE enabled = 1").fetchone()[0]
        return conn.execute("SELECT COUNT(*) FROM sources").fetchone()[0]

    def seed_defaults(self, defaults: list[dict[str, Any]]) -> int:
        """
        目录为空时写入默认订阅源

        Args:
            defaults: 默认订阅源配置列表（name, url, category）

        Returns:
            写入的订阅源数量
        """
        if self.count_sources() > 0:
            return 0

        for entry in defaults:
            self.add_source(Source(
                name=entry['name'],
                url=entry['url'],
                category=entry.get('category') or 'general',
                enabled=entry.get('enabled', True),
            ))

        if defaults:
            logger.info(f"已初始化 {len(defaults)} 个默认订阅源")
        return len(defaults)

    def _row_to_source(self, row: sqlite3.Row) -> Source:
        return Source.from_dict({
            'id': row['id'],
            'name': row['name'],
            'url': row['url'],
            'category': row['category'],
            'enabled': bool(row['enabled']),
            'created_at': row['created_at'],
        })
