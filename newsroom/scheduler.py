"""
调度器模块
Scheduler Module

负责组件的生命周期，并按计划或手动触发流水线运行。
Owns component lifecycle and triggers pipeline runs on a schedule or on demand.

- 支持定时执行（每天指定时间，或每隔 N 分钟）
- 支持手动触发执行
- 数据库连接在第一次运行前打开，在关闭调度器时关闭
"""

import logging
import time
from pathlib import Path
from typing import Any

import schedule

from newsroom.config import get_config_value
from newsroom.exceptions import NewsroomError
from newsroom.models import RunStats
from newsroom.pipeline import NewsPipeline, build_pipeline
from newsroom.repository import ArticleRepository, Database, SourceRepository

logger = logging.getLogger(__name__)


class Scheduler:
    """
    定时任务调度器
    Scheduled Task Scheduler

    Attributes:
        config: 完整配置字典（已应用默认值）
        schedule_time: 每日执行时间（如 "09:00"）
        interval_minutes: 执行间隔分钟数，大于0时优先于 schedule_time
        _running: 调度器是否正在运行
    """

    def __init__(self, config: dict, client: Any = None):
        """
        初始化调度器
        Initialize the scheduler

        Args:
            config: 完整配置字典
            client: OpenAI 客户端（可选，测试时注入）
        """
        self.config = config
        self._client = client

        self.schedule_time = get_config_value(config, 'schedule.time', '09:00')
        self.interval_minutes = int(get_config_value(config, 'schedule.interval_minutes') or 0)

        self._running = False
        self._db: Database | None = None
        self._pipeline: NewsPipeline | None = None

        logger.info(f"Scheduler initialized with schedule_time={self.schedule_time}, "
                    f"interval_minutes={self.interval_minutes}")

    @property
    def db(self) -> Database:
        self.open()
        return self._db

    @property
    def pipeline(self) -> NewsPipeline:
        self.open()
        return self._pipeline

    @property
    def articles(self) -> ArticleRepository:
        return ArticleRepository(self.db)

    @property
    def sources(self) -> SourceRepository:
        return SourceRepository(self.db)

    def open(self):
        """
        打开数据库并构建流水线组件
        Open the database and build pipeline components

        多次调用是安全的；目录为空时写入默认订阅源。
        """
        if self._db is not None:
            return

        db_path = get_config_value(self.config, 'database.path', 'data/newsroom.db')
        if db_path != ':memory:':
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        db = Database(db_path, timeout=float(get_config_value(self.config, 'database.timeout', 30.0)))
        db.init_db()
        SourceRepository(db).seed_defaults(self.config.get('default_sources') or [])

        self._db = db
        self._pipeline = build_pipeline(self.config, db, client=self._client)
        logger.info(f"Database opened at db_path={db_path}")

    def close(self):
        """关闭数据库连接"""
        if self._db is not None:
            try:
                self._db.close()
            except Exception as e:
                logger.warning(f"Error closing database: {e}")
            self._db = None
            self._pipeline = None

    def run_once(self) -> RunStats:
        """
        手动执行一次流水线
        Manually execute the pipeline once

        Returns:
            运行统计

        Raises:
            NoEnabledSourcesError / RunInProgressError / sqlite3.Error
        """
        logger.info("Running pipeline manually (once)...")
        stats = self.pipeline.run()
        logger.info("Manual pipeline run completed")
        return stats

    def run_task(self) -> RunStats | None:
        """
        定时触发的任务

        失败只记录日志，不中断调度循环。
        """
        try:
            return self.pipeline.run()
        except NewsroomError as e:
            logger.warning(f"Scheduled run rejected: {e}")
        except Exception as e:
            logger.error(f"Scheduled run failed: {e}", exc_info=True)
        return None

    def start(self):
        """
        启动定时调度
        Start scheduled execution
        """
        schedule.clear()

        if self.interval_minutes > 0:
            schedule.every(self.interval_minutes).minutes.do(self.run_task)
            logger.info(f"Starting scheduler, task will run every {self.interval_minutes} minutes")
        else:
            schedule.every().day.at(self.schedule_time).do(self.run_task)
            logger.info(f"Starting scheduler, task will run daily at {self.schedule_time}")

        self.open()
        self._running = True

        try:
            while self._running:
                schedule.run_pending()
                time.sleep(30)
        except KeyboardInterrupt:
            logger.info("Scheduler stopped by user")
        finally:
            self._running = False
            schedule.clear()
            self.close()

    def stop(self):
        """
        停止定时调度
        Stop scheduled execution
        """
        logger.info("Stopping scheduler...")
        self._running = False
        schedule.clear()
