"""
调度器模块测试
Scheduler Module Tests

测试Scheduler的初始化、组件生命周期、手动执行和定时调度注册。
"""

from unittest.mock import MagicMock, patch

import pytest

from newsroom.config import apply_defaults
from newsroom.exceptions import NoEnabledSourcesError
from newsroom.models import RunStats
from newsroom.scheduler import Scheduler


def memory_config(**overrides) -> dict:
    config = {'database': {'path': ':memory:'}}
    config.update(overrides)
    return apply_defaults(config)


class TestSchedulerInit:
    """测试Scheduler初始化"""

    def test_init_with_empty_config(self):
        scheduler = Scheduler({})

        assert scheduler.schedule_time == '09:00'
        assert scheduler.interval_minutes == 0
        assert scheduler._running is False

    def test_init_with_custom_schedule(self):
        scheduler = Scheduler({'schedule': {'time': '10:30', 'interval_minutes': 15}})

        assert scheduler.schedule_time == '10:30'
        assert scheduler.interval_minutes == 15

    def test_partial_schedule_section(self):
        scheduler = Scheduler({'schedule': {'interval_minutes': 45}})

        assert scheduler.schedule_time == '09:00'
        assert scheduler.interval_minutes == 45

    def test_open_without_database_timeout(self, tmp_path):
        db_path = tmp_path / 'newsroom.db'
        scheduler = Scheduler({'database': {'path': str(db_path)}})

        scheduler.open()
        scheduler.close()

        assert db_path.exists()

    def test_init_does_not_open_database(self):
        scheduler = Scheduler(memory_config())
        assert scheduler._db is None


class TestSchedulerLifecycle:
    """测试组件生命周期"""

    def test_open_seeds_default_sources(self):
        scheduler = Scheduler(memory_config())

        scheduler.open()

        assert scheduler.sources.count_sources() == 5
        assert scheduler.articles.count_articles() == 0
        scheduler.close()

    def test_open_creates_database_directory(self, tmp_path):
        db_path = tmp_path / 'nested' / 'newsroom.db'
        scheduler = Scheduler(apply_defaults({'database': {'path': str(db_path)}}))

        scheduler.open()
        scheduler.close()

        assert db_path.exists()

    def test_open_is_idempotent(self):
        scheduler = Scheduler(memory_config())

        scheduler.open()
        db = scheduler._db
        scheduler.open()

        assert scheduler._db is db
        scheduler.close()

    def test_close_releases_components(self):
        scheduler = Scheduler(memory_config())
        scheduler.open()

        scheduler.close()

        assert scheduler._db is None
        assert scheduler._pipeline is None


class TestSchedulerRuns:
    """测试执行"""

    @patch('newsroom.scheduler.build_pipeline')
    def test_run_once_returns_stats(self, mock_build):
        stats = RunStats(accepted=2)
        mock_build.return_value.run.return_value = stats
        scheduler = Scheduler(memory_config())

        assert scheduler.run_once() is stats
        scheduler.close()

    @patch('newsroom.scheduler.build_pipeline')
    def test_run_once_propagates_errors(self, mock_build):
        mock_build.return_value.run.side_effect = NoEnabledSourcesError()
        scheduler = Scheduler(memory_config())

        with pytest.raises(NoEnabledSourcesError):
            scheduler.run_once()
        scheduler.close()

    @pytest.mark.parametrize('error', [NoEnabledSourcesError(), RuntimeError('boom')])
    @patch('newsroom.scheduler.build_pipeline')
    def test_run_task_logs_and_continues(self, mock_build, error):
        mock_build.return_value.run.side_effect = error
        scheduler = Scheduler(memory_config())

        assert scheduler.run_task() is None
        scheduler.close()


class TestSchedulerStart:
    """测试定时调度注册"""

    @patch('newsroom.scheduler.time.sleep')
    @patch('newsroom.scheduler.schedule')
    def test_daily_schedule(self, mock_schedule, mock_sleep):
        scheduler = Scheduler(memory_config(schedule={'time': '07:45'}))
        mock_sleep.side_effect = lambda _: scheduler.stop()

        scheduler.start()

        mock_schedule.every.return_value.day.at.assert_called_once_with('07:45')
        mock_schedule.every.return_value.day.at.return_value.do.assert_called_once_with(scheduler.run_task)
        mock_schedule.run_pending.assert_called_once()
        assert scheduler._db is None

    @patch('newsroom.scheduler.time.sleep')
    @patch('newsroom.scheduler.schedule')
    def test_interval_schedule(self, mock_schedule, mock_sleep):
        scheduler = Scheduler(memory_config(schedule={'interval_minutes': 30}))
        mock_sleep.side_effect = lambda _: scheduler.stop()

        scheduler.start()

        mock_schedule.every.assert_called_once_with(30)
        mock_schedule.every.return_value.minutes.do.assert_called_once_with(scheduler.run_task)

    @patch('newsroom.scheduler.time.sleep', side_effect=KeyboardInterrupt)
    @patch('newsroom.scheduler.schedule', MagicMock())
    def test_keyboard_interrupt_stops_cleanly(self, mock_sleep):
        scheduler = Scheduler(memory_config())

        scheduler.start()

        assert scheduler._running is False
        assert scheduler._db is None
