"""
调用节流模块

在连续两次生成服务调用之间强制固定的等待时间，避免触发服务端限流。
"""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


DEFAULT_PACING_DELAY = 2.0


class RequestPacer:
    """
    固定间隔节流器

    每次 pause() 阻塞 delay 秒。调用方只在两次调用之间 pause，
    批次中最后一次调用之后不会等待。

    Attributes:
        delay: 等待时间（秒），0 表示不等待
        pause_count: 已执行的等待次数

    Example:
        >>> pacer = RequestPacer(delay=0)
        >>> pacer.pause()
        >>> pacer.pause_count
        1
    """

    def __init__(
        self,
        delay: float = DEFAULT_PACING_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if delay < 0:
            raise ValueError(f"pacing delay must be >= 0, got {delay}")
        self.delay = delay
        self._sleep = sleep
        self.pause_count = 0

    def pause(self) -> None:
        """等待一个固定间隔"""
        self.pause_count += 1
        if self.delay > 0:
            logger.debug(f"等待 {self.delay:.1f}s 以遵守生成服务限流")
            self._sleep(self.delay)
