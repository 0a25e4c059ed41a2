# Utils module - 工具模块

from .pacing import RequestPacer, DEFAULT_PACING_DELAY

__all__ = [
    "RequestPacer",
    "DEFAULT_PACING_DELAY",
]
