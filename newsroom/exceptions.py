"""
异常定义模块
Exceptions Module

定义流水线各层使用的异常类型。
Defines the exception types raised across the pipeline.

- 输入校验失败（无启用的订阅源）在抓取前直接拒绝本次运行
- 单个订阅源/单个聚类的失败在本地处理，不会以异常形式传播到调用方
- 存储层错误（sqlite3.Error）直接向上传播，表示系统性问题
"""


class NewsroomError(Exception):
    """
    所有业务异常的基类
    Base class for all newsroom errors
    """


class NoEnabledSourcesError(NewsroomError):
    """
    没有启用的订阅源
    No enabled sources

    在任何抓取工作开始前抛出，本次运行被拒绝。
    Raised before any fetch work begins; the run is rejected.
    """

    def __init__(self, message: str = "No enabled sources found"):
        super().__init__(message)


class RunInProgressError(NewsroomError):
    """
    已有一次流水线运行正在进行
    Another pipeline run is already in progress
    """

    def __init__(self, message: str = "A pipeline run is already in progress"):
        super().__init__(message)


class SynthesisError(NewsroomError):
    """
    综述生成错误
    Synthesis Error

    生成服务调用失败或响应无法使用时抛出。
    Raised when the generation service fails or returns an unusable response.

    Attributes:
        message: 错误描述信息
        cluster_title: 聚类代表文章标题（可选）
    """

    def __init__(self, message: str, cluster_title: str | None = None):
        self.message = message
        self.cluster_title = cluster_title
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """格式化错误消息"""
        if self.cluster_title:
            return f"Synthesis failed for '{self.cluster_title[:60]}': {self.message}"
        return f"Synthesis failed: {self.message}"


class FeedValidationError(NewsroomError):
    """
    订阅源校验错误
    Feed Validation Error

    添加订阅源时，URL 无法解析为 RSS/Atom 订阅源时抛出。
    Raised when a URL being added to the catalog does not parse as a feed.

    Attributes:
        message: 错误描述信息
        url: 导致错误的订阅源 URL
    """

    def __init__(self, message: str, url: str | None = None):
        self.message = message
        self.url = url
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """格式化错误消息"""
        if self.url:
            return f"Invalid RSS feed URL '{self.url}': {self.message}"
        return f"Invalid RSS feed: {self.message}"
