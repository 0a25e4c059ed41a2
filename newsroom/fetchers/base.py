"""
FetchResult - 获取结果数据类
FetchResult - Fetch Result Data Class

封装单个订阅源的抓取结果：成功时包含条目列表，失败时包含错误信息。
Wraps the outcome of fetching one source: items on success, an error otherwise.
"""

from dataclasses import dataclass, field

from newsroom.models import RawItem


@dataclass
class FetchResult:
    """
    获取结果数据类
    Fetch Result Data Class

    Attributes:
        items: 获取的原始条目列表
               List of fetched raw items
        source_name: 订阅源名称
                     Name of the source
        source_url: 订阅源 URL
                    Feed URL of the source
        error: 错误信息（如有），获取成功时为 None
               Error message if any, None when fetch is successful

    Examples:
        >>> result = FetchResult(items=[], source_name='BBC News', error='Connection timeout')
        >>> result.is_success()
        False
        >>> len(result)
        0
    """
    items: list[RawItem] = field(default_factory=list)
    source_name: str = ""
    source_url: str = ""
    error: str | None = None

    def is_success(self) -> bool:
        """
        检查获取是否成功
        Check if the fetch was successful
        """
        return self.error is None

    def __len__(self) -> int:
        return len(self.items)
