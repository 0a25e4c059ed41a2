"""
Newsroom - 多源新闻合成流水线
Newsroom - multi-source news synthesis pipeline

抓取多个 RSS 订阅源，把报道同一事件的条目分组，
通过大语言模型为每个事件合成一篇综合文章，并在近期去重后保存。
"""

__version__ = "0.1.0"
