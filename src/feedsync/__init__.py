"""feedsync - 多源 RSS 同步引擎."""

__version__ = "0.1.0"
