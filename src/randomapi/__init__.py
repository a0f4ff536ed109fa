"""RandomAPI - 随机资源重定向服务."""

__version__ = "0.1.0"
