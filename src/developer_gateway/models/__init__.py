"""Database models for the developer gateway."""

from .developer import Developer
from .developer_limit import DeveloperLimit
from .usage_log import UsageLogEntry

__all__ = ["Developer", "DeveloperLimit", "UsageLogEntry"]
