"""SQLAlchemy models package."""

from .base import Base
from .comment import Comment
from .config_record import CONFIG_ROW_ID, ConfigRecord
from .counter import Counter

__all__ = [
    "Base",
    "Comment",
    "CONFIG_ROW_ID",
    "ConfigRecord",
    "Counter",
]
