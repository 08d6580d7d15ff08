"""SQLAlchemy models package."""

from .base import Base
from .security_event import SecurityEventRecord

__all__ = [
    "Base",
    "SecurityEventRecord",
]
