"""SQLAlchemy models for the PTAL sync service."""

from .base import Base, BaseModel
from .ptal_record import PtalRecord

__all__ = [
    "Base",
    "BaseModel",
    "PtalRecord",
]
