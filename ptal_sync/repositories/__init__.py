"""Repository implementations for data access layer."""

from .base import BaseRepository
from .ptal_record import PtalRecordRepository

__all__ = [
    "BaseRepository",
    "PtalRecordRepository",
]
