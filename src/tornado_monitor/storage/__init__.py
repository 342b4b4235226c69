"""Persistent storage for StakeBurned events."""

from tornado_monitor.storage.database import Database, normalize_database_url
from tornado_monitor.storage.models import Base, StakeBurnedEventModel
from tornado_monitor.storage.repos import StakeBurnedEventDTO, StakeBurnedEventRepository

__all__ = [
    "Base",
    "Database",
    "StakeBurnedEventDTO",
    "StakeBurnedEventModel",
    "StakeBurnedEventRepository",
    "normalize_database_url",
]
