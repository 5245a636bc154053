"""storage/__init__.py"""
from .database import Database
from .repository import TrafficRepository

__all__ = ["Database", "TrafficRepository"]
