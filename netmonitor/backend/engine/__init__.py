"""engine/__init__.py"""
from .engine import AggregationEngine
from .models import Finding, LogWindow
from .scheduler import PeriodicTask
from .synthesizer import TrafficSynthesizer

__all__ = ["AggregationEngine", "Finding", "LogWindow", "PeriodicTask", "TrafficSynthesizer"]
