"""Service modules"""
from .scenario import run_demo
from .watcher import PositionWatcher

__all__ = ["PositionWatcher", "run_demo"]
