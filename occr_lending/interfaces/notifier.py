"""Notifier protocol — alert channel abstraction for the position watcher."""
from typing import Protocol


class Notifier(Protocol):
    """Abstract interface for delivering watcher messages."""

    async def send_alert(self, message: str, subject: str = "") -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
