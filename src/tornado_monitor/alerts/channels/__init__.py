"""Alert channel implementations."""

from tornado_monitor.alerts.channels.telegram import TelegramChannel

__all__ = [
    "TelegramChannel",
]
