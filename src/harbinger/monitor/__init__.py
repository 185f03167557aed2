"""Repository polling, notifications and background processes."""

from harbinger.monitor.monitor import Monitor
from harbinger.monitor.notify import Notifier

__all__ = ["Monitor", "Notifier"]
