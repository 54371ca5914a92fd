from datetime import datetime

from .notifications import Notifier, get_notifier


def get_now() -> datetime:
    return datetime.now()


__all__ = ["get_now", "get_notifier", "Notifier"]
