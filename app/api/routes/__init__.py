from . import events, notifications, tasks

__all__ = ["events", "notifications", "tasks"]
