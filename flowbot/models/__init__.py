from flowbot.models.history import HistoryEntry

__all__ = [
    "HistoryEntry",
]
