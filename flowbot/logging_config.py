"""Structured JSON logs. Turn-scoped records carry the conversation id as a top-level field."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.pool")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; ``extra={"context": {...}}`` lands under ``context``."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = dict(getattr(record, "context", None) or {})
        conversation_id = context.pop("conversation_id", None)
        if conversation_id is not None:
            payload["conversation_id"] = conversation_id
        if context:
            payload["context"] = context

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_type"] = record.exc_info[0].__name__
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Handler:
    """Route every logger through a single JSON handler on the root logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"flowbot.{name}")


class ConversationLogger(logging.LoggerAdapter):
    """Binds a conversation id; per-call ``context=`` is merged on top of it."""

    def __init__(self, logger: logging.Logger, conversation_id: str):
        super().__init__(logger, {"conversation_id": conversation_id})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = {**self.extra, **(kwargs.pop("context", None) or {})}
        kwargs["extra"] = {**kwargs.get("extra", {}), "context": context}
        return msg, kwargs
