import io
import json
import logging
import sys

from flowbot.logging_config import ConversationLogger, JSONFormatter, get_logger, setup_logging


def _record(**extra):
    record = logging.LogRecord("flowbot.test", logging.INFO, __file__, 1, "Turn finished", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_conversation_id_is_promoted(self):
        line = JSONFormatter().format(_record(context={"conversation_id": "7701", "effects": 2}))

        data = json.loads(line)
        assert data["conversation_id"] == "7701"
        assert data["context"] == {"effects": 2}
        assert data["message"] == "Turn finished"
        assert data["level"] == "INFO"

    def test_plain_record_has_no_context(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert "context" not in data
        assert "conversation_id" not in data

    def test_exception_type_is_included(self):
        try:
            raise ValueError("bad step")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert data["exc_type"] == "ValueError"
        assert "bad step" in data["exception"]


class TestConversationLogger:
    def test_merges_bound_and_call_context(self):
        stream = io.StringIO()
        handler = setup_logging("DEBUG", stream=stream)
        try:
            log = ConversationLogger(get_logger("test"), "7701")
            log.warning("History write failed", context={"error_code": "store_unavailable"})
        finally:
            logging.getLogger().removeHandler(handler)

        data = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert data["logger"] == "flowbot.test"
        assert data["conversation_id"] == "7701"
        assert data["context"] == {"error_code": "store_unavailable"}

    def test_quiet_loggers(self):
        handler = setup_logging("DEBUG", stream=io.StringIO())
        logging.getLogger().removeHandler(handler)

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("sqlalchemy.pool").level == logging.WARNING
