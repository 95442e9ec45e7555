import re

from sqlalchemy.dialects import mysql, sqlite
from sqlalchemy.schema import CreateTable

from flowbot.models import HistoryEntry


def _column_type(dialect, column):
    ddl = str(CreateTable(HistoryEntry.__table__).compile(dialect=dialect))
    match = re.search(rf"[`\"]?{column}[`\"]? (\w+)", ddl)
    return match.group(1)


def test_mysql_uses_longtext_for_answer_and_options():
    assert _column_type(mysql.dialect(), "answer") == "LONGTEXT"
    assert _column_type(mysql.dialect(), "options") == "LONGTEXT"


def test_other_backends_use_plain_text():
    assert _column_type(sqlite.dialect(), "answer") == "TEXT"
    assert _column_type(sqlite.dialect(), "options") == "TEXT"
