from sqlalchemy import Column, Integer, String, Text, TIMESTAMP
from sqlalchemy.dialects.mysql import LONGTEXT
from sqlalchemy.sql import func

from flowbot.database import Base

LongText = Text().with_variant(LONGTEXT(), "mysql")


class HistoryEntry(Base):
    __tablename__ = "history"
    __table_args__ = {"mysql_charset": "utf8mb4", "mysql_collate": "utf8mb4_general_ci"}

    id = Column(Integer, primary_key=True, autoincrement=True)
    ref = Column(String(255))
    keyword = Column(String(255))
    answer = Column(LongText)
    refSerialize = Column(String(255))
    phone = Column(String(255), nullable=False, index=True)
    options = Column(LongText)  # JSON text
    created_at = Column(TIMESTAMP, server_default=func.now())
