from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from mailsafe.database import Base

class ConversionHistory(Base):
    """Table storing editor-HTML to email-HTML conversion history.
    エディタHTMLからメール用HTMLへの変換履歴を保持するテーブル。
    """
    __tablename__ = "conversion_history"

    id = Column(Integer, primary_key=True, index=True)
    conversion_id = Column(String, unique=True, index=True)
    input_size = Column(Integer)
    output_size = Column(Integer)
    layout_tables = Column(Integer, default=0)
    images_normalized = Column(Integer, default=0)
    conversion_time = Column(DateTime(timezone=True), server_default=func.now())
    status = Column(String, default="completed")
    error_message = Column(Text, nullable=True)
