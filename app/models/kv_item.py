from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func

from app.core.db import Base


class KeyValueItem(Base):
    __tablename__ = "device_kv"

    key = Column(String, primary_key=True, index=True)
    value = Column(Text, nullable=False)

    updated_at = Column(DateTime(timezone=False), server_default=func.now(), onupdate=func.now(), nullable=False)
