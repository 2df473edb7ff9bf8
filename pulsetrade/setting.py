# pulsetrade/setting.py
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from pulsetrade.db import Base
from pulsetrade.helpers import utcnow

class Setting(Base):
    """
    Process-wide key/value setting, value is JSON encoded
    """
    __tablename__ = "settings"
    
    id = Column(Integer, primary_key=True)
    key = Column(String(100), unique=True, nullable=False)
    value = Column(Text, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    def __repr__(self):
        return f"<Setting(key={self.key})>"
