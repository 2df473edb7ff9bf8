# pulsetrade/bank_account.py
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from pulsetrade.db import Base
from pulsetrade.helpers import isoformat, utcnow

class BankAccount(Base):
    """
    Bank account model
    """
    __tablename__ = "bank_accounts"
    
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    bank_name = Column(String(100), nullable=False)
    account_number = Column(String(50), nullable=False)
    account_name = Column(String(100), nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    def to_dict(self):
        return {
            "id": self.id,
            "userId": self.user_id,
            "bankName": self.bank_name,
            "accountNumber": self.account_number,
            "accountName": self.account_name,
            "isDefault": bool(self.is_default),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
    
    def __repr__(self):
        return f"<BankAccount(id={self.id}, user_id={self.user_id}, bank_name={self.bank_name}, is_default={self.is_default})>"
