# pulsetrade/transaction.py
import enum
from sqlalchemy import Column, Integer, String, Enum, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from pulsetrade.db import Base
from pulsetrade.helpers import isoformat, utcnow

class TransactionType(enum.Enum):
    """
    Transaction type enumeration
    """
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    
class TransactionStatus(enum.Enum):
    """
    Transaction status enumeration
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FROZEN = "frozen"
    
class PaymentMethod(enum.Enum):
    """
    Payment method enumeration
    """
    BANK = "bank"
    PROMPTPAY = "promptpay"
    
class Transaction(Base):
    """
    Transaction model
    """
    __tablename__ = "transactions"
    
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    
    # Transaction details
    transaction_type = Column(Enum(TransactionType), nullable=False)
    amount = Column(String(40), nullable=False)
    fee = Column(String(40), nullable=True)
    method = Column(Enum(PaymentMethod), nullable=False)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.PENDING, nullable=False)
    
    # Payout destination (withdrawals)
    bank_name = Column(String(100), nullable=True)
    bank_account = Column(String(50), nullable=True)
    account_name = Column(String(100), nullable=True)
    bank_account_id = Column(Integer, ForeignKey('bank_accounts.id'), nullable=True)
    
    payment_proof = Column(Text, nullable=True)  # base64 image (deposits)
    note = Column(Text, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    def to_dict(self, include_proof=False):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "type": self.transaction_type.value if self.transaction_type else None,
            "amount": self.amount,
            "fee": self.fee,
            "method": self.method.value if self.method else None,
            "status": self.status.value if self.status else None,
            "bankName": self.bank_name,
            "bankAccount": self.bank_account,
            "accountName": self.account_name,
            "bankAccountId": self.bank_account_id,
            "note": self.note,
            "hasPaymentProof": bool(self.payment_proof),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if include_proof:
            data["paymentProof"] = self.payment_proof
        return data
    
    def __repr__(self):
        return f"<Transaction(id={self.id}, user_id={self.user_id}, type={self.transaction_type.value}, amount={self.amount}, status={self.status.value})>"
