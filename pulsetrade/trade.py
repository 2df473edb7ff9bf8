# pulsetrade/trade.py
import enum
from sqlalchemy import Column, Integer, String, Enum, DateTime, ForeignKey
from sqlalchemy.sql import func
from pulsetrade.db import Base
from pulsetrade.helpers import isoformat, utcnow

class TradeDirection(enum.Enum):
    """
    Trade direction enumeration
    """
    UP = "up"
    DOWN = "down"
    
class TradeStatus(enum.Enum):
    """
    Trade status enumeration
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    
class TradeResult(enum.Enum):
    """
    Trade result enumeration
    """
    WIN = "win"
    LOSE = "lose"
    
class Trade(Base):
    """
    Trade model
    """
    __tablename__ = "trades"
    
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    
    # Trade details
    crypto_id = Column(String(100), nullable=False)
    entry_price = Column(String(40), nullable=False)
    amount = Column(String(40), nullable=False)  # stake, debited at open
    direction = Column(Enum(TradeDirection), nullable=False)
    duration = Column(Integer, nullable=False)  # seconds
    profit_percentage = Column(String(20), nullable=False)
    
    # Trade result
    status = Column(Enum(TradeStatus), default=TradeStatus.ACTIVE, nullable=False)
    result = Column(Enum(TradeResult), nullable=True)
    predetermined_result = Column(Enum(TradeResult), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, server_default=func.now())
    closed_at = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    
    def to_dict(self, include_predetermined=False):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "cryptoId": self.crypto_id,
            "entryPrice": self.entry_price,
            "amount": self.amount,
            "direction": _enum_value(self.direction),
            "duration": self.duration,
            "profitPercentage": self.profit_percentage,
            "status": _enum_value(self.status),
            "result": _enum_value(self.result),
            "createdAt": isoformat(self.created_at),
            "closedAt": isoformat(self.closed_at),
            "endTime": isoformat(self.end_time),
        }
        # Staff only, owners must not see a forced outcome
        if include_predetermined:
            data["predeterminedResult"] = _enum_value(self.predetermined_result)
        return data
    
    def __repr__(self):
        return f"<Trade(id={self.id}, user_id={self.user_id}, crypto_id={self.crypto_id}, direction={_enum_value(self.direction)}, status={_enum_value(self.status)})>"


def _enum_value(value):
    return value.value if isinstance(value, enum.Enum) else value
