# pulsetrade/user.py
import enum
from sqlalchemy import Column, Integer, String, Enum, DateTime
from sqlalchemy.sql import func
from pulsetrade.db import Base
from pulsetrade.helpers import isoformat, utcnow

class UserRole(enum.Enum):
    """
    User role enumeration
    """
    USER = "user"
    AGENT = "agent"
    ADMIN = "admin"
   
class User(Base):
    """
    User model
    """
    __tablename__ = "users"
   
    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String(100), unique=True, nullable=False)
    password_hash = Column(String(128), nullable=False)
    password_salt = Column(String(64), nullable=False)
   
    # Profile
    full_name = Column(String(100), nullable=True)
    display_name = Column(String(100), nullable=True)
    phone_number = Column(String(30), nullable=True)
    avatar_url = Column(String(500), nullable=True)
   
    role = Column(Enum(UserRole), default=UserRole.USER, nullable=False)
   
    # Decimal stored as string, see BalanceLedger
    balance = Column(String(40), default="0", nullable=False)
   
    # Timestamps
    created_at = Column(DateTime, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
   
    def to_dict(self):
        """Public representation, never includes password material"""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "fullName": self.full_name,
            "displayName": self.display_name,
            "phoneNumber": self.phone_number,
            "avatarUrl": self.avatar_url,
            "role": self.role.value if self.role else None,
            "balance": self.balance,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
   
    def __repr__(self):
        return f"<User(id={self.id}, username={self.username}, role={self.role.value if self.role else None})>"
