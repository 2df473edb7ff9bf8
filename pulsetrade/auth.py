# pulsetrade/auth.py
import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from pulsetrade.decorators import retry
from pulsetrade.errors import AuthenticationError, UserNotFound, ValidationError
from pulsetrade.fee_calculator import format_money
from pulsetrade.user import User, UserRole
from pulsetrade.validators import ensure_valid, validate_email, validate_password

logger = logging.getLogger(__name__)

class Auth:
    """
    Authentication system
    """
    def __init__(self, storage, encryption, settings_service):
        self.storage = storage
        self.encryption = encryption
        self.settings_service = settings_service
        
        logger.info("Auth system initialized")
        
    def register(self, username: str, email: str, password: str, **profile) -> User:
        """
        Register a new user with a zero balance
        
        Args:
            username: Unique login name
            email: Unique email address
            password: Plain text password, at least 6 characters
            profile: Optional full_name, display_name, phone_number
            
        Returns:
            User: The created user
        """
        if not self.settings_service.get("allowRegistrations"):
            raise ValidationError("Registrations are currently closed")
            
        username = (username or "").strip()
        if len(username) < 3:
            raise ValidationError("Username must be at least 3 characters")
        ensure_valid(validate_email(email))
        ensure_valid(validate_password(password))
        
        if self.storage.get_user_by_username(username):
            logger.warning(f"Registration rejected, username {username} exists")
            raise ValidationError("Username already exists")
        if self.storage.get_user_by_email(email):
            logger.warning(f"Registration rejected, email {email} in use")
            raise ValidationError("Email already in use")
            
        password_hash, salt = self.encryption.hash_password(password)
        allowed = {key: profile[key] for key in ("full_name", "display_name", "phone_number") if profile.get(key)}
        try:
            user = self.storage.create_user(
                username,
                email,
                password_hash=password_hash,
                password_salt=salt,
                role=UserRole.USER,
                balance="0",
                **allowed
            )
        except (ValueError, IntegrityError) as e:
            # Lost a race with a concurrent registration of the same name
            logger.warning(f"Registration of {username} failed: {str(e)}")
            raise ValidationError("Username or email already exists")
            
        logger.info(f"User registered: {username}")
        return user
            
    def login(self, username: str, password: str) -> Tuple[User, str]:
        """
        Check credentials and issue a token
        
        Returns:
            Tuple[User, str]: The user and a bearer token
        """
        user = self.storage.get_user_by_username(username or "")
        if user is None or not self.encryption.verify_password(password or "", user.password_hash, user.password_salt):
            logger.warning(f"Failed login for {username}")
            raise AuthenticationError("Invalid username or password")
            
        logger.info(f"User logged in: {username}")
        return user, self.encryption.generate_token(user.id)
            
    def verify_token(self, token: str) -> User:
        """
        Resolve a bearer token to its user
        
        Raises:
            AuthenticationError: Token invalid, expired or for an unknown user
        """
        payload = self.encryption.decode_token(token) if token else None
        if not payload or "user_id" not in payload:
            raise AuthenticationError("Invalid or expired token")
            
        user = self.storage.get_user(payload["user_id"])
        if user is None:
            raise AuthenticationError("Invalid or expired token")
        return user
    
    def generate_token(self, user_id: int) -> str:
        return self.encryption.generate_token(user_id)
        
    def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        user = self.storage.get_user(user_id)
        if user is None:
            raise UserNotFound(user_id)
        if not self.encryption.verify_password(current_password or "", user.password_hash, user.password_salt):
            raise ValidationError("Current password is incorrect")
        ensure_valid(validate_password(new_password))
        
        password_hash, salt = self.encryption.hash_password(new_password)
        self.storage.update_user(user_id, password_hash=password_hash, password_salt=salt)
        logger.info(f"Password changed for user {user_id}")
    
    def hash_password_fields(self, password: str) -> Dict[str, Any]:
        """Column values for a new password"""
        ensure_valid(validate_password(password))
        password_hash, salt = self.encryption.hash_password(password)
        return {"password_hash": password_hash, "password_salt": salt}
        
    @retry(max_attempts=3, delay=2.0, backoff=2.0, exceptions=(SQLAlchemyError,))
    def ensure_admin_user(self, username: str, email: str, password: str,
                          initial_balance: str = "0") -> Optional[User]:
        """
        Create the bootstrap administrator if it does not exist yet
        
        Args:
            username: Admin login name
            email: Admin email
            password: Admin password; without one no admin is created
            initial_balance: Starting balance
            
        Returns:
            Optional[User]: The existing or created admin
        """
        existing = self.storage.get_user_by_username(username)
        if existing:
            if existing.role != UserRole.ADMIN:
                logger.warning(f"User {username} exists but is not an admin")
            return existing
            
        if not password:
            logger.warning("No admin password configured, skipping admin bootstrap")
            return None
            
        user = self.storage.create_user(
            username,
            email,
            role=UserRole.ADMIN,
            balance=format_money(Decimal(str(initial_balance))),
            **self.hash_password_fields(password)
        )
        logger.info(f"Admin user {username} created")
        return user
