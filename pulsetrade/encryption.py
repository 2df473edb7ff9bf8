"""
Password hashing and bearer tokens
"""
import logging
import os
import base64
import hmac
import time
import uuid
from typing import Optional, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import jwt

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100000

class Encryption:
    """
    PBKDF2 password hashing and HS256 JWT signing
    """
    def __init__(self, jwt_secret: str, token_expiry: int = 86400):
        self.jwt_secret = jwt_secret
        self.token_expiry = token_expiry
    
    @staticmethod
    def derive_key_from_password(password: str, salt: Optional[bytes] = None) -> Tuple[bytes, bytes]:
        """
        Derive a key from a password
        
        Args:
            password: Password string
            salt: Salt bytes (optional)
            
        Returns:
            Tuple of (key, salt)
        """
        if salt is None:
            salt = os.urandom(16)
            
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=PBKDF2_ITERATIONS
        )
        
        key = base64.urlsafe_b64encode(kdf.derive(password.encode()))
        return key, salt
    
    def hash_password(self, password: str) -> Tuple[str, str]:
        """
        Hash a password with a random salt
        
        Returns:
            Tuple of (hashed_password, hex encoded salt)
        """
        key, salt = self.derive_key_from_password(password)
        return key.decode('utf-8'), salt.hex()
    
    def verify_password(self, password: str, stored_hash: str, salt_hex: str) -> bool:
        if not stored_hash or not salt_hex:
            return False
        try:
            salt = bytes.fromhex(salt_hex)
        except ValueError:
            logger.warning("Stored password salt is not valid hex")
            return False
        key, _ = self.derive_key_from_password(password, salt)
        return hmac.compare_digest(key.decode('utf-8'), stored_hash)
    
    def generate_token(self, user_id: int) -> str:
        """
        Generate a signed bearer token for a user
        
        Args:
            user_id: User the token identifies
            
        Returns:
            JWT token
        """
        now = int(time.time())
        payload = {
            "user_id": user_id,
            "iat": now,
            "exp": now + self.token_expiry,
            "jti": uuid.uuid4().hex,
        }
        token = jwt.encode(payload, self.jwt_secret, algorithm='HS256')
        if isinstance(token, bytes):
            return token.decode('utf-8')
        return token
    
    def decode_token(self, token: str) -> Optional[dict]:
        """
        Verify and decode a JWT token
        
        Returns:
            Decoded payload or None if invalid
        """
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=['HS256'])
        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {str(e)}")
            return None
