# pulsetrade/user_repository.py
import logging
from typing import List, Optional
from pulsetrade.user import User

logger = logging.getLogger(__name__)

class UserRepository:
    """
    Repository for User model
    """
    def __init__(self, db):
        self.db = db
    
    def create_user(self, username: str, email: str, **kwargs) -> User:
        """
        Create a new user
        """
        session = self.db.get_session()
        try:
            user = User(username=username, email=email, **kwargs)
            session.add(user)
            session.commit()
            logger.info(f"Created new user with ID {user.id}")
            return user
        except Exception as e:
            session.rollback()
            logger.error(f"Error creating user: {str(e)}")
            raise
        finally:
            session.close()
    
    def get_user_by_id(self, user_id: int) -> Optional[User]:
        """
        Get user by ID
        """
        session = self.db.get_session()
        try:
            return session.query(User).filter(User.id == user_id).first()
        except Exception as e:
            logger.error(f"Error getting user by ID {user_id}: {str(e)}")
            raise
        finally:
            session.close()
    
    def get_user_by_username(self, username: str) -> Optional[User]:
        """
        Get user by username
        """
        session = self.db.get_session()
        try:
            return session.query(User).filter(User.username == username).first()
        except Exception as e:
            logger.error(f"Error getting user by username {username}: {str(e)}")
            raise
        finally:
            session.close()
    
    def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email
        """
        session = self.db.get_session()
        try:
            return session.query(User).filter(User.email == email).first()
        except Exception as e:
            logger.error(f"Error getting user by email: {str(e)}")
            raise
        finally:
            session.close()
    
    def get_all_users(self) -> List[User]:
        """
        Get all users
        """
        session = self.db.get_session()
        try:
            return session.query(User).order_by(User.id).all()
        except Exception as e:
            logger.error(f"Error getting all users: {str(e)}")
            raise
        finally:
            session.close()
    
    def update_user(self, user_id: int, **kwargs) -> Optional[User]:
        """
        Update user properties
        """
        session = self.db.get_session()
        try:
            user = session.query(User).filter(User.id == user_id).first()
            if not user:
                logger.warning(f"User with ID {user_id} not found")
                return None
                
            for key, value in kwargs.items():
                if hasattr(user, key):
                    setattr(user, key, value)
                    
            session.commit()
            logger.debug(f"Updated user with ID {user_id}")
            return user
            
        except Exception as e:
            session.rollback()
            logger.error(f"Error updating user {user_id}: {str(e)}")
            raise
        finally:
            session.close()
