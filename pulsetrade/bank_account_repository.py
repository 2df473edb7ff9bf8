# pulsetrade/bank_account_repository.py
import logging
from typing import List, Optional
from pulsetrade.bank_account import BankAccount

logger = logging.getLogger(__name__)

class BankAccountRepository:
    """
    Repository for BankAccount model
    """
    def __init__(self, db):
        self.db = db
        
    def add_bank_account(self, **fields) -> BankAccount:
        """
        Add a bank account, clearing the default flag on the owner's other
        accounts when the new one is default
        """
        session = self.db.get_session()
        try:
            if fields.get("is_default"):
                session.query(BankAccount).filter(
                    BankAccount.user_id == fields["user_id"]
                ).update({BankAccount.is_default: False}, synchronize_session=False)
                
            account = BankAccount(**fields)
            session.add(account)
            session.commit()
            logger.info(f"Added bank account {account.id} for user {account.user_id}")
            return account
        except Exception as e:
            session.rollback()
            logger.error(f"Error adding bank account: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_bank_account_by_id(self, account_id: int) -> Optional[BankAccount]:
        session = self.db.get_session()
        try:
            return session.query(BankAccount).filter(BankAccount.id == account_id).first()
        except Exception as e:
            logger.error(f"Error getting bank account {account_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_bank_accounts_by_user(self, user_id: int) -> List[BankAccount]:
        session = self.db.get_session()
        try:
            return session.query(BankAccount).filter(
                BankAccount.user_id == user_id
            ).order_by(BankAccount.id).all()
        except Exception as e:
            logger.error(f"Error getting bank accounts for user {user_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_all_bank_accounts(self) -> List[BankAccount]:
        session = self.db.get_session()
        try:
            return session.query(BankAccount).order_by(BankAccount.user_id, BankAccount.id).all()
        finally:
            session.close()
            
    def update_bank_account(self, account_id: int, **kwargs) -> Optional[BankAccount]:
        """
        Update bank account details
        """
        session = self.db.get_session()
        try:
            account = session.query(BankAccount).filter(BankAccount.id == account_id).first()
            if not account:
                logger.warning(f"Bank account with ID {account_id} not found")
                return None
                
            for key, value in kwargs.items():
                if hasattr(account, key):
                    setattr(account, key, value)
                    
            session.commit()
            return account
        except Exception as e:
            session.rollback()
            logger.error(f"Error updating bank account {account_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def set_default(self, account_id: int, is_default: bool = True) -> Optional[BankAccount]:
        """
        Set the default flag on an account; setting it clears every sibling
        """
        session = self.db.get_session()
        try:
            account = session.query(BankAccount).filter(BankAccount.id == account_id).first()
            if not account:
                return None
                
            if is_default:
                session.query(BankAccount).filter(
                    BankAccount.user_id == account.user_id,
                    BankAccount.id != account_id
                ).update({BankAccount.is_default: False}, synchronize_session=False)
                
            account.is_default = is_default
            session.commit()
            return account
        except Exception as e:
            session.rollback()
            logger.error(f"Error setting default bank account {account_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def delete_bank_account(self, account_id: int) -> bool:
        session = self.db.get_session()
        try:
            deleted = session.query(BankAccount).filter(BankAccount.id == account_id).delete()
            session.commit()
            return bool(deleted)
        except Exception as e:
            session.rollback()
            logger.error(f"Error deleting bank account {account_id}: {str(e)}")
            raise
        finally:
            session.close()
