# pulsetrade/transaction_repository.py
import logging
from typing import List, Optional
from sqlalchemy import desc
from pulsetrade.transaction import Transaction, TransactionStatus

logger = logging.getLogger(__name__)

class TransactionRepository:
    """
    Repository for Transaction model
    """
    def __init__(self, db):
        self.db = db
        
    def add_transaction(self, **fields) -> Transaction:
        """
        Add a new deposit or withdrawal request
        """
        session = self.db.get_session()
        try:
            transaction = Transaction(**fields)
            session.add(transaction)
            session.commit()
            logger.info(f"Added {transaction.transaction_type.value} transaction {transaction.id} for user {transaction.user_id}")
            return transaction
        except Exception as e:
            session.rollback()
            logger.error(f"Error adding transaction: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_transaction_by_id(self, transaction_id: int) -> Optional[Transaction]:
        session = self.db.get_session()
        try:
            return session.query(Transaction).filter(Transaction.id == transaction_id).first()
        except Exception as e:
            logger.error(f"Error getting transaction {transaction_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_transactions_by_user(self, user_id: int) -> List[Transaction]:
        """
        Get transactions by user ID, newest first
        """
        session = self.db.get_session()
        try:
            return session.query(Transaction).filter(
                Transaction.user_id == user_id
            ).order_by(
                desc(Transaction.created_at), desc(Transaction.id)
            ).all()
        except Exception as e:
            logger.error(f"Error getting transactions for user {user_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_all_transactions(self) -> List[Transaction]:
        """
        Get all transactions, newest first
        """
        session = self.db.get_session()
        try:
            return session.query(Transaction).order_by(
                desc(Transaction.created_at), desc(Transaction.id)
            ).all()
        except Exception as e:
            logger.error(f"Error getting all transactions: {str(e)}")
            raise
        finally:
            session.close()
            
    def transition_status(self, transaction_id: int, from_status: TransactionStatus,
                          to_status: TransactionStatus, note: Optional[str] = None) -> Optional[Transaction]:
        """
        Move a transaction between statuses if it is still in from_status.

        Returns:
            The updated transaction, or None when it was no longer in from_status
        """
        session = self.db.get_session()
        try:
            values = {Transaction.status: to_status}
            if note is not None:
                values[Transaction.note] = note
                
            updated = session.query(Transaction).filter(
                Transaction.id == transaction_id,
                Transaction.status == from_status
            ).update(values, synchronize_session=False)
            session.commit()
            
            if not updated:
                return None
                
            return session.query(Transaction).populate_existing().filter(
                Transaction.id == transaction_id
            ).first()
        except Exception as e:
            session.rollback()
            logger.error(f"Error updating transaction {transaction_id}: {str(e)}")
            raise
        finally:
            session.close()
