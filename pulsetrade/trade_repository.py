# pulsetrade/trade_repository.py
import logging
from typing import List, Optional
from datetime import datetime
from sqlalchemy import desc
from pulsetrade.trade import Trade, TradeStatus, TradeResult

logger = logging.getLogger(__name__)

class TradeRepository:
    """
    Repository for Trade model
    """
    def __init__(self, db):
        self.db = db
        
    def add_trade(self, **fields) -> Trade:
        """
        Add a new trade
        """
        session = self.db.get_session()
        try:
            trade = Trade(**fields)
            session.add(trade)
            session.commit()
            logger.info(f"Added new trade with ID {trade.id} for user {trade.user_id}")
            return trade
            
        except Exception as e:
            session.rollback()
            logger.error(f"Error adding trade: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_trade_by_id(self, trade_id: int) -> Optional[Trade]:
        """
        Get trade by ID
        """
        session = self.db.get_session()
        try:
            return session.query(Trade).filter(Trade.id == trade_id).first()
        except Exception as e:
            logger.error(f"Error getting trade by ID {trade_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_trades_by_user(self, user_id: int) -> List[Trade]:
        """
        Get trades by user ID, newest first
        """
        session = self.db.get_session()
        try:
            return session.query(Trade).filter(
                Trade.user_id == user_id
            ).order_by(
                desc(Trade.created_at), desc(Trade.id)
            ).all()
        except Exception as e:
            logger.error(f"Error getting trades for user {user_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_all_trades(self) -> List[Trade]:
        """
        Get all trades, newest first
        """
        session = self.db.get_session()
        try:
            return session.query(Trade).order_by(
                desc(Trade.created_at), desc(Trade.id)
            ).all()
        except Exception as e:
            logger.error(f"Error getting all trades: {str(e)}")
            raise
        finally:
            session.close()
            
    def get_active_trades(self) -> List[Trade]:
        """
        Get trades awaiting settlement, oldest first
        """
        session = self.db.get_session()
        try:
            return session.query(Trade).filter(
                Trade.status == TradeStatus.ACTIVE
            ).order_by(Trade.id).all()
        except Exception as e:
            logger.error(f"Error getting active trades: {str(e)}")
            raise
        finally:
            session.close()
            
    def update_trade(self, trade_id: int, **kwargs) -> Optional[Trade]:
        """
        Update trade properties
        """
        session = self.db.get_session()
        try:
            trade = session.query(Trade).filter(Trade.id == trade_id).first()
            if not trade:
                logger.warning(f"Trade with ID {trade_id} not found")
                return None
                
            for key, value in kwargs.items():
                if hasattr(trade, key):
                    setattr(trade, key, value)
                    
            session.commit()
            logger.info(f"Updated trade with ID {trade_id}")
            return trade
            
        except Exception as e:
            session.rollback()
            logger.error(f"Error updating trade {trade_id}: {str(e)}")
            raise
        finally:
            session.close()
            
    def complete_trade(self, trade_id: int, result: TradeResult, end_time: datetime) -> Optional[Trade]:
        """
        Mark an active trade completed.

        The update only matches rows still active, so of two concurrent
        callers exactly one gets the trade back; the other gets None.
        """
        session = self.db.get_session()
        try:
            updated = session.query(Trade).filter(
                Trade.id == trade_id,
                Trade.status == TradeStatus.ACTIVE
            ).update({
                Trade.status: TradeStatus.COMPLETED,
                Trade.result: result,
                Trade.end_time: end_time,
                Trade.closed_at: end_time,
            }, synchronize_session=False)
            session.commit()
            
            if not updated:
                logger.info(f"Trade {trade_id} was not active, completion skipped")
                return None
                
            return session.query(Trade).populate_existing().filter(Trade.id == trade_id).first()
            
        except Exception as e:
            session.rollback()
            logger.error(f"Error completing trade {trade_id}: {str(e)}")
            raise
        finally:
            session.close()
