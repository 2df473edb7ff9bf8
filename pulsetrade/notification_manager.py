"""
Real-time notification channel

Events are queued by the services and dispatched on a background thread to
subscribed connections. A subscription bound to a user receives that user's
room events plus global broadcasts; an anonymous one only broadcasts.
Delivery is best effort: there is no replay and a failing subscriber is
logged and skipped.
"""

import itertools
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

TRADE_UPDATE = "trade-update"
BALANCE_UPDATE = "balance-update"
TRADE_COMPLETED = "trade-completed"

class NotificationManager:
    """
    Queues events and fans them out to subscribers
    """
    def __init__(self):
        self.notification_thread = None
        self.running = False
        self.notification_queue: List[Dict[str, Any]] = []
        self.queue_lock = threading.Lock()
        self.wakeup = threading.Event()
        self.subscribers: Dict[int, Dict[str, Any]] = {}
        self.subscribers_lock = threading.Lock()
        self._subscription_ids = itertools.count(1)
        
    def start(self):
        """
        Start the notification manager
        """
        if self.running:
            logger.warning("Notification manager already running")
            return
            
        logger.info("Starting notification manager")
        self.running = True
        self.notification_thread = threading.Thread(target=self._notification_loop, daemon=True,
                                                     name="notifications")
        self.notification_thread.start()
        
        logger.info("Notification manager started")
    
    def stop(self):
        """
        Stop the notification manager, delivering whatever is still queued
        """
        if not self.running:
            logger.warning("Notification manager already stopped")
            return
            
        logger.info("Stopping notification manager")
        self.running = False
        self.wakeup.set()
        
        if self.notification_thread:
            self.notification_thread.join(timeout=5)
        self.flush()
            
        logger.info("Notification manager stopped")
    
    # Subscriptions
    
    def subscribe(self, callback: Callable[[str, Dict[str, Any]], None], user_id: Optional[int] = None) -> int:
        """
        Register a connection.

        Args:
            callback: Called as callback(event, payload) for each delivered event
            user_id: Room to join; None receives broadcasts only

        Returns:
            int: Subscription id for unsubscribe/join_room
        """
        subscription_id = next(self._subscription_ids)
        with self.subscribers_lock:
            self.subscribers[subscription_id] = {"callback": callback, "user_id": user_id}
        logger.debug(f"Subscription {subscription_id} registered (user {user_id})")
        return subscription_id
    
    def join_room(self, subscription_id: int, user_id: int):
        with self.subscribers_lock:
            subscriber = self.subscribers.get(subscription_id)
            if subscriber is not None:
                subscriber["user_id"] = user_id
                logger.debug(f"Subscription {subscription_id} joined room of user {user_id}")
    
    def unsubscribe(self, subscription_id: int):
        with self.subscribers_lock:
            self.subscribers.pop(subscription_id, None)
    
    # Events
    
    def notify_trade_update(self, user_id: int, trade: Dict[str, Any]):
        self._enqueue(TRADE_UPDATE, trade, user_id)
    
    def notify_balance_update(self, user_id: int, balance):
        self._enqueue(BALANCE_UPDATE, {"balance": str(balance)}, user_id)
    
    def notify_trade_completed(self, trade_id: int, user_id: int, result: str, status: str):
        self.broadcast(TRADE_COMPLETED, {
            "tradeId": trade_id,
            "userId": user_id,
            "result": result,
            "status": status,
        })
    
    def broadcast(self, event: str, payload: Dict[str, Any]):
        """Send an event to every connection"""
        self._enqueue(event, payload, None)
    
    def _enqueue(self, event: str, payload: Dict[str, Any], user_id: Optional[int]):
        with self.queue_lock:
            self.notification_queue.append({"event": event, "payload": payload, "user_id": user_id})
        self.wakeup.set()
    
    # Dispatch
    
    def flush(self) -> int:
        """
        Dispatch every queued event on the calling thread.

        Returns:
            int: Number of events dispatched
        """
        with self.queue_lock:
            notifications_to_process = self.notification_queue
            self.notification_queue = []
            
        for notification in notifications_to_process:
            self._process_notification(notification)
        return len(notifications_to_process)
    
    def _notification_loop(self):
        """
        Main notification processing loop
        """
        while self.running:
            try:
                if not self.flush():
                    self.wakeup.wait(1)
                    self.wakeup.clear()
                    
            except Exception as e:
                logger.error(f"Error in notification loop: {str(e)}")
                time.sleep(5)
    
    def _process_notification(self, notification: Dict[str, Any]):
        """
        Deliver one event to the matching subscribers
        """
        target = notification["user_id"]
        with self.subscribers_lock:
            recipients = [
                (subscription_id, subscriber["callback"])
                for subscription_id, subscriber in self.subscribers.items()
                if target is None or subscriber["user_id"] == target
            ]
            
        for subscription_id, callback in recipients:
            try:
                callback(notification["event"], notification["payload"])
            except Exception as e:
                logger.error(f"Error delivering {notification['event']} to subscription {subscription_id}: {str(e)}")
