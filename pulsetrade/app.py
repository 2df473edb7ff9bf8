# pulsetrade/app.py
import logging
import signal
import datetime
from threading import Event

from pulsetrade.helpers import utcnow

logger = logging.getLogger(__name__)

class PulseTradeApp:
    """
    Main application class for PulseTrade
    """
    def __init__(self, notification_manager, scheduler, api, settlement_poller, db=None):
        """
        Initialize the application with its long-running components.
        
        Args:
            notification_manager: Dispatches real-time events
            scheduler: Runs the settlement sweep
            api: HTTP/WebSocket server
            settlement_poller: Settles expired trades
            db: Database to close on shutdown, None for in-memory storage
        """
        self.notification_manager = notification_manager
        self.scheduler = scheduler
        self.api = api
        self.settlement_poller = settlement_poller
        self.db = db
        self.shutdown_event = Event()
        self.start_time = None
        self.running = False
        
        logger.info("PulseTrade application initialized")
        
    def install_signal_handlers(self):
        """Route SIGINT/SIGTERM to a graceful shutdown; main thread only"""
        signal.signal(signal.SIGINT, self.handle_shutdown)
        signal.signal(signal.SIGTERM, self.handle_shutdown)
        
    def start(self):
        """
        Start notifications, the settlement scheduler and the API server
        """
        if self.running:
            logger.warning("PulseTrade is already running")
            return
            
        logger.info("Starting PulseTrade")
        self.start_time = utcnow()
        
        # Start order: consumers of events before producers
        self.notification_manager.start()
        
        self.settlement_poller.register(self.scheduler)
        self.scheduler.start()
        
        self.api.start_server()
        
        self.running = True
        logger.info("PulseTrade started successfully")
            
    def wait(self):
        """Block until a shutdown is requested"""
        try:
            while not self.shutdown_event.is_set():
                self.shutdown_event.wait(1)
        except KeyboardInterrupt:
            self.handle_shutdown(None, None)
            
    def handle_shutdown(self, sig, frame):
        """
        Handle graceful shutdown of the application
        """
        if self.shutdown_event.is_set():
            logger.warning("Shutdown already in progress")
            return
            
        logger.info("Graceful shutdown initiated")
        self.shutdown_event.set()
        self.stop()
        
    def stop(self):
        if not self.running:
            return
            
        # Stop all components in reverse order
        self.api.stop()
        self.scheduler.stop()
        self.notification_manager.stop()
        if self.db is not None:
            self.db.close()
            
        logger.info(f"PulseTrade shutdown complete after {self.get_uptime()}s")
        self.running = False
    
    def get_uptime(self) -> int:
        """
        Get the application uptime in seconds
        
        Returns:
            int: Uptime in seconds, or 0 if not started
        """
        if not self.start_time:
            return 0
            
        delta: datetime.timedelta = utcnow() - self.start_time
        return int(delta.total_seconds())
