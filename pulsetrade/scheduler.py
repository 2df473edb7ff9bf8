# pulsetrade/scheduler.py
import logging
import threading
import time
from typing import Dict, Any, Callable, Union, Optional

logger = logging.getLogger(__name__)

class Scheduler:
    """
    Interval job scheduler

    Runs every due job in turn on a single background thread, so a job never
    overlaps with itself or with another job.
    """

    def __init__(
        self, 
        shutdown_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the Scheduler.

        Args:
            shutdown_event (threading.Event, optional): Event to signal system shutdown
            clock (callable): Returns seconds; used to decide when jobs are due
        """
        self.shutdown_event = shutdown_event or threading.Event()
        self.clock = clock
        
        # Job management
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.jobs_lock = threading.Lock()
        
        # Threading controls
        self.thread: Optional[threading.Thread] = None
        self.running = False
        
        logger.info("Scheduler initialized successfully")
        
    def start(self):
        """
        Start the background thread that runs due jobs.
        """
        if self.running:
            logger.warning("Scheduler is already operational")
            return
            
        logger.info("Activating scheduler")
        self.running = True
        self.thread = threading.Thread(target=self._run, daemon=True, name="scheduler")
        self.thread.start()
        
    def stop(self):
        """
        Stop the scheduler, waiting briefly for a running job to finish.
        """
        if not self.running:
            logger.warning("Scheduler is already inactive")
            return
            
        logger.info("Deactivating scheduler")
        self.running = False
        
        if self.thread:
            self.thread.join(timeout=5)
            
    def _run(self):
        while self.running and not self.shutdown_event.is_set():
            try:
                self.run_pending()
                
                # Prevent tight looping
                self.shutdown_event.wait(1)
                
            except Exception as e:
                logger.error(f"Critical error in scheduler loop: {str(e)}")
                self.shutdown_event.wait(5)
    
    def run_pending(self, now: Optional[float] = None) -> int:
        """
        Execute every job whose interval has elapsed.

        Args:
            now (float, optional): Clock reading to use, defaults to the scheduler clock

        Returns:
            int: Number of jobs executed
        """
        if now is None:
            now = self.clock()
        with self.jobs_lock:
            due = [job for job in self.jobs.values() if self._should_run_job(job, now)]
        for job in due:
            self._execute_job(job, now)
        return len(due)
    
    def _should_run_job(self, job: Dict[str, Any], now: float) -> bool:
        if job['last_run'] is None:
            return True
        return (now - job['last_run']) >= job['interval']
    
    def _execute_job(self, job: Dict[str, Any], now: float):
        """
        Execute a scheduled job, logging rather than propagating its failures.

        Args:
            job (Dict): Job configuration to execute
            now (float): Clock reading recorded as the last run
        """
        try:
            job['last_run'] = now
            job['func'](*job['args'], **job['kwargs'])
            logger.debug(f"Executed scheduled job: {job['id']}")
            
        except Exception as e:
            logger.error(f"Job execution failed: {job['id']} - {str(e)}")
    
    def add_job(
        self, 
        job_id: str, 
        func: Callable, 
        interval: Union[int, float], 
        *args: Any, 
        **kwargs: Any
    ):
        """
        Schedule a recurring job with fixed interval execution.

        Args:
            job_id (str): Unique identifier for the job
            func (Callable): Function to be executed
            interval (int/float): Execution interval in seconds
        """
        if interval <= 0:
            raise ValueError("Job interval must be positive")
        with self.jobs_lock:
            self.jobs[job_id] = {
                'id': job_id,
                'func': func,
                'interval': interval,
                'last_run': None,  # Immediate first run
                'args': args,
                'kwargs': kwargs
            }
        
        logger.info(f"Interval job added: {job_id}, {interval}s")
    
    def remove_job(self, job_id: str):
        with self.jobs_lock:
            removed = self.jobs.pop(job_id, None)
        if removed:
            logger.info(f"Job removed: {job_id}")
        else:
            logger.warning(f"Job not found: {job_id}")
