import time
import logging
import functools
from typing import Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)

def log_execution(func):
    """Decorator to log how long a call took, and its failure if any"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.monotonic()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__qualname__} failed after {time.monotonic() - started:.3f}s: {str(e)}")
            raise
        logger.debug(f"{func.__qualname__} completed in {time.monotonic() - started:.3f}s")
        return result
    return wrapper

def retry(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0,
          exceptions: Tuple[Type[BaseException], ...] = (Exception,),
          max_delay: Optional[float] = None, sleep: Callable[[float], None] = time.sleep):
    """
    Retry decorator with exponential backoff

    An exception carrying a numeric retry_after attribute (seconds, e.g. from
    an HTTP Retry-After header) waits at least that long before the next try.

    Args:
        max_attempts: Maximum number of attempts, including the first call
        delay: Initial delay between retries (in seconds)
        backoff: Backoff multiplier
        exceptions: Tuple of exceptions to catch and retry
        max_delay: Upper bound for a single wait
        sleep: Function used to wait
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"{func.__qualname__} failed after {attempt} attempts: {str(e)}")
                        raise

                    wait = max(current_delay, getattr(e, "retry_after", None) or 0)
                    if max_delay is not None:
                        wait = min(wait, max_delay)
                    logger.warning(f"Retry {attempt}/{max_attempts} for {func.__qualname__} in {wait:.2f}s: {str(e)}")
                    sleep(wait)
                    current_delay *= backoff
        return wrapper
    return decorator
