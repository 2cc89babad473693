import logging
import time
from functools import wraps

timing_logger = logging.getLogger('autopaint.timing')


def timed(func):
    """Decorator to log the execution time of a function."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        t0 = time.perf_counter()
        result = func(*args, **kwargs)
        t1 = time.perf_counter()
        timing_logger.debug("[TIMING] %-25s: %0.3fs", func.__name__, t1 - t0)
        return result

    return wrapper
