import time
import logging
from functools import wraps

logger = logging.getLogger(__name__)

# Apps Script calls slower than this are logged at INFO instead of DEBUG
SLOW_CALL_SECONDS = 5.0


def _script_id_of(args, kwargs):
    script_id = kwargs.get("script_id")
    if script_id is None and len(args) > 1 and isinstance(args[1], str):
        script_id = args[1]
    return script_id


def time_api_call(func):
    """Time an SDK call (auth, script_id, ...) and log the duration, even on failure."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration = time.perf_counter() - start_time
            target = _script_id_of(args, kwargs)
            suffix = f" for {target}" if target else ""
            level = logging.INFO if duration >= SLOW_CALL_SECONDS else logging.DEBUG
            logger.log(level, f"API call '{func.__name__}'{suffix} took {duration:.4f} seconds.")
    return wrapper
