import time
import functools
from httpx import ConnectError
import logging

logger = logging.getLogger(__name__)


def retry_on_ssl_error(func):
    """
    A decorator to retry a Supabase call if it fails with the intermittent
    DECRYPTION_FAILED_OR_BAD_RECORD_MAC error or could not connect at all.

    Only for idempotent calls: the SSL error can surface after the server has
    already applied the request.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        max_retries = 3
        for attempt in range(max_retries):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                transient = isinstance(e, ConnectError) or "DECRYPTION_FAILED_OR_BAD_RECORD_MAC" in str(e)
                if transient and attempt < max_retries - 1:
                    logger.warning(f"SSL error on {func.__name__}. Retrying in 0.5 seconds... (Attempt {attempt + 1}/{max_retries})")
                    time.sleep(0.5)
                else:
                    logger.error(f"{func.__name__} failed on attempt {attempt + 1}: {e}")
                    raise
    return wrapper
