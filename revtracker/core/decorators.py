import asyncio
import logging
from functools import wraps
from typing import Tuple, Type

logger = logging.getLogger(__name__)


def async_retry(max_retries: int = 3, delay: float = 1.0,
                retry_on: Tuple[Type[BaseException], ...] = (Exception,)):
    """Decorator for async retry logic, retrying only the given exception types"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None
            for attempt in range(max_retries):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        logger.debug(f"{func.__name__} failed (attempt {attempt + 1}/{max_retries}): {e}")
                        await asyncio.sleep(delay * (2 ** attempt))  # Exponential backoff
                    continue
            raise last_exception
        return wrapper
    return decorator
