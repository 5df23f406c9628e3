"""
Retry decorator with exponential backoff and timeout for async functions.
"""
import asyncio
import logging
from functools import wraps
from typing import Tuple, Type, Union

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dbjournal.messages import get_logger

from .exceptions import DatabaseConnectionError


def with_retry(
    timeout: float = 60,
    retries: int = 3,
    delay: float = 1,
    exceptions: Union[Type[Exception], Tuple[Type[Exception], ...]] = (
        DatabaseConnectionError,
    ),
    logger_name: str = "dbjournal.retry",
):
    """
    Retry decorator with exponential backoff and timeout for async functions.

    Each attempt runs under its own timeout; attempts failing with one of
    `exceptions` are retried with exponential backoff, anything else is
    raised immediately.

    Args:
        timeout: Maximum time in seconds for each attempt (default: 60)
        retries: Maximum number of attempts (default: 3)
        delay: Initial delay between retries in seconds (default: 1)
        exceptions: Exception types to retry on (default: connection errors)
        logger_name: Name for logging retry attempts

    Example:
        @with_retry(retries=3, delay=2, timeout=30)
        async def connect(self) -> None:
            ...

    Raises:
        TimeoutError: If an attempt exceeds the timeout period
        The last retryable error: If all attempts fail
    """
    logger = get_logger(logger_name)
    # tenacity's before_sleep_log needs the standard logger underneath
    standard_logger = logger.logger

    def decorator(func):
        @retry(
            stop=stop_after_attempt(retries),
            wait=wait_exponential(multiplier=delay, min=delay, max=delay * 8),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(standard_logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                async with asyncio.timeout(timeout):
                    return await func(*args, **kwargs)
            except asyncio.TimeoutError:
                raise TimeoutError(
                    f"Operation {func.__name__} timed out after {timeout} seconds"
                )

        return wrapper

    return decorator
