"""Retry logic with exponential backoff"""

import time
from typing import Callable, Any, Tuple, Type
from sales_blitz.utils.logging import get_logger
from sales_blitz.utils.errors import DataSourceError

logger = get_logger(__name__)


def retry_with_exponential_backoff(
    func: Callable,
    *args,
    max_retries: int = 3,
    base_delay: float = 2,
    max_delay: float = 60,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    **kwargs
) -> Any:
    """
    Retry function with exponential backoff

    Args:
        func: Function to retry
        *args, **kwargs: Arguments to pass to func
        max_retries: Maximum attempts
        base_delay: Base delay in seconds
        max_delay: Max delay cap in seconds
        retry_on: Exception types that trigger a retry

    Returns:
        Function result

    Raises:
        DataSourceError: If all retries exhausted
    """
    for attempt in range(max_retries):
        try:
            return func(*args, **kwargs)

        except retry_on as e:
            if attempt == max_retries - 1:
                logger.error(f"All {max_retries} retry attempts exhausted")
                raise DataSourceError(f"Failed after {max_retries} attempts: {e}") from e

            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {e}")
            time.sleep(delay)
