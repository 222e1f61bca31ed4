"""
Retry helpers for transient directory failures.

Only session establishment is retried; individual directory operations are
attempted exactly once.
"""

import time
import logging
from typing import Callable, Any, Tuple, Type, Optional

logger = logging.getLogger(__name__)


class MaxRetriesExceeded(Exception):
    """Raised when maximum retry attempts are exceeded."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Failed after {attempts} attempts: {last_exception}")


def retry_call(
    func: Callable,
    args: tuple = (),
    kwargs: dict = None,
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable[[int, Exception], None]] = None
) -> Any:
    """
    Call a function with retry logic.

    Args:
        func: Function to call
        args: Positional arguments for function
        kwargs: Keyword arguments for function
        max_attempts: Maximum number of attempts (including the first one)
        delay: Initial delay between retries in seconds
        backoff: Delay multiplier applied after each retry
        exceptions: Exception types that trigger a retry; anything else propagates
        on_retry: Optional callback invoked with (attempt, exception) before sleeping

    Returns:
        Function result

    Raises:
        MaxRetriesExceeded: If all attempts fail
    """
    if kwargs is None:
        kwargs = {}
    max_attempts = max(1, max_attempts)

    last_exception = None
    current_delay = delay

    for attempt in range(max_attempts):
        try:
            result = func(*args, **kwargs)
            if attempt > 0:
                logger.info(f"Operation succeeded on attempt {attempt + 1}")
            return result

        except exceptions as e:
            last_exception = e

            if attempt == max_attempts - 1:
                break

            logger.debug(f"Attempt {attempt + 1} failed with {type(e).__name__}: {e}")

            if on_retry:
                try:
                    on_retry(attempt + 1, e)
                except Exception as callback_error:
                    logger.warning(f"Retry callback failed: {callback_error}")

            if current_delay > 0:
                logger.debug(f"Retrying in {current_delay:.1f} seconds...")
                time.sleep(current_delay)
            current_delay *= backoff

    raise MaxRetriesExceeded(max_attempts, last_exception)


def create_retry_callback(operation_name: str, max_attempts: int) -> Callable[[int, Exception], None]:
    """
    Create a callback that logs each failed attempt as a warning.

    Args:
        operation_name: Name of the operation being retried
        max_attempts: Total attempts allowed, shown in the log line

    Returns:
        Callback function for retry events
    """
    def on_retry(attempt: int, exception: Exception):
        logger.warning(f"{operation_name} attempt {attempt}/{max_attempts} failed: "
                       f"{type(exception).__name__}: {exception}")

    return on_retry
