"""
Retry logic with exponential backoff.

Cache engine operations are synchronous and run to completion, so the
helpers here block between attempts with ``time.sleep``. They are used
for bounded verification loops against the remote store, for example
re-checking that a deleted key is really gone on a lagging replica.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts, including the first.
        initial_delay: Delay before the first retry in seconds.
        exponential_base: Base for exponential backoff calculation.
        max_delay: Maximum delay between retries in seconds (None = no cap).
        retryable_exceptions: Exception types that trigger a retry.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    exponential_base: float = 2.0
    max_delay: Optional[float] = None
    retryable_exceptions: Tuple[Type[Exception], ...] = field(
        default_factory=lambda: (Exception,)
    )


class RetryExhaustedException(Exception):
    """
    Raised when all retry attempts have been exhausted.

    Wraps the last exception that caused the final attempt to fail.
    """

    def __init__(
        self,
        message: str,
        attempts: int,
        last_exception: Exception,
        operation_name: Optional[str] = None
    ):
        """
        Initialize a RetryExhaustedException.

        Args:
            message: Human-readable error message
            attempts: Number of attempts made
            last_exception: The last exception that caused failure
            operation_name: Optional name of the operation that failed
        """
        self.attempts = attempts
        self.last_exception = last_exception
        self.operation_name = operation_name
        super().__init__(message)


def calculate_delay(
    attempt: int,
    initial_delay: float,
    exponential_base: float,
    max_delay: Optional[float] = None
) -> float:
    """
    Calculate the delay for a given retry attempt using exponential backoff.

    The delay is calculated as: initial_delay * (exponential_base ^ attempt)

    Args:
        attempt: The current attempt number (0-indexed)
        initial_delay: The initial delay in seconds
        exponential_base: The base for exponential calculation
        max_delay: Optional maximum delay cap

    Returns:
        The calculated delay in seconds
    """
    delay = initial_delay * (exponential_base ** attempt)

    if max_delay is not None:
        delay = min(delay, max_delay)

    return delay


def retry_call(
    func: Callable[..., T],
    *args: Any,
    config: Optional[RetryConfig] = None,
    operation_name: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any
) -> T:
    """
    Call a function, retrying it with exponential backoff.

    Example usage:
        retry_call(
            confirm_deleted,
            key,
            config=RetryConfig(max_attempts=5, initial_delay=0.01),
            operation_name="remove"
        )

    Args:
        func: The function to execute
        *args: Positional arguments to pass to the function
        config: Optional RetryConfig object with retry settings
        operation_name: Optional name for logging purposes
        sleep: Function used to wait between attempts
        **kwargs: Keyword arguments to pass to the function

    Returns:
        The result of the function call

    Raises:
        RetryExhaustedException: When all retry attempts are exhausted
    """
    effective_config = config or RetryConfig()
    op_name = operation_name or getattr(func, "__name__", "operation")
    max_attempts = max(1, effective_config.max_attempts)
    last_exception: Optional[Exception] = None

    for attempt in range(max_attempts):
        try:
            return func(*args, **kwargs)
        except effective_config.retryable_exceptions as e:
            last_exception = e

            if attempt == max_attempts - 1:
                logger.error(
                    "Retry exhausted for operation '%s' after %d attempts. "
                    "Last error: %s",
                    op_name,
                    max_attempts,
                    str(e),
                    extra={
                        "extra_data": {
                            "operation": op_name,
                            "attempts": max_attempts,
                            "last_error": str(e),
                            "error_type": type(e).__name__
                        }
                    }
                )
                raise RetryExhaustedException(
                    f"Operation '{op_name}' failed after {max_attempts} attempts",
                    attempts=max_attempts,
                    last_exception=e,
                    operation_name=op_name
                ) from e

            delay = calculate_delay(
                attempt,
                effective_config.initial_delay,
                effective_config.exponential_base,
                effective_config.max_delay
            )

            logger.warning(
                "Retry attempt %d/%d for operation '%s' failed with %s: %s. "
                "Retrying in %.3f seconds...",
                attempt + 1,
                max_attempts,
                op_name,
                type(e).__name__,
                str(e),
                delay,
                extra={
                    "extra_data": {
                        "operation": op_name,
                        "attempt": attempt + 1,
                        "max_attempts": max_attempts,
                        "delay_seconds": delay,
                        "error_type": type(e).__name__,
                    }
                }
            )

            sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RetryExhaustedException(
        f"Operation '{op_name}' failed after {max_attempts} attempts",
        attempts=max_attempts,
        last_exception=last_exception or Exception("Unknown error"),
        operation_name=op_name
    )
