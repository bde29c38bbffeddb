"""Retry utilities for container runtime commands with exponential backoff"""

import logging
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple, TypeVar

from utils.error_utils import create_retries_exhausted_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Emitted by docker when concurrent pushes contend for its local metadata store
DEFAULT_TRANSIENT_MARKERS = ("database is locked",)


class RetryableErrorType(Enum):
    """Types of errors that should trigger retries"""

    TRANSIENT = "transient"  # Daemon contention, clears by itself
    PERMANENT = "permanent"  # Anything else, retrying cannot fix it


@dataclass(frozen=True)
class RetrySettings:
    """Backoff parameters and the output markers that make a failure transient"""

    max_retries: int = 10
    initial_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = False
    transient_markers: Tuple[str, ...] = DEFAULT_TRANSIENT_MARKERS


def find_transient_marker(output: str, markers: Iterable[str]) -> Optional[str]:
    """Scan command output line by line for the first known transient marker

    Args:
        output: Captured stdout/stderr of the failed command
        markers: Substrings that identify a transient condition

    Returns:
        The matching marker, or None
    """
    markers = [m for m in markers if m]
    for line in (output or "").splitlines():
        for marker in markers:
            if marker in line:
                return marker
    return None


def is_retryable_error(
    error: Exception, markers: Iterable[str] = DEFAULT_TRANSIENT_MARKERS
) -> Tuple[bool, RetryableErrorType]:
    """Determine if an error is retryable and what type it is

    Only failures whose captured output carries a transient marker are
    retried; errors without captured output are permanent.

    Args:
        error: The exception that occurred
        markers: Substrings that identify a transient condition

    Returns:
        Tuple of (is_retryable, error_type)
    """
    output = getattr(error, "output", None)
    if isinstance(output, bytes):
        output = output.decode(errors="replace")
    if output and find_transient_marker(output, markers):
        return True, RetryableErrorType.TRANSIENT
    return False, RetryableErrorType.PERMANENT


def compute_delay(attempt: int, settings: RetrySettings) -> float:
    """Delay before retry number attempt + 1 (attempt is zero based)"""
    delay = min(settings.initial_delay * (settings.exponential_base**attempt), settings.max_delay)

    # Add jitter to prevent thundering herd
    if settings.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay = delay + random.uniform(-jitter_amount, jitter_amount)
        delay = max(0.0, delay)

    return delay


def _wait_for_retry(delay: float, stop: Optional[threading.Event]) -> bool:
    """Sleep before the next attempt; returns True if stop was set meanwhile"""
    if stop is None:
        time.sleep(delay)
        return False
    return stop.wait(delay)


def retry_operation(
    operation: Callable[[], T],
    settings: RetrySettings = RetrySettings(),
    operation_name: str = "operation",
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    stop: Optional[threading.Event] = None,
) -> T:
    """Run an operation, retrying transient failures with exponential backoff

    Args:
        operation: Callable to run; it is invoked again unchanged on each retry
        settings: Backoff parameters and transient markers
        operation_name: Name for logging purposes
        on_retry: Called with (retry_number, error) before each retry sleep
        stop: Once set, no further attempt is made and the last error is re-raised

    Returns:
        Result of the first successful call

    Raises:
        The original error if it is not transient, or if stop is set before a retry
        RetriesExhaustedError: If the error is still transient after max_retries retries
    """
    attempts = settings.max_retries + 1

    for attempt in range(attempts):
        try:
            result = operation()
            if attempt > 0:
                logger.info(f"{operation_name} succeeded on attempt {attempt + 1}")
            return result
        except Exception as e:
            is_retryable, error_type = is_retryable_error(e, settings.transient_markers)

            if not is_retryable:
                logger.error(f"{operation_name} failed with non-retryable error ({error_type.value})")
                raise

            if attempt >= settings.max_retries:
                logger.error(f"{operation_name} failed after {attempts} attempts")
                raise create_retries_exhausted_error(operation_name, attempts, e) from e

            if stop is not None and stop.is_set():
                logger.warning(f"{operation_name} not retried, run is stopping")
                raise

            delay = compute_delay(attempt, settings)
            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{attempts} "
                f"({error_type.value} error). Retrying in {delay:.2f}s..."
            )
            if on_retry is not None:
                on_retry(attempt + 1, e)
            if _wait_for_retry(delay, stop):
                logger.warning(f"{operation_name} abandoned after attempt {attempt + 1}, run is stopping")
                raise

    # max_retries >= 0 means the loop always returns or raises
    raise AssertionError("unreachable")
