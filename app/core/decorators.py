"""
Decorators for transient-failure handling around backing services.

Available decorators:
    retry_transient: Retry TransientError with exponential backoff
    translate_db_errors: Map driver-level connection errors to StorageUnavailableError
    call_with_timeout: Run a latent call with a deadline (blob uploads)

Usage:
    from core.decorators import retry_transient, translate_db_errors

    @retry_transient(max_attempts=3, base_delay=0.2)
    @translate_db_errors
    def load_chat(chat_id):
        return Conversation.objects.get(pk=chat_id)

Note:
    Permanent failures (ServiceResult failures, ValidationError,
    NotFoundError, PermissionDeniedError) pass straight through and are
    never retried.
"""

from __future__ import annotations

import functools
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import InterfaceError, OperationalError

from core.exceptions import OperationTimeoutError, StorageUnavailableError, TransientError

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

logger = logging.getLogger(__name__)

# Message surfaced once retries are exhausted
TRY_AGAIN_MESSAGE = "The service is temporarily unavailable. Please try again."


def retry_transient(
    max_attempts: int | None = None,
    base_delay: float | None = None,
) -> Callable:
    """
    Retry a function when it raises TransientError.

    Delay doubles after every failed attempt (base, 2*base, 4*base...).
    After the last attempt a StorageUnavailableError with a generic
    "try again" message is raised, chained to the last failure.

    Args:
        max_attempts: Total attempts including the first call.
            Defaults to settings.CHAT_RETRY_ATTEMPTS.
        base_delay: Seconds before the first retry.
            Defaults to settings.CHAT_RETRY_BASE_DELAY.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempts = max_attempts or getattr(settings, "CHAT_RETRY_ATTEMPTS", 3)
            delay = base_delay if base_delay is not None else getattr(settings, "CHAT_RETRY_BASE_DELAY", 0.2)

            last_error: TransientError | None = None
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except TransientError as e:
                    last_error = e
                    if attempt == attempts:
                        break
                    wait = delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"{func.__qualname__} failed with {e.error_code} "
                        f"(attempt {attempt}/{attempts}), retrying in {wait:.2f}s"
                    )
                    time.sleep(wait)

            logger.error(f"{func.__qualname__} gave up after {attempts} attempts: {last_error}")
            raise StorageUnavailableError(TRY_AGAIN_MESSAGE) from last_error

        return wrapper

    return decorator


def translate_db_errors(func: Callable) -> Callable:
    """
    Convert database connection failures into StorageUnavailableError.

    Only connection-level errors are translated. IntegrityError and
    friends are left for the caller since they describe real conflicts.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (OperationalError, InterfaceError) as e:
            logger.warning(f"Database unavailable in {func.__qualname__}: {e}")
            raise StorageUnavailableError(
                "Database unavailable",
                details={"operation": func.__qualname__},
            ) from e

    return wrapper


def call_with_timeout(func: Callable, timeout: float, *args: Any, **kwargs: Any) -> Any:
    """
    Run func(*args, **kwargs) and raise OperationTimeoutError after timeout seconds.

    The worker thread is not interrupted on timeout; its result is discarded.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as e:
        logger.warning(f"{getattr(func, '__qualname__', func)} exceeded {timeout}s")
        raise OperationTimeoutError(
            f"Operation did not complete within {timeout} seconds",
            details={"timeout": timeout},
        ) from e
    finally:
        executor.shutdown(wait=False)
