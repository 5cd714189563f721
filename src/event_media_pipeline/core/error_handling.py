# src/event_media_pipeline/core/error_handling.py

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, Dict, List, Tuple, Type, TypeVar

from .exceptions import EventMediaError

T = TypeVar("T")
AsyncFunc = Callable[..., Awaitable[Any]]


def with_error_handling(error_cls: Type[EventMediaError]) -> Callable[[AsyncFunc], AsyncFunc]:
    """
    A decorator to wrap coroutine functions with standardized error handling.

    Pipeline errors pass through untouched; anything else is logged and
    re-raised as ``error_cls`` so callers only deal with the domain hierarchy.
    """
    def decorator(func: AsyncFunc) -> AsyncFunc:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            logger = logging.getLogger(func.__module__ + '.' + func.__name__)
            try:
                return await func(*args, **kwargs)
            except EventMediaError:
                raise
            except Exception as e:
                logger.error(
                    f"Error in '{func.__name__}': {e}",
                    exc_info=True
                )
                raise error_cls(f"{func.__name__} failed: {e}") from e
        return wrapper
    return decorator


def retry_async(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (EventMediaError,),
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Callable[[AsyncFunc], AsyncFunc]:
    """
    Decorator to retry coroutine functions with exponential backoff.

    Only exceptions listed in ``retry_on`` are retried. After the last attempt
    the final exception is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: AsyncFunc) -> AsyncFunc:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            logger = logging.getLogger(func.__module__ + '.' + func.__name__)
            delay = initial_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_attempts:
                        logger.error(
                            f"'{func.__name__}' failed after {max_attempts} attempts. Error: {e}"
                        )
                        raise
                    logger.info(
                        f"'{func.__name__}' failed. Attempt {attempt}/{max_attempts}. "
                        f"Retrying in {delay:.2f}s. Error: {e}"
                    )
                    await sleep(delay)
                    delay *= backoff_factor
        return wrapper
    return decorator


class BatchOperationContext:
    """
    Context manager for batch operations to collect and summarize errors.
    """
    def __init__(self, operation_name: str = "Batch Operation"):
        self.operation_name = operation_name
        self.errors: List[Dict[str, str]] = []
        self.logger = logging.getLogger(self.__class__.__module__ + '.' + self.__class__.__name__)

    def __enter__(self) -> "BatchOperationContext":
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is asyncio.CancelledError:
            self.logger.warning(f"{self.operation_name} cancelled.")
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        elif self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item "
                    f"'{error_detail['item']}': {error_detail['error']}"
                )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")
        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item") -> None:
        """
        Report an error for a specific item within the ``with`` block.

        Args:
            error_message: The error message or exception string.
            item_identifier: A string identifying the item that failed.
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}")

    @property
    def last_error(self) -> str:
        return self.errors[-1]["error"] if self.errors else ""
