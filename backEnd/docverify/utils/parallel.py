"""
Parallel processing utilities for the document pipeline.

Per-document OCR handling, classification and extraction are independent,
so they run concurrently under a semaphore sized to respect model-service
rate limits.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')


def is_rate_limit_error(error: Exception) -> bool:
    """Check if an exception is a rate limit error (429)."""
    error_str = str(error).lower()
    return (
        "429" in error_str or
        "rate limit" in error_str or
        "rate_limit" in error_str or
        "too many requests" in error_str
    )


async def parallel_map(
    items: List[T],
    async_fn: Callable[[T], Awaitable[R]],
    max_concurrent: int = 4,
    desc: Optional[str] = None,
    return_exceptions: bool = False,
) -> List[Union[R, BaseException]]:
    """
    Process items concurrently with a concurrency limit.

    Args:
        items: List of items to process
        async_fn: Async function to apply to each item
        max_concurrent: Maximum simultaneous operations
        desc: Description for logging progress
        return_exceptions: If True, return exceptions in place of results

    Returns:
        List of results in the same order as inputs

    Example:
        >>> results = await parallel_map(
        ...     documents,
        ...     pipeline.process_document,
        ...     max_concurrent=4,
        ... )
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(max(1, max_concurrent))
    completed = 0
    total = len(items)

    async def process_with_limit(item: T) -> R:
        nonlocal completed

        async with semaphore:
            try:
                result = await async_fn(item)
                completed += 1
                if desc:
                    logger.info(f"{desc}: {completed}/{total}")
                return result
            except Exception as e:
                completed += 1
                if desc:
                    logger.warning(f"{desc}: {completed}/{total} (error: {e})")
                raise

    tasks = [process_with_limit(item) for item in items]

    # gather preserves input order
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)
