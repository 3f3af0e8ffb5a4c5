"""Worker pool with exception handling for parallel vendor units.

This module provides a ThreadPoolExecutor wrapper: one failing vendor unit
is captured as a result instead of cancelling the others.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable


class WorkerPool:
    """ThreadPoolExecutor wrapper with exception handling for pass units."""

    def __init__(self, max_workers: int = 4, logger=None):
        """
        Args:
            max_workers: Maximum number of concurrent worker threads
            logger: Optional logger instance for logging
        """
        self.max_workers = max(1, max_workers)
        self.logger = logger or logging.getLogger(__name__)
        self._stats_lock = threading.Lock()
        self.stats = {
            "max_workers": self.max_workers,
            "total_submitted": 0,
            "total_completed": 0,
            "total_successful": 0,
            "total_failed": 0,
        }

    def map(self, func: Callable[[Any], Any], items: list, desc: str = "Processing") -> list:
        """
        Process items in parallel with exception handling.

        Args:
            func: Worker function to execute
            items: List of items to process
            desc: Description for progress reporting

        Returns:
            List of tuples in input order: (success: bool, item: any, result_or_error: any)
        """
        if not items:
            return []

        results: dict[int, tuple] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_index = {executor.submit(func, item): index for index, item in enumerate(items)}
            with self._stats_lock:
                self.stats["total_submitted"] += len(items)

            for future in as_completed(future_to_index):
                index = future_to_index[future]
                item = items[index]
                with self._stats_lock:
                    self.stats["total_completed"] += 1

                try:
                    result = future.result()
                    with self._stats_lock:
                        self.stats["total_successful"] += 1
                    results[index] = (True, item, result)
                    self.logger.debug(f"{desc}: Success for item {item}")

                except Exception as e:
                    with self._stats_lock:
                        self.stats["total_failed"] += 1
                    results[index] = (False, item, e)
                    self.logger.error(f"{desc}: Failed for item {item}: {e}", exc_info=True)

        self.logger.info(
            f"{desc} complete: {self.stats['total_successful']} successful, {self.stats['total_failed']} failed"
        )
        return [results[index] for index in range(len(items))]
