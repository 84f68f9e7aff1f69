from __future__ import annotations

import concurrent.futures
import time
from typing import Any, Callable, Iterable, List, Mapping


class BatchExecutorMixin:
    """
    A mixin for components that fan work out over a thread pool.

    Used for per-year archive fetches and per-file parsing. Tasks are
    submitted in batches, optionally throttled between batches, and results
    come back in submission order.
    """

    request_throttle_seconds: float = 0.0

    def _run_batch(
        self,
        tasks: Iterable[Mapping[str, Any]],
        worker_fn: Callable[..., Any],
        *,
        batch_size: int,
        max_workers: int | None = None,
    ) -> List[Any]:
        """
        Execute tasks in parallel using a thread pool.

        Args:
            tasks: Keyword arguments for each call to ``worker_fn``.
            worker_fn: The function to call for each task.
            batch_size: The number of tasks submitted per batch.
            max_workers: The maximum number of worker threads to use.

        Returns:
            One entry per task, in input order. A task that raised is
            represented by its exception; callers decide whether to re-raise.
        """
        task_list = list(tasks)
        if not task_list:
            return []
        batch_size = max(1, batch_size)

        results: List[Any] = [None] * len(task_list)
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            positions = {}
            for start in range(0, len(task_list), batch_size):
                for offset, kwargs in enumerate(task_list[start : start + batch_size]):
                    positions[executor.submit(worker_fn, **kwargs)] = start + offset

                if start + batch_size < len(task_list) and self.request_throttle_seconds > 0:
                    time.sleep(self.request_throttle_seconds)

            for future in concurrent.futures.as_completed(positions):
                index = positions[future]
                try:
                    results[index] = future.result()
                except Exception as exc:
                    results[index] = exc
        return results
