"""
Bounded per-file worker pool used by the usage and import collectors.

Files are scheduled a few at a time so that cancellation means "stop
scheduling new files": scans already running are allowed to finish, which
keeps a file's records all-or-nothing.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def scan_files(
    paths: Sequence[str],
    scan: Callable[[str], T],
    max_workers: int = 8,
    cancel_event: Optional[threading.Event] = None,
) -> Tuple[List[Tuple[str, T]], bool]:
    """
    Run `scan` over every path and return (path, result) pairs sorted by path.

    Returns:
        Tuple of (sorted results, cancelled) where cancelled is True when the
        cancel event stopped scheduling before every path was submitted
    """
    queue = list(paths)
    results: Dict[str, T] = {}
    in_flight: Dict[Future, str] = {}
    next_index = 0
    cancelled = False
    window = max(1, max_workers) * 2

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        def schedule() -> None:
            nonlocal next_index, cancelled
            while next_index < len(queue) and len(in_flight) < window:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    return
                path = queue[next_index]
                next_index += 1
                in_flight[pool.submit(scan, path)] = path

        schedule()
        while in_flight:
            done: Set[Future]
            done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
            for future in done:
                path = in_flight.pop(future)
                results[path] = future.result()
            schedule()

    if cancelled:
        logger.info(f"Scan cancelled after {len(results)} of {len(queue)} files")

    return sorted(results.items(), key=lambda item: item[0]), cancelled
