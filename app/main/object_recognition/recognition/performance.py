"""
Performance timing utilities for the recognition pipeline.

Provides decorators and context managers for measuring execution time
of pipeline stages with hierarchical output, plus the deadline check
run between stages.
"""

import time
import functools
import logging
from typing import Optional, List, Dict, Any
from contextlib import contextmanager
import threading

logger = logging.getLogger(__name__)


class RecognitionTimeout(RuntimeError):
    """
    Raised when a recognize() call passes its deadline.

    The deadline is checked between pipeline stages only, so a stage that
    already started always runs to completion.
    """
    pass


def check_deadline(deadline: Optional[float], stage: str):
    """
    Raise RecognitionTimeout if time.monotonic() is past deadline.

    Args:
        deadline: Absolute time.monotonic() value, None for no deadline
        stage: Name of the stage about to start (for the message)
    """
    if deadline is not None and time.monotonic() > deadline:
        raise RecognitionTimeout(f"Deadline passed before stage '{stage}'")


class PerformanceTimer:
    """Thread-safe performance timer with hierarchical timing support."""

    enabled = True
    """Class flag; when False the @timed decorator skips timing."""

    def __init__(self):
        self._local = threading.local()

    def _get_stack(self) -> List[Dict[str, Any]]:
        """Get the current thread's timing stack."""
        if not hasattr(self._local, 'stack'):
            self._local.stack = []
        return self._local.stack

    def _get_results(self) -> List[Dict[str, Any]]:
        """Get the current thread's timing results."""
        if not hasattr(self._local, 'results'):
            self._local.results = []
        return self._local.results

    def _clear_results(self):
        """Clear timing results."""
        self._local.results = []

    @contextmanager
    def time_block(self, name: str):
        """Context manager for timing a code block.

        Args:
            name: Name of the code block being timed

        Yields:
            The timing info dict ('elapsed' is set on exit)
        """
        stack = self._get_stack()
        results = self._get_results()

        timing_info = {
            'name': name,
            'start': time.perf_counter(),
            'depth': len(stack),
            'children': []
        }
        stack.append(timing_info)

        try:
            yield timing_info
        finally:
            end_time = time.perf_counter()
            stack.pop()

            timing_info['elapsed'] = end_time - timing_info['start']
            timing_info['end'] = end_time

            # If we have a parent, add as child; otherwise add to results
            if stack:
                stack[-1]['children'].append(timing_info)
            else:
                results.append(timing_info)

    def is_active(self) -> bool:
        """True while a timed block is open on this thread."""
        return bool(self._get_stack())

    def pop_results(self) -> List[Dict[str, Any]]:
        """Return and clear the finished top-level timings of this thread."""
        results = list(self._get_results())
        self._clear_results()
        return results

    def format_results(self, results: List[Dict[str, Any]]) -> List[str]:
        """Format timings as indented lines with percentage of the parent."""
        lines = []

        def format_timing(timing: Dict[str, Any], parent_time: Optional[float] = None):
            elapsed = timing['elapsed']
            indent = "  " * timing['depth']
            if parent_time:
                percentage = (elapsed / parent_time) * 100
                lines.append(f"{indent}{timing['name']}: {elapsed:.3f}s ({percentage:.1f}%)")
            else:
                lines.append(f"{indent}{timing['name']}: {elapsed:.3f}s")
            for child in timing['children']:
                format_timing(child, elapsed)

        for result in results:
            format_timing(result)
        return lines

    def log_results(self, results: List[Dict[str, Any]], level: int = logging.DEBUG):
        """Log formatted timings."""
        if not results or not logger.isEnabledFor(level):
            return
        logger.log(level, "Performance timing report:\n%s", "\n".join(self.format_results(results)))


# Global timer instance
_timer = PerformanceTimer()


def timed(func):
    """Decorator to time function execution.

    Measures execution time when PerformanceTimer.enabled is set and an
    enclosing time_block is open on this thread; the timing is reported as a
    child of that block. Calls outside any block run untimed, so direct calls
    to decorated functions leave no records behind.

    Args:
        func: Function to be timed

    Returns:
        Wrapped function
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        if not PerformanceTimer.enabled or not _timer.is_active():
            return func(*args, **kwargs)

        name = f"{func.__module__}.{func.__name__}"
        with _timer.time_block(name):
            return func(*args, **kwargs)

    return wrapper


@contextmanager
def time_block(name: str):
    """Context manager for timing arbitrary code blocks.

    Example:
        with time_block("sampling"):
            # code to time
            pass

    Args:
        name: Name of the operation being timed

    Yields:
        The timing info dict
    """
    with _timer.time_block(name) as info:
        yield info


def get_timer() -> PerformanceTimer:
    """The global timer instance."""
    return _timer


def performance_report() -> List[str]:
    """Pop this thread's finished timings as formatted report lines."""
    return _timer.format_results(_timer.pop_results())
