# SPDX-License-Identifier: GPL-3.0-or-later

"""
Logging infrastructure for ScanFit fitting and alignment operations.

Provides:
- A module logger shared by every fitter
- Context managers for timing code blocks
- Decorators for automatic function timing

Usage:
    from scanfit.shared.fit_logging import log_operation, logger

    with log_operation("Cylinder RANSAC", points=5000, iterations=500):
        result = fit_cylinder(points)
"""

import logging
import time
import functools
from contextlib import contextmanager
from typing import Callable

# Module logger - use "ScanFit" as the logger name
logger = logging.getLogger("ScanFit")


def _describe(name: str, context: dict) -> str:
    ctx_str = ", ".join(f"{k}={v}" for k, v in context.items())
    return f"{name}({ctx_str})" if ctx_str else name


@contextmanager
def log_operation(name: str, **context):
    """
    Context manager for timing and logging a fitting or alignment step.

    Logs start/completion/failure with timing information.

    Args:
        name: Operation name (e.g., "ICP", "Sphere RANSAC")
        **context: Additional context to include in log (e.g., points=100)

    Usage:
        with log_operation("ICP", source=1000, target=1200):
            icp.align_points(...)

        # Output:
        # [10:23:45] [ScanFit] Starting: ICP(source=1000, target=1200)
        # [10:23:46] [ScanFit] Completed: ICP(source=1000, target=1200) in 0.84s
    """
    full_name = _describe(name, context)
    start = time.perf_counter()

    logger.debug(f"Starting: {full_name}")

    try:
        yield
        elapsed = time.perf_counter() - start
        logger.debug(f"Completed: {full_name} in {elapsed:.2f}s")
    except Exception as e:
        elapsed = time.perf_counter() - start
        logger.error(f"Failed: {full_name} after {elapsed:.2f}s - {type(e).__name__}: {e}")
        raise


def timed(operation_name: str = None):
    """
    Decorator to add timing/logging to a function.

    Args:
        operation_name: Name to use in logs (defaults to function name)

    Usage:
        @timed("Symmetry detection")
        def detect(points):
            ...
    """
    def decorator(func: Callable) -> Callable:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with log_operation(name):
                return func(*args, **kwargs)

        return wrapper
    return decorator


def setup_logging(level: int = logging.INFO, log_file: str = None):
    """
    Configure ScanFit logging.

    Call this once at startup to set up logging handlers.
    If not called, records propagate to the root logger unchanged.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional file path for persistent logs
    """
    logger.setLevel(level)

    # Avoid adding duplicate handlers
    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
               for h in logger.handlers):
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(logging.Formatter(
            "[%(asctime)s] [ScanFit] %(message)s",
            datefmt="%H:%M:%S"
        ))
        logger.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)  # Capture everything to file
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        logger.addHandler(file_handler)
        logger.info(f"Logging to file: {log_file}")
