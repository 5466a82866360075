# SPDX-License-Identifier: GPL-3.0-or-later
"""Shared logging and linear algebra helpers."""

from .fit_logging import logger, log_operation, setup_logging, timed

__all__ = ['logger', 'log_operation', 'setup_logging', 'timed']
