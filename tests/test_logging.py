# SPDX-License-Identifier: GPL-3.0-or-later

"""Tests for the logging helpers."""

import logging
import unittest

from scanfit.shared.fit_logging import log_operation, logger, timed


class TestLogOperation(unittest.TestCase):
    def test_completion_is_logged(self) -> None:
        with self.assertLogs(logger, level=logging.DEBUG) as logs:
            with log_operation("Plane RANSAC", points=10):
                pass
        self.assertTrue(any("Starting: Plane RANSAC(points=10)" in line for line in logs.output))
        self.assertTrue(any("Completed: Plane RANSAC(points=10)" in line for line in logs.output))

    def test_failure_is_logged_and_reraised(self) -> None:
        with self.assertLogs(logger, level=logging.DEBUG) as logs:
            with self.assertRaises(RuntimeError):
                with log_operation("ICP"):
                    raise RuntimeError("boom")
        self.assertTrue(any("Failed: ICP" in line and "boom" in line for line in logs.output))

    def test_timed_decorator(self) -> None:
        @timed("square")
        def square(x):
            return x * x

        with self.assertLogs(logger, level=logging.DEBUG) as logs:
            self.assertEqual(square(3), 9)
        self.assertTrue(any("Completed: square" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
