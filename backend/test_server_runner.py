from __future__ import annotations

import unittest
from unittest.mock import patch

from backend import server_runner


class TestUvicornOptions(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict("os.environ", {}, clear=True):
            options = server_runner.uvicorn_options()
        self.assertEqual(options["port"], 8000)
        self.assertEqual(options["workers"], 1)
        self.assertIsNone(options["limit_concurrency"])

    def test_multiple_workers_are_refused(self) -> None:
        with patch.dict("os.environ", {"WEB_CONCURRENCY": "4", "PORT": "9000"}, clear=True):
            with self.assertLogs("jibang", level="WARNING"):
                options = server_runner.uvicorn_options()
        self.assertEqual(options["workers"], 1)
        self.assertEqual(options["port"], 9000)

    def test_malformed_values_fall_back(self) -> None:
        with patch.dict("os.environ", {"PORT": "abc", "UVICORN_LIMIT_CONCURRENCY": "x"}, clear=True):
            options = server_runner.uvicorn_options()
        self.assertEqual(options["port"], 8000)
        self.assertIsNone(options["limit_concurrency"])


if __name__ == "__main__":
    unittest.main()
