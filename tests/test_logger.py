import logging
import os
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from utils.logger import log_error, log_success, setup_logging


class TestLogger(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self._saved = list(logging.getLogger().handlers)

    def tearDown(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in self._saved:
            root.addHandler(handler)
        self._tmp.cleanup()

    def test_file_only_logging(self):
        log_file = os.path.join(self._tmp.name, "logs", "spotycli.log")
        setup_logging(log_file, "INFO", console=False)

        log_success("signed in")
        log_error("boom")

        root = logging.getLogger()
        self.assertTrue(all(isinstance(h, logging.FileHandler) for h in root.handlers))
        for handler in root.handlers:
            handler.flush()
        with open(log_file, encoding="utf-8") as f:
            text = f.read()
        self.assertIn("✅ signed in", text)
        self.assertIn("ERROR", text)
        self.assertEqual(logging.getLogger("httpx").level, logging.WARNING)


if __name__ == "__main__":
    unittest.main(verbosity=2)
