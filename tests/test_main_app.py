# File: tests/test_main_app.py
"""
Command-line entry point tests.
"""

import io
import json
import logging
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from parking_ledger.domain.exceptions import AlreadyInitialized
from parking_ledger.main import build_parser, main, setup_logging


class TestMainFunction(unittest.TestCase):
    """Test main() with the demo walkthrough"""

    def run_main(self, argv):
        stdout = io.StringIO()
        with redirect_stdout(stdout), patch.dict("os.environ", {}, clear=True):
            code = main(argv)
        return code, stdout.getvalue()

    def tearDown(self):
        logging.getLogger().handlers.clear()

    def test_demo_prints_walkthrough(self):
        """Reference cycle: 4000 ms at rate 2, empty withdrawal rejected, then settled"""
        code, output = self.run_main(["--log-level", "ERROR", "demo"])

        self.assertEqual(code, 0)
        result = json.loads(output)
        self.assertEqual(result["fee"], 8000)
        self.assertEqual(len(result["slots"]), 2)
        self.assertEqual(result["empty_withdrawal"], "InsufficientBalance")
        self.assertEqual(result["receipt"]["amount"], 8000)
        self.assertEqual(result["receipt"]["owner"], "driver-a")
        self.assertEqual(result["distributed"]["value"], 8000)
        self.assertEqual(result["distributed"]["owner"], "admin")
        self.assertEqual(result["facility"]["balance"], 0)

    def test_demo_with_custom_parties(self):
        code, output = self.run_main(
            ["--log-level", "ERROR", "demo", "--admin", "ops", "--driver", "d-1", "--base-rate", "3"]
        )

        self.assertEqual(code, 0)
        result = json.loads(output)
        self.assertEqual(result["fee"], 12000)
        self.assertEqual(result["facility"]["admin"], "ops")
        self.assertEqual(result["receipt"]["owner"], "d-1")

    @patch("parking_ledger.main.run_demo")
    def test_ledger_error_returns_error_response(self, mock_run_demo):
        mock_run_demo.side_effect = AlreadyInitialized("Ledger has already been initialized")

        code, output = self.run_main(["--log-level", "ERROR", "demo"])

        self.assertEqual(code, 1)
        response = json.loads(output)
        self.assertFalse(response["success"])
        self.assertEqual(response["error_code"], "AlreadyInitialized")

    def test_demo_rerun_on_same_database(self):
        """A file database keeps its ledger, so a second bootstrap is refused"""
        with tempfile.TemporaryDirectory() as tmp_dir:
            database_url = f"sqlite:///{Path(tmp_dir) / 'ledger.db'}"
            argv = ["--database-url", database_url, "--log-level", "ERROR", "demo"]

            first_code, _ = self.run_main(argv)
            second_code, output = self.run_main(argv)

        self.assertEqual(first_code, 0)
        self.assertEqual(second_code, 1)
        self.assertEqual(json.loads(output)["error_code"], "AlreadyInitialized")

    def test_command_is_required(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args([])


class TestSetupLogging(unittest.TestCase):
    """Test logging configuration"""

    def tearDown(self):
        root = logging.getLogger()
        for handler in root.handlers:
            handler.close()
        root.handlers.clear()

    def test_level_applied(self):
        setup_logging("WARNING")
        self.assertEqual(logging.getLogger().level, logging.WARNING)

    def test_log_dir_adds_file_handler(self):
        with tempfile.TemporaryDirectory() as log_dir:
            setup_logging("INFO", log_dir)
            self.assertTrue(any(isinstance(h, logging.FileHandler)
                                for h in logging.getLogger().handlers))
            for handler in logging.getLogger().handlers:
                handler.close()
            self.assertTrue((Path(log_dir) / "parking_ledger.log").exists())


if __name__ == '__main__':
    unittest.main()
