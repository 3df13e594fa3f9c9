import io
import json
import logging
import unittest
from unittest.mock import patch

from skillsync.log import setup_logging


class TestSetupLogging(unittest.TestCase):
    def tearDown(self) -> None:
        logging.getLogger("skillsync").handlers.clear()

    def test_json_records_go_to_stderr(self) -> None:
        with patch("sys.stderr", new=io.StringIO()) as stderr:
            setup_logging("info", "json")
            logging.getLogger("skillsync.installer").info("installed %s", "foo", extra={"agent": "cursor"})

        record = json.loads(stderr.getvalue().strip())
        self.assertEqual(record["message"], "installed foo")
        self.assertEqual(record["level"], "INFO")
        self.assertEqual(record["logger"], "skillsync.installer")
        self.assertEqual(record["agent"], "cursor")

    def test_level_filters_and_unknown_level_defaults_to_warning(self) -> None:
        with patch("sys.stderr", new=io.StringIO()) as stderr:
            setup_logging("nonsense")
            log = logging.getLogger("skillsync.lock")
            log.info("hidden")
            log.warning("shown")

        self.assertEqual(stderr.getvalue().strip(), "WARNING skillsync.lock: shown")


if __name__ == "__main__":
    unittest.main()
