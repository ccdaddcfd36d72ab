import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config import DEFAULT_CONFIG, get_config_value, load_config, save_config, validate_config


class TestConfig(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "config.json")

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file_uses_defaults(self):
        config = load_config(self.path, use_env=False)
        self.assertEqual(config, DEFAULT_CONFIG)

    def test_file_values_override_defaults(self):
        save_config({"spotify_client_id": "cid", "volume_step": 5}, self.path)
        config = load_config(self.path, use_env=False)

        self.assertEqual(config["spotify_client_id"], "cid")
        self.assertEqual(config["volume_step"], 5)
        self.assertEqual(config["search_limit"], DEFAULT_CONFIG["search_limit"])

    def test_non_object_file_is_rejected(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(["nope"], f)
        with self.assertRaises(ValueError):
            load_config(self.path, use_env=False)

    def test_environment_overrides_file(self):
        save_config({"spotify_client_id": "from-file"}, self.path)
        with mock.patch.dict(os.environ, {"SPOTIFY_CLIENT_ID": "from-env", "SPOTIFY_CLIENT_SECRET": ""}):
            config = load_config(self.path)

        self.assertEqual(config["spotify_client_id"], "from-env")
        self.assertEqual(config["spotify_client_secret"], "")

    def test_validate_config(self):
        config = dict(DEFAULT_CONFIG, spotify_client_id="cid")
        self.assertEqual(validate_config(config), (True, []))

        ok, errors = validate_config(dict(DEFAULT_CONFIG))
        self.assertFalse(ok)
        self.assertIn("Missing required field: spotify_client_id", errors)

        ok, errors = validate_config(dict(config, volume_step=True, log_level="LOUD", search_limit=500))
        self.assertFalse(ok)
        self.assertEqual(len(errors), 3)

    def test_get_config_value_falls_back_to_defaults(self):
        self.assertEqual(get_config_value({}, "volume_step"), 10)
        self.assertEqual(get_config_value({"volume_step": 3}, "volume_step"), 3)
        self.assertEqual(get_config_value({}, "unknown", "x"), "x")


if __name__ == "__main__":
    unittest.main(verbosity=2)
