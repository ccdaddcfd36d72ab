import json
import os
import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spotify_api.errors import TokenStoreError
from spotify_api.token_manager import Credentials, TokenManager


class TestTokenManager(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.cache_path = os.path.join(self._tmp.name, "data", "spotify_tokens.json")
        self.tm = TokenManager(cache_path=self.cache_path)

    def tearDown(self):
        self._tmp.cleanup()

    def test_token_cache_roundtrip(self):
        token = Credentials(access_token="at", refresh_token="rt", expires_at=9999999999.0, scope="user-library-read")
        self.tm.save(token)

        loaded = self.tm.load()
        self.assertEqual(loaded, token)

    def test_missing_file_is_not_found(self):
        self.assertIsNone(self.tm.load())

    def test_corrupt_file_is_not_found(self):
        os.makedirs(os.path.dirname(self.cache_path))
        with open(self.cache_path, "w", encoding="utf-8") as f:
            f.write("{not json")
        self.assertIsNone(self.tm.load())

    def test_non_object_or_empty_token_is_not_found(self):
        os.makedirs(os.path.dirname(self.cache_path))
        with open(self.cache_path, "w", encoding="utf-8") as f:
            json.dump(["at"], f)
        self.assertIsNone(self.tm.load())

        with open(self.cache_path, "w", encoding="utf-8") as f:
            json.dump({"access_token": "", "refresh_token": "rt", "expires_at": 1}, f)
        self.assertIsNone(self.tm.load())

    def test_bad_expiry_is_not_found(self):
        os.makedirs(os.path.dirname(self.cache_path))
        with open(self.cache_path, "w", encoding="utf-8") as f:
            json.dump({"access_token": "at", "refresh_token": "rt", "expires_at": "soon"}, f)
        self.assertIsNone(self.tm.load())

    def test_save_failure_raises_token_store_error(self):
        # The cache path is a directory, so open() fails.
        os.makedirs(self.cache_path)
        with self.assertRaises(TokenStoreError):
            self.tm.save(Credentials(access_token="at", refresh_token="rt", expires_at=1.0))

    def test_clear_removes_file(self):
        self.tm.save(Credentials(access_token="at", refresh_token="rt", expires_at=1.0))
        self.assertTrue(self.tm.clear())
        self.assertFalse(os.path.exists(self.cache_path))
        self.assertIsNone(self.tm.load())

    def test_is_expired_uses_margin(self):
        token = Credentials(access_token="at", refresh_token="rt", expires_at=1000.0)
        self.assertFalse(TokenManager.is_expired(token, skew_seconds=60, now=939.9))
        self.assertTrue(TokenManager.is_expired(token, skew_seconds=60, now=940.0))
        self.assertTrue(TokenManager.is_expired(token, skew_seconds=60, now=2000.0))


class TestCredentials(unittest.TestCase):
    def test_from_token_response_derives_expiry(self):
        payload = {
            "access_token": "at",
            "token_type": "Bearer",
            "expires_in": 3600,
            "refresh_token": "rt",
            "scope": "user-read-playback-state",
        }
        creds = Credentials.from_token_response(payload, now=1000.0)
        self.assertEqual(creds.expires_at, 4600.0)
        self.assertEqual(creds.refresh_token, "rt")
        self.assertEqual(creds.authorization_header, "Bearer at")

    def test_refresh_response_keeps_previous_refresh_token(self):
        creds = Credentials.from_token_response(
            {"access_token": "at2", "token_type": "bearer", "expires_in": 3600},
            now=0.0,
            previous_refresh_token="rt-old",
        )
        self.assertEqual(creds.refresh_token, "rt-old")
        self.assertEqual(creds.authorization_header, "Bearer at2")


if __name__ == "__main__":
    unittest.main(verbosity=2)
