"""
Tests for config loading and validation.

Configuration lives in lightweight helpers in `wbrowse.core.configs`.
"""

import os
import unittest
import tempfile
from pathlib import Path
from unittest.mock import patch

from wbrowse.core.configs import DaemonConfig, get_browser, get_daemon_config, load_raw_config


class TestConfig(unittest.TestCase):
    """Test cases for configuration helpers."""

    def setUp(self):
        """Set up test environment with temporary directories."""
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = Path(self.temp_dir) / "config.cfg"
        # Keep the developer's own settings out of the tests
        self.env = patch.dict(os.environ, clear=False)
        self.env.start()
        for key in ("WB_BROWSER", "BROWSER", "WB_REQUEST_TIMEOUT_S", "MISTRAL_API_KEY"):
            os.environ.pop(key, None)

    def tearDown(self):
        """Clean up temporary files."""
        import shutil

        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, *, defaults: dict[str, str], api_keys: dict[str, str]) -> None:
        import configparser

        cfg = configparser.ConfigParser()
        cfg["DEFAULT"] = defaults
        cfg["API_KEYS"] = api_keys
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w") as handle:
            cfg.write(handle)

    def test_load_raw_config_lowercases_keys(self):
        self._write_config(
            defaults={"BROWSER": "lightpanda", "LLM_MODEL": "mistral-large-latest"},
            api_keys={"MISTRAL_API_KEY": "test_api_key_123"},
        )

        raw = load_raw_config(self.config_file)
        self.assertEqual(raw["browser"], "lightpanda")
        self.assertEqual(raw["llm_model"], "mistral-large-latest")
        self.assertEqual(raw["mistral_api_key"], "test_api_key_123")

    def test_missing_config_file_gives_defaults(self):
        raw = load_raw_config(self.config_file)
        self.assertEqual(raw, {})
        self.assertEqual(get_daemon_config(raw), DaemonConfig())

    def test_env_file_overrides_config(self):
        self._write_config(defaults={"LOG_LEVEL": "info"}, api_keys={})
        (Path(self.temp_dir) / ".env").write_text("LOG_LEVEL=debug\nHEADLESS=false\n")

        config = get_daemon_config(load_raw_config(self.config_file))
        self.assertEqual(config.log_level, "DEBUG")
        self.assertFalse(config.headless)

    def test_browser_env_override(self):
        with patch.dict(os.environ, {"WB_BROWSER": "lightpanda"}):
            self.assertEqual(get_browser({"browser": "chrome"}), "lightpanda")

    def test_generic_browser_variable_only_selects_lightpanda(self):
        with patch.dict(os.environ, {"BROWSER": "firefox"}):
            self.assertEqual(get_browser({}), "chrome")
        with patch.dict(os.environ, {"BROWSER": "lightpanda"}):
            self.assertEqual(get_browser({}), "lightpanda")

    def test_unknown_browser_raises(self):
        with self.assertRaises(ValueError) as context:
            get_browser({"browser": "netscape"})
        self.assertIn("Unsupported browser", str(context.exception))

    def test_timeout_and_api_key_env_override(self):
        raw = {"request_timeout": "30", "mistral_api_key": "from_file"}
        with patch.dict(os.environ, {"WB_REQUEST_TIMEOUT_S": "5", "MISTRAL_API_KEY": "from_env"}):
            config = get_daemon_config(raw)
        self.assertEqual(config.request_timeout, 5.0)
        self.assertEqual(config.mistral_api_key, "from_env")

        config = get_daemon_config(raw)
        self.assertEqual(config.request_timeout, 30.0)
        self.assertEqual(config.mistral_api_key, "from_file")


if __name__ == "__main__":
    unittest.main()
