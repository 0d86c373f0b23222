"""
Tests for config loading and validation.

Settings come from config.cfg (or a .env file beside it), the process
environment and CLI overrides, in increasing order of precedence.
"""

import configparser
import logging
import shutil
import tempfile
import unittest
from pathlib import Path

from impolite.core.configs import GreeterConfig, get_greeter_config, load_raw_config


class TestGreeterConfig(unittest.TestCase):
    """Test cases for configuration helpers."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.config_file = Path(self.temp_dir) / "config.cfg"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, *, defaults: dict[str, str], greeter: dict[str, str] = None) -> None:
        cfg = configparser.ConfigParser(interpolation=None)
        cfg["DEFAULT"] = defaults
        if greeter is not None:
            cfg["GREETER"] = greeter
        with open(self.config_file, "w") as handle:
            cfg.write(handle)

    def test_load_raw_config_lowercases_keys(self):
        self._write_config(
            defaults={"SOCKET": "/run/greetd.sock", "LOG_LEVEL": "info"},
            greeter={"COMMAND": "sway"},
        )

        raw = load_raw_config(self.config_file)
        self.assertEqual(raw["socket"], "/run/greetd.sock")
        self.assertEqual(raw["log_level"], "info")
        self.assertEqual(raw["command"], "sway")

    def test_greeter_section_overrides_default(self):
        self._write_config(
            defaults={"command": "bash"},
            greeter={"command": "sway"},
        )
        self.assertEqual(load_raw_config(self.config_file)["command"], "sway")

    def test_env_file_fallback(self):
        env_file = Path(self.temp_dir) / ".env"
        env_file.write_text("SOCKET=/tmp/greetd.sock\nDEBUG=true\n")

        raw = load_raw_config(self.config_file)
        self.assertEqual(raw["socket"], "/tmp/greetd.sock")
        self.assertEqual(raw["debug"], "true")

    def test_cfg_wins_over_env_file(self):
        (Path(self.temp_dir) / ".env").write_text("SOCKET=/tmp/other.sock\n")
        self._write_config(defaults={"socket": "/run/greetd.sock"})
        self.assertEqual(load_raw_config(self.config_file)["socket"], "/run/greetd.sock")

    def test_missing_files_give_empty_config(self):
        self.assertEqual(load_raw_config(self.config_file), {})

    def test_defaults(self):
        config = get_greeter_config({}, environ={})
        self.assertEqual(config, GreeterConfig())
        self.assertIsNone(config.socket_address)
        self.assertFalse(config.debug)
        self.assertEqual(config.max_attempts, 3)
        self.assertEqual(config.log_level_number, logging.WARNING)

    def test_full_config(self):
        raw = {
            "socket": "/run/greetd.sock",
            "debug": "yes",
            "command": "sway --unsupported-gpu",
            "env": "XDG_SESSION_TYPE=wayland LANG=C",
            "log_level": "debug",
            "log_file": "/tmp/impolite.log",
            "session_dirs": "/opt/share:/usr/share",
            "max_attempts": "5",
        }
        config = get_greeter_config(raw, environ={})

        self.assertEqual(config.socket_address, "/run/greetd.sock")
        self.assertTrue(config.debug)
        self.assertEqual(config.default_command, ["sway", "--unsupported-gpu"])
        self.assertEqual(config.default_env, ["XDG_SESSION_TYPE=wayland", "LANG=C"])
        self.assertEqual(config.log_level, "DEBUG")
        self.assertEqual(config.log_file, Path("/tmp/impolite.log"))
        self.assertEqual(config.session_dirs, [Path("/opt/share"), Path("/usr/share")])
        self.assertEqual(config.max_attempts, 5)

    def test_environment_overrides_file(self):
        raw = {"socket": "/run/greetd.sock", "debug": "true"}
        environ = {"GREETD_SOCK": "/run/greetd-1.sock", "IMPOLITE_DEBUG": "0"}

        config = get_greeter_config(raw, environ=environ)
        self.assertEqual(config.socket_address, "/run/greetd-1.sock")
        self.assertFalse(config.debug)

    def test_blank_debug_variable_is_ignored(self):
        config = get_greeter_config({"debug": "on"}, environ={"IMPOLITE_DEBUG": " "})
        self.assertTrue(config.debug)

    def test_cli_overrides_win(self):
        environ = {"GREETD_SOCK": "/run/greetd-1.sock"}
        config = get_greeter_config(
            {"command": "bash"},
            environ=environ,
            socket_address="127.0.0.1:9000",
            debug=True,
            default_command=["sway"],
        )
        self.assertEqual(config.socket_address, "127.0.0.1:9000")
        self.assertTrue(config.debug)
        self.assertEqual(config.default_command, ["sway"])

    def test_none_overrides_are_ignored(self):
        config = get_greeter_config(
            {"socket": "/run/greetd.sock"}, environ={}, socket_address=None, debug=None
        )
        self.assertEqual(config.socket_address, "/run/greetd.sock")
        self.assertFalse(config.debug)

    def test_invalid_log_level_raises(self):
        with self.assertRaises(ValueError) as context:
            get_greeter_config({"log_level": "LOUD"}, environ={})
        self.assertIn("Invalid log_level", str(context.exception))

    def test_invalid_command_raises(self):
        with self.assertRaises(ValueError):
            get_greeter_config({"command": "sway 'unterminated"}, environ={})

    def test_invalid_max_attempts_raises(self):
        for value in ("many", "0", "-2"):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    get_greeter_config({"max_attempts": value}, environ={})

    def test_config_is_frozen(self):
        config = get_greeter_config({}, environ={})
        with self.assertRaises(Exception):
            config.debug = True


if __name__ == "__main__":
    unittest.main()
