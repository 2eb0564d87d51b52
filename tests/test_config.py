"""Tests for configuration loading and validation."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
import unittest

from codechat.config import DEFAULT_CONFIG, load_config, validate_config


class ConfigTests(unittest.TestCase):
    """Validate config merge and fallback behavior."""

    def test_missing_config_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config = load_config(config_path=config_path)
            self.assertEqual(config, DEFAULT_CONFIG)
            self.assertTrue(config["telemetry"]["enabled"])
            self.assertEqual(config["queue"]["separator"], "\n")
            self.assertEqual(config["session"]["default_approval_mode"], "default")

    def test_partial_config_overrides_selected_values(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                """
[telemetry]
enabled = false

[session]
default_approval_mode = "autoEdit"

[logging]
level = "debug"
                """.strip(),
                encoding="utf-8",
            )
            config = load_config(config_path=config_path)
            self.assertFalse(config["telemetry"]["enabled"])
            self.assertEqual(config["session"]["default_approval_mode"], "autoEdit")
            self.assertEqual(config["logging"]["level"], "DEBUG")
            self.assertEqual(
                config["summary"]["system_prompt"],
                DEFAULT_CONFIG["summary"]["system_prompt"],
            )

    def test_invalid_values_fallback_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                """
[logging]
level = "LOUD"

[attachments]
max_file_bytes = -1
                """.strip(),
                encoding="utf-8",
            )
            config = load_config(config_path=config_path)
            self.assertEqual(config["logging"]["level"], DEFAULT_CONFIG["logging"]["level"])
            self.assertEqual(
                config["attachments"]["max_file_bytes"],
                DEFAULT_CONFIG["attachments"]["max_file_bytes"],
            )

    def test_unparseable_toml_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text("[telemetry\nenabled = ", encoding="utf-8")
            self.assertEqual(load_config(config_path=config_path), DEFAULT_CONFIG)

    def test_empty_summary_prompt_is_rejected(self) -> None:
        raw = {**DEFAULT_CONFIG, "summary": {"enabled": True, "system_prompt": "   "}}
        config = validate_config(raw)
        self.assertEqual(
            config["summary"]["system_prompt"], DEFAULT_CONFIG["summary"]["system_prompt"]
        )

    @unittest.skipUnless(os.name == "posix", "POSIX permissions only")
    def test_config_file_is_made_private(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text("", encoding="utf-8")
            config_path.chmod(0o644)
            load_config(config_path=config_path)
            self.assertEqual(config_path.stat().st_mode & 0o777, 0o600)


if __name__ == "__main__":
    unittest.main()
