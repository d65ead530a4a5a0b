import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from formatkit.config import DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT, Settings


class TestConfigFromEnv(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings.from_env()
        self.assertEqual(settings.history_limit, DEFAULT_HISTORY_LIMIT)
        self.assertEqual(settings.pandoc_path, "pandoc")
        self.assertEqual(settings.pandoc_crossref_path, "pandoc-crossref")
        self.assertTrue(settings.use_crossref)
        self.assertEqual(settings.pandoc_timeout_seconds, 120)
        self.assertEqual(settings.log_level, "INFO")
        self.assertEqual(settings.api_port, 1610)
        self.assertEqual(settings.state_dir.name, "state")
        self.assertEqual(settings.runtime_db_file, settings.state_dir / "formatkit_state.db")
        self.assertEqual(settings.export_dir, settings.state_dir / "exports")

    def test_state_paths_follow_state_dir(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.dict(
                os.environ,
                {"STATE_DIR": tmpdir, "RUNTIME_DB_FILE": "custom.db", "EXPORT_DIR": str(Path(tmpdir) / "out")},
                clear=True,
            ):
                settings = Settings.from_env()
            self.assertEqual(settings.state_dir, Path(tmpdir).resolve())
            self.assertEqual(settings.runtime_db_file, Path(tmpdir).resolve() / "custom.db")
            self.assertEqual(settings.export_dir, (Path(tmpdir) / "out").resolve())

    def test_history_limit_is_clamped(self) -> None:
        env = {"HISTORY_LIMIT": "0"}
        self.assertEqual(Settings.from_env(getenv=env.get).history_limit, 1)
        env = {"HISTORY_LIMIT": "5000"}
        self.assertEqual(Settings.from_env(getenv=env.get).history_limit, MAX_HISTORY_LIMIT)
        env = {"HISTORY_LIMIT": "many"}
        self.assertEqual(Settings.from_env(getenv=env.get).history_limit, DEFAULT_HISTORY_LIMIT)

    def test_pandoc_settings(self) -> None:
        env = {
            "PANDOC_PATH": "/opt/pandoc/bin/pandoc",
            "PANDOC_CROSSREF_PATH": "/opt/pandoc/bin/pandoc-crossref",
            "USE_CROSSREF": "false",
            "PANDOC_TIMEOUT_SECONDS": "1",
            "LOG_LEVEL": "debug",
        }
        settings = Settings.from_env(getenv=env.get)
        self.assertEqual(settings.pandoc_path, "/opt/pandoc/bin/pandoc")
        self.assertEqual(settings.pandoc_crossref_path, "/opt/pandoc/bin/pandoc-crossref")
        self.assertFalse(settings.use_crossref)
        self.assertEqual(settings.pandoc_timeout_seconds, 5)
        self.assertEqual(settings.log_level, "DEBUG")

    def test_ensure_state_paths_creates_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            state_dir = Path(tmpdir) / "nested" / "state"
            env = {"STATE_DIR": str(state_dir)}
            settings = Settings.from_env(getenv=env.get)
            settings.ensure_state_paths()
            self.assertTrue(state_dir.is_dir())


if __name__ == "__main__":
    unittest.main()
