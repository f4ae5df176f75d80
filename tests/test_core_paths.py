import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core import paths as core_paths


class CorePathsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name).resolve()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_working_dir_honours_environment(self) -> None:
        target = self.base / "home"
        with mock.patch.dict(os.environ, {"STATEBACKUP_HOME": str(target)}):
            resolved = core_paths.resolve_working_dir()
        self.assertEqual(resolved, target)
        self.assertTrue(target.is_dir())

    def test_state_dir_defaults_to_openclaw_under_home(self) -> None:
        env = {"HOME": str(self.base)}
        with mock.patch.dict(os.environ, env):
            os.environ.pop("STATEBACKUP_STATE_DIR", None)
            state_dir = core_paths.resolve_state_dir({})
        self.assertEqual(state_dir, self.base / ".openclaw")
        self.assertEqual(core_paths.resolve_workspace_dir({}, state_dir), state_dir / "workspace")

    def test_settings_override_environment(self) -> None:
        configured = self.base / "configured"
        with mock.patch.dict(os.environ, {"STATEBACKUP_STATE_DIR": str(self.base / "env")}):
            state_dir = core_paths.resolve_state_dir({"state": {"dir": str(configured)}})
        self.assertEqual(state_dir, configured)

    def test_runtime_layout(self) -> None:
        working_dir = self.base / "work"
        core_paths.ensure_working_dir_structure(working_dir)
        self.assertTrue((working_dir / "backups").is_dir())
        self.assertTrue((working_dir / "logs").is_dir())
        self.assertTrue((working_dir / ".runtime" / "uploads").is_dir())
        self.assertEqual(core_paths.get_restore_scratch_dir(working_dir), working_dir / ".runtime" / "restore")


if __name__ == "__main__":
    unittest.main()
