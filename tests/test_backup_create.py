import json
import os
import re
import zipfile
from pathlib import Path

import pytest

from backup.create import archive_filename, create_backup, write_archive
from backup.errors import BackupIOError
from backup.extract import extract_archive
from backup.logs import BackupLogger
from backup.types import BackupConfig


class StubLogger:
    def __init__(self) -> None:
        self.events = []

    def info(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("info", event, extra))

    def warning(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("warning", event, extra))

    def error(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("error", event, extra))

    def event(self, *, event: str, phase: str, ok: bool, **extra):  # pragma: no cover - recorder
        self.events.append(("event", event, phase, ok, extra))


def _config(tmp_path: Path, **overrides) -> BackupConfig:
    state_dir = tmp_path / "state"
    values = dict(
        app_name="Test Wizard",
        state_dir=state_dir,
        workspace_dir=state_dir / "workspace",
        workspace_entries=("AGENTS.md", "memory", "MISSING.md"),
        exclude=("logs/**", "workspace/**", "backups/**"),
        backup_dir=tmp_path / "backups",
        scratch_dir=tmp_path / "scratch",
    )
    values.update(overrides)
    return BackupConfig(**values)


def _populate(config: BackupConfig) -> None:
    state = config.state_dir
    (state / "config").mkdir(parents=True)
    (state / "config" / "app.json").write_text('{"a": 1}', encoding="utf-8")
    (state / ".env").write_text("TOKEN=1", encoding="utf-8")
    (state / "logs" / "2024" / "jan").mkdir(parents=True)
    (state / "logs" / "2024" / "jan" / "out.txt").write_text("noisy", encoding="utf-8")
    (state / "empty").mkdir()
    workspace = config.workspace_dir
    (workspace / "memory" / "2024").mkdir(parents=True)
    (workspace / "memory" / "2024" / "notes.md").write_text("remember", encoding="utf-8")
    (workspace / "AGENTS.md").write_text("# agents", encoding="utf-8")
    (workspace / "scratch.txt").write_text("not canonical", encoding="utf-8")


def _tree(root: Path) -> dict:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def test_write_archive_layout_and_round_trip(tmp_path):
    config = _config(tmp_path)
    _populate(config)
    logger = StubLogger()

    result = write_archive(config, tmp_path / "out.zip", logger=logger)

    assert result.path.exists()
    assert result.state_files == 2
    assert result.workspace_entries == ["AGENTS.md", "memory"]
    with zipfile.ZipFile(result.path) as archive:
        names = archive.namelist()
    assert "manifest.json" in names
    assert "state/config/app.json" in names
    assert "state/.env" in names
    assert "state/empty/" in names
    assert "workspace/AGENTS.md" in names
    assert "workspace/memory/2024/notes.md" in names
    assert not any(name.startswith("state/logs") for name in names)
    assert not any(name.startswith("state/workspace") for name in names)
    assert "workspace/scratch.txt" not in names
    assert "workspace/MISSING.md" not in names

    extracted = extract_archive(result.path, tmp_path / "extracted", logger=logger)
    assert extracted.state_dir is not None
    assert _tree(extracted.state_dir) == {
        ".env": b"TOKEN=1",
        "config/app.json": b'{"a": 1}',
    }
    assert (extracted.state_dir / "empty").is_dir()
    assert _tree(extracted.workspace_dir) == {
        "AGENTS.md": b"# agents",
        "memory/2024/notes.md": b"remember",
    }


def test_manifest_describes_archive(tmp_path):
    config = _config(tmp_path)
    _populate(config)

    result = write_archive(config, tmp_path / "out.zip", logger=StubLogger())

    with zipfile.ZipFile(result.path) as archive:
        manifest = json.loads(archive.read("manifest.json").decode("utf-8"))
    assert manifest["app"] == "Test Wizard"
    assert manifest["format"] == "state-backup-v1"
    assert manifest["createdAt"].endswith("Z")
    assert manifest["includes"]["state"] == str(config.state_dir)
    assert manifest["includes"]["workspace"] == ["AGENTS.md", "memory", "MISSING.md"]
    assert manifest["includes"]["exclude"] == list(config.exclude)


def test_missing_state_and_workspace_entries_are_not_errors(tmp_path):
    config = _config(tmp_path, state_dir=tmp_path / "absent", workspace_dir=tmp_path / "ws")
    (tmp_path / "ws").mkdir()
    (tmp_path / "ws" / "AGENTS.md").write_text("only file", encoding="utf-8")
    logger = StubLogger()

    result = write_archive(config, tmp_path / "out.zip", logger=logger)

    with zipfile.ZipFile(result.path) as archive:
        names = set(archive.namelist())
    assert names == {"manifest.json", "workspace/AGENTS.md"}
    assert result.state_files == 0
    assert any(entry[1] == "state_dir_missing" for entry in logger.events)


def test_failed_write_leaves_no_archive(tmp_path, monkeypatch):
    config = _config(tmp_path)
    _populate(config)
    destination = tmp_path / "out.zip"

    def boom(archive, manifest):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("backup.create._write_manifest", boom)

    with pytest.raises(BackupIOError) as excinfo:
        write_archive(config, destination, logger=StubLogger())

    assert "No space left on device" in str(excinfo.value)
    assert not destination.exists()
    assert list(tmp_path.glob("*.partial")) == []


def test_archive_written_inside_state_dir_skips_itself(tmp_path):
    config = _config(tmp_path)
    _populate(config)
    destination = config.state_dir / "self.zip"

    write_archive(config, destination, logger=StubLogger())

    with zipfile.ZipFile(destination) as archive:
        names = archive.namelist()
    assert "state/self.zip" not in names
    assert "state/self.zip.partial" not in names
    assert "state/config/app.json" in names


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_symlinked_directories_are_not_followed(tmp_path):
    config = _config(tmp_path)
    _populate(config)
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "secret.txt").write_text("outside", encoding="utf-8")
    os.symlink(outside, config.state_dir / "linked", target_is_directory=True)

    result = write_archive(config, tmp_path / "out.zip", logger=StubLogger())

    with zipfile.ZipFile(result.path) as archive:
        names = archive.namelist()
    assert "state/linked/" in names
    assert "state/linked/secret.txt" not in names


def test_repeated_writes_produce_identical_trees(tmp_path):
    config = _config(tmp_path)
    _populate(config)
    logger = BackupLogger(tmp_path / "work")

    first = write_archive(config, tmp_path / "first.zip", logger=logger)
    second = write_archive(config, tmp_path / "second.zip", logger=logger)

    first_tree = extract_archive(first.path, tmp_path / "x1", logger=logger)
    second_tree = extract_archive(second.path, tmp_path / "x2", logger=logger)
    assert _tree(first_tree.state_dir) == _tree(second_tree.state_dir)
    assert _tree(first_tree.workspace_dir) == _tree(second_tree.workspace_dir)
    with zipfile.ZipFile(first.path) as a, zipfile.ZipFile(second.path) as b:
        assert a.namelist() == b.namelist()
    assert logger.log_path.exists()


def test_create_backup_uses_timestamped_name(tmp_path):
    config = _config(tmp_path)
    _populate(config)

    result = create_backup(config, logger=StubLogger())

    assert result.path.parent == config.backup_dir
    assert re.match(r"^state-backup-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z\.zip$", result.name)
    assert archive_filename("pre-restore", "2024-01-01T00:00:00.000Z") == "pre-restore-2024-01-01T00-00-00-000Z.zip"


def test_create_backup_never_overwrites_existing_archive(tmp_path, monkeypatch):
    config = _config(tmp_path)
    _populate(config)
    monkeypatch.setattr("backup.create._utcnow", lambda: "2024-01-01T00:00:00.000Z")

    first = create_backup(config, logger=StubLogger())
    second = create_backup(config, logger=StubLogger())

    assert first.path != second.path
    assert first.path.exists() and second.path.exists()


def test_backup_dir_inside_state_dir_is_never_archived(tmp_path):
    state_dir = tmp_path / "state"
    config = _config(tmp_path, backup_dir=state_dir / "archives", scratch_dir=state_dir / ".restore")
    _populate(config)
    (config.scratch_dir / "state").mkdir(parents=True)
    (config.scratch_dir / "state" / "stale.txt").write_text("left over", encoding="utf-8")

    first = create_backup(config, logger=StubLogger())
    second = create_backup(config, logger=StubLogger())

    with zipfile.ZipFile(second.path) as archive:
        names = archive.namelist()
    assert f"state/archives/{first.name}" not in names
    assert not any(name.startswith("state/archives") for name in names)
    assert not any(name.startswith("state/.restore") for name in names)
    assert "state/config/app.json" in names


@pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="named pipes unsupported")
def test_special_files_are_skipped(tmp_path):
    config = _config(tmp_path)
    _populate(config)
    os.mkfifo(config.state_dir / "control.pipe")
    os.mkfifo(config.workspace_dir / "AGENTS.md.pipe")
    config = _config(tmp_path, workspace_entries=("AGENTS.md", "AGENTS.md.pipe"))
    logger = StubLogger()

    result = write_archive(config, tmp_path / "out.zip", logger=logger)

    with zipfile.ZipFile(result.path) as archive:
        names = archive.namelist()
    assert "state/control.pipe" not in names
    assert "workspace/AGENTS.md.pipe" not in names
    assert "workspace/AGENTS.md" in names
    assert result.workspace_entries == ["AGENTS.md"]
    skipped = [entry for entry in logger.events if entry[:2] == ("warning", "special_file_skipped")]
    assert len(skipped) == 2
