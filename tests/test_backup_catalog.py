import pytest

from backup.catalog import delete_backup, list_backups, resolve_backup
from backup.errors import BackupNotFoundError


def _seed(backup_dir):
    backup_dir.mkdir(parents=True)
    names = [
        "state-backup-2024-01-01T00-00-00-000Z.zip",
        "state-backup-2024-02-01T00-00-00-000Z.zip",
        "pre-restore-2024-03-01T00-00-00-000Z.zip",
    ]
    for index, name in enumerate(names):
        (backup_dir / name).write_bytes(b"x" * (index + 1))
    (backup_dir / "notes.txt").write_text("not an archive", encoding="utf-8")
    (backup_dir / "folder.zip").mkdir()
    return names


def test_list_backups_is_chronological_across_prefixes(tmp_path):
    backup_dir = tmp_path / "backups"
    _seed(backup_dir)

    records = list_backups(backup_dir)

    assert [record.name for record in records] == [
        "pre-restore-2024-03-01T00-00-00-000Z.zip",
        "state-backup-2024-02-01T00-00-00-000Z.zip",
        "state-backup-2024-01-01T00-00-00-000Z.zip",
    ]
    assert [record.kind for record in records] == ["pre-restore", "backup", "backup"]
    assert records[1].size_bytes == 2
    assert records[0].modified_utc.endswith("+00:00")


def test_list_backups_orders_counter_suffixes_and_untimestamped_names(tmp_path):
    backup_dir = tmp_path / "backups"
    backup_dir.mkdir()
    for name in (
        "manual-upload.zip",
        "state-backup-2024-05-01T10-00-00-000Z.zip",
        "state-backup-2024-05-01T10-00-00-000Z-1.zip",
        "pre-restore-2024-04-30T23-59-59-999Z.zip",
    ):
        (backup_dir / name).write_bytes(b"zip")

    names = [record.name for record in list_backups(backup_dir)]

    assert names == [
        "state-backup-2024-05-01T10-00-00-000Z-1.zip",
        "state-backup-2024-05-01T10-00-00-000Z.zip",
        "pre-restore-2024-04-30T23-59-59-999Z.zip",
        "manual-upload.zip",
    ]


def test_list_backups_missing_directory(tmp_path):
    assert list_backups(tmp_path / "nowhere") == []


def test_delete_rejects_traversal_and_foreign_files(tmp_path):
    backup_dir = tmp_path / "backups"
    _seed(backup_dir)
    outside = tmp_path / "outside.zip"
    outside.write_bytes(b"keep me")

    assert delete_backup(backup_dir, "../../etc/passwd") is False
    assert delete_backup(backup_dir, "notes.txt") is False
    assert delete_backup(backup_dir, "../outside.zip") is False
    assert delete_backup(backup_dir, "folder.zip") is False
    assert delete_backup(backup_dir, "") is False
    assert (backup_dir / "notes.txt").exists()
    assert outside.exists()


def test_delete_removes_exactly_the_named_archive(tmp_path):
    backup_dir = tmp_path / "backups"
    names = _seed(backup_dir)
    (backup_dir / "valid-backup-2024-01-01.zip").write_bytes(b"zip")

    assert delete_backup(backup_dir, "valid-backup-2024-01-01.zip") is True
    assert not (backup_dir / "valid-backup-2024-01-01.zip").exists()
    assert all((backup_dir / name).exists() for name in names)
    assert delete_backup(backup_dir, "valid-backup-2024-01-01.zip") is False


def test_delete_strips_directory_components(tmp_path):
    backup_dir = tmp_path / "backups"
    _seed(backup_dir)

    assert delete_backup(backup_dir, "nested/dir/state-backup-2024-01-01T00-00-00-000Z.zip") is True
    assert not (backup_dir / "state-backup-2024-01-01T00-00-00-000Z.zip").exists()


def test_resolve_backup_requires_bare_archive_name(tmp_path):
    backup_dir = tmp_path / "backups"
    names = _seed(backup_dir)

    assert resolve_backup(backup_dir, names[0]) == backup_dir / names[0]
    for bad in ("../" + names[0], "notes.txt", "missing.zip", "folder.zip"):
        with pytest.raises(BackupNotFoundError):
            resolve_backup(backup_dir, bad)
