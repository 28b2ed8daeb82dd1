"""Tests for screenshot folder resolution."""

from pathlib import Path

import pytest

from gamewatch.folders import FolderResolver, sanitize


@pytest.mark.parametrize(
    "name, expected",
    [
        ("My Game", "My Game"),
        ('a<b>c:d"e/f\\g|h?i*j', "a_b_c_d_e_f_g_h_i_j"),
        ("  padded  ", "padded"),
        ("", ""),
    ],
)
def test_sanitize(name, expected):
    """Test unsafe characters are replaced and whitespace trimmed."""
    assert sanitize(name) == expected


class TestFolderResolver:
    """Tests for FolderResolver."""

    def test_creates_missing_folder(self, tmp_path: Path):
        """Test the folder and its parents are created on first use."""
        base = tmp_path / "shots" / "nested"

        folder = FolderResolver().resolve("g1", "My Game", base)

        assert folder == base / "g1_My Game"
        assert folder.is_dir()

    def test_idempotent(self, tmp_path: Path, monkeypatch):
        """Test resolving twice with the same label does not rename."""
        resolver = FolderResolver()
        first = resolver.resolve("g1", "My Game", tmp_path)

        def fail_rename(self, target):
            raise AssertionError("rename should not be called")

        monkeypatch.setattr(Path, "rename", fail_rename)
        second = resolver.resolve("g1", "My Game", tmp_path)

        assert first == second
        assert [p.name for p in tmp_path.iterdir()] == ["g1_My Game"]

    def test_renames_on_label_change(self, tmp_path: Path):
        """Test a label change renames the folder and keeps its files."""
        old = tmp_path / "X_OldName"
        old.mkdir()
        (old / "shot.png").write_bytes(b"png")

        folder = FolderResolver().resolve("X", "NewName", tmp_path)

        assert folder == tmp_path / "X_NewName"
        assert (folder / "shot.png").read_bytes() == b"png"
        assert [p.name for p in tmp_path.iterdir()] == ["X_NewName"]

    def test_rename_failure_keeps_existing(self, tmp_path: Path, monkeypatch):
        """Test a failed rename falls back to the existing folder."""
        old = tmp_path / "X_OldName"
        old.mkdir()

        def deny_rename(self, target):
            raise PermissionError("folder in use")

        monkeypatch.setattr(Path, "rename", deny_rename)
        folder = FolderResolver().resolve("X", "NewName", tmp_path)

        assert folder == old
        assert not (tmp_path / "X_NewName").exists()

    def test_prefix_does_not_match_other_ids(self, tmp_path: Path):
        """Test an id is only matched with its trailing separator."""
        (tmp_path / "g10_Other").mkdir()

        folder = FolderResolver().resolve("g1", "Mine", tmp_path)

        assert folder == tmp_path / "g1_Mine"
        assert (tmp_path / "g10_Other").is_dir()

    def test_label_is_sanitized(self, tmp_path: Path):
        """Test unsafe label characters do not leak into the folder name."""
        folder = FolderResolver().resolve("g1", "Part 1: Rise?", tmp_path)
        assert folder.name == "g1_Part 1_ Rise_"


class TestFind:
    """Tests for FolderResolver.find."""

    def test_missing_base_dir(self, tmp_path: Path):
        """Test a missing base directory finds nothing."""
        assert FolderResolver().find("g1", tmp_path / "missing") is None

    def test_find_existing(self, tmp_path: Path):
        """Test find returns the folder by id prefix whatever its label."""
        (tmp_path / "g1_Whatever").mkdir()
        (tmp_path / "g1_file.txt").write_text("not a folder")

        assert FolderResolver().find("g1", tmp_path) == tmp_path / "g1_Whatever"

    def test_find_creates_nothing(self, tmp_path: Path):
        """Test find has no side effects."""
        assert FolderResolver().find("g1", tmp_path) is None
        assert list(tmp_path.iterdir()) == []
