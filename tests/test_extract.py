"""Tests for safe archive extraction."""

from types import SimpleNamespace

import pytest

from conftest import make_zip
from feedback_archive.errors import ArchiveValidationError
from feedback_archive.ingest.extract import ArchiveImporter, read_archive_source, sanitize_entry_name


class TestSanitizeEntryName:
    def test_plain_relative_path(self):
        assert sanitize_entry_name("Team_1/a.txt") == "Team_1/a.txt"

    def test_backslashes_and_drive_prefix(self):
        assert sanitize_entry_name("C:\\Users\\x\\a.txt") == "Users/x/a.txt"

    def test_absolute_path_becomes_relative(self):
        assert sanitize_entry_name("/etc/passwd") == "etc/passwd"

    def test_current_dir_segments_dropped(self):
        assert sanitize_entry_name("./a/./b.txt") == "a/b.txt"

    @pytest.mark.parametrize("name", ["../../evil.txt", "a/../../b.txt", "a/..", "bad\x00name", "", "/"])
    def test_unsafe_names_are_refused(self, name):
        assert sanitize_entry_name(name) is None


class TestReadArchiveSource:
    def test_bytes(self):
        assert read_archive_source(b"PK") == b"PK"

    def test_path(self, tmp_path):
        path = tmp_path / "upload.zip"
        path.write_bytes(b"PK")
        assert read_archive_source(path) == b"PK"
        assert read_archive_source(str(path)) == b"PK"

    def test_upload_handle(self, tmp_path):
        path = tmp_path / "upload.zip"
        path.write_bytes(b"PK")
        handle = SimpleNamespace(getPath=lambda: str(path))
        assert read_archive_source(handle) == b"PK"
        assert read_archive_source(SimpleNamespace(path=str(path))) == b"PK"

    def test_empty_upload_is_rejected(self):
        with pytest.raises(ArchiveValidationError):
            read_archive_source(b"")

    def test_missing_file_is_rejected(self, tmp_path):
        with pytest.raises(ArchiveValidationError):
            read_archive_source(tmp_path / "absent.zip")

    def test_handle_without_path_is_rejected(self):
        with pytest.raises(ArchiveValidationError):
            read_archive_source(SimpleNamespace(path=None))


class TestArchiveImporter:
    def test_extracts_files_inside_root(self, settings, tmp_path):
        data = make_zip({"Doe_Jane_jd_5/a.txt": b"one", "status.csv": b"two"})
        result = ArchiveImporter(settings).extract(data, tmp_path / "out")

        assert sorted(entry.archive_path for entry in result.entries) == ["Doe_Jane_jd_5/a.txt", "status.csv"]
        for entry in result.entries:
            assert entry.local_path.is_relative_to(result.root)
            assert entry.local_path.is_file()
        assert result.rejected == ()

    def test_traversal_entry_is_never_materialized(self, settings, tmp_path):
        data = make_zip({"Doe_Jane_jd_5/a.txt": b"one", "../../evil.txt": b"pwned"})
        extract_root = tmp_path / "a" / "b" / "out"
        result = ArchiveImporter(settings).extract(data, extract_root)

        assert [error.entry_name for error in result.rejected] == ["../../evil.txt"]
        assert [entry.archive_path for entry in result.entries] == ["Doe_Jane_jd_5/a.txt"]
        assert not (tmp_path / "a" / "evil.txt").exists()
        assert not (extract_root / "evil.txt").exists()

    def test_entry_name_with_nul_byte_is_rejected(self, settings, tmp_path):
        data = make_zip({"Doe_Jane_jd_5/evil.php#XX.pdf": b"<?php", "Doe_Jane_jd_5/a.txt": b"one"})
        data = data.replace(b"evil.php#", b"evil.php\x00")
        extract_root = tmp_path / "out"
        result = ArchiveImporter(settings).extract(data, extract_root)

        assert [error.entry_name for error in result.rejected] == ["Doe_Jane_jd_5/evil.php\x00XX.pdf"]
        assert [entry.archive_path for entry in result.entries] == ["Doe_Jane_jd_5/a.txt"]
        assert not (extract_root / "Doe_Jane_jd_5" / "evil.php").exists()

    def test_duplicate_entries_keep_the_first(self, settings, tmp_path):
        data = make_zip({"U_x_y_1/a.txt": b"first", "U_x_y_1\\a.txt": b"second"})
        result = ArchiveImporter(settings).extract(data, tmp_path / "out")

        assert len(result.entries) == 1
        assert result.entries[0].local_path.read_bytes() == b"first"
        assert any("Duplicate" in message for message in result.warnings)

    def test_directory_entries_are_listed(self, settings, tmp_path):
        data = make_zip({"Team_3/": b"", "Team_3/a.txt": b"x"})
        result = ArchiveImporter(settings).extract(data, tmp_path / "out")
        assert result.directories == ("Team_3",)

    def test_not_a_zip(self, settings, tmp_path):
        with pytest.raises(ArchiveValidationError):
            ArchiveImporter(settings).extract(b"definitely not a zip", tmp_path / "out")

    def test_archive_without_files(self, settings, tmp_path):
        with pytest.raises(ArchiveValidationError):
            ArchiveImporter(settings).extract(make_zip({"empty/": b""}), tmp_path / "out")

    def test_entry_limit(self, settings, tmp_path):
        settings.archive.max_entries = 2
        data = make_zip({f"U_x_y_1/{index}.txt": b"x" for index in range(3)})
        with pytest.raises(ArchiveValidationError, match="limit"):
            ArchiveImporter(settings).extract(data, tmp_path / "out")

    def test_size_limit(self, settings, tmp_path):
        settings.archive.max_total_uncompressed_mb = 1
        data = make_zip({"U_x_y_1/big.bin": b"\x00" * (1024 * 1024 + 1)})
        with pytest.raises(ArchiveValidationError, match="limit"):
            ArchiveImporter(settings).extract(data, tmp_path / "out")
