"""Tests for checksum manifest encoding and comparison."""

import hashlib
import json

import pytest

from feedback_archive.errors import ManifestFormatError
from feedback_archive.manifest import (
    ChecksumManifest,
    ManifestBuilder,
    ManifestRecord,
    digest_file,
    load_manifest,
)


class TestManifestBuilder:
    def test_records_digests_size_and_kind(self):
        builder = ManifestBuilder(["sha256", "md5"])
        record = builder.add("Team_1/a.txt", b"hello", "submission")

        assert record.size == 5
        assert record.digests["sha256"] == hashlib.sha256(b"hello").hexdigest()
        assert record.digests["md5"] == hashlib.md5(b"hello").hexdigest()
        assert len(builder) == 1
        assert builder.build()["Team_1/a.txt"].kind == "submission"

    def test_json_layout(self):
        builder = ManifestBuilder(["sha256"])
        builder.add("status.csv", b"x", "status_file")
        payload = json.loads(builder.build().to_json())

        assert payload == {
            "status.csv": {"sha256": hashlib.sha256(b"x").hexdigest(), "size": 1, "type": "status_file"}
        }


class TestManifestRecordCompare:
    def test_uses_strongest_shared_algorithm(self):
        record = ManifestRecord(path="a", size=1, kind="submission", digests={"sha256": "aa", "md5": "bb"})
        assert record.strongest_algorithm == "sha256"
        assert record.compare({"sha256": "AA", "md5": "zz"}) is True
        assert record.compare({"sha256": "cc", "md5": "bb"}) is False

    def test_falls_back_to_md5(self):
        record = ManifestRecord(path="a", size=1, kind="submission", digests={"md5": "bb"})
        assert record.compare({"sha256": "aa", "md5": "bb"}) is True

    def test_no_shared_algorithm_is_undecided(self):
        record = ManifestRecord(path="a", size=1, kind="submission", digests={"md5": "bb"})
        assert record.compare({"sha256": "aa"}) is None


class TestManifestParsing:
    def test_bad_records_are_skipped(self):
        text = json.dumps(
            {
                "good.txt": {"md5": "abc", "size": "3", "type": "submission"},
                "no_type.txt": {"md5": "abc"},
                "no_digest.txt": {"size": 3, "type": "submission"},
                "not_object.txt": "md5",
            }
        )
        manifest = ChecksumManifest.from_json(text)

        assert list(manifest) == ["good.txt"]
        assert manifest["good.txt"].size == 3

    def test_unknown_fields_are_ignored(self):
        text = json.dumps({"a.txt": {"sha256": "ff", "size": 1, "type": "submission", "comment": "x"}})
        assert dict(ChecksumManifest.from_json(text)["a.txt"].digests) == {"sha256": "ff"}

    def test_invalid_json_raises(self):
        with pytest.raises(ManifestFormatError):
            ChecksumManifest.from_json("{not json")

    def test_non_object_root_raises(self):
        with pytest.raises(ManifestFormatError):
            ChecksumManifest.from_json("[1, 2]")

    def test_of_kind(self):
        builder = ManifestBuilder()
        builder.add("status.xlsx", b"a", "status_file")
        builder.add("U/a.txt", b"b", "submission")
        assert [record.path for record in builder.build().of_kind("status_file")] == ["status.xlsx"]


class TestLoadManifest:
    def test_missing_file_returns_none(self, tmp_path):
        assert load_manifest(tmp_path / "checksums.json") is None

    def test_malformed_file_returns_none(self, tmp_path):
        path = tmp_path / "checksums.json"
        path.write_text("nope", encoding="utf-8")
        assert load_manifest(path) is None

    def test_round_trip_from_disk(self, tmp_path):
        builder = ManifestBuilder()
        builder.add("U/a.txt", b"payload", "submission")
        path = tmp_path / "checksums.json"
        path.write_text(builder.build().to_json(), encoding="utf-8")

        candidate = tmp_path / "candidate.bin"
        candidate.write_bytes(b"payload")

        loaded = load_manifest(path)
        assert loaded is not None
        assert loaded["U/a.txt"].compare(digest_file(candidate)) is True
