"""Tests for the directory scanner that builds file catalogs."""

from __future__ import annotations

import hashlib
from pathlib import Path

from sorty.catalog.discovery import DirectoryScanner, record_id_for

from conftest import write_file


def test_scanner_skips_hidden_and_large_files(root: Path) -> None:
    write_file(root, "visible.txt", "hello")
    write_file(root, ".hidden", "secret")
    write_file(root, "big.bin", "x" * 2048)

    scanner = DirectoryScanner(max_size_bytes=1024)
    names = [record.path.name for record in scanner.scan(root)]

    assert names == ["visible.txt"]


def test_scanner_includes_hidden_when_enabled(root: Path) -> None:
    write_file(root, ".hidden", "secret")

    records = DirectoryScanner(include_hidden=True).scan(root)

    assert [record.path.name for record in records] == [".hidden"]


def test_scanner_recursion(root: Path) -> None:
    write_file(root, "top.txt")
    write_file(root, "nested/deep.txt")

    flat = DirectoryScanner().scan(root)
    deep = DirectoryScanner(recursive=True).scan(root)

    assert [record.path.name for record in flat] == ["top.txt"]
    assert sorted(record.path.name for record in deep) == ["deep.txt", "top.txt"]


def test_record_fields_and_stable_ids(root: Path) -> None:
    write_file(root, "docs/report.final.md", "# Title\nbody")

    [record] = DirectoryScanner(recursive=True, compute_hash=True, preview_chars=7).scan(root)

    assert record.id == record_id_for(Path("docs/report.final.md"))
    assert record.name == "report.final"
    assert record.extension == "md"
    assert record.size_bytes == len("# Title\nbody")
    assert record.content is not None
    assert record.content.sha256 == hashlib.sha256(b"# Title\nbody").hexdigest()
    assert record.content.text_preview == "# Title"

    [again] = DirectoryScanner(recursive=True).scan(root)
    assert again.id == record.id
    assert again.content is None


def test_scan_missing_root_returns_nothing(tmp_path: Path) -> None:
    assert DirectoryScanner().scan(tmp_path / "missing") == []
