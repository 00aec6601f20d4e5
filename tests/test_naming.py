"""Tests for name sanitization and collision suffixes."""

from __future__ import annotations

from datetime import datetime

import pytest

from sorty.organization.naming import (
    MAX_NAME_BYTES,
    identifier_token,
    sanitize_component,
    split_name,
    suffix_candidates,
    timestamp_label,
    truncate_name,
    with_extension,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Invoices", "Invoices"),
        ("a/b\\c", "a_b_c"),
        ("tab\there", "tab_here"),
        ("  spaced   out  ", "spaced out"),
        ("..", "_"),
        (".", "_"),
        ("", "Untitled"),
        ("nul\x00byte", "nul_byte"),
    ],
)
def test_sanitize_component(value: str, expected: str) -> None:
    assert sanitize_component(value) == expected


def test_sanitize_component_caps_length_in_bytes() -> None:
    name = "é" * 200 + ".pdf"

    sanitized = sanitize_component(name)

    assert len(sanitized.encode("utf-8")) <= MAX_NAME_BYTES
    assert sanitized.endswith(".pdf")


def test_split_name_keeps_leading_dot_in_stem() -> None:
    assert split_name(".bashrc") == (".bashrc", "")
    assert split_name("archive.tar.gz") == ("archive.tar", "gz")
    assert split_name("trailing.") == ("trailing.", "")


def test_with_extension_inherits_original() -> None:
    assert with_extension("2024-Invoice", "pdf") == "2024-Invoice.pdf"
    assert with_extension("2024-Invoice.pdf", "pdf") == "2024-Invoice.pdf"
    assert with_extension("notes", "") == "notes"


def test_truncate_name_keeps_extension() -> None:
    name = "x" * 300 + ".txt"

    truncated = truncate_name(name)

    assert len(truncated.encode("utf-8")) == MAX_NAME_BYTES
    assert truncated.endswith(".txt")


def test_suffix_sequence_is_deterministic() -> None:
    label = timestamp_label(datetime(2024, 1, 2, 3, 4, 5))

    names = list(suffix_candidates("a.pdf", label, "f1", max_attempts=3))

    assert names == [
        "a_20240102-030405.pdf",
        "a_20240102-030405_f1.pdf",
        "a_20240102-030405_f1-2.pdf",
        "a_20240102-030405_f1-3.pdf",
    ]


def test_suffix_sequence_without_identifier() -> None:
    names = list(suffix_candidates("Docs", "T", max_attempts=3))

    assert names == ["Docs_T", "Docs_T-2", "Docs_T-3"]


def test_suffix_survives_length_cap() -> None:
    name = "y" * 260 + ".md"

    candidates = list(suffix_candidates(name, "LABEL", "id", max_attempts=2))

    assert all(len(candidate.encode("utf-8")) <= MAX_NAME_BYTES for candidate in candidates)
    assert candidates[-1].endswith("_LABEL_id-2.md")


def test_timestamp_label_strips_separators() -> None:
    assert timestamp_label(datetime(2024, 5, 6), "%Y/%m/%d") == "2024_05_06"


@pytest.mark.parametrize("identifier", ["/tmp/root/a.txt", "..", "x" * 40, "a b"])
def test_unsafe_identifiers_become_digests(identifier: str) -> None:
    token = identifier_token(identifier)

    assert len(token) == 12
    assert all(char in "0123456789abcdef" for char in token)
    assert identifier_token(identifier) == token


def test_suffixes_never_contain_separators() -> None:
    for name in suffix_candidates("a.txt", "T", "/abs/path/a.txt", max_attempts=4):
        assert "/" not in name
        assert name.endswith(".txt")


def test_safe_identifiers_are_kept() -> None:
    assert identifier_token("3f2a9c1b0d4e") == "3f2a9c1b0d4e"
