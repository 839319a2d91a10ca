from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from paths import (
    TargetPath,
    build_folder,
    build_target_path,
    default_file_name,
    sanitize_path,
    sanitize_segment,
    unique_name,
)

WHEN = datetime(2025, 3, 7, 15, 30, tzinfo=timezone.utc)

SAMPLES = [
    "Root",
    "a b",
    "café.pdf",
    "Jane.Doe+shop@Example.COM",
    "  leading and trailing  ",
    "--already--hyphenated--",
    "ND-GUEST-0000.pdf",
    "報價單.xlsx",
    "a...b",
    "-.-",
    "",
]


def test_sanitizes_mixed_path():
    assert sanitize_path("Root/a b/café.pdf") == "root/a-b/caf-.pdf"


@pytest.mark.parametrize("raw", SAMPLES)
def test_sanitize_is_idempotent(raw):
    once = sanitize_segment(raw)
    assert sanitize_segment(once) == once


@pytest.mark.parametrize("raw", SAMPLES)
def test_sanitize_leaves_no_stray_hyphens(raw):
    out = sanitize_segment(raw)
    assert "--" not in out
    assert not out.startswith("-")
    assert not out.endswith("-")


def test_sanitize_examples():
    assert sanitize_segment("Jane.Doe+shop@Example.COM") == "jane.doe-shop-example.com"
    assert sanitize_segment("  leading and trailing  ") == "leading-and-trailing"
    assert sanitize_segment("報價單.xlsx") == ".xlsx"


def test_dot_segments_are_dropped():
    assert sanitize_segment(".") == ""
    assert sanitize_segment("..") == ""
    assert sanitize_path("../etc//passwd") == "etc/passwd"


def test_sanitize_path_never_doubles_separators():
    out = sanitize_path("//Shop\\\\Uploads///2025//")
    assert out == "shop/uploads/2025"
    assert "//" not in out


def test_build_folder_order():
    folder = build_folder("QuoteNeuma", "jane@example.com", WHEN, "SO-1001")
    assert folder == ["quoteneuma", "jane-example.com", "2025", "0307", "so-1001"]


def test_root_and_subpath_concatenate_cleanly():
    folder = build_folder("Shop/Uploads/", "jane", WHEN, "1", subpath="/checkout/eu/")
    assert "/".join(folder) == "shop/uploads/checkout/eu/jane/2025/0307/1"


def test_falsy_segments_are_dropped():
    folder = build_folder("Root", None, WHEN, "", subpath=None)
    assert folder == ["root", "2025", "0307"]


def test_build_target_path_ends_with_file_name():
    target = build_target_path("Root", "Jane", WHEN, "SO 7", "Quote Final.PDF")
    assert str(target) == "root/jane/2025/0307/so-7/quote-final.pdf"
    assert target.name == "quote-final.pdf"
    assert target.folder_path == "root/jane/2025/0307/so-7"


def test_missing_file_name_uses_serial_default():
    target = build_target_path("Root", "jane", WHEN, "SO-1", None, extension="pdf")
    assert target.name == "nd-so-1.pdf"


def test_missing_file_name_without_serial_falls_back_to_file_bin():
    target = build_target_path("Root", "jane", WHEN, None, "")
    assert target.name == "file.bin"


def test_default_file_name_policy():
    assert default_file_name("GUEST-0000", "xlsx") == "ND-GUEST-0000.xlsx"
    assert default_file_name("GUEST-0000", ".pdf") == "ND-GUEST-0000.pdf"
    assert default_file_name(None, "pdf") == "file.bin"
    assert default_file_name("S1", None) == "file.bin"


def test_unusable_file_name_falls_back():
    target = TargetPath.in_folder(["root"], "***", fallback="ND-1.pdf")
    assert str(target) == "root/nd-1.pdf"


def test_target_path_rejects_empty_segments():
    with pytest.raises(ValidationError):
        TargetPath(segments=("root", "", "a.pdf"))
    with pytest.raises(ValidationError):
        TargetPath(segments=())


def test_unique_name_keeps_free_name():
    assert unique_name("a.pdf", set()) == "a.pdf"
    assert unique_name("a.pdf", {"b.pdf"}) == "a.pdf"


def test_unique_name_numbers_before_extension():
    assert unique_name("a.pdf", {"a.pdf"}) == "a-2.pdf"
    assert unique_name("a.pdf", {"a.pdf", "a-2.pdf"}) == "a-3.pdf"
    assert unique_name("archive.tar.gz", {"archive.tar.gz"}) == "archive.tar-2.gz"


def test_unique_name_without_extension():
    assert unique_name("readme", {"readme"}) == "readme-2"
    assert unique_name(".pdf", {".pdf"}) == ".pdf-2"
