# paths.py
"""
Remote path construction.

Every segment that reaches the drive goes through sanitize_segment, so a
path is always lower-case [a-z0-9._-] pieces joined by single slashes.
Layout: <root>/<subpath...>/<owner>/<YYYY>/<MMDD>/<serial>/<file name>
"""
import re
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator

FALLBACK_FILE_NAME = "file.bin"

_UNSAFE_RUN = re.compile(r"[^a-z0-9._-]+")
_HYPHEN_RUN = re.compile(r"-{2,}")
_SEPARATORS = re.compile(r"[/\\]+")


def sanitize_segment(value) -> str:
    """
    Normalize one path component. Returns "" when nothing usable is left,
    including for "." and ".." style segments.
    """
    text = str(value or "").lower()
    text = _UNSAFE_RUN.sub("-", text)
    text = _HYPHEN_RUN.sub("-", text).strip("-")
    if not text.strip("."):
        return ""
    return text


def split_segments(value) -> List[str]:
    """Split a slash path (either slash style) into sanitized, non-empty segments."""
    if not value:
        return []
    segments = (sanitize_segment(part) for part in _SEPARATORS.split(str(value)))
    return [s for s in segments if s]


def sanitize_path(value) -> str:
    return "/".join(split_segments(value))


def join_segments(*parts) -> List[str]:
    out: List[str] = []
    for part in parts:
        out.extend(split_segments(part))
    return out


def default_file_name(serial: Optional[str] = None, extension: Optional[str] = None) -> str:
    """
    Name used when the caller sent none: ND-<serial>.<extension>, or file.bin
    when either piece is unknown.
    """
    if serial and extension:
        return f"ND-{serial}.{extension.lstrip('.')}"
    return FALLBACK_FILE_NAME


def unique_name(name: str, taken) -> str:
    """First of name, stem-2.ext, stem-3.ext, ... not in taken."""
    if name not in taken:
        return name
    dot = name.rfind(".")
    stem, ext = (name[:dot], name[dot:]) if dot > 0 else (name, "")
    n = 2
    while True:
        candidate = sanitize_segment(f"{stem}-{n}{ext}")
        if candidate not in taken:
            return candidate
        n += 1


class TargetPath(BaseModel):
    model_config = ConfigDict(frozen=True)

    segments: Tuple[str, ...]

    @field_validator("segments")
    @classmethod
    def _non_empty(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value:
            raise ValueError("target path needs at least a file name")
        if any(not s for s in value):
            raise ValueError("target path segments must be non-empty")
        return value

    @classmethod
    def in_folder(cls, folder: Iterable[str], file_name: str, fallback: str = FALLBACK_FILE_NAME) -> "TargetPath":
        name = sanitize_segment(file_name) or sanitize_segment(fallback) or FALLBACK_FILE_NAME
        return cls(segments=tuple(folder) + (name,))

    @property
    def folder(self) -> Tuple[str, ...]:
        return self.segments[:-1]

    @property
    def folder_path(self) -> str:
        return "/".join(self.folder)

    @property
    def name(self) -> str:
        return self.segments[-1]

    def __str__(self) -> str:
        return "/".join(self.segments)


def build_folder(
    root: str,
    owner: Optional[str],
    when: datetime,
    serial: Optional[str],
    subpath: Optional[str] = None,
) -> List[str]:
    return join_segments(
        root,
        subpath,
        owner,
        f"{when.year:04d}",
        f"{when.month:02d}{when.day:02d}",
        serial,
    )


def build_target_path(
    root: str,
    owner: Optional[str],
    when: datetime,
    serial: Optional[str],
    file_name: Optional[str],
    subpath: Optional[str] = None,
    extension: Optional[str] = None,
) -> TargetPath:
    folder = build_folder(root, owner, when, serial, subpath)
    return TargetPath.in_folder(folder, file_name or "", fallback=default_file_name(serial, extension))
