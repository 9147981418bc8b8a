"""Uploaded document type detection.

Only PDF scans are accepted by the extraction backends; everything else is
rejected before any upload happens.
"""
from __future__ import annotations

from enum import Enum
from pathlib import PurePath


class FileType(str, Enum):
    """Supported file types, valued by MIME type."""
    PDF = "application/pdf"


_EXTENSIONS: dict[str, FileType] = {
    ".pdf": FileType.PDF,
}


class UnsupportedFileTypeError(ValueError):
    """Raised when an uploaded file is not a supported document type."""

    def __init__(self, extension: str) -> None:
        self.extension = extension
        super().__init__(f"unsupported file type. file must be PDF not {extension or 'no extension'}")


def file_extension(filename: str) -> str:
    """Lower-cased extension including the dot, or '' when there is none."""
    return PurePath(filename).suffix.lower()


def detect_content_type(filename: str) -> str:
    """Resolve the MIME type of an upload from its file name.

    Args:
        filename: Original filename

    Returns:
        MIME type string

    Raises:
        UnsupportedFileTypeError: If the extension is not supported
    """
    ext = file_extension(filename)
    file_type = _EXTENSIONS.get(ext)
    if file_type is None:
        raise UnsupportedFileTypeError(ext)
    return file_type.value
