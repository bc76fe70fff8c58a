"""
Utility functions for pharout.

Includes encoding detection, lossless source decoding and path normalization
helpers used while assembling archives.
"""

from __future__ import annotations

import codecs
from pathlib import Path

import chardet


def detect_encoding(sample: bytes) -> str:
    """Detect a likely text encoding for a byte sample.

    Prefers UTF-8 and only asks `chardet` when strict UTF-8 decoding fails. This
    avoids UTF-8 sources being misdetected as Latin-1/CP1252.

    Args:
        sample: Leading bytes of the file to inspect.

    Returns:
        A normalized encoding label (e.g., `"utf-8"`, `"utf-8-sig"`, `"windows-1252"`).
    """
    if not sample:
        return "utf-8"

    # BOM markers are the most reliable signal
    if sample.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"

    try:
        sample.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError as exc:
        # A multi-byte sequence cut off by the sample boundary is still UTF-8
        if exc.start >= len(sample) - 3 and exc.reason == "unexpected end of data":
            return "utf-8"

    result = chardet.detect(sample)
    encoding_any = result.get("encoding")

    if not isinstance(encoding_any, str) or not encoding_any:
        return "utf-8"

    encoding = encoding_any.lower()
    if encoding in ("ascii", "utf-8", "utf8"):
        return "utf-8"

    try:
        codecs.lookup(encoding)
    except LookupError:
        return "utf-8"

    # Only byte-transparent, ASCII-compatible codecs survive the decode/encode round trip
    if encoding.startswith("utf-16") or encoding.startswith("utf-32"):
        return "latin-1"

    return encoding


def decode_source(data: bytes, sample_size: int = 8192) -> tuple[str, str]:
    """Decode source bytes as text without losing any bytes.

    Undecodable bytes are kept as lone surrogates so that `encode_source` with the
    returned encoding reproduces them exactly.

    Args:
        data: Raw file content.
        sample_size: Number of leading bytes used for encoding detection.

    Returns:
        A tuple `(content, encoding_used)`.
    """
    encoding = detect_encoding(data[:sample_size])
    return data.decode(encoding, errors="surrogateescape"), encoding


def encode_source(content: str, encoding: str) -> bytes:
    """Encode text produced by `decode_source` back to bytes.

    Args:
        content: Text to encode.
        encoding: Encoding reported by `decode_source`.

    Returns:
        Encoded bytes.
    """
    return content.encode(encoding, errors="surrogateescape")


def normalize_path(path: str) -> str:
    """Normalize a path for archive entry names.

    Args:
        path: Path string that may contain platform-specific separators.

    Returns:
        Normalized path using forward slashes.
    """
    return path.replace("\\", "/")


def relative_archive_path(file_path: Path, root_path: Path) -> str:
    """Compute the archive entry name of a file below the project root.

    Args:
        file_path: Path of the file on disk.
        root_path: Project root directory.

    Returns:
        Root-relative path with forward slashes. Files outside the root keep their
        full path.
    """
    try:
        rel_path = file_path.relative_to(root_path)
    except ValueError:
        return normalize_path(str(file_path))
    return rel_path.as_posix()


def format_size(num_bytes: int) -> str:
    """Format a byte count for console output.

    Args:
        num_bytes: Size in bytes.

    Returns:
        Human-readable size such as `"12.3 KB"`.
    """
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"
