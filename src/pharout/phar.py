"""
Phar archive reading and writing.

Implements the native phar container used by PHP's ``Phar`` extension:

- a PHP stub ending in ``__HALT_COMPILER(); ?>``
- a little-endian manifest (alias, entry names, sizes, timestamps, CRC32s)
- the uncompressed entry contents, in manifest order
- a trailing signature (hash, hash type, ``GBMB`` magic)

Writes are buffered in memory like ``Phar::startBuffering()``: nothing reaches the
disk until buffering stops, and entries added afterwards are written immediately.
"""

from __future__ import annotations

import hashlib
import re
import struct
import time
import zlib
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import Optional, Union

from .errors import PharError
from .stub import HALT_COMPILER
from .utils import normalize_path

# Manifest API version 1.1.1
API_VERSION = b"\x11\x10"

GLOBAL_FLAG_SIGNATURE = 0x00010000
ENTRY_PERMISSION_MASK = 0x000001FF
ENTRY_COMPRESSION_MASK = 0x0000F000
DEFAULT_PERMISSIONS = 0o644

SIGNATURE_MAGIC = b"GBMB"
STUB_TERMINATOR = " ?>\r\n"
DEFAULT_STUB = f"<?php {HALT_COMPILER}"

_HALT_TOKEN = re.compile(re.escape(HALT_COMPILER.encode("ascii")), re.IGNORECASE)
_HALT_TERMINATOR = re.compile(rb"(?: \?>)?(?:\r\n|\n)?")


class SignatureAlgorithm(IntEnum):
    """Signature hash types understood by the phar extension."""

    MD5 = 0x0001
    SHA1 = 0x0002
    SHA256 = 0x0003
    SHA512 = 0x0004

    @property
    def hash_name(self) -> str:
        """Name of the matching `hashlib` constructor."""
        return self.name.lower()

    def digest(self, data: bytes) -> bytes:
        """Hash archive bytes with this algorithm."""
        return hashlib.new(self.hash_name, data).digest()


@dataclass
class PharEntry:
    """A file stored in a phar archive.

    Attributes:
        path: Archive-relative path using forward slashes.
        content: Uncompressed file content.
        mtime: Modification time (Unix seconds) recorded in the manifest.
        permissions: Unix permission bits recorded in the manifest.
    """

    path: str
    content: bytes
    mtime: int = 0
    permissions: int = DEFAULT_PERMISSIONS

    @property
    def size(self) -> int:
        """Uncompressed size in bytes."""
        return len(self.content)

    @property
    def crc32(self) -> int:
        """CRC32 of the uncompressed content."""
        return zlib.crc32(self.content) & 0xFFFFFFFF


@dataclass
class PharFile:
    """A phar archive read back from disk.

    Attributes:
        stub: Stub text including the halt-compiler terminator.
        alias: Alias stored in the manifest.
        api_version: Manifest API version (e.g., `"1.1.1"`).
        signature_algorithm: Signature hash type, or None for unsigned archives.
        signature: Hex digest of the stored signature ("" when unsigned).
        entries: Entries keyed by archive path, in manifest order.
    """

    stub: str
    alias: str
    api_version: str
    signature_algorithm: Optional[SignatureAlgorithm] = None
    signature: str = ""
    entries: dict[str, PharEntry] = field(default_factory=dict)


def normalize_entry_path(path: str) -> str:
    """
    Normalize an archive entry name.

    Raises:
        PharError: If the normalized name is empty.
    """
    name = normalize_path(path)
    while name.startswith("./"):
        name = name[2:]
    name = name.lstrip("/")
    if not name:
        raise PharError(f"Invalid archive entry name: {path!r}")
    return name


def normalize_stub(stub: str) -> str:
    """
    Cut a stub after its halt-compiler statement and append the stub terminator.

    Raises:
        PharError: If the stub has no `__HALT_COMPILER();` statement.
    """
    match = _HALT_TOKEN.search(stub.encode("utf-8"))
    if match is None:
        raise PharError(f"Illegal stub: no {HALT_COMPILER} found")
    head = stub.encode("utf-8")[: match.end()].decode("utf-8")
    return head + STUB_TERMINATOR


class PharArchive:
    """
    Writer for a single phar archive.

    Entries are kept in an ordered mapping; adding a path twice replaces the
    content and keeps the first position.
    """

    def __init__(self, path: Path, alias: Optional[str] = None):
        """
        Initialize the archive.

        Args:
            path: Output file path
            alias: Alias recorded in the manifest (defaults to the file name)
        """
        self.path = Path(path)
        self.alias = alias if alias is not None else self.path.name
        self.signature_algorithm = SignatureAlgorithm.SHA1
        self._stub = normalize_stub(DEFAULT_STUB)
        self._entries: dict[str, PharEntry] = {}
        self._buffering = False
        self._closed = False

    def __enter__(self) -> PharArchive:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def entries(self) -> list[PharEntry]:
        """Entries in manifest order."""
        return list(self._entries.values())

    @property
    def stub(self) -> str:
        """Stub text as it will be written."""
        return self._stub

    def set_signature_algorithm(self, algorithm: SignatureAlgorithm) -> None:
        """Select the hash used to sign the archive."""
        self._check_open()
        self.signature_algorithm = SignatureAlgorithm(algorithm)

    def start_buffering(self) -> None:
        """Defer writes until `stop_buffering` is called."""
        self._check_open()
        self._buffering = True

    def is_buffering(self) -> bool:
        """Return whether writes are currently deferred."""
        return self._buffering

    def stop_buffering(self) -> None:
        """Stop deferring writes and write the archive to disk."""
        self._check_open()
        self._buffering = False
        self.flush()

    def set_stub(self, stub: str) -> None:
        """
        Set the bootstrap stub.

        Raises:
            PharError: If the stub has no `__HALT_COMPILER();` statement.
        """
        self._check_open()
        self._stub = normalize_stub(stub)
        if not self._buffering:
            self.flush()

    def add_from_string(
        self,
        path: str,
        content: Union[bytes, str],
        mtime: Optional[int] = None,
        permissions: int = DEFAULT_PERMISSIONS,
    ) -> PharEntry:
        """
        Add (or replace) an entry.

        Args:
            path: Archive-relative entry name
            content: Entry content; text is encoded as UTF-8
            mtime: Timestamp for the manifest (defaults to now)
            permissions: Unix permission bits for the manifest

        Returns:
            The stored entry
        """
        self._check_open()
        if isinstance(content, str):
            content = content.encode("utf-8")
        entry = PharEntry(
            path=normalize_entry_path(path),
            content=content,
            mtime=int(time.time()) if mtime is None else int(mtime),
            permissions=permissions & ENTRY_PERMISSION_MASK,
        )
        self._entries[entry.path] = entry
        if not self._buffering:
            self.flush()
        return entry

    def to_bytes(self) -> bytes:
        """Serialize the archive, signature included."""
        data = b"".join(
            [
                self._stub.encode("utf-8"),
                self._build_manifest(),
                *(entry.content for entry in self._entries.values()),
            ]
        )
        signature = self.signature_algorithm.digest(data)
        return data + signature + struct.pack("<I", self.signature_algorithm) + SIGNATURE_MAGIC

    def flush(self) -> None:
        """Write the archive to disk, replacing the file."""
        self._check_open()
        self.path.write_bytes(self.to_bytes())

    def close(self) -> None:
        """Release the archive; further modifications raise `PharError`."""
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise PharError(f"Archive is closed: {self.path}")

    def _build_manifest(self) -> bytes:
        alias = self.alias.encode("utf-8")
        parts = [
            struct.pack("<I", len(self._entries)),
            API_VERSION,
            struct.pack("<I", GLOBAL_FLAG_SIGNATURE),
            struct.pack("<I", len(alias)),
            alias,
            struct.pack("<I", 0),  # global metadata
        ]
        for entry in self._entries.values():
            name = entry.path.encode("utf-8")
            parts.append(struct.pack("<I", len(name)))
            parts.append(name)
            parts.append(
                struct.pack(
                    "<IIIIII",
                    entry.size,
                    entry.mtime,
                    entry.size,  # stored size equals size, nothing is compressed
                    entry.crc32,
                    entry.permissions,
                    0,  # entry metadata
                )
            )
        manifest = b"".join(parts)
        return struct.pack("<I", len(manifest)) + manifest


class _ByteReader:
    """Bounds-checked cursor over archive bytes."""

    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def take(self, size: int) -> bytes:
        end = self.pos + size
        if size < 0 or end > len(self.data):
            raise PharError("Truncated phar archive")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def unpack(self, fmt: str) -> tuple[int, ...]:
        return struct.unpack(fmt, self.take(struct.calcsize(fmt)))

    def uint32(self) -> int:
        return self.unpack("<I")[0]


def parse_phar(data: bytes) -> PharFile:
    """
    Parse a phar archive and verify its checksums.

    Args:
        data: Complete archive bytes

    Returns:
        The parsed archive

    Raises:
        PharError: If the archive is malformed, uses compression, or fails CRC or
            signature verification.
    """
    match = _HALT_TOKEN.search(data)
    if match is None:
        raise PharError(f"Not a phar archive: no {HALT_COMPILER} found")
    terminator = _HALT_TERMINATOR.match(data, match.end())
    stub_end = terminator.end() if terminator else match.end()

    reader = _ByteReader(data, stub_end)
    manifest_len = reader.uint32()
    manifest_end = reader.pos + manifest_len
    if manifest_end > len(data):
        raise PharError("Truncated phar manifest")

    count = reader.uint32()
    version = reader.take(2)
    flags = reader.uint32()
    alias = reader.take(reader.uint32()).decode("utf-8")
    reader.take(reader.uint32())  # global metadata

    records = []
    for _ in range(count):
        name = reader.take(reader.uint32()).decode("utf-8")
        size, mtime, stored_size, crc, entry_flags, meta_len = reader.unpack("<IIIIII")
        reader.take(meta_len)
        if entry_flags & ENTRY_COMPRESSION_MASK:
            raise PharError(f"Compressed entries are not supported: {name}")
        if stored_size != size:
            raise PharError(f"Size mismatch for uncompressed entry: {name}")
        records.append((name, size, mtime, crc, entry_flags))

    if reader.pos != manifest_end:
        raise PharError("Phar manifest length does not match its contents")

    result = PharFile(
        stub=data[:stub_end].decode("utf-8", errors="replace"),
        alias=alias,
        api_version=f"{version[0] >> 4}.{version[0] & 0x0F}.{version[1] >> 4}",
    )
    for name, size, mtime, crc, entry_flags in records:
        content = reader.take(size)
        if zlib.crc32(content) & 0xFFFFFFFF != crc:
            raise PharError(f"CRC32 mismatch for entry: {name}")
        result.entries[name] = PharEntry(
            path=name,
            content=content,
            mtime=mtime,
            permissions=entry_flags & ENTRY_PERMISSION_MASK,
        )

    if flags & GLOBAL_FLAG_SIGNATURE:
        _verify_signature(data, reader.pos, result)
    elif reader.pos != len(data):
        raise PharError("Unexpected data after phar entries")

    return result


def _verify_signature(data: bytes, content_end: int, result: PharFile) -> None:
    if len(data) < content_end + 8 or data[-4:] != SIGNATURE_MAGIC:
        raise PharError("Missing phar signature")
    sig_type = struct.unpack("<I", data[-8:-4])[0]
    try:
        algorithm = SignatureAlgorithm(sig_type)
    except ValueError:
        raise PharError(f"Unsupported phar signature type: {sig_type:#x}") from None

    signature = data[content_end:-8]
    if signature != algorithm.digest(data[:content_end]):
        raise PharError(f"{algorithm.name} signature mismatch")

    result.signature_algorithm = algorithm
    result.signature = signature.hex()


def read_phar(path: Path) -> PharFile:
    """
    Read and verify a phar archive from disk.

    Args:
        path: Archive file path

    Returns:
        The parsed archive
    """
    return parse_phar(Path(path).read_bytes())
