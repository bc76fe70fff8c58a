"""Tests for the phar module."""

import hashlib
import struct
import zlib

import pytest

from pharout.errors import PharError
from pharout.phar import (
    SIGNATURE_MAGIC,
    STUB_TERMINATOR,
    PharArchive,
    SignatureAlgorithm,
    normalize_entry_path,
    normalize_stub,
    parse_phar,
    read_phar,
)
from pharout.stub import build_stub


@pytest.fixture
def archive_path(tmp_path):
    """Output path for a test archive."""
    return tmp_path / "app.phar"


class TestPharArchive:
    """Tests for PharArchive."""

    def test_alias_defaults_to_file_name(self, archive_path):
        """Test that the alias is the archive's file name."""
        archive = PharArchive(archive_path)

        assert archive.alias == "app.phar"

    def test_buffering_defers_writes(self, archive_path):
        """Test that nothing is written while buffering."""
        archive = PharArchive(archive_path)
        archive.start_buffering()
        archive.add_from_string("a.php", "<?php echo 1;\n", mtime=1)

        assert archive.is_buffering()
        assert not archive_path.exists()

        archive.stop_buffering()

        assert not archive.is_buffering()
        assert archive_path.exists()

    def test_add_after_buffering_writes_immediately(self, archive_path):
        """Test that entries added after buffering stops reach the file."""
        archive = PharArchive(archive_path)
        archive.start_buffering()
        archive.add_from_string("a.php", "a", mtime=1)
        archive.stop_buffering()

        archive.add_from_string("LICENSE", b"\nMIT\n", mtime=2)

        phar = read_phar(archive_path)
        assert list(phar.entries) == ["a.php", "LICENSE"]
        assert phar.entries["LICENSE"].content == b"\nMIT\n"

    def test_read_back(self, archive_path):
        """Test that written entries and stub are read back intact."""
        stub = build_stub("app.phar", "bin/app")
        with PharArchive(archive_path) as archive:
            archive.start_buffering()
            archive.add_from_string("src/A.php", "<?php class A {}\n", mtime=1000)
            archive.add_from_string("bin/app", b"<?php run();\n", mtime=2000, permissions=0o755)
            archive.set_stub(stub)
            archive.stop_buffering()

        phar = read_phar(archive_path)

        assert phar.stub == stub + STUB_TERMINATOR
        assert phar.alias == "app.phar"
        assert phar.api_version == "1.1.1"
        assert phar.signature_algorithm is SignatureAlgorithm.SHA1
        assert list(phar.entries) == ["src/A.php", "bin/app"]
        assert phar.entries["src/A.php"].content == b"<?php class A {}\n"
        assert phar.entries["src/A.php"].mtime == 1000
        assert phar.entries["bin/app"].permissions == 0o755

    def test_duplicate_path_replaces_content(self, archive_path):
        """Test that re-adding a path keeps one entry with the last content."""
        archive = PharArchive(archive_path)
        archive.start_buffering()
        archive.add_from_string("a.php", "first", mtime=1)
        archive.add_from_string("b.php", "b", mtime=1)
        archive.add_from_string("./a.php", "second", mtime=1)
        archive.stop_buffering()

        phar = read_phar(archive_path)

        assert len(archive.entries) == 2
        assert list(phar.entries) == ["a.php", "b.php"]
        assert phar.entries["a.php"].content == b"second"

    def test_closed_archive_rejects_changes(self, archive_path):
        """Test that a closed archive cannot be modified."""
        archive = PharArchive(archive_path)
        archive.close()

        with pytest.raises(PharError, match="closed"):
            archive.add_from_string("a.php", "x")

    def test_context_manager_closes(self, archive_path):
        """Test that leaving a with-block closes the archive."""
        with PharArchive(archive_path) as archive:
            archive.add_from_string("a.php", "x", mtime=1)

        with pytest.raises(PharError, match="closed"):
            archive.add_from_string("b.php", "y")
        assert list(read_phar(archive_path).entries) == ["a.php"]

    def test_stub_without_halt_compiler_rejected(self, archive_path):
        """Test that an invalid stub is refused."""
        archive = PharArchive(archive_path)
        archive.start_buffering()

        with pytest.raises(PharError, match="Illegal stub"):
            archive.set_stub("<?php echo 1;")

    def test_sha256_signature(self, archive_path):
        """Test signing with a different algorithm."""
        archive = PharArchive(archive_path)
        archive.set_signature_algorithm(SignatureAlgorithm.SHA256)
        archive.start_buffering()
        archive.add_from_string("a.php", "x", mtime=1)
        archive.stop_buffering()

        phar = read_phar(archive_path)

        assert phar.signature_algorithm is SignatureAlgorithm.SHA256
        assert len(phar.signature) == 64

    def test_binary_layout(self, archive_path):
        """Test the manifest and signature bytes directly."""
        archive = PharArchive(archive_path, alias="x.phar")
        archive.start_buffering()
        archive.set_stub("<?php __HALT_COMPILER();")
        archive.add_from_string("a", b"hello", mtime=7)

        data = archive.to_bytes()
        stub = b"<?php __HALT_COMPILER(); ?>\r\n"
        assert data.startswith(stub)

        pos = len(stub)
        manifest_len, count = struct.unpack_from("<II", data, pos)
        assert count == 1
        assert data[pos + 8:pos + 10] == b"\x11\x10"
        flags, alias_len = struct.unpack_from("<II", data, pos + 10)
        assert flags == 0x00010000
        assert data[pos + 18:pos + 18 + alias_len] == b"x.phar"

        entry_pos = pos + 18 + alias_len + 4
        name_len = struct.unpack_from("<I", data, entry_pos)[0]
        assert data[entry_pos + 4:entry_pos + 4 + name_len] == b"a"
        size, mtime, stored, crc, perms, meta = struct.unpack_from(
            "<IIIIII", data, entry_pos + 4 + name_len
        )
        assert (size, mtime, stored, perms, meta) == (5, 7, 5, 0o644, 0)
        assert crc == zlib.crc32(b"hello")

        content_end = pos + 4 + manifest_len + 5
        assert data[pos + 4 + manifest_len:content_end] == b"hello"
        assert data[content_end:-8] == hashlib.sha1(data[:content_end]).digest()
        assert struct.unpack("<I", data[-8:-4])[0] == 2
        assert data[-4:] == SIGNATURE_MAGIC

    def test_output_is_deterministic(self, tmp_path):
        """Test that identical inputs produce identical bytes."""
        def build(path):
            archive = PharArchive(path, alias="same.phar")
            archive.start_buffering()
            archive.add_from_string("a.php", "a", mtime=5)
            archive.set_stub(build_stub("same.phar", "a.php"))
            return archive.to_bytes()

        assert build(tmp_path / "one.phar") == build(tmp_path / "two.phar")


class TestParsePhar:
    """Tests for parse_phar verification."""

    @pytest.fixture
    def data(self, archive_path):
        """Bytes of a small valid archive."""
        archive = PharArchive(archive_path)
        archive.start_buffering()
        archive.add_from_string("a.php", b"<?php echo 'a';\n", mtime=1)
        return archive.to_bytes()

    def test_valid_archive(self, data):
        """Test that a valid archive parses."""
        phar = parse_phar(data)

        assert list(phar.entries) == ["a.php"]

    def test_not_a_phar(self):
        """Test that data without a stub is rejected."""
        with pytest.raises(PharError, match="Not a phar"):
            parse_phar(b"just some bytes")

    def test_tampered_content_detected(self, data):
        """Test that modified entry content fails verification."""
        tampered = data.replace(b"echo 'a'", b"echo 'b'")

        with pytest.raises(PharError, match="CRC32 mismatch"):
            parse_phar(tampered)

    def test_tampered_signature_detected(self, data):
        """Test that a modified signature fails verification."""
        index = len(data) - 9
        tampered = data[:index] + bytes([data[index] ^ 0xFF]) + data[index + 1:]

        with pytest.raises(PharError, match="signature mismatch"):
            parse_phar(tampered)

    def test_missing_signature_detected(self, data):
        """Test that a stripped signature is reported."""
        with pytest.raises(PharError, match="Missing phar signature"):
            parse_phar(data[:-28])

    def test_truncated_archive(self, data):
        """Test that truncated archives are rejected."""
        stub_end = data.index(STUB_TERMINATOR.encode("ascii")) + len(STUB_TERMINATOR)

        with pytest.raises(PharError):
            parse_phar(data[:stub_end + 10])


class TestHelpers:
    """Tests for name and stub normalization."""

    def test_normalize_entry_path(self):
        """Test entry name normalization."""
        assert normalize_entry_path("./src/A.php") == "src/A.php"
        assert normalize_entry_path("/bin/app") == "bin/app"
        assert normalize_entry_path("src\\B.php") == "src/B.php"

    def test_empty_entry_path_rejected(self):
        """Test that an empty name is refused."""
        with pytest.raises(PharError):
            normalize_entry_path("./")

    def test_normalize_stub_cuts_after_halt(self):
        """Test that text after the halt statement is dropped."""
        assert normalize_stub("<?php __HALT_COMPILER(); trailing") == (
            "<?php __HALT_COMPILER(); ?>\r\n"
        )
