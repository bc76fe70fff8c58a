"""Tests for the stub module."""

from pharout.stub import HALT_COMPILER, build_stub, format_comment, php_single_quote


class TestBuildStub:
    """Tests for build_stub."""

    def test_stub_without_message(self):
        """Test the exact stub layout."""
        stub = build_stub("app.phar", "bin/app")

        assert stub == (
            "#!/usr/bin/env php\n"
            "<?php\n"
            "\n"
            "\n"
            "Phar::mapPhar('app.phar');\n"
            "\n"
            "require 'phar://app.phar/bin/app';\n"
            "\n"
            "__HALT_COMPILER();"
        )

    def test_stub_with_message(self):
        """Test that the message becomes a comment block after the open tag."""
        stub = build_stub("tool.phar", "bin/tool", "Copyright (c) Example\nAll rights reserved.\n")
        lines = stub.split("\n")

        assert lines[0] == "#!/usr/bin/env php"
        assert lines[1] == "<?php"
        assert lines[2:6] == [
            "/*",
            " * Copyright (c) Example",
            " * All rights reserved.",
            " */",
        ]
        assert "Phar::mapPhar('tool.phar');" in lines
        assert "require 'phar://tool.phar/bin/tool';" in lines

    def test_halt_compiler_is_last(self):
        """Test that nothing follows the halt-compiler statement."""
        stub = build_stub("app.phar", "bin/app", "message")

        assert stub.endswith(HALT_COMPILER)
        assert stub.count(HALT_COMPILER) == 1

    def test_alias_binding_precedes_require(self):
        """Test that the archive is mapped before the entry file is required."""
        stub = build_stub("app.phar", "bin/app")

        assert stub.index("Phar::mapPhar") < stub.index("require 'phar://")

    def test_names_are_escaped(self):
        """Test that quotes in names cannot break the PHP string literals."""
        stub = build_stub("it's.phar", "bin/app")

        assert "Phar::mapPhar('it\\'s.phar');" in stub


class TestFormatComment:
    """Tests for format_comment."""

    def test_empty_message(self):
        """Test that blank messages produce no comment."""
        assert format_comment(None) == ""
        assert format_comment("") == ""
        assert format_comment("  \n ") == ""

    def test_message_is_trimmed(self):
        """Test that surrounding whitespace is dropped."""
        assert format_comment("\n  hello  \n") == "/*\n * hello\n */"

    def test_comment_terminator_is_escaped(self):
        """Test that a message cannot close the comment early."""
        assert format_comment("a */ b") == "/*\n * a *\\/ b\n */"


def test_php_single_quote():
    """Test escaping for single-quoted PHP strings."""
    assert php_single_quote("plain") == "plain"
    assert php_single_quote("it's") == "it\\'s"
    assert php_single_quote("a\\b") == "a\\\\b"
