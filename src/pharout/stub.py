"""
Bootstrap stub generation for pharout archives.

The stub is the PHP program at the head of every phar. It maps the archive under
its alias and requires the entry script from inside the archive; everything after
``__HALT_COMPILER();`` is archive data.
"""

from __future__ import annotations

from typing import Optional

SHEBANG = "#!/usr/bin/env php"
HALT_COMPILER = "__HALT_COMPILER();"


def php_single_quote(value: str) -> str:
    """Escape a value for use inside a PHP single-quoted string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def format_comment(message: Optional[str]) -> str:
    """
    Format a message as a PHP block comment.

    Args:
        message: Free text such as a copyright notice (None or blank for no comment)

    Returns:
        The comment block, or an empty string
    """
    if not message or not message.strip():
        return ""
    body = message.strip().replace("\r\n", "\n").replace("*/", "*\\/")
    body = body.replace("\n", "\n * ")
    return f"/*\n * {body}\n */"


def build_stub(archive_name: str, entry_file: str, message: Optional[str] = None) -> str:
    """
    Build the bootstrap stub for an archive.

    Args:
        archive_name: Alias the archive is mapped under (the output file's base name)
        entry_file: Archive path of the script to run
        message: Optional text embedded as a comment after the open tag

    Returns:
        Stub source ending with the halt-compiler statement
    """
    alias = php_single_quote(archive_name)
    entry = php_single_quote(entry_file)
    lines = [
        SHEBANG,
        "<?php",
        format_comment(message),
        "",
        f"Phar::mapPhar('{alias}');",
        "",
        f"require 'phar://{alias}/{entry}';",
        "",
        HALT_COMPILER,
    ]
    return "\n".join(lines)
