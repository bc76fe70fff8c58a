"""
PHP source stripping for pharout.

Removes comments and collapses whitespace in PHP sources while keeping every line
where it was, so that file/line references in stack traces from the packaged
archive still match the original sources.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from functools import lru_cache
from typing import Optional

from pygments.lexer import Lexer
from pygments.lexers import get_lexer_by_name
from pygments.token import Comment, String, Text, _TokenType
from pygments.util import ClassNotFound

_HORIZONTAL_SPACE = re.compile(r"[ \t]+")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_INDENT = re.compile(r"\n +")
_BARE_CR = re.compile(r"\r(?!\n)")


@lru_cache(maxsize=1)
def get_php_lexer() -> Optional[Lexer]:
    """Return the PHP lexer, or None when no PHP lexer is registered."""
    try:
        # Builtin function highlighting is irrelevant here and costs a large lookup table
        return get_lexer_by_name("php", funcnamehighlighting=False)
    except ClassNotFound:
        return None


def count_line_breaks(text: str) -> int:
    """Count line breaks, treating CRLF, CR and LF each as one break."""
    return len(_LINE_BREAK.findall(text))


def is_comment(token_type: _TokenType) -> bool:
    """Check whether a token is a comment or docblock.

    The `<?php` / `?>` tags are lexed as preprocessor comments and are not
    comments for stripping purposes.
    """
    if token_type in Comment.Preproc:
        return False
    return token_type in Comment or token_type in String.Doc


def is_whitespace(token_type: _TokenType, value: str) -> bool:
    """Check whether a token is plain whitespace between PHP tokens."""
    return token_type in Text and value.isspace()


def normalize_whitespace(text: str, at_line_start: bool = False) -> str:
    """
    Normalize a run of whitespace.

    Spaces and tabs collapse to one space, all line endings become LF and spaces
    after a newline are removed.

    Args:
        text: Whitespace run (comments already replaced by their newlines)
        at_line_start: Whether the output written so far ends with a newline

    Returns:
        The normalized run
    """
    text = _HORIZONTAL_SPACE.sub(" ", text)
    text = _LINE_BREAK.sub("\n", text)
    text = _INDENT.sub("\n", text)
    if at_line_start:
        text = text.lstrip(" ")
    return text


def iter_tokens(lexer: Lexer, source: str) -> Iterator[tuple[_TokenType, str]]:
    """
    Tokenize PHP source without any input preprocessing.

    `Lexer.get_tokens` would rewrite line endings and strip leading/trailing
    newlines; the unprocessed stream reproduces `source` exactly when joined.

    PHP ends single-line comments at a bare CR, the lexer only at LF. The lexer
    therefore reads a copy with bare CRs turned into LFs (same length), and each
    token's value is sliced from `source` at the reported index.
    """
    lexed = _BARE_CR.sub("\n", source)
    for index, token_type, value in lexer.get_tokens_unprocessed(lexed):
        yield token_type, source[index:index + len(value)]


def strip_tokens(tokens: Iterable[tuple[_TokenType, str]]) -> str:
    """
    Rebuild source text from tokens with comments and extra whitespace removed.

    Consecutive comment and whitespace tokens are normalized as one run, which
    keeps the result stable when it is stripped again.

    Args:
        tokens: `(token_type, value)` pairs covering the whole source

    Returns:
        Stripped source text
    """
    output: list[str] = []
    run: list[str] = []
    at_line_start = False

    def flush_run() -> None:
        nonlocal at_line_start
        if not run:
            return
        normalized = normalize_whitespace("".join(run), at_line_start)
        run.clear()
        if normalized:
            output.append(normalized)
            at_line_start = normalized.endswith("\n")

    for token_type, value in tokens:
        if not value:
            continue
        if is_comment(token_type):
            run.append("\n" * count_line_breaks(value))
        elif is_whitespace(token_type, value):
            run.append(value)
        else:
            flush_run()
            output.append(value)
            at_line_start = value.endswith("\n")

    flush_run()
    return "".join(output)


def strip_whitespace(source: str) -> str:
    """
    Remove comments and whitespace from PHP source while preserving line numbers.

    Strings, heredocs and inline HTML are copied verbatim. Without a PHP lexer the
    source is returned unchanged.

    Args:
        source: PHP source text

    Returns:
        The PHP source with comments and redundant whitespace removed
    """
    lexer = get_php_lexer()
    if lexer is None:
        return source
    return strip_tokens(iter_tokens(lexer, source))
