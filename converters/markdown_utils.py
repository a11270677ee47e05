"""Small Markdown helpers shared by the ADF converter components."""

import re
from typing import Optional

# Order matters only for the backslash, which must be escaped first.
MARKDOWN_SPECIAL_CHARS = '\\*_`[]()#+-.!'

_SANITIZE_TABLE = str.maketrans({char: '\\' + char for char in MARKDOWN_SPECIAL_CHARS})
_BACKTICK_RUN = re.compile(r'`+')


def sanitize_text(text: str) -> str:
    """
    Escape every Markdown-significant character with a backslash.

    Apply exactly once to raw text. The function is not idempotent: running
    it over its own output escapes the inserted backslashes again.
    """
    return text.translate(_SANITIZE_TABLE)


def longest_backtick_run(text: str) -> int:
    """Length of the longest run of backticks in ``text``."""
    return max((len(run) for run in _BACKTICK_RUN.findall(text)), default=0)


def code_fence(content: str, language: Optional[str] = None) -> str:
    """Wrap ``content`` in a fenced code block that its own backticks cannot close."""
    fence = '`' * max(3, longest_backtick_run(content) + 1)
    return f"{fence}{language or ''}\n{content}\n{fence}"


def quote_lines(text: str, prefix: str = '> ') -> str:
    """Prefix every line with a blockquote marker, keeping empty lines inside the quote."""
    bare = prefix.rstrip()
    return '\n'.join(prefix + line if line.strip() else bare for line in text.split('\n'))


def collapse_blank_lines(markdown: str) -> str:
    """Collapse runs of blank lines outside fenced code blocks to a single blank line."""
    result = []
    fence = None
    blank_run = 0

    for line in markdown.split('\n'):
        stripped = line.strip()
        if fence is None:
            match = re.match(r'^(`{3,})', stripped)
            if match:
                fence = match.group(1)
        elif stripped.startswith(fence) and stripped.strip('`') == '':
            fence = None
            blank_run = 0
            result.append(line)
            continue
        elif fence is not None:
            result.append(line)
            continue

        if not stripped and fence is None:
            blank_run += 1
            if blank_run > 1:
                continue
        else:
            blank_run = 0
        result.append(line)

    return '\n'.join(result)


__all__ = [
    'MARKDOWN_SPECIAL_CHARS',
    'sanitize_text',
    'longest_backtick_run',
    'code_fence',
    'quote_lines',
    'collapse_blank_lines'
]
