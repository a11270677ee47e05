"""Render a page's comment forest as nested blockquote threads."""

import logging
from datetime import datetime
from typing import List, Optional

from dateutil.parser import isoparse

from models import ConfluenceComment
from .markdown_utils import sanitize_text

logger = logging.getLogger('confluence_downloader.converters.comments')

COMMENTS_HEADING = '## Comments'
INLINE_COMMENTS_HEADING = '### Inline Comments'
FOOTER_COMMENTS_HEADING = '### Footer Comments'


def parse_date(date_string: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp.

    Args:
        date_string: ISO 8601 formatted date string

    Returns:
        Parsed datetime object, or None if parsing fails
    """
    if not date_string:
        return None
    try:
        # Remove milliseconds beyond 6 digits (Python limitation)
        if '.' in date_string:
            head, _, tail = date_string.partition('.')
            digits = len(tail) - len(tail.lstrip('0123456789'))
            if digits > 6:
                date_string = f"{head}.{tail[:6]}{tail[digits:]}"
        return isoparse(date_string)
    except (ValueError, TypeError) as e:
        logger.warning(f"Failed to parse date string '{date_string}': {str(e)}")
        return None


def format_comment_date(date_string: Optional[str]) -> str:
    """Human-readable comment timestamp; falls back to the raw value."""
    parsed = parse_date(date_string)
    if parsed is None:
        return date_string or 'Unknown date'
    return parsed.strftime('%Y-%m-%d %H:%M')


class CommentRenderer:
    """
    Renders comment threads below the page body.

    Inline comment threads come first, then footer threads. Each thread is a
    blockquote; a reply is quoted one level deeper than its parent, so a
    comment at depth ``d`` carries the prefix ``"> " * (d + 1)``.
    """

    def __init__(self, logger: logging.Logger = None):
        """Initialize comment renderer with optional logger."""
        self.logger = logger or logging.getLogger('confluence_downloader.converters.comments')

    def render(self, comments: List[ConfluenceComment], context) -> str:
        """
        Render the comments section.

        Args:
            comments: Root comments of the page
            context: ConverterContext whose dispatch converts comment bodies

        Returns:
            The section, or an empty string when there are no comments
        """
        if not comments:
            return ''

        inline = [comment for comment in comments if comment.is_inline]
        footer = [comment for comment in comments if not comment.is_inline]

        blocks = [COMMENTS_HEADING]
        if inline:
            blocks.append(INLINE_COMMENTS_HEADING)
            for comment in inline:
                if comment.original_text:
                    blocks.append(f'**Commented text:** "{sanitize_text(comment.original_text)}"')
                blocks.append('\n'.join(self.render_thread(comment, context)))
        if footer:
            blocks.append(FOOTER_COMMENTS_HEADING)
            for comment in footer:
                blocks.append('\n'.join(self.render_thread(comment, context)))

        self.logger.debug(f"Rendered {len(inline)} inline and {len(footer)} footer comment threads")
        return '\n\n'.join(blocks) + '\n'

    def render_thread(self, comment: ConfluenceComment, context, depth: int = 0) -> List[str]:
        """Render one comment and its replies as prefixed lines."""
        prefix = '> ' * (depth + 1)
        separator = prefix.rstrip()

        lines = [prefix + self._header(comment), separator]

        body = context.convert_comment_body(comment).strip('\n')
        if body:
            for line in body.split('\n'):
                lines.append(prefix + line if line.strip() else separator)
        else:
            lines.pop()

        for reply in comment.replies:
            lines.append(separator)
            lines.extend(self.render_thread(reply, context, depth + 1))

        return lines

    def _header(self, comment: ConfluenceComment) -> str:
        author = sanitize_text(comment.version.author) if comment.version.author else 'Unknown'
        header = f"**{author}** - {format_comment_date(comment.version.when)}"
        if comment.resolution_status:
            header += f" ({comment.resolution_status})"
        if comment.likes_count:
            header += f" 👍 {comment.likes_count}"
        return header


__all__ = [
    'CommentRenderer',
    'COMMENTS_HEADING',
    'INLINE_COMMENTS_HEADING',
    'FOOTER_COMMENTS_HEADING',
    'format_comment_date',
    'parse_date'
]
