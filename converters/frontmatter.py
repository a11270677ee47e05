"""YAML frontmatter for converted pages."""

import re
from typing import Any, List, Optional, Tuple

from models import ConfluenceDocument

_NAMED_ESCAPES = {'\\': '\\\\', '"': '\\"', '\n': '\\n', '\r': '\\r', '\t': '\\t'}
# Characters YAML does not allow raw inside a double-quoted scalar.
_YAML_ESCAPE = re.compile(r'[\\"\x00-\x1f\x7f]')


def _escape_char(match) -> str:
    char = match.group(0)
    return _NAMED_ESCAPES.get(char) or f"\\x{ord(char):02x}"


def yaml_quote(value: str) -> str:
    """Double-quote a string for YAML, escaping backslashes, quotes and control characters."""
    return f'"{_YAML_ESCAPE.sub(_escape_char, value)}"'


def format_value(value: Any) -> str:
    """Format a scalar or list as an inline YAML value."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return '[' + ', '.join(format_value(item) for item in value) + ']'
    return yaml_quote(str(value))


def canonical_url(document: ConfluenceDocument, base_url: Optional[str] = None) -> Optional[str]:
    """Absolute web UI link of a document, or the relative link when no base is known."""
    if not document.webui:
        return None
    if document.webui.startswith(('http://', 'https://')):
        return document.webui
    base = document.base_url or base_url
    if not base:
        return document.webui
    return base.rstrip('/') + '/' + document.webui.lstrip('/')


def render_frontmatter(fields: List[Tuple[str, Any]]) -> str:
    """Render ``key: value`` pairs between ``---`` fences, skipping None values."""
    lines = ['---']
    for key, value in fields:
        if value is None:
            continue
        lines.append(f"{key}: {format_value(value)}")
    lines.append('---')
    return '\n'.join(lines) + '\n\n'


def build_frontmatter(document: ConfluenceDocument, base_url: Optional[str] = None) -> str:
    """
    Build the frontmatter block of a converted page.

    Args:
        document: Source document
        base_url: Site URL used when the document carries no link base

    Returns:
        Frontmatter block followed by a blank line
    """
    return render_frontmatter([
        ('title', document.title),
        ('id', document.id),
        ('status', document.status or None),
        ('url', canonical_url(document, base_url)),
        ('space', document.space_key or None),
        ('spaceName', document.space_name or None),
        ('path', ' > '.join(document.path) if document.path else None),
        ('labels', list(document.labels) if document.labels else None),
        ('version', document.version.number),
        ('lastUpdatedBy', document.version.author),
        ('lastUpdated', document.version.when),
        ('likes', document.likes_count or None),
        ('likedBy', list(document.liked_by) if document.liked_by else None),
    ])


def build_minimal_frontmatter(document: Any) -> str:
    """Frontmatter with only title and id, tolerant of malformed documents."""
    title = getattr(document, 'title', None)
    doc_id = getattr(document, 'id', None)
    return render_frontmatter([
        ('title', '' if title is None else str(title)),
        ('id', '' if doc_id is None else str(doc_id)),
    ])


__all__ = [
    'build_frontmatter',
    'build_minimal_frontmatter',
    'canonical_url',
    'format_value',
    'render_frontmatter',
    'yaml_quote'
]
