"""ADF text mark handler: wraps inline text with Markdown or inline HTML."""

import logging
from typing import Any, Dict, List, Optional

from .markdown_utils import longest_backtick_run

logger = logging.getLogger('confluence_downloader.converters.marks')

# Lower values are applied first and therefore end up innermost.
MARK_PRIORITY = {
    'code': 1,
    'link': 2,
    'em': 3,
    'strong': 4,
    'strike': 5,
    'underline': 6,
    'textColor': 7,
    'subsup': 8,
}
UNKNOWN_MARK_PRIORITY = 100


def mark_priority(mark: Dict[str, Any]) -> int:
    """Sort key of a mark; marks without a fixed priority sort last."""
    return MARK_PRIORITY.get(mark.get('type'), UNKNOWN_MARK_PRIORITY)


class MarkHandler:
    """Applies ADF marks to already-escaped text in a deterministic order."""

    def __init__(self, logger: logging.Logger = None):
        """Initialize mark handler with optional logger."""
        self.logger = logger or logging.getLogger('confluence_downloader.converters.marks')

        # Register mark converters
        self.mark_converters = {
            'code': self._convert_code,
            'link': self._convert_link,
            'em': self._convert_em,
            'strong': self._convert_strong,
            'strike': self._convert_strike,
            'underline': self._convert_underline,
            'textColor': self._convert_text_color,
            'subsup': self._convert_subsup,
            'backgroundColor': self._convert_background_color,
            'alignment': self._convert_alignment,
            'indentation': self._convert_indentation,
        }

    def apply(self, text: str, marks: Optional[List[Dict[str, Any]]]) -> str:
        """
        Wrap text with every mark, lowest priority first.

        Python's sort is stable, so marks sharing a priority keep their
        payload order.

        Args:
            text: Sanitized text or rendered block content
            marks: The node's ``marks`` array

        Returns:
            Decorated text
        """
        if not text or not marks:
            return text

        for mark in sorted((m for m in marks if isinstance(m, dict)), key=mark_priority):
            mark_type = mark.get('type')
            converter = self.mark_converters.get(mark_type)
            if converter is None:
                self.logger.warning(f"Unsupported mark type: {mark_type}")
                continue
            text = converter(text, mark.get('attrs') or {})

        return text

    def _convert_code(self, text: str, attrs: Dict[str, Any]) -> str:
        ticks = '`' * (longest_backtick_run(text) + 1)
        if text.startswith('`') or text.endswith('`'):
            return f"{ticks} {text} {ticks}"
        return f"{ticks}{text}{ticks}"

    def _convert_link(self, text: str, attrs: Dict[str, Any]) -> str:
        href = attrs.get('href') or ''
        if not href:
            return text
        if any(char in href for char in ' ()<>'):
            href = f"<{href.replace('<', '%3C').replace('>', '%3E')}>"
        title = attrs.get('title')
        if title:
            escaped_title = str(title).replace('"', '\\"')
            return f'[{text}]({href} "{escaped_title}")'
        return f"[{text}]({href})"

    def _convert_em(self, text: str, attrs: Dict[str, Any]) -> str:
        return f"_{text}_"

    def _convert_strong(self, text: str, attrs: Dict[str, Any]) -> str:
        return f"**{text}**"

    def _convert_strike(self, text: str, attrs: Dict[str, Any]) -> str:
        return f"~~{text}~~"

    def _convert_underline(self, text: str, attrs: Dict[str, Any]) -> str:
        return f"<u>{text}</u>"

    def _convert_text_color(self, text: str, attrs: Dict[str, Any]) -> str:
        color = attrs.get('color')
        if not color:
            return text
        return f'<span style="color: {color}">{text}</span>'

    def _convert_background_color(self, text: str, attrs: Dict[str, Any]) -> str:
        color = attrs.get('color')
        if not color:
            return text
        return f'<span style="background-color: {color}">{text}</span>'

    def _convert_subsup(self, text: str, attrs: Dict[str, Any]) -> str:
        tag = 'sup' if attrs.get('type') == 'sup' else 'sub'
        return f"<{tag}>{text}</{tag}>"

    def _convert_alignment(self, text: str, attrs: Dict[str, Any]) -> str:
        align = attrs.get('align')
        if not align:
            return text
        return f'<div style="text-align: {align}">{text}</div>'

    def _convert_indentation(self, text: str, attrs: Dict[str, Any]) -> str:
        try:
            level = int(attrs.get('level') or 0)
        except (TypeError, ValueError):
            level = 0
        if level <= 0:
            return text
        return f'<div style="margin-left: {level * 30}px">{text}</div>'


__all__ = ['MarkHandler', 'MARK_PRIORITY', 'UNKNOWN_MARK_PRIORITY', 'mark_priority']
