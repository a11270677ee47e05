"""Confluence macro handler for ADF extension nodes and callout panels."""

import logging
from typing import Any, Dict, Optional

from .markdown_utils import code_fence, quote_lines, sanitize_text

logger = logging.getLogger('confluence_downloader.converters.macrohandler')

CORE_MACRO_EXTENSION_TYPE = 'com.atlassian.confluence.macro.core'


def macro_parameter(attrs: Dict[str, Any], name: str) -> Optional[Any]:
    """
    Read a macro parameter from extension attributes.

    Accepts both the flat ``parameters.<name>`` shape and the Confluence
    ``parameters.macroParams.<name>.value`` shape.
    """
    parameters = attrs.get('parameters') or {}
    if not isinstance(parameters, dict):
        return None

    value = parameters.get(name)
    if value is not None and not isinstance(value, dict):
        return value

    macro_params = parameters.get('macroParams') or {}
    value = macro_params.get(name) if isinstance(macro_params, dict) else None
    if isinstance(value, dict):
        value = value.get('value')
    return value


class MacroHandler:
    """Converts Confluence macros embedded as ADF extensions to Markdown."""

    def __init__(self, logger: logging.Logger = None):
        """Initialize macro handler with optional logger."""
        self.logger = logger or logging.getLogger('confluence_downloader.converters.macrohandler')

        # Register macro converters
        self.macro_converters = {
            'code': self._convert_code_macro,
            'info': self._convert_callout_macro,
            'note': self._convert_callout_macro,
            'warning': self._convert_callout_macro,
            'tip': self._convert_callout_macro,
        }

        # Icon mapping for callout types
        self._icon_map = {
            'info': 'ℹ️',
            'warning': '⚠️',
            'success': '✔️',
            'danger': '❗',
            'error': '❗',
            'note': '📝',
            'tip': '💡'
        }

    def convert(self, node: Dict[str, Any], context) -> str:
        """
        Convert an ``extension``, ``bodiedExtension`` or ``inlineExtension`` node.

        Args:
            node: Extension node
            context: ConverterContext of the running conversion

        Returns:
            Markdown for the macro, or a ``[type:key]`` placeholder when the
            macro is not supported
        """
        attrs = node.get('attrs') or {}
        extension_type = attrs.get('extensionType') or ''
        extension_key = attrs.get('extensionKey') or ''

        converter = self.macro_converters.get(extension_key)
        if converter is not None and extension_type in (CORE_MACRO_EXTENSION_TYPE, ''):
            self.logger.debug(f"Converting macro: {extension_key}")
            return converter(node, attrs, context)

        self.logger.debug(f"Unsupported extension {extension_type}:{extension_key}")
        context.record_warning(f"Unsupported macro type: {extension_type}:{extension_key}")
        placeholder = f"[{extension_type}:{extension_key}]"
        if node.get('type') == 'inlineExtension':
            return placeholder
        return placeholder + '\n\n'

    def render_callout(self, kind: str, body: str, title: Optional[str] = None) -> str:
        """
        Render a callout as a blockquote with an icon and an upper-case label.

        Example::

            > ℹ️ **INFO**: Heads up
            >
            > Body text
        """
        icon = self._icon_map.get(kind, '')
        header = f"{icon} **{kind.upper()}**".strip()
        if title:
            header += f": {sanitize_text(str(title))}"

        lines = ['> ' + header]
        body = body.strip('\n')
        if body:
            lines.append('>')
            lines.append(quote_lines(body))
        return '\n'.join(lines) + '\n\n'

    def _convert_code_macro(self, node: Dict[str, Any], attrs: Dict[str, Any], context) -> str:
        language = macro_parameter(attrs, 'language')
        text = macro_parameter(attrs, 'text')
        if text is None:
            text = context.plain_text(node.get('content'))
        return code_fence(str(text).strip('\n'), language) + '\n\n'

    def _convert_callout_macro(self, node: Dict[str, Any], attrs: Dict[str, Any], context) -> str:
        kind = attrs.get('extensionKey')
        title = macro_parameter(attrs, 'title')
        body = context.convert_nodes(node.get('content'))
        return self.render_callout(kind, body, title)


__all__ = ['MacroHandler', 'CORE_MACRO_EXTENSION_TYPE', 'macro_parameter']
