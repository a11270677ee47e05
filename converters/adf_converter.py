"""Atlassian Document Format (ADF) to Markdown converter."""

import html
import itertools
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from models import ConfluenceComment, ConfluenceDocument
from .comment_renderer import CommentRenderer
from .frontmatter import build_frontmatter, build_minimal_frontmatter
from .macro_handler import MacroHandler
from .mark_handler import MarkHandler
from .markdown_utils import code_fence, collapse_blank_lines, quote_lines, sanitize_text

logger = logging.getLogger('confluence_downloader.converters.adf')

ERROR_BANNER = '**Error converting page content:**'
RAW_EXCERPT_LENGTH = 1000

LIST_NODE_TYPES = ('bulletList', 'orderedList', 'taskList', 'decisionList')


class ConversionError(Exception):
    """Raised inside the converter when a page cannot be converted."""


class BodyParseError(ConversionError):
    """The page body is missing or is not an ADF JSON document."""


@dataclass
class ConversionResult:
    """Outcome of converting one document."""

    markdown: str
    success: bool = True
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


class TableAccumulator:
    """
    Cell matrices of the tables currently being converted, keyed by table id.

    Only the innermost table is written to. Entering a nested table returns
    the outer cursor, which ``leave`` restores.
    """

    def __init__(self):
        self.cells_by_table: Dict[str, List[List[str]]] = {}
        self.current_table_id: Optional[str] = None
        self.current_row_index = -1

    @property
    def active(self) -> bool:
        return self.current_table_id is not None

    def enter(self, table_id: str) -> Tuple[Optional[str], int]:
        saved = (self.current_table_id, self.current_row_index)
        self.cells_by_table[table_id] = []
        self.current_table_id = table_id
        self.current_row_index = -1
        return saved

    def leave(self, saved: Tuple[Optional[str], int]) -> List[List[str]]:
        rows = self.cells_by_table.pop(self.current_table_id, [])
        self.current_table_id, self.current_row_index = saved
        return rows

    def start_row(self) -> None:
        rows = self.cells_by_table[self.current_table_id]
        rows.append([])
        self.current_row_index = len(rows) - 1

    def add_cell(self, text: str, colspan: int = 1) -> None:
        if self.current_row_index < 0:
            self.start_row()
        row = self.cells_by_table[self.current_table_id][self.current_row_index]
        row.append(text)
        row.extend([''] * (colspan - 1))


class ConverterContext:
    """
    Per-call conversion state.

    Created at the start of ``convert_document`` and discarded afterwards, so
    nothing about one document leaks into the next.
    """

    def __init__(self, converter: 'AdfMarkdownConverter', document: ConfluenceDocument):
        self.converter = converter
        self.document = document
        self.tables = TableAccumulator()
        self.warnings: List[str] = []

    def convert_node(self, node: Any) -> str:
        return self.converter.convert_node(node, self)

    def convert_nodes(self, nodes: Optional[List[Any]]) -> str:
        return self.converter.convert_nodes(nodes, self)

    def plain_text(self, nodes: Optional[List[Any]]) -> str:
        return self.converter.plain_text(nodes)

    def convert_comment_body(self, comment: ConfluenceComment) -> str:
        return self.converter.convert_comment_body(comment, self)

    def record_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)


class AdfMarkdownConverter:
    """
    Converts ADF page bodies and comment threads to Markdown.

    Nodes are converted through a dispatch table keyed by node type; each
    handler returns the Markdown for its subtree. The only state kept on the
    instance is the table-id counter, so one converter may serve many
    documents.
    """

    def __init__(self, base_url: Optional[str] = None, logger: logging.Logger = None):
        """
        Initialize the converter.

        Args:
            base_url: Site URL used for canonical page links in frontmatter
            logger: Optional logger instance
        """
        self.base_url = base_url
        self.logger = logger or logging.getLogger('confluence_downloader.converters.adf')
        self.mark_handler = MarkHandler()
        self.macro_handler = MacroHandler()
        self.comment_renderer = CommentRenderer()
        self._table_ids = itertools.count(1)

        # Register node converters
        self.node_converters: Dict[str, Callable[[Dict[str, Any], ConverterContext], str]] = {
            'doc': self._convert_doc,
            'paragraph': self._convert_paragraph,
            'heading': self._convert_heading,
            'text': self._convert_text,
            'bulletList': self._convert_bullet_list,
            'orderedList': self._convert_ordered_list,
            'listItem': self._convert_list_item,
            'codeBlock': self._convert_code_block,
            'blockquote': self._convert_blockquote,
            'hardBreak': self._convert_hard_break,
            'rule': self._convert_rule,
            'panel': self._convert_panel,
            'table': self._convert_table,
            'tableRow': self._convert_table_row,
            'tableCell': self._convert_table_cell,
            'tableHeader': self._convert_table_cell,
            'media': self._convert_media,
            'mediaInline': self._convert_media,
            'mediaGroup': self._convert_media_group,
            'mediaSingle': self._convert_media_single,
            'caption': self._convert_caption,
            'taskList': self._convert_task_list,
            'taskItem': self._convert_task_item,
            'mention': self._convert_mention,
            'emoji': self._convert_emoji,
            'date': self._convert_date,
            'status': self._convert_status,
            'inlineCard': self._convert_inline_card,
            'blockCard': self._convert_block_card,
            'embedCard': self._convert_block_card,
            'expand': self._convert_expand,
            'nestedExpand': self._convert_expand,
            'extension': self._convert_extension,
            'bodiedExtension': self._convert_extension,
            'inlineExtension': self._convert_extension,
            'layoutSection': self._convert_layout_section,
            'layoutColumn': self._convert_layout_column,
            'decisionList': self._convert_decision_list,
            'decisionItem': self._convert_decision_item,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def convert_document(self, document: ConfluenceDocument) -> str:
        """
        Convert a page to a Markdown file body. Never raises.

        Args:
            document: Page with an ADF JSON body and its comment forest

        Returns:
            Frontmatter, converted body and comments section, or an error
            document when the page cannot be converted
        """
        return self.convert_document_with_result(document).markdown

    def convert_document_with_result(self, document: ConfluenceDocument) -> ConversionResult:
        """
        Convert a page and report whether conversion succeeded.

        A body that is missing or not valid JSON yields the frontmatter and an
        error banner. Any other failure yields minimal frontmatter, the banner
        and an excerpt of the raw body.
        """
        context = ConverterContext(self, document)

        try:
            adf = self.parse_body(getattr(document, 'body', None))
        except BodyParseError as e:
            self.logger.error(f"Cannot parse body of page {getattr(document, 'id', '?')}: {str(e)}")
            return ConversionResult(
                markdown=self._parse_error_document(document, str(e)),
                success=False,
                error=str(e)
            )

        try:
            body = collapse_blank_lines(self.convert_node(adf, context)).strip('\n')
            comments = self.comment_renderer.render(document.comments, context)
            frontmatter = build_frontmatter(document, self.base_url)
        except Exception as e:
            self.logger.error(f"Failed to convert page {getattr(document, 'id', '?')}: {str(e)}", exc_info=True)
            return ConversionResult(
                markdown=self._fallback_document(document, e),
                success=False,
                error=str(e),
                warnings=context.warnings
            )

        parts = [frontmatter.rstrip('\n') + '\n']
        if body:
            parts.append(body + '\n')
        if comments:
            parts.append(comments)
        markdown = '\n'.join(parts)

        if context.warnings:
            self.logger.debug(f"Page {document.id} converted with {len(context.warnings)} warnings")

        return ConversionResult(markdown=markdown, warnings=context.warnings)

    def convert_adf(self, adf: Dict[str, Any], document: Optional[ConfluenceDocument] = None) -> str:
        """Convert a bare ADF tree without frontmatter or comments."""
        context = ConverterContext(self, document)
        return collapse_blank_lines(self.convert_node(adf, context)).strip('\n')

    @staticmethod
    def parse_body(body: Any) -> Dict[str, Any]:
        """
        Decode an ADF body.

        Raises:
            BodyParseError: If the body is missing, not JSON or not an object
        """
        if isinstance(body, dict):
            return body
        if not body:
            raise BodyParseError("No ADF content found in page body")
        try:
            adf = json.loads(body)
        except (TypeError, ValueError, RecursionError) as e:
            raise BodyParseError(f"Invalid ADF JSON: {str(e)}") from e
        if not isinstance(adf, dict):
            raise BodyParseError("ADF body is not a JSON object")
        return adf

    def convert_comment_body(self, comment: ConfluenceComment, context: ConverterContext) -> str:
        """Convert a comment body with the same dispatch as the page body."""
        try:
            adf = self.parse_body(comment.body)
        except BodyParseError as e:
            self.logger.warning(f"Cannot parse body of comment {comment.id}: {str(e)}")
            context.record_warning(f"Comment {comment.id}: {str(e)}")
            return '_Comment content unavailable_'
        return collapse_blank_lines(self.convert_node(adf, context)).strip('\n')

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def convert_node(self, node: Any, context: ConverterContext) -> str:
        """Convert one node through the dispatch table."""
        if not isinstance(node, dict):
            return ''

        node_type = node.get('type')
        converter = self.node_converters.get(node_type)
        if converter is not None:
            return converter(node, context)

        self.logger.warning(f"No handler for ADF node type: {node_type}")
        context.record_warning(f"Unsupported node type: {node_type}")
        return self.convert_nodes(node.get('content'), context)

    def convert_nodes(self, nodes: Optional[List[Any]], context: ConverterContext) -> str:
        """Convert a content array and concatenate the results."""
        if not nodes:
            return ''
        return ''.join(self.convert_node(node, context) for node in nodes)

    def plain_text(self, nodes: Optional[List[Any]]) -> str:
        """Concatenate raw text of a subtree without escaping or marks."""
        if not nodes:
            return ''
        parts = []
        for node in nodes:
            if not isinstance(node, dict):
                continue
            if node.get('type') == 'text':
                parts.append(node.get('text') or '')
            elif node.get('type') == 'hardBreak':
                parts.append('\n')
            else:
                if parts and node.get('type') == 'paragraph':
                    parts.append('\n')
                parts.append(self.plain_text(node.get('content')))
        return ''.join(parts)

    # ------------------------------------------------------------------
    # Block nodes
    # ------------------------------------------------------------------

    def _convert_doc(self, node: Dict[str, Any], context: ConverterContext) -> str:
        return self.convert_nodes(node.get('content'), context)

    def _convert_paragraph(self, node: Dict[str, Any], context: ConverterContext) -> str:
        content = self.convert_nodes(node.get('content'), context)
        content = self.mark_handler.apply(content, node.get('marks'))
        return content + '\n\n'

    def _convert_heading(self, node: Dict[str, Any], context: ConverterContext) -> str:
        attrs = node.get('attrs') or {}
        try:
            level = int(attrs.get('level') or 1)
        except (TypeError, ValueError):
            level = 1
        level = max(1, min(6, level))
        content = self.convert_nodes(node.get('content'), context).strip()
        content = ' '.join(line.strip() for line in content.split('\n') if line.strip())
        return f"{'#' * level} {content}\n\n"

    def _convert_code_block(self, node: Dict[str, Any], context: ConverterContext) -> str:
        language = (node.get('attrs') or {}).get('language')
        code = self.plain_text(node.get('content'))
        return code_fence(code, language) + '\n\n'

    def _convert_blockquote(self, node: Dict[str, Any], context: ConverterContext) -> str:
        content = self.convert_nodes(node.get('content'), context).strip('\n')
        if not content:
            return ''
        return quote_lines(content) + '\n\n'

    def _convert_hard_break(self, node: Dict[str, Any], context: ConverterContext) -> str:
        return '  \n'

    def _convert_rule(self, node: Dict[str, Any], context: ConverterContext) -> str:
        return '---\n\n'

    def _convert_panel(self, node: Dict[str, Any], context: ConverterContext) -> str:
        panel_type = (node.get('attrs') or {}).get('panelType') or 'info'
        body = self.convert_nodes(node.get('content'), context)
        return self.macro_handler.render_callout(panel_type, body)

    def _convert_expand(self, node: Dict[str, Any], context: ConverterContext) -> str:
        title = (node.get('attrs') or {}).get('title') or 'Click to expand'
        body = self.convert_nodes(node.get('content'), context).strip('\n')
        return f"<details>\n<summary>{html.escape(title)}</summary>\n\n{body}\n\n</details>\n\n"

    def _convert_extension(self, node: Dict[str, Any], context: ConverterContext) -> str:
        return self.macro_handler.convert(node, context)

    def _convert_layout_section(self, node: Dict[str, Any], context: ConverterContext) -> str:
        columns = [self.convert_node(column, context).strip('\n') for column in node.get('content') or []]
        return '\n\n'.join(column for column in columns if column) + '\n\n'

    def _convert_layout_column(self, node: Dict[str, Any], context: ConverterContext) -> str:
        return self.convert_nodes(node.get('content'), context).strip('\n') + '\n\n'

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------

    def _convert_bullet_list(self, node: Dict[str, Any], context: ConverterContext) -> str:
        return self._render_list(node, context, lambda index: '- ')

    def _convert_ordered_list(self, node: Dict[str, Any], context: ConverterContext) -> str:
        try:
            start = int((node.get('attrs') or {}).get('order') or 1)
        except (TypeError, ValueError):
            start = 1
        return self._render_list(node, context, lambda index: f"{start + index}. ")

    def _render_list(self, node: Dict[str, Any], context: ConverterContext,
                     marker_for: Callable[[int], str]) -> str:
        items = [
            self._render_list_item(item, context, marker_for(index))
            for index, item in enumerate(node.get('content') or [])
        ]
        items = [item for item in items if item]
        if not items:
            return ''
        return '\n'.join(items) + '\n\n'

    def _render_list_item(self, item: Any, context: ConverterContext, marker: str) -> str:
        """Render one item; continuation lines are indented to the marker width."""
        if not isinstance(item, dict):
            return ''

        children = item.get('content') if item.get('type') == 'listItem' else [item]
        body = ''
        for child in children or []:
            text = self.convert_node(child, context).strip('\n')
            if not text:
                continue
            if body:
                is_list = isinstance(child, dict) and child.get('type') in LIST_NODE_TYPES
                body += '\n' if is_list else '\n\n'
            body += text

        lines = body.split('\n')
        indent = ' ' * len(marker)
        rendered = [marker + lines[0]]
        rendered.extend(indent + line if line.strip() else '' for line in lines[1:])
        return '\n'.join(rendered).rstrip()

    def _convert_list_item(self, node: Dict[str, Any], context: ConverterContext) -> str:
        return self._render_list_item(node, context, '- ') + '\n'

    def _convert_task_list(self, node: Dict[str, Any], context: ConverterContext) -> str:
        lines = []
        for child in node.get('content') or []:
            text = self.convert_node(child, context).strip('\n')
            if not text:
                continue
            if isinstance(child, dict) and child.get('type') == 'taskItem':
                lines.append(text)
            else:
                lines.extend('  ' + line if line.strip() else '' for line in text.split('\n'))
        if not lines:
            return ''
        return '\n'.join(lines) + '\n\n'

    def _convert_task_item(self, node: Dict[str, Any], context: ConverterContext) -> str:
        done = (node.get('attrs') or {}).get('state') == 'DONE'
        marker = '- [x] ' if done else '- [ ] '
        text = self.convert_nodes(node.get('content'), context).strip()
        lines = text.split('\n')
        indent = ' ' * len(marker)
        return '\n'.join([marker + lines[0]] + [indent + line for line in lines[1:]]) + '\n'

    def _convert_decision_list(self, node: Dict[str, Any], context: ConverterContext) -> str:
        items = [self.convert_node(child, context).strip('\n') for child in node.get('content') or []]
        items = [item for item in items if item]
        if not items:
            return ''
        return '\n'.join(items) + '\n\n'

    def _convert_decision_item(self, node: Dict[str, Any], context: ConverterContext) -> str:
        decided = (node.get('attrs') or {}).get('state') == 'DECIDED'
        prefix = '- ✓ ' if decided else '- ❓ '
        return prefix + self.convert_nodes(node.get('content'), context).strip() + '\n'

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def _convert_table(self, node: Dict[str, Any], context: ConverterContext) -> str:
        """
        Convert a table in two passes.

        Pass 1 converts every cell into the context's matrix for this table.
        Pass 2 pads rows to the widest row and emits the pipe table, using the
        first row as header.
        """
        if not node.get('content'):
            return ''

        table_id = f"table_{next(self._table_ids)}"
        saved_cursor = context.tables.enter(table_id)
        try:
            self.convert_nodes(node.get('content'), context)
        finally:
            rows = context.tables.leave(saved_cursor)

        column_count = max((len(row) for row in rows), default=0)
        if column_count == 0:
            return ''

        padded = [row + [''] * (column_count - len(row)) for row in rows]
        lines = [
            self._table_line(padded[0]),
            self._table_line(['---'] * column_count)
        ]
        lines.extend(self._table_line(row) for row in padded[1:])
        return '\n'.join(lines) + '\n\n'

    @staticmethod
    def _table_line(cells: List[str]) -> str:
        return '| ' + ' | '.join(cells) + ' |'

    def _convert_table_row(self, node: Dict[str, Any], context: ConverterContext) -> str:
        if not context.tables.active:
            return self.convert_nodes(node.get('content'), context)
        context.tables.start_row()
        self.convert_nodes(node.get('content'), context)
        return ''

    def _convert_table_cell(self, node: Dict[str, Any], context: ConverterContext) -> str:
        content = self.convert_nodes(node.get('content'), context)
        if not context.tables.active:
            return content

        text = ' '.join(line.strip() for line in content.split('\n') if line.strip())
        text = text.replace('|', '\\|')
        try:
            colspan = max(1, int((node.get('attrs') or {}).get('colspan') or 1))
        except (TypeError, ValueError):
            colspan = 1
        context.tables.add_cell(text, colspan)
        return ''

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    @staticmethod
    def _link_label(value: Any) -> str:
        return str(value).replace('[', '\\[').replace(']', '\\]')

    def _convert_media(self, node: Dict[str, Any], context: ConverterContext) -> str:
        attrs = node.get('attrs') or {}
        media_type = attrs.get('type')
        name = self._link_label(attrs.get('alt') or attrs.get('name') or 'image')

        if media_type == 'file':
            return f"[{name}](attachment:{attrs.get('id', '')})"
        if media_type == 'link':
            return f"[{name}]({attrs.get('url') or attrs.get('id', '')})"
        if media_type == 'external':
            return f"![{name}]({attrs.get('url', '')})"

        self.logger.debug(f"Unknown media type: {media_type}")
        context.record_warning(f"Unsupported media type: {media_type}")
        return ''

    def _convert_media_group(self, node: Dict[str, Any], context: ConverterContext) -> str:
        items = [self.convert_node(child, context) for child in node.get('content') or []]
        items = [item for item in items if item]
        if not items:
            return ''
        return '\n'.join(items) + '\n\n'

    def _convert_media_single(self, node: Dict[str, Any], context: ConverterContext) -> str:
        media_parts = []
        caption = ''
        for child in node.get('content') or []:
            if isinstance(child, dict) and child.get('type') == 'caption':
                caption = self.convert_node(child, context)
            else:
                media_parts.append(self.convert_node(child, context))

        if not caption:
            legacy_caption = (node.get('attrs') or {}).get('caption')
            if legacy_caption:
                caption = f"_{sanitize_text(str(legacy_caption))}_"

        result = ''.join(media_parts)
        if caption:
            result += '\n\n' + caption
        return result + '\n\n'

    def _convert_caption(self, node: Dict[str, Any], context: ConverterContext) -> str:
        text = self.convert_nodes(node.get('content'), context).strip()
        return f"_{text}_" if text else ''

    # ------------------------------------------------------------------
    # Inline nodes
    # ------------------------------------------------------------------

    def _convert_text(self, node: Dict[str, Any], context: ConverterContext) -> str:
        text = node.get('text')
        if not isinstance(text, str) or not text:
            return ''
        return self.mark_handler.apply(sanitize_text(text), node.get('marks'))

    def _convert_mention(self, node: Dict[str, Any], context: ConverterContext) -> str:
        attrs = node.get('attrs') or {}
        text = str(attrs.get('text') or attrs.get('id') or 'unknown').lstrip('@')
        return f"@{sanitize_text(text)}"

    def _convert_emoji(self, node: Dict[str, Any], context: ConverterContext) -> str:
        attrs = node.get('attrs') or {}
        return sanitize_text(str(attrs.get('shortName') or attrs.get('text') or ''))

    def _convert_date(self, node: Dict[str, Any], context: ConverterContext) -> str:
        timestamp = (node.get('attrs') or {}).get('timestamp')
        if timestamp is None:
            return ''
        try:
            moment = datetime.fromtimestamp(int(timestamp) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return sanitize_text(str(timestamp))
        return moment.strftime('%Y-%m-%d')

    def _convert_status(self, node: Dict[str, Any], context: ConverterContext) -> str:
        text = (node.get('attrs') or {}).get('text') or ''
        return f"[{sanitize_text(str(text))}]" if text else ''

    def _card_link(self, node: Dict[str, Any]) -> str:
        attrs = node.get('attrs') or {}
        url = attrs.get('url')
        if not url:
            data = attrs.get('data') or {}
            url = data.get('url') if isinstance(data, dict) else None
            name = data.get('name') if isinstance(data, dict) else None
            return f"[{self._link_label(name or url)}]({url})" if url else ''
        return f"[{self._link_label(url)}]({url})"

    def _convert_inline_card(self, node: Dict[str, Any], context: ConverterContext) -> str:
        return self._card_link(node)

    def _convert_block_card(self, node: Dict[str, Any], context: ConverterContext) -> str:
        link = self._card_link(node)
        return link + '\n\n' if link else ''

    # ------------------------------------------------------------------
    # Error documents
    # ------------------------------------------------------------------

    def _parse_error_document(self, document: ConfluenceDocument, message: str) -> str:
        try:
            frontmatter = build_frontmatter(document, self.base_url)
        except Exception as e:
            self.logger.debug(f"Falling back to minimal frontmatter: {str(e)}")
            frontmatter = build_minimal_frontmatter(document)
        return f"{frontmatter}{ERROR_BANNER} {message}\n"

    def _fallback_document(self, document: Any, error: Exception) -> str:
        raw_body = getattr(document, 'body', None)
        if not isinstance(raw_body, str):
            raw_body = '' if raw_body is None else repr(raw_body)
        excerpt = raw_body[:RAW_EXCERPT_LENGTH]
        return (
            f"{build_minimal_frontmatter(document)}"
            f"{ERROR_BANNER} {str(error)}\n\n"
            f"{code_fence(excerpt, 'json')}\n"
        )


__all__ = [
    'AdfMarkdownConverter',
    'BodyParseError',
    'ConversionError',
    'ConversionResult',
    'ConverterContext',
    'ERROR_BANNER',
    'TableAccumulator'
]
