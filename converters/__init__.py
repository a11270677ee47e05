"""Converters package for Confluence ADF to Markdown conversion."""

import logging

from .adf_converter import (
    AdfMarkdownConverter,
    BodyParseError,
    ConversionError,
    ConversionResult,
    ConverterContext,
    ERROR_BANNER
)
from .comment_renderer import CommentRenderer
from .frontmatter import build_frontmatter
from .macro_handler import MacroHandler
from .mark_handler import MARK_PRIORITY, MarkHandler
from .markdown_utils import sanitize_text

logger = logging.getLogger('confluence_downloader.converters')


def convert_document(document, base_url=None, logger=None):
    """
    Convenience function to convert a ConfluenceDocument from ADF to Markdown.

    This runs the full conversion pipeline:
    1. Frontmatter generation from the document metadata
    2. ADF body conversion through the node dispatch table
    3. Comment thread rendering (inline threads, then footer threads)

    Args:
        document: ConfluenceDocument with an ADF JSON string in document.body
        base_url: Optional site URL for canonical page links
        logger: Optional logger instance (uses module logger if not provided)

    Returns:
        str: The Markdown file content; conversion failures yield an error
        document instead of raising

    Example:
        >>> from converters import convert_document
        >>> markdown = convert_document(document)
        >>> markdown.startswith('---')
        True
    """
    if logger is None:
        logger = logging.getLogger('confluence_downloader.converters')

    converter = AdfMarkdownConverter(base_url=base_url, logger=logger)
    return converter.convert_document(document)


__all__ = [
    'convert_document',
    'AdfMarkdownConverter',
    'BodyParseError',
    'CommentRenderer',
    'ConversionError',
    'ConversionResult',
    'ConverterContext',
    'ERROR_BANNER',
    'MacroHandler',
    'MarkHandler',
    'MARK_PRIORITY',
    'build_frontmatter',
    'sanitize_text'
]
