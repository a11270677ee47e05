"""Fetchers package for retrieving Confluence pages and comments via the REST API."""

from .errors import FetcherError, PayloadError
from .comment_tree import build_comment_forest, convert_raw_comment
from .content_stream import (
    DEFAULT_BATCH_SIZE,
    EXPAND_FIELDS,
    SEARCH_PATH,
    ContentStream,
    build_cql,
    convert_raw_document
)

__all__ = [
    'FetcherError',
    'PayloadError',
    'ContentStream',
    'DEFAULT_BATCH_SIZE',
    'EXPAND_FIELDS',
    'SEARCH_PATH',
    'build_cql',
    'convert_raw_document',
    'build_comment_forest',
    'convert_raw_comment'
]
