"""Lazy, cursor-paginated stream of pages from the Confluence content search API."""

import logging
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional

from models import ConfluenceDocument, ContentVersion
from .comment_tree import build_comment_forest
from .errors import PayloadError

logger = logging.getLogger('confluence_downloader.fetcher.stream')

SEARCH_PATH = '/rest/api/content/search'
DEFAULT_BATCH_SIZE = 250

# Structural: an expansion missing here shows up as missing data downstream, not as an error.
EXPAND_FIELDS = [
    'ancestors',
    'descendants.comment.body.atlas_doc_format',
    'descendants.comment.extensions.inlineProperties',
    'descendants.comment.extensions.resolution',
    'descendants.comment.version',
    'descendants.comment.children.comment',
    'body.atlas_doc_format',
    'version',
    'metadata.labels',
    'space',
    'children.page',
    'metadata.likes',
    'descendants.comment.metadata.likes',
]


def build_cql(content_type: str, space_keys: Iterable[str]) -> str:
    """Build the CQL filter for content of one type in a set of spaces."""
    quoted = ','.join(f"'{key}'" for key in space_keys)
    return f"(type={content_type}) and space in ({quoted})"


def _children_count(raw: Dict[str, Any]) -> int:
    children = raw.get('children') or {}
    pages = children.get('page') or children.get('pages') or {}
    size = pages.get('size')
    if size is not None:
        return int(size)
    return len(pages.get('results') or [])


def convert_raw_document(raw: Dict[str, Any], base_url: Optional[str] = None) -> ConfluenceDocument:
    """
    Convert one raw search result into a ConfluenceDocument.

    The path is the ancestor titles in API order and the comment forest is
    rebuilt from ``descendants.comment``.
    """
    if 'id' not in raw:
        raise PayloadError("Search result without an id")

    ancestors = [
        {'id': str(ancestor.get('id')), 'title': ancestor.get('title') or ''}
        for ancestor in raw.get('ancestors') or []
    ]
    path = [ancestor['title'] for ancestor in ancestors]

    descendants = (raw.get('descendants') or {}).get('comment') or {}
    comments = build_comment_forest(descendants.get('results') or [])

    space = raw.get('space') or {}
    metadata = raw.get('metadata') or {}
    labels = [label.get('name') for label in (metadata.get('labels') or {}).get('results') or [] if label.get('name')]
    likes = metadata.get('likes') or {}
    liked_by = [
        user.get('displayName') or user.get('publicName')
        for user in (likes.get('users') or {}).get('results') or []
        if user.get('displayName') or user.get('publicName')
    ]
    links = raw.get('_links') or {}

    return ConfluenceDocument(
        id=str(raw['id']),
        title=raw.get('title') or '',
        status=raw.get('status') or 'current',
        body=((raw.get('body') or {}).get('atlas_doc_format') or {}).get('value'),
        space_key=space.get('key') or '',
        space_name=space.get('name'),
        path=path,
        ancestors=ancestors,
        comments=comments,
        webui=links.get('webui'),
        labels=labels,
        likes_count=int(likes.get('count') or 0),
        liked_by=liked_by,
        version=ContentVersion.from_raw(raw.get('version')),
        children_count=_children_count(raw),
        base_url=base_url,
        raw=raw
    )


class ContentStream:
    """
    Pull-based iterator over every page of a set of spaces.

    Each call to ``next()`` that finds the local buffer empty issues exactly
    one HTTP request: the CQL search on the first pull, and afterwards the
    opaque ``_links.next`` of the previous response, passed through verbatim.
    The stream ends when a response carries no ``next`` link. Transport
    errors propagate to the caller and end the stream; nothing is retried
    here.
    """

    def __init__(
        self,
        client,
        spaces: List[str],
        batch_size: int = DEFAULT_BATCH_SIZE,
        content_type: str = 'page',
        include_archived: bool = True
    ):
        """
        Args:
            client: Object exposing ``fetch_json(path_or_url, params=None)``
            spaces: Space keys to search
            batch_size: ``limit`` of the first request
            content_type: CQL content type
            include_archived: Include pages from archived spaces
        """
        if not spaces:
            raise ValueError("ContentStream requires at least one space key")
        if batch_size < 1:
            raise ValueError("batch_size must be a positive integer")

        self.client = client
        self.spaces = list(spaces)
        self.batch_size = batch_size
        self.include_archived = include_archived
        self.cql = build_cql(content_type, self.spaces)

        self.base_url: Optional[str] = None
        self.pages_fetched = 0
        self.documents_yielded = 0

        self._next_link: Optional[str] = None
        self._started = False
        self._finished = False
        self._buffer: Deque[ConfluenceDocument] = deque()

    def __iter__(self) -> 'ContentStream':
        return self

    def __next__(self) -> ConfluenceDocument:
        while not self._buffer:
            if self._finished:
                raise StopIteration
            self._fetch_next_page()

        self.documents_yielded += 1
        return self._buffer.popleft()

    @property
    def finished(self) -> bool:
        """True once the last page has been fetched and drained."""
        return self._finished and not self._buffer

    def initial_params(self) -> Dict[str, Any]:
        """Query parameters of the first search request."""
        return {
            'cql': self.cql,
            'start': 0,
            'limit': self.batch_size,
            'expand': ','.join(EXPAND_FIELDS),
            'includeArchived': 'true' if self.include_archived else 'false',
        }

    def _fetch_next_page(self) -> None:
        try:
            if not self._started:
                logger.info(f"Searching content: {self.cql}")
                self._started = True
                response = self.client.fetch_json(SEARCH_PATH, self.initial_params())
            else:
                logger.debug(f"Following continuation link: {self._next_link}")
                response = self.client.fetch_json(self._next_link)
        except Exception:
            self._finished = True
            raise

        self.pages_fetched += 1

        if not isinstance(response, dict) or not isinstance(response.get('results'), list):
            self._finished = True
            raise PayloadError("Search response has no 'results' list")

        links = response.get('_links') or {}
        if links.get('base'):
            self.base_url = links['base']
        self._next_link = links.get('next') or None
        if self._next_link is None:
            self._finished = True

        results = response['results']
        logger.debug(f"Search page {self.pages_fetched}: {len(results)} results, "
                     f"{'more to come' if self._next_link else 'last page'}")

        try:
            documents = [convert_raw_document(raw, self.base_url) for raw in results]
        except Exception:
            self._finished = True
            raise
        self._buffer.extend(documents)


__all__ = [
    'DEFAULT_BATCH_SIZE',
    'ContentStream',
    'EXPAND_FIELDS',
    'SEARCH_PATH',
    'build_cql',
    'convert_raw_document'
]
