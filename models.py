"""Data models for the Confluence download and conversion pipeline."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger('confluence_downloader')


class CommentLocation(Enum):
    """Where a comment is anchored on its page."""
    INLINE = "inline"
    FOOTER = "footer"

    @classmethod
    def from_raw(cls, value: Optional[str]) -> 'CommentLocation':
        """Map the raw ``extensions.location`` value, defaulting to footer."""
        if value == cls.INLINE.value:
            return cls.INLINE
        return cls.FOOTER


@dataclass
class ContentVersion:
    """Version information attached to a page or comment."""

    number: Optional[int] = None
    author: Optional[str] = None
    when: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> 'ContentVersion':
        """Build from the ``version`` expansion of a content record."""
        if not raw:
            return cls()
        by = raw.get('by') or {}
        return cls(
            number=raw.get('number'),
            author=by.get('displayName') or by.get('publicName'),
            when=raw.get('when'),
            message=raw.get('message') or None
        )


@dataclass
class ConfluenceComment:
    """A page comment together with the replies it owns."""

    id: str
    title: str
    status: str
    body: Optional[str]  # ADF JSON string
    location: CommentLocation = CommentLocation.FOOTER
    original_text: Optional[str] = None
    replies: List['ConfluenceComment'] = field(default_factory=list)
    version: ContentVersion = field(default_factory=ContentVersion)
    likes_count: int = 0
    resolution_status: Optional[str] = None

    @property
    def is_inline(self) -> bool:
        """Check if the comment is anchored to a span of page text."""
        return self.location is CommentLocation.INLINE

    def count_thread(self) -> int:
        """Count this comment and all nested replies."""
        return 1 + sum(reply.count_thread() for reply in self.replies)


@dataclass
class ConfluenceDocument:
    """A retrieved page with its ancestor path and comment forest."""

    id: str
    title: str
    status: str
    body: Optional[str]  # ADF JSON string
    space_key: str
    space_name: Optional[str] = None
    path: List[str] = field(default_factory=list)
    ancestors: List[Dict[str, Any]] = field(default_factory=list)
    comments: List[ConfluenceComment] = field(default_factory=list)
    webui: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    likes_count: int = 0
    liked_by: List[str] = field(default_factory=list)
    version: ContentVersion = field(default_factory=ContentVersion)
    children_count: int = 0
    base_url: Optional[str] = None  # site link base reported by the search API
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_folder(self) -> bool:
        """Pages with child pages are written as directories."""
        return self.children_count > 0

    def comment_count(self) -> int:
        """Count all comments, including replies."""
        return sum(comment.count_thread() for comment in self.comments)

    def __eq__(self, other: Any) -> bool:
        """Compare documents by ID."""
        if not isinstance(other, ConfluenceDocument):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        """Hash document by ID."""
        return hash(self.id)


@dataclass
class DownloadStatus:
    """Per-document outcome used for reporting."""

    document_id: str
    document_title: str
    status: str  # "written", "conversion_failed", "write_failed"
    output_path: Optional[str] = None
    error_message: Optional[str] = None


__all__ = [
    'CommentLocation',
    'ContentVersion',
    'ConfluenceComment',
    'ConfluenceDocument',
    'DownloadStatus'
]
