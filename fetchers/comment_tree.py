"""Rebuild threaded comment trees from the flat descendant list of a page."""

import logging
from typing import Any, Dict, List, Optional, Set

from models import CommentLocation, ConfluenceComment, ContentVersion

logger = logging.getLogger('confluence_downloader.fetcher.comments')


def _adf_value(raw: Dict[str, Any]) -> Optional[str]:
    """Extract the ADF JSON string from a content body expansion."""
    body = raw.get('body') or {}
    adf = body.get('atlas_doc_format') or {}
    return adf.get('value')


def _child_ids(raw: Dict[str, Any]) -> List[str]:
    """Direct reply ids listed in a raw comment's ``children.comment`` expansion."""
    children = (raw.get('children') or {}).get('comment') or {}
    return [str(child['id']) for child in children.get('results') or [] if child.get('id') is not None]


def convert_raw_comment(raw: Dict[str, Any]) -> ConfluenceComment:
    """
    Convert a raw comment record into a ConfluenceComment without replies.

    Location comes from ``extensions.location`` and the anchored text of an
    inline comment from ``extensions.inlineProperties.originalText``.
    """
    extensions = raw.get('extensions') or {}
    inline_properties = extensions.get('inlineProperties') or {}
    resolution = extensions.get('resolution') or {}
    likes = (raw.get('metadata') or {}).get('likes') or {}

    return ConfluenceComment(
        id=str(raw['id']),
        title=raw.get('title') or '',
        status=raw.get('status') or 'current',
        body=_adf_value(raw),
        location=CommentLocation.from_raw(extensions.get('location')),
        original_text=inline_properties.get('originalText'),
        version=ContentVersion.from_raw(raw.get('version')),
        likes_count=int(likes.get('count') or 0),
        resolution_status=resolution.get('status')
    )


def build_comment_forest(raw_comments: List[Dict[str, Any]]) -> List[ConfluenceComment]:
    """
    Build the root comment list of a page from its flat descendant comments.

    Pass 1 indexes every comment by id together with the ids it lists as
    direct replies. Pass 2 gives each reply a single parent and attaches
    replies in each comment's own child order. Roots are the comments that
    no comment claims as a reply, kept in flat-list order.

    Malformed reply lists never break the tree shape: self-references, ids
    with no matching descendant and second claims on an already-owned reply
    are skipped, and a reply cycle is cut at its first member in flat order,
    which becomes a root.

    Args:
        raw_comments: ``descendants.comment.results`` of a raw page

    Returns:
        Root comments with ``replies`` populated recursively
    """
    comment_map: Dict[str, ConfluenceComment] = {}
    child_lists: Dict[str, List[str]] = {}
    order: List[str] = []

    for raw in raw_comments:
        if not isinstance(raw, dict) or raw.get('id') is None:
            logger.warning("Descendant comment without an id - skipped")
            continue
        comment = convert_raw_comment(raw)
        if comment.id in comment_map:
            logger.warning(f"Duplicate comment {comment.id} in descendant list - keeping first occurrence")
            continue
        comment_map[comment.id] = comment
        child_lists[comment.id] = _child_ids(raw)
        order.append(comment.id)

    parent_of: Dict[str, str] = {}
    for comment_id in order:
        for reply_id in child_lists[comment_id]:
            if reply_id == comment_id:
                logger.warning(f"Comment {comment_id} lists itself as a reply - skipped")
            elif reply_id not in comment_map:
                logger.warning(f"Reply {reply_id} of comment {comment_id} not among page descendants - skipped")
            elif reply_id in parent_of:
                if parent_of[reply_id] != comment_id:
                    logger.warning(f"Reply {reply_id} already attached to comment {parent_of[reply_id]} - "
                                   f"skipped under {comment_id}")
            else:
                parent_of[reply_id] = comment_id

    for comment_id in order:
        visited: Set[str] = set()
        current: Optional[str] = parent_of.get(comment_id)
        while current is not None and current not in visited:
            if current == comment_id:
                logger.warning(f"Reply cycle through comment {comment_id} - treating it as a thread root")
                del parent_of[comment_id]
                break
            visited.add(current)
            current = parent_of.get(current)

    for comment_id in order:
        attached: Set[str] = set()
        replies = []
        for reply_id in child_lists[comment_id]:
            if parent_of.get(reply_id) == comment_id and reply_id not in attached:
                attached.add(reply_id)
                replies.append(comment_map[reply_id])
        comment_map[comment_id].replies = replies

    roots = [comment_map[comment_id] for comment_id in order if comment_id not in parent_of]

    logger.debug(f"Built comment forest: {len(comment_map)} comments, {len(roots)} threads")
    return roots


__all__ = ['build_comment_forest', 'convert_raw_comment']
