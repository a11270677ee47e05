"""Map spaces and documents to locations in the export directory."""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from models import ConfluenceDocument

logger = logging.getLogger('confluence_downloader.exporters.paths')

_NON_WORD = re.compile(r'[^\w\s]')

DEFAULT_OUTPUT_DIRECTORY = './confluence-export'
FOLDER_INDEX_FILENAME = 'index.md'


def to_lower_kebab_case(text: str) -> str:
    """
    Convert a title to lower kebab case.

    Punctuation becomes whitespace, the result is lower-cased, trimmed, and
    its whitespace-separated words are joined with hyphens.

    >>> to_lower_kebab_case("Release Notes: v2.0!")
    'release-notes-v2-0'
    """
    return '-'.join(_NON_WORD.sub(' ', text or '').lower().split())


def safe_segment(title: str) -> str:
    """Kebab-case a path segment, never returning an empty name."""
    return to_lower_kebab_case(title) or 'untitled'


class SpacePathResolver:
    """
    Resolves output directories per space and file paths per document.

    A space lands in ``<output_directory>/<local_path>`` when the space
    configuration names a ``local_path``, otherwise in a directory named
    after the space key.
    """

    def __init__(self, config: Dict[str, Any], output_dir: Optional[str] = None):
        """
        Args:
            config: Configuration dictionary with ``export`` and ``spaces`` sections
            output_dir: Optional output directory override (takes precedence over config)
        """
        export_config = config.get('export', {}) or {}
        self.output_directory = Path(output_dir or export_config.get('output_directory') or DEFAULT_OUTPUT_DIRECTORY)

        self.space_paths: Dict[str, str] = {}
        for space in config.get('spaces') or []:
            key = space.get('key')
            if key:
                self.space_paths[key] = space.get('local_path') or key

    def space_directory(self, space_key: str) -> Path:
        """Directory that holds every document of a space."""
        return self.output_directory / self.space_paths.get(space_key, space_key or 'unknown-space')

    def relative_document_path(self, document: ConfluenceDocument) -> Path:
        """
        Path of a document relative to its space directory.

        Ancestor titles become kebab-cased directories; a document with child
        pages is written as ``<title>/index.md`` so its children sit beside it.
        """
        segments: List[str] = [safe_segment(title) for title in document.path]
        name = safe_segment(document.title)

        if document.is_folder:
            return Path(*segments, name, FOLDER_INDEX_FILENAME)
        return Path(*segments, f"{name}.md")

    def document_path(self, document: ConfluenceDocument) -> Path:
        """Absolute output path of a document."""
        return self.space_directory(document.space_key) / self.relative_document_path(document)


__all__ = [
    'SpacePathResolver',
    'to_lower_kebab_case',
    'safe_segment',
    'FOLDER_INDEX_FILENAME'
]
