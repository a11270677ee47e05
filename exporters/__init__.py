"""Markdown export package for the Confluence downloader.

Package Structure:
- markdown_exporter: Writes converted documents to disk and emits progress events
- path_resolver: Maps space keys to directories and documents to file paths

Layout:
- <output_directory>/<space local_path or key>/<kebab ancestors>/<kebab-title>.md
- Pages with child pages become <kebab-title>/index.md

Configuration Referenced:
- export.output_directory: Base output path for exported files
- spaces[].local_path: Directory name of a space under the output path
"""

from .markdown_exporter import MarkdownExporter
from .path_resolver import SpacePathResolver, to_lower_kebab_case

__all__ = [
    'MarkdownExporter',
    'SpacePathResolver',
    'to_lower_kebab_case'
]
