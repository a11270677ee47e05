"""Markdown writer: lays out converted documents on disk and reports progress."""

import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from models import ConfluenceDocument
from .path_resolver import SpacePathResolver

DocumentWrittenCallback = Callable[[ConfluenceDocument, int, Path], None]
FinishedCallback = Callable[[int], None]


class MarkdownExporter:
    """
    Writes converted documents to local Markdown files.

    This exporter:
    1. Creates one directory per space (``local_path`` or space key)
    2. Mirrors the ancestor path with kebab-cased directories
    3. Writes pages with child pages as ``<title>/index.md``
    4. Skips files whose content is byte-identical
    5. Notifies subscribers after each written document and at the end
    """

    def __init__(self, config: Dict[str, Any], logger: Optional[logging.Logger] = None, output_dir: Optional[str] = None):
        """
        Initialize the markdown exporter.

        Args:
            config: Configuration dictionary with export and spaces settings
            logger: Logger instance
            output_dir: Optional output directory override (takes precedence over config)
        """
        self.config = config
        self.logger = logger or logging.getLogger('confluence_downloader.exporters.markdown_exporter')
        self.path_resolver = SpacePathResolver(config, output_dir=output_dir)
        self.output_directory = self.path_resolver.output_directory

        self._written_listeners: List[DocumentWrittenCallback] = []
        self._finished_listeners: List[FinishedCallback] = []

        # Initialize statistics
        self.stats = {
            'total_pages_written': 0,
            'total_pages_unchanged': 0,
            'total_errors': 0,
            'total_bytes_written': 0
        }
        self.errors: List[Dict[str, str]] = []

        # Track written files
        self.exported_files: List[Path] = []

        self.logger.info(f"MarkdownExporter initialized (output: {self.output_directory})")

    def subscribe(
        self,
        on_document_written: Optional[DocumentWrittenCallback] = None,
        on_finished: Optional[FinishedCallback] = None
    ) -> None:
        """
        Register progress callbacks.

        Args:
            on_document_written: Called with (document, running count, path)
                after each successful write
            on_finished: Called once with the total number of documents
                handled when ``finish`` runs
        """
        if on_document_written is not None:
            self._written_listeners.append(on_document_written)
        if on_finished is not None:
            self._finished_listeners.append(on_finished)

    @property
    def documents_handled(self) -> int:
        """Documents written or found unchanged so far."""
        return self.stats['total_pages_written'] + self.stats['total_pages_unchanged']

    def write_document(self, document: ConfluenceDocument, markdown: str) -> Optional[Path]:
        """
        Write one converted document.

        Write failures are logged and counted; they never raise.

        Args:
            document: Source document (used for its location)
            markdown: Converted file content

        Returns:
            Path of the file, or None when writing failed
        """
        page_file = self.path_resolver.document_path(document)
        self.logger.debug(f"Exporting page '{document.title}' (ID: {document.id}) to {page_file}")

        try:
            try:
                page_file.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError as e:
                parent = page_file.parent.parent
                self.logger.error(
                    f"Permission denied creating directory {page_file.parent}: {e}. "
                    f"Parent exists: {parent.exists()}, "
                    f"writable: {os.access(str(parent), os.W_OK) if parent.exists() else False}"
                )
                raise

            if page_file.exists() and page_file.read_text(encoding='utf-8') == markdown:
                self.logger.debug(f"Markdown unchanged for page '{document.title}' (ID: {document.id}), skipping write")
                self.stats['total_pages_unchanged'] += 1
            else:
                page_file.write_text(markdown, encoding='utf-8')
                self.stats['total_pages_written'] += 1
                self.stats['total_bytes_written'] += len(markdown.encode('utf-8'))
                self.logger.debug(f"Successfully wrote {len(markdown)} characters to {page_file}")

        except (OSError, UnicodeError) as e:
            self.logger.error(f"Error writing page '{document.title}' (ID: {document.id}) to {page_file}: {e}", exc_info=True)
            self.stats['total_errors'] += 1
            self.errors.append({'page_id': document.id, 'path': str(page_file), 'error': str(e)})
            return None

        self.exported_files.append(page_file)
        count = self.documents_handled
        for listener in self._written_listeners:
            listener(document, count, page_file)
        return page_file

    def finish(self) -> Dict[str, Any]:
        """
        Signal that no more documents will arrive.

        Returns:
            Copy of the export statistics
        """
        total = self.documents_handled
        for listener in self._finished_listeners:
            listener(total)
        self._log_export_summary()
        return self.stats.copy()

    def _log_export_summary(self) -> None:
        """Log final export statistics."""
        self.logger.info("=" * 60)
        self.logger.info("MARKDOWN EXPORT SUMMARY")
        self.logger.info("=" * 60)
        self.logger.info(f"Pages written: {self.stats['total_pages_written']}")
        if self.stats['total_pages_unchanged'] > 0:
            self.logger.info(f"Pages unchanged: {self.stats['total_pages_unchanged']}")
        self.logger.info(f"Total size: {self._format_bytes(self.stats['total_bytes_written'])}")
        self.logger.info(f"Total errors: {self.stats['total_errors']}")
        self.logger.info(f"Output directory: {self.output_directory}")
        self.logger.info("=" * 60)

    @staticmethod
    def _format_bytes(bytes_val: float) -> str:
        """Format bytes to human-readable string."""
        if bytes_val == 0:
            return "0 B"

        for unit in ['B', 'KB', 'MB', 'GB']:
            if bytes_val < 1024.0:
                return f"{bytes_val:.1f} {unit}"
            bytes_val /= 1024.0
        return f"{bytes_val:.1f} TB"


__all__ = ['MarkdownExporter']
