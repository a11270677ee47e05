"""
Download orchestrator for coordinating the complete download pipeline.

This module provides the central coordinator that sequences the download
phases for one or more spaces: Stream → Convert → Write → Report. Documents
flow through the pipeline one at a time.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from tqdm import tqdm

from config_loader import get_nested
from confluence_client import ConfluenceClient
from converters import AdfMarkdownConverter
from exporters import MarkdownExporter
from fetchers import DEFAULT_BATCH_SIZE, ContentStream
from logger import ProgressTracker, log_section
from models import ConfluenceDocument, DownloadStatus
from orchestrator.download_report import (
    DownloadReport,
    STATUS_CONVERSION_FAILED,
    STATUS_WRITE_FAILED,
    STATUS_WRITTEN
)


class DownloadOrchestrator:
    """Central coordinator sequencing the download phases: Stream → Convert → Write → Report."""

    def __init__(
        self,
        config: Dict[str, Any],
        client=None,
        converter: Optional[AdfMarkdownConverter] = None,
        exporter: Optional[MarkdownExporter] = None,
        logger: Optional[logging.Logger] = None,
        output_dir: Optional[str] = None,
        show_progress: bool = False
    ):
        """
        Initialize download orchestrator.

        Args:
            config: Configuration dictionary
            client: Object exposing ``fetch_json``; built from config when omitted
            converter: ADF converter; built from config when omitted
            exporter: Markdown exporter; built from config when omitted
            logger: Optional logger instance
            output_dir: Optional output directory override
            show_progress: Show a tqdm progress bar while streaming
        """
        self.config = config
        self.logger = logger or logging.getLogger('confluence_downloader.orchestrator')
        self.client = client or ConfluenceClient.from_config(config)
        self.converter = converter or AdfMarkdownConverter(base_url=getattr(self.client, 'api_root', None))
        self.exporter = exporter or MarkdownExporter(config, output_dir=output_dir)
        self.report_generator = DownloadReport()
        self.show_progress = show_progress

        self.batch_size = get_nested(config, 'download.batch_size', DEFAULT_BATCH_SIZE)
        self.include_archived = get_nested(config, 'download.include_archived', True)

        self.statuses: List[DownloadStatus] = []
        self.space_counts: Dict[str, Dict[str, Any]] = {}

        self.logger.info(f"DownloadOrchestrator initialized (batch size: {self.batch_size})")

    def configured_spaces(self) -> List[str]:
        """Space keys listed in the configuration."""
        return [space['key'] for space in self.config.get('spaces') or [] if space.get('key')]

    def run(self, space_keys: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Download, convert and write every page of the given spaces.

        Conversion and write failures are recorded per document and do not stop
        the run. Transport errors from the stream are logged and re-raised.

        Args:
            space_keys: Spaces to download (defaults to the configured spaces)

        Returns:
            Download report dictionary

        Raises:
            ValueError: If no space keys are available
            requests.exceptions.RequestException: If a search request fails
        """
        spaces = list(space_keys or self.configured_spaces())
        if not spaces:
            raise ValueError("No spaces to download; configure 'spaces' or pass space keys")

        log_section(f"Downloading spaces: {', '.join(spaces)}")
        start_time = time.time()

        stream = ContentStream(
            self.client,
            spaces,
            batch_size=self.batch_size,
            include_archived=self.include_archived
        )

        try:
            with ProgressTracker(item_type='pages', log_every=50) as tracker:
                documents = tqdm(stream, desc="Downloading pages", unit="page", disable=not self.show_progress)
                for document in documents:
                    status = self.process_document(document)
                    tracker.increment(success=status.status == STATUS_WRITTEN)
        except Exception as e:
            self.logger.error(
                f"Download aborted after {stream.documents_yielded} pages "
                f"({stream.pages_fetched} search requests): {str(e)}"
            )
            raise

        export_stats = self.exporter.finish()
        duration = time.time() - start_time

        report = self.report_generator.generate_report(
            statuses=self.statuses,
            space_keys=spaces,
            duration=duration,
            stream_stats={'pages_fetched': stream.pages_fetched, 'documents_yielded': stream.documents_yielded},
            export_stats=export_stats,
            space_counts=self.space_counts
        )
        self.logger.info(f"Download complete in {duration:.2f}s")
        return report

    def process_document(self, document: ConfluenceDocument) -> DownloadStatus:
        """
        Convert and write a single document.

        Args:
            document: Streamed document

        Returns:
            DownloadStatus describing the outcome
        """
        self.logger.debug(f"Processing page '{document.title}' (ID: {document.id})")

        result = self.converter.convert_document_with_result(document)
        output_path = self.exporter.write_document(document, result.markdown)

        if output_path is None:
            status = DownloadStatus(
                document_id=document.id,
                document_title=document.title,
                status=STATUS_WRITE_FAILED,
                error_message=self.exporter.errors[-1]['error'] if self.exporter.errors else None
            )
        elif not result.success:
            status = DownloadStatus(
                document_id=document.id,
                document_title=document.title,
                status=STATUS_CONVERSION_FAILED,
                output_path=str(output_path),
                error_message=result.error
            )
        else:
            status = DownloadStatus(
                document_id=document.id,
                document_title=document.title,
                status=STATUS_WRITTEN,
                output_path=str(output_path)
            )

        self.statuses.append(status)
        self._count_space(document, status)
        return status

    def _count_space(self, document: ConfluenceDocument, status: DownloadStatus) -> None:
        counts = self.space_counts.setdefault(
            document.space_key,
            {'name': document.space_name, 'pages': 0, 'failed': 0, 'comments': 0}
        )
        counts['pages'] += 1
        counts['comments'] += document.comment_count()
        if status.status != STATUS_WRITTEN:
            counts['failed'] += 1

    def format_report(self, report: Dict[str, Any]) -> str:
        """Format a report for console display."""
        return self.report_generator.format_console_report(report)

    def save_report(self, report: Dict[str, Any], filepath: str) -> None:
        """Save a report as CSV when the path ends in ``.csv``, JSON otherwise."""
        if filepath.lower().endswith('.csv'):
            self.report_generator.export_csv_summary(report, filepath)
        else:
            self.report_generator.export_json_report(report, filepath)


__all__ = ['DownloadOrchestrator']
