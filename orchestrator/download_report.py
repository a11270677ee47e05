"""
Download report generator for aggregating statistics and formatting reports.

This module turns the per-document outcomes of a download run into a report
dictionary and formats it for console display, JSON export and CSV export.
"""

import csv
import json
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from models import DownloadStatus

logger = logging.getLogger('confluence_downloader.orchestrator.report')

STATUS_WRITTEN = 'written'
STATUS_CONVERSION_FAILED = 'conversion_failed'
STATUS_WRITE_FAILED = 'write_failed'


class DownloadReport:
    """Generates download reports from per-document statuses and component statistics."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize download report generator.

        Args:
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger('confluence_downloader.orchestrator.report')

    def generate_report(
        self,
        statuses: List[DownloadStatus],
        space_keys: List[str],
        duration: float,
        stream_stats: Optional[Dict[str, Any]] = None,
        export_stats: Optional[Dict[str, Any]] = None,
        space_counts: Optional[Dict[str, Dict[str, int]]] = None
    ) -> Dict[str, Any]:
        """
        Generate the download report.

        Args:
            statuses: One DownloadStatus per streamed document
            space_keys: Spaces requested for the run
            duration: Run duration in seconds
            stream_stats: Counters from the content stream
            export_stats: Statistics from the Markdown exporter
            space_counts: Per-space page/failure/comment counts

        Returns:
            Download report dictionary
        """
        self.logger.info("Generating download report")

        report = {
            'summary': self._build_summary(statuses, space_keys, duration, stream_stats or {}, export_stats or {}),
            'spaces': self._build_space_breakdown(space_keys, space_counts or {}),
            'errors': self._build_error_summary(statuses),
            'timestamp': datetime.now().isoformat()
        }

        self.logger.info(
            f"Report generated: {report['summary']['pages']} pages, "
            f"{report['summary']['total_errors']} errors"
        )

        return report

    def _build_summary(
        self,
        statuses: List[DownloadStatus],
        space_keys: List[str],
        duration: float,
        stream_stats: Dict[str, Any],
        export_stats: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Build high-level summary section."""
        pages = len(statuses)
        written = sum(1 for status in statuses if status.status == STATUS_WRITTEN)
        conversion_failed = sum(1 for status in statuses if status.status == STATUS_CONVERSION_FAILED)
        write_failed = sum(1 for status in statuses if status.status == STATUS_WRITE_FAILED)

        return {
            'spaces': len(space_keys),
            'pages': pages,
            'pages_written': written,
            'pages_unchanged': export_stats.get('total_pages_unchanged', 0),
            'conversion_failed': conversion_failed,
            'write_failed': write_failed,
            'total_errors': conversion_failed + write_failed,
            'requests': stream_stats.get('pages_fetched', 0),
            'bytes_written': export_stats.get('total_bytes_written', 0),
            'success_rate': (written / pages) if pages else 1.0,
            'duration': duration,
            'duration_formatted': self._format_duration(duration)
        }

    def _build_space_breakdown(
        self,
        space_keys: List[str],
        space_counts: Dict[str, Dict[str, int]]
    ) -> List[Dict[str, Any]]:
        """Build per-space breakdown, requested spaces first."""
        ordered = OrderedDict((key, None) for key in space_keys)
        for key in space_counts:
            ordered.setdefault(key, None)

        breakdown = []
        for key in ordered:
            counts = space_counts.get(key, {})
            breakdown.append({
                'key': key,
                'name': counts.get('name') or key,
                'pages': counts.get('pages', 0),
                'pages_failed': counts.get('failed', 0),
                'comments': counts.get('comments', 0)
            })
        return breakdown

    def _build_error_summary(self, statuses: List[DownloadStatus]) -> List[Dict[str, Any]]:
        """Collect failed documents."""
        return [
            {
                'page_id': status.document_id,
                'title': status.document_title,
                'status': status.status,
                'error': status.error_message,
                'path': status.output_path
            }
            for status in statuses
            if status.status != STATUS_WRITTEN
        ]

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            minutes = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{minutes}m {secs}s"
        else:
            hours = int(seconds // 3600)
            minutes = int((seconds % 3600) // 60)
            secs = int(seconds % 60)
            return f"{hours}h {minutes}m {secs}s"

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """
        Format report for console display.

        Args:
            report: Download report dictionary

        Returns:
            Formatted console string
        """
        sections = []

        # Header
        sections.append("=" * 60)
        sections.append("DOWNLOAD REPORT")
        sections.append("=" * 60)
        sections.append("")

        summary = report.get('summary', {})
        sections.append("Summary:")
        sections.append(f"  Spaces:      {summary.get('spaces', 0)}")
        sections.append(f"  Pages:       {summary.get('pages', 0)}")
        sections.append(f"  Written:     {summary.get('pages_written', 0)}")
        if summary.get('pages_unchanged', 0) > 0:
            sections.append(f"  Unchanged:   {summary['pages_unchanged']}")
        sections.append(f"  Requests:    {summary.get('requests', 0)}")
        sections.append(f"  Duration:    {summary.get('duration_formatted', '0s')}")
        sections.append(f"  Success:     {summary.get('success_rate', 0) * 100:.1f}%")
        sections.append("")

        errors = report.get('errors', [])
        if errors:
            sections.append("Errors:")
            sections.append("-" * 60)
            for error in errors[:20]:
                sections.append(f"  [{error['status']}] {error['title']} (ID: {error['page_id']})")
                if error.get('error'):
                    sections.append(f"    {error['error']}")
            if len(errors) > 20:
                sections.append(f"  ... and {len(errors) - 20} more")
            sections.append("")

        # Space breakdown (if multiple spaces)
        spaces = report.get('spaces', [])
        if len(spaces) > 1:
            sections.append("Space Breakdown:")
            sections.append("-" * 60)
            for space in spaces:
                sections.append(f"  {space['key']}: {space['name']}")
                sections.append(f"    Pages: {space['pages']}, Comments: {space['comments']}")
                if space['pages_failed'] > 0:
                    sections.append(f"    Failed: {space['pages_failed']}")
            sections.append("")

        # Footer
        sections.append("=" * 60)

        return "\n".join(sections)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export report to JSON file.

        Args:
            report: Download report dictionary
            filepath: Output file path
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)

            self.logger.info(f"JSON report exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {str(e)}")

    def export_csv_summary(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Export per-space statistics to CSV.

        Args:
            report: Download report dictionary
            filepath: Output file path
        """
        try:
            with open(filepath, 'w', newline='', encoding='utf-8') as f:
                writer = csv.writer(f)
                writer.writerow(['space_key', 'space_name', 'pages', 'comments', 'errors'])

                for space in report.get('spaces', []):
                    writer.writerow([
                        space['key'],
                        space['name'],
                        space['pages'],
                        space['comments'],
                        space['pages_failed']
                    ])

            self.logger.info(f"CSV summary exported to {filepath}")

        except OSError as e:
            self.logger.error(f"Failed to export CSV summary: {str(e)}")


__all__ = [
    'DownloadReport',
    'STATUS_WRITTEN',
    'STATUS_CONVERSION_FAILED',
    'STATUS_WRITE_FAILED'
]
