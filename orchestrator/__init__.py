"""
Orchestration package for coordinating download pipeline phases.

This package provides the orchestration layer that sequences the download
phases: Stream → Convert → Write → Report.
"""

from .download_orchestrator import DownloadOrchestrator
from .download_report import DownloadReport

__all__ = [
    'DownloadOrchestrator',
    'DownloadReport'
]
