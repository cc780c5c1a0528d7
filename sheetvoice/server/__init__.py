"""
Conversion server package.

This package provides a Flask API server with ThreadPoolExecutor-based
background jobs that turn spreadsheet rows into audio files and archive the
results in a library.
"""

from .app import create_app
from .job_manager import JobTracker
from .library import ArchiveStore
from .processing_queue import ProcessingQueue
from .processor import BatchProcessor

__all__ = ["create_app", "JobTracker", "ArchiveStore", "ProcessingQueue", "BatchProcessor"]
