"""
Job submission and background processing using ThreadPoolExecutor.

Submitting a spreadsheet creates the job and extracts its records
synchronously, so a job id handed back to a client is always pollable.
Synthesis and archiving then run on a worker thread, one job per worker.
A daemon thread periodically evicts expired jobs from the tracker.
"""

import concurrent.futures
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..errors import FormatError, NotFoundError, PersistenceError, ValidationError
from ..models import JobStatus, LibraryEntry, SynthesisOutcome, TextRecord
from ..speech.extractor import RecordExtractor
from .job_manager import JobTracker
from .library import ArchiveStore
from .processor import BatchProcessor

logger = logging.getLogger(__name__)


class ProcessingQueue:
    """Runs conversion jobs on a ThreadPoolExecutor."""

    def __init__(
        self,
        job_tracker: JobTracker,
        archive: ArchiveStore,
        processor: BatchProcessor,
        extractor: Optional[RecordExtractor] = None,
        max_workers: int = 2,
        sweep_interval: float = 60.0,
    ):
        """
        Initialize the processing queue.

        Args:
            job_tracker: JobTracker instance for state management
            archive: ArchiveStore receiving finished batches
            processor: BatchProcessor used for synthesis
            extractor: RecordExtractor for uploaded documents
            max_workers: Maximum number of concurrently running jobs
            sweep_interval: How often expired jobs are evicted (seconds)
        """
        self.job_tracker = job_tracker
        self.archive = archive
        self.processor = processor
        self.extractor = extractor or RecordExtractor()
        self.max_workers = max_workers
        self.sweep_interval = sweep_interval

        # Threading components
        self.executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="sheetvoice-job")
        self.running_jobs: Dict[str, Future] = {}
        self.is_running = False
        self.sweep_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        # Lock for thread safety
        self._lock = threading.Lock()

    def start(self):
        """Start the expiry sweep thread."""
        if self.is_running:
            logger.warning("Processing queue is already running")
            return

        self.is_running = True
        self._stop_event.clear()
        self.sweep_thread = threading.Thread(target=self._sweep_worker, daemon=True)
        self.sweep_thread.start()
        logger.info(f"Processing queue started with {self.max_workers} workers")

    def stop(self):
        """Stop the sweep thread and wait for in-flight jobs to finish."""
        logger.info("Stopping processing queue...")
        self.is_running = False
        self._stop_event.set()

        if self.sweep_thread:
            self.sweep_thread.join(timeout=5.0)

        # Jobs cannot be cancelled; they run to a terminal state
        self.executor.shutdown(wait=True)
        logger.info("Processing queue stopped")

    def submit(self, document_path: str, source_name: str, voice: str) -> str:
        """
        Create a job for an uploaded document and start processing it.

        Extraction happens before this returns. Extraction failures are
        recorded on the job rather than raised.

        Args:
            document_path: Path of the stored document
            source_name: Original upload filename
            voice: Voice identifier for synthesis

        Returns:
            Job identifier
        """
        job_id = self.job_tracker.create().job_id
        logger.info(f"Processing file {source_name} with voice {voice} as job {job_id}")

        try:
            records = self.extractor.extract(document_path, source_name)
        except (FormatError, ValidationError) as e:
            logger.warning(f"Extraction failed for job {job_id}: {e}")
            self._fail_extraction(job_id, str(e), document_path)
            return job_id
        except Exception as e:
            logger.error(f"Unexpected extraction error for job {job_id}: {e}")
            self._fail_extraction(job_id, "Failed to process file", document_path)
            return job_id

        self.job_tracker.set_status(job_id, JobStatus.SYNTHESIZING, total=len(records))

        try:
            future = self.executor.submit(self._process_job, job_id, records, voice, source_name, document_path)
        except RuntimeError:
            logger.error(f"Processing queue is shut down, cannot run job {job_id}")
            self.job_tracker.fail(job_id, "Processing queue is shut down")
            raise

        with self._lock:
            self.running_jobs[job_id] = future
        future.add_done_callback(lambda f, jid=job_id: self._job_completed(jid, f))
        return job_id

    def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        """Block until a submitted job's worker has finished."""
        with self._lock:
            future = self.running_jobs.get(job_id)
        if future is not None:
            concurrent.futures.wait([future], timeout=timeout)

    def get_queue_status(self) -> Dict[str, Any]:
        """Get status information about the processing queue."""
        with self._lock:
            running_jobs = list(self.running_jobs.keys())

        return {
            "is_running": self.is_running,
            "running_jobs": running_jobs,
            "max_workers": self.max_workers,
            "tracked_jobs": len(self.job_tracker),
        }

    def _fail_extraction(self, job_id: str, message: str, document_path: str) -> None:
        self.job_tracker.fail(job_id, message)
        try:
            Path(document_path).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Error cleaning up file {document_path}: {e}")

    def _process_job(
        self,
        job_id: str,
        records: List[TextRecord],
        voice: str,
        source_name: str,
        document_path: str,
    ) -> None:
        """
        Synthesize, archive and complete a single job.

        Args:
            job_id: Job identifier
            records: Validated records in extraction order
            voice: Voice identifier
            source_name: Original upload filename
            document_path: Stored document, kept with the library entry
        """
        try:
            outcomes = self.processor.run(records, voice, self.job_tracker.progress_listener(job_id))
        except Exception as e:
            logger.error(f"Synthesis failed for job {job_id}: {e}")
            self._update_job(job_id, self.job_tracker.fail, "Internal error during synthesis")
            return

        # Results are archived even when the job expired during synthesis
        self._update_job(job_id, self.job_tracker.set_status, JobStatus.SAVING)
        self._archive(job_id, outcomes, voice, source_name, document_path)

    def _archive(
        self,
        job_id: str,
        outcomes: List[SynthesisOutcome],
        voice: str,
        source_name: str,
        document_path: str,
    ) -> None:
        entry = LibraryEntry.from_outcomes(source_name, voice, outcomes, source_path=document_path)
        try:
            library_ref = self.archive.save(entry)
        except PersistenceError as e:
            logger.error(f"Saving results failed for job {job_id}: {e}")
            self._update_job(job_id, self.job_tracker.fail, "Failed to save results to the library", outcomes)
            return

        self._update_job(job_id, self.job_tracker.complete, library_ref, outcomes)
        logger.info(f"Processing completed for job {job_id} (library entry {library_ref})")

    def _update_job(self, job_id: str, update: Callable[..., None], *args: Any) -> None:
        """Apply a tracker update, tolerating a job evicted while it ran."""
        try:
            update(job_id, *args)
        except NotFoundError:
            logger.warning(f"Job {job_id} expired before it finished")

    def _job_completed(self, job_id: str, future: Future):
        """Callback called when a job's worker returns."""
        with self._lock:
            self.running_jobs.pop(job_id, None)

        error = future.exception()
        if isinstance(error, NotFoundError):
            logger.warning(f"Job {job_id} expired before it finished")
        elif error is not None:
            logger.error(f"Job {job_id} failed with error: {error}")
            try:
                self.job_tracker.fail(job_id, "Internal error while processing job")
            except Exception as e:
                logger.error(f"Could not mark job {job_id} as failed: {e}")

    def _sweep_worker(self):
        """Periodically evict expired jobs."""
        while not self._stop_event.wait(self.sweep_interval):
            try:
                self.job_tracker.sweep()
            except Exception as e:
                logger.error(f"Error in sweep worker: {e}")
