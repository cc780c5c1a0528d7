import threading

import pytest

from sheetvoice.errors import DuplicateJobError, JobStateError, NotFoundError
from sheetvoice.models import JobStatus, ProgressEvent, SynthesisOutcome


def _outcome(record_id="A"):
    return SynthesisOutcome(id=record_id, text="text", success=True, audio_ref=f"{record_id}.wav")


def test_create_starts_in_extracting(tracker, clock):
    job = tracker.create("job-1")

    assert job.job_id == "job-1"
    assert job.status is JobStatus.EXTRACTING
    assert job.start_time == clock.now
    assert tracker.get("job-1").status is JobStatus.EXTRACTING


def test_create_generates_unique_ids(tracker):
    assert tracker.create().job_id != tracker.create().job_id


def test_duplicate_job_id_is_rejected(tracker):
    tracker.create("job-1")

    with pytest.raises(DuplicateJobError):
        tracker.create("job-1")


def test_happy_path(tracker, clock):
    tracker.create("job-1")
    tracker.set_status("job-1", JobStatus.SYNTHESIZING, total=2)
    tracker.record_progress("job-1", 1, "A")
    tracker.record_progress("job-1", 2, "B")
    tracker.set_status("job-1", JobStatus.SAVING)
    clock.advance(5)
    tracker.complete("job-1", "entry-1", [_outcome("A"), _outcome("B")])

    job = tracker.get("job-1")
    assert job.status is JobStatus.COMPLETED
    assert job.library_ref == "entry-1"
    assert job.error is None
    assert job.end_time == job.start_time + 5
    assert len(job.outcomes) == job.total == 2


def test_failure_records_message(tracker):
    tracker.create("job-1")
    tracker.fail("job-1", "Duplicate IDs found: A")

    job = tracker.get("job-1")
    assert job.status is JobStatus.FAILED
    assert job.error == "Duplicate IDs found: A"
    assert job.library_ref is None
    assert job.outcomes == []
    assert job.end_time is not None


@pytest.mark.parametrize(
    "path, illegal",
    [
        ([], JobStatus.SAVING),
        ([], JobStatus.COMPLETED),
        ([JobStatus.SYNTHESIZING], JobStatus.EXTRACTING),
        ([JobStatus.SYNTHESIZING], JobStatus.COMPLETED),
        ([JobStatus.SYNTHESIZING, JobStatus.SAVING], JobStatus.SYNTHESIZING),
        ([JobStatus.FAILED], JobStatus.SYNTHESIZING),
        ([JobStatus.FAILED], JobStatus.FAILED),
    ],
)
def test_illegal_transitions_are_rejected(tracker, path, illegal):
    tracker.create("job-1")
    for status in path:
        tracker.set_status("job-1", status)

    with pytest.raises(JobStateError):
        tracker.set_status("job-1", illegal)


def test_completed_job_cannot_fail(tracker):
    tracker.create("job-1")
    tracker.set_status("job-1", JobStatus.SYNTHESIZING, total=0)
    tracker.set_status("job-1", JobStatus.SAVING)
    tracker.complete("job-1", "entry-1", [])

    with pytest.raises(JobStateError):
        tracker.fail("job-1", "too late")


def test_progress_only_while_synthesizing(tracker):
    tracker.create("job-1")

    with pytest.raises(JobStateError):
        tracker.record_progress("job-1", 1, "A")


def test_progress_never_regresses_or_overflows(tracker):
    tracker.create("job-1")
    tracker.set_status("job-1", JobStatus.SYNTHESIZING, total=3)
    tracker.record_progress("job-1", 2, "B")

    with pytest.raises(JobStateError):
        tracker.record_progress("job-1", 1, "A")
    with pytest.raises(JobStateError):
        tracker.record_progress("job-1", 4, "D")

    assert tracker.get("job-1").completed == 2


def test_progress_listener_updates_job(tracker):
    tracker.create("job-1")
    tracker.set_status("job-1", JobStatus.SYNTHESIZING, total=2)
    listener = tracker.progress_listener("job-1")

    listener(ProgressEvent(completed=1, total=2, current="A"))

    job = tracker.get("job-1")
    assert (job.completed, job.current, job.progress) == (1, "A", 50)


def test_unknown_job_is_not_found(tracker):
    with pytest.raises(NotFoundError):
        tracker.get("missing")


def test_jobs_expire_from_creation_even_if_never_polled(tracker, clock):
    tracker.create("job-1")
    clock.advance(3599)
    assert tracker.get("job-1").job_id == "job-1"

    clock.advance(1)
    with pytest.raises(NotFoundError):
        tracker.get("job-1")


def test_completed_jobs_expire_too(tracker, clock):
    tracker.create("job-1")
    tracker.fail("job-1", "bad document")
    clock.advance(3600)

    with pytest.raises(NotFoundError):
        tracker.get("job-1")


def test_sweep_evicts_only_expired_jobs(tracker, clock):
    tracker.create("old")
    clock.advance(1800)
    tracker.create("new")
    clock.advance(1800)

    assert tracker.sweep() == 1
    assert len(tracker) == 1
    assert [job.job_id for job in tracker.list_jobs()] == ["new"]


def test_progress_for_evicted_job_is_dropped(tracker, clock):
    tracker.create("job-1")
    tracker.set_status("job-1", JobStatus.SYNTHESIZING, total=1)
    listener = tracker.progress_listener("job-1")
    clock.advance(3600)

    listener(ProgressEvent(completed=1, total=1, current="A"))

    assert len(tracker) == 0


def test_snapshots_are_isolated(tracker):
    tracker.create("job-1")
    tracker.fail("job-1", "boom", [_outcome()])

    snapshot = tracker.get("job-1")
    snapshot.outcomes.clear()
    snapshot.error = "changed"

    job = tracker.get("job-1")
    assert job.error == "boom"
    assert len(job.outcomes) == 1


def test_to_dict_exposes_outcomes_only_when_terminal(tracker):
    tracker.create("job-1")
    tracker.set_status("job-1", JobStatus.SYNTHESIZING, total=1)
    running = tracker.get("job-1").to_dict()
    tracker.set_status("job-1", JobStatus.SAVING)
    tracker.complete("job-1", "entry-1", [_outcome()])
    finished = tracker.get("job-1").to_dict()

    assert "outcomes" not in running
    assert running["status"] == "synthesizing"
    assert finished["progress"] == 100
    assert finished["library_ref"] == "entry-1"
    assert finished["outcomes"][0]["audio_ref"] == "A.wav"


def test_concurrent_writers_and_readers(tracker):
    job_ids = [f"job-{i}" for i in range(8)]
    for job_id in job_ids:
        tracker.create(job_id)
        tracker.set_status(job_id, JobStatus.SYNTHESIZING, total=200)
    errors = []

    def writer(job_id):
        try:
            for completed in range(1, 201):
                tracker.record_progress(job_id, completed, str(completed))
        except Exception as e:  # pragma: no cover - surfaced by the assertion below
            errors.append(e)

    def reader():
        try:
            for _ in range(200):
                for job_id in job_ids:
                    job = tracker.get(job_id)
                    assert 0 <= job.completed <= job.total
        except Exception as e:  # pragma: no cover - surfaced by the assertion below
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(job_id,)) for job_id in job_ids]
    threads += [threading.Thread(target=reader) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert all(tracker.get(job_id).completed == 200 for job_id in job_ids)
