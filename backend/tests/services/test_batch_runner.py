"""Tests for the shared batch loop: per-item classification and the fatal path."""

import pytest

from payflow.core.exceptions import ConflictError, DataIntegrityAnomaly, FatalError, ProcessorError
from payflow.services.batch_runner import BatchJobResult, BatchJobRunner


def _handler(outcomes):
    """Handler raising the exception mapped to each item, if any."""

    def handle(item):
        exc = outcomes.get(item)
        if exc is not None:
            raise exc

    return handle


class TestBatchJobRunner:
    def test_counts_every_outcome(self):
        runner = BatchJobRunner()
        outcomes = {
            "b2": DataIntegrityAnomaly("no card"),
            "b3": ConflictError(),
            "b4": ProcessorError("declined", retryable=False),
            "b5": RuntimeError("boom"),
        }

        result = runner.run(
            "test-job",
            fetch=lambda: ["b1", "b2", "b3", "b4", "b5", "b6"],
            handle=_handler(outcomes),
            key=lambda item: item,
        )

        assert result.processed == 2
        assert result.skipped == 2
        assert result.errors == 2
        assert result.total == 6
        assert result.error_details == ["b4: declined", "b5: boom"]

    def test_one_failure_does_not_stop_the_loop(self):
        handled = []

        def handle(item):
            handled.append(item)
            if item == 1:
                raise ValueError("first one fails")

        result = BatchJobRunner().run("job", lambda: [1, 2, 3], handle, key=str)

        assert handled == [1, 2, 3]
        assert result.errors == 1
        assert result.processed == 2

    def test_empty_candidate_set(self):
        result = BatchJobRunner().run("job", lambda: [], _handler({}), key=str)
        assert result.total == 0
        assert result.error_details == []

    def test_fetch_failure_is_fatal(self):
        def fetch():
            raise RuntimeError("database unavailable")

        with pytest.raises(FatalError) as exc_info:
            BatchJobRunner().run("job", fetch, _handler({}), key=str)
        assert "database unavailable" in exc_info.value.message

    def test_broken_key_does_not_break_the_run(self):
        def key(item):
            raise AttributeError("no booking id")

        result = BatchJobRunner().run("job", lambda: ["x"], _handler({"x": RuntimeError("bad")}), key)
        assert result.error_details == ["unknown: bad"]


class TestBatchJobResult:
    def test_summary_truncates_error_list(self):
        result = BatchJobResult(
            job_name="capture-payments",
            processed=1,
            errors=5,
            error_details=[f"b{i}: failed" for i in range(5)],
            duration_ms=12,
        )

        summary = result.summary()

        assert summary.startswith("capture-payments: 1 processed, 0 skipped, 5 errors in 12ms")
        assert "b0: failed; b1: failed; b2: failed ... and 2 more" in summary
        assert "b3" not in summary

    def test_summary_without_errors(self):
        result = BatchJobResult(job_name="job", processed=3)
        assert result.summary() == "job: 3 processed, 0 skipped, 0 errors in 0ms"

    def test_payload(self):
        result = BatchJobResult(job_name="job", processed=1, skipped=2, errors=1, error_details=["b: x"])
        assert result.to_payload() == {
            "processed": 1,
            "errors": 1,
            "skipped": 2,
            "errorDetails": ["b: x"],
            "duration": 0,
        }
