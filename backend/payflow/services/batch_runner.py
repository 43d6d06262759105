# backend/payflow/services/batch_runner.py
"""
Sequential batch loop shared by the scheduled payment jobs.

A run fetches its candidate set once, then handles each item in order.
One item's failure never stops the loop: data anomalies and lost state
races are skipped, everything else is recorded as an error against the
item's booking id. Only a failure to fetch the candidates aborts the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Callable, Iterable, List, TypeVar

from ..core.exceptions import ConflictError, DataIntegrityAnomaly, FatalError
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROCESSED = "processed"
SKIPPED = "skipped"
ERROR = "error"


@dataclass
class BatchJobResult:
    job_name: str
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def total(self) -> int:
        return self.processed + self.skipped + self.errors

    def summary(self, limit: int = 3) -> str:
        """Human-readable outcome, listing at most ``limit`` error strings."""
        text = (
            f"{self.job_name}: {self.processed} processed, "
            f"{self.skipped} skipped, {self.errors} errors in {self.duration_ms}ms"
        )
        if not self.error_details:
            return text
        shown = "; ".join(self.error_details[:limit])
        remaining = len(self.error_details) - limit
        if remaining > 0:
            shown = f"{shown} ... and {remaining} more"
        return f"{text} ({shown})"

    def to_payload(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "errors": self.errors,
            "skipped": self.skipped,
            "errorDetails": list(self.error_details),
            "duration": self.duration_ms,
        }


class BatchJobRunner:
    """Runs fetch-then-handle batch loops and aggregates their outcome."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def run(
        self,
        job_name: str,
        fetch: Callable[[], Iterable[T]],
        handle: Callable[[T], Any],
        key: Callable[[T], str],
    ) -> BatchJobResult:
        """
        Fetch candidates and handle each one.

        Raises:
            FatalError: fetching the candidate set failed
        """
        started = time.monotonic()
        result = BatchJobResult(job_name=job_name)

        try:
            items = list(fetch())
        except Exception as exc:
            elapsed = time.monotonic() - started
            prometheus_metrics.record_batch_run(job_name, elapsed, "fatal")
            self.logger.error(f"[CRON] {job_name}: failed to fetch candidates: {exc}", exc_info=True)
            raise FatalError(f"Failed to fetch candidates: {exc}", job_name=job_name) from exc

        self.logger.info(f"[CRON] {job_name}: {len(items)} candidate(s)")

        for item in items:
            item_key = self._safe_key(key, item)
            try:
                handle(item)
            except (DataIntegrityAnomaly, ConflictError) as exc:
                result.skipped += 1
                prometheus_metrics.record_batch_item(job_name, SKIPPED)
                self.logger.warning(f"[CRON] {job_name}: skipped {item_key}: {exc}")
                continue
            except Exception as exc:
                result.errors += 1
                result.error_details.append(f"{item_key}: {exc}")
                prometheus_metrics.record_batch_item(job_name, ERROR)
                self.logger.error(f"[CRON] {job_name}: error on {item_key}: {exc}", exc_info=True)
                continue

            result.processed += 1
            prometheus_metrics.record_batch_item(job_name, PROCESSED)

        elapsed = time.monotonic() - started
        result.duration_ms = int(elapsed * 1000)
        prometheus_metrics.record_batch_run(job_name, elapsed, "completed")
        self.logger.info(f"[CRON] {result.summary()}")
        return result

    @staticmethod
    def _safe_key(key: Callable[[Any], str], item: Any) -> str:
        try:
            return str(key(item))
        except Exception:
            return "unknown"
