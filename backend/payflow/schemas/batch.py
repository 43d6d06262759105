"""Response bodies of the scheduled job endpoints."""

from typing import List, Optional

from pydantic import Field

from ..services.batch_runner import BatchJobResult
from .base import StandardizedModel


class BatchJobResponse(StandardizedModel):
    success: bool = True
    message: str
    processed: int
    errors: int
    error_details: Optional[List[str]] = Field(default=None, alias="errorDetails")
    skipped: int
    duration: int

    @classmethod
    def from_result(cls, result: BatchJobResult, message: str) -> "BatchJobResponse":
        return cls(
            message=message,
            processed=result.processed,
            errors=result.errors,
            errorDetails=result.error_details or None,
            skipped=result.skipped,
            duration=result.duration_ms,
        )


class BatchJobFailure(StandardizedModel):
    success: bool = False
    message: str
    error: str
    processed: int = 0
    errors: int
    duration: int
