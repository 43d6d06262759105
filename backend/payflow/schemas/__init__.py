"""Pydantic schemas for the HTTP surface."""

from .batch import BatchJobFailure, BatchJobResponse
from .cancellation import CancelBookingRequest, CancellationResponse, NoShowRequest
from .cancellation_policy import CancellationPolicyResponse, CancellationPolicyUpdate

__all__ = [
    "BatchJobFailure",
    "BatchJobResponse",
    "CancelBookingRequest",
    "CancellationPolicyResponse",
    "CancellationPolicyUpdate",
    "CancellationResponse",
    "NoShowRequest",
]
