"""
Repository layer for the payment orchestrator.

Repositories own every SQL statement; services call them and never touch
the session directly for queries.
"""

from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory
from .payment_repository import PaymentRepository
from .professional_repository import ProfessionalRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "PaymentRepository",
    "ProfessionalRepository",
    "RepositoryFactory",
]
