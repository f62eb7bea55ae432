"""Repository modules for database access."""

from repositories.catalog_repository import CatalogRepository, NomineeContext
from repositories.payment_repository import PaymentRepository
from repositories.vote_repository import VoteRepository
from repositories.vote_session_repository import VoteSessionRepository

__all__ = [
    "CatalogRepository",
    "NomineeContext",
    "PaymentRepository",
    "VoteRepository",
    "VoteSessionRepository",
]
