"""Database models module."""

from models.catalog import Category, Event, Nominee
from models.distributed_lock import DistributedLock
from models.payment import Payment, PaymentSource, PaymentStatus
from models.vote import Vote
from models.vote_session import SessionPaymentStatus, VoteSession

__all__ = [
    "Event",
    "Category",
    "Nominee",
    "VoteSession",
    "SessionPaymentStatus",
    "Payment",
    "PaymentStatus",
    "PaymentSource",
    "Vote",
    "DistributedLock",
]
