"""
USSD menu state machine.

The gateway sends the whole accumulated input on every request ("1*AB12*1*5"),
so the position in the menu is derived from the tokens alone; only the
chosen nominee, price, vote count and payment reference live in the
VoteSession row.

Responses are prefixed "CON " when the gateway should keep the session open
and "END " when it should close it.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.logging import mask_phone
from models.vote_session import VoteSession
from repositories.catalog_repository import CatalogRepository
from repositories.vote_session_repository import VoteSessionRepository
from services.payment_errors import PaymentError, PaymentProviderError
from services.payment_initiator import PaymentInitiator
from services.paystack_client import PaystackClient

logger = structlog.get_logger(__name__)

# Menu choice -> Paystack mobile money provider code
NETWORKS = {
    "1": "mtn",
    "2": "atl",
    "3": "vod",
}

WELCOME = "CON Welcome to eVote\n1. Vote\n2. eTicket\n3. Help"
ENTER_NOMINEE_CODE = "CON Enter nominee code:"
ENTER_VOTE_COUNT = "CON Enter number of votes:"
SELECT_NETWORK = "CON Select mobile money network:\n1. MTN\n2. AirtelTigo\n3. Vodafone"

NOMINEE_NOT_FOUND = "END Nominee not found. Please check the code and try again."
VOTING_CLOSED = "END Voting is closed for this event."
INVALID_INPUT = "END Invalid input."
INVALID_VOTE_COUNT = "END Invalid number of votes."
SESSION_EXPIRED = "END Your session has expired. Please dial again to vote."
PAYMENT_IN_PROGRESS = "END A payment for this vote is already in progress."
CANCELLED = "END Voting cancelled."
PAYMENT_FAILED = "END Payment could not be initiated. Please try again later."
SERVICE_UNAVAILABLE = "END Service unavailable. Please try again later."

PROCEED = "1"
CANCEL = "0"


def split_input(text: Optional[str]) -> list[str]:
    """Split gateway input into trimmed tokens; empty input is the start state."""
    if not text or not text.strip():
        return []
    return [token.strip() for token in text.strip().split("*")]


class UssdMenu:
    """Renders one USSD screen per gateway request."""

    def __init__(self, db: AsyncSession, paystack: PaystackClient):
        self.db = db
        self.paystack = paystack
        self.catalog = CatalogRepository(db)
        self.sessions = VoteSessionRepository(db)

    async def handle(self, session_id: str, phone_number: str, text: Optional[str]) -> str:
        """Return the CON/END text for the current input. Never raises."""
        tokens = split_input(text)
        log = logger.bind(session_id=session_id, depth=len(tokens))

        try:
            return await self._dispatch(session_id, phone_number, tokens)
        except Exception:
            log.exception("USSD request failed", phone=mask_phone(phone_number))
            await self.db.rollback()
            return SERVICE_UNAVAILABLE

    async def _dispatch(self, session_id: str, phone_number: str, tokens: list[str]) -> str:
        if not tokens:
            return WELCOME

        choice = tokens[0]
        if choice == "2":
            return f"END Tickets are available at {settings.TICKETS_URL}"
        if choice == "3":
            return f"END For help, contact {settings.SUPPORT_CONTACT}"
        if choice != "1":
            return INVALID_INPUT

        depth = len(tokens)
        if depth == 1:
            return ENTER_NOMINEE_CODE
        if depth == 2:
            return await self._select_nominee(session_id, phone_number, tokens[1])
        if depth == 3:
            return self._confirm_nominee(tokens[2])
        if tokens[2] != PROCEED:
            return INVALID_INPUT
        if depth == 4:
            return await self._set_vote_count(session_id, tokens[3])
        if depth == 5:
            return self._confirm_payment(tokens[4])
        if tokens[4] != PROCEED:
            return INVALID_INPUT
        if depth == 6:
            return await self._pay(session_id, phone_number, tokens[5])
        return INVALID_INPUT

    async def _live_session(self, session_id: str) -> Optional[VoteSession]:
        session = await self.sessions.get(session_id)
        if session is None or session.is_expired(settings.USSD_SESSION_TIMEOUT_SECONDS):
            return None
        return session

    async def _select_nominee(self, session_id: str, phone_number: str, code: str) -> str:
        if not code:
            return NOMINEE_NOT_FOUND

        context = await self.catalog.resolve_nominee_code(code)
        if context is None:
            logger.info("Unknown nominee code", session_id=session_id, code=code)
            return NOMINEE_NOT_FOUND
        if not context.event.is_open_for_voting():
            return VOTING_CLOSED

        await self.sessions.upsert_selection(
            session_id=session_id,
            phone_number=phone_number,
            event_id=context.event.id,
            nominee_code=context.nominee.code,
            vote_price=context.event.vote_price,
        )
        return (
            f"CON Nominee: {context.nominee.name}\n"
            f"Category: {context.category.name}\n"
            f"Code: {context.nominee.code}\n"
            f"1. Proceed\n0. Cancel"
        )

    @staticmethod
    def _confirm_nominee(choice: str) -> str:
        if choice == PROCEED:
            return ENTER_VOTE_COUNT
        if choice == CANCEL:
            return CANCELLED
        return INVALID_INPUT

    async def _set_vote_count(self, session_id: str, raw_count: str) -> str:
        if not (raw_count.isascii() and raw_count.isdecimal()):
            return INVALID_VOTE_COUNT
        vote_count = int(raw_count)
        if vote_count <= 0 or vote_count > settings.MAX_VOTES_PER_TRANSACTION:
            return INVALID_VOTE_COUNT

        session = await self._live_session(session_id)
        if session is None:
            return SESSION_EXPIRED
        if session.payment_reference:
            return PAYMENT_IN_PROGRESS

        if not await self.sessions.set_vote_count(session_id, vote_count):
            # Payment attached between our read and the update
            return PAYMENT_IN_PROGRESS
        session.vote_count = vote_count

        return f"CON Total cost is GHC {session.total_amount:.2f}\n1. Continue\n0. Cancel"

    @staticmethod
    def _confirm_payment(choice: str) -> str:
        if choice == PROCEED:
            return SELECT_NETWORK
        if choice == CANCEL:
            return CANCELLED
        return INVALID_INPUT

    async def _pay(self, session_id: str, phone_number: str, network_choice: str) -> str:
        network = NETWORKS.get(network_choice)
        if network is None:
            return "END Invalid network selection."

        session = await self._live_session(session_id)
        if session is None:
            return SESSION_EXPIRED

        initiator = PaymentInitiator(self.db, self.paystack)
        try:
            result = await initiator.initiate(session_id, network, phone_number)
        except PaymentProviderError as e:
            logger.warning("Charge initiation failed", session_id=session_id, error=str(e))
            return PAYMENT_FAILED
        except PaymentError as e:
            logger.warning("Session cannot be charged", session_id=session_id, error=str(e))
            return PAYMENT_FAILED

        return f"END {result.instructions}"
