"""
Tests for the USSD menu state machine.

Each test drives one gateway request; the menu position comes from the
accumulated input only.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from schemas.payment import ChargeOutcome
from services.payment_errors import PaymentProviderError
from services.payment_initiator import InitiationResult
from services.ussd_menu import (
    CANCELLED,
    ENTER_NOMINEE_CODE,
    ENTER_VOTE_COUNT,
    INVALID_INPUT,
    INVALID_VOTE_COUNT,
    NOMINEE_NOT_FOUND,
    PAYMENT_FAILED,
    PAYMENT_IN_PROGRESS,
    SELECT_NETWORK,
    SERVICE_UNAVAILABLE,
    SESSION_EXPIRED,
    VOTING_CLOSED,
    WELCOME,
    UssdMenu,
    split_input,
)

SESSION_ID = "sess-1"
PHONE = "233241234567"


@pytest.fixture
def menu(mock_db_session, mock_paystack, make_session, nominee_context):
    menu = UssdMenu(mock_db_session, mock_paystack)
    menu.catalog = AsyncMock()
    menu.catalog.resolve_nominee_code = AsyncMock(return_value=nominee_context)
    menu.sessions = AsyncMock()
    menu.sessions.get = AsyncMock(return_value=make_session())
    menu.sessions.set_vote_count = AsyncMock(return_value=True)
    return menu


@pytest.mark.unit
def test_split_input() -> None:
    assert split_input(None) == []
    assert split_input("") == []
    assert split_input("  ") == []
    assert split_input("1* ab12 *1") == ["1", "ab12", "1"]


@pytest.mark.unit
class TestStaticScreens:
    """Screens that need no data."""

    async def test_welcome(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "") == WELCOME

    async def test_vote_prompts_for_code(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "1") == ENTER_NOMINEE_CODE

    async def test_eticket(self, menu) -> None:
        response = await menu.handle(SESSION_ID, PHONE, "2")
        assert response.startswith("END ")

    async def test_help(self, menu) -> None:
        from core.config import settings

        response = await menu.handle(SESSION_ID, PHONE, "3")
        assert response.startswith("END ")
        assert settings.SUPPORT_CONTACT in response

    @pytest.mark.parametrize("text", ["4", "9*1", "abc"])
    async def test_unknown_top_level_choice(self, menu, text) -> None:
        assert await menu.handle(SESSION_ID, PHONE, text) == INVALID_INPUT

    async def test_every_response_is_con_or_end(self, menu) -> None:
        for text in ["", "1", "1*AB12", "1*AB12*1", "1*AB12*1*5", "1*AB12*1*5*1", "2", "3", "7"]:
            response = await menu.handle(SESSION_ID, PHONE, text)
            assert response.startswith(("CON ", "END "))


@pytest.mark.unit
class TestNomineeSelection:
    """Step 2: 1*code."""

    async def test_found_nominee_creates_session(self, menu) -> None:
        response = await menu.handle(SESSION_ID, PHONE, "1*ab12")

        assert response.startswith("CON ")
        assert "Ama Boateng" in response
        assert "AB12" in response
        assert "1. Proceed" in response
        menu.catalog.resolve_nominee_code.assert_awaited_once_with("ab12")
        menu.sessions.upsert_selection.assert_awaited_once_with(
            session_id=SESSION_ID,
            phone_number=PHONE,
            event_id="event-1",
            nominee_code="AB12",
            vote_price=Decimal("1.00"),
        )

    async def test_unknown_nominee_creates_nothing(self, menu) -> None:
        menu.catalog.resolve_nominee_code = AsyncMock(return_value=None)

        assert await menu.handle(SESSION_ID, PHONE, "1*ZZ99") == NOMINEE_NOT_FOUND
        menu.sessions.upsert_selection.assert_not_awaited()

    async def test_closed_event_creates_nothing(self, menu, nominee_context) -> None:
        nominee_context.event.is_open_for_voting.return_value = False

        assert await menu.handle(SESSION_ID, PHONE, "1*AB12") == VOTING_CLOSED
        menu.sessions.upsert_selection.assert_not_awaited()


@pytest.mark.unit
class TestConfirmations:
    """Steps 3 and 5."""

    async def test_proceed(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*1") == ENTER_VOTE_COUNT

    async def test_cancel(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*0") == CANCELLED

    async def test_invalid_confirmation(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*7") == INVALID_INPUT

    async def test_continue_to_networks(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5*1") == SELECT_NETWORK

    async def test_cancel_payment(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5*0") == CANCELLED

    async def test_cancelled_path_cannot_continue(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*0*5") == INVALID_INPUT


@pytest.mark.unit
class TestVoteCount:
    """Step 4: 1*code*1*n."""

    async def test_valid_count_shows_total(self, menu) -> None:
        response = await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5")

        assert response.startswith("CON Total cost is GHC 5.00")
        menu.sessions.set_vote_count.assert_awaited_once_with(SESSION_ID, 5)

    async def test_total_uses_session_price(self, menu, make_session) -> None:
        menu.sessions.get = AsyncMock(return_value=make_session(vote_price=Decimal("2.00")))

        response = await menu.handle(SESSION_ID, PHONE, "1*N001*1*5")

        assert response.startswith("CON Total cost is GHC 10.00")

    @pytest.mark.parametrize("count", ["0", "-3", "abc", "2.5", "10001", "²", "٣"])
    async def test_invalid_count(self, menu, count) -> None:
        assert await menu.handle(SESSION_ID, PHONE, f"1*AB12*1*{count}") == INVALID_VOTE_COUNT
        menu.sessions.set_vote_count.assert_not_awaited()

    async def test_missing_session(self, menu) -> None:
        menu.sessions.get = AsyncMock(return_value=None)

        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5") == SESSION_EXPIRED
        menu.sessions.set_vote_count.assert_not_awaited()

    async def test_expired_session(self, menu, make_session) -> None:
        stale = make_session(created_at=datetime.now(timezone.utc) - timedelta(minutes=10))
        menu.sessions.get = AsyncMock(return_value=stale)

        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5") == SESSION_EXPIRED

    async def test_payment_already_initiated(self, menu, make_session) -> None:
        menu.sessions.get = AsyncMock(return_value=make_session(vote_count=5, payment_reference="ussd_x"))

        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*1*9") == PAYMENT_IN_PROGRESS
        menu.sessions.set_vote_count.assert_not_awaited()

    async def test_lost_update_race(self, menu) -> None:
        menu.sessions.set_vote_count = AsyncMock(return_value=False)

        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5") == PAYMENT_IN_PROGRESS


@pytest.mark.unit
class TestPay:
    """Step 6: 1*code*1*n*1*k."""

    @pytest.mark.parametrize("choice,network", [("1", "mtn"), ("2", "atl"), ("3", "vod")])
    async def test_network_mapping(self, menu, make_session, choice, network) -> None:
        menu.sessions.get = AsyncMock(return_value=make_session(vote_count=5))

        with patch("services.ussd_menu.PaymentInitiator") as initiator_cls:
            initiator_cls.return_value.initiate = AsyncMock(
                return_value=InitiationResult(
                    reference="ussd_x",
                    outcome=ChargeOutcome.PAY_OFFLINE,
                    instructions="Approve the prompt on your phone",
                )
            )
            response = await menu.handle(SESSION_ID, PHONE, f"1*AB12*1*5*1*{choice}")

        assert response == "END Approve the prompt on your phone"
        initiator_cls.return_value.initiate.assert_awaited_once_with(SESSION_ID, network, PHONE)

    async def test_unknown_network(self, menu) -> None:
        with patch("services.ussd_menu.PaymentInitiator") as initiator_cls:
            response = await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5*1*4")

        assert response.startswith("END ")
        initiator_cls.assert_not_called()

    async def test_expired_session(self, menu) -> None:
        menu.sessions.get = AsyncMock(return_value=None)

        with patch("services.ussd_menu.PaymentInitiator") as initiator_cls:
            response = await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5*1*1")

        assert response == SESSION_EXPIRED
        initiator_cls.assert_not_called()

    async def test_provider_failure(self, menu, make_session) -> None:
        menu.sessions.get = AsyncMock(return_value=make_session(vote_count=5))

        with patch("services.ussd_menu.PaymentInitiator") as initiator_cls:
            initiator_cls.return_value.initiate = AsyncMock(side_effect=PaymentProviderError("timeout"))
            response = await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5*1*1")

        assert response == PAYMENT_FAILED

    async def test_too_many_tokens(self, menu) -> None:
        assert await menu.handle(SESSION_ID, PHONE, "1*AB12*1*5*1*1*1") == INVALID_INPUT


@pytest.mark.unit
class TestUnexpectedErrors:
    """handle() never raises."""

    async def test_database_error_renders_service_unavailable(self, menu, mock_db_session) -> None:
        menu.catalog.resolve_nominee_code = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("connection lost"))
        )

        assert await menu.handle(SESSION_ID, PHONE, "1*AB12") == SERVICE_UNAVAILABLE
        mock_db_session.rollback.assert_awaited_once()
