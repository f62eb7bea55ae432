"""
USSD gateway endpoint.

The gateway POSTs form fields on every keypress batch and shows whatever
plain text comes back. The answer is always HTTP 200; errors are END screens.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Form
from fastapi.responses import PlainTextResponse

from api.deps import get_ussd_menu
from core.logging import mask_phone
from services.ussd_menu import UssdMenu

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("", response_class=PlainTextResponse)
async def ussd_callback(
    session_id: Annotated[str, Form(alias="sessionId")],
    phone_number: Annotated[str, Form(alias="phoneNumber")],
    menu: Annotated[UssdMenu, Depends(get_ussd_menu)],
    text: Annotated[str, Form()] = "",
) -> PlainTextResponse:
    """Render the next USSD screen for the accumulated input."""
    structlog.contextvars.bind_contextvars(session_id=session_id)
    logger.debug("USSD request", phone=mask_phone(phone_number), text_length=len(text))

    response = await menu.handle(session_id, phone_number, text)
    return PlainTextResponse(response)
