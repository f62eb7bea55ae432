"""
Shared dependencies for API endpoints.

Services are built per request from the request's DB session and the
process-wide Paystack client, so tests can override either one.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.session import get_db
from services.otp_relay import OtpRelay
from services.payment_initiator import PaymentInitiator
from services.payment_reconciler import PaymentReconciler
from services.paystack_client import PaystackClient, get_paystack_client
from services.ussd_menu import UssdMenu


def get_ussd_menu(
    db: AsyncSession = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack_client),
) -> UssdMenu:
    return UssdMenu(db, paystack)


def get_payment_reconciler(
    db: AsyncSession = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack_client),
) -> PaymentReconciler:
    return PaymentReconciler(db, paystack)


def get_payment_initiator(
    db: AsyncSession = Depends(get_db),
    paystack: PaystackClient = Depends(get_paystack_client),
) -> PaymentInitiator:
    return PaymentInitiator(db, paystack)


def get_otp_relay(paystack: PaystackClient = Depends(get_paystack_client)) -> OtpRelay:
    return OtpRelay(paystack)
