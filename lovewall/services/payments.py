"""Stripe checkout helpers for the submission fee."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional

import requests
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import PAYMENT_CREATED, PAYMENT_CURRENCIES, PAYMENT_FAILED, PAYMENT_PAID, Payment

LOGGER = logging.getLogger(__name__)
MINIMUM_AMOUNT = 100
_PRODUCT_NAME = "Photo Wall Submission"
_PRODUCT_DESCRIPTION = "Add your wedding photo to the Love Wall"


class PaymentError(RuntimeError):
    """Base exception for payment provider failures."""


class PaymentConfigurationError(PaymentError):
    """Raised when the payment provider is not configured."""


class InvalidAmountError(PaymentError, ValueError):
    """Raised when a checkout amount is below the minimum."""


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True, slots=True)
class PaymentVerification:
    session_id: str
    paid: bool
    amount: int
    currency: str
    status: str
    customer_email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "customer_email": self.customer_email,
        }


def create_checkout(
    amount: int,
    *,
    success_url: str,
    cancel_url: str,
    currency: str | None = None,
    session: Optional[requests.Session] = None,
) -> CheckoutSession:
    """Create a hosted checkout session for ``amount`` minor currency units."""
    if amount is None or int(amount) < MINIMUM_AMOUNT:
        raise InvalidAmountError("Invalid amount")
    resolved_currency = (currency or current_app.config.get("SUBMISSION_CURRENCY", "usd")).lower()
    if resolved_currency not in PAYMENT_CURRENCIES:
        raise InvalidAmountError(f"Unsupported currency {resolved_currency!r}")

    form = {
        "mode": "payment",
        "payment_method_types[0]": "card",
        "line_items[0][quantity]": "1",
        "line_items[0][price_data][currency]": resolved_currency,
        "line_items[0][price_data][unit_amount]": str(int(amount)),
        "line_items[0][price_data][product_data][name]": _PRODUCT_NAME,
        "line_items[0][price_data][product_data][description]": _PRODUCT_DESCRIPTION,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata[product]": "photo_wall_submission",
        "metadata[amount]": str(int(amount)),
    }
    payload = _stripe_request("POST", "/checkout/sessions", data=form, session=session)

    session_id = payload.get("id")
    url = payload.get("url")
    if not session_id or not url:
        raise PaymentError("Checkout session response is missing id or url")

    _record_payment(session_id, amount=int(amount), currency=resolved_currency)
    LOGGER.info("Created checkout session %s for %s %s", session_id, amount, resolved_currency)
    return CheckoutSession(id=session_id, url=url)


def verify(session_id: str, *, session: Optional[requests.Session] = None) -> PaymentVerification:
    """Look up a checkout session and record whether it was paid."""
    if not session_id:
        raise PaymentError("Session ID is required")

    payload = _stripe_request("GET", f"/checkout/sessions/{session_id}", session=session)
    status = str(payload.get("payment_status") or "unpaid")
    details = payload.get("customer_details") or {}
    verification = PaymentVerification(
        session_id=str(payload.get("id") or session_id),
        paid=status == "paid",
        amount=int(payload.get("amount_total") or 0),
        currency=str(payload.get("currency") or "usd").lower(),
        status=status,
        customer_email=details.get("email"),
    )
    _record_payment(
        verification.session_id,
        amount=verification.amount,
        currency=verification.currency,
        status=PAYMENT_PAID if verification.paid else PAYMENT_FAILED,
    )
    return verification


def is_session_paid(session_id: str | None) -> bool:
    """True when ``session_id`` was verified as paid and no couple has used it yet."""
    if not session_id:
        return False
    payment = Payment.query.filter_by(session_id=session_id).first()
    return bool(payment and payment.is_paid and not payment.is_redeemed)


def is_session_redeemed(session_id: str | None) -> bool:
    if not session_id:
        return False
    payment = Payment.query.filter_by(session_id=session_id).first()
    return bool(payment and payment.is_redeemed)


def attach_couple(session_id: str | None, couple_id: int) -> None:
    if not session_id:
        return
    payment = Payment.query.filter_by(session_id=session_id).first()
    if payment is None:
        return
    payment.couple_id = couple_id
    payment.extra_fields = {
        **(payment.extra_fields or {}),
        "redeemed_at": datetime.now(UTC).isoformat(),
    }
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        LOGGER.warning("Failed to link payment %s to couple %s", session_id, couple_id, exc_info=True)


def _record_payment(
    session_id: str,
    *,
    amount: int,
    currency: str,
    status: str = PAYMENT_CREATED,
) -> Payment | None:
    payment = Payment.query.filter_by(session_id=session_id).first()
    if payment is None:
        payment = Payment(session_id=session_id)
        db.session.add(payment)
    if payment.status != PAYMENT_PAID:
        payment.status = status
    payment.amount = amount
    payment.currency = currency if currency in PAYMENT_CURRENCIES else "usd"
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        LOGGER.exception("Failed to record payment %s", session_id)
        return None
    return payment


def _stripe_request(
    method: str,
    path: str,
    *,
    data: dict[str, str] | None = None,
    session: Optional[requests.Session] = None,
) -> dict[str, Any]:
    secret_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not secret_key:
        raise PaymentConfigurationError("Stripe secret key is not configured")
    base_url = str(current_app.config.get("STRIPE_API_BASE", "https://api.stripe.com/v1")).rstrip("/")
    timeout = int(current_app.config.get("STRIPE_TIMEOUT", 15))
    http = session or requests

    try:
        response = http.request(
            method,
            f"{base_url}{path}",
            auth=(secret_key, ""),
            data=data,
            timeout=timeout,
        )
        response.raise_for_status()
        payload = response.json()
    except requests.RequestException as exc:
        raise PaymentError(f"Payment provider request failed: {exc}") from exc
    except ValueError as exc:
        raise PaymentError("Payment provider returned invalid JSON") from exc

    if not isinstance(payload, dict):
        raise PaymentError("Payment provider returned an unexpected payload")
    return payload
