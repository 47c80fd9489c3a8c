"""Database models for the Love Wall application."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from .extensions import db

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
COUPLE_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

PAYMENT_CREATED = "created"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_STATUSES = (PAYMENT_CREATED, PAYMENT_PAID, PAYMENT_FAILED)
PAYMENT_CURRENCIES = ("usd", "eur", "gbp")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


class Couple(db.Model):
    __tablename__ = "couples"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_couples_status",
        ),
        db.Index("ix_couples_status_created_at", "status", "created_at"),
        db.Index("ix_couples_secret_code_names", "secret_code", "names"),
    )

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(160), nullable=False, unique=True, index=True)
    names = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255))
    phone_number = db.Column(db.String(32))
    wedding_date = db.Column(db.Date)
    country = db.Column(db.String(80))
    story = db.Column(db.String(500))
    photo_url = db.Column(db.Text, nullable=False)
    thumb_url = db.Column(db.Text, nullable=False)
    photo_key = db.Column(db.String(512))
    thumb_key = db.Column(db.String(512))
    secret_code = db.Column(db.String(8), nullable=False)
    status = db.Column(
        db.String(16), nullable=False, default=STATUS_PENDING, index=True
    )
    payment_id = db.Column(db.String(255), index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    @property
    def is_approved(self) -> bool:
        return self.status == STATUS_APPROVED

    def to_dict(self, *, include_secret: bool = False) -> dict[str, Any]:
        payload = {
            "id": self.id,
            "slug": self.slug,
            "names": self.names,
            "wedding_date": self.wedding_date.isoformat() if self.wedding_date else None,
            "country": self.country,
            "story": self.story,
            "photo_url": self.photo_url,
            "thumb_url": self.thumb_url,
            "status": self.status,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }
        if include_secret:
            payload["secret_code"] = self.secret_code
            payload["email"] = self.email
        return payload


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(255), nullable=False, unique=True, index=True)
    amount = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="usd")
    status = db.Column(db.String(16), nullable=False, default=PAYMENT_CREATED, index=True)
    couple_id = db.Column(
        db.Integer,
        db.ForeignKey("couples.id", ondelete="SET NULL"),
        nullable=True,
    )
    extra_fields = db.Column(db.JSON, default=dict, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    @property
    def is_paid(self) -> bool:
        return self.status == PAYMENT_PAID

    @property
    def is_redeemed(self) -> bool:
        """True once a couple has been submitted against this payment."""
        return self.couple_id is not None or bool((self.extra_fields or {}).get("redeemed_at"))

    @property
    def formatted_amount(self) -> str:
        return f"{self.amount / 100:.2f} {self.currency.upper()}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "couple_id": self.couple_id,
            "created_at": _isoformat(self.created_at),
        }
