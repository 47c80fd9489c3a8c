"""Moderation and removal transitions for couple submissions.

``pending`` moves to ``approved`` or ``rejected`` only through an
authenticated admin action. Removal is a hard delete, either by the admin or
by the couple presenting their exact names and secret code.
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import has_app_context

from ..models import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED, Couple
from . import couples, s3

LOGGER = logging.getLogger(__name__)

REMOVAL_DENIED_MESSAGE = "Invalid names or secret code"

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_APPROVED, STATUS_REJECTED}),
    STATUS_APPROVED: frozenset({STATUS_APPROVED}),
    STATUS_REJECTED: frozenset({STATUS_REJECTED}),
}


class ModerationError(RuntimeError):
    """Base exception for moderation failures."""


class CoupleNotFound(ModerationError):
    """Raised when the targeted couple does not exist."""


class InvalidTransition(ModerationError):
    """Raised when a status change is not allowed from the current state."""


class RemovalDenied(ModerationError):
    """Raised when names and secret code do not identify a couple."""

    def __init__(self) -> None:
        super().__init__(REMOVAL_DENIED_MESSAGE)


def can_transition(current: str, target: str) -> bool:
    return target in _ALLOWED_TRANSITIONS.get(current, frozenset())


def approve(couple_id: int) -> Couple:
    return _transition(couple_id, STATUS_APPROVED)


def reject(couple_id: int) -> Couple:
    return _transition(couple_id, STATUS_REJECTED)


def _transition(couple_id: int, target: str) -> Couple:
    couple = couples.get_couple(couple_id)
    if couple is None:
        raise CoupleNotFound(f"Couple {couple_id} not found")
    if not can_transition(couple.status, target):
        raise InvalidTransition(
            f"Cannot move couple {couple_id} from {couple.status} to {target}"
        )
    if couple.status == target:
        return couple

    try:
        updated = couples.update_status(couple_id, target)
    except couples.CoupleStoreError as exc:
        raise ModerationError(str(exc)) from exc
    if updated is None:  # pragma: no cover - deleted between read and write
        raise CoupleNotFound(f"Couple {couple_id} not found")
    return updated


def remove_with_secret(
    names: str | None,
    secret_code: str | None,
    *,
    reason: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Permanently delete the couple identified by ``names`` and ``secret_code``.

    Returns the removed slug. Any mismatch raises :class:`RemovalDenied` with
    the same generic message.
    """
    log = logger or LOGGER
    couple = couples.find_by_name_and_secret(names, secret_code)
    if couple is None:
        log.info("Rejected removal request with non-matching credentials")
        raise RemovalDenied()

    if reason:
        log.info("Removal requested for %s: %s", couple.slug, reason.strip()[:500])
    return _hard_delete(couple, logger=log)


def admin_delete(couple_id: int, *, logger: Optional[logging.Logger] = None) -> str:
    couple = couples.get_couple(couple_id)
    if couple is None:
        raise CoupleNotFound(f"Couple {couple_id} not found")
    return _hard_delete(couple, logger=logger or LOGGER)


def _hard_delete(couple: Couple, *, logger: logging.Logger) -> str:
    slug = couple.slug
    keys = [key for key in (couple.photo_key, couple.thumb_key) if key]

    try:
        couples.delete_couple(couple)
    except couples.CoupleStoreError as exc:
        raise ModerationError(str(exc)) from exc

    _discard_renditions(keys, logger=logger)
    return slug


def _discard_renditions(keys: list[str], *, logger: logging.Logger) -> None:
    if not keys or not has_app_context():
        return
    try:
        s3.delete_renditions(keys)
    except s3.S3ConfigurationError:
        logger.debug("S3 not configured; leaving objects %s in place", keys)
    except s3.S3Error:
        logger.warning("Failed to delete S3 objects %s", keys, exc_info=True)
