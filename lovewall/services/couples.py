"""Record store for couple submissions."""

from __future__ import annotations

import logging
import math
import re
import secrets
import string
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import COUPLE_STATUSES, STATUS_APPROVED, STATUS_PENDING, Couple

LOGGER = logging.getLogger(__name__)

SECRET_CODE_LENGTH = 8
SLUG_SUFFIX_LENGTH = 6
DEFAULT_SLUG_ATTEMPTS = 10
_SLUG_ALPHABET = string.ascii_lowercase + string.digits
_SLUG_STRIP = re.compile(r"[^a-z0-9\s]")
_SLUG_SPACES = re.compile(r"\s+")
_SECRET_PATTERN = re.compile(rf"^\d{{{SECRET_CODE_LENGTH}}}$")


class CoupleStoreError(RuntimeError):
    """Base exception for record store failures."""


class SlugGenerationError(CoupleStoreError):
    """Raised when no unique slug was found within the retry bound."""


class InvalidCoupleError(ValueError):
    """Raised when a couple payload fails basic validation."""


@dataclass(slots=True)
class CouplePage:
    """Pagination payload for couple listings."""

    items: list[Couple]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "pages": self.pages,
        }


def slugify_names(names: str) -> str:
    cleaned = _SLUG_STRIP.sub("", (names or "").lower())
    cleaned = _SLUG_SPACES.sub("-", cleaned.strip())
    return cleaned.strip("-") or "couple"


def generate_slug(names: str, *, token: Callable[[], str] | None = None) -> str:
    """Derive ``<names>-<random suffix>`` for public URLs."""
    suffix = token() if token else "".join(
        secrets.choice(_SLUG_ALPHABET) for _ in range(SLUG_SUFFIX_LENGTH)
    )
    return f"{slugify_names(names)}-{suffix}"


def generate_secret_code() -> str:
    """Return an 8-digit removal code; low entropy, only deters casual removal."""
    return f"{secrets.randbelow(10**SECRET_CODE_LENGTH):0{SECRET_CODE_LENGTH}d}"


def is_valid_secret_code(value: str | None) -> bool:
    return bool(value) and bool(_SECRET_PATTERN.match(value.strip()))


def unique_slug(
    names: str,
    *,
    max_attempts: int = DEFAULT_SLUG_ATTEMPTS,
    token: Callable[[], str] | None = None,
) -> str:
    for attempt in range(max(max_attempts, 1)):
        candidate = generate_slug(names, token=token)
        if find_by_slug(candidate) is None:
            return candidate
        LOGGER.debug("Slug %s already taken (attempt %s)", candidate, attempt + 1)
    raise SlugGenerationError(
        f"Failed to generate a unique slug after {max_attempts} attempts"
    )


def create_couple(
    *,
    names: str,
    photo_url: str,
    thumb_url: str,
    secret_code: Optional[str] = None,
    email: Optional[str] = None,
    phone_number: Optional[str] = None,
    wedding_date: Optional[date] = None,
    country: Optional[str] = None,
    story: Optional[str] = None,
    photo_key: Optional[str] = None,
    thumb_key: Optional[str] = None,
    payment_id: Optional[str] = None,
    max_slug_attempts: int = DEFAULT_SLUG_ATTEMPTS,
    slug_token: Callable[[], str] | None = None,
    logger: Optional[logging.Logger] = None,
) -> Couple:
    """Persist a new pending couple and return it."""
    log = logger or LOGGER

    display_name = (names or "").strip()
    if not display_name:
        raise InvalidCoupleError("names is required")
    if not photo_url:
        raise InvalidCoupleError("photo_url is required")

    code = (secret_code or "").strip() or generate_secret_code()
    if not is_valid_secret_code(code):
        raise InvalidCoupleError("secret code must be 8 digits")

    slug = unique_slug(display_name, max_attempts=max_slug_attempts, token=slug_token)

    couple = Couple(
        slug=slug,
        names=display_name,
        email=email.strip().lower() if email else None,
        phone_number=phone_number.strip() if phone_number else None,
        wedding_date=wedding_date,
        country=country.strip() if country else None,
        story=story.strip() if story else None,
        photo_url=photo_url,
        thumb_url=thumb_url or photo_url,
        photo_key=photo_key,
        thumb_key=thumb_key,
        secret_code=code,
        status=STATUS_PENDING,
        payment_id=payment_id,
    )
    db.session.add(couple)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise CoupleStoreError(f"Failed to save couple {slug!r}: {exc}") from exc

    log.info("Created couple %s (%s) pending moderation", couple.id, couple.slug)
    return couple


def _ordered_by_status(status: str):
    return Couple.query.filter(Couple.status == status).order_by(
        Couple.created_at.asc(), Couple.id.asc()
    )


def list_by_status(
    status: str, *, limit: int | None = None, offset: int = 0
) -> list[Couple]:
    """Return couples with ``status`` oldest first; ``limit=None`` returns them all."""
    if status not in COUPLE_STATUSES:
        raise InvalidCoupleError(f"unknown status {status!r}")
    query = _ordered_by_status(status).offset(max(offset, 0))
    if limit is not None:
        query = query.limit(max(limit, 0))
    return query.all()


def list_approved(limit: int | None = None, offset: int = 0) -> list[Couple]:
    return list_by_status(STATUS_APPROVED, limit=limit, offset=offset)


def count_by_status(status: str) -> int:
    return Couple.query.filter(Couple.status == status).count()


def paginate_couples(
    *,
    status: str = STATUS_APPROVED,
    page: int,
    limit: int,
    max_limit: int | None = None,
) -> CouplePage:
    """Return a page of couples with ``status`` ordered oldest first."""
    page_number = page if page > 0 else 1
    page_limit = limit if limit > 0 else 1
    if max_limit is not None and max_limit > 0:
        page_limit = min(page_limit, max_limit)

    items = list_by_status(
        status, limit=page_limit, offset=(page_number - 1) * page_limit
    )
    return CouplePage(
        items=items,
        page=page_number,
        limit=page_limit,
        total=count_by_status(status),
    )


def get_couple(couple_id: int) -> Couple | None:
    return db.session.get(Couple, couple_id)


def find_by_slug(slug: str) -> Couple | None:
    if not slug:
        return None
    return Couple.query.filter_by(slug=slug).first()


def find_by_name_and_secret(names: str | None, secret_code: str | None) -> Couple | None:
    """Look up a couple by exact names and secret code.

    Returns ``None`` for any mismatch without revealing which field was wrong.
    """
    display_name = (names or "").strip()
    code = (secret_code or "").strip()
    if not display_name or not code:
        return None
    return Couple.query.filter_by(names=display_name, secret_code=code).first()


def update_status(couple_id: int, status: str) -> Couple | None:
    """Set ``status`` on a couple; ``None`` when the id is unknown."""
    if status not in COUPLE_STATUSES:
        raise InvalidCoupleError(f"unknown status {status!r}")
    couple = get_couple(couple_id)
    if couple is None:
        return None
    if couple.status == status:
        return couple
    previous = couple.status
    couple.status = status
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise CoupleStoreError(
            f"Failed to update couple {couple_id} to {status}: {exc}"
        ) from exc
    LOGGER.info("Couple %s moved from %s to %s", couple_id, previous, status)
    return couple


def delete_couple(couple: Couple) -> None:
    couple_id = couple.id
    db.session.delete(couple)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise CoupleStoreError(f"Failed to delete couple {couple_id}: {exc}") from exc
    LOGGER.info("Deleted couple %s", couple_id)
