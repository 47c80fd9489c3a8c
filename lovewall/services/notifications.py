"""Admin notification helpers for the Love Wall application."""
from __future__ import annotations

import logging
from typing import Optional

import requests
from flask import current_app

LOGGER = logging.getLogger(__name__)


def notify_new_couple(
    *,
    couple_id: int,
    couple_names: str,
    country: str | None = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Send an ntfy notification that a couple is waiting for moderation."""
    log = logger or LOGGER
    topic = current_app.config.get("NTFY_TOPIC")
    if not topic:
        log.debug("NTFY_TOPIC not set; skipping moderation notification")
        return

    summary = f"New photo from {couple_names}" if couple_names else "New photo"
    body_lines = [summary, f"ID: {couple_id}", "Status: pending review"]
    if country:
        body_lines.append(f"Country: {country}")
    payload = "\n".join(body_lines)

    try:
        requests.post(
            topic,
            data=payload.encode("utf-8"),
            headers={"Title": summary, "Tags": "heart"},
            timeout=5,
        )
    except requests.RequestException as exc:  # pragma: no cover - network errors
        log.warning("Notification dispatch failed: %s", exc)
