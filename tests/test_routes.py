"""Route-level integration tests."""

from __future__ import annotations

from io import BytesIO

import pytest

from lovewall.extensions import db
from lovewall.models import (
    PAYMENT_PAID,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Couple,
    Payment,
)
from lovewall.routes import BUS_EXTENSION, FEEDS_EXTENSION, _parse_positive_int
from lovewall.services import couples, mailer, moderation, notifications, payments, s3, storage


def _create(names: str = "Ana & Leo", *, status: str = STATUS_PENDING, **overrides) -> Couple:
    fields = {
        "names": names,
        "photo_url": f"https://cdn.example.com/{names[:3]}.webp",
        "thumb_url": f"https://cdn.example.com/{names[:3]}_thumb.webp",
        "secret_code": "12345678",
    }
    fields.update(overrides)
    couple = couples.create_couple(**fields)
    if status != STATUS_PENDING:
        couples.update_status(couple.id, status)
    return couple


@pytest.fixture()
def fake_upload(monkeypatch):
    captured: list = []

    def _store(photo, **_kwargs):
        captured.append(photo)
        return storage.PhotoRenditions(
            photo_key="wedding-photos/abc_w2048.webp",
            photo_url="https://cdn.example.com/wedding-photos/abc_w2048.webp",
            thumb_key="wedding-photos/abc_thumb-400.webp",
            thumb_url="https://cdn.example.com/wedding-photos/abc_thumb-400.webp",
        )

    monkeypatch.setattr(storage, "store_couple_photo", _store)
    monkeypatch.setattr(notifications, "notify_new_couple", lambda **_: None)
    return captured


def _submission(**fields):
    data = {
        "names": "Ana & Leo",
        "email": "ana@example.com",
        "country": "Portugal",
        "photo": (BytesIO(b"fake-image"), "wedding.jpg"),
    }
    data.update(fields)
    return data


# --------------------------------------------------------------------------
# Public pages


def test_wall_renders_empty_heart(client) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert b'id="heart"' in response.data
    assert b"0 / 1,000,000 spots taken" in response.data
    assert b'data-poll-seconds="60"' in response.data
    assert b"tile-filled" not in response.data


def test_wall_shows_only_approved_couples(client, app) -> None:
    with app.app_context():
        _create("Ana & Leo", status=STATUS_APPROVED, country="Portugal")
        _create("Pending Pair")
        _create("Rejected Pair", status=STATUS_REJECTED)

    response = client.get("/?size=400")

    assert response.status_code == 200
    assert b"Ana &amp; Leo" in response.data
    assert b"Portugal" in response.data
    assert b"Pending Pair" not in response.data
    assert b"Rejected Pair" not in response.data
    assert b"1 / 1,000,000 spots taken" in response.data
    assert b'data-size="400"' in response.data


@pytest.mark.parametrize("raw, expected", [("abc", b'data-size="320"'), ("10", b'data-size="240"')])
def test_wall_clamps_size(client, raw, expected) -> None:
    response = client.get(f"/?size={raw}")
    assert expected in response.data


def test_approval_invalidates_cached_views(client, app) -> None:
    with app.app_context():
        couple = _create("Ana & Leo")

    client.get("/")
    client.get("/carousel")
    assert b"Ana &amp; Leo" not in client.get("/").data

    response = client.post(
        f"/api/admin/couples/{couple.id}/approve", json={"password": "hunter22"}
    )
    assert response.status_code == 200

    assert b"Ana &amp; Leo" in client.get("/").data
    assert b"Ana &amp; Leo" in client.get("/carousel?slide=2").data


def test_cached_view_is_served_until_invalidated(client, app) -> None:
    client.get("/")
    with app.app_context():
        _create("Quiet Pair", status=STATUS_APPROVED)

    assert b"Quiet Pair" not in client.get("/").data

    with app.app_context():
        app.extensions[BUS_EXTENSION].publish("approved-couples")
    assert b"Quiet Pair" in client.get("/").data


def test_feed_failure_renders_last_known_wall(client, app, monkeypatch) -> None:
    def _fail(*_args, **_kwargs):
        raise couples.SQLAlchemyError("database down")

    monkeypatch.setattr(couples, "list_approved", _fail)

    response = client.get("/")

    assert response.status_code == 200
    assert b"could not refresh the wall" in response.data
    assert app.extensions[FEEDS_EXTENSION]["wall"].last_error


def test_carousel_starts_with_cta_and_autoplays(client, app) -> None:
    with app.app_context():
        _create("Ana & Leo", status=STATUS_APPROVED)
        _create("Maria & Joao", status=STATUS_APPROVED)

    response = client.get("/carousel")

    assert response.status_code == 200
    assert b"Join the wall" in response.data
    assert b"url=/carousel?slide=2" in response.data


def test_carousel_autoplay_is_script_driven_with_pause_hooks(client, app) -> None:
    with app.app_context():
        for names in ("Ana & Leo", "Maria & Joao", "Leonor & Rui"):
            _create(names, status=STATUS_APPROVED)

    html = client.get("/carousel").get_data(as_text=True)

    assert "js/carousel.js" in html
    assert 'data-advance-url="/carousel?slide=2"' in html
    assert 'data-interval-ms="4500"' in html
    assert 'data-paused=""' in html
    for reason in ("hover", "focus", "hidden", "dialog"):
        assert f'data-pause-{reason}="{reason}"' in html

    head = html.split("</head>", 1)[0]
    noscript = head.split("<noscript>", 1)[1].split("</noscript>", 1)[0]
    assert "url=/carousel?slide=2" in noscript
    assert 'http-equiv="refresh"' not in head.replace(noscript, "")


def test_carousel_search_holds_focus_pause_for_script(client, app) -> None:
    with app.app_context():
        _create("Ana & Leo", status=STATUS_APPROVED)

    html = client.get("/carousel?q=ana").get_data(as_text=True)

    assert 'data-paused="focus"' in html
    assert "data-advance-url" not in html


def test_carousel_search_pauses_autoplay(client, app) -> None:
    with app.app_context():
        _create("Ana & Leo", status=STATUS_APPROVED)
        _create("Maria & Joao", status=STATUS_APPROVED)
        _create("Leonor & Rui", status=STATUS_APPROVED)

    response = client.get("/carousel?q=leo&match=2")

    assert b"Matches: 2/2" in response.data
    assert b"Leonor &amp; Rui" in response.data
    assert b"url=/carousel" not in response.data


def test_carousel_story_dialog_pauses_autoplay(client, app) -> None:
    with app.app_context():
        _create("Ana & Leo", status=STATUS_APPROVED, story="We met at a bus stop.")

    response = client.get("/carousel?slide=2&story=1")

    assert b"We met at a bus stop." in response.data
    assert b"<dialog open" in response.data
    assert b"url=/carousel" not in response.data


def test_album_paginates_and_searches(client, app) -> None:
    with app.app_context():
        for i in range(8):
            _create(f"Couple {i}", status=STATUS_APPROVED)

    first = client.get("/album")
    assert b"Page 1 of 2" in first.data
    assert b'data-poll-seconds="45"' in first.data

    clamped = client.get("/album?page=99")
    assert b"Page 2 of 2" in clamped.data

    found = client.get("/album", query_string={"q": "couple 7"})
    assert b"Page 2 of 2" in found.data
    assert b"Matches: 1/1" in found.data
    assert b"highlighted" in found.data


def test_album_lists_couples_beyond_wall_limit(client, app) -> None:
    app.config.update(WALL_FETCH_LIMIT=3, ALBUM_PAGE_SIZE=100)
    with app.app_context():
        for i in range(5):
            _create(f"Couple {i}", status=STATUS_APPROVED)

    album = client.get("/album")
    for i in range(5):
        assert f"Couple {i}".encode() in album.data

    wall = client.get("/")
    assert b"Couple 2" in wall.data
    assert b"Couple 3" not in wall.data
    assert b"Couple 4" not in wall.data


def test_album_slug_redirects_to_page(client, app) -> None:
    with app.app_context():
        slugs = [_create(f"Couple {i}", status=STATUS_APPROVED).slug for i in range(8)]
        pending = _create("Pending Pair").slug

    response = client.get(f"/album/{slugs[7]}")
    assert response.status_code == 302
    assert "page=2" in response.headers["Location"]
    assert response.headers["Location"].endswith(f"#{slugs[7]}")

    assert client.get(f"/album/{pending}").status_code == 404
    assert client.get("/album/nobody").status_code == 404


def test_couple_detail_requires_approval(client, app) -> None:
    with app.app_context():
        approved = _create("Ana & Leo", status=STATUS_APPROVED, story="Hello").slug
        pending = _create("Pending Pair").slug
        rejected = _create("Rejected Pair", status=STATUS_REJECTED).slug

    assert client.get(f"/couples/{approved}").status_code == 200
    assert client.get(f"/couples/{pending}").status_code == 404
    assert client.get(f"/couples/{rejected}").status_code == 404
    assert client.get("/couples/unknown").status_code == 404


# --------------------------------------------------------------------------
# Payment and submission


def test_submit_requires_payment_when_enabled(client, app) -> None:
    app.config["REQUIRE_PAYMENT"] = True

    response = client.get("/submit")

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/pay")


def test_success_sets_payment_flag(client, app, monkeypatch) -> None:
    app.config["REQUIRE_PAYMENT"] = True
    monkeypatch.setattr(
        payments,
        "verify",
        lambda session_id: payments.PaymentVerification(
            session_id=session_id, paid=True, amount=100, currency="usd", status="paid"
        ),
    )

    response = client.get("/success?session_id=cs_paid")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/submit")

    assert client.get("/submit").status_code == 200


def test_success_with_unpaid_session_redirects_home(client, app, monkeypatch) -> None:
    app.config["REQUIRE_PAYMENT"] = True
    monkeypatch.setattr(
        payments,
        "verify",
        lambda session_id: payments.PaymentVerification(
            session_id=session_id, paid=False, amount=0, currency="usd", status="unpaid"
        ),
    )

    response = client.get("/success?session_id=cs_unpaid")
    assert response.headers["Location"].endswith("/")
    assert client.get("/submit").status_code == 302


def test_submit_form_creates_pending_couple(client, app, fake_upload) -> None:
    response = client.post(
        "/submit",
        data=_submission(email=""),
        content_type="multipart/form-data",
    )

    assert response.status_code == 200
    assert b"Your secret code" in response.data
    with app.app_context():
        couple = Couple.query.one()
        assert couple.status == STATUS_PENDING
        assert couple.secret_code.encode() in response.data
    assert len(fake_upload) == 1


def test_api_create_couple_returns_secret_code(client, app, fake_upload, monkeypatch) -> None:
    sent: list = []
    monkeypatch.setattr(mailer, "send_secret_code", lambda *args, **_: sent.append(args) or "<id>")

    response = client.post(
        "/api/couples",
        data=_submission(secret_code="87654321"),
        content_type="multipart/form-data",
    )

    assert response.status_code == 201
    payload = response.get_json()
    assert payload["success"] is True
    assert payload["data"]["secret_code"] == "87654321"
    assert payload["data"]["status"] == STATUS_PENDING
    assert "warning" not in payload
    assert sent == [("ana@example.com", "Ana & Leo", "87654321")]


def test_api_create_couple_email_failure_repeats_code(client, app, fake_upload, monkeypatch) -> None:
    def _fail(*_args, **_kwargs):
        raise mailer.EmailError("smtp down")

    monkeypatch.setattr(mailer, "send_secret_code", _fail)

    response = client.post(
        "/api/couples", data=_submission(), content_type="multipart/form-data"
    )

    assert response.status_code == 201
    payload = response.get_json()
    assert payload["data"]["secret_code"] in payload["warning"]
    with app.app_context():
        assert Couple.query.count() == 1


def test_api_create_couple_rejects_reused_payment_session(
    client, app, fake_upload, monkeypatch
) -> None:
    app.config["REQUIRE_PAYMENT"] = True
    monkeypatch.setattr(mailer, "send_secret_code", lambda *args, **_: "<id>")
    with app.app_context():
        db.session.add(Payment(session_id="cs_paid", amount=100, status=PAYMENT_PAID))
        db.session.commit()

    first = client.post(
        "/api/couples",
        data=_submission(session_id="cs_paid"),
        content_type="multipart/form-data",
    )
    second = client.post(
        "/api/couples",
        data=_submission(names="Maria & Joao", session_id="cs_paid"),
        content_type="multipart/form-data",
    )

    assert first.status_code == 201
    assert second.status_code == 402
    with app.app_context():
        assert [c.names for c in Couple.query.all()] == ["Ana & Leo"]
        assert Payment.query.filter_by(session_id="cs_paid").one().is_redeemed


def test_success_refuses_already_used_payment(client, app, monkeypatch) -> None:
    app.config["REQUIRE_PAYMENT"] = True
    with app.app_context():
        couple = _create("Ana & Leo")
        db.session.add(
            Payment(session_id="cs_used", amount=100, status=PAYMENT_PAID, couple_id=couple.id)
        )
        db.session.commit()
    monkeypatch.setattr(
        payments,
        "verify",
        lambda session_id: payments.PaymentVerification(
            session_id=session_id, paid=True, amount=100, currency="usd", status="paid"
        ),
    )

    response = client.get("/success?session_id=cs_used")

    assert response.headers["Location"].endswith("/")
    assert client.get("/submit").status_code == 302

    verify = client.post("/api/checkout/verify", json={"session_id": "cs_used"})
    assert verify.status_code == 409


def test_api_create_couple_validation_errors(client, fake_upload) -> None:
    response = client.post(
        "/api/couples",
        data={"names": "", "photo": (BytesIO(b"x"), "photo.gif")},
        content_type="multipart/form-data",
    )

    assert response.status_code == 400
    payload = response.get_json()
    assert payload["success"] is False
    assert "names" in payload["errors"]
    assert "photo" in payload["errors"]
    assert fake_upload == []


@pytest.mark.parametrize(
    "error, status",
    [
        (storage.PhotoTooLargeError("too big"), 413),
        (storage.PhotoValidationError("unreadable"), 400),
        (storage.PhotoUploadError("s3 down"), 502),
    ],
)
def test_api_create_couple_photo_errors(client, app, monkeypatch, error, status) -> None:
    def _raise(*_args, **_kwargs):
        raise error

    monkeypatch.setattr(storage, "store_couple_photo", _raise)

    response = client.post(
        "/api/couples", data=_submission(), content_type="multipart/form-data"
    )

    assert response.status_code == status
    assert response.get_json()["success"] is False
    with app.app_context():
        assert Couple.query.count() == 0


def test_api_create_couple_store_failure_cleans_up(client, app, fake_upload, monkeypatch) -> None:
    deleted: list[str] = []

    def _raise(**_kwargs):
        raise couples.CoupleStoreError("db down")

    monkeypatch.setattr(couples, "create_couple", _raise)
    monkeypatch.setattr(s3, "delete_renditions", lambda keys: deleted.extend(keys))

    response = client.post(
        "/api/couples", data=_submission(), content_type="multipart/form-data"
    )

    assert response.status_code == 500
    assert deleted == ["wedding-photos/abc_w2048.webp", "wedding-photos/abc_thumb-400.webp"]


def test_api_create_couple_requires_payment(client, app, fake_upload) -> None:
    app.config["REQUIRE_PAYMENT"] = True

    response = client.post(
        "/api/couples",
        data=_submission(session_id="cs_unknown"),
        content_type="multipart/form-data",
    )

    assert response.status_code == 402
    assert fake_upload == []


def test_api_checkout_rejects_small_amount(client) -> None:
    response = client.post("/api/checkout", json={"amount": 50})
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_api_checkout_returns_session(client, monkeypatch) -> None:
    monkeypatch.setattr(
        payments,
        "create_checkout",
        lambda amount, **_: payments.CheckoutSession(id="cs_9", url="https://pay/cs_9"),
    )

    response = client.post("/api/checkout", json={"amount": 100})

    assert response.get_json() == {
        "success": True,
        "data": {"id": "cs_9", "url": "https://pay/cs_9"},
    }


def test_api_checkout_verify(client, monkeypatch) -> None:
    monkeypatch.setattr(
        payments,
        "verify",
        lambda session_id: payments.PaymentVerification(
            session_id=session_id, paid=True, amount=100, currency="usd", status="paid"
        ),
    )

    assert client.post("/api/checkout/verify", json={}).status_code == 400
    response = client.post("/api/checkout/verify", json={"session_id": "cs_1"})
    assert response.get_json()["data"]["status"] == "paid"


# --------------------------------------------------------------------------
# Removal


def test_api_remove_with_wrong_secret_is_generic_404(client, app) -> None:
    with app.app_context():
        _create("Ana & Leo", status=STATUS_APPROVED)

    response = client.post(
        "/api/couples/remove", json={"names": "Ana & Leo", "secret_code": "00000000"}
    )

    assert response.status_code == 404
    assert response.get_json()["error"] == moderation.REMOVAL_DENIED_MESSAGE
    with app.app_context():
        assert Couple.query.count() == 1


def test_api_remove_deletes_and_refreshes_wall(client, app, monkeypatch) -> None:
    monkeypatch.setattr(moderation.s3, "delete_renditions", lambda keys: [])
    with app.app_context():
        _create("Ana & Leo", status=STATUS_APPROVED)

    assert b"Ana &amp; Leo" in client.get("/").data

    response = client.post(
        "/api/couples/remove",
        json={"names": "Ana & Leo", "secret_code": "12345678", "reason": "privacy"},
    )

    assert response.status_code == 200
    assert b"Ana &amp; Leo" not in client.get("/").data


def test_remove_page_warns_about_permanence(client) -> None:
    response = client.get("/remove")
    assert response.status_code == 200
    assert b"Removal is permanent" in response.data


def test_remove_form_deletes_couple(client, app, monkeypatch) -> None:
    monkeypatch.setattr(moderation.s3, "delete_renditions", lambda keys: [])
    with app.app_context():
        _create("Ana & Leo")

    response = client.post(
        "/remove",
        data={"names": "Ana & Leo", "secret_code": "12345678", "confirm": "y"},
        follow_redirects=True,
    )

    assert b"permanently removed" in response.data
    with app.app_context():
        assert Couple.query.count() == 0


def test_send_code_requires_matching_couple(client, app, monkeypatch) -> None:
    monkeypatch.setattr(mailer, "send_secret_code", lambda *args, **_: "<msg@id>")
    with app.app_context():
        _create("Ana & Leo")

    bad = client.post(
        "/api/send-code",
        json={"email": "ana@example.com", "names": "Ana & Leo", "secret_code": "00000000"},
    )
    assert bad.status_code == 404

    invalid = client.post(
        "/api/send-code",
        json={"email": "not-an-email", "names": "Ana & Leo", "secret_code": "12345678"},
    )
    assert invalid.status_code == 400
    assert invalid.get_json()["error"] == "Invalid email format"
    assert "email" in invalid.get_json()["errors"]

    missing = client.post("/api/send-code", json={"email": "ana@example.com", "names": "Ana & Leo"})
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "Missing required fields"

    good = client.post(
        "/api/send-code",
        json={"email": "ana@example.com", "names": "Ana & Leo", "secret_code": "12345678"},
    )
    assert good.get_json()["message_id"] == "<msg@id>"


# --------------------------------------------------------------------------
# Public API


def test_api_list_couples_serves_approved_only(client, app) -> None:
    with app.app_context():
        _create("First Pair", status=STATUS_APPROVED)
        _create("Second Pair", status=STATUS_APPROVED)
        _create("Pending Pair")

    response = client.get("/api/couples?limit=1&page=2")

    payload = response.get_json()
    assert payload["success"] is True
    assert [item["names"] for item in payload["data"]] == ["Second Pair"]
    assert payload["pagination"] == {"page": 2, "limit": 1, "total": 2, "pages": 2}
    assert "secret_code" not in payload["data"][0]


@pytest.mark.parametrize("status", ["pending", "rejected", "bogus"])
def test_api_list_couples_rejects_other_statuses(client, status) -> None:
    response = client.get(f"/api/couples?status={status}")
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_api_list_couples_supports_etag(client, app) -> None:
    with app.app_context():
        _create("First Pair", status=STATUS_APPROVED)

    first = client.get("/api/couples")
    etag = first.headers["ETag"]
    assert first.headers["Last-Modified"]

    cached = client.get("/api/couples", headers={"If-None-Match": etag})
    assert cached.status_code == 304


def test_api_wall_layout(client, app) -> None:
    with app.app_context():
        _create("Ana & Leo", status=STATUS_APPROVED)

    payload = client.get("/api/wall?size=320").get_json()

    assert payload["size"] == 320
    assert payload["stats"]["filled"] == 1
    assert payload["stats"]["capacity"] == len(payload["tiles"]) > 10
    assert payload["tiles"][0]["couple"]["names"] == "Ana & Leo"
    assert payload["tiles"][1]["empty"] is True


# --------------------------------------------------------------------------
# Admin


def test_api_admin_rejects_bad_password(client, app) -> None:
    with app.app_context():
        couple = _create()

    response = client.post(
        f"/api/admin/couples/{couple.id}/approve", json={"password": "wrong"}
    )
    assert response.status_code == 401

    response = client.delete(f"/api/admin/couples/{couple.id}", json={})
    assert response.status_code == 401


def test_api_admin_reject_then_approve_conflicts(client, app) -> None:
    with app.app_context():
        couple = _create()

    reject = client.post(
        f"/api/admin/couples/{couple.id}/reject", json={"password": "hunter22"}
    )
    assert reject.get_json()["data"]["status"] == STATUS_REJECTED

    approve = client.post(
        f"/api/admin/couples/{couple.id}/approve", json={"password": "hunter22"}
    )
    assert approve.status_code == 409


def test_api_admin_delete(client, app, monkeypatch) -> None:
    monkeypatch.setattr(moderation.s3, "delete_renditions", lambda keys: [])
    with app.app_context():
        couple = _create()

    response = client.delete(
        f"/api/admin/couples/{couple.id}", json={"password": "hunter22"}
    )
    assert response.status_code == 200
    missing = client.delete(
        f"/api/admin/couples/{couple.id}", json={"password": "hunter22"}
    )
    assert missing.status_code == 404


def test_admin_login_and_moderate(client, app) -> None:
    with app.app_context():
        couple = _create("Ana & Leo")

    denied = client.post("/admin", data={"username": "admin", "password": "nope"})
    assert b"Invalid username or password." in denied.data

    login = client.post(
        "/admin",
        data={"username": "admin", "password": "hunter22"},
        follow_redirects=True,
    )
    assert b"Pending (1)" in login.data

    response = client.post(
        f"/admin/couples/{couple.id}/approve", follow_redirects=True
    )
    assert b"Approved Ana &amp; Leo." in response.data
    with app.app_context():
        assert couples.get_couple(couple.id).status == STATUS_APPROVED


def test_admin_actions_require_session(client, app) -> None:
    with app.app_context():
        couple = _create()

    response = client.post(f"/admin/couples/{couple.id}/approve")
    assert response.status_code == 401


def test_admin_logout_clears_session(client) -> None:
    with client.session_transaction() as sess:
        sess["is_admin"] = True

    client.post("/admin/logout")
    response = client.get("/admin")
    assert b"Admin Password" in response.data


@pytest.mark.parametrize(
    "raw, default, maximum, expected",
    [
        (None, 5, None, 5),
        ("abc", 5, None, 5),
        ("-1", 5, None, 5),
        ("7", 5, None, 7),
        ("700", 5, 100, 100),
    ],
)
def test_parse_positive_int(raw, default, maximum, expected) -> None:
    assert _parse_positive_int(raw, default=default, maximum=maximum) == expected
