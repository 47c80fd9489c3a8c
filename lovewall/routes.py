"""HTTP routes for the Love Wall application."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import UTC, datetime
from time import time
from typing import Any, Mapping

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    make_response,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.datastructures import MultiDict
from werkzeug.http import http_date, parse_date

from .forms import (
    AdminAuthForm,
    CoupleForm,
    ModerationForm,
    PaymentForm,
    RemovalForm,
    SendCodeForm,
)
from .models import COUPLE_STATUSES, STATUS_APPROVED, STATUS_PENDING, Couple
from .services import couples, mailer, moderation, notifications, payments, s3, storage
from .wall import (
    APPROVED_COUPLES_KEY,
    Album,
    ApprovedFeed,
    Carousel,
    InvalidationBus,
    WallEntry,
    assign_tiles,
    clamp_size,
    generate_heart_points,
)
from .wall.carousel import PAUSE_DIALOG, PAUSE_FOCUS, PAUSE_HIDDEN, PAUSE_HOVER

main_bp = Blueprint("main", __name__)
api_bp = Blueprint("api", __name__, url_prefix="/api")

FEEDS_EXTENSION = "lovewall_feeds"
BUS_EXTENSION = "lovewall_bus"

_PAYMENT_FLAG = "payment_verified_at"
_PAYMENT_SESSION = "payment_session_id"
_ADMIN_FLAG = "is_admin"
_NO_STORE = "public, max-age=0, must-revalidate"


class SubmissionError(RuntimeError):
    """A submission failed; carries the HTTP status and user-facing message."""

    def __init__(
        self,
        message: str,
        *,
        status: int = 500,
        errors: Mapping[str, list[str]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.errors = dict(errors or {})


@dataclass(slots=True)
class SubmissionResult:
    couple: Couple
    warning: str | None = None


def _parse_positive_int(
    raw_value: str | None,
    *,
    default: int,
    maximum: int | None = None,
) -> int:
    """Parse a positive integer from user input with sane fallbacks."""

    if raw_value is None:
        return default

    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        return default

    if parsed <= 0:
        return default

    if maximum is not None and parsed > maximum:
        return maximum

    return parsed


def _feed(view: str) -> ApprovedFeed:
    return current_app.extensions[FEEDS_EXTENSION][view]


def _bus() -> InvalidationBus:
    return current_app.extensions[BUS_EXTENSION]


def _publish_invalidation() -> None:
    """Tell every view's cache that the approved list changed."""
    _bus().publish(APPROVED_COUPLES_KEY)


def _json_error(message: str, status: int, **extra: Any):
    payload = {"success": False, "error": message, **extra}
    return jsonify(payload), status


# --------------------------------------------------------------------------
# Public pages


@main_bp.route("/", methods=["GET"])
def wall() -> str:
    size = clamp_size(request.args.get("size"))
    feed = _feed("wall")
    layout = assign_tiles(feed.read(), generate_heart_points(size / 2, size / 2, size))
    return render_template(
        "wall.html",
        layout=layout,
        size=size,
        poll_seconds=feed.poll_seconds,
        feed_error=feed.last_error,
        total_approved=feed.state.total,
    )


@main_bp.route("/carousel", methods=["GET"])
def carousel() -> str:
    feed = _feed("carousel")
    show = Carousel(
        feed.read(),
        interval_ms=current_app.config.get("CAROUSEL_INTERVAL_MILLISECONDS", 4500),
    )
    show.jump(_parse_positive_int(request.args.get("slide"), default=1) - 1)

    query = (request.args.get("q") or "").strip()
    if query:
        show.gate.pause(PAUSE_FOCUS)
        show.search(query)
        show.select_match(_parse_positive_int(request.args.get("match"), default=1))

    story_open = request.args.get("story") == "1"
    if story_open:
        show.gate.pause(PAUSE_DIALOG)

    current_index = show.index
    advance_url = None
    if show.tick():
        advance_url = url_for("main.carousel", slide=show.index + 1)
        show.jump(current_index)

    return render_template(
        "carousel.html",
        carousel=show,
        query=query,
        story_open=story_open,
        advance_url=advance_url,
        interval_seconds=show.interval_ms / 1000,
        pause_reasons={
            "hover": PAUSE_HOVER,
            "focus": PAUSE_FOCUS,
            "hidden": PAUSE_HIDDEN,
            "dialog": PAUSE_DIALOG,
        },
        poll_seconds=feed.poll_seconds,
        feed_error=feed.last_error,
    )


@main_bp.route("/album", methods=["GET"])
def album() -> str:
    feed = _feed("album")
    book = Album(feed.read(), page_size=current_app.config.get("ALBUM_PAGE_SIZE", 6))
    page_number = _parse_positive_int(request.args.get("page"), default=1)

    query = (request.args.get("q") or "").strip()
    match = _parse_positive_int(request.args.get("match"), default=1)
    highlighted = None
    if query:
        found = book.find(query, match=match)
        if found is not None:
            page_number = found
            highlighted = book.entries[book.search_state.current()].slug

    return render_template(
        "album.html",
        page=book.page(page_number),
        search=book.search_state,
        query=query,
        match=match,
        highlighted=highlighted,
        poll_seconds=feed.poll_seconds,
        feed_error=feed.last_error,
    )


@main_bp.route("/album/<slug>", methods=["GET"])
def album_couple(slug: str):
    feed = _feed("album")
    book = Album(feed.read(), page_size=current_app.config.get("ALBUM_PAGE_SIZE", 6))
    page_number = book.page_for_slug(slug)
    if page_number is None:
        abort(404)
    return redirect(url_for("main.album", page=page_number, _anchor=slug))


@main_bp.route("/couples/<slug>", methods=["GET"])
def couple_detail(slug: str) -> str:
    couple = couples.find_by_slug(slug)
    if couple is None or not couple.is_approved:
        abort(404)
    return render_template("couple_detail.html", couple=WallEntry.from_payload(couple))


# --------------------------------------------------------------------------
# Payment and submission flow


def _payment_verified() -> bool:
    if not current_app.config.get("REQUIRE_PAYMENT", True):
        return True
    verified_at = session.get(_PAYMENT_FLAG)
    if not verified_at:
        return False
    max_age = int(current_app.config.get("PAYMENT_FLAG_SECONDS", 3600))
    if time() - float(verified_at) > max_age:
        _clear_payment_flag()
        return False
    return True


def _mark_payment_verified(session_id: str) -> None:
    session[_PAYMENT_FLAG] = time()
    session[_PAYMENT_SESSION] = session_id


def _clear_payment_flag() -> None:
    session.pop(_PAYMENT_FLAG, None)
    session.pop(_PAYMENT_SESSION, None)


@main_bp.route("/pay", methods=["GET", "POST"])
def pay():
    form = PaymentForm()
    amount = int(current_app.config.get("SUBMISSION_PRICE_CENTS", 100))
    if form.validate_on_submit():
        try:
            checkout = payments.create_checkout(
                amount,
                success_url=url_for("main.success", _external=True) + "?session_id={CHECKOUT_SESSION_ID}",
                cancel_url=url_for("main.wall", _external=True),
            )
        except payments.PaymentError:
            current_app.logger.exception("Failed to create checkout session")
            flash("We could not start the payment. Please try again.", "danger")
        else:
            return redirect(checkout.url, code=303)
    return render_template("pay.html", form=form, amount=amount)


@main_bp.route("/success", methods=["GET"])
def success():
    session_id = (request.args.get("session_id") or "").strip()
    if not session_id:
        flash("Missing payment session.", "danger")
        return redirect(url_for("main.wall"))
    try:
        verification = payments.verify(session_id)
    except payments.PaymentError:
        current_app.logger.exception("Failed to verify payment session %s", session_id)
        flash("We could not verify your payment. Please try again.", "danger")
        return redirect(url_for("main.wall"))

    if not verification.paid:
        flash("Payment not completed.", "warning")
        return redirect(url_for("main.wall"))
    if payments.is_session_redeemed(verification.session_id):
        flash("This payment has already been used for a photo.", "warning")
        return redirect(url_for("main.wall"))

    _mark_payment_verified(verification.session_id)
    flash("Payment received! Now add your photo.", "success")
    return redirect(url_for("main.submit"))


@main_bp.route("/submit", methods=["GET", "POST"])
def submit():
    if not _payment_verified():
        flash("Please complete the payment before uploading your photo.", "warning")
        return redirect(url_for("main.pay"))

    form = CoupleForm()
    if form.validate_on_submit():
        try:
            result = _process_submission(form, payment_id=session.get(_PAYMENT_SESSION))
        except SubmissionError as exc:
            for field_name, messages in exc.errors.items():
                field = getattr(form, field_name, None)
                if field is not None:
                    field.errors = list(field.errors) + list(messages)
            flash(exc.message, "danger")
        else:
            _clear_payment_flag()
            if result.warning:
                flash(result.warning, "warning")
            flash("Thank you! Your photo is waiting for review.", "success")
            return render_template(
                "submitted.html",
                couple=result.couple,
                warning=result.warning,
            )

    return render_template("submit.html", form=form)


def _process_submission(form: CoupleForm, *, payment_id: str | None) -> SubmissionResult:
    """Upload the photo, record the couple and send the secret code."""
    logger = current_app.logger
    try:
        renditions = storage.store_couple_photo(form.photo.data, logger=logger)
    except storage.PhotoTooLargeError as exc:
        raise SubmissionError(str(exc), status=413, errors={"photo": [str(exc)]}) from exc
    except storage.PhotoValidationError as exc:
        raise SubmissionError(str(exc), status=400, errors={"photo": [str(exc)]}) from exc
    except storage.PhotoUploadError as exc:
        raise SubmissionError(str(exc), status=502) from exc

    try:
        couple = couples.create_couple(
            names=form.names.data,
            photo_url=renditions.photo_url,
            thumb_url=renditions.thumb_url,
            photo_key=renditions.photo_key,
            thumb_key=renditions.thumb_key,
            secret_code=form.secret_code.data or None,
            email=form.email.data or None,
            phone_number=form.phone_number.data or None,
            wedding_date=form.wedding_date.data,
            country=form.country.data or None,
            story=form.story.data or None,
            payment_id=payment_id,
            max_slug_attempts=int(current_app.config.get("SLUG_MAX_ATTEMPTS", 10)),
        )
    except (couples.CoupleStoreError, couples.InvalidCoupleError) as exc:
        logger.exception("Failed to create couple record")
        try:
            s3.delete_renditions([renditions.photo_key, renditions.thumb_key])
        except s3.S3Error:
            logger.warning("Failed to clean up S3 objects for %s", renditions.photo_key, exc_info=True)
        if isinstance(exc, couples.SlugGenerationError):
            raise SubmissionError("Failed to generate unique slug", status=500) from exc
        if isinstance(exc, couples.InvalidCoupleError):
            raise SubmissionError(str(exc), status=400) from exc
        raise SubmissionError("Database save failed.", status=500) from exc

    payments.attach_couple(payment_id, couple.id)
    notifications.notify_new_couple(
        couple_id=couple.id,
        couple_names=couple.names,
        country=couple.country,
    )
    _publish_invalidation()

    warning = None
    if couple.email:
        try:
            mailer.send_secret_code(couple.email, couple.names, couple.secret_code)
        except mailer.EmailError:
            logger.warning("Secret code email failed for couple %s", couple.id, exc_info=True)
            warning = (
                "We could not email your secret code. Please save it now: "
                f"{couple.secret_code}"
            )
    return SubmissionResult(couple=couple, warning=warning)


@main_bp.route("/remove", methods=["GET", "POST"])
def remove() -> str:
    form = RemovalForm()
    if form.validate_on_submit():
        try:
            moderation.remove_with_secret(
                form.names.data,
                form.secret_code.data,
                reason=form.reason.data,
                logger=current_app.logger,
            )
        except moderation.RemovalDenied as exc:
            flash(str(exc), "danger")
        except moderation.ModerationError:
            current_app.logger.exception("Failed to remove couple photo")
            flash("Failed to remove photo. Please try again.", "danger")
        else:
            _publish_invalidation()
            flash("Your photo has been permanently removed.", "success")
            return redirect(url_for("main.wall"))
    return render_template("remove.html", form=form)


# --------------------------------------------------------------------------
# Admin moderation


def _admin_credentials_match(username: str | None, password: str | None) -> bool:
    admin_username = current_app.config.get("ADMIN_USERNAME")
    admin_password = current_app.config.get("ADMIN_PASSWORD")
    if not admin_username or not admin_password:
        return False
    return hmac.compare_digest(str(username or ""), str(admin_username)) and hmac.compare_digest(
        str(password or ""), str(admin_password)
    )


@main_bp.route("/admin", methods=["GET", "POST"])
def admin() -> str:
    if session.get(_ADMIN_FLAG):
        pending = couples.list_by_status(STATUS_PENDING, limit=200)
        approved = couples.list_by_status(STATUS_APPROVED, limit=200)
        return render_template(
            "admin.html",
            pending=pending,
            approved=approved,
            form=ModerationForm(),
        )

    form = AdminAuthForm()
    if form.validate_on_submit():
        if not current_app.config.get("ADMIN_USERNAME") or not current_app.config.get(
            "ADMIN_PASSWORD"
        ):
            current_app.logger.error("Admin credentials not configured in environment")
            flash("Admin authentication is not configured.", "danger")
        elif _admin_credentials_match(form.username.data, form.password.data):
            session[_ADMIN_FLAG] = True
            return redirect(url_for("main.admin"))
        else:
            flash("Invalid username or password.", "danger")
    return render_template("admin_login.html", form=form)


@main_bp.route("/admin/logout", methods=["POST"])
def admin_logout():
    session.pop(_ADMIN_FLAG, None)
    return redirect(url_for("main.wall"))


@main_bp.route("/admin/couples/<int:couple_id>/<action>", methods=["POST"])
def admin_moderate(couple_id: int, action: str):
    if not session.get(_ADMIN_FLAG):
        abort(401)
    form = ModerationForm()
    if not form.validate_on_submit():
        flash("Your session expired. Please try again.", "danger")
        return redirect(url_for("main.admin"))

    try:
        message = _apply_moderation(couple_id, action)
    except moderation.CoupleNotFound:
        abort(404)
    except moderation.InvalidTransition as exc:
        flash(str(exc), "warning")
    except moderation.ModerationError:
        current_app.logger.exception("Moderation %s failed for couple %s", action, couple_id)
        flash("Moderation failed. Please try again.", "danger")
    else:
        flash(message, "success")
    return redirect(url_for("main.admin"))


def _apply_moderation(couple_id: int, action: str) -> str:
    if action == "approve":
        couple = moderation.approve(couple_id)
        message = f"Approved {couple.names}."
    elif action == "reject":
        couple = moderation.reject(couple_id)
        message = f"Rejected {couple.names}."
    elif action == "delete":
        slug = moderation.admin_delete(couple_id, logger=current_app.logger)
        message = f"Deleted {slug}."
    else:
        abort(404)
    current_app.logger.info("Admin %s couple %s", action, couple_id)
    _publish_invalidation()
    return message


# --------------------------------------------------------------------------
# JSON API


@api_bp.route("/couples", methods=["GET"])
def list_couples():
    config = current_app.config
    status = (request.args.get("status") or STATUS_APPROVED).strip().lower()
    if status not in COUPLE_STATUSES:
        return _json_error("Unknown status", 400)
    if status != STATUS_APPROVED:
        return _json_error("Only approved couples are public", 400)

    page = _parse_positive_int(request.args.get("page"), default=1)
    limit = _parse_positive_int(
        request.args.get("limit"),
        default=int(config.get("API_DEFAULT_LIMIT", 100)),
        maximum=int(config.get("API_MAX_LIMIT", 1000)),
    )

    try:
        result = couples.paginate_couples(status=status, page=page, limit=limit)
    except SQLAlchemyError:
        current_app.logger.exception("Error fetching couples")
        return _json_error("Failed to fetch couples", 500)

    data = [couple.to_dict() for couple in result.items]
    latest = _latest_timestamp(result.items)
    etag = None
    last_modified_header = None
    if data:
        identifier = "-".join(str(item["id"]) for item in data)
        etag = f'W/"couples-{result.page}-{result.limit}-{result.total}-{identifier}"'
    if latest is not None:
        last_modified_header = http_date(latest)

    if _not_modified(etag, latest):
        response = make_response("", 304)
        _set_cache_headers(response, etag, last_modified_header)
        return response

    response = make_response(
        jsonify({"success": True, "data": data, "pagination": result.meta()})
    )
    _set_cache_headers(response, etag, last_modified_header)
    return response


@api_bp.route("/couples", methods=["POST"])
def create_couple():
    if not _payment_verified():
        session_id = (request.form.get("session_id") or "").strip()
        if not payments.is_session_paid(session_id):
            return _json_error("Payment required", 402)
        payment_id: str | None = session_id
    else:
        payment_id = session.get(_PAYMENT_SESSION) or request.form.get("session_id")

    form = CoupleForm(meta={"csrf": False})
    if not form.validate():
        return _json_error("Missing or invalid fields", 400, errors=form.errors)

    try:
        result = _process_submission(form, payment_id=payment_id)
    except SubmissionError as exc:
        return _json_error(exc.message, exc.status, errors=exc.errors)

    _clear_payment_flag()
    payload: dict[str, Any] = {
        "success": True,
        "data": result.couple.to_dict(include_secret=True),
    }
    if result.warning:
        payload["warning"] = result.warning
    return jsonify(payload), 201


@api_bp.route("/couples/remove", methods=["POST"])
def remove_couple():
    body = _request_body()
    names = (body.get("names") or "").strip()
    secret_code = (body.get("secret_code") or "").strip()
    if not names or not secret_code:
        return _json_error("Names and secret code are required", 400)

    try:
        moderation.remove_with_secret(
            names, secret_code, reason=body.get("reason"), logger=current_app.logger
        )
    except moderation.RemovalDenied as exc:
        return _json_error(str(exc), 404)
    except moderation.ModerationError:
        current_app.logger.exception("Error removing couple photo")
        return _json_error("Failed to remove photo", 500)

    _publish_invalidation()
    return jsonify({"success": True, "message": "Photo removed successfully"})


@api_bp.route("/wall", methods=["GET"])
def wall_layout():
    size = clamp_size(request.args.get("size"))
    feed = _feed("wall")
    layout = assign_tiles(feed.read(), generate_heart_points(size / 2, size / 2, size))
    tiles = []
    for tile in layout.tiles:
        item: dict[str, Any] = {
            "x": tile.point.x,
            "y": tile.point.y,
            "index": tile.point.index,
            "empty": tile.is_empty,
        }
        if tile.entry is not None:
            item["couple"] = layout.popover(tile.point.index)
            item["thumb_url"] = tile.entry.thumb_url
        tiles.append(item)
    return jsonify(
        {
            "success": True,
            "size": size,
            "tiles": tiles,
            "stats": {
                "filled": layout.filled_count,
                "capacity": layout.total_capacity,
                "display_total": layout.display_total,
                "spots_left": layout.spots_left,
                "progress_percent": layout.progress_percent,
                "progress_text": layout.progress_text,
            },
            "poll_seconds": feed.poll_seconds,
        }
    )


@api_bp.route("/checkout", methods=["POST"])
def checkout():
    body = _request_body()
    try:
        amount = int(body.get("amount") or 0)
    except (TypeError, ValueError):
        amount = 0
    try:
        session_info = payments.create_checkout(
            amount,
            success_url=url_for("main.success", _external=True) + "?session_id={CHECKOUT_SESSION_ID}",
            cancel_url=url_for("main.wall", _external=True),
        )
    except payments.InvalidAmountError as exc:
        return _json_error(str(exc), 400)
    except payments.PaymentError:
        current_app.logger.exception("Error creating checkout session")
        return _json_error("Failed to create checkout session", 500)
    return jsonify({"success": True, "data": {"id": session_info.id, "url": session_info.url}})


@api_bp.route("/checkout/verify", methods=["POST"])
def verify_checkout():
    session_id = (_request_body().get("session_id") or "").strip()
    if not session_id:
        return _json_error("Session ID is required", 400)
    try:
        verification = payments.verify(session_id)
    except payments.PaymentError:
        current_app.logger.exception("Error verifying payment session %s", session_id)
        return _json_error("Failed to verify payment session", 500)
    if not verification.paid:
        return _json_error("Payment not completed", 400)
    if payments.is_session_redeemed(verification.session_id):
        return _json_error("Payment already used", 409)
    _mark_payment_verified(verification.session_id)
    return jsonify({"success": True, "data": verification.to_dict()})


@api_bp.route("/send-code", methods=["POST"])
def send_code():
    body = _request_body()
    form = SendCodeForm(
        formdata=MultiDict({key: str(value).strip() for key, value in body.items() if value}),
        meta={"csrf": False},
    )
    if not form.validate():
        if form.email.data and form.email.errors:
            return _json_error("Invalid email format", 400, errors=form.errors)
        return _json_error("Missing required fields", 400, errors=form.errors)
    email = form.email.data
    names = form.names.data
    secret_code = form.secret_code.data
    if couples.find_by_name_and_secret(names, secret_code) is None:
        return _json_error(moderation.REMOVAL_DENIED_MESSAGE, 404)
    try:
        message_id = mailer.send_secret_code(email, names, secret_code)
    except mailer.EmailError:
        current_app.logger.exception("Error sending secret code email")
        return _json_error("Failed to send email. Please try again.", 500)
    return jsonify({"success": True, "message": "Email sent successfully", "message_id": message_id})


@api_bp.route("/admin/couples/<int:couple_id>/<action>", methods=["POST"])
def api_moderate(couple_id: int, action: str):
    if action not in {"approve", "reject"}:
        abort(404)
    return _api_admin_action(couple_id, action)


@api_bp.route("/admin/couples/<int:couple_id>", methods=["DELETE"])
def api_admin_delete(couple_id: int):
    return _api_admin_action(couple_id, "delete")


def _api_admin_action(couple_id: int, action: str):
    password = _request_body().get("password")
    admin_password = current_app.config.get("ADMIN_PASSWORD")
    if not admin_password or not hmac.compare_digest(str(password or ""), str(admin_password)):
        return _json_error("Unauthorized", 401)

    try:
        if action == "delete":
            moderation.admin_delete(couple_id, logger=current_app.logger)
            data = None
        elif action == "approve":
            data = moderation.approve(couple_id).to_dict()
        else:
            data = moderation.reject(couple_id).to_dict()
    except moderation.CoupleNotFound:
        return _json_error("Couple not found", 404)
    except moderation.InvalidTransition as exc:
        return _json_error(str(exc), 409)
    except moderation.ModerationError:
        current_app.logger.exception("Error applying %s to couple %s", action, couple_id)
        return _json_error(f"Failed to {action} couple", 500)

    _publish_invalidation()
    return jsonify({"success": True, "data": data, "message": f"Couple {action}d successfully"})


# --------------------------------------------------------------------------
# Helpers


def _request_body() -> Mapping[str, Any]:
    if request.is_json:
        body = request.get_json(silent=True)
        return body if isinstance(body, dict) else {}
    return request.form


def _latest_timestamp(items: list[Couple]) -> datetime | None:
    latest: datetime | None = None
    for couple in items:
        for value in (couple.created_at, couple.updated_at):
            if value is None:
                continue
            if value.tzinfo is None:
                value = value.replace(tzinfo=UTC)
            if latest is None or value > latest:
                latest = value
    return latest


def _not_modified(etag: str | None, latest: datetime | None) -> bool:
    if etag:
        if_none_match = request.headers.get("If-None-Match")
        if if_none_match:
            tags = {candidate.strip() for candidate in if_none_match.split(",")}
            return "*" in tags or etag in tags

    if latest is not None:
        if_modified_since_raw = request.headers.get("If-Modified-Since")
        if if_modified_since_raw:
            since_dt = parse_date(if_modified_since_raw)
            if since_dt is not None:
                if since_dt.tzinfo is None:
                    since_dt = since_dt.replace(tzinfo=UTC)
                return since_dt.timestamp() >= int(latest.timestamp())
    return False


def _set_cache_headers(response, etag: str | None, last_modified: str | None) -> None:
    response.headers["Cache-Control"] = _NO_STORE
    if etag:
        response.headers["ETag"] = etag
    if last_modified:
        response.headers["Last-Modified"] = last_modified
