"""WTForms definitions for the Love Wall application."""

from __future__ import annotations

from flask import current_app
from flask_wtf import FlaskForm
from werkzeug.datastructures import FileStorage
from wtforms import (
    BooleanField,
    DateField,
    FileField,
    PasswordField,
    StringField,
    SubmitField,
    TextAreaField,
)
from wtforms.validators import (
    DataRequired,
    Email,
    Length,
    Optional,
    Regexp,
    ValidationError,
)

_SECRET_CODE_RULE = Regexp(r"^\d{8}$", message="The secret code is 8 digits.")


class CoupleForm(FlaskForm):
    names = StringField(
        "Your Names",
        validators=[DataRequired(), Length(max=120)],
        render_kw={"placeholder": "e.g., Ana & Leo"},
    )
    email = StringField(
        "Email Address (optional)",
        validators=[Optional(), Email(), Length(max=255)],
        render_kw={"placeholder": "you@example.com", "type": "email"},
    )
    phone_number = StringField(
        "Phone Number (optional)",
        validators=[
            Optional(),
            Length(max=20),
            Regexp(r"^[\d\s\-\+\(\)\.]+$", message="Invalid phone number format"),
        ],
    )
    wedding_date = DateField("Wedding Date (optional)", validators=[Optional()])
    country = StringField("Country (optional)", validators=[Optional(), Length(max=80)])
    story = TextAreaField(
        "Your Story (optional)",
        validators=[Optional(), Length(max=500)],
        render_kw={"rows": 4, "placeholder": "How did you meet?"},
    )
    secret_code = StringField(
        "Secret Code",
        validators=[Optional(), _SECRET_CODE_RULE],
        render_kw={"inputmode": "numeric", "autocomplete": "off"},
    )
    photo = FileField("Wedding Photo")
    submit = SubmitField("Add Our Photo")

    def validate_photo(self, field: FileField) -> None:
        storage = field.data
        if not isinstance(storage, FileStorage) or not (storage.filename or ""):
            raise ValidationError("A photo is required.")
        allowed = set(current_app.config.get("ALLOWED_EXTENSIONS", ()))
        filename = storage.filename or ""
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if allowed and ext not in allowed:
            raise ValidationError("Please upload a JPEG, PNG, WebP or HEIC image.")


class RemovalForm(FlaskForm):
    names = StringField(
        "Names exactly as submitted",
        validators=[DataRequired(), Length(max=120)],
    )
    secret_code = StringField(
        "Secret Code",
        validators=[DataRequired(), Length(max=8)],
        render_kw={"inputmode": "numeric", "autocomplete": "off"},
    )
    reason = TextAreaField("Reason (optional)", validators=[Optional(), Length(max=500)])
    confirm = BooleanField(
        "I understand this permanently deletes our photo and cannot be undone.",
        validators=[DataRequired(message="Please confirm the permanent removal.")],
    )
    submit = SubmitField("Remove Our Photo")


class AdminAuthForm(FlaskForm):
    """Form for admin authentication before moderating couples."""

    username = StringField(
        "Admin Username",
        validators=[DataRequired()],
        render_kw={"autocomplete": "username"},
    )
    password = PasswordField(
        "Admin Password",
        validators=[DataRequired()],
        render_kw={"autocomplete": "current-password"},
    )
    submit = SubmitField("Sign In")


class ModerationForm(FlaskForm):
    """CSRF carrier for the approve, reject and delete buttons."""

    submit = SubmitField("Apply")


class PaymentForm(FlaskForm):
    submit = SubmitField("Pay & Continue")


class SendCodeForm(FlaskForm):
    """Validates a request to re-send a couple's secret code by email."""

    email = StringField("Email Address", validators=[DataRequired(), Email(), Length(max=255)])
    names = StringField("Names", validators=[DataRequired(), Length(max=120)])
    secret_code = StringField("Secret Code", validators=[DataRequired(), Length(max=8)])
