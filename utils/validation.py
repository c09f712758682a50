"""Schema validation for complaint intake fields."""
from typing import Mapping

from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import Form, IntegerField, StringField, TextAreaField
from wtforms.validators import DataRequired, Email, Length, Optional, Regexp

from utils.errors import ValidationError

NIK_PATTERN = r"^\d{16}$"
PHONE_PATTERN = r"^08\d{8,11}$"

COMPLAINT_FIELDS = ("title", "description", "location", "category_id", "name", "nik", "email", "phone", "address")


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class ComplaintFieldsForm(Form):
    title = StringField("Title", filters=[_strip], validators=[DataRequired(), Length(max=255)])
    description = TextAreaField("Description", filters=[_strip], validators=[DataRequired(), Length(max=5000)])
    location = StringField("Location", filters=[_strip], validators=[Optional(), Length(max=500)])
    category_id = IntegerField("Category", validators=[Optional()])
    name = StringField("Name", filters=[_strip], validators=[DataRequired(), Length(max=150)])
    nik = StringField(
        "NIK",
        filters=[_strip],
        validators=[DataRequired(), Regexp(NIK_PATTERN, message="NIK must be exactly 16 digits.")],
    )
    email = StringField("Email", filters=[_strip], validators=[DataRequired(), Email(), Length(max=255)])
    phone = StringField(
        "Phone",
        filters=[_strip],
        validators=[DataRequired(), Regexp(PHONE_PATTERN, message="Phone must start with 08 and have 10-13 digits.")],
    )
    address = StringField("Address", filters=[_strip], validators=[DataRequired(), Length(max=500)])


def _as_formdata(fields: Mapping) -> MultiDict:
    return MultiDict({key: str(value) for key, value in fields.items() if value is not None and value != ""})


def validate_complaint_fields(fields: Mapping) -> dict:
    """Return cleaned intake fields or raise ValidationError with per-field messages."""
    form = ComplaintFieldsForm(formdata=_as_formdata(fields))
    if not form.validate():
        raise ValidationError("Invalid complaint data", errors=form.errors)
    cleaned = {name: form[name].data for name in COMPLAINT_FIELDS}
    cleaned["location"] = cleaned["location"] or None
    return cleaned


class ApiForm(FlaskForm):
    """JSON/multipart API form; CSRF does not apply to these endpoints."""

    class Meta:
        csrf = False


def validated(form: FlaskForm, message: str = "Invalid request data") -> FlaskForm:
    if not form.validate_on_submit():
        raise ValidationError(message, errors=form.errors)
    return form
