"""Complaint intake, tracking, moderation and attachment endpoints."""
import json

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_login import current_user
from wtforms import BooleanField, StringField, TextAreaField
from wtforms import ValidationError as FormValidationError
from wtforms.validators import DataRequired, Length, Optional

from models import Attachment
from utils.attachments import persist_uploads, resolve_upload_path
from utils.complaint_query import ComplaintFilter
from utils.complaint_service import current_service
from utils.decorators import admin_required
from utils.errors import NotFound, ValidationError
from utils.validation import ApiForm, validated

complaints_bp = Blueprint("complaints", __name__)


class CheckForm(ApiForm):
    email = StringField("Email", validators=[DataRequired(), Length(max=255)])
    token = StringField("Token", validators=[DataRequired(), Length(max=255)])


class VerifyForm(ApiForm):
    approved = BooleanField("Approved")
    rejection_reason = TextAreaField("Rejection reason", validators=[Optional(), Length(max=2000)])
    response = TextAreaField("Response", validators=[Optional(), Length(max=5000)])

    def validate_approved(self, field):
        if not field.raw_data:
            raise FormValidationError("This field is required.")


class ResponseForm(ApiForm):
    content = TextAreaField("Content", validators=[DataRequired(), Length(max=5000)])
    is_from_admin = BooleanField("From admin")
    email = StringField("Email", validators=[Optional(), Length(max=255)])
    token = StringField("Token", validators=[Optional(), Length(max=255)])


class CloseForm(CheckForm):
    pass


class CategoryForm(ApiForm):
    name = StringField("Name", validators=[DataRequired(), Length(max=100)])
    description = TextAreaField("Description", validators=[Optional(), Length(max=1000)])


def _filters() -> ComplaintFilter:
    return ComplaintFilter.from_args(
        request.args,
        default_limit=int(current_app.config.get("DEFAULT_PAGE_SIZE", 10)),
        max_limit=int(current_app.config.get("MAX_PAGE_SIZE", 100)),
    )


def _complaint_fields() -> dict:
    """Multipart clients may send the text fields as a JSON ``data`` part."""
    raw = request.form.get("data")
    if raw:
        try:
            fields = json.loads(raw)
        except ValueError:
            raise ValidationError("Invalid complaint data", errors={"data": ["Malformed JSON."]}) from None
    elif request.is_json:
        fields = request.get_json(silent=True)
    else:
        fields = request.form.to_dict()
    if not isinstance(fields, dict):
        raise ValidationError("Invalid complaint data", errors={"data": ["Expected an object."]})
    return fields


@complaints_bp.route("/complaints/public", methods=["GET"])
def public_complaints():
    page = current_service().list_public_complaints(_filters())
    return jsonify(page.payload())


@complaints_bp.route("/complaints/admin", methods=["GET"])
@admin_required
def admin_complaints():
    page = current_service().list_admin_complaints(_filters())
    return jsonify(page.payload())


@complaints_bp.route("/complaints/stats", methods=["GET"])
@admin_required
def complaint_stats():
    return jsonify(current_service().get_stats())


@complaints_bp.route("/complaints/admin/<int:complaint_id>", methods=["GET"])
@admin_required
def admin_complaint_detail(complaint_id):
    detail = current_service().get_complaint_admin(complaint_id)
    return jsonify(detail.payload())


@complaints_bp.route("/complaints/detail/<token>", methods=["GET"])
def complaint_by_token(token):
    email = (request.args.get("email") or "").strip() or None
    detail = current_service().get_complaint_by_token(token, email=email)
    return jsonify(detail.payload())


@complaints_bp.route("/complaints/check", methods=["POST"])
def check_complaint():
    form = validated(CheckForm())
    detail = current_service().check_complaint(form.email.data.strip(), form.token.data.strip())
    return jsonify(detail.payload())


@complaints_bp.route("/complaints", methods=["POST"])
def create_complaint():
    fields = _complaint_fields()
    stored = persist_uploads(
        request.files.getlist("files"),
        current_app.config["UPLOAD_FOLDER"],
        max_bytes=int(current_app.config.get("MAX_ATTACHMENT_BYTES", 10 * 1024 * 1024)),
        max_files=int(current_app.config.get("MAX_ATTACHMENTS", 5)),
    )
    created = current_service().create_complaint(fields, stored)
    current_app.logger.info(
        "complaint_submitted",
        extra={"complaint_id": created["id"], "attachments": len(stored), "ip_address": request.remote_addr},
    )
    return jsonify({"message": "Complaint submitted", **created}), 201


@complaints_bp.route("/complaints/<int:complaint_id>/verify", methods=["POST"])
@admin_required
def verify_complaint(complaint_id):
    form = validated(VerifyForm())
    complaint = current_service().verify_complaint(
        complaint_id,
        approved=form.approved.data,
        rejection_reason=form.rejection_reason.data,
        response=form.response.data,
    )
    return jsonify({"message": "Complaint verified", "complaint": complaint.admin_payload()})


@complaints_bp.route("/complaints/<int:complaint_id>/responses", methods=["POST"])
def add_response(complaint_id):
    form = validated(ResponseForm())
    response = current_service().add_response(
        complaint_id,
        form.content.data,
        is_from_admin=form.is_from_admin.data,
        session_user=current_user,
        email=(form.email.data or "").strip() or None,
        token=(form.token.data or "").strip() or None,
    )
    return jsonify({"message": "Response added", "response": response.payload()}), 201


@complaints_bp.route("/complaints/<int:complaint_id>/close", methods=["POST"])
def close_complaint(complaint_id):
    form = validated(CloseForm())
    complaint = current_service().close_complaint(complaint_id, form.email.data.strip(), form.token.data.strip())
    return jsonify({"message": "Complaint closed", "status": complaint.status.value})


@complaints_bp.route("/complaints/<int:complaint_id>/archive", methods=["POST"])
@admin_required
def archive_complaint(complaint_id):
    current_service().archive_complaint(complaint_id)
    return jsonify({"message": "Complaint archived"})


@complaints_bp.route("/attachments/<path:filename>", methods=["GET"])
def serve_attachment(filename):
    service = current_service()
    attachment = service.store.first_by(Attachment, filename=filename)
    if attachment is None:
        raise NotFound("File not found")
    path = resolve_upload_path(current_app.config["UPLOAD_FOLDER"], filename)
    return send_file(path, mimetype=attachment.mime_type, download_name=attachment.original_name)


@complaints_bp.route("/categories", methods=["GET"])
def list_categories():
    return jsonify({"categories": [c.payload() for c in current_service().list_categories()]})


@complaints_bp.route("/categories", methods=["POST"])
@admin_required
def create_category():
    form = validated(CategoryForm(), "Invalid category data")
    category = current_service().create_category(form.name.data, form.description.data)
    return jsonify({"message": "Category created", "category": category.payload()}), 201
