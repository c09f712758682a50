"""SQLAlchemy tables backing the persistent entity store."""
from extensions import db
from models import COMPLAINT_STATUSES, Attachment, Category, Complaint, Response, User, utcnow

_STATUS_LIST = ",".join(f"'{s}'" for s in COMPLAINT_STATUSES)


class UserModel(db.Model):
	__tablename__ = "users"

	id = db.Column(db.Integer, primary_key=True)
	username = db.Column(db.String(150), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	name = db.Column(db.String(150), nullable=False)
	role = db.Column(db.String(50), nullable=False, default="admin")
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class CategoryModel(db.Model):
	__tablename__ = "categories"

	id = db.Column(db.Integer, primary_key=True)
	name = db.Column(db.String(150), nullable=False, index=True)
	description = db.Column(db.String(500), nullable=True)


class ComplaintModel(db.Model):
	__tablename__ = "complaints"

	id = db.Column(db.Integer, primary_key=True)
	tracking_id = db.Column(db.String(32), unique=True, nullable=False, index=True)
	access_token = db.Column(db.String(128), nullable=False, index=True)
	title = db.Column(db.String(255), nullable=False)
	description = db.Column(db.Text, nullable=False)
	location = db.Column(db.String(500), nullable=True)
	category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	is_published = db.Column(db.Boolean, nullable=False, default=False, index=True)
	is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)
	name = db.Column(db.String(150), nullable=False)
	nik = db.Column(db.String(16), nullable=False)
	email = db.Column(db.String(255), nullable=False, index=True)
	phone = db.Column(db.String(20), nullable=False)
	address = db.Column(db.String(500), nullable=False)
	rejection_reason = db.Column(db.Text, nullable=True)
	closed_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint(f"status IN ({_STATUS_LIST})", name="ck_complaint_status_valid"),
		db.Index("ix_complaints_email_token", "email", "access_token"),
	)


class AttachmentModel(db.Model):
	__tablename__ = "attachments"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.Integer, db.ForeignKey("complaints.id"), nullable=False, index=True)
	filename = db.Column(db.String(255), nullable=False, unique=True)
	original_name = db.Column(db.String(255), nullable=False)
	mime_type = db.Column(db.String(120), nullable=False)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False)


class ResponseModel(db.Model):
	__tablename__ = "responses"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.Integer, db.ForeignKey("complaints.id"), nullable=False, index=True)
	content = db.Column(db.Text, nullable=False)
	is_from_admin = db.Column(db.Boolean, nullable=False)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)


TABLES: dict[type, type] = {
	User: UserModel,
	Category: CategoryModel,
	Complaint: ComplaintModel,
	Attachment: AttachmentModel,
	Response: ResponseModel,
}
