"""Core records for complaints, categories, attachments, responses and admin users."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash


def utcnow() -> datetime:
	"""Naive UTC timestamp, matching what the SQL backend hands back."""
	return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: datetime | None) -> str | None:
	return value.isoformat() if value else None


class ComplaintStatus(str, Enum):
	PENDING = "pending"
	VERIFIED = "verified"
	REJECTED = "rejected"
	INPROGRESS = "inprogress"
	RESOLVED = "resolved"


COMPLAINT_STATUSES: tuple[str, ...] = tuple(s.value for s in ComplaintStatus)

PUBLISHED_STATUSES: frozenset[ComplaintStatus] = frozenset(
	{ComplaintStatus.VERIFIED, ComplaintStatus.INPROGRESS, ComplaintStatus.RESOLVED}
)

DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
	("Infrastruktur", "Jalan, jembatan, gedung, dll"),
	("Lingkungan", "Sampah, polusi, taman, dll"),
	("Pelayanan Publik", "Layanan pemerintah"),
	("Kesehatan", "Rumah sakit, puskesmas, dll"),
	("Pendidikan", "Sekolah, beasiswa, dll"),
	("Lainnya", "Kategori lainnya"),
)

PRIVATE_COMPLAINT_FIELDS: frozenset[str] = frozenset(
	{"name", "nik", "email", "phone", "address", "access_token", "rejection_reason"}
)


@dataclass
class User(UserMixin):
	username: str
	password_hash: str
	name: str
	role: str = "admin"
	id: int | None = None
	created_at: datetime | None = None

	immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "username", "created_at"})

	@staticmethod
	def hash_password(password: str) -> str:
		return generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_admin(self) -> bool:
		return (self.role or "").lower() == "admin"

	def payload(self) -> dict:
		return {
			"id": self.id,
			"username": self.username,
			"name": self.name,
			"role": self.role,
			"created_at": _iso(self.created_at),
		}


@dataclass
class Category:
	name: str
	description: str | None = None
	id: int | None = None

	immutable_fields: ClassVar[frozenset[str]] = frozenset({"id"})

	def payload(self) -> dict:
		return {"id": self.id, "name": self.name, "description": self.description}


@dataclass
class Attachment:
	complaint_id: int
	filename: str
	original_name: str
	mime_type: str
	id: int | None = None
	created_at: datetime | None = None

	immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "complaint_id", "created_at"})

	def payload(self) -> dict:
		return {
			"id": self.id,
			"complaint_id": self.complaint_id,
			"filename": self.filename,
			"original_name": self.original_name,
			"mime_type": self.mime_type,
			"created_at": _iso(self.created_at),
		}


@dataclass
class Response:
	complaint_id: int
	content: str
	is_from_admin: bool
	id: int | None = None
	created_at: datetime | None = None

	immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "complaint_id", "created_at"})

	def payload(self) -> dict:
		return {
			"id": self.id,
			"complaint_id": self.complaint_id,
			"content": self.content,
			"is_from_admin": self.is_from_admin,
			"created_at": _iso(self.created_at),
		}


@dataclass
class Complaint:
	title: str
	description: str
	name: str
	nik: str
	email: str
	phone: str
	address: str
	tracking_id: str
	access_token: str
	location: str | None = None
	category_id: int | None = None
	status: ComplaintStatus = ComplaintStatus.PENDING
	is_published: bool = False
	is_archived: bool = False
	rejection_reason: str | None = None
	closed_at: datetime | None = None
	id: int | None = None
	created_at: datetime | None = None
	updated_at: datetime | None = None

	immutable_fields: ClassVar[frozenset[str]] = frozenset({"id", "tracking_id", "access_token", "created_at"})

	def __post_init__(self) -> None:
		self.status = ComplaintStatus(self.status)
		self.is_published = bool(self.is_published)
		self.is_archived = bool(self.is_archived)

	def admin_payload(self, category_name: str = "") -> dict:
		return {
			"id": self.id,
			"tracking_id": self.tracking_id,
			"title": self.title,
			"description": self.description,
			"location": self.location,
			"category_id": self.category_id,
			"category_name": category_name,
			"status": self.status.value,
			"is_published": self.is_published,
			"is_archived": self.is_archived,
			"name": self.name,
			"nik": self.nik,
			"email": self.email,
			"phone": self.phone,
			"address": self.address,
			"access_token": self.access_token,
			"rejection_reason": self.rejection_reason,
			"closed_at": _iso(self.closed_at),
			"created_at": _iso(self.created_at),
			"updated_at": _iso(self.updated_at),
		}

	def public_payload(self, category_name: str = "") -> dict:
		"""Reporter details and secrets never leave through this payload."""
		return {
			"id": self.id,
			"tracking_id": self.tracking_id,
			"title": self.title,
			"description": self.description,
			"location": self.location,
			"category_id": self.category_id,
			"category_name": category_name,
			"status": self.status.value,
			"created_at": _iso(self.created_at),
			"updated_at": _iso(self.updated_at),
		}


@dataclass
class ComplaintWithRelations:
	complaint: Complaint
	category_name: str = ""
	attachments: list[Attachment] = field(default_factory=list)
	responses: list[Response] = field(default_factory=list)

	def payload(self, public: bool = False) -> dict:
		if public:
			data = self.complaint.public_payload(self.category_name)
		else:
			data = self.complaint.admin_payload(self.category_name)
		data["attachments"] = [a.payload() for a in self.attachments]
		data["responses"] = [r.payload() for r in self.responses]
		return data


RECORD_KINDS: tuple[type, ...] = (User, Category, Complaint, Attachment, Response)
