"""Request/response operations over the complaint core, one instance per app."""
import logging
from typing import Callable, Iterable, Mapping, Sequence

from flask import current_app

from models import DEFAULT_CATEGORIES, Category, Complaint, ComplaintWithRelations, User
from utils.access_control import AccessControl
from utils.attachments import StoredAttachment, discard_uploads
from utils.complaint_query import ComplaintFilter, ComplaintQuery, Page
from utils.errors import ComplaintError, Forbidden, InternalError, NotFound, Unauthorized, ValidationError
from utils.lifecycle import LifecycleEngine
from utils.stats import StatsAggregator
from utils.store import EntityStore
from utils.validation import validate_complaint_fields

logger = logging.getLogger(__name__)

EXTENSION_KEY = "complaint_service"


class ComplaintService:
    def __init__(
        self,
        store: EntityStore,
        validator: Callable[[Mapping], dict] = validate_complaint_fields,
        discard_attachments: Callable[[Iterable[StoredAttachment]], None] = discard_uploads,
        lifecycle: LifecycleEngine | None = None,
    ):
        self.store = store
        self.access = AccessControl(store)
        self.lifecycle = lifecycle or LifecycleEngine(store)
        self.query = ComplaintQuery(store)
        self.stats = StatsAggregator(store)
        self._validator = validator
        self._discard_attachments = discard_attachments

    # Bootstrap

    def ensure_admin(self, username: str, password: str, name: str = "Administrator") -> User:
        existing = self.store.first(User, lambda u: u.username.lower() == username.lower())
        if existing:
            return existing
        user = self.create_user(username, password, name=name)
        logger.info("default_admin_created", extra={"username": username})
        return user

    def ensure_default_categories(self, defaults: Sequence[tuple[str, str]] = DEFAULT_CATEGORIES) -> None:
        existing = {c.name.lower() for c in self.store.find(Category)}
        for name, description in defaults:
            if name.lower() not in existing:
                self.store.insert(Category, {"name": name, "description": description})

    def create_user(self, username: str, password: str, name: str, role: str = "admin") -> User:
        wanted = username.strip()
        if self.store.first(User, lambda u: u.username.lower() == wanted.lower()):
            raise ValidationError("Invalid user data", errors={"username": ["Username already exists."]})
        return self.store.insert(
            User,
            {"username": wanted, "password_hash": User.hash_password(password), "name": name, "role": role},
        )

    def get_user(self, user_id: int) -> User | None:
        return self.store.get(User, user_id)

    # Categories

    def list_categories(self) -> list[Category]:
        return self.store.find(Category)

    def create_category(self, name: str, description: str | None = None) -> Category:
        wanted = (name or "").strip()
        if not wanted:
            raise ValidationError("Invalid category data", errors={"name": ["This field is required."]})
        if self.store.first(Category, lambda c: c.name.lower() == wanted.lower()):
            raise ValidationError("Invalid category data", errors={"name": ["Category already exists."]})
        return self.store.insert(Category, {"name": wanted, "description": description or None})

    # Complaints

    def create_complaint(self, fields: Mapping, attachment_refs: Sequence[StoredAttachment] = ()) -> dict:
        """Validate and persist a complaint; uploaded files are discarded on any failure."""
        try:
            cleaned = self._validator(fields)
            category_id = cleaned.get("category_id")
            if category_id is not None and self.store.get(Category, category_id) is None:
                raise ValidationError("Invalid complaint data", errors={"category_id": ["Unknown category."]})
            complaint = self.lifecycle.create(cleaned, attachment_refs)
        except ComplaintError:
            self._discard_attachments(attachment_refs)
            raise
        except Exception as exc:
            logger.exception("Failed to create complaint")
            self._discard_attachments(attachment_refs)
            raise InternalError("Failed to create complaint") from exc
        return {"id": complaint.id, "tracking_id": complaint.tracking_id, "access_token": complaint.access_token}

    def list_public_complaints(self, filters: ComplaintFilter) -> Page:
        return self.query.list_public(filters)

    def list_admin_complaints(self, filters: ComplaintFilter) -> Page:
        return self.query.list_admin(filters)

    def get_complaint_admin(self, complaint_id: int) -> ComplaintWithRelations:
        complaint = self.store.get(Complaint, complaint_id)
        if complaint is None or complaint.is_archived:
            raise NotFound()
        return self.query.with_relations(complaint)

    def get_complaint_by_token(self, token: str, email: str | None = None) -> ComplaintWithRelations:
        if not token:
            raise ValidationError("Token is required", errors={"token": ["This field is required."]})
        complaint = self.access.find_by_token(token)
        if complaint is None:
            raise NotFound()
        if email and complaint.email != email:
            raise Forbidden("Email does not match the complaint owner")
        return self.query.with_relations(complaint)

    def check_complaint(self, email: str, token: str) -> ComplaintWithRelations:
        """Both halves must match; which half was wrong is not revealed."""
        complaint = self.access.find_by_credentials(email, token)
        if complaint is None:
            raise NotFound("Complaint not found or credentials are invalid")
        return self.query.with_relations(complaint)

    def verify_complaint(
        self,
        complaint_id: int,
        approved: bool,
        rejection_reason: str | None = None,
        response: str | None = None,
    ) -> Complaint:
        complaint = self.lifecycle.verify(complaint_id, approved, rejection_reason)
        if approved and response and response.strip():
            self.lifecycle.record_response(complaint_id, response, is_from_admin=True)
        return complaint

    def add_response(
        self,
        complaint_id: int,
        content: str,
        is_from_admin: bool,
        session_user=None,
        email: str | None = None,
        token: str | None = None,
    ):
        if is_from_admin:
            if not self.access.authorize_admin(session_user):
                raise Unauthorized()
        elif not self.access.authorize_owner(email, token, complaint_id):
            existing = self.store.get(Complaint, complaint_id)
            if existing is None or existing.is_archived:
                raise NotFound()
            raise Forbidden()
        return self.lifecycle.record_response(complaint_id, content, is_from_admin)

    def close_complaint(self, complaint_id: int, email: str, token: str) -> Complaint:
        if not self.access.authorize_owner(email, token, complaint_id):
            raise Forbidden("You don't have permission to close this complaint")
        return self.lifecycle.close(complaint_id)

    def archive_complaint(self, complaint_id: int) -> Complaint:
        return self.lifecycle.archive(complaint_id)

    def get_stats(self) -> dict:
        return self.stats.compute_stats()


def current_service() -> ComplaintService:
    return current_app.extensions[EXTENSION_KEY]
