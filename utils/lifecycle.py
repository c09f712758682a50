"""Complaint lifecycle: intake, the status state machine, responses and archival.

Transitions come from ``TRANSITIONS`` (current status x action -> next status);
anything missing from the table is refused with ``InvalidState``.

A citizen reply moves a complaint to ``inprogress`` from *any* state, which
reopens resolved and rejected complaints. Product has not confirmed whether
that is intended; it is kept as observed.
"""
import logging
from enum import Enum
from typing import Callable, Mapping, Sequence

from models import Attachment, Complaint, ComplaintStatus, Response, utcnow
from utils.errors import InternalError, InvalidState, MissingField, NotFound, ValidationError
from utils.security import generate_token, generate_tracking_id
from utils.store import EntityStore

logger = logging.getLogger(__name__)

TRACKING_ID_ATTEMPTS = 20


class Action(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CITIZEN_REPLY = "citizen_reply"
    CLOSE = "close"


TRANSITIONS: dict[tuple[ComplaintStatus, Action], ComplaintStatus] = {
    (ComplaintStatus.PENDING, Action.APPROVE): ComplaintStatus.VERIFIED,
    (ComplaintStatus.PENDING, Action.REJECT): ComplaintStatus.REJECTED,
    **{(status, Action.CITIZEN_REPLY): ComplaintStatus.INPROGRESS for status in ComplaintStatus},
    **{(status, Action.CLOSE): ComplaintStatus.RESOLVED for status in ComplaintStatus},
}


def next_status(current: ComplaintStatus, action: Action) -> ComplaintStatus:
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidState(f"Cannot {action.value} a complaint that is {current.value}") from None


class LifecycleEngine:
    def __init__(
        self,
        store: EntityStore,
        token_factory: Callable[[], str] = generate_token,
        tracking_id_factory: Callable[[], str] = generate_tracking_id,
    ):
        self.store = store
        self._token_factory = token_factory
        self._tracking_id_factory = tracking_id_factory

    def _load(self, complaint_id: int) -> Complaint:
        complaint = self.store.get(Complaint, complaint_id)
        if complaint is None or complaint.is_archived:
            raise NotFound()
        return complaint

    def _save(self, complaint: Complaint) -> Complaint:
        now = utcnow()
        complaint.updated_at = max(now, complaint.updated_at) if complaint.updated_at else now
        return self.store.replace(Complaint, complaint.id, complaint)

    def _unique_tracking_id(self) -> str:
        for _ in range(TRACKING_ID_ATTEMPTS):
            candidate = self._tracking_id_factory()
            if self.store.first_by(Complaint, tracking_id=candidate) is None:
                return candidate
        raise InternalError("Could not allocate a tracking id")

    def create(self, fields: Mapping, attachments: Sequence = ()) -> Complaint:
        """Insert a pending complaint and its attachment rows in one transaction."""
        with self.store.transaction():
            complaint = self.store.insert(
                Complaint,
                {
                    **fields,
                    "tracking_id": self._unique_tracking_id(),
                    "access_token": self._token_factory(),
                    "status": ComplaintStatus.PENDING,
                    "is_published": False,
                    "is_archived": False,
                    "rejection_reason": None,
                    "closed_at": None,
                },
            )
            for ref in attachments:
                self.store.insert(
                    Attachment,
                    {
                        "complaint_id": complaint.id,
                        "filename": ref.filename,
                        "original_name": ref.original_name,
                        "mime_type": ref.mime_type,
                    },
                )
        logger.info(
            "complaint_created",
            extra={"complaint_id": complaint.id, "tracking_id": complaint.tracking_id, "attachments": len(attachments)},
        )
        return complaint

    def verify(self, complaint_id: int, approved: bool, rejection_reason: str | None = None) -> Complaint:
        action = Action.APPROVE if approved else Action.REJECT
        with self.store.locked(Complaint, complaint_id):
            complaint = self._load(complaint_id)
            new_status = next_status(complaint.status, action)
            if approved:
                complaint.is_published = True
            else:
                reason = (rejection_reason or "").strip()
                if not reason:
                    raise MissingField("rejection_reason", "Rejection reason is required")
                complaint.rejection_reason = reason
            complaint.status = new_status
            saved = self._save(complaint)
        logger.info("complaint_verified", extra={"complaint_id": complaint_id, "status": saved.status.value})
        return saved

    def record_response(self, complaint_id: int, content: str, is_from_admin: bool) -> Response:
        if not (content or "").strip():
            raise ValidationError("Invalid response data", errors={"content": ["This field is required."]})
        with self.store.locked(Complaint, complaint_id):
            complaint = self._load(complaint_id)
            with self.store.transaction():
                response = self.store.insert(
                    Response,
                    {"complaint_id": complaint_id, "content": content, "is_from_admin": bool(is_from_admin)},
                )
                if not is_from_admin:
                    previous = complaint.status
                    complaint.status = next_status(previous, Action.CITIZEN_REPLY)
                    complaint.rejection_reason = None
                    complaint.closed_at = None
                    self._save(complaint)
                    if previous in (ComplaintStatus.RESOLVED, ComplaintStatus.REJECTED):
                        logger.info(
                            "complaint_reopened_by_reply",
                            extra={"complaint_id": complaint_id, "previous_status": previous.value},
                        )
        return response

    def close(self, complaint_id: int) -> Complaint:
        with self.store.locked(Complaint, complaint_id):
            complaint = self._load(complaint_id)
            complaint.status = next_status(complaint.status, Action.CLOSE)
            complaint.closed_at = utcnow()
            complaint.rejection_reason = None
            saved = self._save(complaint)
        logger.info("complaint_closed", extra={"complaint_id": complaint_id})
        return saved

    def archive(self, complaint_id: int) -> Complaint:
        with self.store.locked(Complaint, complaint_id):
            complaint = self._load(complaint_id)
            complaint.is_archived = True
            saved = self._save(complaint)
        logger.info("complaint_archived", extra={"complaint_id": complaint_id})
        return saved
