"""Decide who may read or mutate a complaint: admin sessions and owner credentials."""
import logging

from models import Complaint, User
from utils.security import tokens_match
from utils.store import EntityStore

logger = logging.getLogger(__name__)


def credentials_match(complaint: Complaint, email: str | None, token: str | None) -> bool:
    """Exact match on both halves at once; archived complaints never match."""
    if complaint.is_archived or not email:
        return False
    return complaint.email == email and tokens_match(complaint.access_token, token)


class AccessControl:
    """Side-effect-free checks. Callers decide how a denial is reported."""

    def __init__(self, store: EntityStore):
        self.store = store

    def authenticate(self, username: str, password: str) -> User | None:
        wanted = (username or "").strip().lower()
        if not wanted or not password:
            return None
        user = self.store.first(User, lambda u: u.username.lower() == wanted)
        if user is None or not user.check_password(password):
            return None
        return user

    def authorize_admin(self, session_user) -> bool:
        if session_user is None or not getattr(session_user, "is_authenticated", False):
            return False
        user_id = getattr(session_user, "id", None)
        if user_id is None:
            return False
        user = self.store.get(User, user_id)
        return bool(user and user.is_admin)

    def authorize_owner(self, email: str | None, token: str | None, complaint_id: int) -> bool:
        complaint = self.store.get(Complaint, complaint_id)
        if complaint is None:
            return False
        granted = credentials_match(complaint, email, token)
        if not granted:
            logger.info("owner_credentials_rejected", extra={"complaint_id": complaint_id})
        return granted

    def find_by_credentials(self, email: str | None, token: str | None) -> Complaint | None:
        if not email or not token:
            return None
        candidates = self.store.find_by(Complaint, email=email, is_archived=False)
        return next((c for c in candidates if credentials_match(c, email, token)), None)

    def find_by_token(self, token: str | None) -> Complaint | None:
        if not token:
            return None
        candidates = self.store.find_by(Complaint, access_token=token, is_archived=False)
        return next((c for c in candidates if tokens_match(c.access_token, token)), None)
