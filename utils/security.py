"""Security helpers for headers, complaint credentials and login throttling."""
import hmac
import secrets
import threading
from datetime import datetime, timedelta

from flask import request

from models import utcnow

TRACKING_PREFIX = "PGD"


def apply_security_headers(response, force_https: bool = False):
    """Apply security headers suitable for a JSON API."""
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def generate_token(length: int = 24) -> str:
    return secrets.token_urlsafe(length)


def generate_tracking_id(now: datetime | None = None) -> str:
    """Human-facing id: PGD-<yyyymmdd><4 random digits>."""
    stamp = (now or utcnow()).strftime("%Y%m%d")
    return f"{TRACKING_PREFIX}-{stamp}{secrets.randbelow(10000):04d}"


def tokens_match(expected: str | None, candidate: str | None) -> bool:
    if not expected or not candidate:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))


class AttemptTracker:
    """Counts recent failed attempts per key (e.g. IP) so repeated guessing can be refused.

    Only failures inside the sliding ``window`` count; older ones are dropped.
    """

    def __init__(self, limit: int = 10, window: timedelta = timedelta(minutes=15), clock=utcnow):
        self.limit = limit
        self.window = window
        self._clock = clock
        self._attempts: dict[str, list[datetime]] = {}
        self._lock = threading.Lock()

    def _recent(self, key: str) -> list[datetime]:
        cutoff = self._clock() - self.window
        recent = [t for t in self._attempts.get(key, ()) if t > cutoff]
        if recent:
            self._attempts[key] = recent
        else:
            self._attempts.pop(key, None)
        return recent

    def exceeded(self, key: str) -> bool:
        with self._lock:
            return len(self._recent(key)) >= self.limit

    def record_failure(self, key: str) -> int:
        with self._lock:
            for other in list(self._attempts):
                self._recent(other)
            recent = self._recent(key)
            recent.append(self._clock())
            self._attempts[key] = recent
            return len(recent)

    def reset(self, key: str) -> None:
        with self._lock:
            self._attempts.pop(key, None)
