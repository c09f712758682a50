import io
import itertools

import pytest

from app import create_app
from models import Category, Complaint
from utils.complaint_service import ComplaintService, current_service
from utils.lifecycle import LifecycleEngine
from utils.store import MemoryStore

_tokens = itertools.count(1)


def complaint_fields(**overrides) -> dict:
    fields = {
        "title": "Jalan berlubang di Jl. Merdeka",
        "description": "Lubang besar di depan sekolah, membahayakan pengendara motor.",
        "location": "Jl. Merdeka No. 10",
        "name": "Budi Santoso",
        "nik": "3201234567890123",
        "email": "budi@contoh.co.id",
        "phone": "081234567890",
        "address": "Jl. Mawar 5, Bandung",
    }
    fields.update(overrides)
    return fields


def png_upload(name: str = "bukti.png", size: int = 64):
    return (io.BytesIO(b"\x89PNG\r\n\x1a\n" + b"0" * size), name, "image/png")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def service(store):
    lifecycle = LifecycleEngine(store, token_factory=lambda: f"token-{next(_tokens)}")
    svc = ComplaintService(store, lifecycle=lifecycle)
    svc.ensure_default_categories()
    return svc


@pytest.fixture
def category_id(service):
    return service.store.first(Category, lambda c: c.name == "Infrastruktur").id


@pytest.fixture
def make_complaint(service, category_id):
    """Create a complaint through the service; returns the stored record."""

    def _make(**overrides):
        created = service.create_complaint(complaint_fields(category_id=category_id, **overrides))
        return service.store.get(Complaint, created["id"])

    return _make


@pytest.fixture
def app(tmp_path):
    app = create_app(
        "testing",
        overrides={"UPLOAD_FOLDER": str(tmp_path / "uploads"), "LOG_DIR": str(tmp_path / "logs")},
    )
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def app_service(app):
    with app.app_context():
        yield current_service()


@pytest.fixture
def admin_client(client):
    response = client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    return client
