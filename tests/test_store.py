import dataclasses
import gc
import threading

import pytest

from models import Category, Complaint, ComplaintStatus, Response
from utils.errors import ContractViolation
from utils.store import MemoryStore


def _complaint_partial(**overrides):
    partial = {
        "title": "Sampah menumpuk",
        "description": "Sudah seminggu tidak diangkut",
        "name": "Siti",
        "nik": "3201234567890001",
        "email": "siti@contoh.co.id",
        "phone": "081234567891",
        "address": "Jl. Melati 2",
        "tracking_id": "PGD-202401010001",
        "access_token": "secret-token",
    }
    partial.update(overrides)
    return partial


def test_insert_assigns_ids_and_timestamps(store):
    first = store.insert(Category, {"name": "Lingkungan"})
    second = store.insert(Category, {"name": "Kesehatan"})

    assert (first.id, second.id) == (1, 2)
    complaint = store.insert(Complaint, _complaint_partial())
    assert complaint.id == 1
    assert complaint.created_at is not None
    assert complaint.updated_at == complaint.created_at
    assert complaint.status is ComplaintStatus.PENDING


def test_insert_rejects_unknown_fields(store):
    with pytest.raises(ContractViolation):
        store.insert(Category, {"name": "X", "colour": "red"})


def test_unknown_kind_is_a_contract_violation(store):
    with pytest.raises(ContractViolation):
        store.get(dict, 1)


def test_reads_return_copies(store):
    created = store.insert(Category, {"name": "Pendidikan"})
    fetched = store.get(Category, created.id)
    fetched.name = "Changed"

    assert store.get(Category, created.id).name == "Pendidikan"


def test_find_preserves_insertion_order_and_filters(store):
    for name in ("A", "B", "C"):
        store.insert(Category, {"name": name})

    assert [c.name for c in store.find(Category)] == ["A", "B", "C"]
    assert [c.name for c in store.find(Category, lambda c: c.name != "B")] == ["A", "C"]
    assert store.first(Category, lambda c: c.name == "Z") is None


def test_get_missing_returns_none(store):
    assert store.get(Complaint, 42) is None


def test_replace_overwrites_mutable_fields(store):
    complaint = store.insert(Complaint, _complaint_partial())
    complaint.status = ComplaintStatus.VERIFIED
    complaint.is_published = True

    saved = store.replace(Complaint, complaint.id, complaint)

    assert saved.status is ComplaintStatus.VERIFIED
    assert store.get(Complaint, complaint.id).is_published is True


@pytest.mark.parametrize(
    "field_name,value",
    [("tracking_id", "PGD-209901019999"), ("access_token", "other"), ("id", 99)],
)
def test_replace_refuses_immutable_fields(store, field_name, value):
    complaint = store.insert(Complaint, _complaint_partial())
    changed = dataclasses.replace(complaint, **{field_name: value})

    with pytest.raises(ContractViolation):
        store.replace(Complaint, complaint.id, changed)
    assert store.get(Complaint, complaint.id).tracking_id == "PGD-202401010001"


def test_replace_missing_record_is_a_contract_violation(store):
    complaint = Complaint(**_complaint_partial(), id=7)
    with pytest.raises(ContractViolation):
        store.replace(Complaint, 7, complaint)


def test_transaction_rolls_back_every_write(store):
    complaint = store.insert(Complaint, _complaint_partial())

    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert(Response, {"complaint_id": complaint.id, "content": "Halo", "is_from_admin": False})
            complaint.status = ComplaintStatus.INPROGRESS
            store.replace(Complaint, complaint.id, complaint)
            raise RuntimeError("boom")

    assert store.find(Response) == []
    assert store.get(Complaint, complaint.id).status is ComplaintStatus.PENDING


def test_ids_are_not_reused_after_rollback(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert(Category, {"name": "Lost"})
            raise RuntimeError("boom")

    assert store.insert(Category, {"name": "Kept"}).id == 2


def test_nested_transaction_rolls_back_with_outer(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.insert(Category, {"name": "Outer"})
            with store.transaction():
                store.insert(Category, {"name": "Inner"})
            raise RuntimeError("boom")

    assert store.find(Category) == []


def test_concurrent_inserts_get_distinct_ids():
    store = MemoryStore()

    def worker():
        for _ in range(50):
            store.insert(Category, {"name": "x"})

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    ids = [c.id for c in store.find(Category)]
    assert len(ids) == 200
    assert len(set(ids)) == 200


def test_record_locks_are_released_after_use(store):
    for record_id in range(100):
        with store.locked(Complaint, record_id):
            assert (Complaint, record_id) in store._record_locks

    gc.collect()
    assert len(store._record_locks) == 0


def test_find_by_matches_field_equality(store):
    store.insert(Complaint, _complaint_partial())
    second = store.insert(Complaint, _complaint_partial(tracking_id="PGD-202401010002", email="ani@contoh.co.id"))

    assert [c.id for c in store.find_by(Complaint, email="ani@contoh.co.id")] == [second.id]
    assert store.first_by(Complaint, tracking_id="PGD-202401010002").id == second.id
    assert store.first_by(Complaint, tracking_id="PGD-209912319999") is None
    with pytest.raises(ContractViolation):
        store.find_by(Complaint, colour="red")
