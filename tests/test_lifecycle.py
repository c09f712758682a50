import re
import threading

import pytest

from models import Attachment, Complaint, ComplaintStatus, Response
from utils.attachments import StoredAttachment
from utils.errors import InternalError, InvalidState, MissingField, NotFound, ValidationError
from utils.lifecycle import TRANSITIONS, Action, LifecycleEngine, next_status
from utils.security import generate_tracking_id

from conftest import complaint_fields


def test_created_complaint_starts_pending_and_hidden(make_complaint):
    complaint = make_complaint()

    assert complaint.status is ComplaintStatus.PENDING
    assert complaint.is_published is False
    assert complaint.is_archived is False
    assert complaint.rejection_reason is None
    assert complaint.closed_at is None
    assert re.fullmatch(r"PGD-\d{12}", complaint.tracking_id)
    assert complaint.access_token


def test_create_stores_attachment_rows(service, store):
    refs = [StoredAttachment("abc.png", "bukti.png", "image/png", "/tmp/abc.png")]
    created = service.create_complaint(complaint_fields(), refs)

    rows = store.find(Attachment)
    assert [(a.complaint_id, a.filename, a.original_name) for a in rows] == [(created["id"], "abc.png", "bukti.png")]


def test_tracking_id_collision_is_retried(store):
    ids = iter(["PGD-202401010001", "PGD-202401010001", "PGD-202401010002"])
    engine = LifecycleEngine(store, tracking_id_factory=lambda: next(ids))

    first = engine.create(complaint_fields())
    second = engine.create(complaint_fields())

    assert (first.tracking_id, second.tracking_id) == ("PGD-202401010001", "PGD-202401010002")


def test_tracking_id_exhaustion_is_internal_error(store):
    engine = LifecycleEngine(store, tracking_id_factory=lambda: "PGD-202401010001")
    engine.create(complaint_fields())

    with pytest.raises(InternalError):
        engine.create(complaint_fields())
    assert len(store.find(Complaint)) == 1


def test_generate_tracking_id_format():
    assert re.fullmatch(r"PGD-\d{8}\d{4}", generate_tracking_id())


def test_approve_publishes(service, make_complaint):
    complaint = make_complaint()
    verified = service.lifecycle.verify(complaint.id, approved=True)

    assert verified.status is ComplaintStatus.VERIFIED
    assert verified.is_published is True
    assert verified.updated_at >= complaint.updated_at


def test_reject_requires_reason(service, make_complaint):
    complaint = make_complaint()

    with pytest.raises(MissingField) as excinfo:
        service.lifecycle.verify(complaint.id, approved=False, rejection_reason="   ")
    assert excinfo.value.field_name == "rejection_reason"
    assert service.store.get(Complaint, complaint.id).status is ComplaintStatus.PENDING


def test_reject_keeps_complaint_unpublished(service, make_complaint):
    complaint = make_complaint()
    rejected = service.lifecycle.verify(complaint.id, approved=False, rejection_reason=" Duplikat ")

    assert rejected.status is ComplaintStatus.REJECTED
    assert rejected.rejection_reason == "Duplikat"
    assert rejected.is_published is False


@pytest.mark.parametrize("approved", [True, False])
def test_verify_twice_is_invalid_state(service, make_complaint, approved):
    complaint = make_complaint()
    service.lifecycle.verify(complaint.id, approved=True)

    with pytest.raises(InvalidState):
        service.lifecycle.verify(complaint.id, approved=approved, rejection_reason="late")


def test_verify_unknown_complaint(service):
    with pytest.raises(NotFound):
        service.lifecycle.verify(999, approved=True)


def test_admin_response_does_not_change_status(service, make_complaint):
    complaint = make_complaint()
    service.lifecycle.verify(complaint.id, approved=True)
    service.lifecycle.record_response(complaint.id, "Kami tindak lanjuti", is_from_admin=True)

    assert service.store.get(Complaint, complaint.id).status is ComplaintStatus.VERIFIED


def test_citizen_reply_moves_to_inprogress(service, make_complaint):
    complaint = make_complaint()
    service.lifecycle.verify(complaint.id, approved=True)
    response = service.lifecycle.record_response(complaint.id, "Masih rusak", is_from_admin=False)

    assert response.is_from_admin is False
    assert service.store.get(Complaint, complaint.id).status is ComplaintStatus.INPROGRESS


def test_citizen_reply_reopens_rejected_and_clears_reason(service, make_complaint):
    complaint = make_complaint()
    service.lifecycle.verify(complaint.id, approved=False, rejection_reason="Kurang bukti")
    service.lifecycle.record_response(complaint.id, "Ini buktinya", is_from_admin=False)

    reopened = service.store.get(Complaint, complaint.id)
    assert reopened.status is ComplaintStatus.INPROGRESS
    assert reopened.rejection_reason is None


def test_citizen_reply_reopens_resolved(service, make_complaint):
    complaint = make_complaint()
    service.lifecycle.close(complaint.id)
    service.lifecycle.record_response(complaint.id, "Belum selesai", is_from_admin=False)

    reopened = service.store.get(Complaint, complaint.id)
    assert reopened.status is ComplaintStatus.INPROGRESS
    assert reopened.closed_at is None


def test_blank_response_is_rejected(service, make_complaint):
    complaint = make_complaint()

    with pytest.raises(ValidationError):
        service.lifecycle.record_response(complaint.id, "  ", is_from_admin=True)
    assert service.store.find(Response) == []


def test_close_from_any_state(service, make_complaint):
    complaint = make_complaint()
    service.lifecycle.verify(complaint.id, approved=False, rejection_reason="Spam")

    closed = service.lifecycle.close(complaint.id)

    assert closed.status is ComplaintStatus.RESOLVED
    assert closed.closed_at is not None
    assert closed.rejection_reason is None


def test_archive_hides_complaint_from_mutations(service, make_complaint):
    complaint = make_complaint()
    archived = service.lifecycle.archive(complaint.id)

    assert archived.is_archived is True
    assert archived.status is ComplaintStatus.PENDING
    with pytest.raises(NotFound):
        service.lifecycle.close(complaint.id)
    with pytest.raises(NotFound):
        service.lifecycle.archive(complaint.id)


def test_transition_table_only_allows_verification_from_pending():
    for status in ComplaintStatus:
        if status is ComplaintStatus.PENDING:
            continue
        with pytest.raises(InvalidState):
            next_status(status, Action.APPROVE)
    assert TRANSITIONS[(ComplaintStatus.PENDING, Action.REJECT)] is ComplaintStatus.REJECTED
    assert all(next_status(s, Action.CLOSE) is ComplaintStatus.RESOLVED for s in ComplaintStatus)


def test_concurrent_verification_has_one_winner(service, make_complaint):
    complaint = make_complaint()
    outcomes = []

    def attempt():
        try:
            service.lifecycle.verify(complaint.id, approved=True)
            outcomes.append("ok")
        except InvalidState:
            outcomes.append("conflict")

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["conflict"] * 7 + ["ok"]
