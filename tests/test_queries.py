import pytest

from models import PRIVATE_COMPLAINT_FIELDS, Category, Complaint, ComplaintStatus
from utils.complaint_query import ComplaintFilter, paginate
from utils.errors import ValidationError


@pytest.fixture
def published(service, make_complaint):
    def _publish(**overrides):
        complaint = make_complaint(**overrides)
        service.verify_complaint(complaint.id, approved=True)
        return complaint

    return _publish


def test_public_listing_pages_newest_first(service, published):
    ids = [published(title=f"Keluhan {i}").id for i in range(23)]
    newest_first = list(reversed(ids))

    page1 = service.list_public_complaints(ComplaintFilter(page=1, limit=10))
    page3 = service.list_public_complaints(ComplaintFilter(page=3, limit=10))
    page4 = service.list_public_complaints(ComplaintFilter(page=4, limit=10))

    assert page1.pagination.payload() == {
        "total": 23,
        "total_pages": 3,
        "current_page": 1,
        "limit": 10,
        "from": 1,
        "to": 10,
    }
    assert [c["id"] for c in page1.items] == newest_first[:10]
    assert page3.pagination.payload() == {
        "total": 23,
        "total_pages": 3,
        "current_page": 3,
        "limit": 10,
        "from": 21,
        "to": 23,
    }
    assert [c["id"] for c in page3.items] == newest_first[20:]
    assert page4.items == []
    assert page4.pagination.payload()["total"] == 23
    assert (page4.pagination.from_item, page4.pagination.to_item) == (0, 0)


def test_page_past_the_end_is_empty(service, published):
    published()
    page = service.list_public_complaints(ComplaintFilter(page=5, limit=10))

    assert page.items == []
    assert page.pagination.total == 1
    assert (page.pagination.from_item, page.pagination.to_item) == (0, 0)


def test_empty_listing():
    items, pagination = paginate([], page=1, limit=10)
    assert items == []
    assert pagination.total_pages == 0


def test_public_listing_hides_unpublished_and_archived(service, make_complaint, published):
    make_complaint(title="Pending")
    rejected = make_complaint(title="Rejected")
    service.verify_complaint(rejected.id, approved=False, rejection_reason="Spam")
    archived = published(title="Archived")
    service.archive_complaint(archived.id)
    visible = published(title="Visible")

    page = service.list_public_complaints(ComplaintFilter())

    assert [c["id"] for c in page.items] == [visible.id]


def test_public_payload_is_redacted(service, published):
    published()
    item = service.list_public_complaints(ComplaintFilter()).items[0]

    assert PRIVATE_COMPLAINT_FIELDS.isdisjoint(item)
    assert item["category_name"] == "Infrastruktur"
    assert item["attachments"] == []
    assert item["responses"] == []


def test_admin_listing_includes_pending_but_not_archived(service, make_complaint):
    pending = make_complaint()
    archived = make_complaint()
    service.archive_complaint(archived.id)

    page = service.list_admin_complaints(ComplaintFilter())

    assert [c["id"] for c in page.items] == [pending.id]
    assert page.items[0]["email"] == "budi@contoh.co.id"
    assert page.items[0]["category_name"] == "Infrastruktur"


def test_filters_by_status_category_and_search(service, make_complaint, published):
    other_category = service.store.first(Category, lambda c: c.name == "Lingkungan").id
    road = published(title="Jalan rusak")
    trash = make_complaint(title="Sampah", description="Bau menyengat")
    service.verify_complaint(trash.id, approved=True)
    trash_record = service.store.get(Complaint, trash.id)
    trash_record.category_id = other_category
    service.store.replace(Complaint, trash.id, trash_record)
    make_complaint(title="Lampu mati")

    by_status = service.list_admin_complaints(ComplaintFilter(status=ComplaintStatus.PENDING))
    by_category = service.list_public_complaints(ComplaintFilter(category="lingkungan"))
    by_search = service.list_public_complaints(ComplaintFilter(search="RUSAK"))

    assert [c["title"] for c in by_status.items] == ["Lampu mati"]
    assert [c["id"] for c in by_category.items] == [trash.id]
    assert [c["id"] for c in by_search.items] == [road.id]


def test_admin_search_covers_reporter_fields(service, make_complaint):
    target = make_complaint(email="ani@contoh.co.id")
    make_complaint()

    page = service.list_admin_complaints(ComplaintFilter(search="ani@"))

    assert [c["id"] for c in page.items] == [target.id]


@pytest.mark.parametrize(
    "args,expected",
    [
        ({}, (1, 10, None, None)),
        ({"page": "0", "limit": "500"}, (1, 100, None, None)),
        ({"page": "-2", "limit": "abc"}, (1, 10, None, None)),
        ({"status": "all", "category": "all"}, (1, 10, None, None)),
        ({"status": "Verified", "category": " Kesehatan "}, (1, 10, "verified", "Kesehatan")),
    ],
)
def test_filter_from_args(args, expected):
    parsed = ComplaintFilter.from_args(args)
    status = parsed.status.value if parsed.status else None
    assert (parsed.page, parsed.limit, status, parsed.category) == expected


def test_unknown_status_filter_is_rejected():
    with pytest.raises(ValidationError) as excinfo:
        ComplaintFilter.from_args({"status": "closed"})
    assert "status" in excinfo.value.errors


def test_detail_lists_responses_oldest_first(service, make_complaint):
    complaint = make_complaint()
    service.verify_complaint(complaint.id, approved=True, response="Diterima")
    service.add_response(complaint.id, "Terima kasih", is_from_admin=False, email=complaint.email, token=complaint.access_token)

    detail = service.get_complaint_admin(complaint.id).payload()

    assert [r["content"] for r in detail["responses"]] == ["Diterima", "Terima kasih"]
    assert detail["status"] == "inprogress"
