"""Filtered, sorted and paginated complaint views for the public and for admins."""
import math
from dataclasses import dataclass, field
from typing import Callable, Mapping

from models import Attachment, Category, Complaint, ComplaintStatus, ComplaintWithRelations, Response
from utils.errors import ValidationError
from utils.store import EntityStore

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _parse_int(value, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed or default


def _optional_text(value) -> str | None:
    text = (str(value) if value is not None else "").strip()
    if not text or text.lower() == "all":
        return None
    return text


@dataclass(frozen=True)
class ComplaintFilter:
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    status: ComplaintStatus | None = None
    category: str | None = None
    search: str | None = None

    @classmethod
    def from_args(
        cls,
        args: Mapping,
        default_limit: int = DEFAULT_PAGE_SIZE,
        max_limit: int = MAX_PAGE_SIZE,
    ) -> "ComplaintFilter":
        page = _parse_int(args.get("page"), 1)
        limit = _parse_int(args.get("limit"), default_limit)
        status_value = _optional_text(args.get("status"))
        status = None
        if status_value:
            try:
                status = ComplaintStatus(status_value.lower())
            except ValueError:
                raise ValidationError(
                    "Invalid filter",
                    errors={"status": [f"Unknown status '{status_value}'."]},
                ) from None
        search = (args.get("search") or "").strip() or None
        return cls(
            page=max(1, page),
            limit=max(1, min(limit, max_limit)),
            status=status,
            category=_optional_text(args.get("category")),
            search=search,
        )


@dataclass
class Pagination:
    total: int
    total_pages: int
    current_page: int
    limit: int
    from_item: int
    to_item: int

    def payload(self) -> dict:
        return {
            "total": self.total,
            "total_pages": self.total_pages,
            "current_page": self.current_page,
            "limit": self.limit,
            "from": self.from_item,
            "to": self.to_item,
        }


@dataclass
class Page:
    items: list = field(default_factory=list)
    pagination: Pagination | None = None

    def payload(self) -> dict:
        return {"complaints": self.items, "pagination": self.pagination.payload()}


def paginate(records: list, page: int, limit: int) -> tuple[list, Pagination]:
    """Slice a sorted list; a page past the end is empty rather than an error."""
    total = len(records)
    start = (page - 1) * limit
    end = min(start + limit, total)
    items = records[start:end] if start < total else []
    return items, Pagination(
        total=total,
        total_pages=math.ceil(total / limit),
        current_page=page,
        limit=limit,
        from_item=start + 1 if items else 0,
        to_item=end if items else 0,
    )


class ComplaintQuery:
    def __init__(self, store: EntityStore):
        self.store = store

    def _category_names(self) -> dict[int, str]:
        return {c.id: c.name for c in self.store.find(Category)}

    def category_name(self, category_id: int | None) -> str:
        if category_id is None:
            return ""
        category = self.store.get(Category, category_id)
        return category.name if category else ""

    def with_relations(self, complaint: Complaint) -> ComplaintWithRelations:
        attachments = self.store.find_by(Attachment, complaint_id=complaint.id)
        responses = sorted(
            self.store.find_by(Response, complaint_id=complaint.id),
            key=lambda r: (r.created_at, r.id),
        )
        return ComplaintWithRelations(
            complaint=complaint,
            category_name=self.category_name(complaint.category_id),
            attachments=attachments,
            responses=responses,
        )

    def _select(
        self,
        base: Callable[[Complaint], bool],
        filters: ComplaintFilter,
        search_fields: Callable[[Complaint], tuple],
        names: dict[int, str],
    ) -> list[Complaint]:
        wanted_category = filters.category.lower() if filters.category else None
        needle = filters.search.lower() if filters.search else None

        def matches(c: Complaint) -> bool:
            if not base(c):
                return False
            if filters.status and c.status != filters.status:
                return False
            if wanted_category and (names.get(c.category_id) or "").lower() != wanted_category:
                return False
            if needle and not any(needle in (value or "").lower() for value in search_fields(c)):
                return False
            return True

        selected = self.store.find(Complaint, matches)
        selected.sort(key=lambda c: (c.created_at, c.id), reverse=True)
        return selected

    def list_public(self, filters: ComplaintFilter) -> Page:
        names = self._category_names()
        selected = self._select(
            lambda c: c.is_published and not c.is_archived,
            filters,
            lambda c: (c.title, c.description),
            names,
        )
        items, pagination = paginate(selected, filters.page, filters.limit)
        return Page(items=[self.with_relations(c).payload(public=True) for c in items], pagination=pagination)

    def list_admin(self, filters: ComplaintFilter) -> Page:
        names = self._category_names()
        selected = self._select(
            lambda c: not c.is_archived,
            filters,
            lambda c: (c.title, c.description, c.name, c.email, c.tracking_id),
            names,
        )
        items, pagination = paginate(selected, filters.page, filters.limit)
        return Page(
            items=[c.admin_payload(names.get(c.category_id, "")) for c in items],
            pagination=pagination,
        )
