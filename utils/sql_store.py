"""Entity store backed by the Flask-SQLAlchemy tables in ``models.tables``."""
import logging
import threading
from contextlib import contextmanager
from dataclasses import fields
from enum import Enum
from typing import Iterator, Mapping

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import utcnow
from models.tables import TABLES
from utils.errors import ContractViolation
from utils.store import EntityStore, Predicate, build_record, check_replacement, field_names

logger = logging.getLogger(__name__)


def _column_value(value):
    return value.value if isinstance(value, Enum) else value


class SqlStore(EntityStore):
    """Must be used inside an application context; writes commit unless a transaction is open."""

    def __init__(self) -> None:
        super().__init__()
        self._local = threading.local()

    @staticmethod
    def _model(kind: type):
        try:
            return TABLES[kind]
        except KeyError:
            raise ContractViolation(f"Unknown record kind {kind!r}") from None

    @staticmethod
    def _to_record(kind: type, row):
        return kind(**{f.name: getattr(row, f.name) for f in fields(kind)})

    @property
    def _in_transaction(self) -> bool:
        return getattr(self._local, "depth", 0) > 0

    def _flush(self) -> None:
        try:
            db.session.flush()
            if not self._in_transaction:
                db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Database write failed")
            raise

    def get(self, kind: type, record_id: int):
        row = db.session.get(self._model(kind), record_id)
        return self._to_record(kind, row) if row is not None else None

    def find(self, kind: type, predicate: Predicate | None = None) -> list:
        model = self._model(kind)
        rows = db.session.execute(db.select(model).order_by(model.id)).scalars().all()
        records = [self._to_record(kind, row) for row in rows]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def find_by(self, kind: type, **equals) -> list:
        unknown = set(equals) - field_names(kind)
        if unknown:
            raise ContractViolation(f"Unknown fields for {kind.__name__}: {sorted(unknown)}")
        model = self._model(kind)
        criteria = {name: _column_value(value) for name, value in equals.items()}
        rows = db.session.execute(db.select(model).filter_by(**criteria).order_by(model.id)).scalars().all()
        return [self._to_record(kind, row) for row in rows]

    def insert(self, kind: type, partial: Mapping):
        model = self._model(kind)
        record = build_record(kind, partial, None, utcnow())
        values = {f.name: _column_value(getattr(record, f.name)) for f in fields(kind) if f.name != "id"}
        row = model(**values)
        db.session.add(row)
        self._flush()
        return self._to_record(kind, row)

    def replace(self, kind: type, record_id: int, record):
        model = self._model(kind)
        row = db.session.get(model, record_id)
        if row is None:
            raise ContractViolation(f"{kind.__name__} {record_id} does not exist")
        check_replacement(kind, self._to_record(kind, row), record)
        for f in fields(kind):
            if f.name not in kind.immutable_fields:
                setattr(row, f.name, _column_value(getattr(record, f.name)))
        self._flush()
        return self._to_record(kind, row)

    @staticmethod
    def _lock_statement(model, record_id: int):
        return db.select(model).where(model.id == record_id).with_for_update()

    @contextmanager
    def locked(self, kind: type, record_id: int) -> Iterator[None]:
        """Hold the row lock (SELECT ... FOR UPDATE) until the enclosing transaction ends.

        The in-process lock still applies; the row lock covers other workers.
        SQLite has no row locks, so multi-worker deployments need PostgreSQL.
        """
        model = self._model(kind)
        with super().locked(kind, record_id), self.transaction():
            db.session.execute(
                self._lock_statement(model, record_id).execution_options(populate_existing=True)
            ).scalar_one_or_none()
            yield

    @contextmanager
    def transaction(self) -> Iterator["SqlStore"]:
        depth = getattr(self._local, "depth", 0)
        self._local.depth = depth + 1
        try:
            yield self
            if depth == 0:
                db.session.commit()
        except BaseException:
            if depth == 0:
                db.session.rollback()
                logger.warning("SQL store transaction rolled back")
            raise
        finally:
            self._local.depth = depth
