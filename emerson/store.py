"""Keyed record store used by the project materializer.

:class:`ProjectStore` is constructed explicitly around a SQLAlchemy session
and handed to the code that writes project records; nothing in the pipeline
reaches for a module level database handle.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .extensions import db

ModelT = TypeVar("ModelT", bound=db.Model)


class StoreError(RuntimeError):
    """Raised when a record cannot be written to or removed from the store."""


class ProjectStore:
    def __init__(self, session: Session) -> None:
        self.session = session

    def put(self, record: ModelT) -> ModelT:
        try:
            self.session.add(record)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to save {type(record).__name__}: {exc}") from exc
        return record

    def get(self, model: Type[ModelT], record_id: str) -> Optional[ModelT]:
        return self.session.get(model, record_id)

    def delete(self, model: Type[ModelT], record_id: str) -> bool:
        record = self.get(model, record_id)
        if record is None:
            return False
        try:
            self.session.delete(record)
            self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to delete {model.__name__} {record_id}: {exc}") from exc
        return True

    def query_by_field(
        self,
        model: Type[ModelT],
        project_id: str,
        type: Optional[str] = None,
    ) -> List[ModelT]:
        query = self.session.query(model).filter_by(project_id=project_id)
        if type is not None:
            query = query.filter_by(type=type)
        return query.all()

    @contextmanager
    def transaction(self) -> Iterator["ProjectStore"]:
        """Commit everything written inside the block, or nothing."""
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(f"Unable to commit: {exc}") from exc
        except Exception:
            self.session.rollback()
            raise


def get_store() -> ProjectStore:
    return ProjectStore(db.session)
