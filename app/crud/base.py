# app/crud/base.py
from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Generic, Optional, Type, TypeVar

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ConflictError, StorageError
from app.db.base_class import Base

log = structlog.get_logger(__name__)

ModelType = TypeVar("ModelType", bound=Base)
F = TypeVar("F", bound=Callable[..., Any])


def storage_call(fn: F) -> F:
    """Turns SQLAlchemy failures into StorageError (ConflictError for unique violations)."""

    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except IntegrityError as exc:
            log.warning("storage_integrity_error", operation=fn.__qualname__, error=str(exc.orig))
            raise ConflictError("Record violates a uniqueness constraint.") from exc
        except SQLAlchemyError as exc:
            log.error("storage_error", operation=fn.__qualname__, error=str(exc))
            raise StorageError(f"Storage failure in {fn.__name__}") from exc

    return wrapper  # type: ignore[return-value]


class CRUDBase(Generic[ModelType]):
    """Session-bound repository. Writes are flushed, never committed here;
    the caller owns the transaction (see app.db.session.transaction)."""

    model: Type[ModelType]

    def __init__(self, db: Session):
        self.db = db

    @storage_call
    def get(self, id: Any) -> Optional[ModelType]:
        return self.db.get(self.model, id)

    @storage_call
    def add(self, obj: ModelType) -> ModelType:
        self.db.add(obj)
        self.db.flush()
        self.db.refresh(obj)
        return obj
