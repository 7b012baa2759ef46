"""
Translation of SQLAlchemy failures into domain storage exceptions.
"""
from contextlib import contextmanager
from typing import Iterable, Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.logging_config import get_logger
from domain.common.exceptions import DuplicateRecordException, StorageException

logger = get_logger(__name__)


def _conflicting_field(exc: IntegrityError, candidates: Iterable[str]) -> str:
    text = str(exc.orig if exc.orig is not None else exc).lower()
    for name in candidates:
        if name in text:
            return name
    return "id"


@contextmanager
def storage_errors(operation: str, unique_fields: Iterable[str] = (), **context) -> Iterator[None]:
    """Raise DuplicateRecordException on unique violations and StorageException on other DB errors."""
    try:
        yield
    except IntegrityError as exc:
        field = _conflicting_field(exc, unique_fields)
        logger.warning("storage_duplicate", operation=operation, field=field, **context)
        raise DuplicateRecordException(field, details=dict(context)) from exc
    except SQLAlchemyError as exc:
        logger.error("storage_error", operation=operation, error=str(exc), **context)
        raise StorageException(f"Database error during {operation}", details=dict(context)) from exc
