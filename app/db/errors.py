"""Map SQLAlchemy failures onto the engine's PersistenceError."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

from app.services.errors import PersistenceError


def is_transient(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


@contextmanager
def translate_sqlalchemy_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as e:
        raise PersistenceError(
            f"{operation} failed: {e.__class__.__name__}",
            transient=is_transient(e),
        ) from e
