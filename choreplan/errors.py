from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EngineError(Exception):
    type = "UNEXPECTED_ERROR"
    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {"message": self.message, "type": self.type}


class DuplicatePlanError(EngineError):
    type = "DUPLICATE_RECORD"
    status_code = 409


class PlanClosedError(EngineError):
    type = "PLAN_CLOSED"
    status_code = 409


class RecordNotFoundError(EngineError):
    type = "RECORD_NOT_FOUND"
    status_code = 404


class InvalidCategoryError(EngineError):
    type = "INVALID_CATEGORY"
    status_code = 400


class PermissionDeniedError(EngineError):
    type = "INSUFFICIENT_PERMISSIONS"
    status_code = 403


class InvalidInputError(EngineError):
    type = "INVALID_INPUT"
    status_code = 400


class StorageError(EngineError):
    type = "DATABASE_QUERY_ERROR"
    status_code = 500


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[EngineError] = None

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def is_err(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


def ok(value: T) -> Result[T]:
    return Result(value=value)


def err(error: EngineError) -> Result:
    return Result(error=error)


def engine_operation(description: str) -> Callable:
    """Run ``func(session, ...)`` as one transaction and wrap the outcome."""

    def decorator(func: Callable[..., T]) -> Callable[..., Result[T]]:
        @functools.wraps(func)
        def wrapper(session: Session, *args, **kwargs) -> Result[T]:
            try:
                value = func(session, *args, **kwargs)
                session.commit()
            except EngineError as exc:
                session.rollback()
                logger.info("%s rejected (%s): %s", description, exc.type, exc.message)
                return err(exc)
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("%s failed", description)
                return err(StorageError(f"Failed to {description}", cause=exc))
            except Exception:
                session.rollback()
                raise
            return ok(value)

        return wrapper

    return decorator


__all__ = [
    "EngineError",
    "DuplicatePlanError",
    "PlanClosedError",
    "RecordNotFoundError",
    "InvalidCategoryError",
    "PermissionDeniedError",
    "InvalidInputError",
    "StorageError",
    "Result",
    "ok",
    "err",
    "engine_operation",
]
