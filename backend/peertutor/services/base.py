# backend/peertutor/services/base.py
"""
Base class for PeerTutor services.

Services own the unit of work. Repositories only flush; ``transaction()``
commits, and maps database failures onto domain exceptions so routes never
see SQLAlchemy errors. ``measure_operation`` feeds the Prometheus
operation histogram.
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.exceptions import InvalidStateException, RepositoryException, ServiceException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    def __init__(self, db: Session):
        self.db = db
        self.logger = logging.getLogger(self.__class__.__name__)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Commit on clean exit, roll back otherwise.

        Usage:
            with self.transaction():
                session.cancel(...)

        Raises:
            InvalidStateException: another writer bumped the session version first
            ServiceException: the database rejected the unit of work
        """
        try:
            yield self.db
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            self.logger.warning(f"Concurrent modification detected: {exc}")
            raise InvalidStateException("session was modified concurrently") from exc
        except (SQLAlchemyError, RepositoryException) as exc:
            self.db.rollback()
            self.logger.error(f"Transaction failed: {exc}")
            raise ServiceException(f"Database operation failed: {exc}") from exc
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Time a service method and record its outcome.

        Usage:
            @BaseService.measure_operation("book_session")
            def book(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                started = time.perf_counter()
                error_type: Optional[str] = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as exc:
                    error_type = type(exc).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - started
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(f"Slow operation: {operation_name} took {elapsed:.2f}s")
                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="error" if error_type else "success",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """Structured info log; ``context`` lands in the record's extras."""
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
