# backend/peertutor/repositories/base_repository.py
"""
Base repository for PeerTutor data access.

Repositories own queries; services own transactions. Nothing here commits:
writes are flushed so generated ids are available, and the calling service
decides when the unit of work ends. Driver errors surface as
RepositoryException with the failed action in the message.
"""

from contextlib import contextmanager
import logging
from typing import Any, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..database import get_dialect_name

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Lookups and inserts shared by the concrete repositories.

    Attributes:
        db: SQLAlchemy session (managed by the service layer)
        model: Mapped class the repository serves
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except RepositoryException:
            raise
        except IntegrityError as exc:
            self.logger.error("Integrity error while trying to %s: %s", action, exc)
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as exc:
            self.logger.error("Database error while trying to %s: %s", action, exc)
            raise RepositoryException(f"Failed to {action}: {exc}") from exc

    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        with self._guard(f"load {self.model.__name__} {id}"):
            query = self.db.query(self.model).filter(self.model.id == id)
            if load_relationships:
                query = self._apply_eager_loading(query)
            return query.first()

    def create(self, **fields: Any) -> T:
        """Add and flush a new row; the id is populated on return."""
        with self._guard(f"create {self.model.__name__}"):
            entity = self.model(**fields)
            self.db.add(entity)
            self.db.flush()
            return entity

    def flush(self) -> None:
        self.db.flush()

    def find_by(self, **criteria: Any) -> List[T]:
        with self._guard(f"find {self.model.__name__} rows"):
            return self.db.query(self.model).filter_by(**criteria).all()

    def count(self, **criteria: Any) -> int:
        with self._guard(f"count {self.model.__name__} rows"):
            return self.db.query(self.model).filter_by(**criteria).count()

    def exists(self, **criteria: Any) -> bool:
        with self._guard(f"check {self.model.__name__} existence"):
            return self.db.query(self.model.id).filter_by(**criteria).first() is not None

    # Helpers for subclasses

    def _apply_eager_loading(self, query: Query) -> Query:
        """Hook for joinedload/selectinload options."""
        return query

    def _execute_query(self, query: Query) -> List[T]:
        with self._guard(f"query {self.model.__name__}"):
            return query.all()

    def _insert_unless_exists(self, values: Dict[str, Any], unique_column: str) -> bool:
        """
        INSERT that silently skips rows colliding on ``unique_column``.

        Returns True when a row was written.
        """
        dialect = get_dialect_name(self.db, default="postgresql").lower()
        if dialect == "postgresql":
            stmt = pg_insert(self.model).values(**values).on_conflict_do_nothing(
                index_elements=[unique_column]
            )
        elif dialect == "sqlite":
            stmt = sqlite_insert(self.model).values(**values).on_conflict_do_nothing(
                index_elements=[unique_column]
            )
        else:
            stmt = insert(self.model).values(**values)
        with self._guard(f"insert {self.model.__name__}"):
            written = bool(self.db.execute(stmt).rowcount)
            self.db.flush()
        return written
