"""Query access to the ``developers`` table."""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..exceptions import StoreUnavailable
from ..models import Developer
from ..utils.logging import get_logger

logger = get_logger(__name__)


class DeveloperRepository:
    """Reads and writes Developer rows; store failures become ``StoreUnavailable``."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, developer_id: str) -> Optional[Developer]:
        try:
            return self.db.get(Developer, developer_id)
        except SQLAlchemyError as e:
            raise self._unavailable("get_by_id", e)

    def get_by_api_key(self, api_key: str) -> Optional[Developer]:
        try:
            return self.db.scalars(
                select(Developer).where(Developer.api_key == api_key)
            ).first()
        except SQLAlchemyError as e:
            raise self._unavailable("get_by_api_key", e)

    def list_all(self) -> List[Developer]:
        return self._list(select(Developer))

    def list_for_owner(self, owner_user_id: str) -> List[Developer]:
        return self._list(
            select(Developer).where(Developer.owner_user_id == owner_user_id)
        )

    def count_for_owner(self, owner_user_id: str, active_only: bool = True) -> int:
        query = select(func.count(Developer.id)).where(
            Developer.owner_user_id == owner_user_id
        )
        if active_only:
            query = query.where(Developer.is_active.is_(True))
        try:
            return self.db.scalar(query) or 0
        except SQLAlchemyError as e:
            raise self._unavailable("count_for_owner", e)

    def ids_for_owner(self, owner_user_id: str) -> List[str]:
        try:
            return list(
                self.db.scalars(
                    select(Developer.id).where(Developer.owner_user_id == owner_user_id)
                )
            )
        except SQLAlchemyError as e:
            raise self._unavailable("ids_for_owner", e)

    def lock_owner(self, owner_user_id: str) -> None:
        """Row-lock the owner's keys until the transaction ends (no-op on SQLite)."""
        try:
            self.db.execute(
                select(Developer.id)
                .where(Developer.owner_user_id == owner_user_id)
                .order_by(Developer.id)
                .with_for_update()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise self._unavailable("lock_owner", e)

    def add(self, developer: Developer) -> None:
        self.db.add(developer)

    def flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise self._unavailable("flush", e)

    def delete(self, developer: Developer) -> None:
        self.db.delete(developer)

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise self._unavailable("commit", e)

    def _list(self, query) -> List[Developer]:
        query = query.options(selectinload(Developer.limits)).order_by(
            Developer.created_at.desc(), Developer.id
        )
        try:
            return list(self.db.scalars(query))
        except SQLAlchemyError as e:
            raise self._unavailable("list", e)

    @staticmethod
    def _unavailable(operation: str, error: Exception) -> StoreUnavailable:
        logger.error("store_error", operation=operation, error=str(error))
        return StoreUnavailable()
