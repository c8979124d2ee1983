"""Database service backing the local record store with SQLite."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine, func, inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from alembic import command  # type: ignore[attr-defined]
from alembic.config import Config as AlembicConfig  # type: ignore[import-not-found]

from ..exceptions import RecordStoreError
from .base import Record, validate_index_name
from .models import Base, StoredRecord

logger = logging.getLogger(__name__)


class DatabaseService:
    """Record store persisted in a SQLite database.

    Every collection shares the ``records`` table keyed by
    ``(collection, id)``. Each operation runs in its own session and commits
    before returning, so a write is durable once the call completes.
    """

    def __init__(self, db_path: Optional[Path] = None) -> None:
        """Initialize database service.

        Args:
            db_path: Path to SQLite database file.
                    If None, uses default ~/.homestead-sync/homestead.db
        """
        if db_path is None:
            db_path = Path.home() / ".homestead-sync" / "homestead.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        db_exists = self.db_path.exists()

        db_url = f"sqlite:///{self.db_path}"
        self.engine = create_engine(db_url, echo=False)

        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

        logger.debug("Database opened at: %s", self.db_path)

        if not db_exists or not inspect(self.engine).has_table("records"):
            logger.info("New database detected, initializing schema...")
            self.init_db()

    def init_db(self) -> None:
        """Initialize database schema.

        This creates tables using SQLAlchemy and then stamps Alembic to mark the
        database as current (since all tables are created).
        """
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema created successfully")

        self._stamp_migrations()

    def _alembic_config(self) -> Optional[AlembicConfig]:
        """Build an Alembic config pointing at this database.

        alembic.ini and alembic/ live in the project root, three levels above
        this package directory.
        """
        package_dir = Path(__file__).parent.parent.parent.parent
        alembic_ini = package_dir / "alembic.ini"
        alembic_dir = package_dir / "alembic"

        if not alembic_ini.exists() or not alembic_dir.exists():
            logger.warning("Alembic not found at %s, skipping migrations", package_dir)
            return None

        alembic_cfg = AlembicConfig(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(alembic_dir))
        alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")
        return alembic_cfg

    def _stamp_migrations(self) -> None:
        """Stamp database as being at the latest migration version."""
        try:
            alembic_cfg = self._alembic_config()
            if alembic_cfg is None:
                return
            command.stamp(alembic_cfg, "head")
            logger.info("Database stamped with latest migration version")
        except Exception as e:
            logger.error("Failed to stamp migrations: %s", e)
            logger.warning("Database may need manual migration")

    def run_migrations(self) -> None:
        """Run Alembic migrations to upgrade database to latest version."""
        try:
            alembic_cfg = self._alembic_config()
            if alembic_cfg is None:
                return
            command.upgrade(alembic_cfg, "head")
            logger.info("Database migrations applied successfully")
        except Exception as e:
            logger.error("Failed to run migrations: %s", e)
            logger.warning("Continuing with base schema only")

    def get_session(self) -> Session:
        """Get a new database session.

        Returns:
            SQLAlchemy Session object

        Note:
            Caller is responsible for closing the session
        """
        return self.SessionLocal()

    def is_initialized(self) -> bool:
        """Check if the records table exists and a session can be opened.

        Returns:
            True if fully initialized, False otherwise
        """
        try:
            if not inspect(self.engine).has_table("records"):
                logger.debug("Required table missing: records")
                return False

            with self.SessionLocal() as session:
                session.execute(select(1))

            return True
        except SQLAlchemyError as e:
            logger.debug("Database initialization check failed: %s", e)
            return False

    # =========================================================================
    # Record Store Operations
    # =========================================================================

    def get(self, collection: str, record_id: str) -> Optional[Record]:
        """Get one record.

        Args:
            collection: Collection name
            record_id: Record id

        Returns:
            Record dict or None if not found
        """
        with self.get_session() as session:
            row = session.get(StoredRecord, (collection, record_id))
            return dict(row.data) if row is not None else None

    def get_all(self, collection: str) -> List[Record]:
        """Get every record in a collection, oldest change first.

        Records with equal ``updatedAt`` keep insertion order.
        """
        with self.get_session() as session:
            rows = session.scalars(
                select(StoredRecord)
                .where(StoredRecord.collection == collection)
                .order_by(
                    StoredRecord.updated_at, StoredRecord.created_at, StoredRecord.id
                )
            ).all()
            return [dict(row.data) for row in rows]

    def get_all_by_index(
        self, collection: str, index_name: str, value: Any
    ) -> List[Record]:
        """Get records whose top-level field equals a value.

        Args:
            collection: Collection name
            index_name: Top-level field of the record body
            value: Value to match

        Returns:
            Matching record dicts
        """
        validate_index_name(index_name)
        field = func.json_extract(StoredRecord.data, f"$.{index_name}")
        condition = field.is_(None) if value is None else field == value

        with self.get_session() as session:
            rows = session.scalars(
                select(StoredRecord)
                .where(StoredRecord.collection == collection, condition)
                .order_by(
                    StoredRecord.updated_at, StoredRecord.created_at, StoredRecord.id
                )
            ).all()
            return [dict(row.data) for row in rows]

    def _upsert(self, session: Session, collection: str, record: Record) -> None:
        record_id = record.get("id")
        if not record_id:
            raise RecordStoreError(f"Cannot store record without id in {collection}")

        updated_at = record.get("updatedAt")
        row = session.get(StoredRecord, (collection, str(record_id)))
        if row is None:
            row = StoredRecord(collection=collection, id=str(record_id))
            session.add(row)
        row.data = dict(record)
        row.updated_at = int(updated_at) if updated_at is not None else None

    def put(self, collection: str, record: Record) -> None:
        """Insert or replace a record by id.

        Args:
            collection: Collection name
            record: JSON-compatible record dict with an ``id``

        Raises:
            RecordStoreError: If the record has no id or the write fails
        """
        try:
            with self.get_session() as session:
                self._upsert(session, collection, record)
                session.commit()
        except SQLAlchemyError as e:
            raise RecordStoreError(
                f"Failed to write {collection}/{record.get('id')}: {e}"
            ) from e

    def delete(self, collection: str, record_id: str) -> None:
        """Delete a record if it exists."""
        try:
            with self.get_session() as session:
                row = session.get(StoredRecord, (collection, record_id))
                if row is not None:
                    session.delete(row)
                    session.commit()
        except SQLAlchemyError as e:
            raise RecordStoreError(
                f"Failed to delete {collection}/{record_id}: {e}"
            ) from e

    def write_many(
        self,
        puts: Sequence[Tuple[str, Record]] = (),
        deletes: Sequence[Tuple[str, str]] = (),
    ) -> None:
        """Apply puts and deletes in a single transaction.

        Nothing is committed unless every write succeeds.

        Args:
            puts: ``(collection, record)`` pairs to upsert
            deletes: ``(collection, record_id)`` pairs to remove

        Raises:
            RecordStoreError: If any write fails
        """
        try:
            with self.get_session() as session:
                for collection, record in puts:
                    self._upsert(session, collection, record)
                for collection, record_id in deletes:
                    row = session.get(StoredRecord, (collection, record_id))
                    if row is not None:
                        session.delete(row)
                session.commit()
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to write batch: {e}") from e

    def count(self, collection: str) -> int:
        """Number of records in a collection."""
        with self.get_session() as session:
            return session.scalar(
                select(func.count())
                .select_from(StoredRecord)
                .where(StoredRecord.collection == collection)
            ) or 0

    def get_statistics(self) -> Dict[str, Any]:
        """Get database statistics.

        Returns:
            Dictionary with record counts per collection
        """
        with self.get_session() as session:
            rows = session.execute(
                select(StoredRecord.collection, func.count()).group_by(
                    StoredRecord.collection
                )
            ).all()

        return {
            "collections": {collection: count for collection, count in rows},
            "database_path": str(self.db_path),
        }

    def close(self) -> None:
        """Close database connection."""
        self.engine.dispose()
        logger.debug("Database connection closed")
