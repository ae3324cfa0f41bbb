import logging
from datetime import timedelta
from typing import Generic, List, Optional

from sqlalchemy import case, func, select, text, update, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.domain.exceptions import NotFoundError, StorageError
from src.domain.models import Account, Platform, Repository
from src.infrastructure.mapping import EntityMapping, Row, T, mapping_for
from src.infrastructure.schema import metadata

module_logger = logging.getLogger(__name__)


def _next_updated_at(table):
    # NOW() is fixed for the whole transaction; nudge past the stored value so
    # updated_at keeps strictly increasing even for back-to-back writes.
    return func.greatest(func.now(), table.c.updated_at + timedelta(microseconds=1))


class EntityStore(Generic[T]):
    """
    Generic storage operations for one entity type.

    Everything entity-specific comes from the EntityMapping; each operation
    runs in its own transaction and either commits fully or not at all.
    """

    def __init__(self, engine: AsyncEngine, mapping: EntityMapping[T], logger: Optional[logging.Logger] = None):
        self.engine = engine
        self.mapping = mapping
        self.logger = logger or module_logger

    @property
    def table(self):
        return self.mapping.table

    async def _run(self, operation: str, stmt) -> List[Row]:
        """Executes a statement in a transaction and returns its row mappings."""
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
                return list(result.mappings().all())
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"{operation}<{self.mapping.table_name}> failed: {e}")
            raise StorageError(f"{operation} on {self.mapping.table_name} failed: {e}") from e

    async def create(self, entity: T) -> T:
        """
        Inserts an entity and returns it with its server-assigned id and timestamps.

        Raises:
            StorageError: On constraint violation or connection failure.
        """
        stmt = insert(self.table).values(**self.mapping.insert_values(entity)).returning(self.table)
        rows = await self._run("create", stmt)
        created = self.mapping.from_row(rows[0])
        self.logger.debug(f"create<{self.mapping.table_name}> - id {created.id}")
        return created

    async def get(self, entity_id: str, include_deleted: bool = False) -> T:
        """
        Point lookup by identity. Soft-deleted rows are hidden unless
        include_deleted is set.

        Raises:
            NotFoundError: When no row matches or the row is soft-deleted.
            StorageError: On any other database failure.
        """
        stmt = select(self.table).where(self.table.c.id == entity_id)
        if not include_deleted:
            stmt = stmt.where(self.table.c.deleted_at.is_(None))
        rows = await self._run("get", stmt)
        if not rows:
            self.logger.debug(f"get<{self.mapping.table_name}> - not found: {entity_id}")
            raise NotFoundError(self.mapping.table_name, entity_id)
        return self.mapping.from_row(rows[0])

    async def update(self, entity: T) -> T:
        """
        Replaces every update-assignment column of the row matching entity.id.

        Soft-deleted rows can still be updated.
        """
        if entity.id is None:
            raise StorageError(f"update on {self.mapping.table_name} requires an id")
        stmt = (
            update(self.table)
            .where(self.table.c.id == entity.id)
            .values(**self.mapping.update_values(entity), updated_at=_next_updated_at(self.table))
            .returning(self.table)
        )
        rows = await self._run("update", stmt)
        if not rows:
            raise NotFoundError(self.mapping.table_name, entity.id)
        return self.mapping.from_row(rows[0])

    async def soft_delete(self, entity_id: str) -> T:
        """
        Stamps deleted_at on the row. A second delete leaves the row untouched
        and returns it as-is.
        """
        first_delete = self.table.c.deleted_at.is_(None)
        stmt = (
            update(self.table)
            .where(self.table.c.id == entity_id)
            .values(
                deleted_at=func.coalesce(self.table.c.deleted_at, func.now()),
                updated_at=case((first_delete, _next_updated_at(self.table)), else_=self.table.c.updated_at),
            )
            .returning(self.table)
        )
        rows = await self._run("soft_delete", stmt)
        if not rows:
            raise NotFoundError(self.mapping.table_name, entity_id)
        return self.mapping.from_row(rows[0])

    async def list(self) -> List[T]:
        """Returns every row, soft-deleted ones included."""
        stmt = select(self.table).order_by(self.table.c.created_at)
        rows = await self._run("list", stmt)
        self.logger.debug(f"list<{self.mapping.table_name}> - {len(rows)} rows")
        return [self.mapping.from_row(row) for row in rows]

    async def children(self, parent_column: str, parent_id: str) -> List[T]:
        """Returns the live rows whose parent_column equals parent_id."""
        column = self.table.c[parent_column]
        stmt = (
            select(self.table)
            .where(column == parent_id, self.table.c.deleted_at.is_(None))
            .order_by(self.table.c.created_at)
        )
        rows = await self._run("children", stmt)
        return [self.mapping.from_row(row) for row in rows]


class Database:
    """
    Owns the async engine (and its connection pool) and exposes one
    EntityStore per tracked entity type.
    """

    def __init__(self, db_url: str, logger: Optional[logging.Logger] = None):
        self.logger = logger or module_logger
        self.engine = create_async_engine(db_url, echo=False, pool_pre_ping=True)
        self.platforms: EntityStore[Platform] = EntityStore(self.engine, mapping_for(Platform), self.logger)
        self.accounts: EntityStore[Account] = EntityStore(self.engine, mapping_for(Account), self.logger)
        self.repositories: EntityStore[Repository] = EntityStore(self.engine, mapping_for(Repository), self.logger)

    async def ping(self) -> None:
        """Runs SELECT 1. Raises StorageError when the database is unreachable."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text('SELECT 1'))
        except (SQLAlchemyError, OSError) as e:
            raise StorageError(f"Database ping failed: {e}") from e

    async def initialize_schema(self) -> None:
        """Create the tables if they don't exist."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            self.logger.error(f"Error initializing schema: {e}")
            raise StorageError(f"Schema initialization failed: {e}") from e
        self.logger.info("Database schema initialized")

    async def close(self) -> None:
        await self.engine.dispose()
        self.logger.info("Database engine disposed")
