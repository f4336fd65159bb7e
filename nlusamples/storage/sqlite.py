"""
SQLite implementation of the entity and sample storage interfaces.

Both storages share one :class:`SQLiteDatabase`. Every public operation opens
its own ``Session`` and runs inside a single transaction, so a sample and its
annotation links are always written, replaced or deleted together. Annotation
links carry ``ON DELETE CASCADE`` foreign keys to their sample and value; the
cascades are also issued explicitly so the behaviour does not depend on the
``foreign_keys`` pragma.

SQLAlchemy calls are synchronous, so the session work of each operation runs
in a worker thread via ``asyncio.to_thread``.
"""

import asyncio
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any, Callable, Collection, Iterator, Optional, Sequence, TypeVar

from sqlalchemy import JSON, Column, ForeignKey, String, UniqueConstraint, delete, event, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from nlusamples.entity import Entity, EntityValue
from nlusamples.errors import StorageError
from nlusamples.sample import Sample, SampleEntity, SampleType
from nlusamples.storage.interfaces import EntityStorageInterface, SampleStorageInterface

T = TypeVar("T")


class EntityRecord(SQLModel, table=True):
    """One recognized entity."""

    __tablename__ = "nlu_entities"

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_id: str = Field(index=True, unique=True)
    name: str = Field(index=True, unique=True)
    lookups: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field()


class EntityValueRecord(SQLModel, table=True):
    """One value of an entity; (entity_id, value) is unique."""

    __tablename__ = "nlu_entity_values"
    __table_args__ = (UniqueConstraint("entity_id", "value", name="uq_entity_value"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    value_id: str = Field(index=True, unique=True)
    entity_id: str = Field(
        sa_column=Column(String, ForeignKey("nlu_entities.entity_id", ondelete="CASCADE"), index=True, nullable=False)
    )
    value: str = Field(index=True)
    synonyms: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field()


class SampleRecord(SQLModel, table=True):
    """One labeled utterance."""

    __tablename__ = "nlu_samples"

    id: Optional[int] = Field(default=None, primary_key=True)
    sample_id: str = Field(index=True, unique=True)
    text: str = Field(index=True)
    type: str = Field(index=True)
    trained: bool = Field(default=False)
    created_at: datetime = Field()
    updated_at: datetime = Field()


class SampleEntityRecord(SQLModel, table=True):
    """One annotation link between a sample and an entity value."""

    __tablename__ = "nlu_sample_entities"

    id: Optional[int] = Field(default=None, primary_key=True)
    link_id: str = Field(index=True, unique=True)
    sample_id: str = Field(
        sa_column=Column(String, ForeignKey("nlu_samples.sample_id", ondelete="CASCADE"), index=True, nullable=False)
    )
    entity_id: str = Field(index=True)
    value_id: str = Field(
        sa_column=Column(String, ForeignKey("nlu_entity_values.value_id", ondelete="CASCADE"), index=True, nullable=False)
    )
    start: Optional[int] = Field(default=None)
    end: Optional[int] = Field(default=None)


def _aware(value: datetime) -> datetime:
    """SQLite drops tzinfo; stored timestamps are always UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _enable_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLiteDatabase:
    """
    Owns the SQLAlchemy engine and hands out transactional sessions.
    """

    def __init__(self, db_path: str = ":memory:"):
        if db_path == ":memory:":
            # One shared connection, otherwise every session sees an empty database
            self.engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
            # Worker threads must not interleave transactions on that connection
            self._guard: Any = threading.Lock()
        else:
            self.engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
            self._guard = nullcontext()
        event.listen(self.engine, "connect", _enable_foreign_keys)
        SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Yield a session whose work is committed on success and rolled back on error.
        """
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                with session.begin():
                    yield session
        except SQLAlchemyError as e:
            raise StorageError(f"Database operation failed: {e}") from e

    async def run(self, work: Callable[[Session], T]) -> T:
        """
        Run ``work`` in one transaction on a worker thread and return its result.
        """

        def _in_transaction() -> T:
            with self._guard:
                with self.transaction() as session:
                    return work(session)

        return await asyncio.to_thread(_in_transaction)

    def close(self) -> None:
        """
        Close connections and clean up resources.
        """
        self.engine.dispose()


class SQLiteEntityStorage(EntityStorageInterface):
    """
    Entity catalog storage backed by SQLite.
    """

    def __init__(self, database: SQLiteDatabase):
        self.database = database

    @staticmethod
    def _to_entity(record: EntityRecord) -> Entity:
        return Entity(
            entity_id=record.entity_id,
            name=record.name,
            lookups=tuple(record.lookups or ()),
            created_at=_aware(record.created_at),
        )

    @staticmethod
    def _to_value(record: EntityValueRecord) -> EntityValue:
        return EntityValue(
            value_id=record.value_id,
            entity_id=record.entity_id,
            value=record.value,
            synonyms=tuple(record.synonyms or ()),
            created_at=_aware(record.created_at),
        )

    async def add_entity(self, entity: Entity) -> str:
        def _add(session: Session) -> None:
            session.add(
                EntityRecord(
                    entity_id=entity.entity_id,
                    name=entity.name,
                    lookups=list(entity.lookups),
                    created_at=entity.created_at,
                )
            )

        await self.database.run(_add)
        return entity.entity_id

    async def get_entity(self, entity_id: str) -> Entity | None:
        def _get(session: Session) -> Entity | None:
            record = session.exec(select(EntityRecord).where(EntityRecord.entity_id == entity_id)).first()
            return self._to_entity(record) if record else None

        return await self.database.run(_get)

    async def find_entity_by_name(self, name: str) -> Entity | None:
        def _find(session: Session) -> Entity | None:
            record = session.exec(select(EntityRecord).where(EntityRecord.name == name)).first()
            return self._to_entity(record) if record else None

        return await self.database.run(_find)

    async def list_entities(self) -> list[Entity]:
        def _list(session: Session) -> list[Entity]:
            records = session.exec(select(EntityRecord).order_by(EntityRecord.id)).all()
            return [self._to_entity(r) for r in records]

        return await self.database.run(_list)

    async def add_value(self, value: EntityValue) -> str:
        def _add(session: Session) -> None:
            session.add(
                EntityValueRecord(
                    value_id=value.value_id,
                    entity_id=value.entity_id,
                    value=value.value,
                    synonyms=list(value.synonyms),
                    created_at=value.created_at,
                )
            )

        await self.database.run(_add)
        return value.value_id

    async def get_value(self, value_id: str) -> EntityValue | None:
        def _get(session: Session) -> EntityValue | None:
            record = session.exec(select(EntityValueRecord).where(EntityValueRecord.value_id == value_id)).first()
            return self._to_value(record) if record else None

        return await self.database.run(_get)

    async def find_value(self, entity_id: str, value: str) -> EntityValue | None:
        def _find(session: Session) -> EntityValue | None:
            statement = select(EntityValueRecord).where(
                EntityValueRecord.entity_id == entity_id,
                EntityValueRecord.value == value,
            )
            record = session.exec(statement).first()
            return self._to_value(record) if record else None

        return await self.database.run(_find)

    async def list_values(self, entity_id: str | None = None) -> list[EntityValue]:
        def _list(session: Session) -> list[EntityValue]:
            statement = select(EntityValueRecord)
            if entity_id is not None:
                statement = statement.where(EntityValueRecord.entity_id == entity_id)
            records = session.exec(statement.order_by(EntityValueRecord.id)).all()
            return [self._to_value(r) for r in records]

        return await self.database.run(_list)

    async def delete_value(self, value_id: str) -> bool:
        def _delete(session: Session) -> bool:
            session.execute(delete(SampleEntityRecord).where(SampleEntityRecord.value_id == value_id))
            result = session.execute(delete(EntityValueRecord).where(EntityValueRecord.value_id == value_id))
            return result.rowcount > 0

        return await self.database.run(_delete)

    async def count_entities(self) -> int:
        def _count(session: Session) -> int:
            return session.exec(select(func.count()).select_from(EntityRecord)).one()

        return await self.database.run(_count)


class SQLiteSampleStorage(SampleStorageInterface):
    """
    Sample and annotation link storage backed by SQLite.
    """

    def __init__(self, database: SQLiteDatabase):
        self.database = database

    @staticmethod
    def _to_sample(record: SampleRecord) -> Sample:
        return Sample(
            sample_id=record.sample_id,
            text=record.text,
            type=SampleType(record.type),
            trained=record.trained,
            created_at=_aware(record.created_at),
            updated_at=_aware(record.updated_at),
        )

    @staticmethod
    def _to_link(record: SampleEntityRecord) -> SampleEntity:
        return SampleEntity(
            link_id=record.link_id,
            sample_id=record.sample_id,
            entity_id=record.entity_id,
            value_id=record.value_id,
            start=record.start,
            end=record.end,
        )

    @staticmethod
    def _link_record(link: SampleEntity) -> SampleEntityRecord:
        return SampleEntityRecord(
            link_id=link.link_id,
            sample_id=link.sample_id,
            entity_id=link.entity_id,
            value_id=link.value_id,
            start=link.start,
            end=link.end,
        )

    @staticmethod
    def _find(session: Session, sample_id: str) -> SampleRecord | None:
        return session.exec(select(SampleRecord).where(SampleRecord.sample_id == sample_id)).first()

    async def add(self, sample: Sample, links: Sequence[SampleEntity] = ()) -> str:
        def _add(session: Session) -> None:
            session.add(
                SampleRecord(
                    sample_id=sample.sample_id,
                    text=sample.text,
                    type=sample.type.value,
                    trained=sample.trained,
                    created_at=sample.created_at,
                    updated_at=sample.updated_at,
                )
            )
            # Parent row must exist before the links that reference it
            session.flush()
            session.add_all([self._link_record(link) for link in links])

        await self.database.run(_add)
        return sample.sample_id

    async def get(self, sample_id: str) -> Sample | None:
        def _get(session: Session) -> Sample | None:
            record = self._find(session, sample_id)
            return self._to_sample(record) if record else None

        return await self.database.run(_get)

    async def update(self, sample: Sample, links: Sequence[SampleEntity] | None = None) -> bool:
        def _update(session: Session) -> bool:
            record = self._find(session, sample.sample_id)
            if record is None:
                return False
            record.text = sample.text
            record.type = sample.type.value
            record.trained = sample.trained
            record.updated_at = sample.updated_at
            session.add(record)
            if links is not None:
                session.execute(delete(SampleEntityRecord).where(SampleEntityRecord.sample_id == sample.sample_id))
                session.add_all([self._link_record(link) for link in links])
            return True

        return await self.database.run(_update)

    async def replace_links(self, sample_id: str, links: Sequence[SampleEntity]) -> bool:
        def _replace(session: Session) -> bool:
            if self._find(session, sample_id) is None:
                return False
            session.execute(delete(SampleEntityRecord).where(SampleEntityRecord.sample_id == sample_id))
            session.add_all([self._link_record(link) for link in links])
            return True

        return await self.database.run(_replace)

    async def get_links(self, sample_ids: Sequence[str]) -> dict[str, list[SampleEntity]]:
        result: dict[str, list[SampleEntity]] = {sample_id: [] for sample_id in sample_ids}
        if not sample_ids:
            return result

        def _collect(session: Session) -> None:
            statement = (
                select(SampleEntityRecord)
                .where(SampleEntityRecord.sample_id.in_(list(sample_ids)))  # type: ignore[union-attr]
                .order_by(SampleEntityRecord.id)
            )
            for record in session.exec(statement).all():
                result[record.sample_id].append(self._to_link(record))

        await self.database.run(_collect)
        return result

    async def get_link(self, link_id: str) -> SampleEntity | None:
        def _get(session: Session) -> SampleEntity | None:
            record = session.exec(select(SampleEntityRecord).where(SampleEntityRecord.link_id == link_id)).first()
            return self._to_link(record) if record else None

        return await self.database.run(_get)

    async def exists(self, text: str) -> bool:
        return bool(await self.find_by_text(text))

    async def find_by_text(self, text: str) -> list[Sample]:
        def _find(session: Session) -> list[Sample]:
            # SQLite '=' on TEXT is binary, hence case-sensitive
            statement = select(SampleRecord).where(SampleRecord.text == text).order_by(SampleRecord.id)
            return [self._to_sample(r) for r in session.exec(statement).all()]

        return await self.database.run(_find)

    async def list_all(
        self,
        sample_type: SampleType | None = None,
        text_contains: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Sample]:
        def _list(session: Session) -> list[Sample]:
            statement = select(SampleRecord)
            if sample_type is not None:
                statement = statement.where(SampleRecord.type == sample_type.value)
            if text_contains:
                statement = statement.where(SampleRecord.text.contains(text_contains))  # type: ignore[attr-defined]
            statement = statement.order_by(SampleRecord.id).offset(offset)
            if limit is not None:
                statement = statement.limit(limit)
            return [self._to_sample(r) for r in session.exec(statement).all()]

        return await self.database.run(_list)

    async def count(self, sample_type: SampleType | None = None) -> int:
        def _count(session: Session) -> int:
            statement = select(func.count()).select_from(SampleRecord)
            if sample_type is not None:
                statement = statement.where(SampleRecord.type == sample_type.value)
            return session.exec(statement).one()

        return await self.database.run(_count)

    async def delete_cascade(self, sample_id: str) -> int:
        def _delete(session: Session) -> int:
            session.execute(delete(SampleEntityRecord).where(SampleEntityRecord.sample_id == sample_id))
            result = session.execute(delete(SampleRecord).where(SampleRecord.sample_id == sample_id))
            return result.rowcount

        return await self.database.run(_delete)

    async def delete_links_by_value(self, value_id: str) -> int:
        def _delete(session: Session) -> int:
            result = session.execute(delete(SampleEntityRecord).where(SampleEntityRecord.value_id == value_id))
            return result.rowcount

        return await self.database.run(_delete)

    async def count_links_by_value(self, value_id: str) -> int:
        def _count(session: Session) -> int:
            statement = select(func.count()).select_from(SampleEntityRecord).where(SampleEntityRecord.value_id == value_id)
            return session.exec(statement).one()

        return await self.database.run(_count)

    async def set_trained(self, sample_ids: Sequence[str], trained: bool = True) -> int:
        if not sample_ids:
            return 0
        now = datetime.now(timezone.utc)

        def _flag(session: Session) -> int:
            records = session.exec(
                select(SampleRecord).where(SampleRecord.sample_id.in_(list(sample_ids)))  # type: ignore[union-attr]
            ).all()
            for record in records:
                record.trained = trained
                record.updated_at = now
                session.add(record)
            return len(records)

        return await self.database.run(_flag)

    async def find_orphan_links(self, known_value_ids: Collection[str]) -> list[SampleEntity]:
        known = set(known_value_ids)

        def _orphans(session: Session) -> list[SampleEntity]:
            sample_ids = set(session.exec(select(SampleRecord.sample_id)).all())
            records = session.exec(select(SampleEntityRecord).order_by(SampleEntityRecord.id)).all()
            return [
                self._to_link(r)
                for r in records
                if r.sample_id not in sample_ids or r.value_id not in known
            ]

        return await self.database.run(_orphans)

    async def delete_links(self, link_ids: Sequence[str]) -> int:
        if not link_ids:
            return 0

        def _delete(session: Session) -> int:
            result = session.execute(
                delete(SampleEntityRecord).where(SampleEntityRecord.link_id.in_(list(link_ids)))  # type: ignore[union-attr]
            )
            return result.rowcount

        return await self.database.run(_delete)
