"""Tests for the SQLite storage backend.

This module runs the catalog, annotation store and ingestion pipeline on
SQLite and verifies:
- Entities, values, samples and links round-trip through the tables
- Link replacement and cascade deletion happen in one transaction
- Data persists across database instances on the same file
- Constraint violations surface as StorageError
"""

import threading
from pathlib import Path

import pytest

from nlusamples.annotation import AnnotationStore
from nlusamples.catalog import EntityCatalog
from nlusamples.entity import KEYWORDS_LOOKUP, TRAIT_LOOKUP, Entity, EntityValue
from nlusamples.errors import NotFoundError, StorageError
from nlusamples.ingest import IngestionPipeline
from nlusamples.sample import AnnotationRef, SampleType
from nlusamples.storage.sqlite import SQLiteDatabase, SQLiteEntityStorage, SQLiteSampleStorage


class RacingEntityStorage(SQLiteEntityStorage):
    """Misses an existing value once, as if another process stored it after the lookup."""

    hide_values = False

    async def find_value(self, entity_id: str, value: str) -> EntityValue | None:
        if self.hide_values:
            self.hide_values = False
            return None
        return await super().find_value(entity_id, value)


@pytest.fixture
def database():
    db = SQLiteDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
async def sqlite_catalog(database: SQLiteDatabase) -> EntityCatalog:
    catalog = EntityCatalog(SQLiteEntityStorage(database))
    await catalog.create_entity("intent", lookups=(TRAIT_LOOKUP,))
    await catalog.create_entity("city", lookups=(KEYWORDS_LOOKUP,))
    return catalog


@pytest.fixture
def sqlite_annotations(database: SQLiteDatabase, sqlite_catalog: EntityCatalog) -> AnnotationStore:
    return AnnotationStore(SQLiteSampleStorage(database), sqlite_catalog)


class TestSQLiteCatalog:
    """Entity catalog on SQLite."""

    async def test_entity_round_trip(self, sqlite_catalog: EntityCatalog) -> None:
        entity = await sqlite_catalog.get_entity_by_name("intent")

        assert entity.lookups == (TRAIT_LOOKUP,)
        assert entity.created_at.tzinfo is not None
        assert [e.name for e in await sqlite_catalog.list_all()] == ["intent", "city"]

    async def test_resolve_is_idempotent(self, sqlite_catalog: EntityCatalog) -> None:
        first = await sqlite_catalog.resolve_or_create_value("city", "Paris")
        second = await sqlite_catalog.resolve_or_create_value("city", "Paris")

        assert first.value_id == second.value_id
        [city] = [item for item in await sqlite_catalog.list_all_with_values() if item.name == "city"]
        assert [v.value for v in city.values] == ["Paris"]

    async def test_synonyms_stored(self, sqlite_catalog: EntityCatalog) -> None:
        value = await sqlite_catalog.create_value("city", "New York", synonyms=["NYC"])

        assert (await sqlite_catalog.get_value(value.value_id)).synonyms == ("NYC",)

    async def test_duplicate_name_is_storage_error(self, database: SQLiteDatabase) -> None:
        """The unique constraint on entity names is enforced by the database."""
        storage = SQLiteEntityStorage(database)
        await storage.add_entity(Entity(name="color"))

        with pytest.raises(StorageError):
            await storage.add_entity(Entity(name="color"))

    async def test_value_pair_unique_across_handles(self, tmp_path: Path) -> None:
        """Two handles on one file cannot both store (city, Paris)."""
        db_path = str(tmp_path / "shared.db")
        first, second = SQLiteDatabase(db_path), SQLiteDatabase(db_path)
        try:
            city = Entity(name="city")
            await SQLiteEntityStorage(first).add_entity(city)
            await SQLiteEntityStorage(first).add_value(EntityValue(entity_id=city.entity_id, value="Paris"))

            with pytest.raises(StorageError):
                await SQLiteEntityStorage(second).add_value(EntityValue(entity_id=city.entity_id, value="Paris"))

            assert len(await SQLiteEntityStorage(first).list_values(city.entity_id)) == 1
        finally:
            first.close()
            second.close()

    async def test_resolve_reuses_value_stored_by_another_handle(self, tmp_path: Path) -> None:
        """Catalogs on separate handles each resolving (city, Paris) end up with one stored value."""
        db_path = str(tmp_path / "shared.db")
        first, second = SQLiteDatabase(db_path), SQLiteDatabase(db_path)
        try:
            await EntityCatalog(SQLiteEntityStorage(first)).create_entity("city")
            storage = RacingEntityStorage(second)
            catalog = EntityCatalog(storage)
            winner = await EntityCatalog(SQLiteEntityStorage(first)).resolve_or_create_value("city", "Paris")
            storage.hide_values = True

            resolution = await catalog.resolve("city", "Paris")

            assert resolution.value.value_id == winner.value_id
            assert resolution.created_value is False
            assert len(await SQLiteEntityStorage(first).list_values()) == 1
        finally:
            first.close()
            second.close()

    async def test_work_runs_off_the_event_loop_thread(self, database: SQLiteDatabase) -> None:
        loop_thread = threading.get_ident()

        worker_thread = await database.run(lambda session: threading.get_ident())

        assert worker_thread != loop_thread


class TestSQLiteAnnotations:
    """Samples and links on SQLite."""

    async def test_create_and_read(self, sqlite_annotations: AnnotationStore) -> None:
        created = await sqlite_annotations.create_sample(
            "fly to Paris",
            annotations=[
                AnnotationRef(entity="intent", value="travel"),
                AnnotationRef(entity="city", value="Paris", start=7, end=12),
            ],
        )

        fetched = await sqlite_annotations.get_annotated(created.sample.sample_id)

        assert fetched.text == "fly to Paris"
        assert fetched.annotations == created.annotations
        assert fetched.sample.trained is False
        assert fetched.sample.created_at.tzinfo is not None

    async def test_replace_annotations(self, sqlite_annotations: AnnotationStore) -> None:
        created = await sqlite_annotations.create_sample(
            "hi", annotations=[AnnotationRef(entity="intent", value="greet")]
        )

        await sqlite_annotations.replace_annotations(
            created.sample.sample_id, [AnnotationRef(entity="intent", value="salute")]
        )

        [found] = await sqlite_annotations.find_by_purpose(SampleType.TRAIN)
        assert [(a.entity, a.value) for a in found.annotations] == [("intent", "salute")]

    async def test_delete_cascade(self, sqlite_annotations: AnnotationStore) -> None:
        created = await sqlite_annotations.create_sample(
            "hi", annotations=[AnnotationRef(entity="intent", value="greet")]
        )
        link_id = created.annotations[0].link_id

        assert await sqlite_annotations.delete_sample_cascade(created.sample.sample_id) == 1
        assert await sqlite_annotations.delete_sample_cascade(created.sample.sample_id) == 0

        with pytest.raises(NotFoundError):
            await sqlite_annotations.get_link(link_id)

    async def test_detach_value(self, sqlite_annotations: AnnotationStore, sqlite_catalog: EntityCatalog) -> None:
        await sqlite_annotations.create_sample("hi", annotations=[AnnotationRef(entity="intent", value="greet")])
        await sqlite_annotations.create_sample("hey", annotations=[AnnotationRef(entity="intent", value="greet")])
        value = await sqlite_catalog.find_value("intent", "greet")

        assert await sqlite_annotations.detach_value(value.value_id) == 2
        assert all(s.annotations == () for s in await sqlite_annotations.find_all())

    async def test_mark_trained_and_paging(self, sqlite_annotations: AnnotationStore) -> None:
        ids = [(await sqlite_annotations.create_sample(text)).sample.sample_id for text in ["a", "b", "c"]]

        assert await sqlite_annotations.mark_trained(ids[:2]) == 2
        page = await sqlite_annotations.find_page(limit=2, offset=1)

        assert [(s.text, s.sample.trained) for s in page] == [("b", True), ("c", False)]
        assert await sqlite_annotations.count() == 3


class TestSQLitePersistence:
    """Data written through one database instance is visible to the next."""

    async def test_import_survives_reopen(self, tmp_path: Path) -> None:
        db_path = str(tmp_path / "samples.db")
        database = SQLiteDatabase(db_path)
        catalog = EntityCatalog(SQLiteEntityStorage(database))
        await catalog.create_entity("intent", lookups=(TRAIT_LOOKUP,))
        pipeline = IngestionPipeline(catalog, AnnotationStore(SQLiteSampleStorage(database), catalog))
        summary = await pipeline.import_csv("text,intent\nhello,greet\nbye,leave\n")
        database.close()
        assert summary.imported == 2

        reopened = SQLiteDatabase(db_path)
        try:
            catalog = EntityCatalog(SQLiteEntityStorage(reopened))
            annotations = AnnotationStore(SQLiteSampleStorage(reopened), catalog)

            samples = await annotations.find_all()
            assert [(s.text, s.values_for("intent")) for s in samples] == [
                ("hello", ["greet"]),
                ("bye", ["leave"]),
            ]
            assert await annotations.exists("hello")
            assert not await annotations.exists("Hello")
        finally:
            reopened.close()
