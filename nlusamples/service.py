"""Operation surface for samples, entities, imports, exports and training.

`SampleService` is what an HTTP layer or the command line talks to. It
composes the entity catalog, annotation store, ingestion pipeline and
training orchestrator, and `SampleService.from_settings` is the one place
where storage backends and the recognition engine are chosen.

Example usage:
    ```python
    service = SampleService.from_settings(load_settings())
    await service.create_entity("city")
    summary = await service.import_file(Path("samples.csv"))
    payload = await service.export(SampleType.TRAIN, fmt="rasa")
    service.close()
    ```
"""

from pathlib import Path
from typing import Any, Literal, Sequence

from nlusamples.annotation import AnnotationStore
from nlusamples.catalog import EntityCatalog
from nlusamples.config import NluSettings
from nlusamples.engines import get_engine
from nlusamples.engines.interfaces import RecognitionEngineInterface
from nlusamples.entity import KEYWORDS_LOOKUP, Entity, EntityValue, EntityWithValues
from nlusamples.errors import NotFoundError, ValidationError
from nlusamples.export import export_filename, to_exchange_format, to_rasa_nlu, write_export
from nlusamples.ingest import ImportSummary, IngestionPipeline
from nlusamples.logging import setup_logging
from nlusamples.sample import AnnotatedSample, AnnotationRef, SampleType
from nlusamples.storage.interfaces import EntityStorageInterface, SampleStorageInterface
from nlusamples.storage.memory import InMemoryEntityStorage, InMemorySampleStorage
from nlusamples.training import TrainingOrchestrator

logger = setup_logging(name=__name__)

ExportFormat = Literal["exchange", "rasa"]


class SampleService:
    """All sample, entity and training operations behind one object.

    Args:
        entity_storage: Backend for entities and values.
        sample_storage: Backend for samples and annotation links.
        engine: Recognition engine used for train/evaluate/parse.
        default_lookups: Lookups for entities first created by an import.
        import_sample_type: Type assigned to imported samples.
        database: Optional SQL database to dispose of on :meth:`close`.
    """

    def __init__(
        self,
        entity_storage: EntityStorageInterface,
        sample_storage: SampleStorageInterface,
        engine: RecognitionEngineInterface,
        default_lookups: Sequence[str] = ("trait",),
        import_sample_type: SampleType = SampleType.TRAIN,
        database: Any = None,
    ) -> None:
        self.catalog = EntityCatalog(entity_storage)
        self.annotations = AnnotationStore(sample_storage, self.catalog)
        self.ingestion = IngestionPipeline(
            self.catalog,
            self.annotations,
            default_lookups=default_lookups,
            sample_type=import_sample_type,
        )
        self.training = TrainingOrchestrator(self.annotations, self.catalog, engine)
        self.database = database

    @classmethod
    def from_settings(cls, settings: NluSettings, **engine_kwargs: Any) -> "SampleService":
        """Build a service with the storage and engine named by ``settings``.

        Extra keyword arguments go to :func:`nlusamples.engines.get_engine`.
        """
        engine = get_engine(settings.engine, **engine_kwargs)
        if settings.storage == "memory":
            entity_storage: EntityStorageInterface = InMemoryEntityStorage()
            sample_storage: SampleStorageInterface = InMemorySampleStorage()
            database = None
        else:
            from nlusamples.storage.sqlite import SQLiteDatabase, SQLiteEntityStorage, SQLiteSampleStorage

            database = SQLiteDatabase(settings.database)
            entity_storage = SQLiteEntityStorage(database)
            sample_storage = SQLiteSampleStorage(database)
        logger.debug(f"Using {settings.storage} storage and '{settings.engine.backend}' engine")
        return cls(
            entity_storage,
            sample_storage,
            engine,
            default_lookups=settings.imports.default_lookups,
            import_sample_type=settings.imports.sample_type,
            database=database,
        )

    def close(self) -> None:
        if self.database is not None:
            self.database.close()

    # Samples

    async def create_sample(
        self,
        text: str,
        sample_type: SampleType = SampleType.TRAIN,
        annotations: Sequence[AnnotationRef] = (),
    ) -> AnnotatedSample:
        return await self.annotations.create_sample(text, sample_type, annotations)

    async def get_sample(self, sample_id: str) -> AnnotatedSample:
        return await self.annotations.get_annotated(sample_id)

    async def update_sample(
        self,
        sample_id: str,
        text: str | None = None,
        sample_type: SampleType | None = None,
        annotations: Sequence[AnnotationRef] | None = None,
    ) -> AnnotatedSample:
        return await self.annotations.update_sample(sample_id, text, sample_type, annotations)

    async def replace_annotations(self, sample_id: str, annotations: Sequence[AnnotationRef]) -> AnnotatedSample:
        return await self.annotations.replace_annotations(sample_id, annotations)

    async def delete_sample(self, sample_id: str) -> int:
        """Delete a sample and its annotations.

        Raises:
            NotFoundError: If nothing was deleted.
        """
        deleted = await self.annotations.delete_sample_cascade(sample_id)
        if deleted == 0:
            raise NotFoundError("Sample not found", record=sample_id)
        return deleted

    async def list_samples(
        self,
        sample_type: SampleType | None = None,
        text_contains: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AnnotatedSample]:
        return await self.annotations.find_page(sample_type, text_contains, limit, offset)

    async def count_samples(self, sample_type: SampleType | None = None) -> int:
        return await self.annotations.count(sample_type)

    # Entities and values

    async def create_entity(self, name: str, lookups: Sequence[str] = (KEYWORDS_LOOKUP,)) -> Entity:
        return await self.catalog.create_entity(name, lookups)

    async def get_entity(self, entity_id: str) -> Entity:
        return await self.catalog.get_entity(entity_id)

    async def list_entities(self) -> list[EntityWithValues]:
        return await self.catalog.list_all_with_values()

    async def create_value(self, entity_name: str, value: str, synonyms: Sequence[str] = ()) -> EntityValue:
        return await self.catalog.create_value(entity_name, value, synonyms)

    async def get_value(self, value_id: str) -> EntityValue:
        return await self.catalog.get_value(value_id)

    async def delete_value(self, value_id: str) -> int:
        """Delete an entity value and every annotation that uses it.

        Returns:
            The number of annotation links removed with the value.

        Raises:
            NotFoundError: If the value does not exist.
        """
        await self.catalog.get_value(value_id)
        detached = await self.annotations.detach_value(value_id)
        await self.catalog.delete_value(value_id)
        logger.info(f"Deleted entity value {value_id} and {detached} annotation(s)")
        return detached

    # Import / export

    async def import_csv(self, raw_text: str) -> ImportSummary:
        return await self.ingestion.import_csv(raw_text)

    async def import_file(self, path: Path) -> ImportSummary:
        """Import a CSV file (UTF-8, with or without a byte order mark)."""
        raw_text = Path(path).read_text(encoding="utf-8-sig")
        logger.info(f"Importing samples from {path}")
        return await self.ingestion.import_csv(raw_text)

    async def export(self, sample_type: SampleType | None = None, fmt: ExportFormat = "exchange") -> dict[str, Any]:
        """Export samples (all, or one type) with the full entity catalog.

        Args:
            sample_type: Only export samples of this type when given.
            fmt: ``"exchange"`` for the canonical payload, ``"rasa"`` for the
                Rasa NLU training-data layout.
        """
        samples = await self.annotations.find_all(sample_type)
        entities = await self.catalog.list_all_with_values()
        if fmt == "exchange":
            return to_exchange_format(samples, entities).to_dict()
        if fmt == "rasa":
            return to_rasa_nlu(samples, entities)
        raise ValidationError(f"Unknown export format: {fmt}. Use exchange or rasa.")

    async def export_file(
        self,
        output_dir: Path,
        sample_type: SampleType | None = None,
        fmt: ExportFormat = "exchange",
    ) -> Path:
        """Write an export to ``output_dir`` as ``nlp_export[_<type>].json``."""
        payload = await self.export(sample_type, fmt)
        path = write_export(payload, Path(output_dir) / export_filename(sample_type))
        logger.info(f"Exported samples to {path}")
        return path

    # Training

    async def train(self, mark_trained: bool = False) -> dict[str, Any]:
        return await self.training.train(mark_trained=mark_trained)

    async def evaluate(self) -> dict[str, Any]:
        return await self.training.evaluate()

    async def parse(self, text: str) -> dict[str, Any]:
        return await self.training.parse(text)

    async def mark_trained(self, sample_ids: Sequence[str]) -> int:
        return await self.training.mark_trained(sample_ids)

    async def reconcile(self) -> int:
        return await self.annotations.reconcile()
