"""Annotation store: samples and their entity-value annotations.

The store owns :class:`~nlusamples.sample.Sample` and
:class:`~nlusamples.sample.SampleEntity` lifecycles. Callers name annotations
by entity name and value; the store checks them against the entity catalog,
turns them into links and persists a sample together with its links as one
unit. Reads come back resolved as :class:`~nlusamples.sample.AnnotatedSample`.
"""

from datetime import datetime, timezone
from typing import Sequence

from nlusamples.catalog import EntityCatalog
from nlusamples.errors import NotFoundError, ValidationError
from nlusamples.logging import setup_logging
from nlusamples.sample import (
    AnnotatedSample,
    AnnotationRef,
    ResolvedAnnotation,
    Sample,
    SampleEntity,
    SampleType,
)
from nlusamples.storage.interfaces import SampleStorageInterface

logger = setup_logging(name=__name__)


def _require_text(text: str | None) -> str:
    if text is None or not text.strip():
        raise ValidationError("Sample text must not be empty")
    return text


def _check_offsets(ref: AnnotationRef, text: str) -> None:
    if ref.start is None or ref.end is None:
        return
    if not 0 <= ref.start < ref.end <= len(text):
        raise ValidationError(
            f"Offsets {ref.start}:{ref.end} are outside the sample text",
            record=f"{ref.entity}={ref.value}",
        )


class AnnotationStore:
    """Sample and annotation operations on top of a sample storage.

    Args:
        storage: Persistence backend for samples and links.
        catalog: Entity catalog used to validate and resolve annotations.
    """

    def __init__(self, storage: SampleStorageInterface, catalog: EntityCatalog) -> None:
        self.storage = storage
        self.catalog = catalog

    async def _build_links(self, sample_id: str, text: str, annotations: Sequence[AnnotationRef]) -> list[SampleEntity]:
        """Validate annotation references and turn them into links for ``sample_id``.

        Every referenced entity must already exist; a missing value is created.
        All references are checked before any value is created.
        """
        for ref in annotations:
            if not ref.entity:
                raise ValidationError("Annotation entity must not be empty")
            if await self.catalog.storage.find_entity_by_name(ref.entity) is None:
                raise ValidationError(f"Unknown entity '{ref.entity}'", record=ref.entity)
            _check_offsets(ref, text)

        links: list[SampleEntity] = []
        for ref in annotations:
            value = await self.catalog.resolve_or_create_value(ref.entity, ref.value)
            links.append(
                SampleEntity(
                    sample_id=sample_id,
                    entity_id=value.entity_id,
                    value_id=value.value_id,
                    start=ref.start,
                    end=ref.end,
                )
            )
        return links

    async def _annotate(self, samples: Sequence[Sample]) -> list[AnnotatedSample]:
        """Attach resolved annotations to samples, preserving their order."""
        if not samples:
            return []
        links_by_sample = await self.storage.get_links([s.sample_id for s in samples])
        entity_names = {e.entity_id: e.name for e in await self.catalog.storage.list_entities()}
        values = {v.value_id: v.value for v in await self.catalog.storage.list_values()}

        annotated: list[AnnotatedSample] = []
        for sample in samples:
            resolved = [
                ResolvedAnnotation(
                    link_id=link.link_id,
                    entity=entity_names[link.entity_id],
                    value=values[link.value_id],
                    start=link.start,
                    end=link.end,
                )
                for link in links_by_sample.get(sample.sample_id, [])
                # Dangling links are left for reconcile()
                if link.entity_id in entity_names and link.value_id in values
            ]
            annotated.append(AnnotatedSample(sample=sample, annotations=tuple(resolved)))
        return annotated

    async def create_sample(
        self,
        text: str,
        sample_type: SampleType = SampleType.TRAIN,
        annotations: Sequence[AnnotationRef] = (),
    ) -> AnnotatedSample:
        """Create a sample with ``trained=False`` together with its annotations.

        Raises:
            ValidationError: On empty text, an unknown entity or bad offsets.
        """
        _require_text(text)
        sample = Sample(text=text, type=sample_type)
        links = await self._build_links(sample.sample_id, text, annotations)
        await self.storage.add(sample, links)
        return (await self._annotate([sample]))[0]

    async def get_sample(self, sample_id: str) -> Sample:
        sample = await self.storage.get(sample_id)
        if sample is None:
            logger.warning(f"Unable to find sample by id {sample_id}")
            raise NotFoundError("Sample not found", record=sample_id)
        return sample

    async def get_annotated(self, sample_id: str) -> AnnotatedSample:
        sample = await self.get_sample(sample_id)
        return (await self._annotate([sample]))[0]

    async def update_sample(
        self,
        sample_id: str,
        text: str | None = None,
        sample_type: SampleType | None = None,
        annotations: Sequence[AnnotationRef] | None = None,
    ) -> AnnotatedSample:
        """Update a sample and reset its ``trained`` flag.

        When ``annotations`` is given, the annotation set is replaced in the
        same unit as the field update; otherwise links are left alone.
        """
        sample = await self.get_sample(sample_id)
        if text is not None:
            _require_text(text)
        updated = sample.model_copy(
            update={
                "text": text if text is not None else sample.text,
                "type": sample_type or sample.type,
                "trained": False,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        links = None
        if annotations is not None:
            links = await self._build_links(sample_id, updated.text, annotations)
        if not await self.storage.update(updated, links):
            raise NotFoundError("Sample not found", record=sample_id)
        return (await self._annotate([updated]))[0]

    async def replace_annotations(self, sample_id: str, annotations: Sequence[AnnotationRef]) -> AnnotatedSample:
        """Replace the full annotation set of a sample (never merged with the old one)."""
        sample = await self.get_sample(sample_id)
        links = await self._build_links(sample_id, sample.text, annotations)
        if not await self.storage.replace_links(sample_id, links):
            raise NotFoundError("Sample not found", record=sample_id)
        return (await self._annotate([sample]))[0]

    async def delete_sample_cascade(self, sample_id: str) -> int:
        """Delete a sample and its links; returns 0 if it did not exist, 1 otherwise."""
        deleted = await self.storage.delete_cascade(sample_id)
        if deleted == 0:
            logger.warning(f"Unable to delete sample by id {sample_id}")
        return deleted

    async def find_by_purpose(self, sample_type: SampleType) -> list[AnnotatedSample]:
        samples = await self.storage.list_all(sample_type=sample_type)
        return await self._annotate(samples)

    async def find_all(self, sample_type: SampleType | None = None) -> list[AnnotatedSample]:
        samples = await self.storage.list_all(sample_type=sample_type)
        return await self._annotate(samples)

    async def find_page(
        self,
        sample_type: SampleType | None = None,
        text_contains: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AnnotatedSample]:
        samples = await self.storage.list_all(
            sample_type=sample_type,
            text_contains=text_contains,
            limit=limit,
            offset=offset,
        )
        return await self._annotate(samples)

    async def count(self, sample_type: SampleType | None = None) -> int:
        return await self.storage.count(sample_type)

    async def exists(self, text: str) -> bool:
        """Exact, case-sensitive text lookup used to skip duplicate imports."""
        return await self.storage.exists(text)

    async def get_link(self, link_id: str) -> SampleEntity:
        link = await self.storage.get_link(link_id)
        if link is None:
            raise NotFoundError("Annotation not found", record=link_id)
        return link

    async def mark_trained(self, sample_ids: Sequence[str]) -> int:
        return await self.storage.set_trained(sample_ids, trained=True)

    async def detach_value(self, value_id: str) -> int:
        """Delete every annotation pointing at an entity value."""
        return await self.storage.delete_links_by_value(value_id)

    async def find_orphan_links(self) -> list[SampleEntity]:
        """Links whose sample or value no longer exists."""
        value_ids = [v.value_id for v in await self.catalog.storage.list_values()]
        return await self.storage.find_orphan_links(value_ids)

    async def reconcile(self) -> int:
        """Delete orphaned links left behind by an interrupted multi-record write."""
        orphans = await self.find_orphan_links()
        if not orphans:
            return 0
        removed = await self.storage.delete_links([link.link_id for link in orphans])
        logger.warning(f"Reconciliation removed {removed} orphaned annotation link(s)")
        return removed
