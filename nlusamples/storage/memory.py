"""In-memory storage implementations for testing and development.

This module provides dictionary-based implementations of the storage
interfaces that keep all data in memory. They are suitable for unit tests,
quick iteration without a database and small demos.

**Not recommended for production**: nothing is persisted and the stores are
not safe for multi-process access.

Each multi-record operation runs to completion without an ``await`` point,
so within one event loop no other task can observe it half applied. That is
the in-memory equivalent of a transaction.
"""

from datetime import datetime, timezone
from typing import Collection, Sequence

from nlusamples.entity import Entity, EntityValue
from nlusamples.sample import Sample, SampleEntity, SampleType
from nlusamples.storage.interfaces import EntityStorageInterface, SampleStorageInterface


class InMemoryEntityStorage(EntityStorageInterface):
    """In-memory entity storage keyed by entity_id and value_id.

    Dictionaries preserve insertion order, which gives the catalog ordering
    used in exports.

    Example:
        ```python
        storage = InMemoryEntityStorage()
        await storage.add_entity(Entity(name="city"))
        city = await storage.find_entity_by_name("city")
        ```
    """

    def __init__(self) -> None:
        self._entities: dict[str, Entity] = {}
        self._values: dict[str, EntityValue] = {}

    async def add_entity(self, entity: Entity) -> str:
        self._entities[entity.entity_id] = entity
        return entity.entity_id

    async def get_entity(self, entity_id: str) -> Entity | None:
        return self._entities.get(entity_id)

    async def find_entity_by_name(self, name: str) -> Entity | None:
        """Finds an entity by exact name. This is an O(n) scan."""
        for entity in self._entities.values():
            if entity.name == name:
                return entity
        return None

    async def list_entities(self) -> list[Entity]:
        return list(self._entities.values())

    async def add_value(self, value: EntityValue) -> str:
        self._values[value.value_id] = value
        return value.value_id

    async def get_value(self, value_id: str) -> EntityValue | None:
        return self._values.get(value_id)

    async def find_value(self, entity_id: str, value: str) -> EntityValue | None:
        for candidate in self._values.values():
            if candidate.entity_id == entity_id and candidate.value == value:
                return candidate
        return None

    async def list_values(self, entity_id: str | None = None) -> list[EntityValue]:
        if entity_id is None:
            return list(self._values.values())
        return [v for v in self._values.values() if v.entity_id == entity_id]

    async def delete_value(self, value_id: str) -> bool:
        if value_id in self._values:
            del self._values[value_id]
            return True
        return False

    async def count_entities(self) -> int:
        return len(self._entities)


class InMemorySampleStorage(SampleStorageInterface):
    """In-memory sample storage with links indexed by sample.

    Samples live in a ``dict[str, Sample]``; links are kept both by link ID
    and grouped per sample so cascade deletes and link replacement are a
    couple of dictionary operations.

    Thread safety: Not thread-safe. For concurrent access from several
    threads, use the SQLite backend.
    """

    def __init__(self) -> None:
        self._samples: dict[str, Sample] = {}
        self._links: dict[str, SampleEntity] = {}
        self._links_by_sample: dict[str, list[str]] = {}

    def _drop_links(self, sample_id: str) -> None:
        for link_id in self._links_by_sample.pop(sample_id, []):
            self._links.pop(link_id, None)

    def _put_links(self, sample_id: str, links: Sequence[SampleEntity]) -> None:
        self._links_by_sample[sample_id] = [link.link_id for link in links]
        for link in links:
            self._links[link.link_id] = link

    async def add(self, sample: Sample, links: Sequence[SampleEntity] = ()) -> str:
        self._samples[sample.sample_id] = sample
        self._drop_links(sample.sample_id)
        self._put_links(sample.sample_id, links)
        return sample.sample_id

    async def get(self, sample_id: str) -> Sample | None:
        return self._samples.get(sample_id)

    async def update(self, sample: Sample, links: Sequence[SampleEntity] | None = None) -> bool:
        if sample.sample_id not in self._samples:
            return False
        self._samples[sample.sample_id] = sample
        if links is not None:
            self._drop_links(sample.sample_id)
            self._put_links(sample.sample_id, links)
        return True

    async def replace_links(self, sample_id: str, links: Sequence[SampleEntity]) -> bool:
        if sample_id not in self._samples:
            return False
        self._drop_links(sample_id)
        self._put_links(sample_id, links)
        return True

    async def get_links(self, sample_ids: Sequence[str]) -> dict[str, list[SampleEntity]]:
        return {
            sample_id: [self._links[link_id] for link_id in self._links_by_sample.get(sample_id, [])]
            for sample_id in sample_ids
        }

    async def get_link(self, link_id: str) -> SampleEntity | None:
        return self._links.get(link_id)

    async def exists(self, text: str) -> bool:
        return any(sample.text == text for sample in self._samples.values())

    async def find_by_text(self, text: str) -> list[Sample]:
        return [sample for sample in self._samples.values() if sample.text == text]

    async def list_all(
        self,
        sample_type: SampleType | None = None,
        text_contains: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Sample]:
        samples = [
            sample
            for sample in self._samples.values()
            if (sample_type is None or sample.type == sample_type)
            and (text_contains is None or text_contains.lower() in sample.text.lower())
        ]
        if limit is None:
            return samples[offset:]
        return samples[offset : offset + limit]

    async def count(self, sample_type: SampleType | None = None) -> int:
        if sample_type is None:
            return len(self._samples)
        return sum(1 for sample in self._samples.values() if sample.type == sample_type)

    async def delete_cascade(self, sample_id: str) -> int:
        if sample_id not in self._samples:
            return 0
        self._drop_links(sample_id)
        del self._samples[sample_id]
        return 1

    async def delete_links_by_value(self, value_id: str) -> int:
        doomed = [link for link in self._links.values() if link.value_id == value_id]
        for link in doomed:
            del self._links[link.link_id]
            self._links_by_sample[link.sample_id].remove(link.link_id)
        return len(doomed)

    async def count_links_by_value(self, value_id: str) -> int:
        return sum(1 for link in self._links.values() if link.value_id == value_id)

    async def set_trained(self, sample_ids: Sequence[str], trained: bool = True) -> int:
        now = datetime.now(timezone.utc)
        updated = 0
        for sample_id in sample_ids:
            sample = self._samples.get(sample_id)
            if sample is None:
                continue
            self._samples[sample_id] = sample.model_copy(update={"trained": trained, "updated_at": now})
            updated += 1
        return updated

    async def find_orphan_links(self, known_value_ids: Collection[str]) -> list[SampleEntity]:
        known = set(known_value_ids)
        return [
            link
            for link in self._links.values()
            if link.sample_id not in self._samples or link.value_id not in known
        ]

    async def delete_links(self, link_ids: Sequence[str]) -> int:
        removed = 0
        for link_id in link_ids:
            link = self._links.pop(link_id, None)
            if link is None:
                continue
            siblings = self._links_by_sample.get(link.sample_id)
            if siblings is not None and link_id in siblings:
                siblings.remove(link_id)
            removed += 1
        return removed
