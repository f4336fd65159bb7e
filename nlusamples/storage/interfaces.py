"""Storage interface definitions for entities, samples and annotation links."""

from abc import ABC, abstractmethod
from typing import Collection, Sequence

from nlusamples.entity import Entity, EntityValue
from nlusamples.sample import Sample, SampleEntity, SampleType


class EntityStorageInterface(ABC):
    """Abstract interface for entity and entity value storage operations."""

    @abstractmethod
    async def add_entity(self, entity: Entity) -> str:
        """Store an entity and return its ID."""

    @abstractmethod
    async def get_entity(self, entity_id: str) -> Entity | None:
        """Retrieve an entity by ID, or None if not found."""

    @abstractmethod
    async def find_entity_by_name(self, name: str) -> Entity | None:
        """Find an entity by exact name, or None if not found."""

    @abstractmethod
    async def list_entities(self) -> list[Entity]:
        """List all entities in creation order."""

    @abstractmethod
    async def add_value(self, value: EntityValue) -> str:
        """Store an entity value and return its ID."""

    @abstractmethod
    async def get_value(self, value_id: str) -> EntityValue | None:
        """Retrieve an entity value by ID, or None if not found."""

    @abstractmethod
    async def find_value(self, entity_id: str, value: str) -> EntityValue | None:
        """Find the value of an entity by exact value string."""

    @abstractmethod
    async def list_values(self, entity_id: str | None = None) -> list[EntityValue]:
        """List values in creation order, optionally for a single entity."""

    @abstractmethod
    async def delete_value(self, value_id: str) -> bool:
        """Delete an entity value. Returns True if found and deleted."""

    @abstractmethod
    async def count_entities(self) -> int:
        """Return total number of stored entities."""


class SampleStorageInterface(ABC):
    """Abstract interface for sample and annotation link storage.

    Operations touching several records (a sample and its links) must be
    applied as one unit: a reader never observes a sample whose links are
    half replaced.
    """

    @abstractmethod
    async def add(self, sample: Sample, links: Sequence[SampleEntity] = ()) -> str:
        """Store a sample together with its annotation links and return its ID."""

    @abstractmethod
    async def get(self, sample_id: str) -> Sample | None:
        """Retrieve a sample by ID, or None if not found."""

    @abstractmethod
    async def update(self, sample: Sample, links: Sequence[SampleEntity] | None = None) -> bool:
        """Update an existing sample, replacing its links when ``links`` is given.

        Returns True if the sample was found and updated, False otherwise.
        """

    @abstractmethod
    async def replace_links(self, sample_id: str, links: Sequence[SampleEntity]) -> bool:
        """Delete all links of a sample and insert ``links`` in their place.

        Returns False if the sample does not exist.
        """

    @abstractmethod
    async def get_links(self, sample_ids: Sequence[str]) -> dict[str, list[SampleEntity]]:
        """Return the links of each sample, keyed by sample ID."""

    @abstractmethod
    async def get_link(self, link_id: str) -> SampleEntity | None:
        """Retrieve a single annotation link by ID."""

    @abstractmethod
    async def exists(self, text: str) -> bool:
        """Return True if a sample with exactly this text (case-sensitive) exists."""

    @abstractmethod
    async def find_by_text(self, text: str) -> list[Sample]:
        """Find samples whose text matches exactly (case-sensitive)."""

    @abstractmethod
    async def list_all(
        self,
        sample_type: SampleType | None = None,
        text_contains: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Sample]:
        """List samples in insertion order with optional filtering and pagination."""

    @abstractmethod
    async def count(self, sample_type: SampleType | None = None) -> int:
        """Return the number of stored samples, optionally of one type."""

    @abstractmethod
    async def delete_cascade(self, sample_id: str) -> int:
        """Delete a sample and all its links. Returns the number of samples removed."""

    @abstractmethod
    async def delete_links_by_value(self, value_id: str) -> int:
        """Delete every link referencing an entity value. Returns the count removed."""

    @abstractmethod
    async def count_links_by_value(self, value_id: str) -> int:
        """Return the number of links referencing an entity value."""

    @abstractmethod
    async def set_trained(self, sample_ids: Sequence[str], trained: bool = True) -> int:
        """Set the trained flag on samples. Returns the number of samples updated."""

    @abstractmethod
    async def find_orphan_links(self, known_value_ids: Collection[str]) -> list[SampleEntity]:
        """Find links whose sample is gone or whose value is not in ``known_value_ids``.

        Used by reconciliation sweeps after a crash on a backend without
        transactions.
        """

    @abstractmethod
    async def delete_links(self, link_ids: Sequence[str]) -> int:
        """Delete links by ID. Returns the number removed."""
