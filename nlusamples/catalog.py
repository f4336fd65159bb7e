"""Entity catalog: the set of recognized entities and their values.

The catalog is the only writer of :class:`~nlusamples.entity.Entity` and
:class:`~nlusamples.entity.EntityValue` records. Ingestion goes through
:meth:`EntityCatalog.resolve_or_create_value`, which reuses what exists and
creates only what is missing.
"""

import asyncio
from typing import Iterable, Sequence

from pydantic import BaseModel

from nlusamples.entity import KEYWORDS_LOOKUP, TRAIT_LOOKUP, Entity, EntityValue, EntityWithValues
from nlusamples.errors import ConflictError, NotFoundError, StorageError, ValidationError
from nlusamples.logging import setup_logging
from nlusamples.sample import AnnotationRef
from nlusamples.storage.interfaces import EntityStorageInterface

logger = setup_logging(name=__name__)

DEFAULT_IMPORT_LOOKUPS: tuple[str, ...] = (TRAIT_LOOKUP,)


class ValueResolution(BaseModel):
    """Outcome of resolving one (entity name, value) pair.

    Attributes:
        entity: The existing or newly created entity.
        value: The existing or newly created value.
        created_entity: True if the entity did not exist before this call.
        created_value: True if the value did not exist before this call.
    """

    model_config = {"frozen": True}

    entity: Entity
    value: EntityValue
    created_entity: bool = False
    created_value: bool = False


def _require(field: str, text: str | None) -> str:
    if text is None or not text.strip():
        raise ValidationError(f"{field} must not be empty")
    return text


class EntityCatalog:
    """Owns entity and entity value lifecycles on top of an entity storage.

    Args:
        storage: Persistence backend for entities and values.
    """

    def __init__(self, storage: EntityStorageInterface) -> None:
        self.storage = storage
        # Serializes check-then-create so concurrent resolutions never duplicate a value
        self._lock = asyncio.Lock()

    async def resolve(
        self,
        entity_name: str,
        value: str,
        default_lookups: Sequence[str] = DEFAULT_IMPORT_LOOKUPS,
    ) -> ValueResolution:
        """Return the stored value for (entity_name, value), creating what is missing.

        A new entity is tagged with ``default_lookups``. Calling this twice
        with the same arguments returns the same value both times.

        Raises:
            ValidationError: If ``entity_name`` or ``value`` is empty.
        """
        _require("Entity name", entity_name)
        _require("Entity value", value)

        async with self._lock:
            created_entity = False
            entity = await self.storage.find_entity_by_name(entity_name)
            if entity is None:
                entity = Entity(name=entity_name, lookups=tuple(default_lookups))
                try:
                    await self.storage.add_entity(entity)
                    created_entity = True
                    logger.debug(f"Created entity '{entity_name}' with lookups {list(default_lookups)}")
                except StorageError:
                    # Another process may have stored the same name first
                    stored = await self.storage.find_entity_by_name(entity_name)
                    if stored is None:
                        raise
                    entity = stored

            existing = await self.storage.find_value(entity.entity_id, value)
            if existing is not None:
                return ValueResolution(entity=entity, value=existing, created_entity=created_entity)

            entity_value = EntityValue(entity_id=entity.entity_id, value=value)
            try:
                await self.storage.add_value(entity_value)
            except StorageError:
                existing = await self.storage.find_value(entity.entity_id, value)
                if existing is None:
                    raise
                return ValueResolution(entity=entity, value=existing, created_entity=created_entity)
            logger.debug(f"Created value '{value}' for entity '{entity_name}'")
            return ValueResolution(
                entity=entity,
                value=entity_value,
                created_entity=created_entity,
                created_value=True,
            )

    async def resolve_or_create_value(
        self,
        entity_name: str,
        value: str,
        default_lookups: Sequence[str] = DEFAULT_IMPORT_LOOKUPS,
    ) -> EntityValue:
        return (await self.resolve(entity_name, value, default_lookups)).value

    async def resolve_values(
        self,
        refs: Iterable[AnnotationRef],
        default_lookups: Sequence[str] = DEFAULT_IMPORT_LOOKUPS,
    ) -> list[ValueResolution]:
        """Resolve a batch of annotation references in order."""
        return [await self.resolve(ref.entity, ref.value, default_lookups) for ref in refs]

    async def create_entity(self, name: str, lookups: Sequence[str] = (KEYWORDS_LOOKUP,)) -> Entity:
        """Create a new entity.

        Raises:
            ValidationError: If the name is empty.
            ConflictError: If an entity with this name already exists.
        """
        _require("Entity name", name)
        async with self._lock:
            if await self.storage.find_entity_by_name(name) is not None:
                raise ConflictError("Entity already exists", record=name)
            entity = Entity(name=name, lookups=tuple(lookups))
            await self.storage.add_entity(entity)
        logger.info(f"Created entity '{name}'")
        return entity

    async def get_entity(self, entity_id: str) -> Entity:
        entity = await self.storage.get_entity(entity_id)
        if entity is None:
            raise NotFoundError("Entity not found", record=entity_id)
        return entity

    async def get_entity_by_name(self, name: str) -> Entity:
        entity = await self.storage.find_entity_by_name(name)
        if entity is None:
            raise NotFoundError("Entity not found", record=name)
        return entity

    async def create_value(self, entity_name: str, value: str, synonyms: Sequence[str] = ()) -> EntityValue:
        """Create a value for an existing entity.

        Raises:
            ValidationError: If the entity name or value is empty.
            NotFoundError: If the entity does not exist.
            ConflictError: If the entity already has this value.
        """
        _require("Entity name", entity_name)
        _require("Entity value", value)
        async with self._lock:
            entity = await self.get_entity_by_name(entity_name)
            if await self.storage.find_value(entity.entity_id, value) is not None:
                raise ConflictError("Entity value already exists", record=f"{entity_name}={value}")
            entity_value = EntityValue(entity_id=entity.entity_id, value=value, synonyms=tuple(synonyms))
            await self.storage.add_value(entity_value)
        return entity_value

    async def get_value(self, value_id: str) -> EntityValue:
        value = await self.storage.get_value(value_id)
        if value is None:
            raise NotFoundError("Entity value not found", record=value_id)
        return value

    async def find_value(self, entity_name: str, value: str) -> EntityValue | None:
        entity = await self.storage.find_entity_by_name(entity_name)
        if entity is None:
            return None
        return await self.storage.find_value(entity.entity_id, value)

    async def delete_value(self, value_id: str) -> bool:
        """Delete a value record. Annotation links are the caller's to detach first."""
        return await self.storage.delete_value(value_id)

    async def list_all(self) -> list[Entity]:
        return await self.storage.list_entities()

    async def list_all_with_values(self) -> list[EntityWithValues]:
        """Every entity with its values, both in creation order."""
        entities = await self.storage.list_entities()
        grouped: dict[str, list[EntityValue]] = {entity.entity_id: [] for entity in entities}
        for value in await self.storage.list_values():
            grouped.setdefault(value.entity_id, []).append(value)
        return [EntityWithValues(entity=entity, values=tuple(grouped[entity.entity_id])) for entity in entities]

    async def entity_names(self) -> set[str]:
        return {entity.name for entity in await self.storage.list_entities()}
