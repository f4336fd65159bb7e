"""Entity catalog records: named entities and their allowed values."""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field

TRAIT_LOOKUP = "trait"
"""Lookup tag for non-positional entities whose value applies to the whole sample."""

KEYWORDS_LOOKUP = "keywords"
"""Lookup tag for positional entities annotated with character offsets."""

INTENT_ENTITY = "intent"


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Entity(BaseModel):
    """A named category of extractable information (e.g. ``city``).

    The name is the stable external key: annotations, import column headers
    and export payloads all refer to entities by name.
    """

    model_config = {"frozen": True}

    entity_id: str = Field(default_factory=new_id, description="Unique identifier.")
    name: str = Field(min_length=1, description="Unique entity name.")
    lookups: tuple[str, ...] = Field(
        default=(KEYWORDS_LOOKUP,),
        description="Categorical tags; 'trait' marks non-positional entities.",
    )
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_trait(self) -> bool:
        return TRAIT_LOOKUP in self.lookups


class EntityValue(BaseModel):
    """A concrete value belonging to an entity (e.g. ``Paris`` for ``city``)."""

    model_config = {"frozen": True}

    value_id: str = Field(default_factory=new_id, description="Unique identifier.")
    entity_id: str = Field(description="Owning entity.")
    value: str = Field(min_length=1)
    synonyms: tuple[str, ...] = Field(
        default=(),
        description="Alternative spellings resolved to this value.",
    )
    created_at: datetime = Field(default_factory=utcnow)


class EntityWithValues(BaseModel):
    """An entity together with all of its values, in creation order."""

    model_config = {"frozen": True}

    entity: Entity
    values: tuple[EntityValue, ...] = ()

    @property
    def name(self) -> str:
        return self.entity.name
