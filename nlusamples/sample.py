"""Sample and annotation records.

A :class:`Sample` is a labeled utterance; a :class:`SampleEntity` links it to
an :class:`~nlusamples.entity.EntityValue`, optionally with a character span.
Callers describe annotations by entity name and value (:class:`AnnotationRef`)
and read them back resolved (:class:`AnnotatedSample`).
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from nlusamples.entity import new_id, utcnow


class SampleType(str, Enum):
    """Purpose of a sample."""

    TRAIN = "train"
    TEST = "test"


class Sample(BaseModel):
    """A labeled text utterance used for training or testing the engine."""

    model_config = {"frozen": True}

    sample_id: str = Field(default_factory=new_id)
    text: str = Field(min_length=1)
    type: SampleType = SampleType.TRAIN
    trained: bool = Field(
        default=False,
        description="Set once the engine has been trained on this sample.",
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SampleEntity(BaseModel):
    """Annotation link between a sample and an entity value.

    ``start``/``end`` are character offsets into the sample text and are
    absent for trait-style (non-positional) annotations.
    """

    model_config = {"frozen": True}

    link_id: str = Field(default_factory=new_id)
    sample_id: str
    entity_id: str
    value_id: str
    start: int | None = Field(default=None, ge=0)
    end: int | None = Field(default=None, ge=0)

    @property
    def is_positional(self) -> bool:
        return self.start is not None and self.end is not None


class AnnotationRef(BaseModel):
    """An annotation named by entity name and value, as supplied by callers."""

    model_config = {"frozen": True}

    entity: str
    value: str
    start: int | None = None
    end: int | None = None

    @model_validator(mode="after")
    def _offsets_come_in_pairs(self) -> "AnnotationRef":
        if (self.start is None) != (self.end is None):
            raise ValueError("start and end must be given together")
        return self


class ResolvedAnnotation(BaseModel):
    """A stored annotation with its entity name and value resolved."""

    model_config = {"frozen": True}

    link_id: str
    entity: str
    value: str
    start: int | None = None
    end: int | None = None


class AnnotatedSample(BaseModel):
    """A sample together with its full, resolved annotation set."""

    model_config = {"frozen": True}

    sample: Sample
    annotations: tuple[ResolvedAnnotation, ...] = ()

    @property
    def text(self) -> str:
        return self.sample.text

    def values_for(self, entity_name: str) -> list[str]:
        return [a.value for a in self.annotations if a.entity == entity_name]
