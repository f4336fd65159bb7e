"""Export annotated samples for third-party NLU trainers.

Two layouts are produced from the same inputs:

- the canonical exchange payload (:func:`to_exchange_format`), with an
  ``entities`` catalog section and a ``samples`` section;
- the Rasa NLU training-data layout (:func:`to_rasa_nlu`), which is also what
  the HTTP recognition engine sends to a remote trainer.

Both builders are pure: no I/O, and the output depends only on the inputs.
Sample order follows the ``samples`` argument; entity order follows the
catalog.
"""

import json
from pathlib import Path
from typing import Any, Sequence

from pydantic import BaseModel, Field

from nlusamples.entity import INTENT_ENTITY, EntityWithValues
from nlusamples.sample import AnnotatedSample, SampleType


class ExchangeAnnotation(BaseModel):
    """One annotation of an exported sample; offsets only for positional entities."""

    name: str
    value: str
    start: int | None = None
    end: int | None = None


class ExchangeSample(BaseModel):
    text: str
    entities: list[ExchangeAnnotation] = Field(default_factory=list)


class ExchangeEntity(BaseModel):
    name: str
    values: list[str] = Field(default_factory=list)


class ExchangePayload(BaseModel):
    """The canonical exchange document.

    ``entities`` lists the whole catalog, including entities no sample uses,
    so a consumer can rebuild the complete label set.
    """

    entities: list[ExchangeEntity] = Field(default_factory=list)
    samples: list[ExchangeSample] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Plain-JSON form; absent offsets are omitted rather than null."""
        return self.model_dump(exclude_none=True)


def to_exchange_format(
    samples: Sequence[AnnotatedSample],
    entities: Sequence[EntityWithValues],
) -> ExchangePayload:
    """Build the exchange payload for ``samples`` against the ``entities`` catalog."""
    return ExchangePayload(
        entities=[
            ExchangeEntity(name=item.entity.name, values=[v.value for v in item.values])
            for item in entities
        ],
        samples=[
            ExchangeSample(
                text=annotated.text,
                entities=[
                    ExchangeAnnotation(name=a.entity, value=a.value, start=a.start, end=a.end)
                    for a in annotated.annotations
                ],
            )
            for annotated in samples
        ],
    )


def to_rasa_nlu(
    samples: Sequence[AnnotatedSample],
    entities: Sequence[EntityWithValues],
) -> dict[str, Any]:
    """Build a Rasa NLU training-data document.

    The ``intent`` trait becomes each example's intent. Positional
    annotations are listed under ``entities`` with their offsets, other
    trait annotations under ``traits``. Non-intent entities become lookup tables and values carrying synonyms
    become entity synonyms.
    """
    common_examples = []
    for annotated in samples:
        intents = annotated.values_for(INTENT_ENTITY)
        example_entities = []
        traits = []
        for a in annotated.annotations:
            if a.entity == INTENT_ENTITY:
                continue
            if a.start is not None and a.end is not None:
                example_entities.append({"entity": a.entity, "value": a.value, "start": a.start, "end": a.end})
            else:
                traits.append({"entity": a.entity, "value": a.value})
        example: dict[str, Any] = {
            "text": annotated.text,
            "intent": intents[0] if intents else None,
            "entities": example_entities,
        }
        if traits:
            example["traits"] = traits
        common_examples.append(example)

    lookup_tables = [
        {"name": item.entity.name, "elements": [v.value for v in item.values]}
        for item in entities
        if item.entity.name != INTENT_ENTITY
    ]
    entity_synonyms = [
        {"value": v.value, "synonyms": list(v.synonyms)}
        for item in entities
        for v in item.values
        if v.synonyms
    ]
    return {
        "rasa_nlu_data": {
            "common_examples": common_examples,
            "regex_features": [],
            "lookup_tables": lookup_tables,
            "entity_synonyms": entity_synonyms,
        }
    }


def export_filename(sample_type: SampleType | None = None) -> str:
    """File name for a download, e.g. ``nlp_export_train.json``."""
    suffix = f"_{sample_type.value}" if sample_type is not None else ""
    return f"nlp_export{suffix}.json"


def write_export(payload: ExchangePayload | dict[str, Any], path: Path) -> Path:
    """Write an export payload as JSON. Directories in ``path`` are created."""
    data = payload.to_dict() if isinstance(payload, ExchangePayload) else payload
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return path
