"""Bulk ingestion of labeled samples from delimited text.

This module provides the `IngestionPipeline` class, which turns a CSV upload
into stored samples. Each data row goes through the same steps:

    1. Skip rows labeled with the ``none`` intent
    2. Skip rows whose exact text is already stored
    3. Validate the row (well-formed, non-empty ``text`` and ``intent``)
    4. Resolve or create the entity values named by the row's columns
    5. Store the sample together with its annotation links

A failing row never stops the batch. Its error is recorded with the row's
line number and text, entity values created only for that row are removed
again, and the next row is processed. Only a stream that cannot be parsed
at all (or an empty entity catalog) aborts the import.

Example usage:
    ```python
    pipeline = IngestionPipeline(catalog=catalog, annotations=annotations)
    summary = await pipeline.import_csv(raw_text)
    print(f"Imported {summary.imported}, failed {summary.failed}")
    ```
"""

from enum import Enum
from typing import Sequence

from pydantic import BaseModel

from nlusamples.annotation import AnnotationStore
from nlusamples.catalog import DEFAULT_IMPORT_LOOKUPS, EntityCatalog, ValueResolution
from nlusamples.csv_import import ImportRow, ImportSchema, parse_delimited_import
from nlusamples.errors import ImportParseError, NluSampleError, NotFoundError, ValidationError
from nlusamples.logging import setup_logging
from nlusamples.sample import SampleType

logger = setup_logging(name=__name__)


class RowOutcome(str, Enum):
    IMPORTED = "imported"
    SKIPPED_DUPLICATE = "skipped_duplicate"
    EXCLUDED = "excluded"
    FAILED = "failed"


class RowResult(BaseModel):
    """What happened to a single data row.

    Attributes:
        line: 1-based line in the input where the row starts.
        text: The row's ``text`` value, as read.
        outcome: Terminal state of the row.
        sample_id: Id of the created sample, for imported rows.
        error_kind: Error category (see ``NluSampleError.kind``), for failed rows.
        error: Error message, for failed rows.
    """

    model_config = {"frozen": True}

    line: int
    text: str
    outcome: RowOutcome
    sample_id: str | None = None
    error_kind: str | None = None
    error: str | None = None


class ImportSummary(BaseModel):
    """Result of a bulk import.

    Aggregates the per-row outcomes; ``rows`` keeps them in input order for
    detailed inspection.
    """

    model_config = {"frozen": True}

    imported: int = 0
    skipped: int = 0
    failed: int = 0
    excluded: int = 0
    rows: tuple[RowResult, ...] = ()

    @property
    def failures(self) -> list[RowResult]:
        return [row for row in self.rows if row.outcome is RowOutcome.FAILED]

    def add(self, result: RowResult) -> "ImportSummary":
        """Return a new summary with ``result`` folded in."""
        counter = {
            RowOutcome.IMPORTED: "imported",
            RowOutcome.SKIPPED_DUPLICATE: "skipped",
            RowOutcome.FAILED: "failed",
            RowOutcome.EXCLUDED: "excluded",
        }[result.outcome]
        return self.model_copy(
            update={counter: getattr(self, counter) + 1, "rows": self.rows + (result,)}
        )


class IngestionPipeline:
    """Imports CSV samples into the annotation store.

    Args:
        catalog: Entity catalog used to resolve and create entity values.
        annotations: Annotation store the samples are written to.
        default_lookups: Lookups given to entities first seen during import.
        sample_type: Type assigned to every imported sample.
    """

    def __init__(
        self,
        catalog: EntityCatalog,
        annotations: AnnotationStore,
        default_lookups: Sequence[str] = DEFAULT_IMPORT_LOOKUPS,
        sample_type: SampleType = SampleType.TRAIN,
    ) -> None:
        self.catalog = catalog
        self.annotations = annotations
        self.default_lookups = tuple(default_lookups)
        self.sample_type = sample_type

    async def import_csv(self, raw_text: str) -> ImportSummary:
        """Import every row of a CSV document.

        Args:
            raw_text: CSV with a header row; ``text`` and ``intent`` columns
                are required, other columns named after known entities are
                read as annotations.

        Returns:
            An `ImportSummary` with counts and one `RowResult` per data row.

        Raises:
            ImportParseError: If the document cannot be parsed at all.
            NotFoundError: If the entity catalog is empty.
        """
        parsed = parse_delimited_import(raw_text)
        if not parsed.ok:
            issues = parsed.fatal_issues
            logger.error(f"Import aborted: {issues[0]}")
            raise ImportParseError(f"Unable to parse import: {issues[0]}", issues=issues)

        known = await self.catalog.entity_names()
        if not known:
            raise NotFoundError("No entities found, please create them first")
        schema = ImportSchema.from_header(parsed.columns, known)

        summary = ImportSummary()
        for row in parsed.rows:
            summary = summary.add(await self._import_row(row, schema))

        for failure in summary.failures:
            logger.warning(f"Row at line {failure.line} failed ({failure.error_kind}): {failure.error}")
        logger.info(
            f"Import finished: {summary.imported} imported, {summary.skipped} skipped, "
            f"{summary.failed} failed, {summary.excluded} excluded"
        )
        return summary

    async def _import_row(self, row: ImportRow, schema: ImportSchema) -> RowResult:
        if row.is_excluded:
            return RowResult(line=row.line, text=row.text, outcome=RowOutcome.EXCLUDED)
        if row.text and await self.annotations.exists(row.text):
            return RowResult(line=row.line, text=row.text, outcome=RowOutcome.SKIPPED_DUPLICATE)

        resolutions: list[ValueResolution] = []
        try:
            if row.issue is not None:
                raise ValidationError(row.issue.message, record=f"line {row.line}")
            if not row.text.strip():
                raise ValidationError("Sample text must not be empty", record=f"line {row.line}")
            if not row.intent.strip():
                raise ValidationError("Intent must not be empty", record=f"line {row.line}")

            refs = row.entity_values(schema)
            # Appended one at a time so a later failure still rolls back earlier values
            for ref in refs:
                resolutions.append(await self.catalog.resolve(ref.entity, ref.value, self.default_lookups))
            annotated = await self.annotations.create_sample(row.text, self.sample_type, refs)
        except NluSampleError as e:
            await self._rollback_values(resolutions)
            return RowResult(
                line=row.line,
                text=row.text,
                outcome=RowOutcome.FAILED,
                error_kind=e.kind,
                error=str(e),
            )

        return RowResult(
            line=row.line,
            text=row.text,
            outcome=RowOutcome.IMPORTED,
            sample_id=annotated.sample.sample_id,
        )

    async def _rollback_values(self, resolutions: Sequence[ValueResolution]) -> None:
        """Delete values created for a failed row that no sample references."""
        for resolution in resolutions:
            if not resolution.created_value:
                continue
            value_id = resolution.value.value_id
            if await self.annotations.storage.count_links_by_value(value_id) == 0:
                await self.catalog.delete_value(value_id)
                logger.debug(f"Rolled back value '{resolution.value.value}' of entity '{resolution.entity.name}'")
