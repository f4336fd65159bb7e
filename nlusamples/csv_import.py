"""Parse delimited-text (CSV) sample imports.

The input is comma-separated with a header row naming the columns. Fields
follow standard quoting rules: a quoted field may contain commas, newlines
and doubled quotes. Blank lines are skipped.

Parsing never raises on malformed input. Problems are reported as
:class:`ParseIssue` records with line and column context:

- *fatal* issues mean the stream itself is unusable (empty input, no header,
  a required column missing, broken quoting) and nothing should be imported;
- row issues (a record with the wrong number of fields) are attached to that
  row so the caller can fail it and carry on.

Which columns are entity annotations is decided separately by an
:class:`ImportSchema`, built from the header and the known entity names.
"""

import csv
import io
from typing import Iterable

from pydantic import BaseModel, Field

from nlusamples.entity import INTENT_ENTITY
from nlusamples.sample import AnnotationRef

TEXT_COLUMN = "text"
INTENT_COLUMN = INTENT_ENTITY
REQUIRED_COLUMNS: tuple[str, ...] = (TEXT_COLUMN, INTENT_COLUMN)
NONE_INTENT = "none"


class ParseIssue(BaseModel):
    """A problem found while parsing, located by line and (when known) column."""

    model_config = {"frozen": True}

    line: int | None = Field(default=None, description="1-based line where the record starts.")
    column: str | None = None
    message: str
    fatal: bool = False

    def __str__(self) -> str:
        where = f"line {self.line}" if self.line is not None else "input"
        if self.column:
            where = f"{where}, column '{self.column}'"
        return f"{where}: {self.message}"


class ImportSchema(BaseModel):
    """Which header columns carry entity values for a given entity catalog."""

    model_config = {"frozen": True}

    columns: tuple[str, ...]
    entity_columns: tuple[str, ...]

    @classmethod
    def from_header(cls, columns: Iterable[str], known_entity_names: Iterable[str]) -> "ImportSchema":
        columns = tuple(columns)
        known = set(known_entity_names)
        return cls(columns=columns, entity_columns=tuple(c for c in columns if c in known))


class ImportRow(BaseModel):
    """One data record, as a mapping from column name to raw string value."""

    model_config = {"frozen": True}

    line: int
    values: dict[str, str]
    issue: ParseIssue | None = None

    @property
    def text(self) -> str:
        return self.values.get(TEXT_COLUMN, "")

    @property
    def intent(self) -> str:
        return self.values.get(INTENT_COLUMN, "")

    @property
    def is_excluded(self) -> bool:
        """Rows labeled with the ``none`` intent are not trainable samples."""
        return self.intent == NONE_INTENT

    def entity_values(self, schema: ImportSchema) -> list[AnnotationRef]:
        """Trait-style annotations for every known-entity column with a non-empty value."""
        return [
            AnnotationRef(entity=column, value=self.values[column])
            for column in schema.entity_columns
            if self.values.get(column, "").strip()
        ]


class DelimitedParseResult(BaseModel):
    """Outcome of parsing: header columns, data rows and every issue found."""

    model_config = {"frozen": True}

    columns: tuple[str, ...] = ()
    rows: tuple[ImportRow, ...] = ()
    issues: tuple[ParseIssue, ...] = ()

    @property
    def fatal_issues(self) -> list[ParseIssue]:
        return [issue for issue in self.issues if issue.fatal]

    @property
    def ok(self) -> bool:
        return not self.fatal_issues


def _fatal(message: str, line: int | None = None, column: str | None = None) -> DelimitedParseResult:
    return DelimitedParseResult(issues=(ParseIssue(line=line, column=column, message=message, fatal=True),))


def parse_delimited_import(raw_text: str) -> DelimitedParseResult:
    """Parse CSV text with a header row into ordered row records.

    Args:
        raw_text: The full CSV document.

    Returns:
        A :class:`DelimitedParseResult`. Check ``result.ok`` before using the
        rows; rows with ``issue`` set were malformed.
    """
    if not raw_text or not raw_text.strip():
        return _fatal("Input is empty")

    reader = csv.reader(io.StringIO(raw_text.lstrip("\ufeff"), newline=""), strict=True)
    columns: tuple[str, ...] = ()
    rows: list[ImportRow] = []
    issues: list[ParseIssue] = []
    next_line = 1

    try:
        for record in reader:
            line, next_line = next_line, reader.line_num + 1
            if not any(field.strip() for field in record):
                continue

            if not columns:
                columns = tuple(name.strip() for name in record)
                duplicates = sorted({c for c in columns if columns.count(c) > 1})
                if duplicates:
                    return _fatal(f"Duplicate column(s) in header: {', '.join(duplicates)}", line=line)
                for required in REQUIRED_COLUMNS:
                    if required not in columns:
                        return _fatal("Required column is missing from the header", line=line, column=required)
                continue

            issue = None
            if len(record) != len(columns):
                issue = ParseIssue(line=line, message=f"Expected {len(columns)} fields, found {len(record)}")
                issues.append(issue)
            rows.append(ImportRow(line=line, values=dict(zip(columns, record)), issue=issue))
    except csv.Error as e:
        return _fatal(f"Malformed delimited text: {e}", line=next_line)

    if not columns:
        return _fatal("No header row found")

    return DelimitedParseResult(columns=columns, rows=tuple(rows), issues=tuple(issues))
