"""Command line for managing NLU samples.

Examples:
  # Register the entities the CSV columns refer to
  nlusamples entity add intent --lookups trait
  nlusamples entity add city

  # Import a CSV (text,intent[,<entity>...]) and export the training set
  nlusamples import samples.csv
  nlusamples export --type train --format rasa --output-dir exports/

  # Train, evaluate and query the configured engine
  nlusamples train --mark-trained
  nlusamples evaluate
  nlusamples parse "book a table in Paris"
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from nlusamples.config import load_settings
from nlusamples.entity import KEYWORDS_LOOKUP
from nlusamples.errors import NluSampleError
from nlusamples.logging import set_package_level
from nlusamples.sample import AnnotationRef, SampleType
from nlusamples.service import SampleService


def _dump(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _annotation(raw: str) -> AnnotationRef:
    """Parse ``entity=value`` or ``entity=value@start:end``."""
    entity, sep, rest = raw.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"Expected entity=value, got '{raw}'")
    value, at, span = rest.rpartition("@") if "@" in rest else (rest, "", "")
    if not at:
        return AnnotationRef(entity=entity, value=value)
    start, colon, end = span.partition(":")
    if not colon or not start.isdigit() or not end.isdigit():
        raise argparse.ArgumentTypeError(f"Expected start:end offsets, got '{span}'")
    return AnnotationRef(entity=entity, value=value, start=int(start), end=int(end))


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nlusamples",
        description="Manage labeled NLU training samples",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a nlusamples.toml (default: $NLUSAMPLES_CONFIG or ./nlusamples.toml)",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    commands = parser.add_subparsers(dest="command", required=True)

    entity = commands.add_parser("entity", help="Manage entities")
    entity_commands = entity.add_subparsers(dest="entity_command", required=True)
    entity_add = entity_commands.add_parser("add", help="Create an entity")
    entity_add.add_argument("name")
    entity_add.add_argument(
        "--lookups",
        nargs="+",
        default=[KEYWORDS_LOOKUP],
        help="Lookup tags; use 'trait' for non-positional entities (default: keywords)",
    )
    entity_add.add_argument("--value", dest="values", action="append", default=[], help="Add a value (repeatable)")
    entity_commands.add_parser("list", help="List entities with their values")

    sample = commands.add_parser("sample", help="Manage samples")
    sample_commands = sample.add_subparsers(dest="sample_command", required=True)
    sample_add = sample_commands.add_parser("add", help="Create a sample")
    sample_add.add_argument("text")
    sample_add.add_argument("--type", choices=[t.value for t in SampleType], default=SampleType.TRAIN.value)
    sample_add.add_argument(
        "--annotate",
        type=_annotation,
        action="append",
        default=[],
        help="Annotation as entity=value or entity=value@start:end (repeatable)",
    )

    import_ = commands.add_parser("import", help="Import samples from a CSV file")
    import_.add_argument("path", type=Path)

    export = commands.add_parser("export", help="Export samples as JSON")
    export.add_argument("--type", choices=[t.value for t in SampleType], default=None)
    export.add_argument("--format", choices=["exchange", "rasa"], default="exchange")
    export.add_argument("--output-dir", type=Path, default=None, help="Write a file here instead of stdout")

    train = commands.add_parser("train", help="Train the engine on train samples")
    train.add_argument("--mark-trained", action="store_true", help="Flag the samples as trained on success")
    commands.add_parser("evaluate", help="Evaluate the engine on test samples")

    parse = commands.add_parser("parse", help="Ask the engine to analyze a text")
    parse.add_argument("text")

    return parser.parse_args(argv)


async def run(args: argparse.Namespace, service: SampleService) -> int:
    """Execute one parsed command against ``service``; returns the exit code."""
    if args.command == "entity" and args.entity_command == "add":
        entity = await service.create_entity(args.name, args.lookups)
        for value in args.values:
            await service.create_value(entity.name, value)
        print(f"Created entity '{entity.name}' ({entity.entity_id})")
    elif args.command == "entity":
        _dump(
            [
                {"name": item.name, "lookups": list(item.entity.lookups), "values": [v.value for v in item.values]}
                for item in await service.list_entities()
            ]
        )
    elif args.command == "sample":
        annotated = await service.create_sample(args.text, SampleType(args.type), args.annotate)
        _dump(annotated.model_dump(mode="json"))
    elif args.command == "import":
        summary = await service.import_file(args.path)
        print(
            f"Imported {summary.imported}, skipped {summary.skipped}, "
            f"failed {summary.failed}, excluded {summary.excluded}"
        )
        for failure in summary.failures:
            print(f"  line {failure.line}: {failure.error}", file=sys.stderr)
        return 1 if summary.failed else 0
    elif args.command == "export":
        sample_type = SampleType(args.type) if args.type else None
        if args.output_dir is not None:
            print(f"Wrote {await service.export_file(args.output_dir, sample_type, args.format)}")
        else:
            _dump(await service.export(sample_type, args.format))
    elif args.command == "train":
        _dump(await service.train(mark_trained=args.mark_trained))
    elif args.command == "evaluate":
        _dump(await service.evaluate())
    elif args.command == "parse":
        _dump(await service.parse(args.text))
    return 0


async def amain(argv: list[str] | None = None) -> int:
    args = parse_arguments(argv)
    try:
        settings = load_settings(args.config)
        service = SampleService.from_settings(settings)
    except NluSampleError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    set_package_level(args.log_level or settings.log_level)
    try:
        return await run(args, service)
    except NluSampleError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        service.close()


def main() -> None:
    sys.exit(asyncio.run(amain()))


if __name__ == "__main__":
    main()
