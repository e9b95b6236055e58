from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import Any

from workbench_preprocessor import __version__ as TOOL_VERSION
from workbench_preprocessor.contracts import (
    STATUS_SKIPPED_ROWS,
    TOOL_NAME,
    build_items_summary,
    build_process_summary,
)
from workbench_preprocessor.google_sheets import (
    GoogleSheetsFetchError,
    GoogleSheetsUrlError,
    fetch_google_sheets_csv,
)
from workbench_preprocessor.items import ItemCsvGenerator, ItemGenerationStats
from workbench_preprocessor.modifiers import FieldModelConfigError, FieldModelMapping
from workbench_preprocessor.processor import (
    OPTIONAL_MODIFIERS,
    ProcessingStats,
    build_csv_modifier,
    processed_file_name,
)

PACKAGE_LOGGER = "workbench_preprocessor"
SHEETS_DEFAULT_OUTPUT = "sheets-output-modified.csv"
ITEMS_DEFAULT_OUTPUT = "items.csv"

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_ROWS_SKIPPED = 4

_LOG_HANDLER: logging.Handler | None = None


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class PreprocessorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    global _LOG_HANDLER
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _LOG_HANDLER is not None:
        logger.removeHandler(_LOG_HANDLER)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    if quiet:
        logger.setLevel(logging.ERROR)
    elif verbose:
        logger.setLevel(logging.INFO)
    else:
        logger.setLevel(logging.WARNING)
    _LOG_HANDLER = handler


def exit_code_for(summary: dict[str, Any]) -> int:
    return EXIT_ROWS_SKIPPED if summary["status"] == STATUS_SKIPPED_ROWS else EXIT_SUCCESS


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, (GoogleSheetsUrlError, GoogleSheetsFetchError)):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (csv.Error, UnicodeDecodeError, FieldModelConfigError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, OSError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def determine_modifiers_to_run(only_run: list[str] | None, ignore_run: list[str] | None) -> list[str]:
    if only_run:
        return [name for name in OPTIONAL_MODIFIERS if name in set(only_run)]
    ignored = set(ignore_run or [])
    return [name for name in OPTIONAL_MODIFIERS if name not in ignored]


def load_field_model_mapping(config_path: str | None) -> FieldModelMapping:
    if config_path:
        return FieldModelMapping.from_toml_path(config_path)
    return FieldModelMapping.from_default_config()


def add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", action="store_true", help="Write machine JSON summary to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="More human logs")


def add_source_arguments(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group()
    source.add_argument("input", nargs="?", default=None, help="Input file path (.csv, .tsv, .txt, .xlsx, .xlsm)")
    source.add_argument("--url", help="Public Google Sheets URL to fetch instead of a local file")


def build_parser() -> argparse.ArgumentParser:
    parser = PreprocessorArgumentParser(
        prog=TOOL_NAME,
        description=(
            "Clean and validate an archival asset export for Islandora Workbench. "
            f"Other commands: '{TOOL_NAME} generate-items', '{TOOL_NAME} version'."
        ),
    )
    add_source_arguments(parser)
    parser.add_argument("-o", "--output", help="Processed CSV output path")
    parser.add_argument("--output-dir", help="Directory for defaulted outputs")
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument(
        "--only-run",
        nargs="+",
        choices=OPTIONAL_MODIFIERS,
        metavar="MODIFIER",
        help=f"Run only these optional modifiers ({', '.join(OPTIONAL_MODIFIERS)})",
    )
    selection.add_argument(
        "--ignore-run",
        nargs="+",
        choices=OPTIONAL_MODIFIERS,
        metavar="MODIFIER",
        help="Skip these optional modifiers",
    )
    parser.add_argument("--field-model-config", help="TOML file overriding the bundled extension -> model mapping")
    parser.add_argument("--quarantine", help="Write skipped rows and their reasons to this CSV")
    parser.add_argument("--stats", action="store_true", help="Print detailed processing statistics")
    parser.add_argument("--full", action="store_true", help="Also generate the items file from the processed output")
    parser.add_argument("--items-output", help="Items CSV path for --full (bare names land beside the processed file)")
    parser.add_argument("-n", "--node", help="field_member_of value for every items row (with --full)")
    add_common_flags(parser)
    return parser


def build_items_parser() -> argparse.ArgumentParser:
    parser = PreprocessorArgumentParser(
        prog=f"{TOOL_NAME} generate-items",
        description="Summarise a processed export into one row per parent_id.",
    )
    add_source_arguments(parser)
    parser.add_argument("-o", "--output", help=f"Items CSV output path (default: {ITEMS_DEFAULT_OUTPUT})")
    parser.add_argument("-n", "--node", help="field_member_of value for every row")
    add_common_flags(parser)
    return parser


def require_source(args: argparse.Namespace) -> None:
    if not args.input and not args.url:
        raise CliError("Provide an input file or --url.", EXIT_COMMAND_ERROR)
    if args.input and not Path(args.input).exists():
        raise CliError(f"File not found: {args.input}", EXIT_COMMAND_ERROR)


def processed_output_path(args: argparse.Namespace) -> Path:
    if args.output:
        return Path(args.output)

    if args.input:
        input_path = Path(args.input)
        name = processed_file_name(input_path)
        base_dir = input_path.parent
    else:
        name = SHEETS_DEFAULT_OUTPUT
        base_dir = Path.cwd()

    if args.output_dir:
        base_dir = Path(args.output_dir)
        ensure_dir(base_dir)
    return base_dir / name


def items_output_path(args: argparse.Namespace, processed_path: Path) -> Path:
    if args.items_output:
        explicit = Path(args.items_output)
        if explicit.parent == Path("."):
            return processed_path.parent / explicit.name
        return explicit
    return processed_path.parent / f"{processed_path.stem}-items.csv"


def render_process_stats(stats: ProcessingStats) -> str:
    lines = [
        "Processing statistics:",
        f"  Total rows processed: {stats.total_rows}",
        f"  Cells modified: {stats.cells_modified}",
        f"  Validation failures: {stats.validation_failures}",
        f"  Rows skipped: {stats.skipped_rows}",
        f"  Columns processed: {', '.join(sorted(stats.columns_processed)) or '[none]'}",
    ]
    for reason, count in sorted(stats.quarantine_reason_counts.items()):
        lines.append(f"  Skipped ({reason}): {count}")
    return "\n".join(lines)


def render_items_stats(stats: ItemGenerationStats) -> str:
    return (
        "Items statistics:\n"
        f"  Unique parents: {stats.unique_parents}\n"
        f"  Total items: {stats.total_items}\n"
        f"  Rows skipped: {stats.skipped_rows}"
    )


def run_process(args: argparse.Namespace) -> int:
    configure_logging(verbose=args.verbose, quiet=args.quiet)
    if not args.full and (args.items_output or args.node):
        raise CliError("--items-output and --node only apply with --full.", EXIT_COMMAND_ERROR)

    try:
        require_source(args)
        selected = determine_modifiers_to_run(args.only_run, args.ignore_run)
        mapping = load_field_model_mapping(args.field_model_config) if "field-model" in selected else None
        modifier = build_csv_modifier(selected, field_model_mapping=mapping)

        output_path = processed_output_path(args)
        quarantine_path = Path(args.quarantine) if args.quarantine else None
        source = args.url or str(args.input)

        emit_human(f"Processing {source}", quiet=args.quiet)
        if args.url:
            stats = modifier.process_google_sheets(args.url, output_path, quarantine_path)
        else:
            stats = modifier.process_file(args.input, output_path, quarantine_path)

        outputs = {"processed": str(output_path)}
        if quarantine_path is not None:
            outputs["quarantine"] = str(quarantine_path)

        items_stats: ItemGenerationStats | None = None
        if args.full:
            items_path = items_output_path(args, output_path)
            items_stats = ItemCsvGenerator.generate_from_processed(output_path, items_path, args.node)
            outputs["items"] = str(items_path)

        summary = build_process_summary(
            source,
            stats,
            modifiers=selected,
            outputs=outputs,
            items_stats=items_stats,
        )

        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            emit_human(
                f"Processed {stats.total_rows} rows ({stats.skipped_rows} skipped, "
                f"{stats.cells_modified} cells modified)",
                quiet=args.quiet,
            )
            emit_human(f"Processed file: {output_path}", quiet=args.quiet)
            if quarantine_path is not None:
                emit_human(f"Quarantine file: {quarantine_path}", quiet=args.quiet)
            if items_stats is not None:
                emit_human(f"Items file: {outputs['items']}", quiet=args.quiet)
            if args.stats:
                print(render_process_stats(stats))
                if items_stats is not None:
                    print(render_items_stats(items_stats))

        return exit_code_for(summary)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_generate_items(args: argparse.Namespace) -> int:
    configure_logging(verbose=args.verbose, quiet=args.quiet)
    try:
        require_source(args)
        output_path = Path(args.output) if args.output else Path(ITEMS_DEFAULT_OUTPUT)
        source = args.url or str(args.input)

        emit_human(f"Generating items from {source}", quiet=args.quiet)
        if args.url:
            stats = ItemCsvGenerator.generate_from_text(fetch_google_sheets_csv(args.url), output_path, args.node)
        else:
            stats = ItemCsvGenerator.generate(args.input, output_path, args.node)

        summary = build_items_summary(source, stats, output_path=str(output_path))
        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            emit_human(render_items_stats(stats), quiet=args.quiet)
            emit_human(f"Items file: {output_path}", quiet=args.quiet)
        return exit_code_for(summary)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    try:
        if argv and argv[0] == "version":
            return run_version()
        if argv and argv[0] == "generate-items":
            return run_generate_items(build_items_parser().parse_args(argv[1:]))
        return run_process(build_parser().parse_args(argv))
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
