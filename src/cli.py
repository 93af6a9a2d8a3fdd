from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Optional

from dotenv import load_dotenv

from models.report import ReconcileOptions
from pipeline_runner import PipelineRunner, load_json
from reconciler import build_merged_document, flatten_with_warnings, reconcile
from utils.error_handler import MalformedCatalogError, MalformedDocumentError, ReconcileError, exit_with_error
from utils.logging_config import configure_logging


logger = logging.getLogger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--catalog",
        dest="catalog_path",
        required=True,
        help="Path to the freshly fetched OSCAL catalog (.json)",
    )
    parser.add_argument(
        "--output",
        dest="output_path",
        default="",
        help="Optional output JSON file path. If not set, writes to --output-dir.",
    )
    parser.add_argument(
        "--output-dir",
        dest="output_dir",
        default=os.getenv("SSP_RECONCILE_OUTPUT_DIR", "outputs"),
        help="Directory to save outputs (default: outputs/) when --output is not set.",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=os.getenv("SSP_RECONCILE_LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--dotenv",
        dest="dotenv_path",
        default=".env",
        help="Path to .env file to load (default: .env at repo root)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ssp-reconcile reconcile",
        description="Reconcile a fresh catalog against an existing SSP",
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "--prior",
        dest="prior_path",
        default="",
        help="Path to the existing SSP (OSCAL or simplified export). Omit to start fresh.",
    )
    parser.add_argument(
        "--keep-removed",
        action="store_true",
        default=None,
        help="Keep controls that left the catalog in the merged control set.",
    )
    parser.add_argument(
        "--document-output",
        dest="document_output",
        default="",
        help="Optional path for the merged OSCAL SSP document.",
    )
    return parser


def build_flatten_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ssp-reconcile flatten",
        description="Flatten an OSCAL catalog into an ordered control list",
    )
    _add_common_arguments(parser)
    return parser


def _load_input(path: str, error_cls: type[ReconcileError]) -> Any:
    try:
        return load_json(path)
    except json.JSONDecodeError as e:
        raise error_cls(f"{path}: {e}") from e


def run_reconcile(
    catalog_path: str,
    prior_path: str = "",
    keep_removed: Optional[bool] = None,
    output_path: str = "",
    output_dir: str = "outputs",
    document_output: str = "",
) -> int:
    runner = PipelineRunner(
        input_path=catalog_path,
        output_path=output_path,
        output_dir=output_dir,
        output_prefix="reconcile",
    )

    runner.log_plan([
        "Catalog Reconciliation",
        "Flatten catalog into ordered controls",
        "Read prior SSP implemented requirements",
        "Match by control id and classify changes",
        "Merge catalog fields with preserved user data",
        "Write reconciliation report",
    ])
    runner.log_run(prior=prior_path or "-", keep_removed=keep_removed, document_output=document_output or "-")

    catalog = _load_input(catalog_path, MalformedCatalogError)
    prior_document = _load_input(prior_path, MalformedDocumentError) if prior_path else None

    options = ReconcileOptions() if keep_removed is None else ReconcileOptions(keep_removed=keep_removed)
    report = reconcile(catalog, prior_document, options=options)
    runner.log_step("reconcile", **report.counts, warnings=len(report.warnings))

    runner.write_output(report.model_dump(mode="json", by_alias=True))

    if document_output:
        document = build_merged_document(report, prior_document=prior_document)
        runner.write_output(document, runner.resolve_output(document_output))

    return 0


def run_flatten(
    catalog_path: str,
    output_path: str = "",
    output_dir: str = "outputs",
) -> int:
    runner = PipelineRunner(
        input_path=catalog_path,
        output_path=output_path,
        output_dir=output_dir,
        output_prefix="flatten",
    )

    runner.log_plan(["Catalog Flatten", "Walk groups and enhancements in declaration order", "Write control list"])
    runner.log_run()

    result = flatten_with_warnings(_load_input(catalog_path, MalformedCatalogError))
    runner.log_step("flatten", controls=len(result.controls), warnings=len(result.warnings))

    runner.write_output(result.model_dump(mode="json", by_alias=True))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    argv_list = list(argv) if argv is not None else sys.argv[1:]

    if argv_list and argv_list[0] == "flatten":
        args = build_flatten_parser().parse_args(argv_list[1:])
        configure_logging(str(args.log_level))
        load_dotenv(args.dotenv_path)

        try:
            return run_flatten(
                catalog_path=args.catalog_path,
                output_path=args.output_path,
                output_dir=args.output_dir,
            )
        except ReconcileError as e:
            return exit_with_error(e, context="flatten")

    if argv_list and argv_list[0] == "reconcile":
        argv_list = argv_list[1:]

    args = build_parser().parse_args(argv_list)
    configure_logging(str(args.log_level))
    load_dotenv(args.dotenv_path)

    try:
        return run_reconcile(
            catalog_path=args.catalog_path,
            prior_path=args.prior_path,
            keep_removed=args.keep_removed,
            output_path=args.output_path,
            output_dir=args.output_dir,
            document_output=args.document_output,
        )
    except ReconcileError as e:
        return exit_with_error(e, context="reconcile")


if __name__ == "__main__":
    raise SystemExit(main())
