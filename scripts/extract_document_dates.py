#!/usr/bin/env python3
"""Document date extraction CLI script.

Runs the AI + pattern extraction over local permit/utility-letter scans and
prints the recognized dates and identifiers.

Usage:
    python scripts/extract_document_dates.py letter.pdf
    python scripts/extract_document_dates.py --json scans/*.jpg
    python scripts/extract_document_dates.py --config config/custom.yaml --verbose notice.png

Options:
    --config, -c: Path to config file (default: config/config.yaml)
    --title, -t: Title hint passed to the AI (single file only)
    --json: Print results as JSON instead of a table
    --verbose, -v: Enable verbose logging
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Tuple

# Add repository root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from loguru import logger
from rich.console import Console
from rich.table import Table

from permit_ocr.extraction.date_field_extractor import DateFieldExtractor, guess_mime_type
from permit_ocr.pipeline.batch_pipeline import BatchExtractionPipeline, BatchReport, DocumentRef
from permit_ocr.utils.config import load_config
from permit_ocr.utils.logging_setup import setup_logging

console = Console()


def read_local_document(document: DocumentRef) -> Tuple[bytes, str]:
    """Document source backed by the local filesystem (document_id is the path)."""
    path = Path(document.document_id)
    return path.read_bytes(), guess_mime_type(path)


def render_report(report: BatchReport) -> None:
    table = Table(title="Extraction Results")
    table.add_column("File", style="cyan")
    table.add_column("Status")
    table.add_column("Dates")
    table.add_column("Fields")

    status_styles = {"success": "green", "review": "yellow", "error": "red", "skipped": "dim"}
    for task in report.tasks:
        dates = ""
        fields = ""
        if task.result:
            dates = "\n".join(
                f"{d.kind.value}: {d.date} ({d.provenance})" for d in task.result.dates
            )
            fields = "\n".join(f"{k}: {v}" for k, v in task.result.fields.populated().items())
        elif task.error:
            dates = task.error
        style = status_styles.get(task.status, "white")
        table.add_row(Path(task.document_id).name, f"[{style}]{task.status}[/{style}]", dates, fields)

    console.print(table)
    console.print(f"[bold]{report.summary()}[/bold]")


def main():
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Extract submission/issue/meter dates and permit identifiers from documents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("paths", nargs="+", type=Path, help="Image or PDF files to process")
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=Path("config/config.yaml"),
        help="Path to configuration file (default: config/config.yaml)",
    )
    parser.add_argument("--title", "-t", help="Title hint passed to the AI (single file only)")
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[bold red]Configuration error:[/bold red] {e}")
        return 1

    setup_logging(config.logging, verbose=args.verbose)

    missing = [p for p in args.paths if not p.is_file()]
    for path in missing:
        logger.warning(f"Path does not exist: {path}")

    documents = [
        DocumentRef(
            document_id=str(path),
            title=args.title if args.title and len(args.paths) == 1 else path.stem,
        )
        for path in args.paths
        if path.is_file()
    ]
    if not documents:
        logger.error("No documents found to process")
        return 1

    extractor = DateFieldExtractor.from_config(config)
    pipeline = BatchExtractionPipeline(extractor, read_local_document, config.pipeline)
    report = pipeline.run(documents)

    if args.json:
        payload = [
            {
                "file": task.document_id,
                "status": task.status,
                "error": task.error,
                "errorCode": task.error_code,
                "result": task.result.to_dict() if task.result else None,
            }
            for task in report.tasks
        ]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        render_report(report)

    return 1 if report.has_errors or missing else 0


if __name__ == "__main__":
    sys.exit(main())
