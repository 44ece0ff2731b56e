"""
CLI for the document verification engine.

Commands:
    classify - Classify one document from its OCR output (deterministic tiers only)
    run      - Run the full pipeline over a deal file and print the gate decision

Deal file format:
    {"dealId": "deal_1", "documents": [{"documentId": "doc_1", "ocr": {...}}]}
"""

import json
import logging
from pathlib import Path

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table as RichTable

app = typer.Typer(
    name="docverify",
    help="Document classification, extraction and verification for loan underwriting",
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _read_json(path: Path) -> dict:
    if not path.exists():
        rprint(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)
    with open(path) as f:
        return json.load(f)


@app.command()
def classify(
    ocr_path: Path = typer.Argument(..., help="Path to an OCR result JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline progress"),
):
    """
    Classify a document with the deterministic tiers.

    Example:
        python -m docverify.cli classify samples/w2_ocr.json
    """
    from ..classification import classify as classify_document
    from ..schemas.ocr import OcrResult

    _configure_logging(verbose)
    ocr = OcrResult.model_validate(_read_json(ocr_path))
    result = classify_document(ocr.raw_text, ocr.key_value_pairs)

    if not result.is_match:
        rprint("[yellow]No deterministic tier matched; the model classifier would be consulted[/yellow]")
        raise typer.Exit(2)

    rprint(f"[green]{result.doc_type.value}[/green]")
    rprint(f"  Confidence: {result.confidence}")
    rprint(f"  Method: {result.method}")


@app.command()
def run(
    deal_path: Path = typer.Argument(..., help="Path to a deal JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline progress"),
):
    """
    Run classification, extraction, verification, resolution and the review gate.

    Example:
        python -m docverify.cli run samples/deal.json --verbose
    """
    from ..pipeline import DocumentInput, VerificationEngine
    from ..pipeline.graph import run_deal_sync
    from ..schemas.ocr import OcrResult

    _configure_logging(verbose)
    deal = _read_json(deal_path)
    deal_id = deal.get("dealId") or deal_path.stem

    try:
        documents = [
            DocumentInput(
                document_id=d["documentId"],
                ocr=OcrResult.model_validate(d["ocr"]),
            )
            for d in deal.get("documents", [])
        ]
    except (KeyError, ValueError) as e:
        rprint(f"[red]Invalid deal file: {e}[/red]")
        raise typer.Exit(1)

    engine = VerificationEngine()
    state = run_deal_sync(engine, deal_id, documents)

    docs_table = RichTable(title=f"Documents in {deal_id}")
    docs_table.add_column("Doc ID", style="cyan")
    docs_table.add_column("Type")
    docs_table.add_column("Stage")
    docs_table.add_column("Error")
    for document_id, info in state.get("documents", {}).items():
        docs_table.add_row(
            document_id,
            info.get("docType") or "-",
            info.get("stage", "-"),
            info.get("error") or "",
        )
    console.print(docs_table)

    if state.get("current_stage") == "failed":
        rprint(f"[red]Deal failed: {state.get('last_error')}[/red]")
        raise typer.Exit(1)

    summary = state.get("decision", {}).get("summary", {})
    summary_table = RichTable(title="Verification Summary")
    summary_table.add_column("Check")
    summary_table.add_column("Open", justify="right")
    for key in ("mathFailures", "crossDocFailures", "crossDocWarnings", "ocrMismatches"):
        summary_table.add_row(key, str(summary.get(key, 0)))
    console.print(summary_table)

    items = engine.review_items(deal_id)
    if items:
        review_table = RichTable(title="Review Items")
        review_table.add_column("Field", style="cyan")
        review_table.add_column("Type")
        review_table.add_column("Extracted", justify="right")
        review_table.add_column("Expected", justify="right")
        review_table.add_column("Tried")
        for item in items:
            review_table.add_row(
                item.field_path,
                item.check_type.value,
                item.extracted_value or "-",
                item.expected_value or "-",
                ", ".join(item.attempted_methods),
            )
        console.print(review_table)

    colour = "green" if state.get("can_proceed") else "red"
    rprint(
        f"\n[{colour}]Status: {state.get('status')} "
        f"(canProceed={state.get('can_proceed')})[/{colour}]"
    )
    if not state.get("can_proceed"):
        raise typer.Exit(3)


if __name__ == "__main__":
    app()
