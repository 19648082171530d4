"""High-level orchestration around the reconciliation engine: files in, artefacts out."""
from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from .config import ReconciliationConfig
from .engine import reconcile
from .llm import annotate_records
from .models import ReconciliationReport
from .normalization import load_sources
from .report import generate_markdown_summary, write_csv, write_json, write_markdown


def run_reconciliation(
    *,
    internal_path: Path,
    counterparty_path: Path,
    out_dir: Path,
    config: ReconciliationConfig | None = None,
    annotate: bool = False,
) -> ReconciliationReport:
    internal_rows, counterparty_rows = load_sources(internal_path, counterparty_path)
    report = reconcile(internal_rows, counterparty_rows, config)
    if annotate:
        report = replace(report, records=tuple(annotate_records(report.records)))

    out_dir.mkdir(parents=True, exist_ok=True)
    write_csv(out_dir / "recon_records.csv", report.records)
    write_json(out_dir / "recon_records.json", report)
    markdown = generate_markdown_summary(
        report,
        internal_total=len(internal_rows),
        counterparty_total=len(counterparty_rows),
    )
    write_markdown(out_dir / "recon_report.md", markdown)
    return report
