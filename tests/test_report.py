import csv
import json
from dataclasses import replace
from decimal import Decimal
from pathlib import Path

from commission_recon.engine import reconcile
from commission_recon.llm import annotate_records
from commission_recon.report import CSV_FIELDS, generate_markdown_summary, write_csv, write_json


def _report():
    internals = [
        {"contract_id": "C1", "counterparty_name": "Banco Alfa", "base_value": "10000", "commission_value": "350"},
        {"contract_id": "C2", "counterparty_name": "Banco Alfa", "base_value": "1000", "commission_value": "30"},
    ]
    payments = [
        {"contract_id": "C1", "counterparty_name": "Banco Alfa", "base_value": "10000", "commission_value": "300"},
        {"contract_id": "C3", "counterparty_name": "Banco|Beta", "base_value": "5000", "commission_value": "100"},
    ]
    return reconcile(internals, payments)


def test_write_csv_emits_one_row_per_record(tmp_path: Path):
    report = _report()
    path = tmp_path / "nested" / "records.csv"

    write_csv(path, report.records)

    with path.open(encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert list(rows[0]) == CSV_FIELDS
    assert [row["status"] for row in rows] == ["DIVERGENT", "NOT_FOUND_IN_COUNTERPARTY", "NOT_FOUND_INTERNALLY"]
    assert rows[0]["commission_difference"] == "50.00"
    assert rows[0]["internal_rate"] == "3.50"
    assert rows[2]["internal_rate"] == ""


def test_write_json_serialises_totals_and_records(tmp_path: Path):
    report = _report()
    path = tmp_path / "records.json"

    write_json(path, report)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["totals"]["count"] == 3
    assert payload["totals"]["recoverable_amount"] == 50.0
    assert payload["records"][0]["counterparty"]["commission_value"] == "300.00"
    assert payload["records"][2]["internal"] is None
    assert payload["recommendations"] == list(report.recommendations)


def test_markdown_summary_lists_exceptions_and_breakdowns():
    report = _report()
    report = replace(report, records=tuple(annotate_records(report.records)))

    markdown = generate_markdown_summary(report, internal_total=2, counterparty_total=2)

    assert markdown.startswith("# Commission Reconciliation Report")
    assert "- Records reported: **3**" in markdown
    assert "## Match strategies" in markdown
    assert "- Contracts matched: **50.00%**" in markdown
    assert "- EXACT_CONTRACT: 1" in markdown
    assert "## By counterparty" in markdown
    assert "BANCO\\|BETA" in markdown
    assert "## Recommendations" in markdown
    assert "| C2 | BANCO ALFA | NOT_FOUND_IN_COUNTERPARTY | Critical | 30.00 |" in markdown
    assert "Counterparty has not paid this commission" in markdown


def test_markdown_summary_for_clean_run():
    rows = [{"contract_id": "C1", "base_value": "10000", "commission_value": "350"}]
    report = reconcile(rows, rows)

    markdown = generate_markdown_summary(report, internal_total=1, counterparty_total=1)

    assert report.totals.reconciled_percent == Decimal("100.00")
    assert "## Exceptions" not in markdown
    assert markdown.rstrip().endswith("No exceptions detected. All contracts reconciled.")
