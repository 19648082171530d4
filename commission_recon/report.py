"""Rendering utilities for machine-readable and human-readable outputs."""
from __future__ import annotations

import csv
import json
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable

from .models import Breakdown, ReconciledContract, ReconciliationReport, ReconStatus

CSV_FIELDS = [
    "contract_id",
    "client_name",
    "counterparty_name",
    "agent_name",
    "product_name",
    "status",
    "severity",
    "match_strategy",
    "internal_base_value",
    "counterparty_base_value",
    "internal_commission",
    "counterparty_commission",
    "commission_difference",
    "base_value_difference",
    "internal_rate",
    "counterparty_rate",
    "divergence_reasons",
    "explanation",
]


def write_csv(path: Path, records: Iterable[ReconciledContract]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for record in records:
            writer.writerow(record.as_dict())


def write_json(path: Path, report: ReconciliationReport) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(report.as_json(), handle, indent=2)


def _escape(text: str) -> str:
    return text.replace("|", "\\|")


def _breakdown_table(title: str, groups: Dict[str, Breakdown]) -> list[str]:
    if not groups:
        return []
    lines = [f"## {title}", ""]
    lines.append("| Name | Records | Reconciled | Internal | Counterparty | Difference |")
    lines.append("| --- | --- | --- | --- | --- | --- |")
    for name, group in groups.items():
        lines.append(
            f"| {_escape(name)} | {group.count} | {group.reconciled_percent:.2f}% | "
            f"{group.internal_commission:.2f} | {group.counterparty_commission:.2f} | {group.difference:.2f} |"
        )
    lines.append("")
    return lines


def generate_markdown_summary(
    report: ReconciliationReport,
    *,
    internal_total: int,
    counterparty_total: int,
) -> str:
    totals = report.totals
    severities = Counter(
        record.severity.value for record in report.records if record.status is not ReconStatus.OK
    )

    lines = ["# Commission Reconciliation Report", ""]
    lines.append(f"Generated: {datetime.now(timezone.utc).isoformat()}")
    lines.append("")
    lines.append("## Overview")
    lines.append("")
    lines.append(f"- Internal contracts processed: **{internal_total}**")
    lines.append(f"- Counterparty payments processed: **{counterparty_total}**")
    lines.append(f"- Records reported: **{totals.count}**")
    lines.append(f"- Reconciled: **{totals.reconciled_count}** ({totals.reconciled_percent:.2f}%)")
    lines.append(f"- Divergent: **{totals.divergent_count}**")
    lines.append(f"- Not found in counterparty statement: **{totals.not_found_in_counterparty_count}**")
    lines.append(f"- Not found internally: **{totals.not_found_internally_count}**")
    lines.append(f"- Duplicates: **{totals.duplicate_count}**")
    lines.append("")

    lines.append("## Financial totals")
    lines.append("")
    lines.append(f"- Internal commission: **{totals.total_internal_commission:.2f}**")
    lines.append(f"- Counterparty commission: **{totals.total_counterparty_commission:.2f}**")
    lines.append(f"- Net difference (internal - counterparty): **{totals.total_commission_difference:.2f}**")
    lines.append(f"- Sum of commission differences: **{totals.absolute_commission_difference:.2f}**")
    lines.append(f"- Sum of base value differences: **{totals.absolute_base_value_difference:.2f}**")
    lines.append(f"- Recoverable underpayment: **{totals.recoverable_amount:.2f}**")
    lines.append("")

    if totals.by_match_strategy:
        lines.append("## Match strategies")
        lines.append("")
        lines.append(f"- Contracts matched: **{totals.matched_percent:.2f}%**")
        for strategy, count in totals.by_match_strategy.items():
            lines.append(f"- {strategy}: {count}")
        lines.append("")

    if severities:
        lines.append("## Severity distribution")
        lines.append("")
        for severity, count in sorted(severities.items()):
            lines.append(f"- {severity.title()}: {count}")
        lines.append("")

    lines.extend(_breakdown_table("By counterparty", totals.by_counterparty))
    lines.extend(_breakdown_table("By agent", totals.by_agent))
    lines.extend(_breakdown_table("By product", totals.by_product))

    if report.recommendations:
        lines.append("## Recommendations")
        lines.append("")
        lines.extend(f"- {line}" for line in report.recommendations)
        lines.append("")

    exceptions = [record for record in report.records if record.status is not ReconStatus.OK]
    if exceptions:
        lines.append("## Exceptions")
        lines.append("")
        lines.append("| Contract | Counterparty | Status | Severity | Commission diff | Reasons | Explanation |")
        lines.append("| --- | --- | --- | --- | --- | --- | --- |")
        for record in exceptions:
            lines.append(
                "| {contract} | {counterparty} | {status} | {severity} | {diff:.2f} | {reasons} | {explanation} |".format(
                    contract=_escape(record.contract_id),
                    counterparty=_escape(record.counterparty_name),
                    status=record.status.value,
                    severity=record.severity.value.title(),
                    diff=record.commission_difference,
                    reasons=_escape("; ".join(record.divergence_reasons)),
                    explanation=_escape(record.annotation.explanation) if record.annotation else "",
                )
            )
        lines.append("")
    else:
        lines.append("No exceptions detected. All contracts reconciled.")

    return "\n".join(lines)


def write_markdown(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        handle.write(content)
