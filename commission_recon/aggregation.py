"""Totals, per-dimension breakdowns and follow-up recommendations."""
from __future__ import annotations

from collections import Counter
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, List, Sequence

from .models import Breakdown, MatchStrategy, ReconciledContract, ReconStatus, Totals

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
UNSPECIFIED = "UNSPECIFIED"
LARGE_GAP = Decimal("100")

NOT_FOUND = (ReconStatus.NOT_FOUND_IN_COUNTERPARTY, ReconStatus.NOT_FOUND_INTERNALLY)


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percent(part: int, whole: int) -> Decimal:
    if whole <= 0:
        return ZERO
    return _cents(Decimal(part) * 100 / Decimal(whole))


def breakdown(
    records: Iterable[ReconciledContract],
    key: Callable[[ReconciledContract], str],
) -> Dict[str, Breakdown]:
    groups: Dict[str, List[ReconciledContract]] = {}
    for record in records:
        groups.setdefault(key(record) or UNSPECIFIED, []).append(record)

    result: Dict[str, Breakdown] = {}
    for name in sorted(groups):
        members = groups[name]
        reconciled = sum(1 for record in members if record.status is ReconStatus.OK)
        internal = _cents(sum((record.internal_commission for record in members), ZERO))
        counterparty = _cents(sum((record.counterparty_commission for record in members), ZERO))
        result[name] = Breakdown(
            count=len(members),
            reconciled_count=reconciled,
            internal_commission=internal,
            counterparty_commission=counterparty,
            difference=internal - counterparty,
            reconciled_percent=percent(reconciled, len(members)),
        )
    return result


def strategy_counts(records: Iterable[ReconciledContract]) -> Dict[str, int]:
    """Count internal contracts per match strategy, in strategy priority order."""

    counts = Counter(record.match_strategy for record in records if record.internal is not None)
    return {strategy.value: counts[strategy] for strategy in MatchStrategy if counts[strategy]}


def aggregate(records: Sequence[ReconciledContract]) -> Totals:
    statuses = Counter(record.status for record in records)
    count = len(records)

    internal_total = _cents(sum((record.internal_commission for record in records), ZERO))
    counterparty_total = _cents(sum((record.counterparty_commission for record in records), ZERO))
    strategies = strategy_counts(records)
    contracts = sum(strategies.values())
    recoverable = sum(
        (
            record.internal_commission - record.counterparty_commission
            for record in records
            if record.internal is not None
            and record.counterparty is not None
            and record.internal_commission > record.counterparty_commission
        ),
        ZERO,
    )

    return Totals(
        count=count,
        reconciled_count=statuses[ReconStatus.OK],
        divergent_count=statuses[ReconStatus.DIVERGENT],
        not_found_count=sum(statuses[status] for status in NOT_FOUND),
        not_found_in_counterparty_count=statuses[ReconStatus.NOT_FOUND_IN_COUNTERPARTY],
        not_found_internally_count=statuses[ReconStatus.NOT_FOUND_INTERNALLY],
        duplicate_count=statuses[ReconStatus.DUPLICATE],
        reconciled_percent=percent(statuses[ReconStatus.OK], count),
        total_internal_commission=internal_total,
        total_counterparty_commission=counterparty_total,
        total_commission_difference=internal_total - counterparty_total,
        absolute_commission_difference=_cents(sum((r.commission_difference for r in records), ZERO)),
        absolute_base_value_difference=_cents(sum((r.base_value_difference for r in records), ZERO)),
        recoverable_amount=_cents(recoverable),
        matched_percent=percent(contracts - strategies.get(MatchStrategy.NONE.value, 0), contracts),
        by_match_strategy=strategies,
        by_counterparty=breakdown(records, lambda record: record.counterparty_name),
        by_agent=breakdown(records, lambda record: record.agent_name),
        by_product=breakdown(records, lambda record: record.product_name),
    )


def build_recommendations(totals: Totals) -> tuple[str, ...]:
    if totals.count == 0:
        return ()

    lines: List[str] = []
    rate = totals.reconciled_percent
    if rate < 50:
        lines.append(
            f"CRITICAL: reconciliation rate is very low ({rate:.1f}%). "
            "Review contract booking and input data quality."
        )
    elif rate < 70:
        lines.append(f"ATTENTION: reconciliation rate below target ({rate:.1f}%).")
    elif rate >= 95:
        lines.append(f"EXCELLENT: reconciliation rate of {rate:.1f}%.")

    unpaid = totals.not_found_in_counterparty_count
    if unpaid:
        lines.append(
            f"{unpaid} contract(s) missing from the counterparty statement "
            f"({percent(unpaid, totals.count):.1f}%). Claim the pending commissions."
        )
    if totals.recoverable_amount > 0:
        lines.append(f"Recoverable underpaid commission: {totals.recoverable_amount:.2f}.")

    difference = totals.total_commission_difference
    if difference > 0:
        lines.append(f"Net difference of {difference:.2f} in favour of the company.")
    elif difference < 0:
        lines.append(
            f"Counterparties paid {-difference:.2f} more than booked internally. "
            "Check for double payments or unbooked contracts."
        )

    weak = totals.by_match_strategy.get(MatchStrategy.AGENT_TAX_ID_AND_VALUE.value, 0)
    if weak:
        lines.append(f"{weak} contract(s) matched only by agent tax id and base value. Confirm them manually.")
    if totals.duplicate_count:
        lines.append(f"{totals.duplicate_count} contract(s) share a counterparty payment with another contract.")
    if totals.not_found_internally_count:
        lines.append(
            f"{totals.not_found_internally_count} statement line(s) have no internal contract. "
            "Book or dispute them."
        )

    flagged = [
        f"{name} ({group.difference:.2f})"
        for name, group in totals.by_counterparty.items()
        if group.difference.copy_abs() > LARGE_GAP
    ]
    if flagged:
        lines.append(f"Counterparties with the largest gaps: {', '.join(flagged)}.")
    return tuple(lines)
