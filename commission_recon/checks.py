"""Deterministic checks that classify every contract and orphaned payment."""
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from .anomalies import Anomalies
from .config import ReconciliationConfig, resolve_config
from .models import (
    CounterpartyPayment,
    InternalContract,
    MatchResult,
    RateAssessment,
    ReconciledContract,
    ReconStatus,
    Severity,
)
from .rates import assess_rate

NOT_IN_COUNTERPARTY = "payment not found in counterparty statement"
NOT_INTERNAL = "contract not found in internal records"
FLAG_PREFIXES = ("WARNING:", "ERROR:")


def reason(category: str, message: str) -> str:
    return f"[{category}] {message}"


def commission_severity(difference: Decimal) -> Severity:
    if difference > 100:
        return Severity.CRITICAL
    if difference > 50:
        return Severity.HIGH
    if difference > 10:
        return Severity.MEDIUM
    return Severity.LOW


def payment_date_reason(
    internal: InternalContract, payment: CounterpartyPayment, config: ReconciliationConfig
) -> str | None:
    """Describe a payment made outside the window around the expected date.

    The expected date is the internal payment date, or the sale date when the
    contract has none. Missing dates on either side skip the check.
    """

    expected = internal.payment_date or internal.sale_date
    if expected is None or payment.payment_date is None:
        return None
    days = (payment.payment_date - expected).days
    if abs(days) <= config.payment_window_days:
        return None
    direction = "late" if days > 0 else "early"
    return reason(
        "PAYMENT_DATE",
        f"payment {direction} by {abs(days)} days (window {config.payment_window_days} days)",
    )


def classify_match(
    result: MatchResult,
    assessment: RateAssessment,
    *,
    anomalies: Anomalies,
    config: ReconciliationConfig | None = None,
) -> ReconciledContract:
    config = resolve_config(config)
    internal, payment = result.internal, result.payment

    if payment is None:
        return ReconciledContract(
            internal=internal,
            counterparty=None,
            status=ReconStatus.NOT_FOUND_IN_COUNTERPARTY,
            divergence_reasons=(reason("NOT_FOUND", NOT_IN_COUNTERPARTY),),
            commission_difference=internal.commission_value.copy_abs(),
            base_value_difference=internal.base_value.copy_abs(),
            match_strategy=result.strategy,
            rate_assessment=assessment,
            severity=Severity.CRITICAL,
        )

    commission_gap = (internal.commission_value - payment.commission_value).copy_abs()
    base_gap = (internal.base_value - payment.base_value).copy_abs()

    reasons: List[str] = []
    amounts_diverge = False
    if commission_gap > config.divergence_tolerance:
        amounts_diverge = True
        reasons.append(reason("COMMISSION", f"commission divergence: {commission_gap:.2f}"))
    if base_gap > config.divergence_tolerance:
        amounts_diverge = True
        reasons.append(reason("BASE_VALUE", f"base value divergence: {base_gap:.2f}"))
    if assessment.flagged:
        reasons.extend(reason("RATE", note) for note in assessment.notes if note.startswith(FLAG_PREFIXES))
    if internal.client_name and payment.client_name and internal.client_name != payment.client_name:
        reasons.append(
            reason("CLIENT", f"client name differs: {internal.client_name!r} vs {payment.client_name!r}")
        )
    timing = payment_date_reason(internal, payment, config)
    if timing:
        reasons.append(timing)

    if anomalies.is_duplicate(result):
        hits = anomalies.times_matched(result)
        reasons.insert(
            0, reason("DUPLICATE", f"counterparty payment matched by {hits} internal contracts")
        )
        status, severity = ReconStatus.DUPLICATE, Severity.HIGH
    elif amounts_diverge or assessment.flagged:
        status = ReconStatus.DIVERGENT
        if commission_gap > config.divergence_tolerance:
            severity = commission_severity(commission_gap)
        else:
            severity = Severity.MEDIUM
    else:
        status, severity = ReconStatus.OK, Severity.NONE

    return ReconciledContract(
        internal=internal,
        counterparty=payment,
        status=status,
        divergence_reasons=tuple(reasons),
        commission_difference=commission_gap,
        base_value_difference=base_gap,
        match_strategy=result.strategy,
        rate_assessment=assessment,
        severity=severity,
    )


def classify_orphan(payment: CounterpartyPayment) -> ReconciledContract:
    return ReconciledContract(
        internal=None,
        counterparty=payment,
        status=ReconStatus.NOT_FOUND_INTERNALLY,
        divergence_reasons=(reason("NOT_FOUND", NOT_INTERNAL),),
        commission_difference=payment.commission_value.copy_abs(),
        base_value_difference=payment.base_value.copy_abs(),
        severity=Severity.CRITICAL,
    )


def evaluate_matches(
    results: Iterable[MatchResult],
    anomalies: Anomalies,
    *,
    config: ReconciliationConfig | None = None,
) -> list[ReconciledContract]:
    """Classify every match result, then append one record per orphaned payment."""

    config = resolve_config(config)
    records: List[ReconciledContract] = []
    for result in results:
        assessment = assess_rate(result.internal, result.payment, config)
        records.append(classify_match(result, assessment, anomalies=anomalies, config=config))
    records.extend(classify_orphan(payment) for payment in anomalies.orphans)
    return records
