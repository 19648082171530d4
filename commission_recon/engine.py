"""Single entry point of the in-memory reconciliation engine."""
from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .aggregation import aggregate, build_recommendations
from .anomalies import detect_anomalies
from .checks import evaluate_matches
from .config import ReconciliationConfig, resolve_config
from .matching import CounterpartyIndex, match_all
from .models import CounterpartyPayment, InternalContract, ReconciliationReport
from .normalization import normalize_internals, normalize_payments

LOGGER = logging.getLogger(__name__)


def reconcile(
    internal_contracts: Iterable[Mapping[str, Any] | InternalContract],
    counterparty_payments: Iterable[Mapping[str, Any] | CounterpartyPayment],
    config: ReconciliationConfig | Mapping[str, Any] | None = None,
) -> ReconciliationReport:
    """Reconcile internal contracts against a counterparty statement.

    Records come back in input order, internal contracts first, followed by
    one ``NOT_FOUND_INTERNALLY`` record per orphaned statement line. The run
    performs no I/O, so identical inputs always give an identical report.
    """

    config = resolve_config(config)

    internals = normalize_internals(internal_contracts)
    index = CounterpartyIndex(normalize_payments(counterparty_payments))

    matches = match_all(internals, index, config)
    anomalies = detect_anomalies(matches, index.payments)
    records = evaluate_matches(matches, anomalies, config=config)

    totals = aggregate(records)
    report = ReconciliationReport(
        records=tuple(records),
        totals=totals,
        recommendations=build_recommendations(totals),
    )
    LOGGER.info(
        "Reconciled %d internal contracts against %d payments: %d ok, %d divergent, "
        "%d not found, %d duplicate",
        len(internals),
        len(index),
        totals.reconciled_count,
        totals.divergent_count,
        totals.not_found_count,
        totals.duplicate_count,
    )
    return report
