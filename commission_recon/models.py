"""Data models used by the commission reconciliation workflow."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple

ZERO = Decimal("0.00")


class MatchStrategy(str, Enum):
    EXACT_CONTRACT = "EXACT_CONTRACT"
    CLIENT_TAX_ID_AND_VALUE = "CLIENT_TAX_ID_AND_VALUE"
    CLIENT_NAME_AND_VALUE = "CLIENT_NAME_AND_VALUE"
    AGENT_TAX_ID_AND_VALUE = "AGENT_TAX_ID_AND_VALUE"
    NONE = "NONE"


class ReconStatus(str, Enum):
    OK = "OK"
    DIVERGENT = "DIVERGENT"
    NOT_FOUND_IN_COUNTERPARTY = "NOT_FOUND_IN_COUNTERPARTY"
    NOT_FOUND_INTERNALLY = "NOT_FOUND_INTERNALLY"
    DUPLICATE = "DUPLICATE"


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class InternalContract:
    """A sale/commission record as booked by the company."""

    contract_id: str = ""
    client_name: str = ""
    client_tax_id: str = ""
    counterparty_name: str = ""
    agent_name: str = ""
    agent_tax_id: str = ""
    product_name: str = ""
    base_value: Decimal = ZERO
    commission_value: Decimal = ZERO
    sale_date: Optional[date] = None
    payment_date: Optional[date] = None


@dataclass(frozen=True, slots=True)
class CounterpartyPayment:
    """A line of the bank/supplier payment statement."""

    contract_id: str = ""
    client_name: str = ""
    client_tax_id: str = ""
    counterparty_name: str = ""
    agent_name: str = ""
    agent_tax_id: str = ""
    product_name: str = ""
    base_value: Decimal = ZERO
    commission_value: Decimal = ZERO
    payment_date: Optional[date] = None


@dataclass(frozen=True, slots=True)
class MatchResult:
    internal: InternalContract
    payment: Optional[CounterpartyPayment] = None
    payment_index: Optional[int] = None
    strategy: MatchStrategy = MatchStrategy.NONE

    @property
    def matched(self) -> bool:
        return self.payment is not None


@dataclass(frozen=True, slots=True)
class RateAssessment:
    internal_rate: Decimal
    counterparty_rate: Optional[Decimal] = None
    rate_out_of_band: bool = False
    rate_mismatch: bool = False
    value_paid_incorrect: bool = False
    internal_value_incorrect: bool = False
    expected_rate: Optional[Decimal] = None
    notes: Tuple[str, ...] = ()

    @property
    def flagged(self) -> bool:
        return (
            self.rate_out_of_band
            or self.rate_mismatch
            or self.value_paid_incorrect
            or self.internal_value_incorrect
        )


@dataclass(frozen=True, slots=True)
class DivergenceAnnotation:
    """Structured response produced by the LLM annotator."""

    explanation: str
    severity: str
    actions: Tuple[str, ...] = ()
    confidence: Optional[float] = None
    needs_escalation: bool = False
    source: str = "openai"
    raw_response: Dict[str, object] | None = None


def _serialise_side(record: InternalContract | CounterpartyPayment | None) -> dict[str, object] | None:
    if record is None:
        return None
    payload: dict[str, object] = {
        "contract_id": record.contract_id,
        "client_name": record.client_name,
        "client_tax_id": record.client_tax_id,
        "counterparty_name": record.counterparty_name,
        "agent_name": record.agent_name,
        "agent_tax_id": record.agent_tax_id,
        "product_name": record.product_name,
        "base_value": f"{record.base_value:.2f}",
        "commission_value": f"{record.commission_value:.2f}",
        "payment_date": record.payment_date.isoformat() if record.payment_date else None,
    }
    if isinstance(record, InternalContract):
        payload["sale_date"] = record.sale_date.isoformat() if record.sale_date else None
    return payload


@dataclass(frozen=True, slots=True)
class ReconciledContract:
    internal: Optional[InternalContract]
    counterparty: Optional[CounterpartyPayment]
    status: ReconStatus
    divergence_reasons: Tuple[str, ...] = ()
    commission_difference: Decimal = ZERO
    base_value_difference: Decimal = ZERO
    match_strategy: MatchStrategy = MatchStrategy.NONE
    rate_assessment: Optional[RateAssessment] = None
    severity: Severity = Severity.NONE
    annotation: Optional[DivergenceAnnotation] = None

    @property
    def contract_id(self) -> str:
        if self.internal and self.internal.contract_id:
            return self.internal.contract_id
        return self.counterparty.contract_id if self.counterparty else ""

    @property
    def client_name(self) -> str:
        return (self.internal or self.counterparty).client_name

    @property
    def counterparty_name(self) -> str:
        if self.internal and self.internal.counterparty_name:
            return self.internal.counterparty_name
        return self.counterparty.counterparty_name if self.counterparty else ""

    @property
    def agent_name(self) -> str:
        if self.internal and self.internal.agent_name:
            return self.internal.agent_name
        return self.counterparty.agent_name if self.counterparty else ""

    @property
    def product_name(self) -> str:
        if self.internal and self.internal.product_name:
            return self.internal.product_name
        return self.counterparty.product_name if self.counterparty else ""

    @property
    def internal_commission(self) -> Decimal:
        return self.internal.commission_value if self.internal else ZERO

    @property
    def counterparty_commission(self) -> Decimal:
        return self.counterparty.commission_value if self.counterparty else ZERO

    @property
    def internal_base_value(self) -> Decimal:
        return self.internal.base_value if self.internal else ZERO

    @property
    def counterparty_base_value(self) -> Decimal:
        return self.counterparty.base_value if self.counterparty else ZERO

    def as_dict(self) -> dict[str, str]:
        rates = self.rate_assessment
        return {
            "contract_id": self.contract_id,
            "client_name": self.client_name,
            "counterparty_name": self.counterparty_name,
            "agent_name": self.agent_name,
            "product_name": self.product_name,
            "status": self.status.value,
            "severity": self.severity.value,
            "match_strategy": self.match_strategy.value,
            "internal_base_value": f"{self.internal_base_value:.2f}",
            "counterparty_base_value": f"{self.counterparty_base_value:.2f}",
            "internal_commission": f"{self.internal_commission:.2f}",
            "counterparty_commission": f"{self.counterparty_commission:.2f}",
            "commission_difference": f"{self.commission_difference:.2f}",
            "base_value_difference": f"{self.base_value_difference:.2f}",
            "internal_rate": f"{rates.internal_rate:.2f}" if rates else "",
            "counterparty_rate": (
                f"{rates.counterparty_rate:.2f}" if rates and rates.counterparty_rate is not None else ""
            ),
            "divergence_reasons": "; ".join(self.divergence_reasons),
            "explanation": self.annotation.explanation if self.annotation else "",
        }

    def as_json(self) -> dict[str, object]:
        rates = self.rate_assessment
        return {
            "contract_id": self.contract_id,
            "status": self.status.value,
            "severity": self.severity.value,
            "match_strategy": self.match_strategy.value,
            "internal": _serialise_side(self.internal),
            "counterparty": _serialise_side(self.counterparty),
            "commission_difference": float(self.commission_difference),
            "base_value_difference": float(self.base_value_difference),
            "divergence_reasons": list(self.divergence_reasons),
            "rate_assessment": None
            if rates is None
            else {
                "internal_rate": float(rates.internal_rate),
                "counterparty_rate": float(rates.counterparty_rate)
                if rates.counterparty_rate is not None
                else None,
                "expected_rate": float(rates.expected_rate) if rates.expected_rate is not None else None,
                "rate_out_of_band": rates.rate_out_of_band,
                "rate_mismatch": rates.rate_mismatch,
                "value_paid_incorrect": rates.value_paid_incorrect,
                "internal_value_incorrect": rates.internal_value_incorrect,
                "notes": list(rates.notes),
            },
            "annotation": None
            if self.annotation is None
            else {
                "explanation": self.annotation.explanation,
                "severity": self.annotation.severity,
                "actions": list(self.annotation.actions),
                "confidence": self.annotation.confidence,
                "needs_escalation": self.annotation.needs_escalation,
                "source": self.annotation.source,
            },
        }


@dataclass(frozen=True, slots=True)
class Breakdown:
    count: int = 0
    reconciled_count: int = 0
    internal_commission: Decimal = ZERO
    counterparty_commission: Decimal = ZERO
    difference: Decimal = ZERO
    reconciled_percent: Decimal = ZERO


@dataclass(frozen=True, slots=True)
class Totals:
    count: int = 0
    reconciled_count: int = 0
    divergent_count: int = 0
    not_found_count: int = 0
    not_found_in_counterparty_count: int = 0
    not_found_internally_count: int = 0
    duplicate_count: int = 0
    reconciled_percent: Decimal = ZERO
    total_internal_commission: Decimal = ZERO
    total_counterparty_commission: Decimal = ZERO
    total_commission_difference: Decimal = ZERO
    absolute_commission_difference: Decimal = ZERO
    absolute_base_value_difference: Decimal = ZERO
    recoverable_amount: Decimal = ZERO
    matched_percent: Decimal = ZERO
    by_match_strategy: Dict[str, int] = field(default_factory=dict)
    by_counterparty: Dict[str, Breakdown] = field(default_factory=dict)
    by_agent: Dict[str, Breakdown] = field(default_factory=dict)
    by_product: Dict[str, Breakdown] = field(default_factory=dict)

    def as_json(self) -> dict[str, object]:
        def serialise_breakdowns(groups: Dict[str, Breakdown]) -> dict[str, object]:
            return {
                name: {
                    "count": group.count,
                    "reconciled_count": group.reconciled_count,
                    "internal_commission": float(group.internal_commission),
                    "counterparty_commission": float(group.counterparty_commission),
                    "difference": float(group.difference),
                    "reconciled_percent": float(group.reconciled_percent),
                }
                for name, group in groups.items()
            }

        return {
            "count": self.count,
            "reconciled_count": self.reconciled_count,
            "divergent_count": self.divergent_count,
            "not_found_count": self.not_found_count,
            "not_found_in_counterparty_count": self.not_found_in_counterparty_count,
            "not_found_internally_count": self.not_found_internally_count,
            "duplicate_count": self.duplicate_count,
            "reconciled_percent": float(self.reconciled_percent),
            "total_internal_commission": float(self.total_internal_commission),
            "total_counterparty_commission": float(self.total_counterparty_commission),
            "total_commission_difference": float(self.total_commission_difference),
            "absolute_commission_difference": float(self.absolute_commission_difference),
            "absolute_base_value_difference": float(self.absolute_base_value_difference),
            "recoverable_amount": float(self.recoverable_amount),
            "matched_percent": float(self.matched_percent),
            "by_match_strategy": dict(self.by_match_strategy),
            "by_counterparty": serialise_breakdowns(self.by_counterparty),
            "by_agent": serialise_breakdowns(self.by_agent),
            "by_product": serialise_breakdowns(self.by_product),
        }


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    records: Tuple[ReconciledContract, ...]
    totals: Totals
    recommendations: Tuple[str, ...] = ()

    def as_json(self) -> dict[str, object]:
        return {
            "totals": self.totals.as_json(),
            "recommendations": list(self.recommendations),
            "records": [record.as_json() for record in self.records],
        }
