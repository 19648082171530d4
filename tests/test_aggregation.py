from decimal import Decimal

from commission_recon.aggregation import aggregate, breakdown, build_recommendations, percent
from commission_recon.checks import classify_orphan
from commission_recon.engine import reconcile
from commission_recon.models import ReconciledContract, ReconStatus, Totals


def _record(make_internal, make_payment, status, *, internal_commission="350", counterparty_commission="350", **fields):
    internal = make_internal(commission_value=internal_commission, **fields)
    payment = make_payment(commission_value=counterparty_commission, **fields)
    gap = (internal.commission_value - payment.commission_value).copy_abs()
    return ReconciledContract(internal=internal, counterparty=payment, status=status, commission_difference=gap)


def test_aggregate_of_nothing_is_zero():
    totals = aggregate([])

    assert totals.count == 0
    assert totals.reconciled_percent == 0
    assert totals.by_counterparty == {}
    assert build_recommendations(totals) == ()


def test_aggregate_counts_and_sums(make_internal, make_payment):
    records = [
        _record(make_internal, make_payment, ReconStatus.OK),
        _record(make_internal, make_payment, ReconStatus.DIVERGENT, counterparty_commission="300"),
        classify_orphan(make_payment(contract_id="C9", commission_value="100", counterparty_name="Banco Beta")),
    ]

    totals = aggregate(records)

    assert totals.count == 3
    assert totals.reconciled_count == 1
    assert totals.divergent_count == 1
    assert totals.not_found_count == 1
    assert totals.not_found_internally_count == 1
    assert totals.reconciled_percent == Decimal("33.33")
    assert totals.total_internal_commission == Decimal("700.00")
    assert totals.total_counterparty_commission == Decimal("750.00")
    assert totals.total_commission_difference == Decimal("-50.00")
    assert totals.absolute_commission_difference == Decimal("150.00")
    assert totals.recoverable_amount == Decimal("50.00")


def test_aggregate_counts_every_duplicate(make_internal, make_payment):
    records = [
        _record(make_internal, make_payment, ReconStatus.DUPLICATE),
        _record(make_internal, make_payment, ReconStatus.DUPLICATE),
    ]

    assert aggregate(records).duplicate_count == 2


def test_breakdown_groups_by_key(make_internal, make_payment):
    records = [
        _record(make_internal, make_payment, ReconStatus.OK, counterparty_name="Banco Alfa"),
        _record(make_internal, make_payment, ReconStatus.DIVERGENT, counterparty_name="Banco Beta",
                counterparty_commission="300"),
        _record(make_internal, make_payment, ReconStatus.OK, counterparty_name=""),
    ]

    groups = breakdown(records, lambda record: record.counterparty_name)

    assert list(groups) == ["BANCO ALFA", "BANCO BETA", "UNSPECIFIED"]
    assert groups["BANCO BETA"].difference == Decimal("50.00")
    assert groups["BANCO BETA"].reconciled_percent == 0
    assert groups["BANCO ALFA"].reconciled_percent == Decimal("100.00")


def test_percent_stays_within_bounds():
    assert percent(0, 0) == 0
    assert percent(3, 3) == Decimal("100.00")
    assert percent(1, 3) == Decimal("33.33")


def test_recommendations_flag_underpayment_and_orphans():
    totals = Totals(
        count=4,
        reconciled_count=1,
        not_found_in_counterparty_count=1,
        not_found_internally_count=1,
        reconciled_percent=Decimal("25.00"),
        total_commission_difference=Decimal("120.00"),
        recoverable_amount=Decimal("120.00"),
    )

    lines = build_recommendations(totals)

    assert lines[0].startswith("CRITICAL:")
    assert any("missing from the counterparty statement" in line for line in lines)
    assert any("Recoverable underpaid commission: 120.00" in line for line in lines)
    assert any("in favour of the company" in line for line in lines)
    assert any("have no internal contract" in line for line in lines)


def test_aggregate_counts_contracts_per_match_strategy():
    internals = [
        {"contract_id": "C1", "base_value": "10000", "commission_value": "350"},
        {"contract_id": "", "agent_tax_id": "111.444.777-35", "base_value": "10000", "commission_value": "350"},
        {"contract_id": "C2", "base_value": "1000", "commission_value": "30"},
    ]
    payments = [
        {"contract_id": "C1", "base_value": "10000", "commission_value": "350"},
        {"contract_id": "X9", "agent_tax_id": "11144477735", "base_value": "10003", "commission_value": "350"},
    ]

    report = reconcile(internals, payments)
    totals = report.totals

    assert totals.by_match_strategy == {
        "EXACT_CONTRACT": 1,
        "AGENT_TAX_ID_AND_VALUE": 1,
        "NONE": 1,
    }
    assert totals.matched_percent == Decimal("66.67")
    assert totals.as_json()["by_match_strategy"]["AGENT_TAX_ID_AND_VALUE"] == 1
    assert any("matched only by agent tax id" in line for line in report.recommendations)


def test_strategy_counts_ignore_orphans(make_payment):
    assert aggregate([classify_orphan(make_payment(contract_id="C9"))]).by_match_strategy == {}
