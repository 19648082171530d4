from commission_recon.anomalies import detect_anomalies
from commission_recon.matching import match_all


def test_detect_anomalies_flags_shared_payment_and_orphans(make_internal, make_payment):
    internals = [make_internal(contract_id="C1"), make_internal(contract_id="C1")]
    pool = [make_payment(contract_id="C1"), make_payment(contract_id="C3", client_tax_id="", agent_tax_id="")]

    matches = match_all(internals, pool)
    anomalies = detect_anomalies(matches, pool)

    assert anomalies.duplicate_indices == frozenset({0})
    assert anomalies.duplicates == (pool[0],)
    assert anomalies.orphan_indices == (1,)
    assert anomalies.orphans == (pool[1],)
    assert all(anomalies.is_duplicate(result) for result in matches)
    assert anomalies.times_matched(matches[0]) == 2


def test_detect_anomalies_keeps_identical_statement_lines_apart(make_internal, make_payment):
    pool = [make_payment(contract_id="C1"), make_payment(contract_id="C1")]

    matches = match_all([make_internal(contract_id="C1")], pool)
    anomalies = detect_anomalies(matches, pool)

    assert anomalies.duplicate_indices == frozenset()
    assert anomalies.orphan_indices == (1,)


def test_detect_anomalies_on_empty_inputs():
    anomalies = detect_anomalies([], [])

    assert anomalies.duplicates == ()
    assert anomalies.orphans == ()
