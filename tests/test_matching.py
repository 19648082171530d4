from decimal import Decimal

from commission_recon.config import ReconciliationConfig
from commission_recon.matching import CounterpartyIndex, match, match_all
from commission_recon.models import MatchStrategy


def test_match_prefers_exact_contract_over_client_tax_id(make_internal, make_payment):
    internal = make_internal(contract_id="C1")
    by_tax_id = make_payment(contract_id="OTHER")
    by_contract = make_payment(contract_id="c1", client_tax_id="", base_value="9000")

    result = match(internal, [by_tax_id, by_contract])

    assert result.strategy is MatchStrategy.EXACT_CONTRACT
    assert result.payment is by_contract
    assert result.payment_index == 1


def test_match_by_client_tax_id_requires_value_within_tolerance(make_internal, make_payment):
    internal = make_internal(contract_id="")
    near = make_payment(contract_id="X", base_value="10000.99")
    far = make_payment(contract_id="Y", base_value="10001.00")

    assert match(internal, [near]).strategy is MatchStrategy.CLIENT_TAX_ID_AND_VALUE
    assert match(internal, [far]).strategy is not MatchStrategy.CLIENT_TAX_ID_AND_VALUE


def test_match_by_client_name_accepts_containment(make_internal, make_payment):
    internal = make_internal(contract_id="", client_tax_id="", client_name="Maria Silva")
    payment = make_payment(contract_id="B-9", client_tax_id="", client_name="maria silva santos", base_value="10000.50")

    result = match(internal, [payment])

    assert result.strategy is MatchStrategy.CLIENT_NAME_AND_VALUE
    assert result.payment is payment


def test_match_by_client_name_ignores_blank_names(make_internal, make_payment):
    internal = make_internal(contract_id="", client_tax_id="", agent_tax_id="", client_name="")
    payment = make_payment(contract_id="B-9", client_tax_id="", agent_tax_id="")

    assert match(internal, [payment]).strategy is MatchStrategy.NONE


def test_match_by_agent_tax_id_uses_wider_tolerance(make_internal, make_payment):
    internal = make_internal(contract_id="", client_tax_id="", client_name="Ana")
    payment = make_payment(contract_id="Z", client_tax_id="", client_name="Bruno", base_value="10004.99")
    too_far = make_payment(contract_id="Z", client_tax_id="", client_name="Bruno", base_value="10005.00")

    assert match(internal, [payment]).strategy is MatchStrategy.AGENT_TAX_ID_AND_VALUE
    assert match(internal, [too_far]).strategy is MatchStrategy.NONE


def test_match_returns_none_when_nothing_fits(make_internal, make_payment):
    internal = make_internal(contract_id="C2", client_tax_id="", agent_tax_id="", client_name="Ana")
    payment = make_payment(contract_id="C3", client_tax_id="", agent_tax_id="", client_name="Bruno")

    result = match(internal, [payment])

    assert result.strategy is MatchStrategy.NONE
    assert result.payment is None
    assert result.payment_index is None
    assert not result.matched


def test_match_blank_contract_ids_never_match_each_other(make_internal, make_payment):
    internal = make_internal(contract_id="", client_tax_id="", agent_tax_id="", client_name="Ana")
    payment = make_payment(contract_id="", client_tax_id="", agent_tax_id="", client_name="Bruno")

    assert match(internal, [payment]).strategy is MatchStrategy.NONE


def test_match_breaks_ties_by_smallest_value_gap(make_internal, make_payment):
    internal = make_internal(contract_id="", client_tax_id="", client_name="Maria")
    wider = make_payment(contract_id="A", client_tax_id="", client_name="Maria", base_value="10000.80")
    closer = make_payment(contract_id="B", client_tax_id="", client_name="Maria", base_value="9999.90")

    result = match(internal, [wider, closer])

    assert result.payment is closer
    assert match(internal, [closer, wider]).payment is closer


def test_match_respects_configured_tolerance(make_internal, make_payment):
    internal = make_internal(contract_id="")
    payment = make_payment(contract_id="X", base_value="10003.00")
    config = ReconciliationConfig(value_match_tolerance=Decimal("5"))

    assert match(internal, [payment], config).strategy is MatchStrategy.CLIENT_TAX_ID_AND_VALUE


def test_match_all_does_not_consume_the_pool(make_internal, make_payment):
    first = make_internal(contract_id="C1")
    second = make_internal(contract_id="C1-B", client_tax_id="")
    pool = CounterpartyIndex([make_payment(contract_id="C1")])

    results = match_all([first, second], pool)

    assert [r.payment_index for r in results] == [0, 0]
    assert results[1].strategy is MatchStrategy.CLIENT_NAME_AND_VALUE
    assert len(pool) == 1
