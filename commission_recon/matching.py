"""Record matching between internal contracts and the counterparty statement."""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Sequence, Tuple

from .config import ReconciliationConfig, resolve_config
from .models import CounterpartyPayment, InternalContract, MatchResult, MatchStrategy

Predicate = Callable[[InternalContract, CounterpartyPayment, ReconciliationConfig], bool]


def _value_gap(internal: InternalContract, candidate: CounterpartyPayment) -> Decimal:
    return (internal.base_value - candidate.base_value).copy_abs()


def same_contract(internal: InternalContract, candidate: CounterpartyPayment, config: ReconciliationConfig) -> bool:
    return bool(internal.contract_id) and internal.contract_id == candidate.contract_id


def same_client_tax_id_and_value(
    internal: InternalContract, candidate: CounterpartyPayment, config: ReconciliationConfig
) -> bool:
    return (
        bool(internal.client_tax_id)
        and internal.client_tax_id == candidate.client_tax_id
        and _value_gap(internal, candidate) < config.value_match_tolerance
    )


def similar_client_name_and_value(
    internal: InternalContract, candidate: CounterpartyPayment, config: ReconciliationConfig
) -> bool:
    mine, theirs = internal.client_name, candidate.client_name
    if not mine or not theirs:
        return False
    return (mine in theirs or theirs in mine) and _value_gap(internal, candidate) < config.value_match_tolerance


def same_agent_tax_id_and_value(
    internal: InternalContract, candidate: CounterpartyPayment, config: ReconciliationConfig
) -> bool:
    return (
        bool(internal.agent_tax_id)
        and internal.agent_tax_id == candidate.agent_tax_id
        and _value_gap(internal, candidate) < config.agent_match_tolerance
    )


class CounterpartyIndex:
    """Read-only view of the statement, pre-indexed by the exact-match keys."""

    def __init__(self, payments: Iterable[CounterpartyPayment]) -> None:
        self.payments: Tuple[CounterpartyPayment, ...] = tuple(payments)
        self._by_contract: Dict[str, List[int]] = defaultdict(list)
        self._by_client_tax_id: Dict[str, List[int]] = defaultdict(list)
        self._by_agent_tax_id: Dict[str, List[int]] = defaultdict(list)
        for position, payment in enumerate(self.payments):
            if payment.contract_id:
                self._by_contract[payment.contract_id].append(position)
            if payment.client_tax_id:
                self._by_client_tax_id[payment.client_tax_id].append(position)
            if payment.agent_tax_id:
                self._by_agent_tax_id[payment.agent_tax_id].append(position)

    def __len__(self) -> int:
        return len(self.payments)

    def candidates(self, strategy: MatchStrategy, internal: InternalContract) -> Sequence[int]:
        if strategy is MatchStrategy.EXACT_CONTRACT:
            return self._by_contract.get(internal.contract_id, ())
        if strategy is MatchStrategy.CLIENT_TAX_ID_AND_VALUE:
            return self._by_client_tax_id.get(internal.client_tax_id, ())
        if strategy is MatchStrategy.AGENT_TAX_ID_AND_VALUE:
            return self._by_agent_tax_id.get(internal.agent_tax_id, ())
        return range(len(self.payments))


# Priority order matters: the first strategy with a satisfying candidate wins.
STRATEGIES: Tuple[Tuple[MatchStrategy, Predicate], ...] = (
    (MatchStrategy.EXACT_CONTRACT, same_contract),
    (MatchStrategy.CLIENT_TAX_ID_AND_VALUE, same_client_tax_id_and_value),
    (MatchStrategy.CLIENT_NAME_AND_VALUE, similar_client_name_and_value),
    (MatchStrategy.AGENT_TAX_ID_AND_VALUE, same_agent_tax_id_and_value),
)


def _as_index(pool: CounterpartyIndex | Iterable[CounterpartyPayment]) -> CounterpartyIndex:
    return pool if isinstance(pool, CounterpartyIndex) else CounterpartyIndex(pool)


def match(
    internal: InternalContract,
    pool: CounterpartyIndex | Iterable[CounterpartyPayment],
    config: ReconciliationConfig | None = None,
) -> MatchResult:
    """Find the counterparty payment that most likely corresponds to ``internal``.

    Several candidates satisfying the same strategy are ranked by the smallest
    base value gap, then by statement order.
    """

    index = _as_index(pool)
    config = resolve_config(config)

    for strategy, predicate in STRATEGIES:
        hits = [
            position
            for position in index.candidates(strategy, internal)
            if predicate(internal, index.payments[position], config)
        ]
        if hits:
            best = min(hits, key=lambda position: (_value_gap(internal, index.payments[position]), position))
            return MatchResult(
                internal=internal,
                payment=index.payments[best],
                payment_index=best,
                strategy=strategy,
            )

    return MatchResult(internal=internal)


def match_all(
    internals: Iterable[InternalContract],
    pool: CounterpartyIndex | Iterable[CounterpartyPayment],
    config: ReconciliationConfig | None = None,
) -> List[MatchResult]:
    index = _as_index(pool)
    config = resolve_config(config)
    return [match(internal, index, config) for internal in internals]
