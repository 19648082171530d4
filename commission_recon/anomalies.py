"""Duplicate and orphan detection over a complete set of match results."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Sequence, Tuple

from .models import CounterpartyPayment, MatchResult


@dataclass(frozen=True, slots=True)
class Anomalies:
    duplicate_indices: FrozenSet[int] = frozenset()
    orphan_indices: Tuple[int, ...] = ()
    duplicates: Tuple[CounterpartyPayment, ...] = ()
    orphans: Tuple[CounterpartyPayment, ...] = ()
    match_counts: dict[int, int] = field(default_factory=dict)

    def is_duplicate(self, result: MatchResult) -> bool:
        return result.payment_index is not None and result.payment_index in self.duplicate_indices

    def times_matched(self, result: MatchResult) -> int:
        if result.payment_index is None:
            return 0
        return self.match_counts.get(result.payment_index, 0)


def detect_anomalies(matches: Iterable[MatchResult], pool: Sequence[CounterpartyPayment]) -> Anomalies:
    """Flag payments selected by several contracts and payments nobody selected.

    Payments are identified by their position in ``pool`` so that two identical
    statement lines are still counted separately.
    """

    counts = Counter(result.payment_index for result in matches if result.payment_index is not None)
    duplicate_indices = frozenset(position for position, hits in counts.items() if hits > 1)
    orphan_indices = tuple(position for position in range(len(pool)) if position not in counts)
    return Anomalies(
        duplicate_indices=duplicate_indices,
        orphan_indices=orphan_indices,
        duplicates=tuple(pool[position] for position in sorted(duplicate_indices)),
        orphans=tuple(pool[position] for position in orphan_indices),
        match_counts=dict(counts),
    )
