"""Commission-rate plausibility and arithmetic checks."""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import List

from .config import ReconciliationConfig, resolve_config
from .models import CounterpartyPayment, InternalContract, RateAssessment

HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def effective_rate(base_value: Decimal, commission_value: Decimal) -> Decimal:
    """Commission as a percentage of the base value, 0 when there is no base."""

    if not base_value:
        return Decimal("0")
    return commission_value / base_value * HUNDRED


def expected_commission(base_value: Decimal, rate: Decimal) -> Decimal:
    return (base_value * rate / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def assess_rate(
    internal: InternalContract,
    matched: CounterpartyPayment | None,
    config: ReconciliationConfig | None = None,
) -> RateAssessment:
    config = resolve_config(config)
    notes: List[str] = []

    internal_rate = effective_rate(internal.base_value, internal.commission_value)
    counterparty_rate = (
        effective_rate(matched.base_value, matched.commission_value) if matched is not None else None
    )
    contracted = config.contracted_rate_for(internal.product_name)

    out_of_band = False
    if internal.base_value:
        low, high = config.band_for(internal.product_name)
        # A rate equal to the floor is out of band, a rate equal to the ceiling is not.
        if internal_rate <= low or internal_rate > high:
            out_of_band = True
            notes.append(
                f"WARNING: internal commission rate {internal_rate:.2f}% outside plausible band "
                f"{low:.2f}%-{high:.2f}%"
            )
    else:
        notes.append("INFO: internal base value is zero, commission rate not computable")

    mismatch = False
    if counterparty_rate is not None:
        gap = (internal_rate - counterparty_rate).copy_abs()
        if gap > config.rate_mismatch_tolerance:
            mismatch = True
            notes.append(
                f"ERROR: internal rate {internal_rate:.2f}% differs from counterparty rate "
                f"{counterparty_rate:.2f}% by {gap:.2f} pp"
            )

    paid_incorrect = False
    if matched is not None:
        rate = contracted if contracted is not None else counterparty_rate
        expected = expected_commission(matched.base_value, rate)
        if (expected - matched.commission_value).copy_abs() > config.rate_arithmetic_tolerance:
            paid_incorrect = True
            notes.append(
                f"ERROR: counterparty commission {matched.commission_value:.2f} does not match "
                f"expected {expected:.2f} at {rate:.2f}%"
            )

    # Without a contracted rate this compares the commission with a rate derived
    # from itself and can only trip on rounding.
    internal_incorrect = False
    rate = contracted if contracted is not None else internal_rate
    expected = expected_commission(internal.base_value, rate)
    if (expected - internal.commission_value).copy_abs() > config.rate_arithmetic_tolerance:
        internal_incorrect = True
        notes.append(
            f"ERROR: internal commission {internal.commission_value:.2f} does not match "
            f"expected {expected:.2f} at {rate:.2f}%"
        )

    if not (out_of_band or mismatch or paid_incorrect or internal_incorrect):
        notes.append(f"OK: commission rate {internal_rate:.2f}% consistent")

    return RateAssessment(
        internal_rate=internal_rate,
        counterparty_rate=counterparty_rate,
        rate_out_of_band=out_of_band,
        rate_mismatch=mismatch,
        value_paid_incorrect=paid_incorrect,
        internal_value_incorrect=internal_incorrect,
        expected_rate=contracted,
        notes=tuple(notes),
    )
