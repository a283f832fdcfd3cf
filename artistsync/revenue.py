"""
revenue.py — Listener-Count Revenue Estimate
==============================================
A deliberately simple global payout model: every listener counts as one
stream paid at a flat rate.  It ignores country and platform mix and is
shown to users as an approximation only.

    usd = round(listeners × PAYOUT_PER_STREAM, 6)
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

PAYOUT_PER_STREAM = Decimal("0.0035")

_SIX_PLACES = Decimal("0.000001")


def estimate(listeners: int | float | Decimal, payout_per_stream: Decimal = PAYOUT_PER_STREAM) -> Decimal:
    """
    Estimated USD for ``listeners`` streams.

    Total over non-negative input; negatives clamp to zero.  The result is
    normalised, so ``estimate(1000)`` is ``Decimal("3.5")`` rather than
    ``Decimal("3.500000")``, and never carries a positive exponent
    (``estimate(1_000_000)`` is ``Decimal("3500")``).
    """
    count = Decimal(str(listeners))
    if count <= 0:
        return Decimal("0")
    usd = (count * payout_per_stream).quantize(_SIX_PLACES, rounding=ROUND_HALF_UP).normalize()
    # normalize() turns 3500 into 3.5E+3; keep whole dollars in plain notation.
    if usd.as_tuple().exponent > 0:
        usd = usd.quantize(Decimal(1))
    return usd
