"""
Money arithmetic in integer cents.

Amounts are stored as cents and rates as basis points (1 bps = 0.01 %).
All rounding is half-up through Decimal, never binary floats.
"""

from decimal import Decimal, ROUND_HALF_UP

BPS_SCALE = Decimal(10_000)
WHOLE_UNIT_CENTS = 100


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of cents to the nearest whole cent."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def apply_bps(amount_cents: int, rate_bps: int) -> int:
    """amount × rate, rounded half-up to the cent."""
    return round_half_up(Decimal(amount_cents) * Decimal(rate_bps) / BPS_SCALE)


def percent_to_bps(percent: float | Decimal | str) -> int:
    """Convert a percentage such as 2.5 into basis points (250)."""
    return round_half_up(Decimal(str(percent)) * 100)


def round_to_whole_unit(amount_cents: int) -> int:
    """Round cents half-up to a whole currency unit (multiple of 100 cents)."""
    units = (Decimal(amount_cents) / WHOLE_UNIT_CENTS).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(units) * WHOLE_UNIT_CENTS


def allocate_pro_rata(total_cents: int, weights: list[int]) -> list[int]:
    """
    Split total_cents across weights proportionally.

    Uses the largest-remainder method so the shares always sum to
    total_cents exactly. Ties go to the earlier weight.

    >>> allocate_pro_rata(100, [1, 1, 1])
    [34, 33, 33]
    """
    weight_sum = sum(weights)
    if not weights or weight_sum <= 0 or total_cents == 0:
        return [0] * len(weights)

    shares = []
    remainders = []
    for index, weight in enumerate(weights):
        share, remainder = divmod(total_cents * weight, weight_sum)
        shares.append(share)
        remainders.append((remainder, -index))

    leftover = total_cents - sum(shares)
    for _, neg_index in sorted(remainders, reverse=True)[:leftover]:
        shares[-neg_index] += 1
    return shares


def format_cents(amount_cents: int) -> str:
    """Render cents as a decimal string, e.g. 32050 -> '320.50'."""
    sign = "-" if amount_cents < 0 else ""
    whole, cents = divmod(abs(amount_cents), 100)
    return f"{sign}{whole}.{cents:02d}"
