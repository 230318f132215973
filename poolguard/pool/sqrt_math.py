"""Q64.96 price helpers shared by the simulated pool and the checkers.

Only what the harness needs: tick <-> sqrt price conversion, the
fee/rounding primitives and a single-range swap step.  The step mirrors
the well-known concentrated-liquidity swap step without tick crossing.
"""

from __future__ import annotations

Q96 = 1 << 96

MIN_TICK = -887272
MAX_TICK = 887272
MIN_SQRT_RATIO = 4295128739
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

# Widest range aligned to the 60-tick spacing.
FULL_RANGE_TICK_LOWER = -887220
FULL_RANGE_TICK_UPPER = 887220

FEE_DENOMINATOR = 1_000_000
BPS_DENOMINATOR = 10_000

# Q128 factors sqrt(1.0001) ** -(2 ** i), one per bit of |tick|.
_TICK_BIT_FACTORS = (
    0xFFFCB933BD6FAD37AA2D162D1A594001,
    0xFFF97272373D413259A46990580E213A,
    0xFFF2E50F5F656932EF12357CF3C7FDCC,
    0xFFE5CACA7E10E4E61C3624EAA0941CD0,
    0xFFCB9843D60F6159C9DB58835C926644,
    0xFF973B41FA98C081472E6896DFB254C0,
    0xFF2EA16466C96A3843EC78B326B52861,
    0xFE5DEE046A99A2A811C461F1969C3053,
    0xFCBE86C7900A88AEDCFFC83B479AA3A4,
    0xF987A7253AC413176F2B074CF7815E54,
    0xF3392B0822B70005940C7A398E4B70F3,
    0xE7159475A2C29B7443B29C7FA6E889D9,
    0xD097F3BDFD2022B8845AD8F792AA5825,
    0xA9F746462D870FDF8A65DC1F90E061E5,
    0x70D869A156D2A1B890BB3DF62BAF32F7,
    0x31BE135F97D08FD981231505542FCFA6,
    0x9AA508B5B7A84E1C677DE54F3E99BC9,
    0x5D6AF8DEDB81196699C329225EE604,
    0x2216E584F5FA1EA926041BEDFE98,
    0x48A170391F7DC42444E8FA2,
)

_MAX_UINT256 = (1 << 256) - 1


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    return -((-a * b) // denominator)


def fee_for(amount: int, fee_pips: int) -> int:
    """Fee charged on ``amount`` at ``fee_pips`` (hundredths of a bip), rounded up."""
    return mul_div_rounding_up(amount, fee_pips, FEE_DENOMINATOR)


def sqrt_ratio_at_tick(tick: int) -> int:
    """``sqrt(1.0001 ** tick) * 2**96``, with the usual fixed-point rounding.

    Integer-only, so the tick/price mapping is exact at every boundary.
    """
    if not MIN_TICK <= tick <= MAX_TICK:
        raise ValueError(f"tick {tick} outside [{MIN_TICK}, {MAX_TICK}]")
    abs_tick = abs(tick)
    ratio = 1 << 128
    for bit, factor in enumerate(_TICK_BIT_FACTORS):
        if abs_tick & (1 << bit):
            ratio = (ratio * factor) >> 128
    if tick > 0:
        ratio = _MAX_UINT256 // ratio
    # Q128.128 -> Q64.96, rounding up so the result is never below the true price.
    return (ratio >> 32) + (1 if ratio & 0xFFFFFFFF else 0)


def tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt ratio does not exceed ``sqrt_price_x96``."""
    if not MIN_SQRT_RATIO <= sqrt_price_x96 < MAX_SQRT_RATIO:
        raise ValueError(f"sqrt price {sqrt_price_x96} outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO)")
    lo, hi = MIN_TICK, MAX_TICK - 1
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if sqrt_ratio_at_tick(mid) <= sqrt_price_x96:
            lo = mid
        else:
            hi = mid - 1
    return lo


def spot_price_x192(sqrt_price_x96: int) -> int:
    return sqrt_price_x96 * sqrt_price_x96


def quote_at_spot(sqrt_price_x96: int, amount_in: int, zero_for_one: bool) -> int:
    """Output ``amount_in`` would buy at the spot price, ignoring fee and impact."""
    price_x192 = spot_price_x192(sqrt_price_x96)
    if zero_for_one:
        return amount_in * price_x192 >> 192
    return (amount_in << 192) // price_x192


def amount0_delta(sqrt_a: int, sqrt_b: int, liquidity: int, round_up: bool) -> int:
    lo, hi = sorted((sqrt_a, sqrt_b))
    numerator = liquidity * Q96 * (hi - lo)
    denominator = hi * lo
    if round_up:
        return -(-numerator // denominator)
    return numerator // denominator


def amount1_delta(sqrt_a: int, sqrt_b: int, liquidity: int, round_up: bool) -> int:
    lo, hi = sorted((sqrt_a, sqrt_b))
    if round_up:
        return mul_div_rounding_up(liquidity, hi - lo, Q96)
    return liquidity * (hi - lo) // Q96


def next_sqrt_price_from_input(sqrt_price: int, liquidity: int, amount_in: int, zero_for_one: bool) -> int:
    if zero_for_one:
        numerator = liquidity * Q96
        return mul_div_rounding_up(numerator, sqrt_price, numerator + amount_in * sqrt_price)
    return sqrt_price + (amount_in * Q96) // liquidity


def next_sqrt_price_from_output(sqrt_price: int, liquidity: int, amount_out: int, zero_for_one: bool) -> int:
    if zero_for_one:
        quotient = mul_div_rounding_up(amount_out, Q96, liquidity)
        if quotient >= sqrt_price:
            raise ValueError("output exceeds available token1 liquidity")
        return sqrt_price - quotient
    numerator = liquidity * Q96
    denominator = numerator - amount_out * sqrt_price
    if denominator <= 0:
        raise ValueError("output exceeds available token0 liquidity")
    return mul_div_rounding_up(numerator, sqrt_price, denominator)


def compute_swap_step(
    sqrt_current: int,
    sqrt_target: int,
    liquidity: int,
    amount_remaining: int,
    fee_pips: int,
) -> tuple[int, int, int, int]:
    """Move from ``sqrt_current`` toward ``sqrt_target``.

    Positive ``amount_remaining`` is exact input, negative is exact output.

    Returns:
        (sqrt_next, amount_in, amount_out, fee_amount)
    """
    zero_for_one = sqrt_current >= sqrt_target
    exact_in = amount_remaining >= 0
    amount_in = 0
    amount_out = 0

    if exact_in:
        remaining_less_fee = amount_remaining * (FEE_DENOMINATOR - fee_pips) // FEE_DENOMINATOR
        if zero_for_one:
            amount_in = amount0_delta(sqrt_target, sqrt_current, liquidity, True)
        else:
            amount_in = amount1_delta(sqrt_current, sqrt_target, liquidity, True)
        if remaining_less_fee >= amount_in:
            sqrt_next = sqrt_target
        else:
            sqrt_next = next_sqrt_price_from_input(sqrt_current, liquidity, remaining_less_fee, zero_for_one)
    else:
        if zero_for_one:
            amount_out = amount1_delta(sqrt_target, sqrt_current, liquidity, False)
        else:
            amount_out = amount0_delta(sqrt_current, sqrt_target, liquidity, False)
        if -amount_remaining >= amount_out:
            sqrt_next = sqrt_target
        else:
            sqrt_next = next_sqrt_price_from_output(sqrt_current, liquidity, -amount_remaining, zero_for_one)

    reached_target = sqrt_next == sqrt_target

    if zero_for_one:
        if not (reached_target and exact_in):
            amount_in = amount0_delta(sqrt_next, sqrt_current, liquidity, True)
        if not (reached_target and not exact_in):
            amount_out = amount1_delta(sqrt_next, sqrt_current, liquidity, False)
    else:
        if not (reached_target and exact_in):
            amount_in = amount1_delta(sqrt_current, sqrt_next, liquidity, True)
        if not (reached_target and not exact_in):
            amount_out = amount0_delta(sqrt_current, sqrt_next, liquidity, False)

    if not exact_in and amount_out > -amount_remaining:
        amount_out = -amount_remaining

    if exact_in and not reached_target:
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = mul_div_rounding_up(amount_in, fee_pips, FEE_DENOMINATOR - fee_pips)

    return sqrt_next, amount_in, amount_out, fee_amount


def quote_exact_input(
    sqrt_price_x96: int,
    liquidity: int,
    amount_in: int,
    zero_for_one: bool,
    fee_pips: int,
) -> int:
    """Output of an unbounded exact-input swap against the current range."""
    target = MIN_SQRT_RATIO + 1 if zero_for_one else MAX_SQRT_RATIO - 1
    _, _, amount_out, _ = compute_swap_step(sqrt_price_x96, target, liquidity, amount_in, fee_pips)
    return amount_out
