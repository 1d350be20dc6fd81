"""Integer arithmetic for the money side-channel and cashback.

Points are plain ints. Money is int cents. No float, no Decimal.
"""


def cents_to_display(cents: int) -> str:
    """Convert cents to display string: 1250 -> 'R$12.50', -1200 -> '-R$12.00'."""
    if cents < 0:
        abs_cents = -cents
        return f"-R${abs_cents // 100:,}.{abs_cents % 100:02d}"
    return f"R${cents // 100:,}.{cents % 100:02d}"


def calc_cashback(base_amount: int, cashback_bps: int) -> int:
    """Floor division cashback: the platform never over-credits.

    cashback = floor(base_amount * cashback_bps / 10000)
    """
    if base_amount <= 0 or cashback_bps <= 0:
        return 0
    return (base_amount * cashback_bps) // 10000


def money_cashback(money_paid_cents: int, cashback_bps: int) -> int:
    """Points earned on a money payment: whole currency units only."""
    return calc_cashback(money_paid_cents // 100, cashback_bps)
