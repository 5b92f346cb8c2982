"""Price adjustment engine.

Pure functions computing the price a Marketplace listing should show. All
arithmetic is done on Decimal and quantized to cents with ROUND_HALF_UP, so
results never carry sub-cent residue.
"""

from decimal import ROUND_HALF_UP, Decimal

from marketplace_bridge.models.menu_models import (
    AutomaticPrice,
    ManualPrice,
    MarkupKind,
    MarkupPolicy,
)

CENT = Decimal("0.01")
MINOR_UNITS_PER_UNIT = 100


def round_currency(amount: Decimal | int | str) -> Decimal:
    """Round an amount to cent precision, half-up."""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def adjust_price(base_price: Decimal, policy: MarkupPolicy) -> Decimal:
    """Apply a markup policy to a base price.

    Args:
        base_price: POS price in currency units
        policy: Percent or fixed markup

    Returns:
        The marked-up price rounded to cents

    Example:
        >>> adjust_price(Decimal("10.00"), MarkupPolicy(kind="percent", value=Decimal("30")))
        Decimal('13.00')
    """
    base = Decimal(str(base_price))
    if policy.kind == MarkupKind.PERCENT:
        return round_currency(base * (1 + policy.value / 100))
    return round_currency(base + policy.value)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to integer minor units (cents)."""
    minor = (Decimal(str(amount)) * MINOR_UNITS_PER_UNIT).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return int(minor)


def from_minor_units(minor: int) -> Decimal:
    """Convert integer minor units to a currency amount with cent precision."""
    return (Decimal(int(minor)) / MINOR_UNITS_PER_UNIT).quantize(CENT)


def resolve_effective_price(
    base_price: Decimal,
    price_mode: AutomaticPrice | ManualPrice,
    global_policy: MarkupPolicy,
) -> Decimal:
    """Resolve the price to publish for one item.

    Precedence: a manual override is used verbatim, then the item's own
    markup policy, then the caller-supplied global policy.
    """
    if isinstance(price_mode, ManualPrice):
        return price_mode.value
    if price_mode.policy is not None:
        return adjust_price(base_price, price_mode.policy)
    return adjust_price(base_price, global_policy)
