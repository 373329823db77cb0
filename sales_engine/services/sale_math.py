from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Protocol

from sales_engine.core.money import ZERO_MONEY, to_money


class PricedLine(Protocol):
    quantity: int
    base_price: Decimal
    donation: Decimal


@dataclass(frozen=True)
class SaleTotals:
    total_base: Decimal
    total_donation: Decimal
    grand_total: Decimal


def subtotal(quantity: int, base_price: Decimal | int | str, donation: Decimal | int | str = ZERO_MONEY) -> Decimal:
    """quantity * base_price + donation, in exact money arithmetic.

    The donation is a per-line amount, not a per-unit one.
    """
    return to_money(to_money(base_price) * int(quantity) + to_money(donation))


def aggregate(lines: Iterable[PricedLine]) -> SaleTotals:
    total_base = ZERO_MONEY
    total_donation = ZERO_MONEY
    for line in lines:
        total_base += to_money(line.base_price) * int(line.quantity)
        total_donation += to_money(line.donation)
    total_base = to_money(total_base)
    total_donation = to_money(total_donation)
    return SaleTotals(
        total_base=total_base,
        total_donation=total_donation,
        grand_total=to_money(total_base + total_donation),
    )
