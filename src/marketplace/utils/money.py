"""
Decimal money helpers and batch tax apportionment.

All arithmetic stays in Decimal. Amounts are rounded to cents (half-up)
only where they are stored or rendered.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Tuple

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Parse an int, float, str or Decimal into a Decimal without float drift"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        # str() first so 0.1 becomes Decimal("0.1"), not its binary expansion
        return Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a monetary amount: {value!r}") from e


def quantize_money(value: Any) -> Decimal:
    """Round to cents, half-up"""
    return to_money(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_float(value: Any) -> float:
    """Presentation boundary: cents-rounded JSON number"""
    return float(quantize_money(value))


def compute_batch_tax(subtotal: Any, tax_rate: Any) -> Decimal:
    """taxAmount = round(subtotal * taxRate, 2)"""
    return quantize_money(to_money(subtotal) * to_money(tax_rate))


@dataclass(frozen=True)
class LineAmounts:
    """One cart line after apportionment"""
    subtotal: Decimal
    tax: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax


@dataclass(frozen=True)
class Apportionment:
    lines: List[LineAmounts]
    subtotal: Decimal
    tax: Decimal

    @property
    def total(self) -> Decimal:
        return self.subtotal + self.tax


def apportion(
    items: Iterable[Tuple[Any, int]],
    tax_rate: Any,
    batch_tax: Optional[Any] = None,
) -> Apportionment:
    """
    Split a batch tax across (unit_price, quantity) lines by subtotal share.

    When batch_tax is given (the caller's pre-computed total) it is trusted
    and only apportioned; otherwise it is round(subtotal * tax_rate, 2).

    Each share is (line_subtotal / batch_subtotal) * batch_tax, truncated to
    cents. The cents lost to truncation go one at a time to the lines with
    the largest remainders (earlier lines first on ties), so the stored
    shares always add up to batch_tax and none is negative.
    A zero rate or a zero batch subtotal gives every line zero tax.
    """
    subtotals = [quantize_money(to_money(price) * quantity) for price, quantity in items]
    batch_subtotal = sum(subtotals, ZERO)
    rate = to_money(tax_rate)

    if not subtotals:
        return Apportionment(lines=[], subtotal=ZERO, tax=ZERO)

    if rate <= 0 or batch_subtotal == 0:
        lines = [LineAmounts(subtotal=s, tax=ZERO) for s in subtotals]
        return Apportionment(lines=lines, subtotal=batch_subtotal, tax=ZERO)

    if batch_tax is None:
        tax = compute_batch_tax(batch_subtotal, rate)
    else:
        tax = quantize_money(batch_tax)

    exact = [s / batch_subtotal * tax for s in subtotals]
    shares = [share.quantize(CENT, rounding=ROUND_DOWN) for share in exact]

    # Hand out the cents lost to truncation, largest remainder first
    leftover = int((tax - sum(shares, ZERO)) / CENT)
    by_remainder = sorted(range(len(exact)), key=lambda i: shares[i] - exact[i])
    for i in by_remainder[:leftover]:
        shares[i] += CENT

    lines = [LineAmounts(subtotal=s, tax=t) for s, t in zip(subtotals, shares)]
    return Apportionment(lines=lines, subtotal=batch_subtotal, tax=tax)
