# clinic_ledger/services/billing_math.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, Iterable, Tuple

from clinic_ledger.models.billing import InvoiceStatus

Q2 = Decimal("0.01")
ZERO = Decimal("0.00")


def D(x) -> Decimal:
    """Decimal from anything money-like. Floats go through str() so 0.1 stays 0.1."""
    if isinstance(x, Decimal):
        return x
    try:
        return Decimal(str(x if x is not None else 0))
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a number: {x!r}")


def money2(x) -> Decimal:
    return D(x).quantize(Q2, rounding=ROUND_HALF_UP)


def line_total(quantity, unit_price) -> Decimal:
    return money2(D(quantity) * D(unit_price))


def compute_invoice_totals(
    lines: Iterable[Tuple[int, Decimal]],
    tax_rate,
    discount_amount,
) -> Dict[str, Decimal]:
    """
    lines: (quantity, unit_price) pairs.

    subtotal = sum(qty * unit_price)
    tax      = subtotal * tax_rate / 100
    total    = subtotal + tax - discount
    """
    subtotal = ZERO
    for qty, price in lines:
        subtotal += line_total(qty, price)
    subtotal = money2(subtotal)

    tax_amount = money2(subtotal * D(tax_rate) / Decimal("100"))
    discount = money2(discount_amount)
    total = money2(subtotal + tax_amount - discount)

    return {
        "subtotal": subtotal,
        "tax_amount": tax_amount,
        "discount_amount": discount,
        "total_amount": total,
    }


def derive_invoice_status(amount_paid, total_amount) -> InvoiceStatus:
    """
    The only place invoice status is computed.

      balance <= 0                 -> paid   (overpayment saturates here)
      amount_paid > 0, balance > 0 -> partial
      otherwise                    -> pending
    """
    paid = money2(amount_paid)
    balance = money2(total_amount) - paid
    if balance <= 0:
        return InvoiceStatus.PAID
    if paid > 0:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING
