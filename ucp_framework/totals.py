"""Session totals, derived from resolved line items and a fixed tax rate."""

from __future__ import annotations

from collections.abc import Sequence

from ucp_framework.currency import calculate_tax
from ucp_framework.models import ResolvedLineItem, Total, TotalType


def compute_totals(line_items: Sequence[ResolvedLineItem], tax_rate: float) -> list[Total]:
    subtotal = sum(li.subtotal for li in line_items)
    tax = calculate_tax(subtotal, tax_rate)

    totals = [Total(type=TotalType.SUBTOTAL, amount=subtotal)]
    # Zero-rate deployments omit the tax line entirely.
    if tax_rate > 0:
        totals.append(Total(type=TotalType.TAX, amount=tax))
    totals.append(Total(type=TotalType.TOTAL, amount=subtotal + tax))
    return totals
