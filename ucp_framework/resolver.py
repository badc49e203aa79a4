"""
Line item resolution: caller references to priced catalog snapshots.

Each reference is looked up by numeric catalog id first, then by slug.
Only ASCII digit strings within the 32-bit catalog key range count as ids;
anything else goes straight to the slug lookup.
Unknown, inactive or malformed references are dropped from the result and
reported as one recoverable error each; resolution never aborts half way.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, NamedTuple, Optional

from ucp_framework.inputs import parse_line_item
from ucp_framework.models import (
    CatalogProduct,
    LineItemInput,
    LineItemTotal,
    Message,
    ResolvedItem,
    ResolvedLineItem,
    TotalType,
)
from ucp_framework.stores import CatalogLookup

logger = logging.getLogger(__name__)

MAX_CATALOG_ID = 2**31 - 1


class ResolutionResult(NamedTuple):
    resolved: list[ResolvedLineItem]
    messages: list[Message]


async def _lookup(catalog: CatalogLookup, ref: str) -> Optional[CatalogProduct]:
    product = None
    if ref.isascii() and ref.isdigit() and int(ref) <= MAX_CATALOG_ID:
        product = await catalog.find_by_id(int(ref))
    if product is None:
        product = await catalog.find_by_slug(ref)
    return product


def price_line_item(position: int, product: CatalogProduct, quantity: int) -> ResolvedLineItem:
    unit_price = product.unit_price
    line_total = unit_price * quantity
    return ResolvedLineItem(
        id=f"li_{position}",
        item=ResolvedItem(id=str(product.id), title=product.name, price=unit_price),
        quantity=quantity,
        totals=[
            LineItemTotal(type=TotalType.SUBTOTAL, amount=line_total),
            LineItemTotal(type=TotalType.TOTAL, amount=line_total),
        ],
    )


async def resolve_line_items(catalog: CatalogLookup, refs: Iterable[Any]) -> ResolutionResult:
    resolved: list[ResolvedLineItem] = []
    messages: list[Message] = []
    dropped = 0

    for index, raw in enumerate(refs):
        ref, parse_messages = parse_line_item(raw, index)
        if ref is None:
            messages.extend(parse_messages)
            dropped += 1
            continue

        item_ref = ref.item.id.strip()
        path = f"$.line_items[{index}].item.id"
        product = await _lookup(catalog, item_ref)
        if product is None:
            messages.append(
                Message.error("item_not_found", f"Product \"{item_ref}\" was not found.", path=path)
            )
            dropped += 1
            continue
        if not product.active:
            messages.append(
                Message.error(
                    "item_unavailable",
                    f"Product \"{item_ref}\" ({product.name}) is not currently available.",
                    path=path,
                )
            )
            dropped += 1
            continue

        messages.extend(parse_messages)
        resolved.append(price_line_item(len(resolved) + 1, product, ref.quantity or 1))

    if dropped:
        logger.debug("Dropped %d of %d line item references", dropped, dropped + len(resolved))
    return ResolutionResult(resolved, messages)


def references_from(line_items: Iterable[ResolvedLineItem]) -> list[LineItemInput]:
    """Rebuild the references that produced a resolved cart, for re-pricing."""
    return [
        LineItemInput.model_validate({"item": {"id": li.item.id}, "quantity": li.quantity})
        for li in line_items
    ]
